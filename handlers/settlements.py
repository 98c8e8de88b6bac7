"""Settlement handler for the KASY API."""

import logging
from typing import Dict, Iterable

from models.expense import ExpenseBase
from models.users import UserBase, display_name_from_handle
from services.calculations import (calculate_balances, calculate_settlements,
                                   resolve_policy, summarize)
from services.dynamodb import KasyTable
from services.parameter_store import config
from utils.decorators import extract_path_params, lambda_handler
from utils.responses import HTTPStatus, error_response, success_response

logger = logging.getLogger(__name__)
table = KasyTable()


def resolve_user_names(
    expenses: Iterable[ExpenseBase], profiles: Dict[str, UserBase]
) -> Dict[str, str]:
    """Display name per user: stored profile first, then names given on expenses."""
    names: Dict[str, str] = {}
    for expense in expenses:
        for user_id, name in expense.participant_names.items():
            names.setdefault(user_id, display_name_from_handle(name))
    for user_id, profile in profiles.items():
        names[user_id] = profile.display_name
    return names


@lambda_handler()
@extract_path_params("group_id")
def get_settlements(event, context):
    """
    Balances and the transfers that settle them for a group.

    GET /settlements/{group_id}

    Args:
        event: Lambda event object with group_id path parameter
        context: Lambda context object

    Returns:
        HTTP response with balances, settlements and a summary
    """
    group_id = event["path_params"]["group_id"]

    try:
        expenses = table.list_group_expenses(group_id)
        payments = table.list_group_payments(group_id)

        user_ids = {user_id for expense in expenses for user_id in expense.members()}
        profiles = table.get_users(sorted(user_ids))
        names = resolve_user_names(expenses, profiles)

        policy = resolve_policy(config.remainder_policy)
        balances = calculate_balances(expenses, names, policy)
        settlements = calculate_settlements(balances, group_id, payments, profiles)

        return success_response(
            data={
                "balances": [b.model_dump(mode="json", by_alias=True) for b in balances],
                "settlements": [
                    s.model_dump(mode="json", by_alias=True) for s in settlements
                ],
                "summary": summarize(balances, settlements),
            }
        )
    except Exception as e:
        logger.error(
            f"Error calculating settlements for group {group_id}: {str(e)}",
            exc_info=True,
        )
        return error_response(
            f"Failed to calculate settlements: {str(e)}",
            HTTPStatus.INTERNAL_SERVER_ERROR,
        )
