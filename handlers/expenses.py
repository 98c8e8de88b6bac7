"""
Expense handlers for the KASY API.

Expenses live under their group; creating one also registers unknown users,
the group and its memberships. Deleting is a soft delete, clearing a group
removes its expenses and payments for good.
"""

import logging
from datetime import datetime, timezone

from pydantic import ValidationError

from models.ai import ExpenseParseRequest, OverlappingSplitRequest
from models.expense import ExpenseBase, ExpenseCreate, ExpenseStatus, ExpenseUpdate
from models.users import UserBase
from services.dynamodb import KasyTable
from services.openai_client import (overlapping_breakdown, parse_expense_text,
                                    parse_overlapping_split)
from utils.decorators import (extract_path_params, extract_query_params,
                              lambda_handler, validate_json_body)
from utils.responses import (HTTPStatus, error_response, not_found_response,
                             success_response, validation_error_response)

logger = logging.getLogger(__name__)
table = KasyTable()


def register_members(table: KasyTable, expense: ExpenseBase) -> None:
    """
    Create missing users for everyone on an expense and add them to its group.

    Display names come from ``participant_names`` when given, with a leading
    ``@`` dropped and the first letter capitalised. Every placeholder is
    validated before the first write.
    """
    placeholders = [
        UserBase.placeholder(user_id, expense.participant_names.get(user_id))
        for user_id in expense.members()
    ]
    for user in placeholders:
        table.create_user_if_absent(user)

    table.ensure_group(expense.group_id, expense.members())


def _validation_errors(e: ValidationError) -> dict:
    return {"validation_errors": e.errors(include_url=False, include_context=False)}


@lambda_handler()
@validate_json_body(
    required_fields=["group_id", "payer_id", "description", "amount_cents", "participants"]
)
def create_expense(event, context):
    """
    Create an expense.

    POST /expenses

    Args:
        event: Lambda event object containing expense data
        context: Lambda context object

    Returns:
        HTTP response with the created expense
    """
    body = event["json_body"]

    try:
        expense_create = ExpenseCreate(**body)

        now = datetime.now(timezone.utc)
        expense = ExpenseBase(
            **expense_create.model_dump(), created_at=now, updated_at=now
        )

        register_members(table, expense)
        table.put_expense(expense)

        logger.info(
            f"Expense {expense.expense_id} created in group {expense.group_id}"
        )
        return success_response(
            data={"expense": expense.to_response()},
            message=f"Expense '{expense.description}' created successfully",
            status_code=HTTPStatus.CREATED,
        )

    except ValidationError as e:
        return validation_error_response("Expense validation failed", _validation_errors(e))
    except Exception as e:
        logger.error(f"Error creating expense: {str(e)}", exc_info=True)
        return error_response(
            f"Failed to create expense: {str(e)}", HTTPStatus.INTERNAL_SERVER_ERROR
        )


@lambda_handler()
@extract_query_params("group_id", include_deleted="false")
def list_expenses(event, context):
    """
    List a group's expenses, newest first, each with its payments.

    GET /expenses?group_id=...&include_deleted=false
    """
    group_id = event["query_params"]["group_id"]
    include_deleted = event["query_params"]["include_deleted"].lower() == "true"

    try:
        expenses = table.list_group_expenses(group_id, include_deleted=include_deleted)
        payments = table.list_group_payments(group_id)

        by_expense = {}
        for payment in payments:
            by_expense.setdefault(payment.expense_id, []).append(
                payment.model_dump(mode="json")
            )

        items = []
        for expense in expenses:
            item = expense.to_response()
            item["payments"] = by_expense.get(expense.expense_id, [])
            items.append(item)

        return success_response(
            data={
                "expenses": items,
                "summary": {
                    "total_expenses": len(expenses),
                    "total_amount_cents": sum(
                        e.amount_cents
                        for e in expenses
                        if e.status != ExpenseStatus.DELETED
                    ),
                },
            }
        )
    except Exception as e:
        logger.error(
            f"Error listing expenses for group {group_id}: {str(e)}", exc_info=True
        )
        return error_response(
            f"Failed to list expenses: {str(e)}", HTTPStatus.INTERNAL_SERVER_ERROR
        )


@lambda_handler()
@validate_json_body()
@extract_path_params("expense_id")
def update_expense(event, context):
    """
    Update an expense. Only the fields present in the body change.

    PUT /expenses/{expense_id}
    """
    expense_id = event["path_params"]["expense_id"]
    body = event["json_body"]

    try:
        changes = ExpenseUpdate(**body).model_dump(exclude_none=True)

        expense = table.get_expense(expense_id)
        if not expense or expense.status == ExpenseStatus.DELETED:
            return not_found_response("Expense", expense_id)

        updated = ExpenseBase.model_validate(
            {
                **expense.model_dump(),
                **changes,
                "updated_at": datetime.now(timezone.utc),
            }
        )

        if "participants" in changes or "split_groups" in changes:
            register_members(table, updated)
        table.update_expense(updated)

        return success_response(
            data={"expense": updated.to_response()},
            message="Expense updated successfully",
        )

    except ValidationError as e:
        return validation_error_response("Expense validation failed", _validation_errors(e))
    except Exception as e:
        logger.error(f"Error updating expense {expense_id}: {str(e)}", exc_info=True)
        return error_response(
            f"Failed to update expense: {str(e)}", HTTPStatus.INTERNAL_SERVER_ERROR
        )


@lambda_handler()
@extract_path_params("expense_id")
def delete_expense(event, context):
    """
    Soft delete an expense; it stops counting towards balances.

    DELETE /expenses/{expense_id}
    """
    expense_id = event["path_params"]["expense_id"]

    try:
        expense = table.get_expense(expense_id)
        if not expense or expense.status == ExpenseStatus.DELETED:
            return not_found_response("Expense", expense_id)

        expense.status = ExpenseStatus.DELETED
        expense.updated_at = datetime.now(timezone.utc)
        table.update_expense(expense)

        return success_response(message="Expense deleted successfully")

    except Exception as e:
        logger.error(f"Error deleting expense {expense_id}: {str(e)}", exc_info=True)
        return error_response(
            f"Failed to delete expense: {str(e)}", HTTPStatus.INTERNAL_SERVER_ERROR
        )


@lambda_handler()
@validate_json_body(required_fields=["group_id"])
def clear_expenses(event, context):
    """
    Permanently remove every expense and payment of a group.

    POST /expenses/clear
    """
    group_id = event["json_body"]["group_id"]

    try:
        deleted_count = table.clear_group_expenses(group_id)
        return success_response(data={"deleted_count": deleted_count})
    except Exception as e:
        logger.error(
            f"Error clearing expenses for group {group_id}: {str(e)}", exc_info=True
        )
        return error_response(
            f"Failed to clear expenses: {str(e)}", HTTPStatus.INTERNAL_SERVER_ERROR
        )


@lambda_handler()
@validate_json_body(required_fields=["text"])
def parse_expense(event, context):
    """
    Parse a chat message into expense fields.

    POST /expenses/parse

    When ``total_cents`` is given the text is also checked for an
    overlapping split. Model failures come back as low-confidence results.
    """
    try:
        request = ExpenseParseRequest(**event["json_body"])
    except ValidationError as e:
        return validation_error_response("Parse request validation failed", _validation_errors(e))

    parsed = parse_expense_text(request.text)

    overlapping = None
    if request.total_cents:
        overlapping = parse_overlapping_split(
            request.text, request.total_cents
        ).model_dump(mode="json")

    return success_response(
        data={"parsed": parsed.to_response(), "overlapping": overlapping}
    )


@lambda_handler()
@validate_json_body(required_fields=["text", "total_cents"])
def overlapping_split(event, context):
    """
    Split a total across overlapping groups described in free text.

    POST /expenses/overlapping
    """
    try:
        request = OverlappingSplitRequest(**event["json_body"])
    except ValidationError as e:
        return validation_error_response(
            "Overlapping split request validation failed", _validation_errors(e)
        )

    result = parse_overlapping_split(request.text, request.total_cents)

    if not result.is_overlapping:
        return success_response(
            data={"is_overlapping": False},
            message="No overlapping split pattern detected",
        )

    breakdown = overlapping_breakdown(result.split_groups)
    return success_response(
        data={
            "is_overlapping": True,
            "split_groups": [group.model_dump() for group in result.split_groups],
            "overlapping_users": breakdown,
            "summary": {
                "total_groups": len(result.split_groups),
                "overlapping_count": len(breakdown),
                "total_amount": request.total_cents,
            },
        }
    )
