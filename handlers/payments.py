"""
Payment handlers for the KASY API.

Payments are created from settlements and marked paid by either side.
Marking a payment paid also updates the debtor's stats and evaluates the
badge rules.
"""

import logging
from datetime import datetime, timezone

from pydantic import ValidationError

from models.payment import MarkPaid, PaymentBase, PaymentCreate
from models.users import PaymentProfileUpdate, UserBase
from services.badges import evaluate_payment_badges
from services.calculations import build_payment_links, resolve_policy
from services.dynamodb import KasyTable
from services.parameter_store import config
from utils.decorators import (extract_path_params, lambda_handler,
                              validate_json_body)
from utils.responses import (HTTPStatus, error_response, not_found_response,
                             success_response, validation_error_response)

logger = logging.getLogger(__name__)
table = KasyTable()


@lambda_handler()
@validate_json_body(
    required_fields=["expense_id", "from_user_id", "to_user_id", "amount_cents"]
)
def create_payment(event, context):
    """
    Create an unpaid payment with Venmo and PayPal links for the creditor.

    POST /payments
    """
    try:
        request = PaymentCreate(**event["json_body"])
        if request.from_user_id == request.to_user_id:
            return validation_error_response("A payment needs two different users")

        expense = table.get_expense(request.expense_id)
        if not expense:
            return not_found_response("Expense", request.expense_id)

        users = table.get_users([request.from_user_id, request.to_user_id])
        for user_id in (request.from_user_id, request.to_user_id):
            if user_id not in users:
                return not_found_response("User", user_id)

        creditor = users[request.to_user_id]
        links = build_payment_links(request.amount_cents, creditor.display_name, creditor)

        now = datetime.now(timezone.utc)
        payment = PaymentBase(
            **request.model_dump(),
            group_id=expense.group_id,
            venmo_link=links["venmo_link"],
            paypal_link=links["paypal_link"],
            created_at=now,
            updated_at=now,
        )
        table.put_payment(payment)

        logger.info(
            f"Payment {payment.payment_id} created: "
            f"{payment.from_user_id} -> {payment.to_user_id} {payment.amount_cents}"
        )
        return success_response(
            data={"payment": payment.model_dump(mode="json")},
            status_code=HTTPStatus.CREATED,
        )

    except ValidationError as e:
        return validation_error_response(
            "Payment validation failed",
            {"validation_errors": e.errors(include_url=False, include_context=False)},
        )
    except Exception as e:
        logger.error(f"Error creating payment: {str(e)}", exc_info=True)
        return error_response(
            f"Failed to create payment: {str(e)}", HTTPStatus.INTERNAL_SERVER_ERROR
        )


@lambda_handler()
@validate_json_body(required_fields=["payment_id"])
def mark_paid(event, context):
    """
    Mark a payment paid and evaluate badges.

    POST /payments/mark-paid

    Badge evaluation is best-effort: a failure there is logged and the
    payment stays paid.
    """
    try:
        request = MarkPaid(**event["json_body"])
    except ValidationError as e:
        return validation_error_response(
            "Mark paid validation failed",
            {"validation_errors": e.errors(include_url=False, include_context=False)},
        )

    payment = table.get_payment(request.payment_id)
    if not payment:
        return not_found_response("Payment", request.payment_id)

    if payment.is_paid:
        return success_response(
            data={"payment": payment.model_dump(mode="json"), "badges": None},
            message="Payment was already marked paid",
        )

    now = datetime.now(timezone.utc)
    payment.mark_paid(now)
    table.put_payment(payment)
    logger.info(
        f"Payment {payment.payment_id} marked paid by {request.marked_by or 'unknown'}"
    )

    badges = None
    try:
        expense = table.get_expense(payment.expense_id)
        if expense:
            badges = evaluate_payment_badges(
                table, payment, expense, now, resolve_policy(config.remainder_policy)
            )
    except Exception as e:
        logger.error(
            f"Badge evaluation failed for payment {payment.payment_id}: {str(e)}",
            exc_info=True,
        )

    return success_response(
        data={"payment": payment.model_dump(mode="json"), "badges": badges},
        message="Payment marked as paid",
    )


@lambda_handler()
@extract_path_params("user_id")
def get_payment_profile(event, context):
    """
    Get the Venmo and PayPal handles of a user.

    GET /payments/profile/{user_id}
    """
    user_id = event["path_params"]["user_id"]

    user = table.get_user(user_id)
    if not user:
        return not_found_response("User", user_id)

    return success_response(data={"profile": user.payment_profile()})


@lambda_handler()
@validate_json_body()
@extract_path_params("user_id")
def update_payment_profile(event, context):
    """
    Set the Venmo and PayPal handles of a user. Handles are stored without ``@``.

    PUT /payments/profile/{user_id}
    """
    user_id = event["path_params"]["user_id"]

    try:
        update = PaymentProfileUpdate(**event["json_body"])

        user = table.get_user(user_id)
        if not user:
            return not_found_response("User", user_id)

        user = UserBase.model_validate(
            {
                **user.model_dump(),
                "venmo": update.venmo,
                "paypal": update.paypal,
                "updated_at": datetime.now(timezone.utc),
            }
        )
        table.put_user(user)

        return success_response(
            data={"profile": user.payment_profile()},
            message="Payment profile updated",
        )

    except ValidationError as e:
        return validation_error_response(
            "Payment profile validation failed",
            {"validation_errors": e.errors(include_url=False, include_context=False)},
        )
    except Exception as e:
        logger.error(
            f"Error updating payment profile for {user_id}: {str(e)}", exc_info=True
        )
        return error_response(
            f"Failed to update payment profile: {str(e)}",
            HTTPStatus.INTERNAL_SERVER_ERROR,
        )
