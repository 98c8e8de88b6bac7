"""
Receipt handlers for the KASY API.

A scanned receipt is held as a pending receipt for five minutes while the
user confirms the total and participants; confirming turns it into an
expense paid by the uploader.
"""

import logging
from datetime import datetime, timezone

from pydantic import ValidationError

from handlers.expenses import register_members
from models.expense import ExpenseBase
from models.receipt import (PendingReceipt, PendingReceiptCreate,
                            ReceiptConfirm, ReceiptOCRRequest)
from services.dynamodb import KasyTable
from services.openai_client import process_receipt_ocr
from utils.decorators import (extract_path_params, extract_query_params,
                              lambda_handler, validate_json_body)
from utils.responses import (HTTPStatus, error_response, expired_response,
                             not_found_response, success_response,
                             validation_error_response)

logger = logging.getLogger(__name__)
table = KasyTable()


def _pending_receipt_body(receipt: PendingReceipt) -> dict:
    return {
        "receipt_id": receipt.receipt_id,
        "expires_at": receipt.expires_at.isoformat(),
        "needs_review": receipt.needs_review,
    }


@lambda_handler()
@validate_json_body(required_fields=["image_url"])
def process_receipt(event, context):
    """
    Run OCR on a receipt image and keep the result as a pending receipt.

    POST /receipts/ocr

    OCR failures are not errors: they come back as a low-confidence result
    flagged for review.
    """
    try:
        request = ReceiptOCRRequest(**event["json_body"])
    except ValidationError as e:
        return validation_error_response(
            "Receipt request validation failed",
            {"validation_errors": e.errors(include_url=False, include_context=False)},
        )

    ocr_result = process_receipt_ocr(request.image_url)

    try:
        receipt = PendingReceipt.create(
            user_id=request.user_id,
            user_name=request.user_name,
            group_id=request.group_id,
            image_url=request.image_url,
            ocr_result=ocr_result,
            total_cents=ocr_result.total_cents,
            merchant=ocr_result.merchant or "Unknown Merchant",
            needs_review=ocr_result.needs_review,
        )
        table.put_pending_receipt(receipt)
    except Exception as e:
        logger.error(f"Error storing pending receipt: {str(e)}", exc_info=True)
        return error_response(
            f"Failed to process receipt: {str(e)}", HTTPStatus.INTERNAL_SERVER_ERROR
        )

    logger.info(f"Pending receipt {receipt.receipt_id} stored for {request.user_id}")
    return success_response(
        data={**_pending_receipt_body(receipt), "ocr_result": ocr_result.to_response()}
    )


@lambda_handler()
@validate_json_body(required_fields=["image_url", "ocr_result", "total_cents"])
@extract_path_params("user_id")
def store_pending_receipt(event, context):
    """
    Store an OCR result produced elsewhere as the user's pending receipt.

    POST /receipts/pending/{user_id}

    Replaces any earlier pending receipt of the same user in the same group.
    """
    user_id = event["path_params"]["user_id"]

    try:
        request = PendingReceiptCreate(**event["json_body"])
        receipt = PendingReceipt.create(
            user_id=user_id,
            needs_review=request.ocr_result.needs_review,
            **request.model_dump(),
        )
        table.put_pending_receipt(receipt)

        return success_response(
            data=_pending_receipt_body(receipt), status_code=HTTPStatus.CREATED
        )

    except ValidationError as e:
        return validation_error_response(
            "Pending receipt validation failed",
            {"validation_errors": e.errors(include_url=False, include_context=False)},
        )
    except Exception as e:
        logger.error(
            f"Error storing pending receipt for {user_id}: {str(e)}", exc_info=True
        )
        return error_response(
            f"Failed to store pending receipt: {str(e)}",
            HTTPStatus.INTERNAL_SERVER_ERROR,
        )


@lambda_handler()
@extract_path_params("user_id")
@extract_query_params(group_id="default")
def get_pending_receipt(event, context):
    """
    Get the user's newest unexpired pending receipt in a group.

    GET /receipts/pending/{user_id}?group_id=...
    """
    user_id = event["path_params"]["user_id"]
    group_id = event["query_params"]["group_id"]

    receipt = table.get_latest_pending_receipt(user_id, group_id)
    if not receipt:
        return not_found_response("Pending receipt for user", user_id)

    return success_response(data={"receipt": receipt.to_response()})


@lambda_handler()
@validate_json_body(required_fields=["user_id", "group_id", "receipt_id"])
def confirm_receipt(event, context):
    """
    Turn a pending receipt into an expense paid by the uploader.

    POST /receipts/confirm

    The amount, participants and split may be corrected in the body. An
    expired receipt is reported as expired and no expense is created.
    """
    try:
        request = ReceiptConfirm(**event["json_body"])

        receipt = table.get_pending_receipt(
            request.user_id, request.group_id, request.receipt_id
        )
        if not receipt:
            return not_found_response("Pending receipt", request.receipt_id)

        now = datetime.now(timezone.utc)
        if receipt.is_expired(now):
            logger.info(f"Pending receipt {receipt.receipt_id} expired at {receipt.expires_at}")
            return expired_response("Pending receipt", request.receipt_id)

        amount_cents = request.amount_cents or receipt.total_cents
        if amount_cents <= 0:
            return validation_error_response(
                "Receipt has no total; provide amount_cents to confirm it"
            )

        expense = ExpenseBase(
            group_id=request.group_id,
            payer_id=request.user_id,
            merchant=receipt.merchant,
            description=f"{receipt.merchant} - Receipt",
            amount_cents=amount_cents,
            split_type=request.split_type,
            split_groups=request.split_groups,
            participants=request.participants or receipt.participants,
            participant_names=(
                request.participant_names
                if request.participant_names is not None
                else receipt.participant_names
            ),
            receipt_image_url=receipt.image_url,
            ocr_data=receipt.ocr_result.model_dump(mode="json"),
            created_at=now,
            updated_at=now,
        )

        register_members(table, expense)
        table.put_expense(expense)
        table.delete_pending_receipt(receipt)

        logger.info(
            f"Expense {expense.expense_id} created from receipt {receipt.receipt_id}"
        )
        return success_response(
            data={"expense": expense.to_response()},
            message="Receipt confirmed",
            status_code=HTTPStatus.CREATED,
        )

    except ValidationError as e:
        return validation_error_response(
            "Receipt confirmation failed",
            {"validation_errors": e.errors(include_url=False, include_context=False)},
        )
    except Exception as e:
        logger.error(f"Error confirming receipt: {str(e)}", exc_info=True)
        return error_response(
            f"Failed to confirm receipt: {str(e)}", HTTPStatus.INTERNAL_SERVER_ERROR
        )
