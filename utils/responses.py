"""
Response envelopes for the KASY Lambda handlers.

Every handler answers with the same shape: a JSON body with ``success`` plus
either the payload fields (and an optional ``message``) or an ``error`` with an
``error_code`` and optional ``details``.
"""

import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Union


class HTTPStatus(Enum):
    """Status codes the API answers with."""

    OK = 200
    CREATED = 201
    BAD_REQUEST = 400
    NOT_FOUND = 404
    CONFLICT = 409
    INTERNAL_SERVER_ERROR = 500


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    RESOURCE_EXPIRED = "RESOURCE_EXPIRED"


cors_headers = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type",
    "Access-Control-Allow-Methods": "GET,POST,PUT,DELETE,OPTIONS",
}


class APIJSONEncoder(json.JSONEncoder):
    """
    Serializes the types that reach a response body.

    DynamoDB hands numbers back as ``Decimal``; money is always whole cents so
    integral decimals are emitted as ints.
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, Decimal):
            return int(obj) if obj == obj.to_integral_value() else float(obj)
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        if hasattr(obj, "model_dump"):
            return obj.model_dump(mode="json", by_alias=True)
        return super().default(obj)


def create_response(
    status_code: Union[int, HTTPStatus],
    body: Any = None,
    headers: Optional[Dict[str, str]] = None,
    cors_enabled: bool = True,
) -> Dict[str, Any]:
    """
    Build an API Gateway proxy response.

    Dicts, lists and pydantic models are JSON encoded; any other body is
    sent as its string form.
    """
    if isinstance(status_code, HTTPStatus):
        status_code = status_code.value

    response = {
        "statusCode": status_code,
        "headers": {
            "Content-Type": "application/json",
            **(cors_headers if cors_enabled else {}),
            **(headers or {}),
        },
    }

    if body is None:
        return response

    if isinstance(body, (dict, list)) or hasattr(body, "model_dump"):
        response["body"] = json.dumps(body, cls=APIJSONEncoder)
    else:
        response["body"] = str(body)
    return response


def success_response(
    data: Any = None,
    message: Optional[str] = None,
    status_code: Union[int, HTTPStatus] = HTTPStatus.OK,
) -> Dict[str, Any]:
    """
    Dict payloads are merged into the top level of the body; anything else is
    placed under ``data``.
    """
    body: Dict[str, Any] = {"success": True}
    if message:
        body["message"] = message

    if isinstance(data, dict):
        body.update(data)
    elif data is not None:
        body["data"] = data

    return create_response(status_code, body)


def error_response(
    message: str,
    status_code: Union[int, HTTPStatus] = HTTPStatus.INTERNAL_SERVER_ERROR,
    error_code: Optional[Union[str, ErrorCode]] = None,
    details: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": False, "error": message}
    if error_code:
        body["error_code"] = (
            error_code.value if isinstance(error_code, ErrorCode) else error_code
        )
    if details:
        body["details"] = details

    return create_response(status_code, body)


def validation_error_response(
    message: str = "Validation failed", errors: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """400 for rejected input."""
    return error_response(
        message, HTTPStatus.BAD_REQUEST, ErrorCode.VALIDATION_ERROR, errors
    )


def not_found_response(
    resource: str, identifier: Optional[str] = None
) -> Dict[str, Any]:
    """404 for a missing resource, e.g. ``not_found_response("Expense", expense_id)``."""
    message = f"{resource} '{identifier}' not found" if identifier else f"{resource} not found"
    return error_response(
        message, HTTPStatus.NOT_FOUND, ErrorCode.RESOURCE_NOT_FOUND
    )


def expired_response(resource: str, identifier: str) -> Dict[str, Any]:
    """
    404 for a time-boxed resource past its expiry, such as a pending receipt.

    Expired resources are reported like missing ones, with a distinct code.
    """
    return error_response(
        f"{resource} '{identifier}' has expired",
        HTTPStatus.NOT_FOUND,
        ErrorCode.RESOURCE_EXPIRED,
    )
