"""
Decorators for Lambda function handlers.

They give every handler the same logging, error envelope and request parsing
so that handler bodies only deal with validated input.
"""

import json
import time
from functools import wraps
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from .logging import log_error, log_lambda_event, log_lambda_response, setup_logger
from .responses import HTTPStatus, error_response, validation_error_response


def _request_context(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    http_context = event.get("requestContext", {}).get("http", {})
    return {
        "function_name": getattr(context, "function_name", "unknown"),
        "request_id": getattr(context, "aws_request_id", "unknown"),
        "event_path": event.get("path") or event.get("rawPath"),
        "event_method": event.get("httpMethod") or http_context.get("method"),
    }


def lambda_handler(
    logger_name: Optional[str] = None,
    log_event: bool = True,
    log_response: bool = True,
    structured_logging: bool = True,
) -> Callable:
    """
    Wrap a Lambda handler with request logging and a last-resort error envelope.

    A pydantic ``ValidationError`` escaping the handler becomes a 400, any
    other exception a 500 with the traceback logged. Handlers that return
    something other than a proxy response also get a 500.

    Args:
        logger_name: Logger name (defaults to the handler's module)
        log_event: Whether to log incoming events
        log_response: Whether to log responses
        structured_logging: Whether to use structured JSON logging
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
            logger = setup_logger(
                logger_name or func.__module__, structured=structured_logging
            )
            started = time.perf_counter()

            if log_event:
                log_lambda_event(logger, event, context)

            try:
                response = func(event, context)
            except ValidationError as e:
                response = validation_error_response(
                    "Validation failed",
                    {"validation_errors": e.errors(include_url=False, include_context=False)},
                )
            except Exception as e:
                log_error(
                    logger,
                    e,
                    {
                        **_request_context(event, context),
                        "execution_time_ms": (time.perf_counter() - started) * 1000,
                    },
                )
                return error_response(
                    "Internal server error", HTTPStatus.INTERNAL_SERVER_ERROR
                )

            if not isinstance(response, dict) or "statusCode" not in response:
                logger.warning(
                    f"{func.__name__} returned {type(response).__name__}, not a response"
                )
                response = error_response(
                    "Internal server error", HTTPStatus.INTERNAL_SERVER_ERROR
                )

            if log_response:
                log_lambda_response(
                    logger, response, (time.perf_counter() - started) * 1000
                )
            return response

        return wrapper

    return decorator


def validate_json_body(required_fields: Optional[list] = None) -> Callable:
    """
    Decorator that parses the JSON request body into ``event["json_body"]``.

    Args:
        required_fields: Field names that must be present and non-empty

    Returns:
        Decorated function
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
            body_str = event.get("body") or "{}"

            try:
                body = json.loads(body_str)
            except json.JSONDecodeError as e:
                return validation_error_response(
                    "Invalid JSON in request body", {"json_error": str(e)}
                )

            if not isinstance(body, dict):
                return validation_error_response(
                    "Request body must be a JSON object"
                )

            if required_fields:
                missing_fields = [
                    field
                    for field in required_fields
                    if body.get(field) in (None, "", [])
                ]
                if missing_fields:
                    return validation_error_response(
                        f"Missing required fields: {', '.join(missing_fields)}",
                        {"missing_fields": missing_fields},
                    )

            event["json_body"] = body
            return func(event, context)

        return wrapper

    return decorator


def extract_path_params(*param_names: str) -> Callable:
    """
    Decorator that extracts required path parameters into ``event["path_params"]``.

    Args:
        param_names: Names of path parameters to extract
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
            path_params = event.get("pathParameters") or {}

            missing_params = [
                param for param in param_names if not path_params.get(param)
            ]
            if missing_params:
                return validation_error_response(
                    f"Missing path parameters: {', '.join(missing_params)}",
                    {"missing_parameters": missing_params},
                )

            event["path_params"] = {param: path_params[param] for param in param_names}
            return func(event, context)

        return wrapper

    return decorator


def extract_query_params(*required: str, **defaults: Any) -> Callable:
    """
    Decorator that collects query string parameters into ``event["query_params"]``.

    Positional names are required; keyword arguments are optional parameters
    with their default values.
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
            query = event.get("queryStringParameters") or {}

            missing_params = [param for param in required if not query.get(param)]
            if missing_params:
                return validation_error_response(
                    f"Missing query parameters: {', '.join(missing_params)}",
                    {"missing_parameters": missing_params},
                )

            params = {param: query[param] for param in required}
            for param, default in defaults.items():
                params[param] = query.get(param) or default

            event["query_params"] = params
            return func(event, context)

        return wrapper

    return decorator
