"""
Utils package for shared utilities and cross-cutting concerns.

This package contains the handler decorators, logging setup and response
formatters used across the KASY Lambda functions.
"""

from .decorators import (extract_path_params, extract_query_params,
                         lambda_handler, validate_json_body)
from .logging import (log_error, log_lambda_event, log_lambda_response,
                      setup_logger)
from .responses import (ErrorCode, HTTPStatus, error_response, expired_response,
                        not_found_response, success_response,
                        validation_error_response)

__all__ = [
    # Decorators
    "lambda_handler",
    "validate_json_body",
    "extract_path_params",
    "extract_query_params",
    # Logging
    "setup_logger",
    "log_lambda_event",
    "log_lambda_response",
    "log_error",
    # Responses
    "ErrorCode",
    "HTTPStatus",
    "success_response",
    "error_response",
    "validation_error_response",
    "not_found_response",
    "expired_response",
]
