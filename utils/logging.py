"""
Centralized logging configuration for the KASY backend.

Every Lambda handler and service logs through ``setup_logger`` so that records
reach CloudWatch as single-line JSON documents that can be filtered by field.
The level comes from ``LOG_LEVEL`` unless a caller passes one.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Attributes of a bare LogRecord; anything else arrived through ``extra=``
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime"}


class StructuredFormatter(logging.Formatter):
    """
    Formats records as JSON so CloudWatch Insights can query individual fields.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        entry.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS
        )

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def setup_logger(
    name: str, level: Optional[str] = None, structured: bool = True
) -> logging.Logger:
    """
    Get a logger writing to stdout, configuring it on first use.

    Args:
        name: Logger name (typically __name__)
        level: Log level name; defaults to ``LOG_LEVEL`` or INFO
        structured: Emit JSON records instead of plain text

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Already configured on a warm start
    if logger.handlers:
        return logger

    level_name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    logger.setLevel(getattr(logging, level_name, logging.INFO))

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        StructuredFormatter()
        if structured
        else logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
    )
    logger.addHandler(handler)
    logger.propagate = False

    return logger


def log_lambda_event(
    logger: logging.Logger, event: Dict[str, Any], context: Any
) -> None:
    """Log the incoming API Gateway request, without its body."""
    http_context = event.get("requestContext", {}).get("http", {})
    logger.info(
        "Lambda invocation started",
        extra={
            "request_id": getattr(context, "aws_request_id", "unknown"),
            "function_name": getattr(context, "function_name", "unknown"),
            "route": event.get("routeKey"),
            "http_method": event.get("httpMethod") or http_context.get("method"),
            "path": event.get("path") or event.get("rawPath"),
            "path_parameters": event.get("pathParameters"),
            "query_parameters": event.get("queryStringParameters"),
            "source_ip": http_context.get("sourceIp"),
        },
    )


def log_lambda_response(
    logger: logging.Logger,
    response: Dict[str, Any],
    execution_time_ms: Optional[float] = None,
) -> None:
    """Log the outgoing status code, body size and duration."""
    status_code = response.get("statusCode")
    logger.log(
        logging.WARNING if status_code and status_code >= 500 else logging.INFO,
        "Lambda invocation completed",
        extra={
            "status_code": status_code,
            "execution_time_ms": execution_time_ms,
            "response_size": len(response.get("body") or ""),
        },
    )


def log_error(
    logger: logging.Logger, error: Exception, context: Optional[Dict[str, Any]] = None
) -> None:
    """
    Log an exception together with request context.

    Args:
        logger: Logger instance
        error: Exception that occurred
        context: Additional fields, e.g. request id and path
    """
    logger.error(
        f"Unhandled {type(error).__name__}: {error}",
        extra={
            "error_type": type(error).__name__,
            "error_message": str(error),
            **(context or {}),
        },
        exc_info=True,
    )
