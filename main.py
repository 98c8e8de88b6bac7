"""Liveness probe for the KASY API."""

import os
from datetime import datetime, timezone

from utils.decorators import lambda_handler
from utils.responses import success_response

SERVICE_NAME = "kasy-backend"
SERVICE_VERSION = "1.0.0"


@lambda_handler(log_event=False)
def healthz(event, context):
    """
    GET /healthz

    Does not touch DynamoDB or OpenAI; it only shows the function is
    deployed and which table it is pointed at.
    """
    return success_response(
        data={
            "status": "healthy",
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "table": os.getenv("TABLE_NAME", "KasyTable"),
            "checked_at": datetime.now(timezone.utc).isoformat(),
        },
        message="Service is running",
    )
