"""
Services package for business logic and external integrations.

This package contains the DynamoDB table service, the balance and badge
logic, the OpenAI adapters and the configuration loader.
"""

from .dynamodb import KasyTable
from .parameter_store import config

__all__ = [
    "KasyTable",
    "config",
]
