"""
Handlers package for Lambda function handlers.

This package contains the API endpoint handlers for expenses, receipts,
settlements, payments, user profiles and badges.
"""

from . import badges, expenses, payments, receipts, settlements, users

__all__ = ["badges", "expenses", "payments", "receipts", "settlements", "users"]
