"""
Models package for data structures and database entities.

This package contains Pydantic models for request validation, domain
records and their DynamoDB item representations.
"""

from .ai import OCRResult, OverlappingSplit, ParsedExpense
from .badge import BadgeBase, BadgeType
from .dynamodb import DynamoDBItem
from .expense import ExpenseBase, ExpenseStatus, SplitGroup, SplitType
from .group import GroupBase
from .payment import PaymentBase, PaymentMethod, PaymentStatus
from .receipt import PendingReceipt
from .settlement import Balance, Settlement
from .users import UserBase, UserStats

__all__ = [
    "Balance",
    "BadgeBase",
    "BadgeType",
    "DynamoDBItem",
    "ExpenseBase",
    "ExpenseStatus",
    "GroupBase",
    "OCRResult",
    "OverlappingSplit",
    "ParsedExpense",
    "PaymentBase",
    "PaymentMethod",
    "PaymentStatus",
    "PendingReceipt",
    "Settlement",
    "SplitGroup",
    "SplitType",
    "UserBase",
    "UserStats",
]
