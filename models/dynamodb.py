"""DynamoDB item models for the KASY single-table layout."""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class DynamoDBItem(BaseModel):
    """Base class for all DynamoDB items."""

    PK: str
    SK: str


class UserItem(DynamoDBItem):
    """A user profile."""

    PK: str  # USER#{user_id}
    SK: str = "PROFILE"
    user_id: str
    display_name: str
    username: str
    venmo: str | None = None
    paypal: str | None = None
    avatar_url: str | None = None
    rep_score: int = 50
    created_at: str
    updated_at: str


class UserStatsItem(DynamoDBItem):
    """Rolling payment counters used by the badge rules."""

    PK: str  # USER#{user_id}
    SK: str = "STATS"
    user_id: str
    payments_on_time: int = 0
    consecutive_quick_pays: int = 0
    total_settled: int = 0
    total_settled_cents: int = 0
    last_payment_at: str | None = None


class GroupItem(DynamoDBItem):
    """Group metadata."""

    PK: str  # GROUP#{group_id}
    SK: str = "META"
    group_id: str
    name: str
    created_at: str


class MemberItem(DynamoDBItem):
    """Membership of a user in a group."""

    PK: str  # GROUP#{group_id}
    SK: str  # MEMBER#{user_id}
    group_id: str
    user_id: str
    role: str = "member"
    joined_at: str


class ExpenseItem(DynamoDBItem):
    """An expense logged in a group."""

    PK: str  # GROUP#{group_id}
    SK: str  # EXPENSE#{expense_id}
    expense_id: str
    group_id: str
    payer_id: str
    merchant: str | None = None
    description: str
    amount_cents: int  # Minor currency units, never a float
    currency: str = "USD"
    split_type: str
    split_groups: str | None = None  # JSON encoded list of split groups
    participants: List[str]
    participant_names: Dict[str, str] = Field(default_factory=dict)
    receipt_image_url: str | None = None
    ocr_data: str | None = None  # JSON encoded OCR result
    status: str
    created_at: str
    updated_at: str


class PaymentItem(DynamoDBItem):
    """A payment between two group members."""

    PK: str  # GROUP#{group_id}
    SK: str  # PAYMENT#{payment_id}
    payment_id: str
    expense_id: str
    group_id: str
    settlement_id: str | None = None
    from_user_id: str
    to_user_id: str
    amount_cents: int
    method: str
    status: str
    venmo_link: str | None = None
    paypal_link: str | None = None
    paid_at: str | None = None
    created_at: str
    updated_at: str


class BadgeItem(DynamoDBItem):
    """
    An awarded badge.

    The sort key embeds group, award month and badge type, which makes the
    (user, group, type, month) uniqueness rule a primary-key constraint.
    """

    PK: str  # USER#{user_id}
    SK: str  # BADGE#{group_id}#{yyyy}-{mm}#{badge_type}
    user_id: str
    group_id: str
    badge_type: str
    year: int
    month: int
    metadata: str = "{}"  # JSON encoded
    awarded_at: str


class PendingReceiptItem(DynamoDBItem):
    """An unconfirmed OCR result awaiting expense creation."""

    PK: str  # USER#{user_id}
    SK: str  # RECEIPT#{group_id}#{receipt_id}
    receipt_id: str
    user_id: str
    user_name: str
    group_id: str
    message_id: int = 0
    image_url: str
    ocr_result: str  # JSON encoded OCR result
    total_cents: int
    merchant: str
    caption: str | None = None
    participants: List[str] = Field(default_factory=list)
    participant_names: Dict[str, str] = Field(default_factory=dict)
    needs_review: bool = False
    created_at: str
    expires_at: str
    ttl: Optional[int] = None  # Epoch seconds, DynamoDB TTL attribute
