"""Payment model objects for the KASY group-splitting backend."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from models.dynamodb import PaymentItem


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PROCESSING = "processing"
    PAID = "paid"


class PaymentMethod(str, Enum):
    VENMO = "venmo"
    PAYPAL = "paypal"
    CASH = "cash"


class PaymentBase(BaseModel):
    """A transfer from a debtor to a creditor, usually actioned from a settlement."""

    payment_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    expense_id: str
    group_id: str
    settlement_id: Optional[str] = None
    from_user_id: str
    to_user_id: str
    amount_cents: int = Field(..., gt=0)
    method: PaymentMethod = PaymentMethod.VENMO
    status: PaymentStatus = PaymentStatus.UNPAID
    venmo_link: Optional[str] = None
    paypal_link: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_paid(self) -> bool:
        return self.status == PaymentStatus.PAID

    def mark_paid(self, paid_at: Optional[datetime] = None) -> "PaymentBase":
        paid_at = paid_at or datetime.now(timezone.utc)
        self.status = PaymentStatus.PAID
        self.paid_at = paid_at
        self.updated_at = paid_at
        return self

    def to_dynamodb_item(self) -> PaymentItem:
        now = datetime.now(timezone.utc).isoformat()
        created = self.created_at.isoformat() if self.created_at else now
        updated = self.updated_at.isoformat() if self.updated_at else now

        return PaymentItem(
            PK=f"GROUP#{self.group_id}",
            SK=f"PAYMENT#{self.payment_id}",
            payment_id=self.payment_id,
            expense_id=self.expense_id,
            group_id=self.group_id,
            settlement_id=self.settlement_id,
            from_user_id=self.from_user_id,
            to_user_id=self.to_user_id,
            amount_cents=self.amount_cents,
            method=self.method.value,
            status=self.status.value,
            venmo_link=self.venmo_link,
            paypal_link=self.paypal_link,
            paid_at=self.paid_at.isoformat() if self.paid_at else None,
            created_at=created,
            updated_at=updated,
        )

    @classmethod
    def from_dynamodb_item(cls, item: Dict[str, Any]) -> "PaymentBase":
        if not item:
            return None

        return cls(
            payment_id=item.get("payment_id") or item["SK"].replace("PAYMENT#", ""),
            expense_id=item["expense_id"],
            group_id=item.get("group_id") or item["PK"].replace("GROUP#", ""),
            settlement_id=item.get("settlement_id"),
            from_user_id=item["from_user_id"],
            to_user_id=item["to_user_id"],
            amount_cents=int(item["amount_cents"]),
            method=item.get("method", PaymentMethod.VENMO.value),
            status=item.get("status", PaymentStatus.UNPAID.value),
            venmo_link=item.get("venmo_link"),
            paypal_link=item.get("paypal_link"),
            paid_at=(
                datetime.fromisoformat(item["paid_at"]) if item.get("paid_at") else None
            ),
            created_at=(
                datetime.fromisoformat(item["created_at"])
                if item.get("created_at")
                else None
            ),
            updated_at=(
                datetime.fromisoformat(item["updated_at"])
                if item.get("updated_at")
                else None
            ),
        )


class PaymentCreate(BaseModel):
    """Body of ``POST /payments``."""

    expense_id: str = Field(..., min_length=1)
    from_user_id: str = Field(..., min_length=1)
    to_user_id: str = Field(..., min_length=1)
    amount_cents: int = Field(..., gt=0)
    method: PaymentMethod = PaymentMethod.VENMO
    settlement_id: Optional[str] = None


class MarkPaid(BaseModel):
    """Body of ``POST /payments/mark-paid``."""

    payment_id: str = Field(..., min_length=1)
    marked_by: Optional[str] = None
