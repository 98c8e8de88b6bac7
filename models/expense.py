"""Expense model objects for the KASY group-splitting backend."""

import json
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from models.dynamodb import ExpenseItem


class SplitType(str, Enum):
    SIMPLE = "simple"
    OVERLAPPING = "overlapping"


class ExpenseStatus(str, Enum):
    PENDING = "pending"
    DELETED = "deleted"


class SplitGroup(BaseModel):
    """A named subset of participants sharing part of an overlapping expense."""

    name: str = Field(..., min_length=1)
    participants: List[str] = Field(..., min_length=1)
    total_cents: int = Field(..., ge=0)
    per_person_cents: Optional[int] = Field(None, ge=0)

    def share_cents(self) -> int:
        if self.per_person_cents is not None:
            return self.per_person_cents
        return self.total_cents // len(self.participants)


class ExpenseBase(BaseModel):
    """Base model for expense items."""

    expense_id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        description="Unique identifier for the expense",
    )
    group_id: str = Field(..., min_length=1)
    payer_id: str = Field(..., min_length=1)
    merchant: Optional[str] = None
    description: str = Field(..., min_length=1, max_length=200)
    amount_cents: int = Field(..., ge=0, description="Amount in minor currency units")
    currency: str = Field("USD", min_length=3, max_length=3)
    split_type: SplitType = SplitType.SIMPLE
    split_groups: List[SplitGroup] = Field(default_factory=list)
    participants: List[str] = Field(..., min_length=1)
    participant_names: Dict[str, str] = Field(default_factory=dict)
    receipt_image_url: Optional[str] = None
    ocr_data: Optional[Dict[str, Any]] = None
    status: ExpenseStatus = ExpenseStatus.PENDING
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_overlapping(self) -> bool:
        return self.split_type == SplitType.OVERLAPPING and bool(self.split_groups)

    def members(self) -> List[str]:
        """Payer and every participant, de-duplicated in first-seen order."""
        seen = dict.fromkeys([self.payer_id, *self.participants])
        for group in self.split_groups:
            seen.update(dict.fromkeys(group.participants))
        return list(seen)

    def to_dynamodb_item(self) -> ExpenseItem:
        """Convert to DynamoDB item format."""
        now = datetime.now(timezone.utc).isoformat()
        created = self.created_at.isoformat() if self.created_at else now
        updated = self.updated_at.isoformat() if self.updated_at else now

        return ExpenseItem(
            PK=f"GROUP#{self.group_id}",
            SK=f"EXPENSE#{self.expense_id}",
            expense_id=self.expense_id,
            group_id=self.group_id,
            payer_id=self.payer_id,
            merchant=self.merchant,
            description=self.description,
            amount_cents=self.amount_cents,
            currency=self.currency,
            split_type=self.split_type.value,
            split_groups=(
                json.dumps([group.model_dump() for group in self.split_groups])
                if self.split_groups
                else None
            ),
            participants=self.participants,
            participant_names=self.participant_names,
            receipt_image_url=self.receipt_image_url,
            ocr_data=json.dumps(self.ocr_data) if self.ocr_data else None,
            status=self.status.value,
            created_at=created,
            updated_at=updated,
        )

    @classmethod
    def from_dynamodb_item(cls, item: Dict[str, Any]) -> "ExpenseBase":
        """Create an ExpenseBase instance from a DynamoDB item."""
        if not item:
            return None

        return cls(
            expense_id=item.get("expense_id") or item["SK"].replace("EXPENSE#", ""),
            group_id=item.get("group_id") or item["PK"].replace("GROUP#", ""),
            payer_id=item["payer_id"],
            merchant=item.get("merchant"),
            description=item.get("description", "Expense"),
            amount_cents=int(item.get("amount_cents", 0)),
            currency=item.get("currency", "USD"),
            split_type=item.get("split_type", SplitType.SIMPLE.value),
            split_groups=(
                json.loads(item["split_groups"]) if item.get("split_groups") else []
            ),
            participants=list(item.get("participants", [])),
            participant_names=dict(item.get("participant_names") or {}),
            receipt_image_url=item.get("receipt_image_url"),
            ocr_data=json.loads(item["ocr_data"]) if item.get("ocr_data") else None,
            status=item.get("status", ExpenseStatus.PENDING.value),
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

    def to_response(self) -> Dict[str, Any]:
        """Convert to a dictionary for API responses."""
        return self.model_dump(mode="json")


class ExpenseCreate(BaseModel):
    """Model for creating new expenses - excludes auto-generated fields."""

    group_id: str = Field(..., min_length=1)
    payer_id: str = Field(..., min_length=1)
    merchant: Optional[str] = None
    description: str = Field(..., min_length=1, max_length=200)
    amount_cents: int = Field(..., gt=0)
    currency: str = Field("USD", min_length=3, max_length=3)
    split_type: SplitType = SplitType.SIMPLE
    split_groups: List[SplitGroup] = Field(default_factory=list)
    participants: List[str] = Field(..., min_length=1)
    participant_names: Dict[str, str] = Field(default_factory=dict)
    receipt_image_url: Optional[str] = None
    ocr_data: Optional[Dict[str, Any]] = None


class ExpenseUpdate(BaseModel):
    """Partial update of an expense; ``None`` fields are left untouched."""

    merchant: Optional[str] = None
    description: Optional[str] = Field(None, min_length=1, max_length=200)
    amount_cents: Optional[int] = Field(None, gt=0)
    participants: Optional[List[str]] = Field(None, min_length=1)
    participant_names: Optional[Dict[str, str]] = None
    split_type: Optional[SplitType] = None
    split_groups: Optional[List[SplitGroup]] = None
