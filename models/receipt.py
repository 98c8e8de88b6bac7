"""Pending receipt model objects."""

import json
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from models.ai import OCRResult
from models.dynamodb import PendingReceiptItem
from models.expense import SplitGroup, SplitType

PENDING_RECEIPT_TTL = timedelta(minutes=5)


class PendingReceipt(BaseModel):
    """
    An OCR result waiting for the user to confirm it as an expense.

    Receipts live for ``PENDING_RECEIPT_TTL`` after creation. Past that they
    are treated as missing by every lookup, and DynamoDB purges them later
    through the ``ttl`` attribute.
    """

    receipt_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    user_name: str = "User"
    group_id: str = "default"
    message_id: int = 0
    image_url: str
    ocr_result: OCRResult
    total_cents: int = Field(..., ge=0)
    merchant: str = "Unknown Merchant"
    caption: Optional[str] = None
    participants: List[str] = Field(default_factory=list)
    participant_names: Dict[str, str] = Field(default_factory=dict)
    needs_review: bool = False
    created_at: datetime
    expires_at: datetime

    @classmethod
    def create(
        cls, now: Optional[datetime] = None, **fields: Any
    ) -> "PendingReceipt":
        """Build a receipt whose expiry is ``PENDING_RECEIPT_TTL`` after ``now``."""
        now = now or datetime.now(timezone.utc)
        return cls(created_at=now, expires_at=now + PENDING_RECEIPT_TTL, **fields)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now >= self.expires_at

    def to_dynamodb_item(self) -> PendingReceiptItem:
        return PendingReceiptItem(
            PK=f"USER#{self.user_id}",
            SK=f"RECEIPT#{self.group_id}#{self.receipt_id}",
            receipt_id=self.receipt_id,
            user_id=self.user_id,
            user_name=self.user_name,
            group_id=self.group_id,
            message_id=self.message_id,
            image_url=self.image_url,
            ocr_result=self.ocr_result.model_dump_json(),
            total_cents=self.total_cents,
            merchant=self.merchant,
            caption=self.caption,
            participants=self.participants,
            participant_names=self.participant_names,
            needs_review=self.needs_review,
            created_at=self.created_at.isoformat(),
            expires_at=self.expires_at.isoformat(),
            ttl=int(self.expires_at.timestamp()),
        )

    @classmethod
    def from_dynamodb_item(cls, item: Dict[str, Any]) -> "PendingReceipt":
        if not item:
            return None

        return cls(
            receipt_id=item["receipt_id"],
            user_id=item["user_id"],
            user_name=item.get("user_name", "User"),
            group_id=item.get("group_id", "default"),
            message_id=int(item.get("message_id", 0)),
            image_url=item["image_url"],
            ocr_result=OCRResult.model_validate(json.loads(item["ocr_result"])),
            total_cents=int(item.get("total_cents", 0)),
            merchant=item.get("merchant", "Unknown Merchant"),
            caption=item.get("caption"),
            participants=list(item.get("participants", [])),
            participant_names=dict(item.get("participant_names") or {}),
            needs_review=bool(item.get("needs_review", False)),
            created_at=datetime.fromisoformat(item["created_at"]),
            expires_at=datetime.fromisoformat(item["expires_at"]),
        )

    def to_response(self) -> Dict[str, Any]:
        data = self.model_dump(mode="json")
        data["ocr_result"] = self.ocr_result.to_response()
        return data


class ReceiptOCRRequest(BaseModel):
    """Body of ``POST /receipts/ocr``."""

    image_url: str = Field(..., min_length=1)
    user_id: str = "anonymous"
    user_name: str = "User"
    group_id: str = "default"


class PendingReceiptCreate(BaseModel):
    """Body of ``POST /receipts/pending/{user_id}`` for an OCR result run elsewhere."""

    user_name: str = "User"
    group_id: str = "default"
    message_id: int = 0
    image_url: str = Field(..., min_length=1)
    ocr_result: OCRResult
    total_cents: int = Field(..., gt=0)
    merchant: str = "Unknown Merchant"
    caption: Optional[str] = None
    participants: List[str] = Field(default_factory=list)
    participant_names: Dict[str, str] = Field(default_factory=dict)


class ReceiptConfirm(BaseModel):
    """Body of ``POST /receipts/confirm``."""

    user_id: str = Field(..., min_length=1)
    group_id: str = Field(..., min_length=1)
    receipt_id: str = Field(..., min_length=1)
    participants: Optional[List[str]] = None
    participant_names: Optional[Dict[str, str]] = None
    split_type: SplitType = SplitType.SIMPLE
    split_groups: List[SplitGroup] = Field(default_factory=list)
    amount_cents: Optional[int] = Field(None, gt=0)
