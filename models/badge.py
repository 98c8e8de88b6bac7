"""Badge model objects."""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from models.dynamodb import BadgeItem


class BadgeType(str, Enum):
    TABLE_HERO = "table_hero"
    PAY_IT_FORWARD = "pay_it_forward"
    EVEN_STEVEN = "even_steven"


def badge_sort_key(group_id: str, year: int, month: int, badge_type: str) -> str:
    return f"BADGE#{group_id}#{year:04d}-{month:02d}#{badge_type}"


class BadgeBase(BaseModel):
    """A gamification badge, unique per (user, group, type, calendar month)."""

    user_id: str = Field(..., min_length=1)
    group_id: str = Field(..., min_length=1)
    badge_type: BadgeType
    year: int
    month: int = Field(..., ge=1, le=12)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    awarded_at: datetime

    @classmethod
    def for_now(
        cls,
        user_id: str,
        group_id: str,
        badge_type: BadgeType,
        metadata: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> "BadgeBase":
        """Build a badge stamped with the current UTC month."""
        now = now or datetime.now(timezone.utc)
        return cls(
            user_id=user_id,
            group_id=group_id,
            badge_type=badge_type,
            year=now.year,
            month=now.month,
            metadata=metadata or {},
            awarded_at=now,
        )

    def to_dynamodb_item(self) -> BadgeItem:
        return BadgeItem(
            PK=f"USER#{self.user_id}",
            SK=badge_sort_key(
                self.group_id, self.year, self.month, self.badge_type.value
            ),
            user_id=self.user_id,
            group_id=self.group_id,
            badge_type=self.badge_type.value,
            year=self.year,
            month=self.month,
            metadata=json.dumps(self.metadata, default=str),
            awarded_at=self.awarded_at.isoformat(),
        )

    @classmethod
    def from_dynamodb_item(cls, item: Dict[str, Any]) -> "BadgeBase":
        if not item:
            return None

        return cls(
            user_id=item["user_id"],
            group_id=item["group_id"],
            badge_type=item["badge_type"],
            year=int(item["year"]),
            month=int(item["month"]),
            metadata=json.loads(item.get("metadata") or "{}"),
            awarded_at=datetime.fromisoformat(item["awarded_at"]),
        )


class BadgeAward(BaseModel):
    """Body of ``POST /badges/award``."""

    user_id: str = Field(..., min_length=1)
    group_id: str = Field(..., min_length=1)
    badge_type: BadgeType
    metadata: Dict[str, Any] = Field(default_factory=dict)
