from datetime import datetime, timezone
from typing import Any, Dict

import pydantic
from pydantic import BaseModel, Field

from models.dynamodb import UserItem, UserStatsItem


def display_name_from_handle(raw: str) -> str:
    """Turn a mention like ``@sarah`` into a display name like ``Sarah``."""
    clean = raw[1:] if raw.startswith("@") else raw
    return clean[:1].upper() + clean[1:]


class UserBase(BaseModel):
    """Base model for user data."""

    user_id: str = Field(..., min_length=1, max_length=100)
    display_name: str = Field(..., min_length=1, max_length=100)
    username: str = Field(..., min_length=1, max_length=100)
    venmo: str | None = None
    paypal: str | None = None
    avatar_url: str | None = None
    rep_score: int = 50
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @pydantic.field_validator("username")
    def username_must_not_contain_spaces(cls, v):
        if " " in v:
            raise ValueError("Username must not contain spaces")
        return v

    @pydantic.field_validator("venmo", "paypal")
    def strip_handle_prefix(cls, v):
        if v is None:
            return v
        v = v.strip().lstrip("@")
        return v or None

    @classmethod
    def placeholder(cls, user_id: str, name: str | None = None) -> "UserBase":
        """Build the record created the first time an unknown id is referenced."""
        # "@" alone cleans to nothing
        display_name = display_name_from_handle((name or "").strip()) or display_name_from_handle(
            user_id
        )
        return cls(
            user_id=user_id,
            display_name=display_name,
            username=display_name.lower().replace(" ", ""),
            avatar_url=f"https://api.dicebear.com/7.x/avataaars/svg?seed={display_name}",
        )

    def payment_profile(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "user_name": self.display_name,
            "venmo": self.venmo,
            "paypal": self.paypal,
        }

    def to_dynamodb_item(self) -> UserItem:
        """Convert to DynamoDB item format."""
        now = datetime.now(timezone.utc).isoformat()
        created = self.created_at.isoformat() if self.created_at else now
        updated = self.updated_at.isoformat() if self.updated_at else now

        return UserItem(
            PK=f"USER#{self.user_id}",
            SK="PROFILE",
            user_id=self.user_id,
            display_name=self.display_name,
            username=self.username,
            venmo=self.venmo,
            paypal=self.paypal,
            avatar_url=self.avatar_url,
            rep_score=self.rep_score,
            created_at=created,
            updated_at=updated,
        )

    @classmethod
    def from_dynamodb_item(cls, item: Dict[str, Any]) -> "UserBase":
        """Create a UserBase instance from a DynamoDB item."""
        if not item:
            return None

        return cls(
            user_id=item.get("user_id") or item.get("PK", "").replace("USER#", ""),
            display_name=item.get("display_name", ""),
            username=item.get("username", ""),
            venmo=item.get("venmo"),
            paypal=item.get("paypal"),
            avatar_url=item.get("avatar_url"),
            rep_score=int(item.get("rep_score", 50)),
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


class UserProfileUpdate(BaseModel):
    """Body of ``POST /users/profile``; only provided fields are changed."""

    user_id: str = Field(..., min_length=1)
    display_name: str | None = Field(None, min_length=1, max_length=100)
    handle: str | None = None
    venmo: str | None = None
    paypal: str | None = None
    avatar_url: str | None = None

    @property
    def username(self) -> str | None:
        if not self.handle:
            return None
        return self.handle[1:] if self.handle.startswith("@") else self.handle


class PaymentProfileUpdate(BaseModel):
    """Body of ``PUT /payments/profile/{user_id}``."""

    venmo: str | None = None
    paypal: str | None = None


class UserStats(BaseModel):
    """Rolling counters consulted by the badge rules."""

    user_id: str
    payments_on_time: int = 0
    consecutive_quick_pays: int = 0
    total_settled: int = 0
    total_settled_cents: int = 0
    last_payment_at: datetime | None = None

    def record_payment(
        self, was_quick_pay: bool, amount_cents: int, paid_at: datetime
    ) -> "UserStats":
        """Fold one settled payment into the counters."""
        if was_quick_pay:
            self.payments_on_time += 1
            self.consecutive_quick_pays += 1
        else:
            self.consecutive_quick_pays = 0
        self.total_settled += 1
        self.total_settled_cents += amount_cents
        self.last_payment_at = paid_at
        return self

    def to_dynamodb_item(self) -> UserStatsItem:
        return UserStatsItem(
            PK=f"USER#{self.user_id}",
            SK="STATS",
            user_id=self.user_id,
            payments_on_time=self.payments_on_time,
            consecutive_quick_pays=self.consecutive_quick_pays,
            total_settled=self.total_settled,
            total_settled_cents=self.total_settled_cents,
            last_payment_at=(
                self.last_payment_at.isoformat() if self.last_payment_at else None
            ),
        )

    @classmethod
    def from_dynamodb_item(cls, item: Dict[str, Any]) -> "UserStats":
        if not item:
            return None

        return cls(
            user_id=item["user_id"],
            payments_on_time=int(item.get("payments_on_time", 0)),
            consecutive_quick_pays=int(item.get("consecutive_quick_pays", 0)),
            total_settled=int(item.get("total_settled", 0)),
            total_settled_cents=int(item.get("total_settled_cents", 0)),
            last_payment_at=(
                datetime.fromisoformat(item["last_payment_at"])
                if item.get("last_payment_at")
                else None
            ),
        )
