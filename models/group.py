"""Group and membership models."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from models.dynamodb import GroupItem, MemberItem


class GroupBase(BaseModel):
    """A group of people sharing expenses. Created on its first expense."""

    group_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    created_at: Optional[datetime] = None

    def to_dynamodb_item(self) -> GroupItem:
        created = self.created_at or datetime.now(timezone.utc)
        return GroupItem(
            PK=f"GROUP#{self.group_id}",
            SK="META",
            group_id=self.group_id,
            name=self.name,
            created_at=created.isoformat(),
        )

    @classmethod
    def from_dynamodb_item(cls, item: Dict[str, Any]) -> "GroupBase":
        if not item:
            return None

        return cls(
            group_id=item["group_id"],
            name=item.get("name") or item["group_id"],
            created_at=(
                datetime.fromisoformat(item["created_at"])
                if item.get("created_at")
                else None
            ),
        )


def membership_item(group_id: str, user_id: str, role: str = "member") -> MemberItem:
    return MemberItem(
        PK=f"GROUP#{group_id}",
        SK=f"MEMBER#{user_id}",
        group_id=group_id,
        user_id=user_id,
        role=role,
        joined_at=datetime.now(timezone.utc).isoformat(),
    )
