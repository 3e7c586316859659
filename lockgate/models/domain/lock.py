"""
Lock domain models

Storage: PostgreSQL (locks table, gating_policies table)
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

from .requirement import (
    CategoryType,
    FulfillmentMode,
    Requirement,
    requirement_from_dict,
    requirement_to_dict,
)


@dataclass(frozen=True)
class Category:
    """A group of requirements sharing one ANY/ALL condition"""
    type: CategoryType
    requirements: Tuple[Requirement, ...]
    fulfillment: FulfillmentMode
    enabled: bool = True

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "enabled": self.enabled,
            "fulfillment": self.fulfillment.value,
            "requirements": [requirement_to_dict(r) for r in self.requirements],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Category":
        return cls(
            type=CategoryType(data["type"]),
            requirements=tuple(requirement_from_dict(r) for r in data.get("requirements", [])),
            fulfillment=FulfillmentMode(data["fulfillment"]),
            enabled=data.get("enabled", True),
        )


@dataclass
class Lock:
    """
    Lock domain model - a named, reusable bundle of categories

    The gating configuration (categories + fulfillment) is frozen once a
    board or post references the lock; metadata stays editable.
    """
    id: Optional[int]
    name: str
    community_id: str
    creator_user_id: str
    categories: List[Category]
    fulfillment: FulfillmentMode

    # Presentation
    description: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    tags: List[str] = field(default_factory=list)

    # Sharing
    is_public: bool = False
    is_template: bool = False

    # Usage statistics
    usage_count: int = 0
    success_rate: float = 0.0
    avg_verification_time: float = 0.0

    # Timestamps
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def enabled_categories(self) -> List[Category]:
        return [c for c in self.categories if c.enabled]

    def category(self, category_type: CategoryType) -> Optional[Category]:
        """Enabled category of the given type, if any"""
        for cat in self.categories:
            if cat.type == category_type and cat.enabled:
                return cat
        return None

    def gating_config(self) -> dict:
        return {
            "fulfillment": self.fulfillment.value,
            "categories": [c.to_dict() for c in self.categories],
        }

    def is_owned_by(self, user_id: str) -> bool:
        return self.creator_user_id == user_id


@dataclass
class BoardLockGating:
    """Access policy attached to a board or post"""
    lock_ids: List[int]
    fulfillment: FulfillmentMode
    # None falls back to the per-resource default
    verification_duration_hours: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "lock_ids": list(self.lock_ids),
            "fulfillment": self.fulfillment.value,
            "verification_duration_hours": self.verification_duration_hours,
        }


@dataclass(frozen=True)
class ResourceRef:
    """A gated resource, written as 'post:12' or 'board:7'"""
    kind: str
    id: str

    KINDS = ("post", "board")

    @classmethod
    def parse(cls, value: str) -> "ResourceRef":
        kind, sep, ident = value.partition(":")
        if not sep or kind not in cls.KINDS or not ident:
            raise ValueError(f"Invalid resource id '{value}' (expected post:<id> or board:<id>)")
        return cls(kind=kind, id=ident)

    def __str__(self) -> str:
        return f"{self.kind}:{self.id}"


@dataclass
class LockFilters:
    """Lock listing query; visibility is resolved against the viewer"""
    community_id: str
    viewer_user_id: str
    viewer_is_admin: bool = False
    creator_user_id: Optional[str] = None
    is_public: Optional[bool] = None
    is_template: Optional[bool] = None
    tag: Optional[str] = None
    search: Optional[str] = None
    limit: int = 20
    offset: int = 0
