"""
Lock API Models (Pydantic schemas)

Request/Response models for the lock registry API.
"""
from typing import List, Optional

from pydantic import BaseModel, Field

from lockgate.models.domain import FulfillmentMode, Lock
from lockgate.utils import isoformat_z

from .gating import GatingConfigSchema


class LockCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    tags: List[str] = []
    is_public: bool = False
    is_template: bool = False
    gating_config: GatingConfigSchema

    def to_domain(self) -> Lock:
        categories, fulfillment = self.gating_config.to_domain()
        return Lock(
            id=None,
            name=self.name,
            community_id="",
            creator_user_id="",
            categories=categories,
            fulfillment=fulfillment,
            description=self.description,
            icon=self.icon,
            color=self.color,
            tags=list(self.tags),
            is_public=self.is_public,
            is_template=self.is_template,
        )


class LockUpdateRequest(BaseModel):
    """Partial update; only fields that are sent are changed"""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    tags: Optional[List[str]] = None
    is_public: Optional[bool] = None
    is_template: Optional[bool] = None
    gating_config: Optional[GatingConfigSchema] = None

    def to_changes(self) -> dict:
        changes = self.model_dump(exclude_unset=True, exclude={"gating_config"})
        if self.gating_config is not None:
            categories, fulfillment = self.gating_config.to_domain()
            changes["categories"] = categories
            changes["fulfillment"] = fulfillment
        return changes


class LockStats(BaseModel):
    usage_count: int
    success_rate: float
    avg_verification_time: float


class LockResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    tags: List[str] = []
    community_id: str
    creator_user_id: str
    is_public: bool
    is_template: bool
    gating_config: dict
    stats: LockStats
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_domain(cls, lock: Lock) -> "LockResponse":
        return cls(
            id=lock.id,
            name=lock.name,
            description=lock.description,
            icon=lock.icon,
            color=lock.color,
            tags=list(lock.tags),
            community_id=lock.community_id,
            creator_user_id=lock.creator_user_id,
            is_public=lock.is_public,
            is_template=lock.is_template,
            gating_config=lock.gating_config(),
            stats=LockStats(
                usage_count=lock.usage_count,
                success_rate=lock.success_rate,
                avg_verification_time=lock.avg_verification_time,
            ),
            created_at=isoformat_z(lock.created_at),
            updated_at=isoformat_z(lock.updated_at),
        )


class LockListResponse(BaseModel):
    locks: List[LockResponse]
    total: int
    page: int
    limit: int
    has_more: bool


class GatingApplyRequest(BaseModel):
    """Attach locks to a post or board"""
    resource_id: str
    lock_ids: List[int] = []
    fulfillment: FulfillmentMode
    verification_duration_hours: Optional[float] = None


class GatingResponse(BaseModel):
    resource_id: str
    lock_ids: List[int]
    fulfillment: FulfillmentMode
    verification_duration_hours: float
