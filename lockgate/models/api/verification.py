"""
Verification API Models (Pydantic schemas)
"""
from typing import List, Optional

from pydantic import BaseModel, Field

from lockgate.models.domain import CategoryType, FulfillmentMode


class ChallengeRequest(BaseModel):
    resource_id: str
    claimed_identity: str
    category_type: CategoryType


class ChallengeResponse(BaseModel):
    nonce: str
    signing_message: str
    resource_id: str
    chain_id: int
    expires_at: str


class SubmitRequest(BaseModel):
    nonce: str = Field(..., min_length=1)
    claimed_identity: str
    lock_id: int
    category_type: CategoryType
    signature: str = Field(..., min_length=1)
    proof_payload: dict = {}


class RequirementResultResponse(BaseModel):
    requirement: str
    kind: str
    satisfied: bool
    reason: Optional[str] = None


class SubmitResponse(BaseModel):
    status: str  # verified | unsatisfied | error
    reason: Optional[str] = None
    lock_id: int
    category_type: CategoryType
    expires_at: Optional[str] = None
    requirements: List[RequirementResultResponse] = []


class CategoryStateResponse(BaseModel):
    type: CategoryType
    status: str
    verified_at: Optional[str] = None
    expires_at: Optional[str] = None


class LockStatusResponse(BaseModel):
    lock_id: int
    name: Optional[str] = None
    fulfilled: bool
    fulfillment: Optional[FulfillmentMode] = None
    expires_at: Optional[str] = None
    categories: List[CategoryStateResponse] = []
    unmet: List[str] = []


class AccessStatusResponse(BaseModel):
    resource_id: str
    access_granted: bool
    verified_count: int
    required_count: int
    fulfillment_mode: FulfillmentMode
    expires_at: Optional[str] = None
    next_expiry_at: Optional[str] = None
    locks: List[LockStatusResponse] = []
    unmet: List[str] = []
