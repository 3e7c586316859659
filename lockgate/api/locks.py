"""
Locks API router

Lock registry CRUD and attaching locks to posts/boards.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from lockgate.config import get_settings
from lockgate.middleware.auth import get_current_user
from lockgate.models.api.lock import (
    GatingApplyRequest,
    GatingResponse,
    LockCreateRequest,
    LockListResponse,
    LockResponse,
    LockUpdateRequest,
)
from lockgate.models.api.user import UserPublic
from lockgate.models.domain import ResourceRef
from lockgate.services.errors import VerificationError

from .dependencies import get_lock_service, http_error

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/locks", tags=["locks"])


@router.get("", response_model=LockListResponse)
async def list_locks(
    creator_user_id: Optional[str] = None,
    is_public: Optional[bool] = None,
    is_template: Optional[bool] = None,
    tag: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1),
    current_user: UserPublic = Depends(get_current_user),
    service=Depends(get_lock_service),
):
    """List locks the user can use; limit is capped at 100"""
    result = await service.list_locks(
        current_user,
        creator_user_id=creator_user_id,
        is_public=is_public,
        is_template=is_template,
        tag=tag,
        search=search,
        page=page,
        limit=limit,
    )
    return LockListResponse(
        locks=[LockResponse.from_domain(lock) for lock in result["locks"]],
        total=result["total"],
        page=result["page"],
        limit=result["limit"],
        has_more=result["has_more"],
    )


@router.post("", response_model=LockResponse, status_code=status.HTTP_201_CREATED)
async def create_lock(
    body: LockCreateRequest,
    current_user: UserPublic = Depends(get_current_user),
    service=Depends(get_lock_service),
):
    try:
        lock = await service.create_lock(current_user, body.to_domain())
    except VerificationError as e:
        raise http_error(e)
    return LockResponse.from_domain(lock)


@router.put("/gating", response_model=GatingResponse)
async def apply_gating(
    body: GatingApplyRequest,
    current_user: UserPublic = Depends(get_current_user),
    service=Depends(get_lock_service),
):
    """Attach locks to a post or board (an empty list removes gating)"""
    try:
        resource = ResourceRef.parse(body.resource_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    hours = body.verification_duration_hours or get_settings().default_verification_hours(resource.kind)
    try:
        gating = await service.apply_gating(current_user, resource, body.lock_ids, body.fulfillment, hours)
    except VerificationError as e:
        raise http_error(e)

    return GatingResponse(resource_id=str(resource), **gating.to_dict())


@router.get("/{lock_id}", response_model=LockResponse)
async def get_lock(
    lock_id: int,
    current_user: UserPublic = Depends(get_current_user),
    service=Depends(get_lock_service),
):
    try:
        lock = await service.get_lock(current_user, lock_id)
    except VerificationError as e:
        raise http_error(e)
    return LockResponse.from_domain(lock)


@router.put("/{lock_id}", response_model=LockResponse)
async def update_lock(
    lock_id: int,
    body: LockUpdateRequest,
    current_user: UserPublic = Depends(get_current_user),
    service=Depends(get_lock_service),
):
    try:
        lock = await service.update_lock(current_user, lock_id, body.to_changes())
    except VerificationError as e:
        raise http_error(e)
    return LockResponse.from_domain(lock)


@router.delete("/{lock_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_lock(
    lock_id: int,
    current_user: UserPublic = Depends(get_current_user),
    service=Depends(get_lock_service),
):
    try:
        await service.delete_lock(current_user, lock_id)
    except VerificationError as e:
        raise http_error(e)
