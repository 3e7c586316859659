"""
Verification API router

Challenge → signed submission → access status.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse

from lockgate.middleware.auth import get_current_user
from lockgate.models.api.user import UserPublic
from lockgate.models.api.verification import (
    AccessStatusResponse,
    ChallengeRequest,
    ChallengeResponse,
    SubmitRequest,
    SubmitResponse,
)
from lockgate.services.errors import (
    ExternalServiceUnavailable,
    RequirementUnsatisfied,
    VerificationError,
)
from lockgate.utils import isoformat_z

from .dependencies import get_verification_service, http_error

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/verification", tags=["verification"])


@router.post("/challenge", response_model=ChallengeResponse)
async def issue_challenge(
    body: ChallengeRequest,
    current_user: UserPublic = Depends(get_current_user),
    service=Depends(get_verification_service),
):
    """Issue a single-use challenge for the claimed profile to sign"""
    try:
        challenge = await service.issue_challenge(body.resource_id, body.claimed_identity, body.category_type)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return ChallengeResponse(
        nonce=challenge.nonce,
        signing_message=challenge.signing_message,
        resource_id=challenge.resource_id,
        chain_id=challenge.chain_id,
        expires_at=isoformat_z(challenge.expires_at),
    )


@router.post("/submit", response_model=SubmitResponse)
async def submit_verification(
    body: SubmitRequest,
    current_user: UserPublic = Depends(get_current_user),
    service=Depends(get_verification_service),
):
    """
    Submit a signed challenge for one category of one lock

    Unmet requirements are a normal answer (200, status=unsatisfied); a
    failed external lookup is 503 with status=error so the client retries
    with a fresh challenge.
    """
    try:
        result = await service.submit(
            user_id=current_user.user_id,
            nonce=body.nonce,
            claimed_identity=body.claimed_identity,
            lock_id=body.lock_id,
            category_type=body.category_type,
            signature=body.signature,
            proof_payload=body.proof_payload,
        )
    except RequirementUnsatisfied as e:
        return SubmitResponse(
            status="unsatisfied",
            reason=e.message,
            lock_id=body.lock_id,
            category_type=body.category_type,
            requirements=[r.to_dict() for r in e.results],
        )
    except ExternalServiceUnavailable as e:
        response = SubmitResponse(
            status="error",
            reason=e.message,
            lock_id=body.lock_id,
            category_type=body.category_type,
            requirements=[r.to_dict() for r in e.results],
        )
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=response.model_dump(mode="json"))
    except VerificationError as e:
        logger.info(f"Verification rejected for user {current_user.user_id}: {e.code}")
        raise http_error(e)

    return SubmitResponse(**result.to_dict())


@router.get("/status", response_model=AccessStatusResponse)
async def access_status(
    resource_id: str = Query(..., description="post:<id> or board:<id>"),
    current_user: UserPublic = Depends(get_current_user),
    service=Depends(get_verification_service),
):
    """Current access decision for the authenticated user"""
    try:
        decision = await service.access_status(current_user.user_id, resource_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return AccessStatusResponse(resource_id=resource_id, **decision.to_dict())
