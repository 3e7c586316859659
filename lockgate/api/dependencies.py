"""
Shared router dependencies and error mapping
"""
from fastapi import HTTPException, Request, status

from lockgate.services.errors import (
    ExpiredChallenge,
    ExternalServiceUnavailable,
    InvalidSignature,
    LockConflict,
    LockNotFound,
    MalformedRequirementConfig,
    ResourceNotGated,
    UnauthorizedLockUse,
    UnknownOrReusedNonce,
    VerificationError,
)

STATUS_CODES = {
    ExpiredChallenge: status.HTTP_409_CONFLICT,
    UnknownOrReusedNonce: status.HTTP_409_CONFLICT,
    InvalidSignature: status.HTTP_401_UNAUTHORIZED,
    ExternalServiceUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
    MalformedRequirementConfig: status.HTTP_422_UNPROCESSABLE_ENTITY,
    UnauthorizedLockUse: status.HTTP_403_FORBIDDEN,
    LockNotFound: status.HTTP_404_NOT_FOUND,
    ResourceNotGated: status.HTTP_404_NOT_FOUND,
    LockConflict: status.HTTP_409_CONFLICT,
}


def http_error(error: VerificationError) -> HTTPException:
    """HTTPException carrying the error code and its user-facing message"""
    detail = {"code": error.code, "message": error.message}
    if isinstance(error, MalformedRequirementConfig):
        detail["errors"] = error.errors
    return HTTPException(
        status_code=STATUS_CODES.get(type(error), status.HTTP_400_BAD_REQUEST),
        detail=detail,
    )


def get_lock_service(request: Request):
    return request.app.state.services.lock_service


def get_verification_service(request: Request):
    return request.app.state.services.verification
