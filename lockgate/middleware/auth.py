"""
Authentication dependencies

The token is read from the Authorization bearer header, falling back to the
access_token cookie.
"""

from fastapi import Request, HTTPException
from jose import JWTError
from typing import Optional

from lockgate.models.api.user import UserPublic
from .jwt_session import decode_access_token


def _token_from_request(request: Request) -> Optional[str]:
    header = request.headers.get("authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return request.cookies.get("access_token")


async def get_current_user_optional(request: Request) -> Optional[UserPublic]:
    """
    Get current user from JWT token (optional - doesn't raise if not authenticated)

    Returns:
        UserPublic if authenticated, None otherwise
    """
    token = _token_from_request(request)

    if not token:
        return None

    try:
        payload = decode_access_token(token)
    except JWTError:
        return None

    user_id = payload.get("sub")
    community_id = payload.get("cid")
    if not user_id or not community_id:
        return None

    return UserPublic(
        user_id=str(user_id),
        community_id=str(community_id),
        is_admin=bool(payload.get("adm", False)),
        name=payload.get("name"),
    )


async def get_current_user(request: Request) -> UserPublic:
    """
    Get current user (required - raises 401 if not authenticated)

    Raises:
        HTTPException 401 if not authenticated
    """
    user = await get_current_user_optional(request)

    if not user:
        raise HTTPException(status_code=401, detail="Not authenticated")

    return user
