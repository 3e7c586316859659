"""
JWT session management

Tokens are issued by the community platform; this service only reads them.
create_access_token exists for local tools and tests.

Claims:
- sub:  user id
- cid:  community id
- adm:  community admin flag
- name: display name (optional)
"""
from datetime import datetime, timedelta, timezone
from jose import jwt
from lockgate.config import get_settings

settings = get_settings()


def create_access_token(user) -> str:
    """
    Create JWT access token for user

    Args:
        user: UserPublic (user_id, community_id, is_admin, name)

    Returns:
        JWT token string
    """
    now = datetime.now(timezone.utc)
    expire = now + timedelta(minutes=settings.jwt_expire_minutes)

    payload = {
        "sub": str(user.user_id),
        "cid": user.community_id,
        "adm": bool(user.is_admin),
        "name": user.name,
        "exp": expire,
        "iat": now
    }

    token = jwt.encode(
        payload,
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm
    )

    return token


def decode_access_token(token: str) -> dict:
    """
    Decode and validate JWT token

    Returns:
        Decoded payload dict

    Raises:
        jose.JWTError if token invalid/expired
    """
    payload = jwt.decode(
        token,
        settings.jwt_secret_key,
        algorithms=[settings.jwt_algorithm]
    )

    return payload
