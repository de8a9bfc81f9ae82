"""
Bearer token handling.

Accounts and logins live in the identity provider; this service verifies
its HS256 access tokens and can mint the same tokens for tests and scripts.
"""
from datetime import UTC, datetime, timedelta
from typing import Optional, Union
from uuid import UUID

from jose import JWTError, jwt

from app.core.config import settings

ACCESS_TOKEN_TYPE = "access"
DEFAULT_ACCESS_TOKEN_TTL = timedelta(minutes=30)


def create_access_token(
    subject: Union[str, UUID],
    *,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Mint an access token whose ``sub`` is the user id."""
    payload = {
        "sub": str(subject),
        "type": ACCESS_TOKEN_TYPE,
        "exp": datetime.now(UTC) + (expires_delta or DEFAULT_ACCESS_TOKEN_TTL),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def read_access_token(token: str) -> Optional[UUID]:
    """
    User id carried by a valid access token.

    Returns None for a bad signature, an expired token, another token type
    or a ``sub`` that is not a UUID.
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None

    if payload.get("type", ACCESS_TOKEN_TYPE) != ACCESS_TOKEN_TYPE:
        return None
    try:
        return UUID(str(payload["sub"]))
    except (KeyError, TypeError, ValueError):
        return None
