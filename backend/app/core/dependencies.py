"""
Auth dependencies for the billing routes.
"""
from collections.abc import Callable
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.rbac import Permission, UserRole, has_permission, normalize_role
from app.core.security import read_access_token
from app.models.user import User

# auto_error off: a missing header must be a 401, not FastAPI's 403
bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Resolve the bearer token to an active local user.

    Raises:
        HTTPException: 401 for a missing/invalid token or unknown user,
            403 for a disabled account.
    """
    unauthorized = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None or not credentials.credentials:
        raise unauthorized

    user_id = read_access_token(credentials.credentials)
    if user_id is None:
        raise unauthorized

    user = (await db.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
    if user is None:
        raise unauthorized
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User account is disabled")
    return user


def require_permissions(*required: Permission) -> Callable[..., User]:
    """Dependency factory: 403 unless the user's role grants every permission."""

    async def _dependency(current_user: User = Depends(get_current_user)) -> User:
        missing = [p.value for p in required if not has_permission(current_user.role, p)]
        if missing:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions: " + ", ".join(missing),
            )
        return current_user

    return _dependency


def require_roles(*allowed: UserRole) -> Callable[..., User]:
    """Dependency factory: 403 unless the user has one of ``allowed`` roles."""

    async def _dependency(current_user: User = Depends(get_current_user)) -> User:
        if normalize_role(current_user.role) not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient role. Allowed roles: " + ", ".join(r.value for r in allowed),
            )
        return current_user

    return _dependency
