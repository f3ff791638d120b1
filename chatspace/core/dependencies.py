"""FastAPI dependencies for database sessions and authentication."""

from typing import Annotated, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from chatspace.core.config import get_settings
from chatspace.db.session import get_db
from chatspace.models.user import User
from chatspace.services.auth_service import AuthService, TokenError

settings = get_settings()
bearer_scheme = HTTPBearer(auto_error=False)

DbSession = Annotated[AsyncSession, Depends(get_db)]


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    db: DbSession,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> User:
    """
    Resolve the caller from the `Authorization: Bearer` header.

    Raises:
        HTTPException 401: missing header, expired or malformed token, unknown user
    """
    if credentials is None or not credentials.credentials:
        raise _unauthorized("Not authorized, no token")

    try:
        user_id = AuthService.verify_access_token(credentials.credentials)
    except TokenError as e:
        raise _unauthorized(str(e))

    user = await AuthService.get_user_by_id(db, user_id)
    if user is None:
        raise _unauthorized("User not found")

    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


async def require_admin(current_user: CurrentUser) -> User:
    """
    Require the caller to be the configured admin.

    Raises:
        HTTPException 403: caller is not ADMIN_ID (or no admin is configured)
    """
    if not settings.admin_id or current_user.id != settings.admin_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return current_user


AdminUser = Annotated[User, Depends(require_admin)]
