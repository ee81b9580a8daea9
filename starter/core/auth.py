"""
Authentication dependencies for FastAPI route protection.

This module provides dependency functions for:
- Extracting and verifying JWT access tokens from the Authorization header
- Loading the current user from the database
- Role-gated and optional-auth variants
"""

from collections.abc import Awaitable, Callable
from typing import Annotated

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from starter.config import UserRole
from starter.core.database import get_db
from starter.core.errors import AuthenticationError, AuthorizationError
from starter.core.logging import get_logger, set_user_context
from starter.core.security import decode_access_token, verify_access_token
from starter.models.user import Users

logger = get_logger(__name__)

# auto_error=False so a missing header reaches our own error envelope
bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> str:
    """
    Extract and verify the bearer access token.

    Expired and malformed tokens are both rejected with 401; details.reason
    tells clients which one it was so they can decide whether to refresh.

    Returns:
        User ID from the token's "sub" claim

    Raises:
        AuthenticationError: 401 if the token is missing, invalid, or expired
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Access token required")

    try:
        payload = decode_access_token(credentials.credentials)
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired", details={"reason": "expired"}) from None
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token", details={"reason": "invalid"}) from None

    return str(payload["sub"])


async def get_current_user(
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Users:
    """
    Load current user from database using verified token.

    A valid token for a deleted account is rejected.

    Raises:
        AuthenticationError: 401 if user not found
    """
    user = await db.get(Users, user_id)

    if user is None:
        raise AuthenticationError("User not found")

    set_user_context(user.id)
    return user


async def get_optional_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Users | None:
    """
    Get current user if authenticated, otherwise return None.

    Never fails: a missing, invalid or expired token, a deleted account, or a
    failed user lookup all result in an anonymous request.
    """
    if credentials is None:
        return None

    user_id = verify_access_token(credentials.credentials)
    if user_id is None:
        return None

    try:
        user = await db.get(Users, user_id)
    except SQLAlchemyError as e:
        logger.warning("optional_auth_lookup_failed", user_id=user_id, error=str(e))
        return None

    if user is not None:
        set_user_context(user.id)
    return user


def require_roles(*roles: str) -> Callable[[Users], Awaitable[Users]]:
    """
    Build a dependency that admits only users holding one of ``roles``.

    Usage:
        @router.get("/reports", dependencies=[Depends(require_roles(UserRole.ADMIN))])
    """
    allowed = frozenset(roles)

    async def check_role(current_user: Annotated[Users, Depends(get_current_user)]) -> Users:
        if current_user.role not in allowed:
            raise AuthorizationError("Insufficient permissions")
        return current_user

    return check_role


def get_client_ip(request: Request) -> str:
    """
    Extract client IP address from request.

    Checks X-Forwarded-For header first (for proxies/load balancers),
    falls back to direct client IP.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # X-Forwarded-For can contain multiple IPs, take the first (client)
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def get_user_agent(request: Request) -> str:
    """Extract User-Agent header from request."""
    return request.headers.get("User-Agent", "unknown")


# Type aliases for dependency injection
CurrentUser = Annotated[Users, Depends(get_current_user)]
OptionalCurrentUser = Annotated[Users | None, Depends(get_optional_current_user)]
AdminUser = Annotated[Users, Depends(require_roles(UserRole.ADMIN))]
