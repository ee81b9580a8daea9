"""
Token issuance, rotation and revocation.

Issuing a session produces a signed access token (stateless, never stored)
and an opaque refresh token whose sha256 is stored in refresh_tokens.

Rotation exchanges a refresh token for a brand-new pair. The presented row
is revoked by a single conditional UPDATE, so when two requests race with
the same value exactly one of them sees "1 row affected" and wins; the other
is rejected exactly like an unknown token.

Helpers that only stage changes (issue_refresh_token, revoke_*) leave the
commit to the caller so they can share a transaction with other writes.
issue_session and rotate_refresh_token are complete operations and commit.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import assert_never

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from starter.config import settings
from starter.core.errors import AuthenticationError
from starter.core.logging import get_logger
from starter.core.security import create_access_token, create_refresh_token, hash_token
from starter.models.refresh_token import RefreshTokens
from starter.models.user import Users
from starter.utils.clock import utc_now

logger = get_logger(__name__)


@dataclass(frozen=True)
class PasswordAuth:
    """Email/password login (or registration). remember_me extends the refresh lifetime."""

    remember_me: bool = False


@dataclass(frozen=True)
class OAuthAuth:
    """Login completed through an OAuth provider callback."""

    provider: str


AuthMethod = PasswordAuth | OAuthAuth


@dataclass(frozen=True)
class IssuedTokens:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class ClientInfo:
    """Where a token request came from, stored for auditing."""

    ip_address: str | None = None
    user_agent: str | None = None


def refresh_token_lifetime(remember_me: bool) -> timedelta:
    """Refresh token lifetime for the given policy."""
    if remember_me:
        return timedelta(days=settings.REFRESH_TOKEN_REMEMBER_ME_DAYS)
    return timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)


def issue_access_token(user: Users) -> str:
    return create_access_token(user.id, user.email, user.role)


async def issue_refresh_token(
    db: AsyncSession,
    user_id: str,
    remember_me: bool,
    client: ClientInfo | None = None,
    parent_token_id: int | None = None,
) -> str:
    """
    Create a refresh token and stage its database row.

    Returns:
        The plaintext token. Only its hash is persisted.
    """
    client = client or ClientInfo()
    token = create_refresh_token()
    db.add(
        RefreshTokens(
            user_id=user_id,
            token_hash=hash_token(token),
            remember_me=remember_me,
            expires_at=utc_now() + refresh_token_lifetime(remember_me),
            ip_address=client.ip_address,
            user_agent=client.user_agent[:255] if client.user_agent else None,
            parent_token_id=parent_token_id,
        )
    )
    await db.flush()
    return token


async def issue_session(
    db: AsyncSession,
    user: Users,
    method: AuthMethod,
    client: ClientInfo | None = None,
) -> IssuedTokens:
    """
    Issue a fresh token pair for a user who just proved who they are.

    This is the single entry point for register, login and OAuth callbacks;
    the auth method only decides the refresh lifetime policy.
    """
    match method:
        case PasswordAuth(remember_me=remember_me):
            method_name = "password"
        case OAuthAuth(provider=provider):
            remember_me = False
            method_name = provider.lower()
        case _:
            assert_never(method)

    refresh_token = await issue_refresh_token(db, user.id, remember_me, client)
    access_token = issue_access_token(user)

    user.last_login_at = utc_now()
    await db.commit()

    logger.info(
        "session_issued",
        user_id=user.id,
        method=method_name,
        remember_me=remember_me,
    )
    return IssuedTokens(access_token=access_token, refresh_token=refresh_token)


async def rotate_refresh_token(
    db: AsyncSession,
    token: str,
    client: ClientInfo | None = None,
) -> IssuedTokens:
    """
    Exchange a valid refresh token for a new access/refresh pair.

    The old row is revoked and a successor with the same remember_me policy
    is created in the same transaction.

    Raises:
        AuthenticationError: token unknown, already revoked, expired, or its
            user no longer exists. The caller cannot tell these apart.
    """
    now = utc_now()
    token_hash = hash_token(token)

    # Conditional revoke: the row count tells us whether we won the token
    result = await db.execute(
        update(RefreshTokens)
        .where(
            RefreshTokens.token_hash == token_hash,  # type: ignore[arg-type]
            RefreshTokens.revoked == False,  # type: ignore[arg-type]  # noqa: E712
            RefreshTokens.expires_at > now,  # type: ignore[arg-type]
        )
        .values(revoked=True, revoked_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:  # type: ignore[attr-defined]
        await db.rollback()
        logger.warning("refresh_token_rejected")
        raise AuthenticationError("Invalid refresh token")

    old_token = (
        await db.execute(select(RefreshTokens).where(RefreshTokens.token_hash == token_hash))  # type: ignore[arg-type]
    ).scalar_one()
    user = await db.get(Users, old_token.user_id)
    if user is None:
        await db.rollback()
        logger.warning("refresh_token_user_missing", user_id=old_token.user_id)
        raise AuthenticationError("Invalid refresh token")

    new_refresh_token = await issue_refresh_token(
        db,
        user.id,
        old_token.remember_me,
        client,
        parent_token_id=old_token.id,
    )
    access_token = issue_access_token(user)
    await db.commit()

    logger.info(
        "refresh_token_rotated",
        user_id=user.id,
        parent_token_id=old_token.id,
        remember_me=old_token.remember_me,
    )
    return IssuedTokens(access_token=access_token, refresh_token=new_refresh_token)


async def revoke_refresh_token(db: AsyncSession, token: str) -> bool:
    """
    Revoke a single refresh token. Idempotent; unknown values are ignored.

    Returns:
        True if an active token was revoked by this call
    """
    result = await db.execute(
        update(RefreshTokens)
        .where(
            RefreshTokens.token_hash == hash_token(token),  # type: ignore[arg-type]
            RefreshTokens.revoked == False,  # type: ignore[arg-type]  # noqa: E712
        )
        .values(revoked=True, revoked_at=utc_now())
        .execution_options(synchronize_session=False)
    )
    return bool(result.rowcount)  # type: ignore[attr-defined]


async def revoke_all_user_tokens(db: AsyncSession, user_id: str) -> int:
    """
    Revoke every active refresh token of a user in one statement.

    Used by logout-all, password change and password reset. Access tokens
    already handed out stay valid until they expire.

    Returns:
        Number of tokens revoked
    """
    result = await db.execute(
        update(RefreshTokens)
        .where(
            RefreshTokens.user_id == user_id,  # type: ignore[arg-type]
            RefreshTokens.revoked == False,  # type: ignore[arg-type]  # noqa: E712
        )
        .values(revoked=True, revoked_at=utc_now())
        .execution_options(synchronize_session=False)
    )
    revoked = int(result.rowcount)  # type: ignore[attr-defined]
    logger.info("refresh_tokens_revoked_all", user_id=user_id, count=revoked)
    return revoked
