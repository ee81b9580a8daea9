"""
Authentication API endpoints.

This module provides endpoints for:
- Registration and login (JWT access token + opaque refresh token)
- Token refresh (with rotation)
- Logout (revoke one refresh token) and logout from all devices
- Password change, forgot/reset password and email verification
- Google/GitHub OAuth login
"""

import secrets
from datetime import timedelta
from typing import Annotated
from urllib.parse import urlencode

import redis.asyncio as redis
from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import RedirectResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from starter.config import AuthProvider, settings
from starter.core.auth import (
    AdminUser,
    CurrentUser,
    OptionalCurrentUser,
    get_client_ip,
    get_user_agent,
)
from starter.core.database import get_db
from starter.core.errors import AuthenticationError, DuplicateError, NotFoundError, ValidationError
from starter.core.logging import bind_context, get_logger
from starter.core.redis import get_redis
from starter.core.security import get_password_hash, hash_token, verify_oauth_state, verify_password
from starter.models.user import Users
from starter.schemas.auth import (
    AuthResponse,
    EmailRequest,
    LoginRequest,
    LogoutRequest,
    MeResponse,
    MessageResponse,
    PasswordChangeRequest,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    RevokedResponse,
    SessionStatusResponse,
    TokenPairResponse,
    VerifyEmailRequest,
)
from starter.schemas.user import UserResponse
from starter.services import oauth
from starter.services.rate_limit import check_auth_rate_limit
from starter.services.tokens import (
    ClientInfo,
    OAuthAuth,
    PasswordAuth,
    issue_session,
    revoke_all_user_tokens,
    revoke_refresh_token,
    rotate_refresh_token,
)
from starter.tasks.queue import enqueue_job
from starter.utils.clock import utc_now

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])

RedisClient = Annotated[redis.Redis, Depends(get_redis)]  # type: ignore[type-arg]
DbSession = Annotated[AsyncSession, Depends(get_db)]

FORGOT_PASSWORD_MESSAGE = "If an account exists for that email, a password reset link has been sent."
RESEND_VERIFICATION_MESSAGE = (
    "If an unverified account exists for that email, a verification link has been sent."
)


def _client_info(request: Request) -> ClientInfo:
    return ClientInfo(ip_address=get_client_ip(request), user_agent=get_user_agent(request))


def _new_email_token() -> tuple[str, str]:
    """Return (raw token for the email link, sha256 to store)."""
    raw_token = secrets.token_urlsafe(32)
    return raw_token, hash_token(raw_token)


async def _get_user_by_email(db: AsyncSession, email: str) -> Users | None:
    result = await db.execute(select(Users).where(Users.email == email.lower()))  # type: ignore[arg-type]
    return result.scalar_one_or_none()


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    payload: RegisterRequest,
    request: Request,
    db: DbSession,
    redis_client: RedisClient,
) -> AuthResponse:
    """
    Create an email/password account and sign it in.

    Flow:
    1. Rate limit by client IP
    2. Reject a taken email or username (409)
    3. Store the bcrypt hash and a hashed email verification token
    4. Issue the first token pair
    5. Queue the verification email when ENABLE_EMAIL_VERIFICATION is on
    """
    await check_auth_rate_limit("register", get_client_ip(request), redis_client)

    email = payload.email.lower()
    if await _get_user_by_email(db, email) is not None:
        raise DuplicateError("User with this email already exists")

    if payload.username:
        taken = await db.execute(select(Users.id).where(Users.username == payload.username))  # type: ignore[arg-type]
        if taken.first() is not None:
            raise DuplicateError("Username is already taken")

    raw_verification_token, verification_token_hash = _new_email_token()
    user = Users(
        email=email,
        username=payload.username,
        first_name=payload.first_name,
        last_name=payload.last_name,
        password_hash=get_password_hash(payload.password),
        provider=AuthProvider.EMAIL,
        email_verification_token=verification_token_hash,
    )
    db.add(user)
    await db.flush()

    tokens = await issue_session(db, user, PasswordAuth(), _client_info(request))
    logger.info("user_registered", user_id=user.id)

    if settings.ENABLE_EMAIL_VERIFICATION:
        await enqueue_job(
            "send_verification_email_job", user_id=user.id, token=raw_verification_token
        )

    return AuthResponse(
        user=UserResponse.model_validate(user),
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
    )


@router.post("/login", response_model=AuthResponse)
async def login(
    credentials: LoginRequest,
    request: Request,
    db: DbSession,
    redis_client: RedisClient,
) -> AuthResponse:
    """
    Authenticate with email and password.

    Unknown email, OAuth-only account and wrong password all produce the same
    401 so the response does not reveal which accounts exist. rememberMe
    selects the long refresh token lifetime.
    """
    await check_auth_rate_limit("login", get_client_ip(request), redis_client)

    user = await _get_user_by_email(db, credentials.email)
    if user is None or not verify_password(credentials.password, user.password_hash):
        logger.warning("login_failed", ip_address=get_client_ip(request))
        raise AuthenticationError("Invalid email or password")

    tokens = await issue_session(
        db, user, PasswordAuth(remember_me=credentials.remember_me), _client_info(request)
    )

    return AuthResponse(
        user=UserResponse.model_validate(user),
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
    )


@router.post("/refresh", response_model=TokenPairResponse)
async def refresh(
    payload: RefreshRequest,
    request: Request,
    db: DbSession,
    redis_client: RedisClient,
) -> TokenPairResponse:
    """
    Exchange a refresh token for a new access/refresh pair.

    The presented token is revoked; presenting it again fails with 401.
    """
    await check_auth_rate_limit("refresh", get_client_ip(request), redis_client)

    tokens = await rotate_refresh_token(db, payload.refresh_token, _client_info(request))
    return TokenPairResponse(access_token=tokens.access_token, refresh_token=tokens.refresh_token)


@router.post("/logout")
async def logout(
    payload: LogoutRequest,
    current_user: CurrentUser,
    db: DbSession,
) -> dict[str, object]:
    """
    Revoke the given refresh token.

    Unknown or already revoked tokens are ignored. The access token stays
    valid until it expires.
    """
    if payload.refresh_token:
        revoked = await revoke_refresh_token(db, payload.refresh_token)
        await db.commit()
        logger.info("user_logged_out", user_id=current_user.id, revoked=revoked)
    return {}


@router.post("/logout-all", response_model=RevokedResponse)
async def logout_all_devices(current_user: CurrentUser, db: DbSession) -> RevokedResponse:
    """Logout from every device by revoking all of the user's refresh tokens."""
    revoked = await revoke_all_user_tokens(db, current_user.id)
    await db.commit()
    return RevokedResponse(revoked=revoked)


@router.get("/me", response_model=MeResponse)
async def get_current_user_info(current_user: CurrentUser) -> MeResponse:
    """Get current authenticated user information."""
    return MeResponse(user=UserResponse.model_validate(current_user))


@router.get("/session", response_model=SessionStatusResponse)
async def get_session_status(current_user: OptionalCurrentUser) -> SessionStatusResponse:
    """Report whether the request carries a valid access token. Never fails."""
    if current_user is None:
        return SessionStatusResponse(authenticated=False)
    return SessionStatusResponse(
        authenticated=True, user=UserResponse.model_validate(current_user)
    )


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    request_data: PasswordChangeRequest,
    current_user: CurrentUser,
    db: DbSession,
) -> MessageResponse:
    """
    Change user password and revoke all sessions (force re-login).

    Security flow:
    1. Verify current password
    2. Hash and store new password
    3. Revoke all refresh tokens (logout from all devices)
    """
    if not verify_password(request_data.current_password, current_user.password_hash):
        raise AuthenticationError("Current password is incorrect")

    current_user.password_hash = get_password_hash(request_data.new_password)
    current_user.updated_at = utc_now()
    await revoke_all_user_tokens(db, current_user.id)
    await db.commit()

    logger.info("password_changed", user_id=current_user.id)
    return MessageResponse(
        message="Password changed successfully. Please login again with your new password."
    )


@router.post("/verify-email", response_model=MessageResponse)
async def verify_email(payload: VerifyEmailRequest, db: DbSession) -> MessageResponse:
    """Verify user email with token from verification link."""
    result = await db.execute(
        select(Users).where(Users.email_verification_token == hash_token(payload.token))  # type: ignore[arg-type]
    )
    user = result.scalar_one_or_none()

    if user is None:
        raise ValidationError("Invalid verification token")

    user.email_verified = True
    user.email_verification_token = None
    user.updated_at = utc_now()
    await db.commit()

    logger.info("email_verified", user_id=user.id)
    return MessageResponse(message="Email verified successfully!")


@router.post("/resend-verification", response_model=MessageResponse)
async def resend_verification(
    payload: EmailRequest,
    request: Request,
    db: DbSession,
    redis_client: RedisClient,
) -> MessageResponse:
    """
    Send a new verification link.

    Always answers with the same message, whether or not the email belongs
    to an unverified account.
    """
    await check_auth_rate_limit("resend_verification", get_client_ip(request), redis_client)

    user = await _get_user_by_email(db, payload.email)
    if user is not None and not user.email_verified:
        raw_token, token_hash = _new_email_token()
        user.email_verification_token = token_hash
        await db.commit()
        await enqueue_job("send_verification_email_job", user_id=user.id, token=raw_token)
        logger.info("verification_email_queued", user_id=user.id)

    return MessageResponse(message=RESEND_VERIFICATION_MESSAGE)


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    payload: EmailRequest,
    request: Request,
    db: DbSession,
    redis_client: RedisClient,
) -> MessageResponse:
    """
    Start a password reset.

    Always returns success to prevent email enumeration. OAuth-only accounts
    get no email because they have no password to reset.
    """
    await check_auth_rate_limit("forgot_password", get_client_ip(request), redis_client)

    user = await _get_user_by_email(db, payload.email)
    if user is not None and user.password_hash:
        raw_token, token_hash = _new_email_token()
        user.password_reset_token = token_hash
        user.password_reset_expires_at = utc_now() + timedelta(
            minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES
        )
        await db.commit()
        await enqueue_job("send_password_reset_email_job", user_id=user.id, token=raw_token)
        logger.info("password_reset_requested", user_id=user.id)

    return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    payload: ResetPasswordRequest,
    request: Request,
    db: DbSession,
    redis_client: RedisClient,
) -> MessageResponse:
    """
    Finish a password reset with the emailed token.

    The token is single-use, and every refresh token of the account is
    revoked so other devices must sign in again.
    """
    await check_auth_rate_limit("reset_password", get_client_ip(request), redis_client)

    result = await db.execute(
        select(Users).where(Users.password_reset_token == hash_token(payload.token))  # type: ignore[arg-type]
    )
    user = result.scalar_one_or_none()

    # Null check first: a token without an expiry is not valid
    if (
        user is None
        or user.password_reset_expires_at is None
        or user.password_reset_expires_at < utc_now()
    ):
        raise ValidationError("Invalid or expired reset token")

    user.password_hash = get_password_hash(payload.password)
    user.password_reset_token = None
    user.password_reset_expires_at = None
    user.updated_at = utc_now()
    revoked = await revoke_all_user_tokens(db, user.id)
    await db.commit()

    logger.info("password_reset_completed", user_id=user.id, sessions_revoked=revoked)
    return MessageResponse(message="Password has been reset. Please login with your new password.")


@router.post("/admin/users/{user_id}/revoke-sessions", response_model=RevokedResponse)
async def admin_revoke_user_sessions(
    user_id: str,
    admin: AdminUser,
    db: DbSession,
) -> RevokedResponse:
    """Force a user to sign in again everywhere (admin only)."""
    if await db.get(Users, user_id) is None:
        raise NotFoundError("User not found")

    revoked = await revoke_all_user_tokens(db, user_id)
    await db.commit()

    logger.info("admin_revoked_sessions", admin_id=admin.id, target_user_id=user_id, count=revoked)
    return RevokedResponse(revoked=revoked)


@router.get("/{provider}", response_class=RedirectResponse)
async def oauth_login(provider: str) -> RedirectResponse:
    """Redirect to the provider's consent screen. 404 when the provider is not configured."""
    return RedirectResponse(
        oauth.build_authorization_url(provider),
        status_code=status.HTTP_307_TEMPORARY_REDIRECT,
    )


@router.get("/{provider}/callback", response_class=RedirectResponse)
async def oauth_callback(
    provider: str,
    request: Request,
    db: DbSession,
    code: Annotated[str | None, Query()] = None,
    state: Annotated[str | None, Query()] = None,
) -> RedirectResponse:
    """
    Complete an OAuth login and hand the token pair to the web client.

    Redirects to CLIENT_URL/auth/callback?token=...&refresh=...
    """
    oauth.require_enabled_provider(provider)
    bind_context(provider=provider)

    if not code or not state or not verify_oauth_state(state, provider):
        logger.warning("oauth_callback_rejected", provider=provider, has_code=bool(code))
        raise AuthenticationError("Authentication failed")

    identity = await oauth.exchange_code(provider, code)
    user = await oauth.find_or_create_oauth_user(db, identity)
    tokens = await issue_session(db, user, OAuthAuth(provider=provider), _client_info(request))

    query = urlencode({"token": tokens.access_token, "refresh": tokens.refresh_token})
    return RedirectResponse(
        f"{settings.CLIENT_URL}/auth/callback?{query}",
        status_code=status.HTTP_307_TEMPORARY_REDIRECT,
    )
