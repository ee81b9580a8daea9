"""
Authentication schemas for request/response validation.

This module defines Pydantic models for authentication-related API operations:
- Registration and login credentials
- Token pair responses
- Refresh / logout payloads
- Password and email-verification flows
"""

from pydantic import EmailStr, Field, field_validator

from starter.core.security import validate_password_strength
from starter.schemas.base import CamelModel
from starter.schemas.user import UserResponse


def _check_password_strength(v: str) -> str:
    is_valid, error_message = validate_password_strength(v)
    if not is_valid:
        raise ValueError(error_message)
    return v


class RegisterRequest(CamelModel):
    """Request schema for user registration."""

    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    username: str | None = Field(
        default=None, min_length=3, max_length=30, pattern=r"^[A-Za-z0-9_]+$"
    )

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        """Validate password strength."""
        return _check_password_strength(v)

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_names(cls, v: str) -> str:
        return v.strip()


class LoginRequest(CamelModel):
    """Request schema for user login."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=255)
    remember_me: bool = False


class RefreshRequest(CamelModel):
    """Request schema for token refresh."""

    refresh_token: str = Field(..., min_length=1)


class LogoutRequest(CamelModel):
    """Request schema for logout; without a token only the client state is cleared."""

    refresh_token: str | None = None


class AuthResponse(CamelModel):
    """Response schema for register/login: the user plus a fresh token pair."""

    user: UserResponse
    access_token: str
    refresh_token: str


class TokenPairResponse(CamelModel):
    """Response schema for a successful refresh."""

    access_token: str
    refresh_token: str


class MeResponse(CamelModel):
    user: UserResponse


class SessionStatusResponse(CamelModel):
    """Response for endpoints usable with or without authentication."""

    authenticated: bool
    user: UserResponse | None = None


class RevokedResponse(CamelModel):
    revoked: int


class PasswordChangeRequest(CamelModel):
    """Request schema for password change."""

    current_password: str = Field(..., min_length=1, max_length=255)
    new_password: str = Field(..., min_length=8, max_length=128)

    @field_validator("new_password")
    @classmethod
    def validate_new_password(cls, v: str) -> str:
        """Validate new password strength."""
        return _check_password_strength(v)


class EmailRequest(CamelModel):
    """Request schema for forgot-password and resend-verification."""

    email: EmailStr


class VerifyEmailRequest(CamelModel):
    token: str = Field(..., min_length=1)


class ResetPasswordRequest(CamelModel):
    """Request schema for password reset with token."""

    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=8, max_length=128)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        """Validate new password strength."""
        return _check_password_strength(v)


class MessageResponse(CamelModel):
    """Generic message response."""

    message: str
