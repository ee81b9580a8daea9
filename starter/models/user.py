"""
SQLModel-based User models with inheritance for security

UserBase (shared public fields)
    └─> Users (database table, adds credentials and internal fields)

Public API shapes live in starter/schemas/user.py and are built from Users
with model_validate, so sensitive columns never leak into responses.
"""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, Index
from sqlmodel import Field, SQLModel

from starter.config import AuthProvider, UserRole
from starter.utils.clock import utc_now


def new_user_id() -> str:
    """Opaque user identifier."""
    return uuid.uuid4().hex


class UserBase(SQLModel):
    """
    Base model with shared public fields for Users.

    These fields are safe to expose via the API.
    """

    email: str = Field(max_length=255)
    username: str | None = Field(default=None, max_length=30)
    first_name: str | None = Field(default=None, max_length=50)
    last_name: str | None = Field(default=None, max_length=50)
    avatar: str | None = Field(default=None, max_length=500)


class Users(UserBase, table=True):
    """
    Database table for users with credentials and internal fields.

    Internal/sensitive fields (should NOT be exposed via public API):
    - password_hash: bcrypt hash, NULL for OAuth-only accounts
    - email_verification_token, password_reset_token: sha256 of the emailed value
    - provider_id: the account id at the OAuth provider
    """

    __tablename__ = "users"

    __table_args__ = (
        Index("idx_users_email", "email", unique=True),
        Index("idx_users_username", "username", unique=True),
        Index("idx_users_provider", "provider", "provider_id"),
    )

    # Primary key
    id: str = Field(default_factory=new_user_id, primary_key=True, max_length=32)

    # Access control
    role: str = Field(default=UserRole.USER, max_length=20)

    # Authentication (highly sensitive - never expose)
    password_hash: str | None = Field(default=None, max_length=255)
    provider: str = Field(default=AuthProvider.EMAIL, max_length=20)
    provider_id: str | None = Field(default=None, max_length=255)

    # Email verification
    email_verified: bool = Field(default=False)
    email_verification_token: str | None = Field(default=None, max_length=64)

    # Password reset
    password_reset_token: str | None = Field(default=None, max_length=64)
    password_reset_expires_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime, nullable=True)
    )

    # Timestamps (naive UTC, see utc_now)
    last_login_at: datetime | None = Field(default=None, sa_column=Column(DateTime, nullable=True))
    created_at: datetime = Field(
        default_factory=utc_now, sa_column=Column(DateTime, nullable=False)
    )
    updated_at: datetime = Field(
        default_factory=utc_now, sa_column=Column(DateTime, nullable=False)
    )
