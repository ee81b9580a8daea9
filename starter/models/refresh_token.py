"""
SQLModel-based RefreshToken model.

Refresh tokens are long-lived, opaque credentials exchanged for a new
access/refresh pair. Every exchange revokes the presented row and inserts a
successor, so one row is never usable twice.

Security features:
- Stores sha256 of the token (never the plaintext value)
- Revocation flag checked atomically during rotation
- remember_me carried across rotations to keep the session's lifetime policy
- parent_token_id links each rotation to the row it replaced
"""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKeyConstraint, Index
from sqlmodel import Field, SQLModel

from starter.utils.clock import utc_now


class RefreshTokens(SQLModel, table=True):
    """
    Database table for refresh tokens.

    A user may hold any number of active rows (one per signed-in device).
    Logout revokes one row; logout-all and password changes revoke them all.
    """

    __tablename__ = "refresh_tokens"

    __table_args__ = (
        ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            ondelete="CASCADE",
            onupdate="CASCADE",
            name="fk_refresh_tokens_user_id",
        ),
        Index("idx_refresh_tokens_user_id", "user_id"),
        Index("idx_refresh_tokens_token_hash", "token_hash", unique=True),
    )

    # Primary key
    id: int | None = Field(default=None, primary_key=True)

    # User reference
    user_id: str = Field(max_length=32)

    # Token (hashed - never store plaintext!)
    token_hash: str = Field(max_length=64)

    # Lifetime policy selected at login, reused by every rotation
    remember_me: bool = Field(default=False)

    # Expiration, naive UTC
    created_at: datetime = Field(
        default_factory=utc_now, sa_column=Column(DateTime, nullable=False)
    )
    expires_at: datetime = Field(sa_column=Column(DateTime, nullable=False))

    # Revocation
    revoked: bool = Field(default=False)
    revoked_at: datetime | None = Field(default=None, sa_column=Column(DateTime, nullable=True))

    # Security tracking
    ip_address: str | None = Field(default=None, max_length=45)  # Supports IPv6
    user_agent: str | None = Field(default=None, max_length=255)

    # Parent token tracking (for rotation chains)
    parent_token_id: int | None = Field(default=None)
