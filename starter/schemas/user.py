"""
Pydantic schemas for User responses
"""

from starter.schemas.base import CamelModel, UTCDatetime, UTCDatetimeOptional


class UserResponse(CamelModel):
    """
    Public view of a user; built with UserResponse.model_validate(user).

    Mirrors the public columns of starter.models.user.UserBase plus the
    identity fields clients need (id, role, provider, verification state).
    """

    id: str
    email: str
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    avatar: str | None = None
    role: str
    provider: str
    email_verified: bool
    last_login_at: UTCDatetimeOptional = None
    created_at: UTCDatetime
