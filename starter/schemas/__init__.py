"""
Pydantic schemas for API responses and requests
"""

from starter.models.user import UserBase  # Re-export from models
from starter.schemas.auth import (
    AuthResponse,
    LoginRequest,
    MeResponse,
    MessageResponse,
    RegisterRequest,
    TokenPairResponse,
)
from starter.schemas.base import CamelModel, UTCDatetime, UTCDatetimeOptional
from starter.schemas.user import UserResponse

__all__ = [
    "AuthResponse",
    "CamelModel",
    "LoginRequest",
    "MeResponse",
    "MessageResponse",
    "RegisterRequest",
    "TokenPairResponse",
    "UTCDatetime",
    "UTCDatetimeOptional",
    "UserBase",
    "UserResponse",
]
