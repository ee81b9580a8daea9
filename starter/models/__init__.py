"""
Database models.

Importing this package registers every table on SQLModel.metadata.
"""

from starter.models.refresh_token import RefreshTokens
from starter.models.user import UserBase, Users

__all__ = [
    "RefreshTokens",
    "UserBase",
    "Users",
]
