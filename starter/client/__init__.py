"""
Python client for the Starter API.

ApiClient owns one Session and keeps it fresh; see starter.client.api.
"""

from starter.client.api import ApiClient
from starter.client.errors import ApiRequestError, SessionExpiredError
from starter.client.session import (
    FileSessionStore,
    MemorySessionStore,
    Session,
    SessionState,
    SessionStore,
)

__all__ = [
    "ApiClient",
    "ApiRequestError",
    "FileSessionStore",
    "MemorySessionStore",
    "Session",
    "SessionExpiredError",
    "SessionState",
    "SessionStore",
]
