"""
Client-side session state and its persistence.

A Session is owned by exactly one ApiClient and passed in explicitly; there
is no process-wide session. Stores persist only the tokens and the cached
user, never the transient state.
"""

import json
import os
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any, Protocol

import structlog

logger = structlog.get_logger(__name__)


class SessionState(StrEnum):
    ANONYMOUS = "anonymous"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"


@dataclass
class Session:
    """Tokens and cached user of the signed-in account, if any."""

    access_token: str | None = None
    refresh_token: str | None = None
    user: dict[str, Any] | None = None
    state: SessionState = SessionState.ANONYMOUS
    # Bumped whenever the tokens are replaced or cleared
    generation: int = field(default=0, compare=False)

    @property
    def authenticated(self) -> bool:
        return bool(self.access_token and self.refresh_token)

    def set_tokens(
        self, access_token: str, refresh_token: str, user: dict[str, Any] | None = None
    ) -> None:
        self.access_token = access_token
        self.refresh_token = refresh_token
        if user is not None:
            self.user = user
        self.state = SessionState.AUTHENTICATED
        self.generation += 1

    def clear(self) -> None:
        self.access_token = None
        self.refresh_token = None
        self.user = None
        self.state = SessionState.ANONYMOUS
        self.generation += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
            "user": self.user,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Session":
        session = cls(
            access_token=data.get("accessToken"),
            refresh_token=data.get("refreshToken"),
            user=data.get("user"),
        )
        if session.authenticated:
            session.state = SessionState.AUTHENTICATED
        else:
            session.clear()
        return session


class SessionStore(Protocol):
    """Where a Session survives restarts."""

    def load(self) -> Session: ...

    def save(self, session: Session) -> None: ...


class MemorySessionStore:
    """Keeps the persisted form in memory. Useful for tests and short-lived scripts."""

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self.data = dict(data) if data else None

    def load(self) -> Session:
        if not self.data:
            return Session()
        return Session.from_dict(self.data)

    def save(self, session: Session) -> None:
        self.data = session.to_dict()


class FileSessionStore:
    """
    Persists the session as JSON at ``path``.

    A missing or unreadable file loads as an anonymous session. Writes go to
    a temporary file first and are moved into place, so a crash never leaves
    half a file behind.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)

    def load(self) -> Session:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return Session()
        except (OSError, ValueError) as e:
            logger.warning("session_file_unreadable", path=str(self.path), error=str(e))
            return Session()

        if not isinstance(data, dict):
            logger.warning("session_file_invalid", path=str(self.path))
            return Session()
        return Session.from_dict(data)

    def save(self, session: Session) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(session.to_dict()), encoding="utf-8")
        # Tokens are credentials
        os.chmod(tmp_path, 0o600)
        tmp_path.replace(self.path)
