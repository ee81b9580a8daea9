"""Errors raised by the API client."""

from typing import Any


class ApiRequestError(Exception):
    """
    A non-2xx response, decoded from the server's error envelope.

    Attributes mirror the envelope: status is the HTTP status, code is
    error.code (e.g. "AUTHENTICATION_ERROR"), details is error.details.
    """

    def __init__(self, status: int, code: str, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.status = status
        self.code = code
        self.message = message
        self.details = details

    def __repr__(self) -> str:
        return f"ApiRequestError(status={self.status}, code={self.code!r}, message={self.message!r})"


class SessionExpiredError(Exception):
    """The refresh token was rejected (or refresh timed out); the user must log in again."""
