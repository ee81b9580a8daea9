"""Starter API: token authentication with rotating refresh tokens, plus a Python client."""

__version__ = "1.0.0"
