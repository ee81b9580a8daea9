"""
Clock helpers.

Timestamps are stored as naive UTC datetimes: MariaDB DATETIME and SQLite
both drop tzinfo, so comparisons are done against a naive "now" as well.
"""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Current UTC time without tzinfo, comparable with stored columns."""
    return datetime.now(UTC).replace(tzinfo=None)
