"""Datetime helpers for values stored in Cassandra.

Cassandra ``TIMESTAMP`` columns keep millisecond precision and come back
naive. Timestamps are created already truncated to milliseconds so an
in-memory entity compares equal to the row read back.
"""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Current UTC time truncated to millisecond precision."""
    now = datetime.now(UTC)
    return now.replace(microsecond=now.microsecond - now.microsecond % 1000)


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt
