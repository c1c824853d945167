"""Timestamp helpers.

Visibility is always evaluated against an explicit ``as_of`` timestamp; these
helpers produce and normalize such timestamps.
"""
from datetime import UTC, datetime


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime.

    SQLite hands back naive datetimes; they are stored in UTC, so a naive
    value is tagged rather than converted.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_as_of(value: str | None) -> datetime:
    """Parse an ISO 8601 ``as_of`` argument, defaulting to now.

    Raises:
        ValueError: If ``value`` is not a valid ISO 8601 timestamp
    """
    if not value:
        return utcnow()
    return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
