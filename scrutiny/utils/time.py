"""Time utility helpers."""

from __future__ import annotations

from datetime import UTC, datetime


def now_utc() -> datetime:
    """Return current timezone-aware UTC datetime."""
    return datetime.now(tz=UTC)


def now_iso() -> str:
    """Return the current UTC instant as an ISO-8601 string for storage."""
    return now_utc().isoformat()


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    """Parse a stored timestamp into an aware UTC datetime.

    Naive values are assumed to be UTC. ``None`` and empty strings pass
    through as ``None``.
    """
    if not value:
        return None

    if isinstance(value, str):
        normalized = value.replace("Z", "+00:00")
        parsed = datetime.fromisoformat(normalized)
    else:
        parsed = value

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
