"""UTC helpers. SQLite hands datetimes back naive, so compare through ``as_utc``."""

from datetime import UTC, datetime


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def from_timestamp(ts: int | float | None) -> datetime | None:
    """Convert a unix timestamp from the Nexus; 0 and None mean unknown."""
    if not ts:
        return None
    return datetime.fromtimestamp(ts, tz=UTC)
