"""UTC time helpers."""

from datetime import UTC, datetime


def utcnow() -> datetime:
    """Timezone-aware current time used for Python-side defaults."""
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from MySQL/SQLite."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value
