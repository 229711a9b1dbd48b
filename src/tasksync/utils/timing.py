from datetime import datetime, timezone


def utcnow() -> datetime:
    """Timezone-aware current UTC time. Every stored timestamp comes from here."""
    return datetime.now(timezone.utc)


def elapsed_ms(started: datetime, finished: datetime) -> int:
    """Whole milliseconds between two clock readings, never negative."""
    return max(0, int((finished - started).total_seconds() * 1000))
