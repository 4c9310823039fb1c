"""Datetime utility functions for timezone handling."""
from datetime import datetime, UTC
from typing import Optional


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure datetime is timezone-aware in UTC.

    SQLite hands back naive datetimes even for timezone-aware columns; they
    are treated as UTC.

    Example:
        >>> ensure_utc(datetime(2025, 1, 1, 12, 0, 0)).tzinfo == UTC
        True

        >>> ensure_utc(None) is None
        True
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def minutes_since(dt: Optional[datetime], now: Optional[datetime] = None) -> float:
    """Minutes elapsed since ``dt`` (0 when ``dt`` is missing)."""
    if dt is None:
        return 0.0
    now = ensure_utc(now) or datetime.now(UTC)
    return max(0.0, (now - ensure_utc(dt)).total_seconds() / 60.0)
