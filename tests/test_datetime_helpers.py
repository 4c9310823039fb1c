"""Tests for datetime helper functions."""
from datetime import datetime, timedelta, timezone, UTC

from rankmatch.services.reservation_monitor import ReservationMonitor, ReservedSeat
from rankmatch.models.base import CurrencyType
from rankmatch.utils.datetime_helpers import ensure_utc, minutes_since


def test_ensure_utc_with_naive_datetime():
    """Should add UTC to naive datetimes."""
    result = ensure_utc(datetime(2025, 1, 1, 12, 0, 0))
    assert result.tzinfo == UTC
    assert result.hour == 12


def test_ensure_utc_keeps_aware_datetime():
    aware = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone(timedelta(hours=2)))
    assert ensure_utc(aware) is aware


def test_ensure_utc_none():
    assert ensure_utc(None) is None


def test_minutes_since():
    now = datetime(2025, 1, 1, 12, 10, 0, tzinfo=UTC)
    assert minutes_since(datetime(2025, 1, 1, 12, 0, 0), now=now) == 10.0
    assert minutes_since(now + timedelta(minutes=1), now=now) == 0.0
    assert minutes_since(None) == 0.0


def test_monitor_normalizes_naive_reservation_time():
    """Naive timestamps (as SQLite returns them) are read as UTC."""
    monitor = ReservationMonitor()
    monitor.track("m1", [ReservedSeat("p1", 4, CurrencyType.GEM)], reserved_at=datetime(2025, 1, 1, 12, 0))

    entry = monitor.snapshot()["reserved_matches"][0]

    assert entry["reserved_at"].tzinfo == UTC
    assert entry["waiting_minutes"] > 0
