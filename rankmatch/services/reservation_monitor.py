"""In-process view of in-flight fee reservations.

Operational visibility only: the database stays authoritative and the map is
lost on restart.
"""
from dataclasses import dataclass, field
from datetime import datetime, UTC
from functools import lru_cache
from uuid import UUID

from rankmatch.models.base import CurrencyType
from rankmatch.utils.datetime_helpers import ensure_utc, minutes_since


@dataclass
class ReservedSeat:
    player_id: UUID
    fee: int
    currency: CurrencyType


@dataclass
class ReservedMatch:
    match_id: UUID
    seats: list[ReservedSeat] = field(default_factory=list)
    reserved_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class ReservationMonitor:
    """Tracks matches whose fees are reserved but not yet committed or released."""

    def __init__(self):
        self._reserved: dict[UUID, ReservedMatch] = {}

    def track(self, match_id: UUID, seats: list[ReservedSeat], reserved_at: datetime | None = None) -> None:
        self._reserved[match_id] = ReservedMatch(
            match_id=match_id,
            seats=list(seats),
            reserved_at=ensure_utc(reserved_at) or datetime.now(UTC),
        )

    def forget_seat(self, match_id: UUID, player_id: UUID) -> None:
        """Drop one participant's seat; the match goes once no seat is left."""
        entry = self._reserved.get(match_id)
        if entry is None:
            return
        entry.seats = [seat for seat in entry.seats if seat.player_id != player_id]
        if not entry.seats:
            del self._reserved[match_id]

    def forget(self, match_id: UUID) -> None:
        self._reserved.pop(match_id, None)

    def is_tracked(self, match_id: UUID) -> bool:
        return match_id in self._reserved

    def snapshot(self) -> dict:
        return {
            "total_reserved": len(self._reserved),
            "reserved_matches": [
                {
                    "match_id": entry.match_id,
                    "reserved_at": entry.reserved_at,
                    "waiting_minutes": round(minutes_since(entry.reserved_at), 2),
                    "players": [
                        {"player_id": seat.player_id, "fee": seat.fee, "currency": seat.currency.value}
                        for seat in entry.seats
                    ],
                }
                for entry in self._reserved.values()
            ],
        }

    def clear(self) -> None:
        self._reserved.clear()


@lru_cache()
def get_reservation_monitor() -> ReservationMonitor:
    """Process-wide monitor instance."""
    return ReservationMonitor()
