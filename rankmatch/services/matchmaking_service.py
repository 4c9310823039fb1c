"""Matchmaking orchestrator.

Combines eligibility checks, match creation, fee escrow and result
ingestion. Multi-step operations run in one unit of work: the collaborating
services are called with ``auto_commit=False`` and the orchestrator commits
once at the end.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, UTC
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from rankmatch.config import get_settings
from rankmatch.models.base import (
    CurrencyType,
    MatchOutcome,
    MatchStatus,
    MatchType,
    TransactionStatus,
    TransactionType,
)
from rankmatch.models.match import Match
from rankmatch.services.ledger_service import Eligibility, LedgerService
from rankmatch.services.match_service import MatchService
from rankmatch.services.rank_policy import RankPolicy
from rankmatch.services.reservation_monitor import (
    ReservationMonitor,
    ReservedSeat,
    get_reservation_monitor,
)
from rankmatch.services.settlement_service import SettlementResult, SettlementService
from rankmatch.utils import unit_of_work
from rankmatch.utils.exceptions import (
    EligibilityFailedError,
    InvalidTransitionError,
    InvalidWinnerError,
    MatchmakingError,
)

logger = logging.getLogger(__name__)


@dataclass
class FeeCommitOutcome:
    match_id: UUID
    player_id: UUID
    remaining_balance: int
    fee_committed: bool
    match_status: str


@dataclass
class CleanupReport:
    released: int = 0
    deleted: int = 0
    failed: int = 0


class MatchmakingService:
    """Facade over the ledger, match store and settlement engine."""

    def __init__(
        self,
        db: AsyncSession,
        rank_policy: RankPolicy | None = None,
        monitor: ReservationMonitor | None = None,
    ):
        self.db = db
        self.settings = get_settings()
        self.rank_policy = rank_policy or RankPolicy.from_settings(self.settings)
        self.monitor = monitor or get_reservation_monitor()
        self.ledger = LedgerService(db, self.rank_policy)
        self.matches = MatchService(db)
        self.settlement = SettlementService(db, self.rank_policy)

    async def check_rank_eligibility(self, player_id: UUID) -> Eligibility:
        return await self.ledger.check_eligibility(player_id)

    async def create_match(
        self,
        white_id: UUID,
        black_id: UUID,
        fee: int | None = None,
        currency: CurrencyType | str = CurrencyType.GEM,
    ) -> Match:
        """Create a ranked match and reserve the fee for both participants.

        Either everything is written (match, both reservations, reserved
        flag) or nothing is.

        Args:
            white_id: First participant (reference side for outcomes)
            black_id: Second participant
            fee: Entry fee; defaults to the higher of both participants' tier fees
            currency: Currency the fee is reserved in

        Raises:
            InvalidTransitionError: If both ids name the same participant
            EligibilityFailedError: If either participant cannot afford ranked play
                or lacks the match fee in ``currency``
            InsufficientFundsError: If a balance changed between the check and the reservation
        """
        if white_id == black_id:
            raise InvalidTransitionError("A match needs two different participants")
        currency = CurrencyType(currency)

        white_check = await self.ledger.check_eligibility(white_id)
        black_check = await self.ledger.check_eligibility(black_id)
        if fee is None:
            fee = max(white_check.required_fee, black_check.required_fee)

        failures = []
        for side, check in (("white", white_check), ("black", black_check)):
            available = check.available_by_currency[currency]
            if not check.can_play:
                failures.append(f"{side}: {check.message}")
            elif available < fee:
                failures.append(
                    f"{side}: requires {fee} {currency.value} for this match, {available} {currency.value} available."
                )
        if failures:
            raise EligibilityFailedError(" ".join(failures))

        async with unit_of_work(self.db, name="create_match"):
            match = await self.matches.create(
                white_id, black_id, fee, currency, MatchType.RANKED, auto_commit=False
            )
            for player_id in (white_id, black_id):
                await self.ledger.reserve(player_id, match.match_id, fee, currency, auto_commit=False)
            await self.matches.mark_fee_reserved(match.match_id, auto_commit=False)

        self.monitor.track(
            match.match_id,
            [ReservedSeat(white_id, fee, currency), ReservedSeat(black_id, fee, currency)],
            reserved_at=match.created_at,
        )
        logger.info(f"Ranked match {match.match_id} created with {fee} {currency.value} reserved per side")
        return match

    async def commit_match_fee(self, player_id: UUID, match_id: UUID) -> FeeCommitOutcome:
        """Debit a participant's reserved fee; the match starts once both sides paid."""
        async with unit_of_work(self.db, name="commit_match_fee"):
            committed = await self.ledger.commit(player_id, match_id, auto_commit=False)
            match = await self.matches.get_for_update(match_id)
            if committed.match_fee_committed and match.status == MatchStatus.WAITING.value:
                match = await self.matches.start(match_id, auto_commit=False)

        self.monitor.forget_seat(match_id, player_id)
        return FeeCommitOutcome(
            match_id=match_id,
            player_id=player_id,
            remaining_balance=committed.remaining_balance,
            fee_committed=bool(match.fee_committed),
            match_status=match.status,
        )

    async def start_match(self, match_id: UUID) -> Match:
        return await self.matches.start(match_id)

    async def release_match_fee(self, player_id: UUID, match_id: UUID) -> int:
        """Return a reserved fee; yields the participant's remaining locked amount."""
        released = await self.ledger.release(player_id, match_id)
        self.monitor.forget_seat(match_id, player_id)
        return released.remaining_locked

    async def process_match_result(
        self,
        match_id: UUID,
        winner_id: UUID | None,
        moves: list | None = None,
        game_data: dict[str, Any] | None = None,
    ) -> SettlementResult:
        """Settle a match from a reported winner; ``winner_id=None`` is a draw.

        Raises:
            InvalidWinnerError: If the winner is not one of the two participants
        """
        match = await self.matches.get(match_id)
        if winner_id is None:
            outcome = MatchOutcome.DRAW
        elif winner_id == match.white_id:
            outcome = MatchOutcome.WIN
        elif match.black_id is not None and winner_id == match.black_id:
            outcome = MatchOutcome.LOSE
        else:
            raise InvalidWinnerError(f"Player {winner_id} is not a participant of match {match_id}")

        payload = {
            "winner_id": str(winner_id) if winner_id else None,
            "outcome": outcome.value,
            "moves": moves or [],
            "game_data": game_data or {},
            "reported_at": datetime.now(UTC).isoformat(),
        }
        result = await self.settlement.settle(match_id, outcome, payload)
        self.monitor.forget(match_id)
        return result

    def get_reserved_matches_info(self) -> dict:
        return self.monitor.snapshot()

    async def get_fee_status(self, match_id: UUID) -> dict:
        """Escrow flags of a match together with its transaction rows."""
        match = await self.matches.get(match_id)
        transactions = await self.ledger.get_match_transactions(match_id)
        return {
            "match_id": match.match_id,
            "status": match.status,
            "match_type": match.match_type,
            "match_fee": match.match_fee,
            "currency_type": match.currency_type,
            "fee_reserved": match.fee_reserved,
            "fee_committed": match.fee_committed,
            "transactions": transactions,
        }

    async def cleanup_expired_reservations(self, now: datetime | None = None) -> CleanupReport:
        """Release reservations held by waiting matches older than the timeout.

        A match whose fees were all returned is deleted. A match where one side
        already paid is kept so its completed transaction stays linked.
        """
        now = now or datetime.now(UTC)
        cutoff = now - timedelta(minutes=self.settings.reservation_timeout_minutes)
        report = CleanupReport()

        for match in await self.matches.find_stale_reserved(cutoff):
            match_id = match.match_id
            try:
                async with unit_of_work(self.db, name="reservation_cleanup"):
                    rows = await self.ledger.get_match_transactions(match_id)
                    reserve_rows = [r for r in rows if r.transaction_type == TransactionType.FEE_RESERVE.value]
                    pending = [r for r in reserve_rows if r.status == TransactionStatus.PENDING.value]
                    for row in pending:
                        await self.ledger.release(row.player_id, match_id, auto_commit=False)
                    paid = any(r.status == TransactionStatus.COMPLETED.value for r in reserve_rows)
                    if not paid:
                        await self.matches.delete_abandoned(match_id, auto_commit=False)
            except MatchmakingError as exc:
                report.failed += 1
                logger.error(f"Failed to clean up expired reservations for match {match_id}: {exc}")
                continue

            report.released += len(pending)
            report.deleted += 0 if paid else 1
            self.monitor.forget(match_id)

        if report.released or report.failed:
            logger.info(
                f"Reservation cleanup: released={report.released}, deleted={report.deleted}, failed={report.failed}"
            )
        return report
