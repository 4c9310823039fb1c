"""Ledger guard: reserve, commit and release match fees.

Funds move between three states for a currency: available, locked (reserved
for a match) and spent. Each move happens inside one unit of work that
re-reads the participant row with a write lock and writes the matching
Transaction row, so balance and audit log change together or not at all.
"""
import logging
import uuid
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rankmatch.config import get_settings
from rankmatch.models.base import CurrencyType, TransactionStatus, TransactionType
from rankmatch.models.match import Match
from rankmatch.models.player import Player
from rankmatch.models.transaction import Transaction
from rankmatch.services.rank_policy import RankPolicy
from rankmatch.utils import unit_of_work
from rankmatch.utils.exceptions import (
    DuplicateReservationError,
    InsufficientFundsError,
    InvalidTransitionError,
    MatchNotFoundError,
    NothingReservedError,
    NotReservedError,
    ParticipantNotFoundError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Eligibility:
    """Whether a participant can afford their ranked tier's entry fee."""
    can_play: bool
    required_fee: int
    tier: int
    rating: int
    available_by_currency: dict[CurrencyType, int] = field(default_factory=dict)
    eligible_by_currency: dict[CurrencyType, bool] = field(default_factory=dict)
    message: str = ""


@dataclass
class ReserveResult:
    transaction: Transaction
    locked_after: int


@dataclass
class CommitResult:
    transaction: Transaction
    remaining_balance: int
    match_fee_committed: bool


@dataclass
class ReleaseResult:
    transaction: Transaction
    remaining_locked: int


def describe_shortfall(tier: int, fee: int, available: dict[CurrencyType, int]) -> str:
    """Human-readable eligibility message naming every currency's shortfall."""
    short = [currency for currency, amount in available.items() if amount < fee]
    if not short:
        return f"Eligible for ranked tier {tier} (entry fee {fee})."
    details = "; ".join(
        f"requires {fee} {currency.value}, {available[currency]} {currency.value} available"
        for currency in short
    )
    if len(short) == len(available):
        return f"Not enough balance for ranked tier {tier}: {details}."
    usable = ", ".join(currency.value for currency in available if currency not in short)
    return f"Eligible for ranked tier {tier} with {usable} only: {details}."


class LedgerService:
    """Service for escrowing match fees against participant balances."""

    def __init__(self, db: AsyncSession, rank_policy: RankPolicy | None = None):
        self.db = db
        self.settings = get_settings()
        self.rank_policy = rank_policy or RankPolicy.from_settings(self.settings)

    async def _lock_participant(self, player_id: UUID) -> Player:
        stmt = (
            select(Player)
            .where(Player.player_id == player_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        player = result.scalars().first()
        if not player:
            raise ParticipantNotFoundError(f"Player not found: {player_id}")
        return player

    async def _with_participant_lock(
        self,
        player_id: UUID,
        mutation: Callable[[Player], Awaitable[T]],
        *,
        auto_commit: bool = True,
        name: str,
    ) -> T:
        """Run ``mutation`` on the write-locked participant inside one unit of work."""
        async with unit_of_work(self.db, auto_commit=auto_commit, name=name):
            player = await self._lock_participant(player_id)
            return await mutation(player)

    async def _get_match(self, match_id: UUID) -> Match:
        result = await self.db.execute(select(Match).where(Match.match_id == match_id))
        match = result.scalars().first()
        if not match:
            raise MatchNotFoundError(f"Match not found: {match_id}")
        return match

    async def _pending_reservation(self, player_id: UUID, match_id: UUID) -> Transaction | None:
        result = await self.db.execute(
            select(Transaction)
            .where(
                Transaction.player_id == player_id,
                Transaction.match_id == match_id,
                Transaction.transaction_type == TransactionType.FEE_RESERVE.value,
                Transaction.status == TransactionStatus.PENDING.value,
            )
            .order_by(Transaction.created_at.asc())
            .with_for_update()
        )
        return result.scalars().first()

    async def check_eligibility(self, player_id: UUID) -> Eligibility:
        """Compare the participant's tier fee against every currency's available balance."""
        result = await self.db.execute(select(Player).where(Player.player_id == player_id))
        player = result.scalars().first()
        if not player:
            raise ParticipantNotFoundError(f"Player not found: {player_id}")

        fee = self.rank_policy.fee_for_rating(player.elo)
        tier = self.rank_policy.tier_for_rating(player.elo)
        available = {currency: player.available(currency) for currency in CurrencyType}
        eligible = {currency: amount >= fee for currency, amount in available.items()}

        return Eligibility(
            can_play=any(eligible.values()),
            required_fee=fee,
            tier=tier,
            rating=player.elo,
            available_by_currency=available,
            eligible_by_currency=eligible,
            message=describe_shortfall(tier, fee, available),
        )

    async def reserve(
        self,
        player_id: UUID,
        match_id: UUID,
        fee: int,
        currency: CurrencyType,
        *,
        auto_commit: bool = True,
    ) -> ReserveResult:
        """Lock ``fee`` of the participant's available balance for a match.

        Raises:
            InsufficientFundsError: If available balance is below the fee
            DuplicateReservationError: If a pending reservation already exists
                for this match and participant (when duplicates are rejected)
        """
        currency = CurrencyType(currency)
        if fee <= 0:
            raise InsufficientFundsError(f"Fee must be positive, got {fee}")

        async def _reserve(player: Player) -> ReserveResult:
            if self.settings.reject_duplicate_reservations:
                existing = await self._pending_reservation(player_id, match_id)
                if existing is not None:
                    raise DuplicateReservationError(
                        f"Player {player_id} already has {existing.amount} {existing.currency_type} "
                        f"reserved for match {match_id}"
                    )

            available = player.available(currency)
            if available < fee:
                raise InsufficientFundsError(
                    f"Not enough {currency.value} to play ranked: requires {fee} {currency.value}, "
                    f"{available} {currency.value} available."
                )

            player.lock_funds(currency, fee)
            transaction = Transaction(
                transaction_id=uuid.uuid4(),
                player_id=player_id,
                match_id=match_id,
                transaction_type=TransactionType.FEE_RESERVE.value,
                amount=fee,
                currency_type=currency.value,
                status=TransactionStatus.PENDING.value,
                description=f"Reserve {fee} {currency.value} for match {match_id}",
            )
            self.db.add(transaction)
            return ReserveResult(transaction=transaction, locked_after=player.locked_of(currency))

        outcome = await self._with_participant_lock(
            player_id, _reserve, auto_commit=auto_commit, name="fee_reserve"
        )
        logger.info(
            f"Fee reserved: player={player_id}, match={match_id}, fee={fee} {currency.value}, "
            f"locked_after={outcome.locked_after}"
        )
        return outcome

    async def commit(self, player_id: UUID, match_id: UUID, *, auto_commit: bool = True) -> CommitResult:
        """Debit a reserved fee: balance and locked amount both drop by the fee.

        Raises:
            NotReservedError: If the match fee was never reserved for this participant
            InvalidTransitionError: If another participant already released their fee
            InsufficientFundsError: If the locked amount drifted below the fee
        """

        async def _commit(player: Player) -> CommitResult:
            match = await self._get_match(match_id)
            if not match.fee_reserved or match.match_fee is None:
                raise NotReservedError(f"Fee for match {match_id} has not been reserved")

            reservation = await self._pending_reservation(player_id, match_id)
            if reservation is None:
                raise NotReservedError(f"No pending reservation for player {player_id} in match {match_id}")
            if await self._count_match_reservations(match_id, TransactionStatus.CANCELLED):
                raise InvalidTransitionError(
                    f"Match {match_id} was cancelled by a participant; release the reserved fee instead"
                )

            currency = CurrencyType(match.currency_type)
            fee = match.match_fee
            if player.locked_of(currency) < fee:
                raise InsufficientFundsError(
                    f"Locked {currency.value} ({player.locked_of(currency)}) is below the match fee ({fee})"
                )

            player.spend_locked(currency, fee)
            reservation.transition_to(
                TransactionStatus.COMPLETED,
                f"Committed {fee} {currency.value} for match {match_id}",
            )
            await self.db.flush()

            # No cancelled rows can exist here, so nothing pending means every side paid
            if not await self._count_match_reservations(match_id, TransactionStatus.PENDING):
                match.fee_committed = True

            return CommitResult(
                transaction=reservation,
                remaining_balance=player.balance_of(currency),
                match_fee_committed=bool(match.fee_committed),
            )

        outcome = await self._with_participant_lock(
            player_id, _commit, auto_commit=auto_commit, name="fee_commit"
        )
        logger.info(
            f"Fee committed: player={player_id}, match={match_id}, "
            f"remaining_balance={outcome.remaining_balance}, match_fee_committed={outcome.match_fee_committed}"
        )
        return outcome

    async def release(self, player_id: UUID, match_id: UUID, *, auto_commit: bool = True) -> ReleaseResult:
        """Return a reserved fee to the available balance without debiting it.

        Raises:
            NothingReservedError: If there is no pending reservation to release
        """

        async def _release(player: Player) -> ReleaseResult:
            match = await self._get_match(match_id)
            if match.match_fee is None or match.currency_type is None:
                raise NothingReservedError(f"Match {match_id} carries no fee")

            currency = CurrencyType(match.currency_type)
            fee = match.match_fee
            reservation = await self._pending_reservation(player_id, match_id)
            if reservation is None or player.locked_of(currency) < fee:
                raise NothingReservedError(
                    f"No {currency.value} reserved for player {player_id} in match {match_id}"
                )

            player.unlock_funds(currency, fee)
            reservation.transition_to(
                TransactionStatus.CANCELLED,
                f"Released {fee} {currency.value} for match {match_id}",
            )
            return ReleaseResult(transaction=reservation, remaining_locked=player.locked_of(currency))

        outcome = await self._with_participant_lock(
            player_id, _release, auto_commit=auto_commit, name="fee_release"
        )
        logger.info(
            f"Fee released: player={player_id}, match={match_id}, remaining_locked={outcome.remaining_locked}"
        )
        return outcome

    async def _count_match_reservations(self, match_id: UUID, status: TransactionStatus) -> int:
        result = await self.db.execute(
            select(Transaction.transaction_id).where(
                Transaction.match_id == match_id,
                Transaction.transaction_type == TransactionType.FEE_RESERVE.value,
                Transaction.status == status.value,
            )
        )
        return len(result.all())

    async def get_player_transactions(
        self,
        player_id: UUID,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Transaction]:
        """Get player transaction history, newest first."""
        result = await self.db.execute(
            select(Transaction)
            .where(Transaction.player_id == player_id)
            .order_by(Transaction.created_at.desc())
            .limit(limit or self.settings.transaction_history_limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def get_match_transactions(self, match_id: UUID) -> list[Transaction]:
        result = await self.db.execute(
            select(Transaction)
            .where(Transaction.match_id == match_id)
            .order_by(Transaction.created_at.desc())
        )
        return list(result.scalars().all())
