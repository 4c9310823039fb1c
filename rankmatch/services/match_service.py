"""Match record store: match lifecycle persistence.

State machine: waiting -> ongoing -> {completed | win | lose | draw}.
Every edge is one-way; terminal matches are never written again.
"""
import logging
import uuid
from datetime import datetime, UTC
from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from rankmatch.models.base import (
    CurrencyType,
    MatchStatus,
    MatchType,
    TransactionStatus,
    TransactionType,
)
from rankmatch.models.match import Match
from rankmatch.models.player import Player
from rankmatch.models.transaction import Transaction
from rankmatch.utils import unit_of_work
from rankmatch.utils.exceptions import (
    AlreadySettledError,
    InvalidStatusError,
    InvalidTransitionError,
    MatchNotFoundError,
)

logger = logging.getLogger(__name__)


class MatchService:
    """Service for persisting match records and their status transitions."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _load(self, match_id: UUID, *, for_update: bool = False) -> Match:
        stmt = select(Match).where(Match.match_id == match_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        match = result.scalars().first()
        if not match:
            raise MatchNotFoundError(f"Match not found: {match_id}")
        return match

    async def get(self, match_id: UUID) -> Match:
        """Get a match or raise MatchNotFoundError."""
        return await self._load(match_id)

    async def get_for_update(self, match_id: UUID) -> Match:
        """Get a match with a row lock held until the surrounding transaction ends."""
        return await self._load(match_id, for_update=True)

    async def create(
        self,
        white_id: UUID,
        black_id: UUID | None,
        fee: int | None,
        currency: CurrencyType | None,
        match_type: MatchType = MatchType.RANKED,
        *,
        auto_commit: bool = True,
    ) -> Match:
        """Create a waiting match with no fee reserved or committed yet."""
        if black_id is not None and white_id == black_id:
            raise InvalidTransitionError("A match needs two different participants")
        if fee is not None and fee <= 0:
            raise InvalidTransitionError(f"Match fee must be positive, got {fee}")
        if (fee is None) != (currency is None):
            raise InvalidTransitionError("Match fee and currency must be provided together")

        async with unit_of_work(self.db, auto_commit=auto_commit, name="match_create"):
            match = Match(
                match_id=uuid.uuid4(),
                white_id=white_id,
                black_id=black_id,
                match_type=match_type.value,
                status=MatchStatus.WAITING.value,
                match_fee=fee,
                currency_type=currency.value if currency else None,
                fee_reserved=False,
                fee_committed=False,
                created_at=datetime.now(UTC),
            )
            self.db.add(match)

        logger.info(
            f"Match created: match={match.match_id}, white={white_id}, black={black_id}, "
            f"type={match_type.value}, fee={fee} {currency.value if currency else ''}"
        )
        return match

    async def create_open(self, white_id: UUID, match_type: MatchType = MatchType.CASUAL) -> Match:
        """Create a waiting match with only the first slot filled (a room)."""
        return await self.create(white_id, None, None, None, match_type)

    async def join(self, match_id: UUID, player_id: UUID) -> Match:
        """Fill the second slot of a waiting match."""
        async with unit_of_work(self.db, name="match_join"):
            match = await self.get_for_update(match_id)
            if match.status != MatchStatus.WAITING.value:
                raise InvalidTransitionError(f"Match {match_id} is {match.status}, not waiting")
            if match.black_id is not None:
                raise InvalidTransitionError(f"Match {match_id} already has two participants")
            if match.white_id == player_id:
                raise InvalidTransitionError("Two participants must be different")
            match.black_id = player_id

        logger.info(f"Player {player_id} joined match {match_id}")
        return match

    async def mark_fee_reserved(self, match_id: UUID, *, auto_commit: bool = True) -> Match:
        async with unit_of_work(self.db, auto_commit=auto_commit, name="match_mark_fee_reserved"):
            match = await self.get_for_update(match_id)
            if match.is_terminal:
                raise AlreadySettledError(f"Match {match_id} already {match.status}")
            match.fee_reserved = True
        return match

    async def start(self, match_id: UUID, *, auto_commit: bool = True) -> Match:
        """Move a waiting match to ongoing and snapshot both ratings.

        Raises:
            InvalidTransitionError: If the match is not waiting, lacks a second participant,
                or holds reserved fees that were not committed yet
        """
        async with unit_of_work(self.db, auto_commit=auto_commit, name="match_start"):
            match = await self.get_for_update(match_id)
            if match.status != MatchStatus.WAITING.value:
                raise InvalidTransitionError(f"Match {match_id} is {match.status}, not waiting")
            if match.black_id is None:
                raise InvalidTransitionError(f"Match {match_id} has no second participant")
            if match.fee_reserved and not match.fee_committed:
                raise InvalidTransitionError(f"Match {match_id} still waits for reserved fees to be committed")

            result = await self.db.execute(
                select(Player.player_id, Player.elo).where(Player.player_id.in_([match.white_id, match.black_id]))
            )
            ratings = {row.player_id: row.elo for row in result}

            match.status = MatchStatus.ONGOING.value
            match.started_at = datetime.now(UTC)
            match.white_elo_before = ratings.get(match.white_id)
            match.black_elo_before = ratings.get(match.black_id)

        logger.info(
            f"Match started: match={match_id}, white_elo={match.white_elo_before}, "
            f"black_elo={match.black_elo_before}"
        )
        return match

    async def finalize(
        self,
        match_id: UUID,
        status: MatchStatus,
        completed_at: datetime | None = None,
        *,
        winner_id: UUID | None = None,
        auto_commit: bool = True,
    ) -> Match:
        """Mark an ongoing match terminal.

        Raises:
            InvalidStatusError: If ``status`` is not terminal
            AlreadySettledError: If the match is already terminal
            InvalidTransitionError: If the match never started
        """
        try:
            status = MatchStatus(status)
        except ValueError as exc:
            raise InvalidStatusError(f"Unknown match status: {status}") from exc
        if not status.is_terminal:
            raise InvalidStatusError(f"{status.value} is not a terminal status")

        async with unit_of_work(self.db, auto_commit=auto_commit, name="match_finalize"):
            match = await self.get_for_update(match_id)
            if match.is_terminal:
                raise AlreadySettledError(f"Match {match_id} already {match.status}")
            if match.status != MatchStatus.ONGOING.value:
                raise InvalidTransitionError(f"Match {match_id} has not started")
            match.status = status.value
            match.completed_at = completed_at or datetime.now(UTC)
            match.winner_id = winner_id

        return match

    async def count_live_reservations(self, match_id: UUID) -> int:
        result = await self.db.execute(
            select(func.count(Transaction.transaction_id)).where(
                Transaction.match_id == match_id,
                Transaction.transaction_type == TransactionType.FEE_RESERVE.value,
                Transaction.status == TransactionStatus.PENDING.value,
            )
        )
        return int(result.scalar_one())

    async def delete_abandoned(self, match_id: UUID, *, auto_commit: bool = True) -> None:
        """Delete a waiting match that holds no pending reservation."""
        async with unit_of_work(self.db, auto_commit=auto_commit, name="match_delete_abandoned"):
            match = await self.get_for_update(match_id)
            if match.status != MatchStatus.WAITING.value:
                raise InvalidTransitionError(f"Match {match_id} is {match.status}; only waiting matches are removable")
            if await self.count_live_reservations(match_id):
                raise InvalidTransitionError(f"Match {match_id} still holds reserved fees")
            await self.db.delete(match)

        logger.info(f"Abandoned match {match_id} deleted")

    async def find_stale_reserved(self, older_than: datetime) -> list[Match]:
        """Waiting matches whose fees were reserved before ``older_than`` and never committed."""
        result = await self.db.execute(
            select(Match)
            .where(
                Match.status == MatchStatus.WAITING.value,
                Match.fee_reserved.is_(True),
                Match.fee_committed.is_(False),
                Match.created_at < older_than,
            )
            .order_by(Match.created_at.asc())
        )
        return list(result.scalars().all())
