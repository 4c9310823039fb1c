"""Settlement engine: apply a match outcome to ratings and statistics exactly once.

Ratings follow standard ELO with a K-factor tiered by each participant's own
pre-match rating. Everything a settlement touches (the match row, both
participant rows, the history entry and any promotion rewards) is gathered
in a ``SettlementUnit`` and written inside one unit of work.
"""
import logging
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rankmatch.config import get_settings
from rankmatch.models.base import (
    CurrencyType,
    MatchOutcome,
    MatchStatus,
    TransactionStatus,
    TransactionType,
)
from rankmatch.models.match import Match
from rankmatch.models.match_history import MatchHistory
from rankmatch.models.player import Player
from rankmatch.models.transaction import Transaction
from rankmatch.services.rank_policy import RankPolicy
from rankmatch.utils import unit_of_work
from rankmatch.utils.exceptions import (
    AlreadySettledError,
    InvalidStatusError,
    InvalidTransitionError,
    MatchNotFoundError,
    ParticipantNotFoundError,
)

logger = logging.getLogger(__name__)

# Actual score for the white participant
WHITE_SCORES = {
    MatchOutcome.WIN: 1.0,
    MatchOutcome.LOSE: 0.0,
    MatchOutcome.DRAW: 0.5,
}


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def k_factor(rating: int) -> int:
    if rating < 1000:
        return 32
    if rating < 2000:
        return 24
    return 16


def expected_score(own_rating: int, opponent_rating: int) -> float:
    return 1 / (1 + 10 ** ((opponent_rating - own_rating) / 400))


def new_rating(own_rating: int, opponent_rating: int, score: float, *, floor: int = 0, ceiling: int = 3000) -> int:
    """Rating after one game; ``score`` is 1 for a win and 0 for a loss."""
    delta = k_factor(own_rating) * (score - expected_score(own_rating, opponent_rating))
    return max(floor, min(ceiling, round_half_up(own_rating + delta)))


def compute_win_rate(wins: int, total_matches: int) -> float:
    """Win percentage with two decimals, 0 when no matches were played."""
    if total_matches <= 0:
        return 0.0
    return round_half_up(wins / total_matches * 10000) / 100


@dataclass
class RatingChange:
    player_id: UUID
    before: int
    after: int

    @property
    def delta(self) -> int:
        return self.after - self.before


@dataclass
class Promotion:
    player_id: UUID
    from_level: int
    to_level: int
    gem_reward: int


@dataclass
class SettlementUnit:
    """Rows mutated by one settlement, locked for the duration of the unit of work."""
    match: Match
    white: Player
    black: Player
    outcome: MatchOutcome
    history: MatchHistory
    reward_transactions: list[Transaction] = field(default_factory=list)

    @property
    def winner(self) -> Player | None:
        if self.outcome == MatchOutcome.WIN:
            return self.white
        if self.outcome == MatchOutcome.LOSE:
            return self.black
        return None

    @property
    def loser(self) -> Player | None:
        if self.outcome == MatchOutcome.WIN:
            return self.black
        if self.outcome == MatchOutcome.LOSE:
            return self.white
        return None


@dataclass
class SettlementResult:
    match_id: UUID
    outcome: MatchOutcome
    status: MatchStatus
    winner_id: UUID | None
    ranked: bool
    white: RatingChange
    black: RatingChange
    history_id: UUID
    completed_at: datetime
    promotions: list[Promotion] = field(default_factory=list)

    def rating_changes(self) -> dict:
        """``before``/``after`` payload per side for the post-game screen."""
        return {
            "white": {"player_id": self.white.player_id, "before": self.white.before, "after": self.white.after},
            "black": {"player_id": self.black.player_id, "before": self.black.before, "after": self.black.after},
        }


class SettlementService:
    """Service for settling finished matches."""

    def __init__(self, db: AsyncSession, rank_policy: RankPolicy | None = None):
        self.db = db
        self.settings = get_settings()
        self.rank_policy = rank_policy or RankPolicy.from_settings(self.settings)

    async def _lock_match(self, match_id: UUID) -> Match:
        result = await self.db.execute(
            select(Match)
            .where(Match.match_id == match_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        match = result.scalars().first()
        if not match:
            raise MatchNotFoundError(f"Match not found: {match_id}")
        return match

    async def _lock_participants(self, *player_ids: UUID) -> dict[UUID, Player]:
        """Lock participant rows one at a time in id order so settlements never deadlock."""
        locked: dict[UUID, Player] = {}
        for player_id in sorted(set(player_ids), key=str):
            result = await self.db.execute(
                select(Player)
                .where(Player.player_id == player_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            player = result.scalars().first()
            if not player:
                raise ParticipantNotFoundError(f"Player not found: {player_id}")
            locked[player_id] = player
        return locked

    async def settle(
        self,
        match_id: UUID,
        outcome: MatchOutcome | str,
        result_payload: dict[str, Any] | None = None,
        *,
        auto_commit: bool = True,
    ) -> SettlementResult:
        """Settle an ongoing match with an outcome relative to white.

        Raises:
            InvalidStatusError: If ``outcome`` is not win, lose or draw
            MatchNotFoundError: If the match does not exist
            AlreadySettledError: If the match is already terminal
            InvalidTransitionError: If the match never started or its fees were not committed
        """
        try:
            outcome = MatchOutcome(outcome)
        except ValueError as exc:
            raise InvalidStatusError(f"Invalid match outcome: {outcome}") from exc

        async with unit_of_work(self.db, auto_commit=auto_commit, name="settlement"):
            match = await self._lock_match(match_id)
            if match.is_terminal:
                raise AlreadySettledError(f"Match {match_id} already {match.status}")
            if match.status != MatchStatus.ONGOING.value or match.black_id is None:
                raise InvalidTransitionError(f"Match {match_id} is {match.status}, not ongoing")
            if match.fee_reserved and not match.fee_committed:
                raise InvalidTransitionError(f"Match {match_id} holds reserved fees that were never committed")

            players = await self._lock_participants(match.white_id, match.black_id)
            completed_at = datetime.now(UTC)
            unit = SettlementUnit(
                match=match,
                white=players[match.white_id],
                black=players[match.black_id],
                outcome=outcome,
                history=MatchHistory(
                    history_id=uuid.uuid4(),
                    match_id=match.match_id,
                    content=dict(result_payload or {}),
                    created_at=completed_at,
                ),
            )
            result = self._apply(unit, completed_at)

            self.db.add(unit.history)
            for transaction in unit.reward_transactions:
                self.db.add(transaction)

        logger.info(
            f"Match settled: match={match_id}, outcome={outcome.value}, ranked={result.ranked}, "
            f"white {result.white.before}->{result.white.after}, black {result.black.before}->{result.black.after}"
        )
        for promotion in result.promotions:
            logger.info(
                f"Rank promotion: player={promotion.player_id}, level {promotion.from_level}->{promotion.to_level}, "
                f"reward={promotion.gem_reward} gem"
            )
        return result

    def _apply(self, unit: SettlementUnit, completed_at: datetime) -> SettlementResult:
        match, white, black = unit.match, unit.white, unit.black
        white_before, black_before = white.elo, black.elo
        promotions: list[Promotion] = []

        if match.is_ranked:
            white_score = WHITE_SCORES[unit.outcome]
            if unit.outcome != MatchOutcome.DRAW:
                white.elo = new_rating(
                    white_before, black_before, white_score,
                    floor=self.settings.elo_floor, ceiling=self.settings.elo_ceiling,
                )
                black.elo = new_rating(
                    black_before, white_before, 1 - white_score,
                    floor=self.settings.elo_floor, ceiling=self.settings.elo_ceiling,
                )
                unit.winner.win_count += 1
                unit.loser.lose_count += 1

            for player in (white, black):
                player.total_matches += 1
                player.win_rate = compute_win_rate(player.win_count, player.total_matches)
                promotion = self._promote(player, unit)
                if promotion:
                    promotions.append(promotion)

            match.white_elo_before, match.black_elo_before = white_before, black_before
            match.white_elo_after, match.black_elo_after = white.elo, black.elo

        winner = unit.winner
        match.status = unit.outcome.value
        match.completed_at = completed_at
        match.winner_id = winner.player_id if winner else None

        return SettlementResult(
            match_id=match.match_id,
            outcome=unit.outcome,
            status=MatchStatus(match.status),
            winner_id=match.winner_id,
            ranked=match.is_ranked,
            white=RatingChange(white.player_id, white_before, white.elo),
            black=RatingChange(black.player_id, black_before, black.elo),
            history_id=unit.history.history_id,
            completed_at=completed_at,
            promotions=promotions,
        )

    def _promote(self, player: Player, unit: SettlementUnit) -> Promotion | None:
        """Raise ``rank_level`` to the highest tier reached and credit gem rewards."""
        current = player.rank_level or self.rank_policy.lowest_tier.level
        target = max(current, self.rank_policy.tier_for_rating(player.elo))
        if target == current and self.rank_policy.qualifies_for_hidden_promotion(
            player.total_matches, player.win_rate, current
        ):
            target = current + 1
        if target <= current:
            return None

        reward = sum(self.rank_policy.promotion_reward(level) for level in range(current + 1, target + 1))
        player.rank_level = target
        if reward:
            player.credit(CurrencyType.GEM, reward)
            unit.reward_transactions.append(
                Transaction(
                    transaction_id=uuid.uuid4(),
                    player_id=player.player_id,
                    match_id=unit.match.match_id,
                    transaction_type=TransactionType.PROMOTION_REWARD.value,
                    amount=reward,
                    currency_type=CurrencyType.GEM.value,
                    status=TransactionStatus.COMPLETED.value,
                    description=f"Rank promotion {current} -> {target}",
                )
            )
        return Promotion(player.player_id, current, target, reward)
