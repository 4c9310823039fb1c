"""Participant service: account lookup, balance projection and leaderboard."""

import logging
import uuid
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rankmatch.config import get_settings
from rankmatch.models.player import Player
from rankmatch.services.rank_policy import RankPolicy
from rankmatch.utils.exceptions import ParticipantNotFoundError

logger = logging.getLogger(__name__)


class PlayerServiceError(RuntimeError):
    """Raised when a participant account cannot be created."""


class PlayerService:
    """Service for managing participant accounts."""

    def __init__(self, db: AsyncSession, rank_policy: RankPolicy | None = None):
        """Initialize player service.

        Args:
            db: Database session
            rank_policy: Tier table used for level projections
        """
        self.db = db
        self.settings = get_settings()
        self.rank_policy = rank_policy or RankPolicy.from_settings(self.settings)

    async def create_player(
        self,
        username: str,
        email: str | None = None,
        *,
        elo: int | None = None,
        gem: int | None = None,
        coin: int | None = None,
    ) -> Player:
        """Create a participant with starting rating and balances.

        Raises:
            PlayerServiceError: If the username or email is already taken
        """
        starting_elo = self.settings.starting_elo if elo is None else elo
        player = Player(
            player_id=uuid.uuid4(),
            username=username.strip(),
            email=email.strip().lower() if email else None,
            elo=starting_elo,
            rank_level=self.rank_policy.tier_for_rating(starting_elo),
            gem=self.settings.starting_gem if gem is None else gem,
            coin=self.settings.starting_coin if coin is None else coin,
            locked_gem=0,
            locked_coin=0,
            win_count=0,
            lose_count=0,
            total_matches=0,
            win_rate=0.0,
        )
        self.db.add(player)
        try:
            await self.db.commit()
        except IntegrityError as exc:
            await self.db.rollback()
            raise PlayerServiceError("username_or_email_taken") from exc
        await self.db.refresh(player)

        logger.info(f"Created player {player.player_id} ({player.username}) elo={player.elo}")
        return player

    async def get_player_by_id(self, player_id: UUID) -> Player | None:
        result = await self.db.execute(select(Player).where(Player.player_id == player_id))
        return result.scalars().first()

    async def get_player_or_raise(self, player_id: UUID) -> Player:
        player = await self.get_player_by_id(player_id)
        if not player:
            raise ParticipantNotFoundError(f"Player not found: {player_id}")
        return player

    async def get_profile(self, player_id: UUID) -> dict:
        """Rating, statistics and balance projection for a wallet/profile UI."""
        player = await self.get_player_or_raise(player_id)
        return {
            "player_id": player.player_id,
            "username": player.username,
            "email": player.email,
            "elo": player.elo,
            "tier": self.rank_policy.tier_for_rating(player.elo),
            "rank_level": player.rank_level,
            "win_count": player.win_count,
            "lose_count": player.lose_count,
            "total_matches": player.total_matches,
            "win_rate": player.win_rate,
            "balance": player.balance_snapshot(),
            "created_at": player.created_at,
            "updated_at": player.updated_at,
        }

    async def get_leaderboard(self, limit: int | None = None) -> list[Player]:
        """Players ordered by rating, then wins, then seniority."""
        limit = limit or self.settings.leaderboard_limit
        result = await self.db.execute(
            select(Player)
            .order_by(Player.elo.desc(), Player.win_count.desc(), Player.created_at.asc())
            .limit(limit)
        )
        return list(result.scalars().all())
