"""Player API router."""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from rankmatch.config import get_settings
from rankmatch.database import get_db
from rankmatch.dependencies import get_current_player
from rankmatch.models.player import Player
from rankmatch.schemas.player import LeaderboardEntry, LeaderboardResponse, PlayerProfile
from rankmatch.services import PlayerService

settings = get_settings()

router = APIRouter()


@router.get("/profile", response_model=PlayerProfile)
async def get_profile(
    player: Player = Depends(get_current_player),
    db: AsyncSession = Depends(get_db),
):
    """Rating, statistics and balance projection for the caller."""
    profile = await PlayerService(db).get_profile(player.player_id)
    return PlayerProfile.model_validate(profile)


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def get_leaderboard(
    limit: int = Query(settings.leaderboard_limit, ge=1, le=200),
    player: Player = Depends(get_current_player),
    db: AsyncSession = Depends(get_db),
):
    players = await PlayerService(db).get_leaderboard(limit)
    entries = [
        LeaderboardEntry(
            rank=index,
            player_id=ranked.player_id,
            username=ranked.username,
            elo=ranked.elo,
            rank_level=ranked.rank_level,
            win_count=ranked.win_count,
            total_matches=ranked.total_matches,
            win_rate=ranked.win_rate,
        )
        for index, ranked in enumerate(players, start=1)
    ]
    return LeaderboardResponse(entries=entries)
