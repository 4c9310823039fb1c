"""Player-related Pydantic schemas."""
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from rankmatch.schemas.base import BaseSchema


class PlayerBalance(BaseSchema):
    """Balance, locked and available amounts per currency."""
    gem: int
    locked_gem: int
    available_gem: int
    coin: int
    locked_coin: int
    available_coin: int


class PlayerProfile(BaseSchema):
    player_id: UUID
    username: str
    email: Optional[str]
    elo: int
    tier: int
    rank_level: int
    win_count: int
    lose_count: int
    total_matches: int
    win_rate: float
    balance: PlayerBalance
    created_at: datetime
    updated_at: Optional[datetime]


class LeaderboardEntry(BaseSchema):
    rank: int
    player_id: UUID
    username: str
    elo: int
    rank_level: int
    win_count: int
    total_matches: int
    win_rate: float


class LeaderboardResponse(BaseModel):
    entries: list[LeaderboardEntry]
