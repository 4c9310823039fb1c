"""Matchmaking, escrow and settlement schemas."""
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from rankmatch.models.base import CurrencyType, MatchOutcome
from rankmatch.schemas.base import BaseSchema


class CreateMatchRequest(BaseModel):
    """Ranked match request; the caller plays white."""
    model_config = ConfigDict(populate_by_name=True)

    opponent_id: UUID = Field(..., alias="opponentId")
    fee: Optional[int] = Field(None, gt=0, description="Entry fee, defaults to the higher tier fee")
    currency: CurrencyType = CurrencyType.GEM


class MatchResultRequest(BaseModel):
    """Final result reported by the game client; no winner means a draw."""
    model_config = ConfigDict(populate_by_name=True)

    match_id: UUID = Field(..., alias="matchId")
    winner_id: Optional[UUID] = Field(None, alias="winnerId")
    moves: list[Any] = Field(default_factory=list)
    game_data: dict[str, Any] = Field(default_factory=dict, alias="gameData")


class EligibilityResponse(BaseSchema):
    player_id: UUID
    can_play: bool
    required_fee: int
    tier: int
    rating: int
    available: dict[str, int]
    eligible: dict[str, bool]
    message: str


class RankBandResponse(BaseSchema):
    """Opponent rating window; ``max_rating`` is null when unbounded."""
    tier: int
    wait_minutes: float
    widened_by: int
    min_rating: float
    max_rating: Optional[float]


class MatchResponse(BaseSchema):
    match_id: UUID
    white_id: UUID
    black_id: Optional[UUID]
    match_type: str
    status: str
    match_fee: Optional[int]
    currency_type: Optional[str]
    fee_reserved: bool
    fee_committed: bool
    winner_id: Optional[UUID] = None
    white_elo_before: Optional[int] = None
    white_elo_after: Optional[int] = None
    black_elo_before: Optional[int] = None
    black_elo_after: Optional[int] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class FeeCommitResponse(BaseSchema):
    match_id: UUID
    player_id: UUID
    remaining_balance: int
    fee_committed: bool
    match_status: str


class FeeReleaseResponse(BaseSchema):
    match_id: UUID
    player_id: UUID
    remaining_locked: int


class RatingSide(BaseSchema):
    player_id: UUID
    before: int
    after: int


class RatingChanges(BaseSchema):
    white: RatingSide
    black: RatingSide


class PromotionResponse(BaseSchema):
    player_id: UUID
    from_level: int
    to_level: int
    gem_reward: int


class MatchResultResponse(BaseSchema):
    match_id: UUID
    outcome: MatchOutcome
    status: str
    winner_id: Optional[UUID]
    ranked: bool
    rating_changes: RatingChanges
    history_id: UUID
    completed_at: datetime
    promotions: list[PromotionResponse] = []


class ReservedSeatResponse(BaseSchema):
    player_id: UUID
    fee: int
    currency: str


class ReservedMatchResponse(BaseSchema):
    match_id: UUID
    reserved_at: datetime
    waiting_minutes: float
    players: list[ReservedSeatResponse]


class ReservedMatchesResponse(BaseSchema):
    total_reserved: int
    reserved_matches: list[ReservedMatchResponse]


class TransactionResponse(BaseSchema):
    transaction_id: UUID
    player_id: UUID
    match_id: Optional[UUID]
    transaction_type: str
    amount: int
    currency_type: str
    status: str
    description: Optional[str]
    created_at: datetime


class TransactionListResponse(BaseModel):
    transactions: list[TransactionResponse]


class FeeStatusResponse(BaseSchema):
    match_id: UUID
    status: str
    match_type: str
    match_fee: Optional[int]
    currency_type: Optional[str]
    fee_reserved: bool
    fee_committed: bool
    transactions: list[TransactionResponse]
