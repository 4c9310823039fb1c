"""Matchmaking API router: eligibility, ranked match creation, fee escrow and results.

Domain errors raised by the services propagate to the application-level
handler, which maps them to HTTP status codes.
"""
import logging
import math
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from rankmatch.config import get_settings
from rankmatch.database import get_db
from rankmatch.dependencies import ensure_participant, get_current_player
from rankmatch.models.player import Player
from rankmatch.schemas.matchmaking import (
    CreateMatchRequest,
    EligibilityResponse,
    FeeCommitResponse,
    FeeReleaseResponse,
    FeeStatusResponse,
    MatchResponse,
    MatchResultRequest,
    MatchResultResponse,
    PromotionResponse,
    RankBandResponse,
    RatingChanges,
    ReservedMatchesResponse,
    TransactionListResponse,
    TransactionResponse,
)
from rankmatch.services import MatchmakingService, SettlementResult

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter()


def _result_response(result: SettlementResult) -> MatchResultResponse:
    return MatchResultResponse(
        match_id=result.match_id,
        outcome=result.outcome,
        status=result.status.value,
        winner_id=result.winner_id,
        ranked=result.ranked,
        rating_changes=RatingChanges.model_validate(result.rating_changes()),
        history_id=result.history_id,
        completed_at=result.completed_at,
        promotions=[PromotionResponse.model_validate(promotion) for promotion in result.promotions],
    )


@router.get("/rank-status", response_model=EligibilityResponse)
async def check_rank_status(
    player: Player = Depends(get_current_player),
    db: AsyncSession = Depends(get_db),
):
    """Whether the caller can afford their tier's ranked entry fee."""
    eligibility = await MatchmakingService(db).check_rank_eligibility(player.player_id)
    return EligibilityResponse(
        player_id=player.player_id,
        can_play=eligibility.can_play,
        required_fee=eligibility.required_fee,
        tier=eligibility.tier,
        rating=eligibility.rating,
        available={currency.value: amount for currency, amount in eligibility.available_by_currency.items()},
        eligible={currency.value: ok for currency, ok in eligibility.eligible_by_currency.items()},
        message=eligibility.message,
    )


@router.get("/rank-band", response_model=RankBandResponse)
async def get_rank_band(
    wait_minutes: float = Query(0, ge=0),
    player: Player = Depends(get_current_player),
    db: AsyncSession = Depends(get_db),
):
    """Opponent rating window for the caller's tier after ``wait_minutes`` in queue."""
    policy = MatchmakingService(db).rank_policy
    tier = policy.tier_for_rating(player.elo)
    min_rating, max_rating = policy.rating_band_for_tier(tier, wait_minutes)
    return RankBandResponse(
        tier=tier,
        wait_minutes=wait_minutes,
        widened_by=policy.widen_levels(wait_minutes),
        min_rating=min_rating,
        max_rating=None if math.isinf(max_rating) else max_rating,
    )


@router.post("/create-match", response_model=MatchResponse)
async def create_match(
    request: CreateMatchRequest,
    player: Player = Depends(get_current_player),
    db: AsyncSession = Depends(get_db),
):
    """Create a ranked match against ``opponentId`` and reserve both fees."""
    logger.info(f"[API /matchmaking/create-match] {player.player_id} vs {request.opponent_id}")
    match = await MatchmakingService(db).create_match(
        player.player_id,
        request.opponent_id,
        fee=request.fee,
        currency=request.currency,
    )
    return MatchResponse.model_validate(match)


@router.post("/start-match/{match_id}", response_model=MatchResponse)
async def start_match(
    match_id: UUID,
    player: Player = Depends(get_current_player),
    db: AsyncSession = Depends(get_db),
):
    service = MatchmakingService(db)
    ensure_participant(await service.matches.get(match_id), player)
    match = await service.start_match(match_id)
    return MatchResponse.model_validate(match)


@router.post("/commit-match/{match_id}", response_model=FeeCommitResponse)
async def commit_match(
    match_id: UUID,
    player: Player = Depends(get_current_player),
    db: AsyncSession = Depends(get_db),
):
    """Debit the caller's reserved fee for a match."""
    service = MatchmakingService(db)
    ensure_participant(await service.matches.get(match_id), player)
    outcome = await service.commit_match_fee(player.player_id, match_id)
    return FeeCommitResponse(
        match_id=outcome.match_id,
        player_id=outcome.player_id,
        remaining_balance=outcome.remaining_balance,
        fee_committed=outcome.fee_committed,
        match_status=outcome.match_status,
    )


@router.post("/release-match/{match_id}", response_model=FeeReleaseResponse)
async def release_match(
    match_id: UUID,
    player: Player = Depends(get_current_player),
    db: AsyncSession = Depends(get_db),
):
    """Return the caller's reserved fee for a cancelled match."""
    service = MatchmakingService(db)
    ensure_participant(await service.matches.get(match_id), player)
    remaining_locked = await service.release_match_fee(player.player_id, match_id)
    return FeeReleaseResponse(match_id=match_id, player_id=player.player_id, remaining_locked=remaining_locked)


@router.post("/match-result", response_model=MatchResultResponse)
async def report_match_result(
    request: MatchResultRequest,
    player: Player = Depends(get_current_player),
    db: AsyncSession = Depends(get_db),
):
    """Settle a match from the reported winner (omit ``winnerId`` for a draw)."""
    service = MatchmakingService(db)
    ensure_participant(await service.matches.get(request.match_id), player)
    result = await service.process_match_result(
        request.match_id,
        request.winner_id,
        moves=request.moves,
        game_data=request.game_data,
    )
    return _result_response(result)


@router.get("/reserved-matches", response_model=ReservedMatchesResponse)
async def get_reserved_matches(
    player: Player = Depends(get_current_player),
    db: AsyncSession = Depends(get_db),
):
    """In-process view of reservations awaiting commit or release."""
    return ReservedMatchesResponse.model_validate(MatchmakingService(db).get_reserved_matches_info())


@router.get("/matches/{match_id}/fee-status", response_model=FeeStatusResponse)
async def get_fee_status(
    match_id: UUID,
    player: Player = Depends(get_current_player),
    db: AsyncSession = Depends(get_db),
):
    service = MatchmakingService(db)
    ensure_participant(await service.matches.get(match_id), player)
    status = await service.get_fee_status(match_id)
    return FeeStatusResponse.model_validate(status)


@router.get("/transactions/user", response_model=TransactionListResponse)
async def get_user_transactions(
    limit: int = Query(settings.transaction_history_limit, ge=1, le=100),
    player: Player = Depends(get_current_player),
    db: AsyncSession = Depends(get_db),
):
    """The caller's most recent escrow and reward transactions."""
    transactions = await MatchmakingService(db).ledger.get_player_transactions(player.player_id, limit=limit)
    return TransactionListResponse(
        transactions=[TransactionResponse.model_validate(transaction) for transaction in transactions]
    )
