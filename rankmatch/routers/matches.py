"""Rooms and match history API router."""
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from rankmatch.database import get_db
from rankmatch.dependencies import ensure_participant, get_current_player
from rankmatch.models.player import Player
from rankmatch.schemas.match import (
    CreateRoomRequest,
    MatchHistoryCreate,
    MatchHistoryListResponse,
    MatchHistoryResponse,
)
from rankmatch.schemas.matchmaking import MatchResponse
from rankmatch.services import MatchHistoryService, MatchService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/rooms", response_model=MatchResponse)
async def create_room(
    request: CreateRoomRequest | None = None,
    player: Player = Depends(get_current_player),
    db: AsyncSession = Depends(get_db),
):
    """Open a waiting match with the caller as white."""
    match_type = request.match_type if request else CreateRoomRequest().match_type
    match = await MatchService(db).create_open(player.player_id, match_type)
    return MatchResponse.model_validate(match)


@router.post("/rooms/{match_id}/join", response_model=MatchResponse)
async def join_room(
    match_id: UUID,
    player: Player = Depends(get_current_player),
    db: AsyncSession = Depends(get_db),
):
    match = await MatchService(db).join(match_id, player.player_id)
    return MatchResponse.model_validate(match)


@router.delete("/rooms/{match_id}")
async def delete_room(
    match_id: UUID,
    player: Player = Depends(get_current_player),
    db: AsyncSession = Depends(get_db),
):
    """Close a room that has not started; only its creator may do so."""
    match_service = MatchService(db)
    match = await match_service.get(match_id)
    if match.white_id != player.player_id:
        raise HTTPException(status_code=403, detail="not_room_owner")
    await match_service.delete_abandoned(match_id)
    return {"success": True, "match_id": str(match_id)}


@router.post("/{match_id}/history", response_model=MatchHistoryResponse)
async def save_match_history(
    match_id: UUID,
    request: MatchHistoryCreate,
    player: Player = Depends(get_current_player),
    db: AsyncSession = Depends(get_db),
):
    ensure_participant(await MatchService(db).get(match_id), player)
    entry = await MatchHistoryService(db).save(match_id, request.content)
    return MatchHistoryResponse.model_validate(entry)


@router.get("/{match_id}/history", response_model=MatchHistoryListResponse)
async def get_match_history(
    match_id: UUID,
    player: Player = Depends(get_current_player),
    db: AsyncSession = Depends(get_db),
):
    ensure_participant(await MatchService(db).get(match_id), player)
    entries = await MatchHistoryService(db).get_match_history(match_id)
    return MatchHistoryListResponse(
        match_id=match_id,
        entries=[MatchHistoryResponse.model_validate(entry) for entry in entries],
    )
