"""Room and match history schemas."""
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from rankmatch.models.base import MatchType
from rankmatch.schemas.base import BaseSchema


class CreateRoomRequest(BaseModel):
    match_type: MatchType = MatchType.CASUAL


class MatchHistoryCreate(BaseModel):
    content: dict[str, Any] = Field(..., description="Opaque result payload (moves, winner, game data)")


class MatchHistoryResponse(BaseSchema):
    history_id: UUID
    match_id: UUID
    content: Optional[dict[str, Any]]
    created_at: datetime


class MatchHistoryListResponse(BaseModel):
    match_id: UUID
    entries: list[MatchHistoryResponse]
