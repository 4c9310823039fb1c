"""FastAPI dependencies."""
import logging
from uuid import UUID

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from rankmatch.database import get_db
from rankmatch.models.match import Match
from rankmatch.models.player import Player
from rankmatch.services.player_service import PlayerService
from rankmatch.utils.tokens import TokenError, decode_access_token

logger = logging.getLogger(__name__)


async def get_current_player(
        authorization: str | None = Header(default=None, alias="Authorization"),
        db: AsyncSession = Depends(get_db),
) -> Player:
    """Resolve the authenticated participant from a Bearer access token."""
    if not authorization:
        raise HTTPException(status_code=401, detail="missing_credentials")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="invalid_authorization_header")

    try:
        payload = decode_access_token(token)
        player_id_str = payload.get("sub")
        if not player_id_str:
            raise TokenError("invalid_token")
        player_id = UUID(str(player_id_str))
    except (ValueError, TokenError) as exc:
        detail = "token_expired" if str(exc) == "token_expired" else "invalid_token"
        raise HTTPException(status_code=401, detail=detail) from exc

    player = await PlayerService(db).get_player_by_id(player_id)
    if not player:
        raise HTTPException(status_code=401, detail="invalid_token")

    logger.debug(f"Authenticated player via JWT: {player.player_id}")
    return player


def ensure_participant(match: Match, player: Player) -> None:
    """Reject callers who do not play in ``match``."""
    if not match.has_participant(player.player_id):
        logger.warning(f"Player {player.player_id} attempted to act on match {match.match_id}")
        raise HTTPException(status_code=403, detail="not_a_participant")
