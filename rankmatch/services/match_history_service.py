"""Match history entries: incremental or final result snapshots."""
import logging
import uuid
from datetime import datetime, UTC
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rankmatch.models.match import Match
from rankmatch.models.match_history import MatchHistory
from rankmatch.utils import unit_of_work
from rankmatch.utils.exceptions import MatchNotFoundError

logger = logging.getLogger(__name__)


class MatchHistoryService:
    """Append and read history entries for a match."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _ensure_match(self, match_id: UUID) -> None:
        result = await self.db.execute(select(Match.match_id).where(Match.match_id == match_id))
        if result.scalar_one_or_none() is None:
            raise MatchNotFoundError(f"Match not found: {match_id}")

    async def save(self, match_id: UUID, content: dict[str, Any]) -> MatchHistory:
        """Append a history entry with an opaque payload."""
        await self._ensure_match(match_id)
        async with unit_of_work(self.db, name="match_history_save"):
            entry = MatchHistory(
                history_id=uuid.uuid4(),
                match_id=match_id,
                content=content,
                created_at=datetime.now(UTC),
            )
            self.db.add(entry)

        logger.info(f"Match history saved: match={match_id}, history={entry.history_id}")
        return entry

    async def get_match_history(self, match_id: UUID) -> list[MatchHistory]:
        """All entries for a match, oldest first."""
        await self._ensure_match(match_id)
        result = await self.db.execute(
            select(MatchHistory)
            .where(MatchHistory.match_id == match_id)
            .order_by(MatchHistory.created_at.asc())
        )
        return list(result.scalars().all())
