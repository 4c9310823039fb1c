"""Match history model."""
from sqlalchemy import Column, DateTime, ForeignKey, JSON
import uuid
from datetime import datetime, UTC
from rankmatch.database import Base
from rankmatch.models.base import get_uuid_column


class MatchHistory(Base):
    """Snapshot of a match's reported result (moves, winner, client game data)."""

    __tablename__ = "match_histories"

    history_id = get_uuid_column(primary_key=True, default=uuid.uuid4)
    match_id = get_uuid_column(ForeignKey("matches.match_id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False)

    def __repr__(self):
        return f"<MatchHistory(history_id={self.history_id}, match_id={self.match_id})>"
