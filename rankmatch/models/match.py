"""Match model."""
from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String
import uuid
from datetime import datetime, UTC
from rankmatch.database import Base
from rankmatch.models.base import MatchStatus, MatchType, get_uuid_column


class Match(Base):
    """Pairing of two participants with its escrowed fee and rating bookkeeping.

    White is the reference side: a declared "win" means white won.
    """

    __tablename__ = "matches"

    match_id = get_uuid_column(primary_key=True, default=uuid.uuid4)
    white_id = get_uuid_column(ForeignKey("players.player_id", ondelete="CASCADE"), nullable=False, index=True)
    black_id = get_uuid_column(ForeignKey("players.player_id", ondelete="CASCADE"), nullable=True, index=True)
    match_type = Column(String(20), default=MatchType.RANKED.value, nullable=False)
    status = Column(String(20), default=MatchStatus.WAITING.value, nullable=False)

    # Fee escrow
    match_fee = Column(Integer, nullable=True)
    currency_type = Column(String(20), nullable=True)
    fee_reserved = Column(Boolean, default=False, nullable=False)
    fee_committed = Column(Boolean, default=False, nullable=False)

    winner_id = get_uuid_column(nullable=True)

    # Rating snapshots
    white_elo_before = Column(Integer, nullable=True)
    white_elo_after = Column(Integer, nullable=True)
    black_elo_before = Column(Integer, nullable=True)
    black_elo_after = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('waiting', 'ongoing', 'completed', 'win', 'lose', 'draw')",
            name="valid_match_status",
        ),
        CheckConstraint("match_type IN ('ranked', 'casual')", name="valid_match_type"),
        CheckConstraint("match_fee IS NULL OR match_fee > 0", name="valid_match_fee"),
        CheckConstraint("NOT fee_committed OR fee_reserved", name="commit_requires_reserve"),
        Index("ix_matches_status_created", "status", "created_at"),
    )

    @property
    def is_terminal(self) -> bool:
        return MatchStatus(self.status).is_terminal

    @property
    def is_ranked(self) -> bool:
        return self.match_type == MatchType.RANKED.value

    @property
    def participant_ids(self) -> tuple:
        return tuple(pid for pid in (self.white_id, self.black_id) if pid is not None)

    def has_participant(self, player_id) -> bool:
        return player_id is not None and player_id in self.participant_ids

    def rating_changes(self) -> dict | None:
        """Before/after rating payload for both sides, once settled."""
        if self.white_elo_after is None and self.black_elo_after is None:
            return None
        return {
            "white": {"player_id": self.white_id, "before": self.white_elo_before, "after": self.white_elo_after},
            "black": {"player_id": self.black_id, "before": self.black_elo_before, "after": self.black_elo_after},
        }

    def __repr__(self):
        return (f"<Match(match_id={self.match_id}, white_id={self.white_id}, black_id={self.black_id}, "
                f"status={self.status})>")
