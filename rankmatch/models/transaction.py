"""Transaction ledger model."""
from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String
import uuid
from datetime import datetime, UTC
from rankmatch.database import Base
from rankmatch.models.base import TransactionStatus, get_uuid_column


class Transaction(Base):
    """Append-only audit row for escrow and reward movements.

    Status starts as pending and moves to completed (fee committed) or
    cancelled (fee released) exactly once.
    """

    __tablename__ = "transactions"

    transaction_id = get_uuid_column(primary_key=True, default=uuid.uuid4)
    player_id = get_uuid_column(ForeignKey("players.player_id", ondelete="CASCADE"), nullable=False, index=True)
    match_id = get_uuid_column(ForeignKey("matches.match_id", ondelete="SET NULL"), nullable=True, index=True)
    transaction_type = Column(String(50), nullable=False, index=True)  # fee_reserve, promotion_reward
    amount = Column(Integer, nullable=False)
    currency_type = Column(String(20), nullable=False)
    status = Column(String(20), default=TransactionStatus.PENDING.value, nullable=False)
    description = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False, index=True)
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("status IN ('pending', 'completed', 'cancelled')", name="valid_transaction_status"),
        CheckConstraint("amount >= 0", name="valid_transaction_amount"),
        Index("ix_transactions_player_created", "player_id", "created_at"),
        Index("ix_transactions_match_player_status", "match_id", "player_id", "status"),
    )

    def transition_to(self, status: TransactionStatus, description: str | None = None) -> None:
        """Move a pending row to its final status."""
        if self.status != TransactionStatus.PENDING.value:
            raise ValueError(f"Transaction {self.transaction_id} already {self.status}")
        if status == TransactionStatus.PENDING:
            raise ValueError("A transaction cannot transition back to pending")
        self.status = status.value
        if description is not None:
            self.description = description

    def __repr__(self):
        return (f"<Transaction(transaction_id={self.transaction_id}, type={self.transaction_type}, "
                f"amount={self.amount}, status={self.status})>")
