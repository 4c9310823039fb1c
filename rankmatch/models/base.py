"""Base utilities for SQLAlchemy models."""
from enum import Enum
import uuid
from sqlalchemy import Column, String
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.sql import sqltypes


class CurrencyType(str, Enum):
    """Currency kinds a participant can hold and lock.

    Each member names its own balance/locked column pair on ``Player``.
    """
    GEM = "gem"
    COIN = "coin"

    @property
    def balance_field(self) -> str:
        return self.value

    @property
    def locked_field(self) -> str:
        return f"locked_{self.value}"


class MatchType(str, Enum):
    """Match type enumeration for type safety."""
    RANKED = "ranked"
    CASUAL = "casual"


class MatchStatus(str, Enum):
    """Match lifecycle status: waiting -> ongoing -> terminal."""
    WAITING = "waiting"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    WIN = "win"
    LOSE = "lose"
    DRAW = "draw"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_MATCH_STATUSES


TERMINAL_MATCH_STATUSES = frozenset(
    {MatchStatus.COMPLETED, MatchStatus.WIN, MatchStatus.LOSE, MatchStatus.DRAW}
)


class MatchOutcome(str, Enum):
    """Declared result of a match, relative to the white participant."""
    WIN = "win"
    LOSE = "lose"
    DRAW = "draw"


class TransactionType(str, Enum):
    """Transaction type enumeration for type safety."""
    FEE_RESERVE = "fee_reserve"
    PROMOTION_REWARD = "promotion_reward"


class TransactionStatus(str, Enum):
    """Transaction status; pending moves to completed or cancelled exactly once."""
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class GUID(sqltypes.TypeDecorator):
    """UUID type that is native on PostgreSQL and stored as hex text elsewhere."""

    impl = sqltypes.String
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PGUUID(as_uuid=True))
        return dialect.type_descriptor(String(36))

    @staticmethod
    def _coerce_uuid(value):
        if value is None or isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))

    def process_bind_param(self, value, dialect):
        value = self._coerce_uuid(value)
        if value is None or dialect.name == "postgresql":
            return value
        return value.hex

    def process_result_value(self, value, dialect):
        return self._coerce_uuid(value)


def get_uuid_column(*args, **kwargs):
    """Get a Column configured for portable UUID storage.

    Example:
        player_id = get_uuid_column(primary_key=True, default=uuid.uuid4)
        match_id = get_uuid_column(ForeignKey("matches.match_id"), nullable=True)
    """
    return Column(GUID(), *args, **kwargs)
