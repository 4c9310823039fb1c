"""Participant account model with rating and escrowed balances."""
from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Float,
    Integer,
    String,
)
import uuid
from datetime import datetime, UTC
from rankmatch.database import Base
from rankmatch.models.base import CurrencyType, get_uuid_column


class Player(Base):
    """Participant account.

    Each currency X has a balance and a locked amount. Locked funds are
    earmarked for a pending match fee: they still count towards the balance
    but not towards what is available for spending or new reservations.
    """

    __tablename__ = "players"

    player_id = get_uuid_column(primary_key=True, default=uuid.uuid4)
    username = Column(String(80), unique=True, nullable=False)
    email = Column(String(255), unique=True, nullable=True)

    # Rating and statistics
    elo = Column(Integer, default=0, nullable=False)
    rank_level = Column(Integer, default=1, nullable=False)  # Highest tier reached
    win_count = Column(Integer, default=0, nullable=False)
    lose_count = Column(Integer, default=0, nullable=False)
    total_matches = Column(Integer, default=0, nullable=False)
    win_rate = Column(Float, default=0.0, nullable=False)  # Percent, 2 decimals

    # Balances
    gem = Column(Integer, default=0, nullable=False)
    coin = Column(Integer, default=0, nullable=False)
    locked_gem = Column(Integer, default=0, nullable=False)
    locked_coin = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("locked_gem >= 0 AND locked_gem <= gem", name="valid_locked_gem"),
        CheckConstraint("locked_coin >= 0 AND locked_coin <= coin", name="valid_locked_coin"),
        CheckConstraint("elo >= 0", name="valid_elo"),
    )

    def balance_of(self, currency: CurrencyType) -> int:
        return int(getattr(self, currency.balance_field) or 0)

    def locked_of(self, currency: CurrencyType) -> int:
        return int(getattr(self, currency.locked_field) or 0)

    def available(self, currency: CurrencyType) -> int:
        """Balance that can be spent or reserved."""
        return self.balance_of(currency) - self.locked_of(currency)

    def _set_amounts(self, currency: CurrencyType, balance: int, locked: int) -> None:
        if locked < 0 or locked > balance:
            raise ValueError(
                f"Invalid {currency.value} amounts for player {self.player_id}: "
                f"balance={balance}, locked={locked}"
            )
        setattr(self, currency.balance_field, balance)
        setattr(self, currency.locked_field, locked)

    def lock_funds(self, currency: CurrencyType, amount: int) -> None:
        """Earmark available funds."""
        self._set_amounts(currency, self.balance_of(currency), self.locked_of(currency) + amount)

    def unlock_funds(self, currency: CurrencyType, amount: int) -> None:
        """Return earmarked funds to the available balance."""
        self._set_amounts(currency, self.balance_of(currency), self.locked_of(currency) - amount)

    def spend_locked(self, currency: CurrencyType, amount: int) -> None:
        """Debit earmarked funds from the balance."""
        self._set_amounts(currency, self.balance_of(currency) - amount, self.locked_of(currency) - amount)

    def credit(self, currency: CurrencyType, amount: int) -> None:
        self._set_amounts(currency, self.balance_of(currency) + amount, self.locked_of(currency))

    def balance_snapshot(self) -> dict[str, int]:
        """Balance, locked and available amounts for every currency."""
        snapshot: dict[str, int] = {}
        for currency in CurrencyType:
            snapshot[currency.balance_field] = self.balance_of(currency)
            snapshot[currency.locked_field] = self.locked_of(currency)
            snapshot[f"available_{currency.value}"] = self.available(currency)
        return snapshot

    def __repr__(self):
        return (f"<Player(player_id={self.player_id}, username={self.username}, elo={self.elo}, "
                f"gem={self.gem}/{self.locked_gem}, coin={self.coin}/{self.locked_coin})>")
