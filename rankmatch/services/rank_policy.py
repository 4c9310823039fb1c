"""Rank policy: rating tiers, entry fees, matchmaking bands and promotion rewards.

Pure lookups over an ordered, immutable tier table. The table is injected so
alternate tables can be used in tests or through configuration.
"""
import math
from dataclasses import dataclass, field
from typing import Iterable, Mapping

from rankmatch.config import Settings, get_settings


@dataclass(frozen=True)
class RankTier:
    """Inclusive rating range mapped to a tier level and entry fee."""
    level: int
    min_elo: float
    max_elo: float
    fee: int

    def contains(self, rating: float) -> bool:
        return self.min_elo <= rating <= self.max_elo


@dataclass(frozen=True)
class RankPolicy:
    """Stateless rank lookups over an ordered tier table."""

    tiers: tuple[RankTier, ...]
    band_step_minutes: float = 1.5
    band_wide_minutes: float = 5.0
    promotion_rewards: Mapping[int, int] = field(default_factory=dict)
    promotion_min_win_rate: float = 60.0
    promotion_base_matches: int = 10

    def __post_init__(self):
        if not self.tiers:
            raise ValueError("RankPolicy requires at least one tier")
        ordered = tuple(sorted(self.tiers, key=lambda tier: tier.level))
        object.__setattr__(self, "tiers", ordered)

    @classmethod
    def from_table(cls, table: Iterable[Mapping], **kwargs) -> "RankPolicy":
        """Build a policy from tier mappings; a missing/None ``max_elo`` is unbounded."""
        tiers = tuple(
            RankTier(
                level=int(row["level"]),
                min_elo=row["min_elo"],
                max_elo=math.inf if row.get("max_elo") is None else row["max_elo"],
                fee=int(row["fee"]),
            )
            for row in table
        )
        return cls(tiers=tiers, **kwargs)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "RankPolicy":
        settings = settings or get_settings()
        return cls.from_table(
            settings.rank_tiers,
            band_step_minutes=settings.rank_band_step_minutes,
            band_wide_minutes=settings.rank_band_wide_minutes,
            promotion_rewards=dict(settings.promotion_rewards),
            promotion_min_win_rate=settings.promotion_min_win_rate,
            promotion_base_matches=settings.promotion_base_matches,
        )

    @property
    def lowest_tier(self) -> RankTier:
        return self.tiers[0]

    @property
    def highest_tier(self) -> RankTier:
        return self.tiers[-1]

    def _tier_containing(self, rating: float) -> RankTier:
        for tier in self.tiers:
            if tier.contains(rating):
                return tier
        # Corrupt or negative ratings fall back to the lowest tier
        return self.lowest_tier

    def _tier_by_level(self, level: int) -> RankTier | None:
        for tier in self.tiers:
            if tier.level == level:
                return tier
        return None

    def tier_for_rating(self, rating: float) -> int:
        """Tier level whose inclusive range contains ``rating``."""
        return self._tier_containing(rating).level

    def fee_for_rating(self, rating: float) -> int:
        """Entry fee of the tier containing ``rating``."""
        return self._tier_containing(rating).fee

    def widen_levels(self, wait_minutes: float) -> int:
        """Number of tiers the band grows on each side after waiting."""
        if wait_minutes >= self.band_wide_minutes:
            return 2
        if wait_minutes >= self.band_step_minutes:
            return 1
        return 0

    def rating_band_for_tier(self, tier: int, wait_minutes: float = 0) -> tuple[float, float]:
        """Opponent rating window for a tier, widened by wait time.

        Clamped to the table's lowest and highest tiers. The upper bound is
        ``math.inf`` when the band reaches an unbounded top tier.
        """
        widen = self.widen_levels(wait_minutes)
        min_level = max(self.lowest_tier.level, tier - widen)
        max_level = min(self.highest_tier.level, tier + widen)

        min_tier = self._tier_by_level(min_level) or self.lowest_tier
        max_tier = self._tier_by_level(max_level) or self.highest_tier
        return min_tier.min_elo, max_tier.max_elo

    def promotion_reward(self, level: int) -> int:
        """Gem reward granted when ``level`` is first reached."""
        return int(self.promotion_rewards.get(level, 0))

    def hidden_promotion_matches(self, level: int) -> int:
        """Matches required to reach ``level`` through the win-rate route."""
        return self.promotion_base_matches * 2 ** max(0, level - 2)

    def qualifies_for_hidden_promotion(self, total_matches: int, win_rate: float, current_level: int) -> bool:
        """Whether a strong record earns the next level regardless of rating."""
        next_level = current_level + 1
        if self._tier_by_level(next_level) is None or next_level < 2:
            return False
        return (
            total_matches >= self.hidden_promotion_matches(next_level)
            and win_rate >= self.promotion_min_win_rate
        )
