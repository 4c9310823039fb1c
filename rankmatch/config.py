"""Application configuration management."""
from pydantic import model_validator, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from sqlalchemy.engine.url import make_url, URL
from typing import Optional
import json
import logging

SQLITE_LOCAL_URL = "sqlite+aiosqlite:///./rankmatch.db"

# Upper bound of the last tier is open-ended (null)
DEFAULT_RANK_TIERS: list[dict] = [
    {"level": 1, "min_elo": 0, "max_elo": 500, "fee": 1},
    {"level": 2, "min_elo": 501, "max_elo": 1100, "fee": 2},
    {"level": 3, "min_elo": 1101, "max_elo": 1500, "fee": 4},
    {"level": 4, "min_elo": 1501, "max_elo": 2100, "fee": 8},
    {"level": 5, "min_elo": 2101, "max_elo": 2900, "fee": 16},
    {"level": 6, "min_elo": 2901, "max_elo": 4000, "fee": 32},
    {"level": 7, "min_elo": 4001, "max_elo": None, "fee": 64},
]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str = SQLITE_LOCAL_URL
    db_pool_size: int = 5
    db_max_overflow: int = 10

    # Application
    frontend_url: str = "http://localhost:5173"
    environment: str = "development"
    secret_key: str = "dev-secret-key-change-in-production"
    jwt_algorithm: str = "HS256"  # Tokens are issued by the identity layer with the same key
    access_token_exp_minutes: int = 120

    # Participant defaults
    starting_elo: int = 0
    starting_gem: int = 0
    starting_coin: int = 0

    # Rating
    elo_floor: int = 0
    elo_ceiling: int = 3000

    # Rank tiers and matchmaking band
    rank_tiers: list[dict] = DEFAULT_RANK_TIERS
    rank_band_step_minutes: float = 1.5  # Wait before widening the band by one tier
    rank_band_wide_minutes: float = 5.0  # Wait before widening the band by two tiers

    # Rank promotion (gem reward per newly reached level)
    promotion_rewards: dict[int, int] = {2: 10, 3: 20, 4: 80, 5: 320, 6: 1280, 7: 5120}
    promotion_min_win_rate: float = 60.0  # Percent
    promotion_base_matches: int = 10  # Matches needed for a hidden promotion to level 2, doubles per level

    # Fee escrow
    reject_duplicate_reservations: bool = True
    reservation_timeout_minutes: int = 5
    reservation_sweep_interval_seconds: int = 60

    # Projections
    transaction_history_limit: int = 20
    leaderboard_limit: int = 50

    @field_validator("rank_tiers", mode="before")
    @classmethod
    def parse_rank_tiers(cls, value):
        """Accept the rank tier table as a JSON string from the environment."""
        if value is None:
            return DEFAULT_RANK_TIERS
        if isinstance(value, str):
            value = json.loads(value)
        if not isinstance(value, list) or not value:
            raise ValueError("rank_tiers must be a non-empty list of tier objects")
        return value

    @model_validator(mode="after")
    def validate_all_config(self):
        """Validate security configuration and normalize Postgres URLs."""
        logger = logging.getLogger(__name__)

        # Security validation
        if self.environment == "production":
            if self.secret_key == "dev-secret-key-change-in-production":
                raise ValueError("secret_key must be changed from default value in production")

        if self.jwt_algorithm not in ["HS256", "HS384", "HS512"]:
            raise ValueError(f"Unsupported JWT algorithm: {self.jwt_algorithm}. Use HS256, HS384, or HS512.")

        if self.access_token_exp_minutes < 1 or self.access_token_exp_minutes > 1440:  # 1 min to 24 hours
            raise ValueError("access_token_exp_minutes must be between 1 and 1440 (24 hours)")

        if self.elo_floor >= self.elo_ceiling:
            raise ValueError("elo_floor must be lower than elo_ceiling")

        if self.rank_band_step_minutes > self.rank_band_wide_minutes:
            raise ValueError("rank_band_step_minutes must not exceed rank_band_wide_minutes")

        if self.reservation_timeout_minutes < 1:
            raise ValueError("reservation_timeout_minutes must be at least 1 minute")

        # Database URL normalization
        url = self.database_url
        if not url:
            logger.warning("Empty DATABASE_URL, using SQLite fallback")
            self.database_url = SQLITE_LOCAL_URL
            return self

        parsed: Optional[URL] = None
        try:
            parsed = make_url(url)
        except Exception as e:  # pragma: no cover - defensive fallback
            logger.error(f"Failed to parse DATABASE_URL: {e}")
            logger.warning("Invalid DATABASE_URL; falling back to default sqlite database.")
            self.database_url = SQLITE_LOCAL_URL
            return self

        drivername = parsed.drivername
        if drivername.startswith("postgres") and "+asyncpg" not in drivername:
            old_drivername = drivername
            parsed = parsed.set(drivername="postgresql+asyncpg")
            logger.info(f"Driver normalized: {old_drivername} -> {parsed.drivername}")

        # render_as_string re-encodes special characters in the password
        self.database_url = parsed.render_as_string(hide_password=False)
        return self

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
