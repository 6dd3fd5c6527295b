"""Engine configuration."""
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Engine settings.

    Values are read from ``POKERFLOOR_*`` environment variables or ``.env``.
    """

    # App
    app_env: str = "development"
    log_level: str = "INFO"
    json_logs: bool = False

    # Redis snapshot store
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL for tournament snapshots",
    )
    snapshot_key_prefix: str = Field(
        default="tournament:snapshot",
        description="Key prefix for persisted tournament records",
    )
    snapshot_hmac_key: str = Field(
        default="pokerfloor-dev-key",
        description="HMAC key for snapshot integrity (운영 환경에서는 반드시 변경)",
    )

    # Payouts
    payout_rounding_unit: int = Field(
        default=5,
        description="Each derived payout place is floored to this unit",
    )
    deal_rounding_unit: int = Field(
        default=100,
        description="Deal proposals are rounded to this unit",
    )

    # Seating
    default_table_seats: int = Field(
        default=9,
        description="Seat count for tables added without an explicit size",
    )
    random_seed: Optional[int] = Field(
        default=None,
        description="Fixed seed for seat draws (테스트/재현용)",
    )

    # Dealer rotation
    dealer_block_sizes: tuple[int, ...] = Field(
        default=(5, 4, 3, 2),
        description="Preferred table block sizes, largest first",
    )
    dealer_block_swap_minutes: int = Field(
        default=120,
        description="Interval after which dealer teams move between table blocks",
    )

    model_config = {
        "env_prefix": "POKERFLOOR_",
        "env_file": ".env",
        "extra": "ignore",
    }

    @field_validator("dealer_block_sizes")
    @classmethod
    def validate_block_sizes(cls, v: tuple[int, ...]) -> tuple[int, ...]:
        if not v or any(size < 1 for size in v):
            raise ValueError("dealer_block_sizes must contain positive sizes")
        return tuple(sorted(v, reverse=True))


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
