"""Configuration for reward allocation.

All settings can be overridden via environment variables with REWARD_ prefix.
Example: REWARD_DAILY_BUDGET=2500
"""

import math
from decimal import Decimal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RewardConfig(BaseSettings):
    """Reward pool and formula configuration."""

    model_config = SettingsConfigDict(
        env_prefix="REWARD_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    daily_budget: Decimal = Field(
        default=Decimal("1000"),
        gt=Decimal("0"),
        description="Budget split across the sub-pools each period",
    )

    # Pool split (must sum to 1.0)
    creation_share: float = Field(default=0.40, ge=0.0, le=1.0)
    propagation_share: float = Field(default=0.30, ge=0.0, le=1.0)
    discovery_share: float = Field(default=0.15, ge=0.0, le=1.0)
    quality_bonus_share: float = Field(default=0.10, ge=0.0, le=1.0)
    reserve_share: float = Field(default=0.05, ge=0.0, le=1.0)

    # Creation
    base_rate: float = Field(
        default=1.0,
        gt=0.0,
        description="Reward units per point of composite score",
    )
    quality_multiplier: float = Field(
        default=1.5,
        ge=1.0,
        description="Multiplier applied to the base when quality is high",
    )
    quality_threshold: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Quality score above which the quality multiplier applies",
    )

    # Propagation
    propagation_multiplier: float = Field(
        default=2.0,
        ge=1.0,
        description="Multiplier applied to the base when the content is in a strong loop",
    )
    loop_bonus_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    creator_share: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Fraction of a propagation reward paid to the original creator",
    )

    # Quality bonus
    quality_bonus_base: float = Field(
        default=10.0,
        gt=0.0,
        description="Reward units per point of quality improvement",
    )

    @model_validator(mode="after")
    def _shares_sum_to_one(self) -> "RewardConfig":
        total = (
            self.creation_share
            + self.propagation_share
            + self.discovery_share
            + self.quality_bonus_share
            + self.reserve_share
        )
        if not math.isclose(total, 1.0, abs_tol=1e-9):
            raise ValueError(f"Pool shares must sum to 1.0, got {total:.6f}")
        return self
