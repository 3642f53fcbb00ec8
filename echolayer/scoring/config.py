"""Configuration for the attention score engine.

Controls the four component weights, the composite boost and the temporal
decay applied to stored scores. All settings can be overridden via
``SCORING_*`` environment variables.

Example:
    SCORING_BOOST_THRESHOLD=0.7
    SCORING_ODF_WEIGHT=0.35 SCORING_AWR_WEIGHT=0.20
"""

import math

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from echolayer.scoring.schemas import ScoreWeights


class ScoringConfig(BaseSettings):
    """Configuration for the attention scoring pipeline."""

    model_config = SettingsConfigDict(
        env_prefix="SCORING_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Component weights (must sum to 1.0)
    odf_weight: float = Field(
        default=0.30,
        ge=0.0,
        le=1.0,
        description="Weight of the organic discovery factor",
    )
    awr_weight: float = Field(
        default=0.25,
        ge=0.0,
        le=1.0,
        description="Weight of the attention weight ratio",
    )
    tpm_weight: float = Field(
        default=0.25,
        ge=0.0,
        le=1.0,
        description="Weight of the temporal persistence metric",
    )
    qf_weight: float = Field(
        default=0.20,
        ge=0.0,
        le=1.0,
        description="Weight of the quality factor",
    )

    # Composite boost
    boost_threshold: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Weighted sums strictly above this value are boosted",
    )
    boost_multiplier: float = Field(
        default=1.2,
        ge=1.0,
        le=3.0,
        description="Multiplier applied to boosted composites before clamping",
    )

    # Decay of stored composites
    decay_factor: float = Field(
        default=0.95,
        gt=0.0,
        le=1.0,
        description="Fraction of a composite retained per elapsed day",
    )

    @model_validator(mode="after")
    def _weights_sum_to_one(self) -> "ScoringConfig":
        total = self.odf_weight + self.awr_weight + self.tpm_weight + self.qf_weight
        if not math.isclose(total, 1.0, abs_tol=1e-9):
            raise ValueError(f"score weights must sum to 1.0, got {total:.6f}")
        return self

    @property
    def weights(self) -> ScoreWeights:
        """Component weights as an immutable weight set."""
        return ScoreWeights(
            odf=self.odf_weight,
            awr=self.awr_weight,
            tpm=self.tpm_weight,
            qf=self.qf_weight,
        )
