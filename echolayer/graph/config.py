"""Configuration for the propagation graph.

All settings can be overridden via environment variables with GRAPH_ prefix.
Example: GRAPH_RESONANCE_THRESHOLD=0.6
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class GraphConfig(BaseSettings):
    """Propagation graph configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GRAPH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    max_traversal_depth: int = Field(
        default=6,
        ge=1,
        le=10,
        description="Hop limit for traversals (six degrees by default)",
    )

    # Resonance detection
    resonance_threshold: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Loop strength above which content is flagged resonant",
    )
    resonance_max_hops: int = Field(
        default=3,
        ge=2,
        le=6,
        description="Longest propagation cycle counted as back-and-forth amplification",
    )
    resonance_max_age_hours: int = Field(
        default=72,
        ge=1,
        description="Resonance entries older than this are pruned when weak",
    )
    resonance_min_strength: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Stale entries below this loop strength are pruned",
    )

    # Cross-platform attenuation
    cross_platform_transfer_factor: float = Field(
        default=0.8,
        gt=0.0,
        lt=1.0,
        description="Weight multiplier for edges whose platforms differ",
    )

    # Defaults for nodes the identity collaborator has no seed for
    default_influence: float = Field(default=0.5, ge=0.0, le=1.0)
    default_engagement_rate: float = Field(default=0.0, ge=0.0, le=1.0)

    # Interaction strength per interaction type, used when the event
    # does not carry an explicit strength
    strength_share: float = Field(default=1.0, gt=0.0)
    strength_repost: float = Field(default=0.9, gt=0.0)
    strength_quote: float = Field(default=1.0, gt=0.0)
    strength_mention: float = Field(default=0.6, gt=0.0)
    strength_link: float = Field(default=0.5, gt=0.0)
    strength_embed: float = Field(default=0.7, gt=0.0)
    strength_cross_post: float = Field(default=0.8, gt=0.0)
