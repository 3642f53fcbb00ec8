"""Data models for attention scoring.

Defines the engagement snapshot delivered by the ingestion collaborator,
the ContentItem it describes, and the immutable AttentionScore produced
for each scoring pass.

Four components make up the composite:
- odf: organic discovery factor (authentic, non-paid spread)
- awr: attention weight ratio (interaction depth, retention, popularity)
- tpm: temporal persistence metric (durability and sustained relevance)
- qf: quality factor (sentiment, credibility, relevance, originality)
"""

import math
from datetime import datetime, timezone
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from echolayer.errors import InputValidationError


def _utc_now() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


def _as_utc(value: datetime | None) -> datetime | None:
    """Treat naive timestamps as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ScoreWeights(BaseModel):
    """Weight set for the four score components. Must sum to 1.0."""

    model_config = ConfigDict(frozen=True)

    odf: float = Field(default=0.30, ge=0.0, le=1.0)
    awr: float = Field(default=0.25, ge=0.0, le=1.0)
    tpm: float = Field(default=0.25, ge=0.0, le=1.0)
    qf: float = Field(default=0.20, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _sum_to_one(self) -> "ScoreWeights":
        total = self.odf + self.awr + self.tpm + self.qf
        if not math.isclose(total, 1.0, abs_tol=1e-9):
            raise ValueError(f"score weights must sum to 1.0, got {total:.6f}")
        return self


class EngagementSnapshot(BaseModel):
    """
    Raw engagement metrics for one content item at one point in time.

    A new snapshot replaces the previous one on every rescoring pass; the
    counters are never merged.
    """

    model_config = ConfigDict(frozen=True)

    views: int = Field(default=0, ge=0, description="Total views")
    organic_shares: int = Field(default=0, ge=0, description="Shares not driven by promotion")
    total_shares: int = Field(default=0, ge=0, description="All shares")
    dwell_seconds: float = Field(default=0.0, ge=0.0, description="Average view time")
    engagement_counts: dict[str, int] = Field(
        default_factory=dict,
        description="Per-type engagement counts (likes, comments, saves, ...)",
    )
    platform_reach: int = Field(default=0, ge=0, description="Audience reachable on the platform")
    last_interaction_at: datetime | None = Field(
        default=None,
        description="Most recent interaction; defaults to the content's creation time",
    )
    interaction_frequency: float = Field(
        default=0.0,
        ge=0.0,
        description="Interactions per day",
    )

    # Quality signals
    sentiment: float = Field(default=0.0, ge=-1.0, le=1.0)
    credibility: float = Field(default=0.5, ge=0.0, le=1.0)
    relevance: float = Field(default=0.5, ge=0.0, le=1.0)
    originality: float = Field(default=0.5, ge=0.0, le=1.0)

    @field_validator("last_interaction_at")
    @classmethod
    def _utc_last_interaction(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    @model_validator(mode="after")
    def _check_consistency(self) -> "EngagementSnapshot":
        if self.organic_shares > self.total_shares:
            raise ValueError(
                f"organic_shares ({self.organic_shares}) cannot exceed "
                f"total_shares ({self.total_shares})"
            )
        negative = {k: v for k, v in self.engagement_counts.items() if v < 0}
        if negative:
            raise ValueError(f"engagement counts must be non-negative: {negative}")
        return self

    @property
    def engagement_total(self) -> int:
        """Sum of all per-type engagement counts."""
        return sum(self.engagement_counts.values())


class ContentItem(BaseModel):
    """A piece of content as delivered by the ingestion collaborator."""

    model_config = ConfigDict(frozen=True)

    content_id: str = Field(..., min_length=1)
    creator_id: str = Field(..., min_length=1, description="Identity of the author")
    platform: str = Field(..., min_length=1, description="Platform the item was published on")
    created_at: datetime = Field(..., description="UTC creation timestamp")
    engagement: EngagementSnapshot = Field(default_factory=EngagementSnapshot)

    @field_validator("created_at")
    @classmethod
    def _utc_created_at(cls, value: datetime) -> datetime:
        return _as_utc(value)

    def with_snapshot(self, snapshot: EngagementSnapshot) -> "ContentItem":
        """Return a copy carrying a replacement engagement snapshot."""
        return self.model_copy(update={"engagement": snapshot})


class AttentionScore(BaseModel):
    """
    One immutable scoring result for a content item.

    Rescoring produces a new version; earlier versions are never modified.
    """

    model_config = ConfigDict(frozen=True)

    content_id: str
    odf: float = Field(ge=0.0, le=1.0)
    awr: float = Field(ge=0.0, le=1.0)
    tpm: float = Field(ge=0.0, le=1.0)
    qf: float = Field(ge=0.0, le=1.0)
    composite: float = Field(ge=0.0, le=1.0)
    boosted: bool = False
    weights: ScoreWeights = Field(default_factory=ScoreWeights)
    calculated_at: datetime = Field(default_factory=_utc_now)
    version: int = Field(default=1, ge=1)


def parse_content_item(payload: dict[str, Any]) -> ContentItem:
    """Build a ContentItem from an ingestion payload.

    Raises:
        InputValidationError: With the offending fields when the payload is
            malformed or a metric is out of range.
    """
    if not isinstance(payload, dict):
        raise InputValidationError(
            f"Content payload must be an object, got {type(payload).__name__}"
        )
    try:
        return ContentItem.model_validate(payload)
    except ValidationError as exc:
        errors = [
            {"field": ".".join(str(p) for p in err["loc"]), "error": err["msg"]}
            for err in exc.errors()
        ]
        raise InputValidationError(
            f"invalid content payload: {len(errors)} error(s)",
            content_id=payload.get("content_id"),
            errors=errors,
        ) from exc
