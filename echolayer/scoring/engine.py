"""Four-component attention score engine.

Computes a bounded composite attention score from an engagement snapshot:

    odf = min(1, 0.7 * organic/total + 0.3 * min(1, ln(reach)/10))
    awr = min(1, 0.5 * engagement + 0.3 * min(1, dwell/60) + 0.2 * min(1, ln(views)/15))
    tpm = min(1, 0.3 * age_factor + 0.4 * recency_factor + 0.3 * frequency_factor)
    qf  = min(1, 0.2 * (sentiment+1)/2 + 0.3 * credibility + 0.3 * relevance + 0.2 * originality)

    composite = clamp(weighted_sum * (boost if weighted_sum > threshold else 1))

The engine holds no mutable state and is safe to call concurrently.
Versioning and history live in ScoreHistory.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Mapping

import structlog

from echolayer.errors import InputValidationError, InsufficientDataError
from echolayer.scoring.config import ScoringConfig
from echolayer.scoring.schemas import AttentionScore, ContentItem, ScoreWeights

logger = structlog.get_logger(__name__)

_SECONDS_PER_DAY = 86400.0


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Clamp a value into [low, high]."""
    return max(low, min(high, value))


def _log_ratio(value: float, divisor: float) -> float:
    """ln(value)/divisor capped at 1; values <= 1 contribute nothing."""
    if value <= 1:
        return 0.0
    return min(1.0, math.log(value) / divisor)


class ScoreEngine:
    """Stateless attention score calculator.

    Usage:
        engine = ScoreEngine()
        score = engine.score(item, now=datetime.now(timezone.utc))

        # Custom weights fail fast unless they sum to 1.0
        engine = ScoreEngine(weights={"odf": 0.4, "awr": 0.2, "tpm": 0.2, "qf": 0.2})
    """

    def __init__(
        self,
        config: ScoringConfig | None = None,
        weights: ScoreWeights | Mapping[str, float] | None = None,
    ) -> None:
        self._config = config or ScoringConfig()
        if weights is None:
            self._weights = self._config.weights
        elif isinstance(weights, ScoreWeights):
            self._weights = weights
        else:
            self._weights = ScoreWeights(**weights)

    @property
    def weights(self) -> ScoreWeights:
        """Weight set applied by compose()."""
        return self._weights

    @property
    def config(self) -> ScoringConfig:
        return self._config

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    def organic_discovery_factor(
        self,
        organic_shares: int,
        total_shares: int,
        platform_reach: int,
    ) -> float:
        """Reward authentic spread, discounting raw reach logarithmically.

        Returns 0.0 when the item has not been shared at all.
        """
        if organic_shares < 0 or total_shares < 0 or platform_reach < 0:
            raise InputValidationError(
                "share and reach counts must be non-negative",
                organic_shares=organic_shares,
                total_shares=total_shares,
                platform_reach=platform_reach,
            )
        if organic_shares > total_shares:
            raise InputValidationError(
                "organic_shares cannot exceed total_shares",
                organic_shares=organic_shares,
                total_shares=total_shares,
            )
        if total_shares == 0:
            return 0.0

        organic_ratio = organic_shares / total_shares
        reach_factor = _log_ratio(platform_reach, 10.0)
        return min(1.0, 0.7 * organic_ratio + 0.3 * reach_factor)

    def attention_weight_ratio(
        self,
        engagement_sum: float,
        dwell_seconds: float,
        total_views: int,
    ) -> float:
        """Combine interaction depth, retention and popularity.

        Raises:
            InsufficientDataError: If the item has no views yet.
        """
        if total_views <= 0:
            raise InsufficientDataError(
                "attention weight ratio needs at least one view",
                total_views=total_views,
            )
        if engagement_sum < 0 or dwell_seconds < 0:
            raise InputValidationError(
                "engagement and dwell time must be non-negative",
                engagement_sum=engagement_sum,
                dwell_seconds=dwell_seconds,
            )

        time_factor = min(1.0, dwell_seconds / 60.0)
        popularity = _log_ratio(total_views, 15.0)
        return min(1.0, 0.5 * engagement_sum + 0.3 * time_factor + 0.2 * popularity)

    def temporal_persistence_metric(
        self,
        created_at: datetime,
        last_interaction_at: datetime,
        interaction_frequency: float,
        now: datetime,
    ) -> float:
        """Capture durability (age) and sustained relevance (recency, frequency)."""
        if created_at > now or last_interaction_at > now:
            raise InputValidationError(
                "timestamps cannot be later than the scoring time",
                created_at=created_at.isoformat(),
                last_interaction_at=last_interaction_at.isoformat(),
                now=now.isoformat(),
            )
        if interaction_frequency < 0:
            raise InputValidationError(
                "interaction_frequency must be non-negative",
                interaction_frequency=interaction_frequency,
            )

        age_days = (now - created_at).total_seconds() / _SECONDS_PER_DAY
        recency_days = (now - last_interaction_at).total_seconds() / _SECONDS_PER_DAY

        age_factor = max(0.1, 1.0 / (1.0 + 0.1 * age_days))
        recency_factor = max(0.1, 1.0 / (1.0 + 0.2 * recency_days))
        frequency_factor = min(1.0, interaction_frequency / 10.0)

        return min(1.0, 0.3 * age_factor + 0.4 * recency_factor + 0.3 * frequency_factor)

    def quality_factor(
        self,
        sentiment: float,
        credibility: float,
        relevance: float,
        originality: float,
    ) -> float:
        """Blend normalized sentiment with credibility, relevance and originality."""
        if not -1.0 <= sentiment <= 1.0:
            raise InputValidationError(
                "sentiment must be within [-1, 1]", sentiment=sentiment
            )
        for name, value in (
            ("credibility", credibility),
            ("relevance", relevance),
            ("originality", originality),
        ):
            if not 0.0 <= value <= 1.0:
                raise InputValidationError(
                    f"{name} must be within [0, 1]", **{name: value}
                )

        normalized_sentiment = (sentiment + 1.0) / 2.0
        return min(
            1.0,
            0.2 * normalized_sentiment
            + 0.3 * credibility
            + 0.3 * relevance
            + 0.2 * originality,
        )

    # ------------------------------------------------------------------
    # Composite
    # ------------------------------------------------------------------

    def weighted_sum(
        self,
        odf: float,
        awr: float,
        tpm: float,
        qf: float,
        weights: ScoreWeights | None = None,
    ) -> float:
        """Unboosted weighted sum of the four components."""
        w = weights or self._weights
        return odf * w.odf + awr * w.awr + tpm * w.tpm + qf * w.qf

    def compose(
        self,
        odf: float,
        awr: float,
        tpm: float,
        qf: float,
        weights: ScoreWeights | None = None,
    ) -> float:
        """Weighted sum, boosted above the threshold, clamped to [0, 1]."""
        total = self.weighted_sum(odf, awr, tpm, qf, weights)
        if total > self._config.boost_threshold:
            total *= self._config.boost_multiplier
        return _clamp(total)

    def score(
        self,
        item: ContentItem,
        *,
        now: datetime | None = None,
        version: int = 1,
    ) -> AttentionScore:
        """Score a content item from its current engagement snapshot.

        Args:
            item: Content item with its latest snapshot.
            now: Scoring time (default: UTC now). Pass a fixed value for
                deterministic replays.
            version: Version number to stamp on the result.

        Raises:
            InsufficientDataError: The item has no views yet.
            InputValidationError: A metric is inconsistent with the others.
        """
        if now is None:
            now = datetime.now(timezone.utc)

        snap = item.engagement
        odf = self.organic_discovery_factor(
            snap.organic_shares, snap.total_shares, snap.platform_reach
        )
        if snap.views <= 0:
            logger.info(
                "Content not yet scorable",
                content_id=item.content_id,
                views=snap.views,
            )
            raise InsufficientDataError(
                "content has no views yet",
                content_id=item.content_id,
                total_views=snap.views,
            )
        engagement_rate = snap.engagement_total / snap.views
        awr = self.attention_weight_ratio(engagement_rate, snap.dwell_seconds, snap.views)
        tpm = self.temporal_persistence_metric(
            item.created_at,
            snap.last_interaction_at or item.created_at,
            snap.interaction_frequency,
            now,
        )
        qf = self.quality_factor(
            snap.sentiment, snap.credibility, snap.relevance, snap.originality
        )

        weighted = self.weighted_sum(odf, awr, tpm, qf)
        composite = self.compose(odf, awr, tpm, qf)

        return AttentionScore(
            content_id=item.content_id,
            odf=_clamp(odf),
            awr=_clamp(awr),
            tpm=_clamp(tpm),
            qf=_clamp(qf),
            composite=composite,
            boosted=weighted > self._config.boost_threshold,
            weights=self._weights,
            calculated_at=now,
            version=version,
        )

    def apply_temporal_decay(self, composite: float, hours_elapsed: float) -> float:
        """Decay a stored composite by decay_factor per elapsed day."""
        if hours_elapsed <= 0:
            return _clamp(composite)
        return _clamp(composite * self._config.decay_factor ** (hours_elapsed / 24.0))
