"""Append-only attention score history.

Every scoring pass for a content item appends a new AttentionScore with the
next version number. Past versions are never modified, so a replay of the
same snapshots against the same clock yields the same history.

Rescoring of a single content item is serialized with a per-item lock;
distinct content items score concurrently.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone

import structlog

from echolayer.errors import InputValidationError, InsufficientDataError
from echolayer.locks import KeyedLocks
from echolayer.observability.metrics import get_metrics
from echolayer.scoring.engine import ScoreEngine
from echolayer.scoring.schemas import AttentionScore, ContentItem

logger = structlog.get_logger(__name__)


class ScoreHistory:
    """In-memory, append-only score log keyed by content id.

    Usage:
        history = ScoreHistory(ScoreEngine())
        score = await history.rescore(item, now=now)
        history.latest(item.content_id).version  # → 1
    """

    def __init__(self, engine: ScoreEngine | None = None) -> None:
        self._engine = engine or ScoreEngine()
        self._scores: dict[str, list[AttentionScore]] = {}
        self._items: dict[str, ContentItem] = {}
        self._locks = KeyedLocks()

    @property
    def engine(self) -> ScoreEngine:
        return self._engine

    async def rescore(
        self,
        item: ContentItem,
        *,
        now: datetime | None = None,
    ) -> AttentionScore:
        """Score an item and append the result as the next version.

        The item's snapshot replaces the previously stored one. Nothing is
        appended when scoring fails.

        Raises:
            InsufficientDataError: Not yet scorable (e.g. zero views).
            InputValidationError: Malformed or inconsistent metrics.
        """
        metrics = get_metrics()
        async with self._locks.hold(item.content_id):
            versions = self._scores.get(item.content_id, [])
            next_version = versions[-1].version + 1 if versions else 1

            start = time.perf_counter()
            try:
                score = self._engine.score(item, now=now, version=next_version)
            except InsufficientDataError:
                metrics.record_scoring_error("insufficient_data")
                raise
            except InputValidationError as exc:
                metrics.record_scoring_error("input_validation")
                logger.warning(
                    "Rejected content snapshot",
                    content_id=item.content_id,
                    error=str(exc),
                    context=exc.context,
                )
                raise

            self._scores.setdefault(item.content_id, []).append(score)
            self._items[item.content_id] = item

        metrics.record_score(item.platform, score.composite, time.perf_counter() - start)
        logger.debug(
            "Content scored",
            content_id=item.content_id,
            version=score.version,
            composite=round(score.composite, 4),
            boosted=score.boosted,
        )
        return score

    def latest(self, content_id: str) -> AttentionScore | None:
        """Most recent score for a content item, or None if never scored."""
        versions = self._scores.get(content_id)
        return versions[-1] if versions else None

    def history(self, content_id: str) -> tuple[AttentionScore, ...]:
        """All versions for a content item, oldest first."""
        return tuple(self._scores.get(content_id, ()))

    def has_content(self, content_id: str) -> bool:
        """Whether at least one score has been recorded for the item."""
        return bool(self._scores.get(content_id))

    def get_item(self, content_id: str) -> ContentItem | None:
        """Content item as of its latest successful scoring pass."""
        return self._items.get(content_id)

    def content_ids(self) -> list[str]:
        return list(self._scores)

    def decayed_composite(
        self,
        content_id: str,
        now: datetime | None = None,
    ) -> float | None:
        """Latest composite with temporal decay applied since it was computed."""
        score = self.latest(content_id)
        if score is None:
            return None
        if now is None:
            now = datetime.now(timezone.utc)
        hours = (now - score.calculated_at).total_seconds() / 3600.0
        return self._engine.apply_temporal_decay(score.composite, hours)
