"""Four-component attention scoring.

Components:
- ScoreEngine: Stateless ODF/AWR/TPM/QF calculator and composite boost
- ScoreHistory: Append-only, per-item serialized score versions
- ScoringConfig: Pydantic settings with SCORING_ prefix
- ContentItem / EngagementSnapshot / AttentionScore: Scoring data models

Usage:
    from echolayer.scoring import ScoreEngine, ScoreHistory

    history = ScoreHistory(ScoreEngine())
    score = await history.rescore(item)
"""

from echolayer.scoring.config import ScoringConfig
from echolayer.scoring.engine import ScoreEngine
from echolayer.scoring.history import ScoreHistory
from echolayer.scoring.schemas import (
    AttentionScore,
    ContentItem,
    EngagementSnapshot,
    ScoreWeights,
    parse_content_item,
)

__all__ = [
    "AttentionScore",
    "ContentItem",
    "EngagementSnapshot",
    "ScoreEngine",
    "ScoreHistory",
    "ScoreWeights",
    "ScoringConfig",
    "parse_content_item",
]
