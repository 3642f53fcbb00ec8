"""Service layer wiring the attention core together."""

from echolayer.services.pipeline import (
    AttentionPipeline,
    ContentResult,
    PropagationResult,
)

__all__ = ["AttentionPipeline", "ContentResult", "PropagationResult"]
