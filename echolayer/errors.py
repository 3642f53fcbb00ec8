"""Error hierarchy shared by the scoring, graph and reward stages.

Each error carries the ids and offending values needed to replay the input
that triggered it. Overflow of a score past [0, 1] is not an error: it is
clamped where it is computed.
"""

from typing import Any


class EchoLayerError(Exception):
    """Base class for all attention-core errors."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.context = context


class InputValidationError(EchoLayerError, ValueError):
    """Malformed or out-of-range metric. The item is not scored this cycle."""


class InsufficientDataError(EchoLayerError):
    """A required denominator is zero or missing: not yet scorable."""


class GraphInconsistencyError(EchoLayerError):
    """A propagation event references a content item with no score yet."""


class PoolExhaustedError(EchoLayerError):
    """A sub-pool cannot cover the requested amount this period."""


class LedgerRejection(EchoLayerError):
    """The payout ledger refused a transaction. Terminal for that transaction."""
