"""
Structured logging for the attention core.

JSON lines in production, coloured console output elsewhere. Every entry
carries the active trace/span ids, and pipeline stages bind the entity they
are working on (content_id, event_id, period) so rejections and deferrals
logged deep in the graph or allocator can be traced back to their input.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager

import structlog
from structlog.types import Processor

from echolayer.config.settings import get_settings
from echolayer.observability.tracing import add_trace_context

# Libraries that log at INFO on every export or scrape
_QUIET_LOGGERS = ("asyncio", "opentelemetry", "grpc")


def setup_logging() -> None:
    """
    Configure structlog and the stdlib root logger from Settings.

    Graph and pool modules log through stdlib ``logging``; scoring, the
    allocator and the pipeline log through structlog. Both end up on stderr
    so command output on stdout stays machine-readable.

    Usage:
        setup_logging()
        logger = structlog.get_logger(__name__)
        logger.info("Reward deferred", tx_id=tx.tx_id, sub_pool="creation")
    """
    settings = get_settings()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        add_trace_context,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.is_production:
        renderer: Processor = structlog.processors.JSONRenderer()
        processors = shared_processors + [structlog.processors.format_exc_info, renderer]
    else:
        processors = shared_processors + [structlog.dev.ConsoleRenderer(colors=True)]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, settings.log_level),
    )

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def log_context(**ids: object) -> Iterator[None]:
    """
    Bind entity ids to every structlog entry emitted inside the block.

    None values are skipped. Bindings are restored on exit, so nested
    stages (period -> content -> reward) layer cleanly.

    Usage:
        with log_context(content_id="c1"):
            await allocator.award_creation("c1")
    """
    bound = {k: v for k, v in ids.items() if v is not None}
    with structlog.contextvars.bound_contextvars(**bound):
        yield
