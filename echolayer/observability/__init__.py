"""Observability layer - logging, metrics, and tracing."""

from echolayer.observability.logging import log_context, setup_logging
from echolayer.observability.metrics import MetricsCollector, get_metrics
from echolayer.observability.tracing import get_tracer, setup_tracing

__all__ = ["setup_logging", "log_context", "MetricsCollector", "get_metrics", "setup_tracing", "get_tracer"]
