"""
Prometheus metrics for the attention-scoring and reward pipeline.

Defines and exposes metrics for:
- Scoring throughput, latency and rejections
- Propagation events, graph rejections and resonance flags
- Reward allocation, deferral and ledger failures
- Deferred queue depth and sub-pool balances

Pool exhaustion is surfaced as the deferred queue depth, not as an error
rate. Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from echolayer.config.settings import get_settings

logger = logging.getLogger(__name__)

# Buckets for latency histograms (in seconds)
LATENCY_BUCKETS = (0.001, 0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5)

SCORE_BUCKETS = (0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0)


class MetricsCollector:
    """
    Prometheus metrics collector for the echolayer core.

    Usage:
        metrics = get_metrics()
        metrics.start_server()

        metrics.record_score("twitter", composite=0.74, latency=0.002)
        metrics.record_reward("content_creation", "allocated")
    """

    def __init__(self):
        """Initialize Prometheus metrics."""

        # Scoring
        self.scores_computed = Counter(
            "echolayer_scores_computed_total",
            "Total attention scores computed",
            ["platform"],
        )

        self.scoring_errors = Counter(
            "echolayer_scoring_errors_total",
            "Content items that could not be scored",
            ["error_type"],  # input_validation, insufficient_data
        )

        self.scoring_latency = Histogram(
            "echolayer_scoring_latency_seconds",
            "Time to score a content item",
            buckets=LATENCY_BUCKETS,
        )

        self.composite_scores = Histogram(
            "echolayer_composite_score",
            "Distribution of composite attention scores",
            buckets=SCORE_BUCKETS,
        )

        # Propagation graph
        self.propagation_events = Counter(
            "echolayer_propagation_events_total",
            "Propagation events recorded in the graph",
            ["cross_platform"],  # "true" / "false"
        )

        self.graph_rejections = Counter(
            "echolayer_graph_rejections_total",
            "Propagation events rejected by the graph",
            ["error_type"],
        )

        self.resonance_flags = Counter(
            "echolayer_resonance_flags_total",
            "Content items newly flagged resonant for a period",
        )

        self.graph_nodes = Gauge(
            "echolayer_graph_nodes",
            "Number of propagation nodes in the graph",
        )

        # Rewards
        self.rewards = Counter(
            "echolayer_rewards_total",
            "Reward transactions by type and resulting status",
            ["reward_type", "status"],
        )

        self.rewards_amount = Counter(
            "echolayer_rewards_allocated_amount_total",
            "Sum of allocated reward amounts",
            ["sub_pool"],
        )

        self.ledger_failures = Counter(
            "echolayer_ledger_failures_total",
            "Transactions rejected by the payout ledger",
            ["reward_type"],
        )

        self.deferred_queue_depth = Gauge(
            "echolayer_deferred_queue_depth",
            "Reward transactions waiting for the next period",
        )

        self.sub_pool_remaining = Gauge(
            "echolayer_sub_pool_remaining",
            "Remaining balance per reward sub-pool",
            ["sub_pool"],
        )

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to listen on (defaults to settings.metrics_port)
        """
        settings = get_settings()
        port = port or settings.metrics_port

        try:
            start_http_server(port)
            logger.info(f"Metrics server started on port {port}")
        except OSError as e:
            logger.warning(f"Could not start metrics server: {e}")

    def record_score(self, platform: str, composite: float, latency: float) -> None:
        """
        Record a successfully computed attention score.

        Args:
            platform: Platform the content item was published on
            composite: Composite score in [0, 1]
            latency: Scoring time in seconds
        """
        self.scores_computed.labels(platform=platform).inc()
        self.composite_scores.observe(composite)
        if latency > 0:
            self.scoring_latency.observe(latency)

    def record_scoring_error(self, error_type: str) -> None:
        """Record a content item that was rejected or not yet scorable."""
        self.scoring_errors.labels(error_type=error_type).inc()

    def record_propagation(self, cross_platform: bool, node_count: int) -> None:
        """
        Record an accepted propagation event.

        Args:
            cross_platform: Whether source and target platforms differ
            node_count: Graph node count after the event
        """
        self.propagation_events.labels(
            cross_platform="true" if cross_platform else "false"
        ).inc()
        self.graph_nodes.set(node_count)

    def record_graph_rejection(self, error_type: str) -> None:
        """Record a propagation event rejected by the graph."""
        self.graph_rejections.labels(error_type=error_type).inc()

    def record_resonance(self) -> None:
        """Record a content item newly flagged resonant."""
        self.resonance_flags.inc()

    def record_reward(
        self,
        reward_type: str,
        status: str,
        sub_pool: str | None = None,
        amount: float = 0.0,
    ) -> None:
        """
        Record a reward transaction outcome.

        Args:
            reward_type: Reward type value (e.g. "content_creation")
            status: Resulting status (allocated, deferred, failed)
            sub_pool: Sub-pool charged (for allocated amounts)
            amount: Allocated amount
        """
        self.rewards.labels(reward_type=reward_type, status=status).inc()
        if status == "allocated" and sub_pool is not None and amount > 0:
            self.rewards_amount.labels(sub_pool=sub_pool).inc(amount)

    def record_ledger_failure(self, reward_type: str) -> None:
        """Record a transaction the ledger refused."""
        self.ledger_failures.labels(reward_type=reward_type).inc()

    def set_deferred_queue_depth(self, depth: int) -> None:
        """
        Set deferred reward queue depth.

        Args:
            depth: Number of transactions waiting for the next period
        """
        self.deferred_queue_depth.set(depth)

    def set_sub_pool_remaining(self, sub_pool: str, remaining: float) -> None:
        """Set the remaining balance gauge for a sub-pool."""
        self.sub_pool_remaining.labels(sub_pool=sub_pool).set(remaining)


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
