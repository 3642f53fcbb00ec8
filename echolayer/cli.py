"""
Command-line interface for echolayer.

Provides commands to score content payloads, replay a recorded batch of
snapshots and propagation events through a fresh pipeline, and inspect the
effective configuration.

Usage:
    echolayer score item.json          # Score one content payload
    echolayer replay batch.json        # Replay contents, propagations, discoveries
    echolayer config                   # Print effective settings
"""

import asyncio
import json
import sys
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import click

from echolayer.config.settings import get_settings
from echolayer.errors import EchoLayerError, InputValidationError
from echolayer.observability.logging import setup_logging


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--metrics", is_flag=True, help="Expose Prometheus metrics on METRICS_PORT")
def main(debug: bool, metrics: bool) -> None:
    """EchoLayer - attention scoring, propagation and rewards."""
    if debug:
        import os
        os.environ["LOG_LEVEL"] = "DEBUG"
        get_settings.cache_clear()

    setup_logging()

    if metrics:
        from echolayer.observability.metrics import get_metrics

        get_metrics().start_server()

    # Initialize tracing if enabled
    settings = get_settings()
    if settings.tracing_enabled:
        from echolayer.observability.tracing import setup_tracing

        setup_tracing(
            service_name=settings.otel_service_name,
            otlp_endpoint=settings.otel_exporter_otlp_endpoint,
        )


def _load_json(path: str) -> Any:
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        click.echo(click.style(f"Invalid JSON in {path}: {e}", fg="red"), err=True)
        sys.exit(2)


def _parse_now(value: str | None) -> datetime | None:
    if value is None:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        click.echo(click.style(f"Invalid timestamp: {value!r}", fg="red"), err=True)
        sys.exit(2)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _early_engagement(payload: dict[str, Any]) -> float:
    raw = payload.get("early_engagement", 0.0)
    try:
        return float(raw)
    except (TypeError, ValueError) as exc:
        raise InputValidationError(
            f"Invalid early_engagement: {raw!r}",
            content_id=payload.get("content_id"),
        ) from exc


def _error_entry(error: EchoLayerError) -> dict[str, Any]:
    return {
        "error": type(error).__name__,
        "message": str(error),
        "context": error.context,
    }


@main.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--now", "now_", default=None, help="Scoring time (ISO-8601, default: current time)")
def score(path: str, now_: str | None) -> None:
    """Score a content payload and print the AttentionScore as JSON."""
    from echolayer.scoring.engine import ScoreEngine
    from echolayer.scoring.schemas import parse_content_item

    payload = _load_json(path)
    try:
        item = parse_content_item(payload)
        result = ScoreEngine().score(item, now=_parse_now(now_))
    except EchoLayerError as e:
        click.echo(click.style(f"Cannot score: {e}", fg="red"), err=True)
        click.echo(json.dumps(_error_entry(e), default=str), err=True)
        sys.exit(1)

    click.echo(result.model_dump_json(indent=2))


@main.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--budget", default=None, help="Override the period budget")
def replay(path: str, budget: str | None) -> None:
    """Replay a recorded batch through a fresh pipeline.

    The batch is a JSON object with optional keys "period", "budget", "now",
    "contents", "propagations" and "discoveries", processed in that order.
    Rejected records are reported under "errors" and do not stop the replay.
    """
    from echolayer.graph.schemas import parse_propagation_event
    from echolayer.rewards.schemas import parse_discovery
    from echolayer.scoring.schemas import parse_content_item
    from echolayer.services.pipeline import AttentionPipeline

    batch = _load_json(path)
    if not isinstance(batch, dict):
        click.echo(click.style("Batch must be a JSON object", fg="red"), err=True)
        sys.exit(2)

    raw_budget = budget if budget is not None else batch.get("budget")
    try:
        period_budget = Decimal(str(raw_budget)) if raw_budget is not None else None
        if period_budget is not None and not period_budget.is_finite():
            raise InvalidOperation
    except InvalidOperation:
        click.echo(click.style(f"Invalid budget: {raw_budget!r}", fg="red"), err=True)
        sys.exit(2)

    now = _parse_now(batch.get("now"))
    period = batch.get("period") or (now or datetime.now(timezone.utc)).date().isoformat()

    async def run() -> dict[str, Any]:
        pipeline = AttentionPipeline()
        errors: list[dict[str, Any]] = []
        await pipeline.start_period(period, period_budget)

        for payload in batch.get("contents", []):
            try:
                item = parse_content_item(payload)
                await pipeline.ingest_content(
                    item, now=now, early_engagement=_early_engagement(payload)
                )
            except EchoLayerError as e:
                errors.append(_error_entry(e))

        for payload in batch.get("propagations", []):
            try:
                await pipeline.ingest_propagation(parse_propagation_event(payload))
            except EchoLayerError as e:
                errors.append(_error_entry(e))

        for payload in batch.get("discoveries", []):
            try:
                discovery = parse_discovery(payload)
                await pipeline.record_discovery(
                    discovery.content_id,
                    discovery.discoverer,
                    discovery_timing=discovery.discovery_timing,
                    discoverer_influence=discovery.discoverer_influence,
                )
            except EchoLayerError as e:
                errors.append(_error_entry(e))

        scores = [pipeline.scores.latest(cid) for cid in pipeline.scores.content_ids()]
        resonance = [
            pipeline.graph.get_resonance(cid)
            for cid in pipeline.graph.store.content_ids()
        ]
        return {
            "period": period,
            "scores": [s.model_dump(mode="json") for s in scores if s is not None],
            "resonance": [
                {
                    "content_id": r.content_id,
                    "loop_strength": round(r.loop_strength, 4),
                    "weighted_resonance": round(r.weighted_resonance, 4),
                    "resonant": r.resonant,
                    "propagations": pipeline.graph.propagation_count(r.content_id),
                    "average_edge_weight": round(
                        pipeline.graph.average_edge_weight(r.content_id), 4
                    ),
                }
                for r in resonance
                if r is not None
            ],
            "transactions": [tx.to_dict() for tx in pipeline.allocator.transactions()],
            "pool": pipeline.allocator.pool_status().to_dict(),
            "leaderboard": [s.to_dict() for s in pipeline.allocator.leaderboard()],
            "errors": errors,
        }

    try:
        report = asyncio.run(run())
    except EchoLayerError as e:
        click.echo(click.style(f"Cannot start period {period}: {e}", fg="red"), err=True)
        sys.exit(2)
    click.echo(json.dumps(report, indent=2, default=str))

    if report["errors"]:
        click.echo(
            click.style(f"{len(report['errors'])} record(s) rejected", fg="yellow"),
            err=True,
        )


@main.command("config")
def show_config() -> None:
    """Print the effective configuration as JSON."""
    from echolayer.graph.config import GraphConfig
    from echolayer.rewards.config import RewardConfig
    from echolayer.scoring.config import ScoringConfig

    effective = {
        "settings": get_settings().model_dump(mode="json"),
        "scoring": ScoringConfig().model_dump(mode="json"),
        "graph": GraphConfig().model_dump(mode="json"),
        "rewards": RewardConfig().model_dump(mode="json"),
    }
    click.echo(json.dumps(effective, indent=2))


if __name__ == "__main__":
    main()
