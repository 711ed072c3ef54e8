"""CLI entrypoint for the order router."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer

from order_router.core.config import Settings
from order_router.core.errors import RetrievalUnavailable
from order_router.core.logging import configure_logging
from order_router.core.metrics import metrics_payload
from order_router.engine import Engine, build_engine
from order_router.models.types import Freshness, QueryContext
from order_router.routing.router import result_summary

app = typer.Typer(name="orq", help="Order query router command-line interface")


def _engine(config: Optional[Path]) -> Engine:
    configure_logging()
    settings = Settings.from_yaml(config)
    engine = build_engine(settings)
    if settings.cache_path:
        engine.cache.load(settings.cache_path)
    return engine


def _shutdown(engine: Engine) -> None:
    if engine.settings.cache_path:
        engine.cache.flush(engine.settings.cache_path)
    engine.close()


def _echo(payload: object) -> None:
    typer.echo(json.dumps(payload, indent=2, default=str))


@app.command()
def query(
    q: str = typer.Argument(..., help="Question about orders"),
    fresh: bool = typer.Option(False, "--fresh", help="Prefer fresh data over long-lived cache entries"),
    sort_by: Optional[str] = typer.Option(None, "--sort-by", help="score, due_date or priority"),
    timezone: Optional[str] = typer.Option(None, "--timezone", help="IANA timezone for date phrases"),
    deadline: Optional[float] = typer.Option(None, "--deadline", help="Seconds before the route gives up"),
    config: Optional[Path] = typer.Option(None, "--config", help="Path to config YAML"),
) -> None:
    """Route a natural-language query and print the result."""
    if sort_by is not None and sort_by not in ("score", "due_date", "priority"):
        raise typer.BadParameter("sort-by must be score, due_date or priority")
    engine = _engine(config)
    context = QueryContext(
        freshness=Freshness.FRESH if fresh else Freshness.DEFAULT,
        timezone=timezone,
        deadline=deadline,
        sort_by=sort_by,
    )
    try:
        result = asyncio.run(engine.route(q, context))
    except RetrievalUnavailable as exc:
        typer.echo(f"Retrieval unavailable: {exc}", err=True)
        raise typer.Exit(code=2)
    finally:
        _shutdown(engine)
    _echo(result_summary(result))


@app.command()
def sync(
    full: bool = typer.Option(False, "--full", help="Rebuild every vector and drop orphans"),
    watch: bool = typer.Option(False, "--watch", help="Keep running on the configured interval"),
    interval: Optional[float] = typer.Option(None, "--interval", help="Seconds between runs with --watch"),
    config: Optional[Path] = typer.Option(None, "--config", help="Path to config YAML"),
) -> None:
    """Synchronize the vector index with the record store."""
    engine = _engine(config)
    mode = "full" if full else "incremental"
    try:
        if watch:
            asyncio.run(engine.synchronizer.run_periodically(interval, mode=mode))
            return
        result = asyncio.run(engine.sync(mode))
    except KeyboardInterrupt:
        typer.echo("Stopped", err=True)
        return
    finally:
        _shutdown(engine)
    _echo(result.to_dict())
    if result.errors:
        raise typer.Exit(code=1)


@app.command("cache-stats")
def cache_stats(
    config: Optional[Path] = typer.Option(None, "--config", help="Path to config YAML"),
) -> None:
    """Show result cache statistics."""
    engine = _engine(config)
    try:
        _echo(engine.cache.stats())
    finally:
        _shutdown(engine)


@app.command("cache-clear")
def cache_clear(
    tag: Optional[str] = typer.Option(None, "--tag", help="Only drop entries carrying this tag"),
    config: Optional[Path] = typer.Option(None, "--config", help="Path to config YAML"),
) -> None:
    """Drop cached results."""
    engine = _engine(config)
    try:
        removed = engine.cache.invalidate_by_tag(tag) if tag else engine.cache.clear()
    finally:
        _shutdown(engine)
    _echo({"removed": removed})


@app.command()
def metrics() -> None:
    """Print Prometheus metrics for this process."""
    payload, _content_type = metrics_payload()
    typer.echo(payload.decode("utf-8"))


if __name__ == "__main__":
    app()
