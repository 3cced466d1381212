# Copyright (c) Syntropy Systems
"""loadscope runs and show commands."""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Optional

import typer
from rich.console import Console
from rich.table import Table

from loadscope.classifier import classify_run
from loadscope.client import get_client
from loadscope.config import load_config
from loadscope.errors import LoadscopeError
from loadscope.formatting import format_duration, format_latency
from loadscope.models.run import parse_timestamp_ms

if TYPE_CHECKING:
    from loadscope.classifier import PassFailVerdict
    from loadscope.client import LoadscopeClient
    from loadscope.config import LoadscopeConfig
    from loadscope.models.metrics import LiveMetrics
    from loadscope.models.run import RunInfo

logger = logging.getLogger(__name__)

console = Console()

STATE_STYLES = {
    "running": "blue",
    "scheduling": "blue",
    "stopping": "yellow",
    "completed": "green",
    "stopped": "yellow",
    "aborted": "magenta",
    "failed": "red",
}

VERDICT_STYLES = {
    "pass": "green",
    "fail": "red",
    "running": "blue",
    "aborted": "magenta",
    "unknown": "dim",
}


def state_markup(state: str) -> str:
    style = STATE_STYLES.get(state, "white")
    return f"[{style}]{state or '-'}[/{style}]"


def verdict_markup(verdict: PassFailVerdict) -> str:
    style = VERDICT_STYLES.get(verdict.status, "white")
    return f"[{style}]{verdict.label}[/{style}]"


def run_duration_ms(run: RunInfo) -> int | None:
    """Wall time between start and completion, if both are known."""
    started = run.started_at_ms
    completed = parse_timestamp_ms(run.completed_at)
    if started is None or completed is None:
        return None
    return max(0, completed - started)


async def _error_rate(client: LoadscopeClient, run: RunInfo) -> float | None:
    """Final error rate of a finished run, or None if unavailable."""
    if run.is_active:
        return None
    try:
        metrics = await client.fetch_metrics(run.id)
    except LoadscopeError as e:
        logger.warning("Could not load metrics for run %s: %s", run.id, e)
        return None
    return metrics.error_rate


async def _fetch_runs(
    config: LoadscopeConfig,
    state: str | None,
    last: int,
) -> list[tuple[RunInfo, float | None]]:
    async with get_client(config.server_url, config.request_timeout) as client:
        run_list = await client.fetch_runs()
        if state:
            run_list = [r for r in run_list if r.state == state]
        run_list = run_list[:last]
        rates = await asyncio.gather(*(_error_rate(client, run) for run in run_list))
        return list(zip(run_list, rates))


async def _fetch_run(config: LoadscopeConfig, run_id: str) -> tuple[RunInfo, LiveMetrics | None]:
    async with get_client(config.server_url, config.request_timeout) as client:
        run = await client.fetch_run(run_id)
        try:
            metrics = await client.fetch_metrics(run_id)
        except LoadscopeError as e:
            logger.warning("Could not load metrics for run %s: %s", run_id, e)
            metrics = None
        return run, metrics


def runs(
    state: Optional[str] = typer.Option(
        None,
        "--state", "-s",
        help="Filter by state (running, completed, failed, ...)",
    ),
    last: int = typer.Option(
        20,
        "--last", "-n",
        help="Number of runs to show",
    ),
) -> None:
    """List load-test runs, most recent first."""
    config = load_config()
    try:
        rows = asyncio.run(_fetch_runs(config, state, last))
    except LoadscopeError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    if not rows:
        console.print("[dim]No runs found[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", style="dim")
    table.add_column("Scenario")
    table.add_column("State")
    table.add_column("Verdict")
    table.add_column("Duration")
    table.add_column("Created")

    for run, error_rate in rows:
        verdict = classify_run(run.state, run.stop_reason, error_rate, threshold=config.error_threshold)
        table.add_row(
            run.id[:12] if len(run.id) > 12 else run.id,
            run.scenario_id or "-",
            state_markup(run.state),
            verdict_markup(verdict),
            format_duration(run_duration_ms(run)),
            run.created_at or "-",
        )

    console.print(table)


def show(
    run_id: str = typer.Argument(
        ...,
        help="Run ID to show details for",
    ),
) -> None:
    """Show detailed information about a run, including its verdict."""
    config = load_config()
    try:
        run, metrics = asyncio.run(_fetch_run(config, run_id))
    except LoadscopeError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    error_rate = metrics.error_rate if metrics is not None and not run.is_active else None
    verdict = classify_run(
        run.state,
        run.stop_reason,
        error_rate,
        threshold=config.error_threshold,
    )

    console.print(f"\n[bold]Run {run.id}[/bold]")
    console.print(f"  [dim]scenario:[/dim] {run.scenario_id or '-'}")
    console.print(f"  [dim]state:[/dim] {state_markup(run.state)}")
    console.print(f"  [dim]verdict:[/dim] {verdict_markup(verdict)}")
    if verdict.reason:
        console.print(f"  [dim]reason:[/dim] {verdict.reason}")

    console.print(f"  [dim]created:[/dim] {run.created_at or '-'}")
    if run.started_at:
        console.print(f"  [dim]started:[/dim] {run.started_at}")
    if run.completed_at:
        console.print(f"  [dim]completed:[/dim] {run.completed_at}")
    console.print(f"  [dim]duration:[/dim] {format_duration(run_duration_ms(run))}")

    if metrics is not None:
        console.print("\n[bold]Metrics[/bold]")
        console.print(f"  error rate: {metrics.error_rate * 100:.2f}%")
        console.print(f"  total ops: {metrics.total_ops:,}")
        console.print(f"  throughput: {metrics.throughput:.1f}/s")
        console.print(f"  p99 latency: {format_latency(metrics.latency_p99_ms)}")

    if run.stop_reason is not None:
        stop = run.stop_reason
        console.print("\n[bold]Stop reason[/bold]")
        console.print(f"  mode: {stop.mode or '-'}")
        console.print(f"  reason: {stop.reason or '-'}")
        console.print(f"  actor: {stop.actor or '-'}")

    console.print()
