# Copyright (c) Syntropy Systems
"""loadscope watch command - live view of one run."""
from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import typer
from rich.console import Console
from rich.live import Live
from rich.table import Table

from loadscope.cli.runs import state_markup, verdict_markup
from loadscope.client import get_client
from loadscope.config import load_config
from loadscope.controller import DashboardController
from loadscope.errors import LoadscopeError
from loadscope.formatting import format_duration, format_latency

if TYPE_CHECKING:
    from loadscope.config import LoadscopeConfig
    from loadscope.models.metrics import DerivedStage, MetricSnapshot

console = Console()


def now_ms() -> int:
    return int(time.time() * 1000)


def build_snapshot_table(snapshot: MetricSnapshot | None) -> Table:
    """Build the latest-snapshot table."""
    table = Table(title="Latest", show_header=True, header_style="bold")
    table.add_column("Time", style="dim")
    table.add_column("Throughput", justify="right")
    table.add_column("P50", justify="right")
    table.add_column("P95", justify="right")
    table.add_column("P99", justify="right")
    table.add_column("Errors", justify="right")
    table.add_column("Total Ops", justify="right")

    if snapshot is None:
        table.add_row("-", "[dim]Waiting for metrics[/dim]", "-", "-", "-", "-", "-")
        return table

    table.add_row(
        snapshot.time or "-",
        f"{snapshot.throughput:.1f}/s",
        format_latency(snapshot.latency_p50_ms),
        format_latency(snapshot.latency_p95_ms),
        format_latency(snapshot.latency_p99_ms),
        f"{snapshot.error_rate * 100:.2f}%",
        f"{snapshot.total_ops:,}",
    )
    return table


def build_stages_table(stages: list[DerivedStage]) -> Table:
    """Build the stage timeline table."""
    table = Table(title="Stages", show_header=True, header_style="bold")
    table.add_column("Stage")
    table.add_column("Duration", justify="right")
    table.add_column("Status")

    if not stages:
        table.add_row("[dim]Stage timing unavailable[/dim]", "-", "-")
        return table

    for stage in stages:
        style = "blue" if stage.status == "running" else "green"
        table.add_row(
            stage.name,
            format_duration(stage.duration_ms),
            f"[{style}]{stage.status}[/{style}]",
        )
    return table


def build_display(controller: DashboardController) -> Table:
    """Build the full display layout."""
    layout = Table.grid(padding=1)
    context = controller.context
    if context is None:
        layout.add_row("[dim]No run selected[/dim]")
        return layout

    now = now_ms()
    stream = context.stream
    if stream.interrupted:
        stream_text = f"[yellow]stream interrupted[/yellow] [dim]{stream.error or ''}[/dim]"
    elif stream.connected:
        stream_text = "[green]live[/green]"
    else:
        stream_text = "[dim]not streaming[/dim]"

    verdict = controller.verdict()
    header = (
        f"[bold]Run {context.run_id}[/bold]  {state_markup(context.state)}  "
        f"{verdict_markup(verdict)}  elapsed {format_duration(controller.elapsed_ms(now))}  "
        f"{stream_text}"
    )
    layout.add_row(header)
    if verdict.reason:
        layout.add_row(f"[dim]{verdict.reason}[/dim]")
    if context.metrics_error:
        layout.add_row(f"[yellow]metrics unavailable[/yellow] [dim]{context.metrics_error}[/dim]")

    layout.add_row(build_snapshot_table(context.latest()))
    layout.add_row(build_stages_table(controller.stages(now)))

    summary = controller.summary()
    layout.add_row(
        f"[dim]success {summary.success_rate:.1f}%  "
        f"peak {summary.peak_throughput:.1f}/s  "
        f"avg latency {format_latency(summary.avg_latency_ms)}  "
        f"failed {summary.failed_ops:,}[/dim]"
    )

    updated = datetime.now(timezone.utc)
    layout.add_row(
        f"[dim]Last updated: {updated.strftime('%H:%M:%S')} (Ctrl+C to exit)[/dim]"
    )
    return layout


async def _watch(config: LoadscopeConfig, run_id: str, interval: float) -> None:
    async with get_client(config.server_url, config.request_timeout) as client:
        controller = DashboardController(client, config=config)
        try:
            _ = await controller.select_run(run_id)
            with Live(console=console, refresh_per_second=4) as live:
                live.update(build_display(controller))
                while controller.aggregator.running:
                    await asyncio.sleep(interval)
                    live.update(build_display(controller))
                live.update(build_display(controller))
        finally:
            await controller.close()


def watch(
    run_id: str = typer.Argument(..., help="Run ID to watch"),
    interval: float = typer.Option(
        1.0,
        "--interval", "-i",
        help="Refresh interval in seconds",
    ),
) -> None:
    """Watch a run's live metrics, stages, and verdict.

    Exits when the run finishes. Press Ctrl+C to exit earlier.
    """
    config = load_config()
    try:
        asyncio.run(_watch(config, run_id, interval))
    except LoadscopeError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e
    except KeyboardInterrupt:
        console.print("\n[dim]Watch stopped[/dim]")
