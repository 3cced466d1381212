# Copyright (c) Syntropy Systems
"""Compare command - compare two runs side by side."""
from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import typer
from rich.console import Console
from rich.table import Table

from loadscope.client import get_client
from loadscope.comparison import compare_runs
from loadscope.config import load_config
from loadscope.errors import LoadscopeError

if TYPE_CHECKING:
    from loadscope.config import LoadscopeConfig
    from loadscope.models.metrics import ComparisonApiResponse

console = Console()

INDICATOR_MARKUP = {
    "improved": "[green]improved[/green]",
    "regressed": "[red]regressed[/red]",
    "neutral": "[dim]no change[/dim]",
}


async def _fetch_comparison(
    config: LoadscopeConfig,
    run_a: str,
    run_b: str,
) -> ComparisonApiResponse:
    async with get_client(config.server_url, config.request_timeout) as client:
        return await client.fetch_comparison(run_a, run_b)


def compare(
    run_a: str = typer.Argument(..., help="Baseline run ID"),
    run_b: str = typer.Argument(..., help="Candidate run ID"),
) -> None:
    """Compare two runs, with RUN_A as the baseline.

    Example:
        loadscope compare run-123 run-456

    """
    config = load_config()
    try:
        result = asyncio.run(_fetch_comparison(config, run_a, run_b))
    except LoadscopeError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    rows = compare_runs(result.run_a, result.run_b)

    table = Table(show_header=True, header_style="bold")
    table.add_column("Metric", style="dim")
    table.add_column(f"Run A ({result.run_a.run_id[:16]})", justify="right")
    table.add_column(f"Run B ({result.run_b.run_id[:16]})", justify="right")
    table.add_column("Diff", justify="right")
    table.add_column("% Change", justify="right")
    table.add_column("Status")

    for row in rows:
        table.add_row(
            row.label,
            row.display_a,
            row.display_b,
            row.display_diff,
            row.display_pct,
            INDICATOR_MARKUP[row.indicator],
        )

    console.print(f"\n[bold]Comparing {run_a} -> {run_b}[/bold]\n")
    console.print(table)
