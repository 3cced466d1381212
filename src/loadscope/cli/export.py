# Copyright (c) Syntropy Systems
"""Export command - export one page of run logs to CSV/JSON."""
from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from loadscope.cli.logs import collect_filters, fetch_page
from loadscope.config import load_config
from loadscope.errors import LoadscopeError
from loadscope.export import EXPORT_SUFFIXES, write_export

console = Console()


def export(
    run_id: str = typer.Argument(..., help="Run ID to export logs for"),
    output: Path = typer.Argument(..., help="Output file path (.csv or .json)"),
    stage: Optional[str] = typer.Option(None, "--stage", help="Filter by stage"),
    operation: Optional[str] = typer.Option(None, "--operation", help="Filter by operation"),
    error_type: Optional[str] = typer.Option(None, "--error-type", help="Filter by error type"),
    error_code: Optional[str] = typer.Option(None, "--error-code", help="Filter by error code"),
    offset: int = typer.Option(0, "--offset", "-o", help="Rows to skip"),
    limit: Optional[int] = typer.Option(None, "--limit", "-l", help="Page size"),
) -> None:
    """Export one page of operation logs to CSV or JSON format.

    Examples:
        loadscope export run-123 logs.csv
        loadscope export run-123 errors.json --error-type timeout

    """
    if output.suffix.lower() not in EXPORT_SUFFIXES:
        console.print("[red]Output must be .csv or .json[/red]")
        raise typer.Exit(1)

    config = load_config()
    filters = collect_filters(
        stage=stage,
        operation=operation,
        error_type=error_type,
        error_code=error_code,
    )

    try:
        page = asyncio.run(fetch_page(config, run_id, filters, offset, limit))
    except LoadscopeError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    if page is None or not page.logs:
        console.print("[yellow]No logs to export[/yellow]")
        raise typer.Exit(0)

    count = write_export(output, page.logs)
    console.print(f"[green]Exported {count} log(s) to {output}[/green]")
