# Copyright (c) Syntropy Systems
"""loadscope logs command."""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

import typer
from rich.console import Console
from rich.table import Table

from loadscope.client import get_client
from loadscope.config import load_config
from loadscope.errors import LoadscopeError
from loadscope.formatting import format_latency
from loadscope.logquery import LogQueryEngine

if TYPE_CHECKING:
    from loadscope.config import LoadscopeConfig
    from loadscope.models.logs import LogPage, OperationLog

console = Console()


def collect_filters(**values: Optional[str]) -> dict[str, str]:
    """Keep only the filter options that were given."""
    return {key: value for key, value in values.items() if value}


async def fetch_page(
    config: LoadscopeConfig,
    run_id: str,
    filters: dict[str, str],
    offset: int,
    limit: int | None,
) -> LogPage | None:
    """Run a single log query against the configured server."""
    async with get_client(config.server_url, config.request_timeout) as client:
        engine = LogQueryEngine(client.fetch_logs, page_size=config.page_size)
        return await engine.query(run_id, filters, offset, limit or engine.page_size)


def _format_timestamp(timestamp_ms: int) -> str:
    ts = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
    return ts.strftime("%H:%M:%S.%f")[:-3]


def build_logs_table(logs: list[OperationLog]) -> Table:
    """Build the log rows table."""
    table = Table(show_header=True, header_style="bold")
    table.add_column("Time", style="dim")
    table.add_column("Stage")
    table.add_column("Worker")
    table.add_column("Operation")
    table.add_column("Tool")
    table.add_column("Latency", justify="right")
    table.add_column("OK")
    table.add_column("Error")

    for log in logs:
        error = ":".join(part for part in (log.error_type, log.error_code) if part)
        table.add_row(
            _format_timestamp(log.timestamp_ms),
            log.stage or "-",
            log.worker_id or "-",
            log.operation or "-",
            log.tool_name or "-",
            format_latency(log.latency_ms),
            "[green]yes[/green]" if log.ok else "[red]no[/red]",
            error or "-",
        )

    return table


def logs(
    run_id: str = typer.Argument(..., help="Run ID to show logs for"),
    stage: Optional[str] = typer.Option(None, "--stage", help="Filter by stage"),
    worker_id: Optional[str] = typer.Option(None, "--worker", help="Filter by worker ID"),
    session_id: Optional[str] = typer.Option(None, "--session", help="Filter by session ID"),
    vu_id: Optional[str] = typer.Option(None, "--vu", help="Filter by virtual user ID"),
    operation: Optional[str] = typer.Option(None, "--operation", help="Filter by operation"),
    tool_name: Optional[str] = typer.Option(None, "--tool", help="Filter by tool name"),
    error_type: Optional[str] = typer.Option(None, "--error-type", help="Filter by error type"),
    error_code: Optional[str] = typer.Option(None, "--error-code", help="Filter by error code"),
    offset: int = typer.Option(0, "--offset", "-o", help="Rows to skip"),
    limit: Optional[int] = typer.Option(None, "--limit", "-l", help="Page size"),
) -> None:
    """Show one page of operation logs for a run, newest first.

    Examples:
        loadscope logs run-123 --stage ramp
        loadscope logs run-123 --error-type timeout --error-code E42
        loadscope logs run-123 --offset 50 --limit 50

    """
    config = load_config()
    filters = collect_filters(
        stage=stage,
        worker_id=worker_id,
        session_id=session_id,
        vu_id=vu_id,
        operation=operation,
        tool_name=tool_name,
        error_type=error_type,
        error_code=error_code,
    )

    try:
        page = asyncio.run(fetch_page(config, run_id, filters, offset, limit))
    except LoadscopeError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    if page is None or not page.logs:
        console.print("[dim]No logs found[/dim]")
        return

    console.print(build_logs_table(page.logs))

    pagination = page.pagination
    first = pagination.offset + 1
    last = pagination.offset + len(page.logs)
    footer = (
        f"Showing {first}-{last} of {pagination.total} "
        f"(page {pagination.current_page}/{pagination.total_pages})"
    )
    if pagination.can_go_next:
        footer += f", next: --offset {pagination.next_offset}"
    console.print(f"[dim]{footer}[/dim]")
    if page.logs_truncated:
        console.print("[yellow]Log retention limit reached; older logs were dropped[/yellow]")
