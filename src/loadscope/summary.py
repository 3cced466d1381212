# Copyright (c) Syntropy Systems
"""Headline numbers computed over a run's metric series."""
from __future__ import annotations

from typing import TYPE_CHECKING

from loadscope.models.base import FrozenModel

if TYPE_CHECKING:
    from collections.abc import Iterable

    from loadscope.models.metrics import MetricSnapshot


class SeriesSummary(FrozenModel):
    """Aggregate view of a metric series."""

    total_ops: int = 0
    failed_ops: int = 0
    success_rate: float = 100.0
    avg_latency_ms: float = 0.0
    peak_throughput: float = 0.0
    avg_error_rate: float = 0.0
    duration_seconds: float = 0.0


def summarize_series(
    series: Iterable[MetricSnapshot],
    duration_ms: int | None = None,
) -> SeriesSummary:
    """Summarize a series of cumulative snapshots.

    Totals come from the latest snapshot rather than a sum over the series.
    Duration uses ``duration_ms`` when positive, otherwise the span between
    the first and last snapshot.
    """
    points = list(series)
    if not points:
        return SeriesSummary()

    first, latest = points[0], points[-1]
    total = latest.total_ops
    success_rate = (total - latest.failed_ops) / total * 100 if total > 0 else 100.0

    if duration_ms is not None and duration_ms > 0:
        duration_seconds = duration_ms / 1000
    else:
        duration_seconds = max(0, latest.timestamp_ms - first.timestamp_ms) / 1000

    return SeriesSummary(
        total_ops=total,
        failed_ops=latest.failed_ops,
        success_rate=success_rate,
        avg_latency_ms=sum(p.mean_latency_ms for p in points) / len(points),
        peak_throughput=max(p.throughput for p in points),
        avg_error_rate=sum(p.error_rate for p in points) / len(points),
        duration_seconds=duration_seconds,
    )
