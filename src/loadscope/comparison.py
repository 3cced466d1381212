# Copyright (c) Syntropy Systems
"""Side-by-side comparison of two runs' summary metrics."""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Literal

if TYPE_CHECKING:
    from loadscope.models.metrics import RunMetrics

Direction = Literal["higher_better", "lower_better"]
Indicator = Literal["improved", "regressed", "neutral"]

# Changes smaller than this many percent are reported as neutral.
NEUTRAL_BAND_PCT = 1.0


def _thousands(value: float) -> str:
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.3f}".rstrip("0").rstrip(".")


@dataclass(frozen=True)
class MetricConfig:
    """How one metric is labelled, judged, and displayed."""

    key: str
    label: str
    unit: str
    direction: Direction
    format: Callable[[float], str]


METRIC_CONFIGS: tuple[MetricConfig, ...] = (
    MetricConfig("throughput", "Throughput", "/s", "higher_better", lambda v: f"{v:.1f}"),
    MetricConfig("latency_p50_ms", "P50 Latency", "ms", "lower_better", lambda v: f"{v:.1f}"),
    MetricConfig("latency_p95_ms", "P95 Latency", "ms", "lower_better", lambda v: f"{v:.1f}"),
    MetricConfig("latency_p99_ms", "P99 Latency", "ms", "lower_better", lambda v: f"{v:.1f}"),
    MetricConfig("error_rate", "Error Rate", "%", "lower_better", lambda v: f"{v * 100:.2f}"),
    MetricConfig("total_ops", "Total Operations", "", "higher_better", _thousands),
    MetricConfig("failed_ops", "Failed Operations", "", "lower_better", _thousands),
    MetricConfig("duration_ms", "Duration", "s", "lower_better", lambda v: f"{v / 1000:.1f}"),
)


@dataclass(frozen=True)
class ComparisonRow:
    """One metric of run B measured against run A."""

    metric: str
    label: str
    value_a: float
    value_b: float
    diff_abs: float
    diff_pct: float
    indicator: Indicator
    display_a: str
    display_b: str
    display_diff: str
    display_pct: str


def diff_pct(value_a: float, value_b: float) -> float:
    """Percentage change from A to B.

    A zero baseline yields 0 when B is also zero and 100 otherwise.
    """
    if value_a == 0:
        return 0.0 if value_b == 0 else 100.0
    return (value_b - value_a) / value_a * 100


def indicator(pct: float, direction: Direction) -> Indicator:
    """Judge a percentage change given which direction is better."""
    if abs(pct) < NEUTRAL_BAND_PCT:
        return "neutral"
    improved = pct < 0 if direction == "lower_better" else pct > 0
    return "improved" if improved else "regressed"


def format_diff(config: MetricConfig, diff: float) -> str:
    """Signed absolute difference in the metric's display unit."""
    sign = "+" if diff >= 0 else ""
    if config.key == "error_rate":
        return f"{sign}{diff * 100:.2f}%"
    if config.key == "duration_ms":
        return f"{sign}{diff / 1000:.1f}s"
    return f"{sign}{config.format(diff)}{config.unit}"


def format_pct(pct: float) -> str:
    if abs(pct) < 0.1:
        return "0%"
    sign = "+" if pct >= 0 else ""
    return f"{sign}{pct:.1f}%"


def compare_runs(run_a: RunMetrics, run_b: RunMetrics) -> list[ComparisonRow]:
    """Build one row per tracked metric, with run A as the baseline."""
    rows: list[ComparisonRow] = []
    for config in METRIC_CONFIGS:
        value_a = float(getattr(run_a, config.key))
        value_b = float(getattr(run_b, config.key))
        pct = diff_pct(value_a, value_b)
        diff = value_b - value_a
        rows.append(
            ComparisonRow(
                metric=config.key,
                label=config.label,
                value_a=value_a,
                value_b=value_b,
                diff_abs=diff,
                diff_pct=pct,
                indicator=indicator(pct, config.direction),
                display_a=f"{config.format(value_a)}{config.unit}",
                display_b=f"{config.format(value_b)}{config.unit}",
                display_diff=format_diff(config, diff),
                display_pct=format_pct(pct),
            )
        )
    return rows
