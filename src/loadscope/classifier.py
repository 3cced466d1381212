# Copyright (c) Syntropy Systems
"""Pass/fail verdicts and threshold checks for runs.

Everything here is a pure function of its arguments and never raises on
unrecognised states or metrics; the dashboard must always be renderable.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Literal, Optional

if TYPE_CHECKING:
    from collections.abc import Iterable

    from loadscope.models.metrics import MetricSnapshot, StopCondition
    from loadscope.models.run import StopReason

VerdictStatus = Literal["pass", "fail", "running", "aborted", "unknown"]

DEFAULT_ERROR_THRESHOLD = 0.1

AUTOMATIC_ACTORS = frozenset({"autoramp", "scheduler", "system"})
USER_ACTORS = frozenset({"user", "ui"})


@dataclass(frozen=True)
class PassFailVerdict:
    """Outcome of a run as shown on the dashboard."""

    status: VerdictStatus
    reason: Optional[str] = None

    @property
    def label(self) -> str:
        return self.status.upper()


def _check_error_rate(error_rate: float | None, threshold: float) -> PassFailVerdict:
    if error_rate is not None and error_rate > threshold:
        reason = (
            f"Error rate {error_rate * 100:.1f}% exceeded threshold {threshold * 100:.0f}%"
        )
        return PassFailVerdict("fail", reason)
    return PassFailVerdict("pass")


def classify_run(
    state: str,
    stop_reason: StopReason | None = None,
    error_rate: float | None = None,
    threshold: float = DEFAULT_ERROR_THRESHOLD,
) -> PassFailVerdict:
    """Derive the verdict of a run from its state, stop reason, and error rate.

    Args:
        state: Run lifecycle state
        stop_reason: Why the run ended, if known
        error_rate: Latest error rate in [0, 1], if known
        threshold: Error rate above which a finished run fails

    Returns:
        The verdict; ``unknown`` for any state not listed below

    """
    reason = stop_reason.reason if stop_reason is not None else ""
    mode = stop_reason.mode if stop_reason is not None else ""
    actor = stop_reason.actor if stop_reason is not None else ""

    if state in ("running", "scheduling"):
        return PassFailVerdict("running")

    if state == "completed":
        if mode == "condition_met":
            return PassFailVerdict("fail", reason or "Stop condition triggered")
        return _check_error_rate(error_rate, threshold)

    if state == "aborted":
        return PassFailVerdict("aborted", reason or "Emergency stop")

    if state == "stopped":
        # Autoramp and scheduler stops are how a run normally ends.
        if actor in AUTOMATIC_ACTORS and reason == "stop_requested":
            return _check_error_rate(error_rate, threshold)
        if actor in USER_ACTORS:
            return PassFailVerdict("pass", "Stopped by user")
        return PassFailVerdict("fail", reason or "Run stopped")

    if state == "failed":
        return PassFailVerdict("fail", reason or "Run failed")

    if state == "stopping":
        return PassFailVerdict("running")

    return PassFailVerdict("unknown")


# --- Threshold checks ---

THRESHOLD_LABELS = {
    "error_rate": "Error Rate",
    "latency_p99_ms": "P99 Latency",
    "latency_p95_ms": "P95 Latency",
    "latency_p50_ms": "P50 Latency",
}

_FORMATTERS: dict[str, Callable[[float], str]] = {
    "error_rate": lambda v: f"{v * 100:.1f}%",
    "latency_p99_ms": lambda v: f"{v:.0f}ms",
    "latency_p95_ms": lambda v: f"{v:.0f}ms",
    "latency_p50_ms": lambda v: f"{v:.0f}ms",
}


@dataclass(frozen=True)
class ThresholdCheck:
    """One configured stop condition evaluated against the latest snapshot."""

    metric: str
    label: str
    current: Optional[float]
    threshold: float
    comparator: str
    violated: bool
    display_current: str
    display_threshold: str


def metric_value(snapshot: MetricSnapshot | None, metric: str) -> float | None:
    """Value of a threshold metric, or None if absent or not a threshold metric."""
    if snapshot is None or metric not in THRESHOLD_LABELS:
        return None
    return float(getattr(snapshot, metric))


def is_violated(current: float | None, threshold: float, comparator: str = ">") -> bool:
    """Compare ``current`` with ``threshold``. Unknown comparators act as ``>``."""
    if current is None:
        return False
    if comparator == ">=":
        return current >= threshold
    if comparator == "<":
        return current < threshold
    if comparator == "<=":
        return current <= threshold
    return current > threshold


def format_metric(metric: str, value: float | None) -> str:
    if value is None:
        return "-"
    formatter = _FORMATTERS.get(metric)
    if formatter is None:
        return format(value, "g")
    return formatter(value)


def evaluate_thresholds(
    conditions: Iterable[StopCondition],
    snapshot: MetricSnapshot | None,
) -> list[ThresholdCheck]:
    """Evaluate each stop condition against ``snapshot`` in configuration order."""
    checks: list[ThresholdCheck] = []
    for condition in conditions:
        current = metric_value(snapshot, condition.metric)
        checks.append(
            ThresholdCheck(
                metric=condition.metric,
                label=THRESHOLD_LABELS.get(condition.metric, condition.metric),
                current=current,
                threshold=condition.threshold,
                comparator=condition.comparator,
                violated=is_violated(current, condition.threshold, condition.comparator),
                display_current=format_metric(condition.metric, current),
                display_threshold=format_metric(condition.metric, condition.threshold),
            )
        )
    return checks
