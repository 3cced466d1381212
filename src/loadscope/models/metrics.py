# Copyright (c) Syntropy Systems
"""Pydantic models for metric snapshots, stages, and run summaries."""

from __future__ import annotations

from typing import Literal, Optional, cast

from pydantic import AliasChoices, Field, model_validator

from loadscope.formatting import format_clock

from .base import FrozenModel, LoadscopeBaseModel

StageStatus = Literal["completed", "running"]


class MetricSnapshot(FrozenModel):
    """One aggregate measurement of a run at a point in time.

    Counters (``success_ops``, ``failed_ops``, ``total_ops``) are cumulative
    since the start of the run.
    """

    time: str = ""
    timestamp_ms: int = Field(
        default=0,
        validation_alias=AliasChoices("timestamp_ms", "timestamp"),
    )
    sequence: Optional[int] = None
    throughput: float = 0.0
    latency_p50_ms: float = 0.0
    latency_p95_ms: float = 0.0
    latency_p99_ms: float = 0.0
    latency_mean_ms: Optional[float] = Field(
        default=None,
        validation_alias=AliasChoices("latency_mean_ms", "latency_mean"),
    )
    error_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    success_ops: int = 0
    failed_ops: int = 0
    total_ops: int = 0
    duration_ms: Optional[int] = None

    @model_validator(mode="before")
    @classmethod
    def _fill_derived(cls, data: object) -> object:
        if not isinstance(data, dict):
            return data
        values = {
            key: value
            for key, value in cast("dict[str, object]", data).items()
            if value is not None
        }
        if not values.get("total_ops"):
            success = values.get("success_ops", 0)
            failed = values.get("failed_ops", 0)
            if isinstance(success, (int, float)) and isinstance(failed, (int, float)):
                values["total_ops"] = int(success) + int(failed)
        if not values.get("time"):
            ts = values.get("timestamp_ms", values.get("timestamp"))
            if isinstance(ts, (int, float)):
                values["time"] = format_clock(int(ts))
        return values

    @property
    def mean_latency_ms(self) -> float:
        """Mean latency, falling back to the P50/P95 midpoint."""
        if self.latency_mean_ms is not None:
            return self.latency_mean_ms
        return (self.latency_p50_ms + self.latency_p95_ms) / 2

    def is_before(self, other: MetricSnapshot) -> bool:
        """Whether this snapshot sorts strictly before ``other``."""
        if self.sequence is not None and other.sequence is not None:
            return self.sequence < other.sequence
        return self.timestamp_ms < other.timestamp_ms


class StageMarker(FrozenModel):
    """A stage transition observed on the live feed."""

    stage: str
    label: str = ""
    timestamp: int

    @model_validator(mode="before")
    @classmethod
    def _default_label(cls, data: object) -> object:
        if isinstance(data, dict):
            values = dict(cast("dict[str, object]", data))
            stage = values.get("stage")
            if not values.get("label") and isinstance(stage, str):
                values["label"] = stage.upper()
            return values
        return data


class DerivedStage(FrozenModel):
    """Stage duration computed from the sorted marker sequence."""

    name: str
    raw_name: str
    duration_ms: int
    status: StageStatus


class RunMetrics(LoadscopeBaseModel):
    """Final summary metrics of one run, as used for comparisons."""

    run_id: str
    throughput: float = 0.0
    latency_p50_ms: float = 0.0
    latency_p95_ms: float = 0.0
    latency_p99_ms: float = 0.0
    error_rate: float = 0.0
    total_ops: float = 0.0
    failed_ops: float = 0.0
    duration_ms: float = 0.0


class ComparisonApiResponse(LoadscopeBaseModel):
    """Raw response of the run comparison endpoint."""

    run_a: RunMetrics
    run_b: RunMetrics


class StopCondition(LoadscopeBaseModel):
    """A threshold configured on a stage."""

    id: Optional[str] = None
    metric: str
    comparator: str = ">"
    threshold: float
    window_ms: int = 0
    sustain_windows: Optional[int] = None


class MetricsTimePoint(LoadscopeBaseModel):
    """One point of a run's stored time series."""

    timestamp: int
    success_ops: int = 0
    failed_ops: int = 0
    throughput: float = 0.0
    latency_p50: float = 0.0
    latency_p95: float = 0.0
    latency_p99: float = 0.0
    latency_mean: Optional[float] = None
    error_rate: float = 0.0

    def to_snapshot(self) -> MetricSnapshot:
        return MetricSnapshot(
            timestamp_ms=self.timestamp,
            throughput=self.throughput,
            latency_p50_ms=self.latency_p50,
            latency_p95_ms=self.latency_p95,
            latency_p99_ms=self.latency_p99,
            latency_mean_ms=self.latency_mean,
            error_rate=self.error_rate,
            success_ops=self.success_ops,
            failed_ops=self.failed_ops,
        )


class LiveMetrics(LoadscopeBaseModel):
    """Response of the run metrics endpoint.

    Carries the run's current aggregate and, when requested, its stored
    time series.
    """

    run_id: str = ""
    throughput: float = 0.0
    latency_p50_ms: float = 0.0
    latency_p95_ms: float = 0.0
    latency_p99_ms: float = 0.0
    latency_mean: Optional[float] = None
    error_rate: float = 0.0
    total_ops: int = 0
    failed_ops: int = 0
    success_ops: Optional[int] = None
    duration_ms: Optional[int] = None
    timestamp: Optional[int] = None
    time_series: list[MetricsTimePoint] = Field(default_factory=list)
    operations_truncated: bool = False

    def latest_snapshot(self) -> MetricSnapshot | None:
        """The aggregate as a snapshot, or None without a timestamp."""
        if self.timestamp is None:
            return None
        success = self.success_ops
        if success is None:
            success = max(0, self.total_ops - self.failed_ops)
        return MetricSnapshot(
            timestamp_ms=self.timestamp,
            throughput=self.throughput,
            latency_p50_ms=self.latency_p50_ms,
            latency_p95_ms=self.latency_p95_ms,
            latency_p99_ms=self.latency_p99_ms,
            latency_mean_ms=self.latency_mean,
            error_rate=self.error_rate,
            success_ops=success,
            failed_ops=self.failed_ops,
            total_ops=self.total_ops,
        )

    def snapshots(self) -> list[MetricSnapshot]:
        """Points to backfill: the time series if present, else the aggregate."""
        if self.time_series:
            return [point.to_snapshot() for point in self.time_series]
        latest = self.latest_snapshot()
        return [latest] if latest is not None else []
