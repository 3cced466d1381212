# Copyright (c) Syntropy Systems
"""Pydantic models for loadscope."""

from loadscope.models.logs import LogFilters, LogPage, OperationLog, PaginationState
from loadscope.models.metrics import (
    DerivedStage,
    LiveMetrics,
    MetricSnapshot,
    MetricsTimePoint,
    RunMetrics,
    StageMarker,
    StopCondition,
)
from loadscope.models.run import RunInfo, StopReason

__all__ = [
    "DerivedStage",
    "LogFilters",
    "LiveMetrics",
    "LogPage",
    "MetricSnapshot",
    "MetricsTimePoint",
    "OperationLog",
    "PaginationState",
    "RunInfo",
    "RunMetrics",
    "StageMarker",
    "StopCondition",
    "StopReason",
]
