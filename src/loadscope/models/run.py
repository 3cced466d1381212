# Copyright (c) Syntropy Systems
"""Pydantic models for run metadata."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, cast

from pydantic import Field, model_validator

from .base import LoadscopeBaseModel

RUN_STATES = (
    "created",
    "pending",
    "scheduling",
    "running",
    "stopping",
    "stopped",
    "completed",
    "aborted",
    "failed",
)

# States in which a run is still producing telemetry.
ACTIVE_STATES = frozenset({"created", "pending", "scheduling", "running"})

TERMINAL_STATES = frozenset({"completed", "failed", "stopped", "aborted"})


def _ms_to_iso(value: object) -> Optional[str]:
    if isinstance(value, (int, float)) and value > 0:
        ts = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        return ts.isoformat().replace("+00:00", "Z")
    return None


def parse_timestamp_ms(timestamp: str | None) -> int | None:
    """Convert an ISO timestamp to epoch milliseconds, or None if unparseable."""
    if not timestamp:
        return None
    try:
        ts = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    except ValueError:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return int(ts.timestamp() * 1000)


class StopReason(LoadscopeBaseModel):
    """Why and by whom a run was ended."""

    mode: str = ""
    reason: str = ""
    actor: str = ""
    at_ms: Optional[int] = None


class RunInfo(LoadscopeBaseModel):
    """Run record as served by the control plane."""

    id: str = ""
    scenario_id: str = ""
    state: str = ""
    created_at: str = ""
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    stop_reason: Optional[StopReason] = None

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: object) -> object:
        if not isinstance(data, dict):
            return data
        raw = cast("dict[str, object]", data)
        values = dict(raw)
        if not values.get("id") and values.get("run_id"):
            values["id"] = values["run_id"]
        for field in ("created_at", "started_at", "completed_at"):
            if not values.get(field):
                converted = _ms_to_iso(values.get(f"{field}_ms"))
                if converted is not None:
                    values[field] = converted
        if values.get("created_at") is None:
            values["created_at"] = ""
        return values

    @property
    def is_active(self) -> bool:
        """Whether the run is still producing telemetry."""
        return self.state in ACTIVE_STATES

    @property
    def started_at_ms(self) -> int | None:
        """Start time in epoch milliseconds."""
        return parse_timestamp_ms(self.started_at)

    @property
    def created_at_ms(self) -> int | None:
        """Creation time in epoch milliseconds."""
        return parse_timestamp_ms(self.created_at)


class RunListResponse(LoadscopeBaseModel):
    """Response containing run records."""

    runs: list[RunInfo] = Field(default_factory=list)


class ErrorResponse(LoadscopeBaseModel):
    """Error body returned by the control plane."""

    error: Optional[str] = None
    detail: Optional[str] = None
    message: Optional[str] = None

    @property
    def text(self) -> str | None:
        """First non-empty error message."""
        return self.error or self.detail or self.message
