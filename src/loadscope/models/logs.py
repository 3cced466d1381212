# Copyright (c) Syntropy Systems
"""Pydantic models for operation logs and paginated log queries."""

from __future__ import annotations

import math
from typing import ClassVar, Optional

from pydantic import ConfigDict, Field

from .base import FrozenModel, JSONValue, LoadscopeBaseModel


class OperationLog(LoadscopeBaseModel):
    """A single operation executed by the load generator."""

    timestamp_ms: int
    run_id: str = ""
    execution_id: Optional[str] = None
    stage: str = ""
    stage_id: str = ""
    worker_id: str = ""
    vu_id: str = ""
    session_id: str = ""
    operation: str = ""
    tool_name: str = ""
    latency_ms: float = 0.0
    ok: bool = True
    error_type: str = ""
    error_code: str = ""
    stream: Optional[dict[str, JSONValue]] = None
    token_index: Optional[int] = None


class LogFilters(FrozenModel):
    """Log query filters; empty strings mean "no filter"."""

    model_config: ClassVar[ConfigDict] = ConfigDict(
        extra="forbid",
        frozen=True,
    )

    stage: str = ""
    stage_id: str = ""
    worker_id: str = ""
    session_id: str = ""
    vu_id: str = ""
    operation: str = ""
    tool_name: str = ""
    error_type: str = ""
    error_code: str = ""

    def as_params(self) -> dict[str, str]:
        """Return only the filters that are set."""
        return {key: value for key, value in self.model_dump().items() if value}


class PaginationState(FrozenModel):
    """Offset/limit window over a result set of ``total`` rows."""

    offset: int = Field(default=0, ge=0)
    limit: int = Field(default=50, gt=0)
    total: int = Field(default=0, ge=0)

    @property
    def can_go_next(self) -> bool:
        return self.offset + self.limit < self.total

    @property
    def can_go_prev(self) -> bool:
        return self.offset > 0

    @property
    def next_offset(self) -> int:
        return self.offset + self.limit

    @property
    def prev_offset(self) -> int:
        return max(0, self.offset - self.limit)

    @property
    def current_page(self) -> int:
        return self.offset // self.limit + 1

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit)


class LogPage(LoadscopeBaseModel):
    """One page of a log query."""

    run_id: str = ""
    logs: list[OperationLog] = Field(default_factory=list)
    offset: int = 0
    limit: int = 50
    total: int = 0
    logs_truncated: bool = False

    @property
    def pagination(self) -> PaginationState:
        return PaginationState(
            offset=max(0, self.offset),
            limit=max(1, self.limit),
            total=max(0, self.total),
        )
