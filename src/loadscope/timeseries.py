# Copyright (c) Syntropy Systems
"""Append-only, ordered buffer of metric snapshots for one run."""
from __future__ import annotations

import logging
from collections import deque
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

    from loadscope.models.metrics import MetricSnapshot

logger = logging.getLogger(__name__)


class AppendResult(str, Enum):
    """Outcome of appending a snapshot."""

    APPENDED = "appended"
    OUT_OF_ORDER_DROP = "out_of_order_drop"


class SnapshotSeries:
    """Restartable view over a store's snapshots in arrival order.

    Each iteration walks the points held when the iteration started, so
    appends that happen between two ``await``s never disturb a running loop.
    """

    def __init__(self, points: deque[MetricSnapshot]) -> None:
        self._points = points

    def __iter__(self) -> Iterator[MetricSnapshot]:
        yield from tuple(self._points)

    def __len__(self) -> int:
        return len(self._points)

    def __bool__(self) -> bool:
        return bool(self._points)


class TimeSeriesStore:
    """Metric snapshots for one run, monotonically non-decreasing in time."""

    def __init__(self, max_points: int | None = None) -> None:
        if max_points is not None and max_points <= 0:
            msg = f"max_points must be positive, got {max_points}"
            raise ValueError(msg)
        self._points: deque[MetricSnapshot] = deque(maxlen=max_points)
        self._dropped = 0
        self._evicted = 0

    @property
    def max_points(self) -> int | None:
        return self._points.maxlen

    @property
    def dropped_count(self) -> int:
        """Number of snapshots rejected by the ordering check."""
        return self._dropped

    @property
    def evicted_count(self) -> int:
        """Number of snapshots evicted by the retention window."""
        return self._evicted

    def append(self, snapshot: MetricSnapshot) -> AppendResult:
        """Append a snapshot unless it sorts before the latest stored point."""
        last = self.latest()
        if last is not None and snapshot.is_before(last):
            self._dropped += 1
            logger.debug(
                "Dropped out-of-order snapshot at %d (latest %d)",
                snapshot.timestamp_ms,
                last.timestamp_ms,
            )
            return AppendResult.OUT_OF_ORDER_DROP

        if self._points.maxlen is not None and len(self._points) == self._points.maxlen:
            self._evicted += 1
        self._points.append(snapshot)
        return AppendResult.APPENDED

    def latest(self) -> MetricSnapshot | None:
        """Return the most recent snapshot, or None if empty."""
        if not self._points:
            return None
        return self._points[-1]

    def first(self) -> MetricSnapshot | None:
        """Return the oldest retained snapshot, or None if empty."""
        if not self._points:
            return None
        return self._points[0]

    def all(self) -> SnapshotSeries:
        """Return all retained snapshots in arrival order."""
        return SnapshotSeries(self._points)

    def __len__(self) -> int:
        return len(self._points)
