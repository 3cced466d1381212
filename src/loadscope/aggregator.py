# Copyright (c) Syntropy Systems
"""Live aggregation of one run's event feed into its time series and stages."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional

from loadscope.errors import TransportError
from loadscope.feed import SnapshotEvent, StageEvent, StateEvent, StreamStatusEvent
from loadscope.models.run import ACTIVE_STATES, parse_timestamp_ms
from loadscope.stages import StageMarkerTracker
from loadscope.timeseries import AppendResult, TimeSeriesStore

if TYPE_CHECKING:
    from typing_extensions import TypeAlias

    from loadscope.feed import EventFeed, FeedEvent
    from loadscope.models.metrics import DerivedStage, LiveMetrics, MetricSnapshot, StageMarker
    from loadscope.models.run import RunInfo
    from loadscope.timeseries import SnapshotSeries

    Observer: TypeAlias = Callable[["RunContext", FeedEvent], None]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunTotals:
    """Cumulative counters as of the latest snapshot."""

    total_ops: int = 0
    success_ops: int = 0
    failed_ops: int = 0


@dataclass(frozen=True)
class StreamStatus:
    """Connection status of the live feed as seen by observers."""

    connected: bool = False
    interrupted: bool = False
    error: Optional[str] = None


class RunContext:
    """Everything the dashboard knows about the run in view.

    Created when a run is selected and discarded when another run is
    selected. The snapshot store and marker tracker are only written through
    :meth:`record_snapshot` and :meth:`record_marker`, which apply the
    ordering and de-duplication rules.
    """

    def __init__(self, run: RunInfo, max_points: int | None = None) -> None:
        self.run = run
        self.state = run.state
        self.stream = StreamStatus()
        self.duration_ms: int | None = None
        self.metrics_error: str | None = None
        self._store = TimeSeriesStore(max_points)
        self._stages = StageMarkerTracker()

    @property
    def run_id(self) -> str:
        return self.run.id

    @property
    def is_active(self) -> bool:
        return self.state in ACTIVE_STATES

    @property
    def current_stage(self) -> StageMarker | None:
        return self._stages.current_stage()

    @property
    def dropped_snapshots(self) -> int:
        return self._store.dropped_count

    @property
    def totals(self) -> RunTotals:
        """Counters taken from the latest cumulative snapshot."""
        latest = self._store.latest()
        if latest is None:
            return RunTotals()
        return RunTotals(
            total_ops=latest.total_ops,
            success_ops=latest.success_ops,
            failed_ops=latest.failed_ops,
        )

    def record_snapshot(self, snapshot: MetricSnapshot) -> AppendResult:
        result = self._store.append(snapshot)
        if result is AppendResult.APPENDED and snapshot.duration_ms is not None:
            self.duration_ms = snapshot.duration_ms
        return result

    def record_marker(self, marker: StageMarker) -> bool:
        return self._stages.record(marker)

    def load_metrics(self, metrics: LiveMetrics) -> int:
        """Backfill snapshots fetched from the metrics endpoint.

        Returns:
            Number of snapshots appended

        """
        appended = 0
        for snapshot in metrics.snapshots():
            if self.record_snapshot(snapshot) is AppendResult.APPENDED:
                appended += 1
        if metrics.duration_ms:
            self.duration_ms = metrics.duration_ms
        return appended

    def latest(self) -> MetricSnapshot | None:
        return self._store.latest()

    def all(self) -> SnapshotSeries:
        return self._store.all()

    def markers(self) -> list[StageMarker]:
        return self._stages.markers()

    def derive_stages(self, now_ms: int) -> list[DerivedStage]:
        """Stage durations as of ``now_ms``."""
        return self._stages.derive_stages(
            now_ms,
            self.run.started_at_ms,
            is_active=self.is_active,
        )

    def elapsed_ms(self, now_ms: int) -> int:
        """Wall time since start for an active run, else the final duration."""
        started = self.run.started_at_ms
        if self.is_active:
            if started is None:
                return 0
            return max(0, now_ms - started)
        if self.duration_ms:
            return self.duration_ms
        completed = parse_timestamp_ms(self.run.completed_at)
        if started is not None and completed is not None:
            return max(0, completed - started)
        return 0


class LiveAggregator:
    """Feeds live events for exactly one run into its :class:`RunContext`.

    :meth:`attach` tears down the previous subscription before the new one
    starts, so an event still in flight for the old run can never reach the
    new run's store.
    """

    def __init__(self, feed: EventFeed) -> None:
        self._feed = feed
        self._context: RunContext | None = None
        self._task: asyncio.Task[None] | None = None
        self._generation = 0
        self._observers: list[Observer] = []

    @property
    def context(self) -> RunContext | None:
        return self._context

    @property
    def running(self) -> bool:
        """Whether a subscription is still consuming the feed."""
        return self._task is not None and not self._task.done()

    def add_observer(self, observer: Observer) -> None:
        """Register a callback invoked after every applied event.

        An observer that raises is logged and does not stop the feed.
        """
        self._observers.append(observer)

    def attach(self, context: RunContext) -> None:
        """Start consuming the feed for ``context``'s run.

        Must be called from within a running event loop.
        """
        self.detach()
        self._context = context
        generation = self._generation
        self._task = asyncio.ensure_future(self._consume(context, generation))
        logger.debug("Subscribed to run %s (generation %d)", context.run_id, generation)

    def detach(self) -> None:
        """Stop consuming the current feed; no event reaches the old context after this."""
        self._generation += 1
        task, self._task = self._task, None
        if task is not None and not task.done():
            _ = task.cancel()
        if self._context is not None:
            logger.debug("Unsubscribed from run %s", self._context.run_id)
        self._context = None

    async def wait(self) -> None:
        """Wait until the current subscription ends (the run reached a terminal state)."""
        task = self._task
        if task is not None:
            await task

    async def aclose(self) -> None:
        """Detach and wait for the consumer task to finish unwinding."""
        task = self._task
        self.detach()
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass

    def apply(self, event: FeedEvent) -> bool:
        """Apply one event to the attached context.

        Returns False when the event is for a different run or was rejected
        by the ordering or de-duplication rules.
        """
        context = self._context
        if context is None or event.run_id != context.run_id:
            logger.debug("Ignoring event for run %s", event.run_id)
            return False

        applied = True
        if isinstance(event, SnapshotEvent):
            applied = context.record_snapshot(event.snapshot) is AppendResult.APPENDED
        elif isinstance(event, StageEvent):
            applied = context.record_marker(event.marker)
        elif isinstance(event, StateEvent):
            context.state = event.to_state
        elif isinstance(event, StreamStatusEvent):
            context.stream = StreamStatus(
                connected=event.connected,
                interrupted=not event.connected,
                error=event.error,
            )

        for observer in self._observers:
            try:
                observer(context, event)
            except Exception:
                logger.exception("Observer failed on event for run %s", context.run_id)
        return applied

    async def _consume(self, context: RunContext, generation: int) -> None:
        try:
            async for event in self._feed.subscribe(context.run_id):
                if generation != self._generation:
                    return
                _ = self.apply(event)
        except TransportError as e:
            if generation != self._generation:
                return
            logger.warning("Live feed for run %s failed: %s", context.run_id, e)
            _ = self.apply(StreamStatusEvent(context.run_id, connected=False, error=str(e)))
