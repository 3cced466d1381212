# Copyright (c) Syntropy Systems
"""Top-level controller tying the run in view to its live and log state."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from loadscope.aggregator import LiveAggregator, RunContext
from loadscope.classifier import PassFailVerdict, classify_run, evaluate_thresholds
from loadscope.config import LoadscopeConfig
from loadscope.errors import NotFoundError, TransportError
from loadscope.feed import HttpEventFeed
from loadscope.logquery import LogQueryEngine
from loadscope.summary import SeriesSummary, summarize_series

if TYPE_CHECKING:
    from collections.abc import Iterable

    from loadscope.classifier import ThresholdCheck
    from loadscope.client import LoadscopeClient
    from loadscope.feed import EventFeed
    from loadscope.models.metrics import DerivedStage, StopCondition

logger = logging.getLogger(__name__)


class DashboardController:
    """Owns the :class:`RunContext` of the selected run.

    Selecting a run tears down everything tied to the previous one: the live
    subscription, its context, and the log query state.
    """

    def __init__(
        self,
        client: LoadscopeClient,
        feed: EventFeed | None = None,
        config: LoadscopeConfig | None = None,
    ) -> None:
        self._config = config or LoadscopeConfig()
        if feed is None:
            feed = HttpEventFeed(
                client,
                reconnect_delay=self._config.reconnect_delay,
                max_reconnects=self._config.max_reconnects,
            )
        self._client = client
        self.aggregator = LiveAggregator(feed)
        self.logs = LogQueryEngine(client.fetch_logs, page_size=self._config.page_size)
        self._context: RunContext | None = None
        self._selection = 0

    @property
    def context(self) -> RunContext | None:
        return self._context

    async def select_run(self, run_id: str, *, follow: bool = True) -> RunContext | None:
        """Make ``run_id`` the run in view.

        A finished run is backfilled with its stored time series; an active
        run gets its latest aggregate and then follows the live feed.

        Args:
            run_id: Run ID
            follow: Subscribe to the live feed while the run is active

        Returns:
            The new context, or None if another selection started meanwhile

        Raises:
            NotFoundError: If the run does not exist
            TransportError: If the run could not be fetched

        """
        self._selection += 1
        selection = self._selection
        self.aggregator.detach()
        self.logs.reset(run_id)
        self._context = None

        run = await self._client.fetch_run(run_id)
        if selection != self._selection:
            logger.debug("Selection of run %s superseded", run_id)
            return None

        context = RunContext(run, max_points=self._config.max_data_points)
        try:
            metrics = await self._client.fetch_metrics(run_id, include_time_series=not run.is_active)
        except (NotFoundError, TransportError) as e:
            logger.warning("Could not load metrics for run %s: %s", run_id, e)
            context.metrics_error = str(e)
        else:
            _ = context.load_metrics(metrics)
        if selection != self._selection:
            logger.debug("Selection of run %s superseded", run_id)
            return None

        self._context = context
        if follow and run.is_active:
            self.aggregator.attach(context)
        logger.debug("Selected run %s (state %s)", run.id, run.state)
        return context

    def verdict(self) -> PassFailVerdict:
        context = self._context
        if context is None:
            return PassFailVerdict("unknown")
        latest = context.latest()
        return classify_run(
            context.state,
            context.run.stop_reason,
            latest.error_rate if latest is not None else None,
            threshold=self._config.error_threshold,
        )

    def stages(self, now_ms: int) -> list[DerivedStage]:
        if self._context is None:
            return []
        return self._context.derive_stages(now_ms)

    def elapsed_ms(self, now_ms: int) -> int:
        if self._context is None:
            return 0
        return self._context.elapsed_ms(now_ms)

    def threshold_status(self, conditions: Iterable[StopCondition]) -> list[ThresholdCheck]:
        latest = self._context.latest() if self._context is not None else None
        return evaluate_thresholds(conditions, latest)

    def summary(self) -> SeriesSummary:
        if self._context is None:
            return SeriesSummary()
        return summarize_series(self._context.all(), self._context.duration_ms)

    async def close(self) -> None:
        """Tear down the live subscription and any outstanding log query."""
        self._selection += 1
        await self.aggregator.aclose()
        self.logs.cancel()
        self._context = None
