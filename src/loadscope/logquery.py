# Copyright (c) Syntropy Systems
"""Paged log queries with at-most-one-in-flight cancellation semantics."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Callable, Union

from pydantic import ValidationError

from loadscope.errors import QueryCancelled, QueryValidationError, TransportError
from loadscope.models.logs import LogFilters, LogPage, OperationLog, PaginationState

if TYPE_CHECKING:
    from collections.abc import Awaitable, Mapping

    from typing_extensions import TypeAlias

    FetchLogs: TypeAlias = Callable[
        [str, LogFilters, int, int, "CancellationToken"],
        Awaitable[LogPage],
    ]
    StateListener: TypeAlias = Callable[["LogQueryState"], None]
    FiltersInput: TypeAlias = Union[LogFilters, Mapping[str, str], None]

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50


class CancellationToken:
    """Cooperative cancellation flag shared with the transport."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        _ = await self._event.wait()


@dataclass(frozen=True)
class LogQueryRequest:
    """Exact parameters of an issued query, kept for retries."""

    run_id: str
    filters: LogFilters
    offset: int
    limit: int


@dataclass(frozen=True)
class LogQueryState:
    """Observable result of the engine.

    ``logs`` and ``pagination`` always come from the same response.
    """

    run_id: str | None = None
    filters: LogFilters = field(default_factory=LogFilters)
    logs: tuple[OperationLog, ...] = ()
    pagination: PaginationState = field(default_factory=PaginationState)
    loading: bool = False
    error: str | None = None


def coerce_filters(filters: FiltersInput) -> LogFilters:
    """Validate filter input, rejecting unknown keys and non-string values."""
    if filters is None:
        return LogFilters()
    if isinstance(filters, LogFilters):
        return filters
    try:
        return LogFilters.model_validate(dict(filters))
    except (ValidationError, TypeError, ValueError) as e:
        msg = f"Invalid log filters: {e}"
        raise QueryValidationError(msg) from e


class LogQueryEngine:
    """Executes paged log queries, keeping at most one query in flight.

    Issuing a query cancels the outstanding one. A superseded query never
    changes the observable state and never raises; only a failure of the
    current query surfaces, as :class:`TransportError`.
    """

    def __init__(self, fetch_logs: FetchLogs, page_size: int = DEFAULT_PAGE_SIZE) -> None:
        _validate_limit(page_size)
        self._fetch_logs = fetch_logs
        self._page_size = page_size
        self._generation = 0
        self._token: CancellationToken | None = None
        self._last_request: LogQueryRequest | None = None
        self._state = LogQueryState(pagination=PaginationState(limit=page_size))
        self._listeners: list[StateListener] = []

    @property
    def state(self) -> LogQueryState:
        return self._state

    @property
    def page_size(self) -> int:
        return self._page_size

    @property
    def in_flight(self) -> bool:
        return self._token is not None

    @property
    def last_request(self) -> LogQueryRequest | None:
        return self._last_request

    def add_listener(self, listener: StateListener) -> None:
        """Register a callback invoked with every new state."""
        self._listeners.append(listener)

    def _set_state(self, state: LogQueryState) -> None:
        self._state = state
        for listener in self._listeners:
            listener(state)

    def cancel(self) -> None:
        """Cancel the outstanding query, if any; its result will be discarded."""
        if self._token is None:
            return
        self._token.cancel()
        self._token = None
        self._generation += 1
        if self._state.loading:
            self._set_state(replace(self._state, loading=False))

    def reset(self, run_id: str | None = None) -> None:
        """Cancel and clear all results, e.g. when the run in view changes."""
        self.cancel()
        self._last_request = None
        self._set_state(
            LogQueryState(
                run_id=run_id,
                pagination=PaginationState(limit=self._page_size),
            )
        )

    async def query(
        self,
        run_id: str,
        filters: FiltersInput,
        offset: int,
        limit: int,
    ) -> LogPage | None:
        """Fetch one page, superseding any outstanding query.

        Returns:
            The page, or None if this query was superseded before it finished

        Raises:
            QueryValidationError: On malformed input, before any request
            TransportError: If this (still current) query failed

        """
        if not run_id:
            msg = "A run must be selected before querying logs"
            raise QueryValidationError(msg)
        checked_filters = coerce_filters(filters)
        if offset < 0:
            msg = f"offset must be >= 0, got {offset}"
            raise QueryValidationError(msg)
        _validate_limit(limit)

        self.cancel()
        self._generation += 1
        generation = self._generation
        token = CancellationToken()
        self._token = token
        self._last_request = LogQueryRequest(run_id, checked_filters, offset, limit)
        self._set_state(
            replace(
                self._state,
                run_id=run_id,
                filters=checked_filters,
                loading=True,
                error=None,
            )
        )

        try:
            page = await self._fetch_logs(run_id, checked_filters, offset, limit, token)
        except QueryCancelled:
            logger.debug("Log query generation %d cancelled", generation)
            return None
        except TransportError as e:
            if generation != self._generation:
                logger.debug("Discarding failure of stale log query %d: %s", generation, e)
                return None
            self._token = None
            self._set_state(replace(self._state, loading=False, error=str(e)))
            raise
        else:
            if generation != self._generation or token.cancelled:
                logger.debug("Discarding result of stale log query %d", generation)
                return None

            self._token = None
            self._set_state(
                replace(
                    self._state,
                    logs=tuple(page.logs),
                    pagination=page.pagination,
                    loading=False,
                    error=None,
                )
            )
            return page
        finally:
            # Caller cancelled or the fetch raised something unexpected.
            if generation == self._generation and self._token is token:
                token.cancel()
                self._token = None
                self._set_state(replace(self._state, loading=False))

    async def set_run(self, run_id: str) -> LogPage | None:
        """Switch runs: clear filters and load the first page."""
        self.reset(run_id)
        return await self.query(run_id, LogFilters(), 0, self._page_size)

    async def set_filters(self, filters: FiltersInput) -> LogPage | None:
        """Apply new filters and load the first page."""
        run_id = self._require_run()
        return await self.query(run_id, filters, 0, self._page_size)

    def set_page_size(self, limit: int) -> None:
        """Change the page size used by later queries.

        Does not refetch and does not touch the current offset; the caller
        decides which offset to pair with the new size.
        """
        _validate_limit(limit)
        self._page_size = limit

    async def change_page(self, offset: int) -> LogPage | None:
        """Load the page starting at ``offset`` with the current filters."""
        run_id = self._require_run()
        return await self.query(run_id, self._state.filters, offset, self._page_size)

    async def next_page(self) -> LogPage | None:
        """Load the next page, if there is one."""
        pagination = self._state.pagination
        if not pagination.can_go_next:
            return None
        return await self.change_page(pagination.next_offset)

    async def prev_page(self) -> LogPage | None:
        """Load the previous page, if there is one."""
        pagination = self._state.pagination
        if not pagination.can_go_prev:
            return None
        return await self.change_page(pagination.prev_offset)

    async def retry(self) -> LogPage | None:
        """Re-issue exactly the last request."""
        request = self._last_request
        if request is None:
            msg = "No log query to retry"
            raise QueryValidationError(msg)
        return await self.query(request.run_id, request.filters, request.offset, request.limit)

    def _require_run(self) -> str:
        run_id = self._state.run_id
        if not run_id:
            msg = "A run must be selected before querying logs"
            raise QueryValidationError(msg)
        return run_id


def _validate_limit(limit: int) -> None:
    if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
        msg = f"limit must be a positive integer, got {limit!r}"
        raise QueryValidationError(msg)
