"""Tests for the paged log query engine."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import pytest

from conftest import T0, settle
from loadscope.errors import QueryCancelled, QueryValidationError, TransportError
from loadscope.logquery import CancellationToken, LogQueryEngine, LogQueryState
from loadscope.models.logs import LogFilters, LogPage, OperationLog


def make_page(run_id: str, offset: int, limit: int, total: int, tag: str = "op") -> LogPage:
    count = max(0, min(limit, total - offset))
    logs = [
        OperationLog(timestamp_ms=T0 + offset + i, run_id=run_id, operation=f"{tag}-{offset + i}")
        for i in range(count)
    ]
    return LogPage(run_id=run_id, logs=logs, offset=offset, limit=limit, total=total)


@dataclass
class Call:
    run_id: str
    filters: LogFilters
    offset: int
    limit: int
    token: CancellationToken
    future: asyncio.Future[LogPage]


class ControlledFetch:
    """Transport whose responses are resolved by the test, in any order."""

    def __init__(self) -> None:
        self.calls: list[Call] = []

    async def __call__(self, run_id, filters, offset, limit, token) -> LogPage:
        future: asyncio.Future[LogPage] = asyncio.get_running_loop().create_future()
        self.calls.append(Call(run_id, filters, offset, limit, token, future))
        return await future


class PagedFetch:
    """Transport that answers immediately from a result set of ``total`` rows."""

    def __init__(self, total: int) -> None:
        self.total = total
        self.requests: list[tuple[str, LogFilters, int, int]] = []

    async def __call__(self, run_id, filters, offset, limit, token) -> LogPage:
        self.requests.append((run_id, filters, offset, limit))
        return make_page(run_id, offset, limit, self.total)


class TestSuperseding:
    """Tests for at-most-one-in-flight semantics."""

    def test_late_stale_result_discarded(self):
        """Q1 resolving after Q2 never becomes the observable state."""

        async def scenario():
            fetch = ControlledFetch()
            engine = LogQueryEngine(fetch)
            q1 = asyncio.ensure_future(engine.query("run-a", {"stage": "ramp"}, 0, 50))
            await settle()
            q2 = asyncio.ensure_future(engine.query("run-a", {"stage": "baseline"}, 0, 50))
            await settle()

            fetch.calls[1].future.set_result(make_page("run-a", 0, 50, 2, tag="q2"))
            r2 = await q2
            fetch.calls[0].future.set_result(make_page("run-a", 0, 50, 9, tag="q1"))
            r1 = await q1
            return engine, fetch, r1, r2

        engine, fetch, r1, r2 = asyncio.run(scenario())

        assert r1 is None
        assert r2 is not None
        assert fetch.calls[0].token.cancelled
        assert [log.operation for log in engine.state.logs] == ["q2-0", "q2-1"]
        assert engine.state.pagination.total == 2
        assert engine.state.filters.stage == "baseline"
        assert engine.state.loading is False

    def test_cancelled_transport_is_silent(self):
        """A transport honouring the token raises QueryCancelled, which is swallowed."""

        async def fetch(run_id, filters, offset, limit, token):
            await token.wait()
            raise QueryCancelled("cancelled")

        async def scenario():
            engine = LogQueryEngine(fetch)
            q1 = asyncio.ensure_future(engine.query("run-a", None, 0, 50))
            await settle()
            engine.cancel()
            return engine, await q1

        engine, result = asyncio.run(scenario())

        assert result is None
        assert engine.state.error is None
        assert engine.in_flight is False

    def test_stale_failure_discarded(self):
        """A superseded query's transport failure is not surfaced."""

        async def scenario():
            fetch = ControlledFetch()
            engine = LogQueryEngine(fetch)
            q1 = asyncio.ensure_future(engine.query("run-a", None, 0, 50))
            await settle()
            q2 = asyncio.ensure_future(engine.query("run-a", None, 50, 50))
            await settle()
            fetch.calls[0].future.set_exception(TransportError("boom"))
            r1 = await q1
            fetch.calls[1].future.set_result(make_page("run-a", 50, 50, 120))
            await q2
            return engine, r1

        engine, r1 = asyncio.run(scenario())

        assert r1 is None
        assert engine.state.error is None
        assert engine.state.pagination.offset == 50

    def test_listeners_never_see_mixed_pages(self):
        """Every published state pairs logs with the pagination of the same response."""
        states: list[LogQueryState] = []

        async def scenario():
            engine = LogQueryEngine(PagedFetch(total=120))
            engine.add_listener(states.append)
            await engine.set_run("run-a")
            await engine.next_page()
            await engine.next_page()
            await engine.prev_page()

        asyncio.run(scenario())

        for state in states:
            if state.logs:
                assert state.logs[0].operation == f"op-{state.pagination.offset}"


class TestPagination:
    """Tests for page navigation."""

    def test_change_page(self):
        """Total 120, page size 50: moving to offset 50 enables both directions."""

        async def scenario():
            engine = LogQueryEngine(PagedFetch(total=120), page_size=50)
            await engine.set_run("run-a")
            await engine.change_page(50)
            return engine.state.pagination

        pagination = asyncio.run(scenario())

        assert (pagination.offset, pagination.limit, pagination.total) == (50, 50, 120)
        assert pagination.can_go_next is True
        assert pagination.can_go_prev is True
        assert pagination.current_page == 2
        assert pagination.total_pages == 3

    def test_last_page(self):
        async def scenario():
            engine = LogQueryEngine(PagedFetch(total=120), page_size=50)
            await engine.set_run("run-a")
            await engine.next_page()
            await engine.next_page()
            end = await engine.next_page()
            return engine.state, end

        state, end = asyncio.run(scenario())

        assert end is None
        assert state.pagination.offset == 100
        assert len(state.logs) == 20
        assert state.pagination.can_go_next is False

    def test_filter_change_resets_offset(self):
        async def scenario():
            fetch = PagedFetch(total=120)
            engine = LogQueryEngine(fetch)
            await engine.set_run("run-a")
            await engine.change_page(100)
            await engine.set_filters({"operation": "tools/call"})
            return fetch.requests[-1]

        run_id, filters, offset, limit = asyncio.run(scenario())

        assert run_id == "run-a"
        assert filters.operation == "tools/call"
        assert offset == 0
        assert limit == 50

    def test_run_change_clears_filters(self):
        async def scenario():
            fetch = PagedFetch(total=10)
            engine = LogQueryEngine(fetch)
            await engine.set_run("run-a")
            await engine.set_filters({"stage": "ramp"})
            await engine.set_run("run-b")
            return engine.state, fetch.requests[-1]

        state, (run_id, filters, offset, _) = asyncio.run(scenario())

        assert run_id == "run-b"
        assert filters == LogFilters()
        assert offset == 0
        assert state.run_id == "run-b"

    def test_page_size_change_keeps_offset(self):
        """Changing page size does not refetch or reset the offset."""

        async def scenario():
            fetch = PagedFetch(total=500)
            engine = LogQueryEngine(fetch)
            await engine.set_run("run-a")
            await engine.change_page(100)
            engine.set_page_size(25)
            requests_before = len(fetch.requests)
            offset_before = engine.state.pagination.offset
            await engine.change_page(offset_before)
            return requests_before, len(fetch.requests), fetch.requests[-1]

        before, after, (_, _, offset, limit) = asyncio.run(scenario())

        assert after == before + 1
        assert (offset, limit) == (100, 25)


class TestValidation:
    """Tests for input rejected before any request."""

    @pytest.mark.parametrize(
        ("filters", "offset", "limit"),
        [
            ({"colour": "red"}, 0, 50),
            ({"stage": 7}, 0, 50),
            (None, -1, 50),
            (None, 0, 0),
        ],
    )
    def test_rejected_without_request(self, filters, offset, limit):
        fetch = PagedFetch(total=10)
        engine = LogQueryEngine(fetch)

        with pytest.raises(QueryValidationError):
            asyncio.run(engine.query("run-a", filters, offset, limit))

        assert fetch.requests == []

    def test_no_run_selected(self):
        engine = LogQueryEngine(PagedFetch(total=10))

        with pytest.raises(QueryValidationError, match="run must be selected"):
            asyncio.run(engine.change_page(0))

    def test_invalid_page_size(self):
        with pytest.raises(QueryValidationError):
            _ = LogQueryEngine(PagedFetch(total=10), page_size=0)


class TestErrors:
    """Tests for transport failures and retry."""

    def test_transport_error_surfaces_and_retry_repeats_request(self):
        attempts: list[tuple[str, LogFilters, int, int]] = []

        async def flaky(run_id, filters, offset, limit, token):
            attempts.append((run_id, filters, offset, limit))
            if len(attempts) == 1:
                raise TransportError("Connection error: refused")
            return make_page(run_id, offset, limit, 120)

        async def scenario():
            engine = LogQueryEngine(flaky)
            with pytest.raises(TransportError):
                await engine.query("run-a", {"stage": "ramp"}, 50, 50)
            failed_state = engine.state
            page = await engine.retry()
            return failed_state, engine.state, page

        failed_state, state, page = asyncio.run(scenario())

        assert failed_state.error == "Connection error: refused"
        assert failed_state.loading is False
        assert attempts[0] == attempts[1]
        assert page is not None
        assert state.error is None
        assert state.pagination.offset == 50

    def test_retry_without_previous_query(self):
        engine = LogQueryEngine(PagedFetch(total=10))

        with pytest.raises(QueryValidationError):
            asyncio.run(engine.retry())

    def test_cancelled_caller_clears_loading(self):
        """Cancelling the task awaiting a query leaves the engine idle."""

        async def scenario():
            fetch = ControlledFetch()
            engine = LogQueryEngine(fetch)
            task = asyncio.ensure_future(engine.query("run-a", {}, 0, 50))
            await settle()
            busy = (engine.state.loading, engine.in_flight)
            _ = task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            return engine, fetch, busy

        engine, fetch, busy = asyncio.run(scenario())

        assert busy == (True, True)
        assert engine.state.loading is False
        assert engine.in_flight is False
        assert fetch.calls[0].token.cancelled is True

    def test_unexpected_failure_clears_loading(self):
        async def broken(run_id, filters, offset, limit, token):
            raise RuntimeError("decoder crashed")

        async def scenario():
            engine = LogQueryEngine(broken)
            with pytest.raises(RuntimeError):
                await engine.query("run-a", {}, 0, 50)
            return engine

        engine = asyncio.run(scenario())

        assert engine.state.loading is False
        assert engine.in_flight is False
