# Copyright (c) Syntropy Systems
"""HTTP client for the load-test control plane API."""
from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, TypeVar

import httpx
from pydantic import BaseModel, ValidationError
from typing_extensions import Self

from loadscope.errors import NotFoundError, QueryCancelled, TransportError
from loadscope.models.logs import LogFilters, LogPage
from loadscope.models.metrics import ComparisonApiResponse, LiveMetrics
from loadscope.models.run import ErrorResponse, RunInfo, RunListResponse

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping
    from types import TracebackType

    from loadscope.logquery import CancellationToken

ResponseModel = TypeVar("ResponseModel", bound=BaseModel)

HTTP_NOT_FOUND = 404


def _error_detail(response: httpx.Response, fallback: str) -> str:
    try:
        detail = ErrorResponse.model_validate(response.json()).text
    except (ValidationError, ValueError):
        detail = None
    return detail or fallback


class LoadscopeClient:
    """Async HTTP client for runs, logs, comparisons, and run events."""

    server_url: str
    timeout: float
    _client: httpx.AsyncClient

    def __init__(
        self,
        server_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            server_url: Base URL of the control plane (e.g., "http://localhost:8080")
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)

        """
        self.server_url = server_url.rstrip("/")
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            base_url=self.server_url,
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> Self:
        """Enter the client context and return self."""
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit the client context and close the HTTP client."""
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        params: Mapping[str, str | int] | None = None,
        *,
        response_model: type[ResponseModel],
    ) -> ResponseModel:
        """Make an HTTP request to the server."""
        try:
            response = await self._client.request(method, path, params=params)
            _ = response.raise_for_status()
            data: object = response.json()
        except httpx.HTTPStatusError as e:
            detail = _error_detail(e.response, str(e))
            msg = f"Server error: {detail}"
            raise TransportError(msg, status_code=e.response.status_code) from e
        except httpx.RequestError as e:
            msg = f"Connection error: {e}"
            raise TransportError(msg) from e
        except ValueError as e:
            msg = f"Invalid response from {path}: {e}"
            raise TransportError(msg) from e

        try:
            return response_model.model_validate(data)
        except (ValidationError, TypeError) as e:
            msg = f"Unexpected response from {path}: {e}"
            raise TransportError(msg) from e

    # --- Run Operations ---

    async def fetch_runs(self) -> list[RunInfo]:
        """List runs, most recent first.

        Returns:
            Runs ordered by creation time, newest first

        """
        result = await self._request("GET", "/runs", response_model=RunListResponse)
        return sorted(
            result.runs,
            key=lambda run: run.created_at_ms or 0,
            reverse=True,
        )

    async def fetch_run(self, run_id: str) -> RunInfo:
        """Get one run.

        Args:
            run_id: Run ID

        Raises:
            NotFoundError: If the server does not know the run

        """
        try:
            run = await self._request("GET", f"/runs/{run_id}", response_model=RunInfo)
        except TransportError as e:
            if e.status_code == HTTP_NOT_FOUND:
                msg = f"Run not found: {run_id}"
                raise NotFoundError(msg) from e
            raise
        if not run.id:
            run = run.model_copy(update={"id": run_id})
        return run

    async def fetch_metrics(self, run_id: str, include_time_series: bool = False) -> LiveMetrics:
        """Get the current aggregate metrics of a run.

        Args:
            run_id: Run ID
            include_time_series: Also return the stored time series

        Raises:
            NotFoundError: If the server does not know the run

        """
        params = {"include_time_series": "true"} if include_time_series else None
        try:
            return await self._request(
                "GET",
                f"/runs/{run_id}/metrics",
                params=params,
                response_model=LiveMetrics,
            )
        except TransportError as e:
            if e.status_code == HTTP_NOT_FOUND:
                msg = f"Metrics not found for run: {run_id}"
                raise NotFoundError(msg) from e
            raise

    async def fetch_logs(
        self,
        run_id: str,
        filters: LogFilters,
        offset: int,
        limit: int,
        token: CancellationToken | None = None,
    ) -> LogPage:
        """Fetch one page of operation logs, newest first.

        Args:
            run_id: Run ID
            filters: Only the filters that are set are sent
            offset: Rows to skip
            limit: Page size
            token: Cancellation token; once cancelled the request is abandoned

        Raises:
            QueryCancelled: If the token fired before the response arrived
            TransportError: On network or server failure

        """
        params: dict[str, str | int] = {
            **filters.as_params(),
            "offset": offset,
            "limit": limit,
            "order": "desc",
        }
        request = self._request(
            "GET",
            f"/runs/{run_id}/logs",
            params=params,
            response_model=LogPage,
        )
        if token is None:
            return await request

        if token.cancelled:
            request.close()
            msg = f"Log query for run {run_id} cancelled"
            raise QueryCancelled(msg)

        request_task = asyncio.ensure_future(request)
        cancel_task = asyncio.ensure_future(token.wait())
        try:
            done, _ = await asyncio.wait(
                {request_task, cancel_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            _ = request_task.cancel()
            raise
        finally:
            _ = cancel_task.cancel()

        if request_task in done:
            return request_task.result()

        _ = request_task.cancel()
        msg = f"Log query for run {run_id} cancelled"
        raise QueryCancelled(msg)

    async def fetch_comparison(self, run_id_a: str, run_id_b: str) -> ComparisonApiResponse:
        """Fetch summary metrics of two runs for comparison.

        Args:
            run_id_a: Baseline run ID
            run_id_b: Candidate run ID

        """
        return await self._request(
            "GET",
            f"/runs/{run_id_a}/compare/{run_id_b}",
            response_model=ComparisonApiResponse,
        )

    async def stream_event_lines(
        self,
        run_id: str,
        cursor: str | None = None,
    ) -> AsyncIterator[str]:
        """Stream raw text/event-stream lines for a run.

        Args:
            run_id: Run ID
            cursor: Resume after this event ID

        Raises:
            TransportError: If the stream cannot be opened or breaks

        """
        params = {"cursor": cursor} if cursor else None
        try:
            async with self._client.stream(
                "GET",
                f"/runs/{run_id}/events",
                params=params,
                headers={"Accept": "text/event-stream"},
                timeout=httpx.Timeout(self.timeout, read=None),
            ) as response:
                if response.is_error:
                    _ = await response.aread()
                    detail = _error_detail(response, f"HTTP {response.status_code}")
                    msg = f"Server error: {detail}"
                    raise TransportError(msg, status_code=response.status_code)
                async for line in response.aiter_lines():
                    yield line
        except httpx.HTTPError as e:
            msg = f"Connection error: {e}"
            raise TransportError(msg) from e


# Convenience function
def get_client(server_url: str, timeout: float = 30.0) -> LoadscopeClient:
    """Create a LoadscopeClient instance.

    Args:
        server_url: Base URL of the control plane
        timeout: Request timeout in seconds

    Returns:
        LoadscopeClient instance

    """
    return LoadscopeClient(server_url, timeout)
