# Copyright (c) Syntropy Systems
"""Live run event feed: event types, SSE decoding, and the HTTP feed."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Protocol, Union, cast

from pydantic import Field, ValidationError

from loadscope.errors import TransportError
from loadscope.models.base import JSONValue, LoadscopeBaseModel
from loadscope.models.metrics import MetricSnapshot, StageMarker
from loadscope.models.run import TERMINAL_STATES

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from loadscope.client import LoadscopeClient

logger = logging.getLogger(__name__)

SSE_EVENT_NAME = "run_event"


@dataclass(frozen=True)
class SnapshotEvent:
    """A metric snapshot for a run."""

    run_id: str
    snapshot: MetricSnapshot


@dataclass(frozen=True)
class StageEvent:
    """A stage transition for a run."""

    run_id: str
    marker: StageMarker


@dataclass(frozen=True)
class StateEvent:
    """A run lifecycle state transition."""

    run_id: str
    to_state: str


@dataclass(frozen=True)
class StreamStatusEvent:
    """Connection status of the underlying transport."""

    run_id: str
    connected: bool
    error: Optional[str] = None


FeedEvent = Union[SnapshotEvent, StageEvent, StateEvent, StreamStatusEvent]


class EventFeed(Protocol):
    """Source of live events for one run at a time."""

    def subscribe(self, run_id: str) -> AsyncIterator[FeedEvent]:
        ...


class RunEvent(LoadscopeBaseModel):
    """Event envelope as emitted by the control plane."""

    event_id: str = ""
    ts_ms: int = 0
    run_id: str = ""
    type: str = ""
    correlation: dict[str, JSONValue] = Field(default_factory=dict)
    payload: dict[str, JSONValue] = Field(default_factory=dict)
    data: dict[str, JSONValue] = Field(default_factory=dict)

    def field(self, key: str) -> JSONValue:
        """Look a value up in payload, then data, then correlation."""
        for source in (self.payload, self.data, self.correlation):
            value = source.get(key)
            if value is not None:
                return value
        return None


@dataclass
class SseMessage:
    """One Server-Sent Events message."""

    event: str = "message"
    data: str = ""
    id: Optional[str] = None


async def iter_sse_messages(lines: AsyncIterator[str]) -> AsyncIterator[SseMessage]:
    """Group text/event-stream lines into messages.

    Comment lines (keepalives) are skipped; a blank line ends a message.
    """
    event = "message"
    data_lines: list[str] = []
    event_id: str | None = None

    async for raw_line in lines:
        line = raw_line.rstrip("\r\n")
        if not line:
            if data_lines:
                yield SseMessage(event=event, data="\n".join(data_lines), id=event_id)
            event, data_lines, event_id = "message", [], None
            continue
        if line.startswith(":"):
            continue

        name, _, value = line.partition(":")
        value = value.removeprefix(" ")
        if name == "event":
            event = value
        elif name == "data":
            data_lines.append(value)
        elif name == "id":
            event_id = value

    if data_lines:
        yield SseMessage(event=event, data="\n".join(data_lines), id=event_id)


def decode_run_event(run_id: str, event: RunEvent) -> FeedEvent | None:
    """Translate a control-plane event into a feed event.

    Returns None for event types the dashboard does not track and for
    events whose payload is malformed.
    """
    event_type = event.type.upper()
    target = event.run_id or run_id

    try:
        if event_type == "WORKER_HEARTBEAT":
            metrics = event.field("metrics")
            if not isinstance(metrics, dict):
                return None
            values = dict(cast("dict[str, object]", metrics))
            if not values.get("timestamp") and not values.get("timestamp_ms"):
                values["timestamp_ms"] = event.ts_ms
            return SnapshotEvent(target, MetricSnapshot.model_validate(values))

        if event_type == "STAGE_STARTED":
            stage = event.field("stage")
            if not isinstance(stage, str) or not stage:
                return None
            marker = StageMarker(stage=stage, timestamp=event.ts_ms)
            return StageEvent(target, marker)

        if event_type == "STATE_TRANSITION":
            to_state = event.field("to_state")
            if isinstance(to_state, str) and to_state:
                return StateEvent(target, to_state)
    except ValidationError as e:
        logger.debug("Skipping malformed %s event: %s", event_type, e)

    return None


class HttpEventFeed:
    """Event feed backed by the control plane's SSE endpoint.

    Reconnects after ``reconnect_delay`` seconds, resuming from the last
    event id seen, and ends once the run reaches a terminal state.
    """

    def __init__(
        self,
        client: LoadscopeClient,
        reconnect_delay: float = 2.0,
        max_reconnects: int | None = None,
    ) -> None:
        self._client = client
        self._reconnect_delay = reconnect_delay
        self._max_reconnects = max_reconnects

    async def subscribe(self, run_id: str) -> AsyncIterator[FeedEvent]:
        """Yield events for ``run_id`` until the run finishes."""
        cursor: str | None = None
        failures = 0

        while True:
            try:
                lines = self._client.stream_event_lines(run_id, cursor=cursor)
                connected = False
                async for message in iter_sse_messages(lines):
                    if not connected:
                        connected = True
                        failures = 0
                        yield StreamStatusEvent(run_id, connected=True)
                    if message.id:
                        cursor = message.id
                    if message.event not in (SSE_EVENT_NAME, "message"):
                        continue

                    try:
                        envelope = RunEvent.model_validate_json(message.data)
                    except ValidationError:
                        logger.debug("Skipping undecodable SSE message %r", message.data)
                        continue

                    decoded = decode_run_event(run_id, envelope)
                    if decoded is None:
                        continue
                    yield decoded
                    if isinstance(decoded, StateEvent) and decoded.to_state in TERMINAL_STATES:
                        return
                error = "stream closed by server"
            except TransportError as e:
                error = str(e)

            failures += 1
            logger.warning("Event stream for run %s interrupted: %s", run_id, error)
            yield StreamStatusEvent(run_id, connected=False, error=error)
            if self._max_reconnects is not None and failures > self._max_reconnects:
                return
            await asyncio.sleep(self._reconnect_delay)
