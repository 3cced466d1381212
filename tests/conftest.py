# Copyright (c) Syntropy Systems
"""Pytest fixtures for loadscope tests."""

from __future__ import annotations

import asyncio
import os
import tempfile
from collections.abc import AsyncIterator, Generator
from pathlib import Path

import pytest

from loadscope.feed import FeedEvent
from loadscope.models.metrics import MetricSnapshot, StageMarker
from loadscope.models.run import RunInfo

# Store original cwd at module load time
_original_cwd = Path.cwd()

T0 = 1_700_000_000_000


def make_snapshot(offset_s: int = 0, **overrides: object) -> MetricSnapshot:
    """Build a snapshot ``offset_s`` seconds after T0."""
    values: dict[str, object] = {
        "timestamp_ms": T0 + offset_s * 1000,
        "throughput": 100.0,
        "latency_p50_ms": 20.0,
        "latency_p95_ms": 40.0,
        "latency_p99_ms": 80.0,
        "error_rate": 0.01,
        "success_ops": 99 * (offset_s + 1),
        "failed_ops": offset_s + 1,
    }
    values.update(overrides)
    return MetricSnapshot.model_validate(values)


def make_marker(stage: str, offset_s: int) -> StageMarker:
    return StageMarker.model_validate({"stage": stage, "timestamp": T0 + offset_s * 1000})


def make_run(run_id: str = "run-a", state: str = "running", **overrides: object) -> RunInfo:
    values: dict[str, object] = {
        "id": run_id,
        "scenario_id": "checkout",
        "state": state,
        "created_at_ms": T0 - 5000,
        "started_at_ms": T0,
    }
    values.update(overrides)
    return RunInfo.model_validate(values)


class QueueFeed:
    """Event feed driven by the test through per-run queues.

    Putting ``None`` on a queue ends that run's subscription.
    """

    def __init__(self) -> None:
        self.queues: dict[str, asyncio.Queue[FeedEvent | None]] = {}
        self.subscriptions: list[str] = []
        self.closed: list[str] = []

    def queue(self, run_id: str) -> asyncio.Queue[FeedEvent | None]:
        if run_id not in self.queues:
            self.queues[run_id] = asyncio.Queue()
        return self.queues[run_id]

    async def subscribe(self, run_id: str) -> AsyncIterator[FeedEvent]:
        self.subscriptions.append(run_id)
        queue = self.queue(run_id)
        try:
            while True:
                event = await queue.get()
                if event is None:
                    return
                yield event
        finally:
            self.closed.append(run_id)


async def settle() -> None:
    """Let pending tasks run until they block again."""
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def project_dir(temp_dir: Path) -> Generator[Path, None, None]:
    """Create a temporary project directory with a .loadscope config."""
    config_dir = temp_dir / ".loadscope"
    config_dir.mkdir()
    _ = (config_dir / "config.yaml").write_text("server_url: http://control-plane.test\n")

    os.chdir(temp_dir)

    yield temp_dir

    # Always return to original cwd
    os.chdir(_original_cwd)


@pytest.fixture(autouse=True)
def _no_server_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("LOADSCOPE_SERVER_URL", raising=False)
