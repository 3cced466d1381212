# Copyright (c) Syntropy Systems
"""Stage boundaries derived from sparse stage-transition markers."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from loadscope.models.metrics import DerivedStage, StageMarker

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)


def derive_stages(
    markers: Iterable[StageMarker],
    now_ms: int,
    run_started_at_ms: int | None,
    *,
    is_active: bool,
) -> list[DerivedStage]:
    """Compute stage durations from markers in any delivery order.

    Each stage lasts until the next marker. The last stage of an active run
    lasts from its marker until ``now_ms`` and is reported as running; on an
    inactive run it has zero duration. Durations never go below zero.

    Returns an empty list when there are no markers.
    """
    ordered = sorted(markers, key=lambda m: m.timestamp)
    stages: list[DerivedStage] = []

    for index, marker in enumerate(ordered):
        is_last = index == len(ordered) - 1
        if not is_last:
            duration = ordered[index + 1].timestamp - marker.timestamp
        elif is_active and run_started_at_ms is not None:
            elapsed = now_ms - run_started_at_ms
            duration = elapsed - (marker.timestamp - run_started_at_ms)
        else:
            duration = 0

        stages.append(
            DerivedStage(
                name=marker.label,
                raw_name=marker.stage,
                duration_ms=max(0, duration),
                status="running" if is_last and is_active else "completed",
            )
        )

    return stages


class StageMarkerTracker:
    """Unordered buffer of stage markers for one run."""

    def __init__(self) -> None:
        self._markers: list[StageMarker] = []
        self._seen: set[tuple[str, int]] = set()

    def record(self, marker: StageMarker) -> bool:
        """Buffer a marker. Returns False for a duplicate delivery."""
        key = (marker.stage, marker.timestamp)
        if key in self._seen:
            logger.debug("Ignoring duplicate stage marker %s at %d", *key)
            return False
        self._seen.add(key)
        self._markers.append(marker)
        return True

    def markers(self) -> list[StageMarker]:
        """Markers sorted by timestamp."""
        return sorted(self._markers, key=lambda m: m.timestamp)

    def current_stage(self) -> StageMarker | None:
        """The most recent marker by timestamp."""
        if not self._markers:
            return None
        return max(self._markers, key=lambda m: m.timestamp)

    def derive_stages(
        self,
        now_ms: int,
        run_started_at_ms: int | None,
        *,
        is_active: bool,
    ) -> list[DerivedStage]:
        """Derive stage durations; see :func:`derive_stages`."""
        return derive_stages(
            self._markers,
            now_ms,
            run_started_at_ms,
            is_active=is_active,
        )

    def __len__(self) -> int:
        return len(self._markers)
