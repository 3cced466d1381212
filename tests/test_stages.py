"""Tests for stage derivation from markers."""

from conftest import T0, make_marker
from loadscope.stages import StageMarkerTracker, derive_stages


class TestDeriveStages:
    """Tests for the pure derive_stages function."""

    def test_no_markers(self):
        """No markers means no stages, never a fabricated one."""
        assert derive_stages([], T0, T0, is_active=True) == []

    def test_active_run(self):
        """Three markers on an active run: last one is running until now."""
        markers = [
            make_marker("preflight", 0),
            make_marker("baseline", 10),
            make_marker("ramp", 40),
        ]

        stages = derive_stages(markers, T0 + 55_000, T0, is_active=True)

        assert [(s.name, s.duration_ms, s.status) for s in stages] == [
            ("PREFLIGHT", 10_000, "completed"),
            ("BASELINE", 30_000, "completed"),
            ("RAMP", 15_000, "running"),
        ]

    def test_inactive_run_last_stage_zero(self):
        markers = [make_marker("preflight", 0), make_marker("ramp", 10)]

        stages = derive_stages(markers, T0 + 99_000, T0, is_active=False)

        assert stages[-1].duration_ms == 0
        assert all(s.status == "completed" for s in stages)

    def test_markers_sorted_by_timestamp(self):
        """Delivery order does not matter."""
        markers = [make_marker("ramp", 40), make_marker("preflight", 0), make_marker("baseline", 10)]

        stages = derive_stages(markers, T0 + 50_000, T0, is_active=True)

        assert [s.raw_name for s in stages] == ["preflight", "baseline", "ramp"]

    def test_running_duration_clamped(self):
        """A clock behind the last marker yields zero, not a negative duration."""
        markers = [make_marker("ramp", 40)]

        stages = derive_stages(markers, T0 + 30_000, T0, is_active=True)

        assert stages[0].duration_ms == 0

    def test_unknown_start_time(self):
        markers = [make_marker("ramp", 0)]

        stages = derive_stages(markers, T0 + 30_000, None, is_active=True)

        assert stages[0].duration_ms == 0
        assert stages[0].status == "running"

    def test_total_duration_non_decreasing_with_now(self):
        """Total derived time only grows as the clock advances."""
        markers = [make_marker("preflight", 0), make_marker("ramp", 20)]

        totals = [
            sum(s.duration_ms for s in derive_stages(markers, T0 + t * 1000, T0, is_active=True))
            for t in (0, 10, 20, 25, 60)
        ]

        assert totals == sorted(totals)
        assert all(len(derive_stages(markers, T0 + t, T0, is_active=True)) == 2 for t in (0, 5))


class TestStageMarkerTracker:
    """Tests for the marker buffer."""

    def test_duplicate_markers_ignored(self):
        tracker = StageMarkerTracker()

        assert tracker.record(make_marker("ramp", 10)) is True
        assert tracker.record(make_marker("ramp", 10)) is False
        assert len(tracker) == 1

    def test_current_stage(self):
        tracker = StageMarkerTracker()
        assert tracker.current_stage() is None

        _ = tracker.record(make_marker("ramp", 20))
        _ = tracker.record(make_marker("baseline", 10))

        current = tracker.current_stage()
        assert current is not None
        assert current.stage == "ramp"
        assert [m.stage for m in tracker.markers()] == ["baseline", "ramp"]

    def test_derive_stages_delegates(self):
        tracker = StageMarkerTracker()
        _ = tracker.record(make_marker("preflight", 0))
        _ = tracker.record(make_marker("ramp", 5))

        stages = tracker.derive_stages(T0 + 8000, T0, is_active=True)

        assert [s.duration_ms for s in stages] == [5000, 3000]
