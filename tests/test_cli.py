"""Tests for loadscope CLI commands."""

from __future__ import annotations

import json
import os

import httpx
import pytest
from typer.testing import CliRunner

from loadscope.cli import compare as compare_cmd
from loadscope.cli import export as export_cmd
from loadscope.cli import logs as logs_cmd
from loadscope.cli import runs as runs_cmd
from loadscope.cli import watch as watch_cmd
from loadscope.cli.main import app
from loadscope.client import LoadscopeClient

runner = CliRunner()

T0 = 1_700_000_000_000

RUNS = [
    {"run_id": "run-old", "scenario_id": "login", "state": "completed", "created_at_ms": T0},
    {"run_id": "run-bad", "scenario_id": "search", "state": "completed", "created_at_ms": T0 + 30_000},
    {
        "run_id": "run-new",
        "scenario_id": "checkout",
        "state": "stopped",
        "created_at_ms": T0 + 60_000,
        "started_at_ms": T0 + 61_000,
        "completed_at_ms": T0 + 121_000,
        "stop_reason": {"mode": "graceful", "reason": "stop_requested", "actor": "user"},
    },
]

METRICS = {
    "run-old": {"error_rate": 0.02, "total_ops": 500, "failed_ops": 10, "throughput": 25.0},
    "run-bad": {"error_rate": 0.4, "total_ops": 500, "failed_ops": 200, "throughput": 20.0},
    "run-new": {"error_rate": 0.01, "total_ops": 1200, "failed_ops": 12, "throughput": 20.0},
}


def metrics_response(run_id: str, include_time_series: bool) -> dict:
    metrics = {"run_id": run_id, "duration_ms": 60_000, "timestamp": T0 + 60_000, **METRICS[run_id]}
    if include_time_series:
        metrics["time_series"] = [
            {"timestamp": T0 + i * 1000, "success_ops": 10 * i, "error_rate": metrics["error_rate"]}
            for i in range(1, 4)
        ]
    return metrics


def handler(request: httpx.Request) -> httpx.Response:
    parts = request.url.path.strip("/").split("/")
    if parts == ["runs"]:
        return httpx.Response(200, json={"runs": RUNS})
    run = next((r for r in RUNS if r["run_id"] == parts[1]), None)
    if run is None:
        return httpx.Response(404, json={"error": "run not found"})
    if len(parts) == 2:
        return httpx.Response(200, json=run)
    if parts[2] == "metrics":
        include = request.url.params.get("include_time_series") == "true"
        return httpx.Response(200, json=metrics_response(parts[1], include))
    if parts[2] == "logs":
        offset = int(request.url.params["offset"])
        limit = int(request.url.params["limit"])
        logs = [
            {
                "timestamp_ms": T0 + i,
                "operation": "tools/call",
                "stage": request.url.params.get("stage", "ramp"),
                "error_code": request.url.params.get("error_code", ""),
            }
            for i in range(offset, min(offset + limit, 120))
        ]
        return httpx.Response(
            200,
            json={"run_id": parts[1], "logs": logs, "offset": offset, "limit": limit, "total": 120},
        )
    if parts[2] == "compare":
        return httpx.Response(
            200,
            json={
                "run_a": {"run_id": parts[1], "latency_p99_ms": 200.0, "error_rate": 0.01},
                "run_b": {"run_id": parts[3], "latency_p99_ms": 150.0, "error_rate": 0.01},
            },
        )
    return httpx.Response(404, json={"error": "no route"})


def fake_client(server_url: str, timeout: float = 30.0) -> LoadscopeClient:
    return LoadscopeClient(server_url, timeout, transport=httpx.MockTransport(handler))


@pytest.fixture(autouse=True)
def mock_server(project_dir, monkeypatch):
    """Point every command at the mock control plane with a wide console."""
    for module in (runs_cmd, logs_cmd, compare_cmd, watch_cmd):
        monkeypatch.setattr(module, "get_client", fake_client)
    for module in (runs_cmd, logs_cmd, compare_cmd, watch_cmd, export_cmd):
        monkeypatch.setattr(module.console, "width", 200)
    return project_dir


class TestInitCommand:
    """Tests for loadscope init command."""

    def test_init_creates_config(self, temp_dir):
        target = temp_dir / "fresh"
        target.mkdir()
        os.chdir(target)

        result = runner.invoke(app, ["init", "--server", "http://cp:9000"])

        assert result.exit_code == 0
        config_text = (target / ".loadscope" / "config.yaml").read_text()
        assert "server_url: http://cp:9000" in config_text
        assert "page_size: 50" in config_text

    def test_init_already_initialized(self):
        result = runner.invoke(app, ["init"])

        assert result.exit_code == 0
        assert "Already initialized" in result.stdout


class TestRunsCommand:
    """Tests for loadscope runs and show."""

    def test_runs_lists_newest_first_with_verdicts(self):
        result = runner.invoke(app, ["runs"])

        assert result.exit_code == 0
        assert result.stdout.index("run-new") < result.stdout.index("run-old")
        assert "PASS" in result.stdout

    def test_runs_state_filter(self):
        result = runner.invoke(app, ["runs", "--state", "completed"])

        assert result.exit_code == 0
        assert "run-old" in result.stdout
        assert "run-new" not in result.stdout

    def test_show(self):
        result = runner.invoke(app, ["show", "run-new"])

        assert result.exit_code == 0
        assert "Stopped by user" in result.stdout
        assert "duration: 1m 0s" in result.stdout
        assert "actor: user" in result.stdout

    def test_runs_verdict_uses_final_error_rate(self):
        """A completed run whose final error rate is too high is listed as failed."""
        result = runner.invoke(app, ["runs", "--state", "completed"])

        assert result.exit_code == 0
        assert "run-bad" in result.stdout
        assert "FAIL" in result.stdout
        assert "PASS" in result.stdout

    def test_show_failed_by_error_rate(self):
        result = runner.invoke(app, ["show", "run-bad"])

        assert result.exit_code == 0
        assert "FAIL" in result.stdout
        assert "Error rate 40.0% exceeded threshold 10%" in result.stdout
        assert "error rate: 40.00%" in result.stdout

    def test_show_not_found(self):
        result = runner.invoke(app, ["show", "missing"])

        assert result.exit_code == 1
        assert "Error:" in result.stdout
        assert "Run not found: missing" in result.stdout


class TestLogsCommand:
    """Tests for loadscope logs."""

    def test_logs_page_footer(self):
        result = runner.invoke(app, ["logs", "run-new", "--offset", "50", "--limit", "50"])

        assert result.exit_code == 0
        assert "Showing 51-100 of 120" in result.stdout
        assert "page 2/3" in result.stdout

    def test_logs_error_code_filter(self):
        """--error-code is sent to the server as a filter."""
        result = runner.invoke(app, ["logs", "run-new", "--error-code", "E42", "--limit", "5"])

        assert result.exit_code == 0
        assert "E42" in result.stdout
        assert "Showing 1-5 of 120" in result.stdout

    def test_logs_invalid_offset(self):
        result = runner.invoke(app, ["logs", "run-new", "--offset=-5"])

        assert result.exit_code == 1
        assert "offset must be >= 0" in result.stdout


class TestExportCommand:
    """Tests for loadscope export."""

    def test_export_json(self, project_dir):
        output = project_dir / "logs.json"

        result = runner.invoke(app, ["export", "run-new", str(output), "--stage", "ramp", "--limit", "10"])

        assert result.exit_code == 0
        data = json.loads(output.read_text())
        assert len(data) == 10
        assert data[0]["stage"] == "ramp"

    def test_export_bad_suffix(self, project_dir):
        result = runner.invoke(app, ["export", "run-new", str(project_dir / "logs.txt")])

        assert result.exit_code == 1
        assert "Output must be .csv or .json" in result.stdout


class TestCompareCommand:
    """Tests for loadscope compare."""

    def test_compare_rows(self):
        result = runner.invoke(app, ["compare", "run-old", "run-new"])

        assert result.exit_code == 0
        assert "P99 Latency" in result.stdout
        assert "-25.0%" in result.stdout
        assert "improved" in result.stdout


class TestWatchCommand:
    """Tests for loadscope watch."""

    def test_watch_finished_run_renders_once(self):
        result = runner.invoke(app, ["watch", "run-old", "--interval", "0"])

        assert result.exit_code == 0
        assert "Run run-old" in result.stdout
        assert "PASS" in result.stdout
        assert "Stage timing unavailable" in result.stdout

    def test_watch_unknown_run(self):
        result = runner.invoke(app, ["watch", "missing"])

        assert result.exit_code == 1
        assert "Run not found" in result.stdout
