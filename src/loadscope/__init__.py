"""
loadscope - Live telemetry and verdicts for load-test runs.

Aggregate live metrics, page through operation logs, compare runs.
"""

from loadscope.aggregator import LiveAggregator, RunContext
from loadscope.classifier import PassFailVerdict, classify_run, evaluate_thresholds
from loadscope.client import LoadscopeClient
from loadscope.comparison import ComparisonRow, compare_runs
from loadscope.controller import DashboardController
from loadscope.logquery import CancellationToken, LogQueryEngine
from loadscope.stages import StageMarkerTracker, derive_stages
from loadscope.timeseries import AppendResult, TimeSeriesStore

__version__ = "0.1.0"
__all__ = [
    "AppendResult",
    "CancellationToken",
    "ComparisonRow",
    "DashboardController",
    "LiveAggregator",
    "LoadscopeClient",
    "LogQueryEngine",
    "PassFailVerdict",
    "RunContext",
    "StageMarkerTracker",
    "TimeSeriesStore",
    "__version__",
    "classify_run",
    "compare_runs",
    "derive_stages",
    "evaluate_thresholds",
]
