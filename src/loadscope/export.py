# Copyright (c) Syntropy Systems
"""CSV and JSON export of operation logs."""
from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import TypeAdapter

from loadscope.models.base import JSONValue
from loadscope.models.logs import OperationLog

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

_LOGS_ADAPTER = TypeAdapter(list[OperationLog])
_JSON_VALUE_ADAPTER = TypeAdapter(JSONValue)

# Leading characters a spreadsheet would evaluate as a formula.
FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r")

EXPORT_SUFFIXES = (".csv", ".json")


def _to_cell(value: JSONValue) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return _JSON_VALUE_ADAPTER.dump_json(value).decode("utf-8")
    return str(value)


def escape_csv_cell(value: JSONValue) -> str:
    """Render one CSV cell, neutralising spreadsheet formulas."""
    text = _to_cell(value)
    if text.startswith(FORMULA_PREFIXES):
        escaped = text.replace('"', '""')
        return f"\"'{escaped}\""
    if "," in text or '"' in text or "\n" in text:
        escaped = text.replace('"', '""')
        return f'"{escaped}"'
    return text


def export_logs_json(logs: Sequence[OperationLog]) -> str:
    """Serialize logs as an indented JSON array."""
    return _LOGS_ADAPTER.dump_json(list(logs), indent=2).decode("utf-8")


def export_logs_csv(logs: Sequence[OperationLog]) -> str:
    """Serialize logs as CSV with a header taken from the first record."""
    if not logs:
        return ""
    records: list[dict[str, JSONValue]] = [log.model_dump(mode="json") for log in logs]
    headers = list(records[0])
    lines = [",".join(escape_csv_cell(header) for header in headers)]
    for record in records:
        lines.append(",".join(escape_csv_cell(record.get(header)) for header in headers))
    return "\n".join(lines)


def write_export(path: Path, logs: Sequence[OperationLog]) -> int:
    """Write logs to ``path`` as CSV or JSON depending on its suffix.

    Returns:
        Number of logs written

    Raises:
        ValueError: If the suffix is neither .csv nor .json

    """
    suffix = path.suffix.lower()
    if suffix == ".json":
        _ = path.write_text(export_logs_json(logs), encoding="utf-8")
    elif suffix == ".csv":
        _ = path.write_text(export_logs_csv(logs), encoding="utf-8")
    else:
        msg = f"Output must be .csv or .json, got {path.name}"
        raise ValueError(msg)
    return len(logs)
