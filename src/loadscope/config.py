# Copyright (c) Syntropy Systems
"""Configuration management for loadscope."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, cast

import yaml

CONFIG_DIR_NAME = ".loadscope"
CONFIG_FILE_NAME = "config.yaml"
SERVER_URL_ENV = "LOADSCOPE_SERVER_URL"


@dataclass
class LoadscopeConfig:
    """Configuration for loadscope."""

    # Base URL of the control plane API
    server_url: str = "http://localhost:8080"

    # Request timeout in seconds
    request_timeout: float = 30.0

    # Error rate above which a finished run fails
    error_threshold: float = 0.1

    # Retention window of the live time series (points, FIFO)
    max_data_points: Optional[int] = 60

    # Default log page size
    page_size: int = 50

    # Delay before the live feed reconnects (seconds)
    reconnect_delay: float = 2.0

    # Reconnect attempts before the live feed gives up (None = forever)
    max_reconnects: Optional[int] = None


def find_config_dir(start_path: Path | None = None) -> Path | None:
    """Find the nearest .loadscope directory by walking up from start_path.

    Returns None if no .loadscope directory is found.
    """
    if start_path is None:
        start_path = Path.cwd()

    current = start_path.resolve()

    while current != current.parent:
        config_dir = current / CONFIG_DIR_NAME
        if config_dir.is_dir():
            return config_dir
        current = current.parent

    # Check root
    config_dir = current / CONFIG_DIR_NAME
    if config_dir.is_dir():
        return config_dir

    return None


def get_global_config_dir() -> Path:
    """Get the global loadscope config directory (~/.loadscope)."""
    return Path.home() / CONFIG_DIR_NAME


def _as_number(value: object) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None


def load_config(config_dir: Path | None = None) -> LoadscopeConfig:
    """Load configuration from .loadscope/config.yaml or defaults.

    Looks for config in:
    1. Provided config_dir
    2. Nearest .loadscope directory walking up
    3. ~/.loadscope/config.yaml
    4. Defaults

    The LOADSCOPE_SERVER_URL environment variable overrides server_url.
    """
    config = LoadscopeConfig()

    # Find config file
    config_path = None

    if config_dir is not None:
        config_path = config_dir / CONFIG_FILE_NAME
    else:
        found_dir = find_config_dir()
        if found_dir is not None:
            config_path = found_dir / CONFIG_FILE_NAME
        else:
            global_config = get_global_config_dir() / CONFIG_FILE_NAME
            if global_config.exists():
                config_path = global_config

    if config_path is not None and config_path.exists():
        with config_path.open() as f:
            data = cast("dict[str, object]", yaml.safe_load(f) or {})

        server_url = data.get("server_url")
        if isinstance(server_url, str) and server_url:
            config.server_url = server_url
        request_timeout = _as_number(data.get("request_timeout"))
        if request_timeout is not None and request_timeout > 0:
            config.request_timeout = request_timeout
        error_threshold = _as_number(data.get("error_threshold"))
        if error_threshold is not None:
            config.error_threshold = error_threshold
        if "max_data_points" in data:
            max_points = _as_number(data.get("max_data_points"))
            if max_points is not None and max_points > 0:
                config.max_data_points = int(max_points)
            elif data.get("max_data_points") is None:
                config.max_data_points = None
        page_size = _as_number(data.get("page_size"))
        if page_size is not None and page_size > 0:
            config.page_size = int(page_size)
        reconnect_delay = _as_number(data.get("reconnect_delay"))
        if reconnect_delay is not None and reconnect_delay >= 0:
            config.reconnect_delay = reconnect_delay
        max_reconnects = _as_number(data.get("max_reconnects"))
        if max_reconnects is not None and max_reconnects >= 0:
            config.max_reconnects = int(max_reconnects)

    env_url = os.environ.get(SERVER_URL_ENV)
    if env_url:
        config.server_url = env_url

    return config


def default_config_data() -> dict[str, object]:
    """Config values written by ``loadscope init``."""
    defaults = LoadscopeConfig()
    return {
        "server_url": defaults.server_url,
        "request_timeout": defaults.request_timeout,
        "error_threshold": defaults.error_threshold,
        "max_data_points": defaults.max_data_points,
        "page_size": defaults.page_size,
        "reconnect_delay": defaults.reconnect_delay,
    }
