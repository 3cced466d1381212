# Copyright (c) Syntropy Systems
"""loadscope init command."""

from pathlib import Path
from typing import Optional

import typer
import yaml
from rich.console import Console

from loadscope.config import CONFIG_DIR_NAME, CONFIG_FILE_NAME, default_config_data

console = Console()


def init(
    path: Path = typer.Argument(
        Path(),
        help="Directory to initialize (default: current directory)",
    ),
    server_url: Optional[str] = typer.Option(
        None,
        "--server", "-s",
        help="Control plane URL to store in the config",
    ),
) -> None:
    """Initialize a loadscope project.

    Creates a .loadscope directory with a default config.yaml.
    """
    target = path.resolve()
    config_dir = target / CONFIG_DIR_NAME
    config_path = config_dir / CONFIG_FILE_NAME

    if config_path.exists():
        console.print(f"[yellow]Already initialized:[/yellow] {config_dir}")
        return

    config_dir.mkdir(parents=True, exist_ok=True)

    config = default_config_data()
    if server_url:
        config["server_url"] = server_url

    with config_path.open("w") as f:
        yaml.dump(config, f, default_flow_style=False)

    console.print(f"[green]Initialized loadscope project:[/green] {config_dir}")
    console.print(f"  [dim]config:[/dim] {config_path}")
    console.print(f"  [dim]server:[/dim] {config['server_url']}")
