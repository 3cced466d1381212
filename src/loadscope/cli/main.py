# Copyright (c) Syntropy Systems
"""Main CLI entry point for loadscope."""

import typer

from loadscope.cli.compare import compare
from loadscope.cli.export import export
from loadscope.cli.init_cmd import init
from loadscope.cli.logs import logs
from loadscope.cli.runs import runs, show
from loadscope.cli.watch import watch

app = typer.Typer(
    name="loadscope",
    help=(
        "Live telemetry for load-test runs. Watch metrics, page through "
        "operation logs, compare runs."
    ),
    no_args_is_help=True,
    add_completion=False,
)

# Register commands
_ = app.command()(init)
_ = app.command()(runs)
_ = app.command()(show)
_ = app.command()(logs)
_ = app.command(name="export")(export)
_ = app.command()(compare)
_ = app.command()(watch)


if __name__ == "__main__":
    app()
