"""`hubvault-restore` entry point and the `hubvault restore` command group."""

from pathlib import Path
from typing import Optional

import typer

from ..commands import restore_commands
from ..commands.common import init_context, run_app

app = typer.Typer(
    name="hubvault-restore",
    help="Restore the hub installation from restic snapshots",
    add_completion=False,
    no_args_is_help=True,
)

restore_commands.register(app)


@app.callback()
def restore_callback(
    ctx: typer.Context,
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Also log to this file"),
):
    """Restore the hub installation from restic snapshots."""
    init_context(ctx, debug, log_file)


def cli_main():
    run_app(app)
