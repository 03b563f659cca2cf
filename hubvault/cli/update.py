"""`hubvault-update` entry point."""

from pathlib import Path
from typing import Optional

import typer

from ..commands.common import init_context, run_app
from ..commands.update_commands import cmd_update
from ..cores import UPDATE_MODES

app = typer.Typer(name="hubvault-update", add_completion=False)


@app.command()
def update(
    ctx: typer.Context,
    mode: str = typer.Argument("all", help=f"One of: {', '.join(UPDATE_MODES)}"),
    force: bool = typer.Option(False, "--force", help="Force update even if no updates detected"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Don't ask for confirmation"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Also log to this file"),
):
    """Update images, system packages and blocklists, or roll back."""
    init_context(ctx, debug, log_file)
    cmd_update(ctx, mode, force, yes)


def cli_main():
    run_app(app)
