"""`hubvault-backup` entry point."""

from pathlib import Path
from typing import Optional

import typer

from ..commands.backup_commands import cmd_backup
from ..commands.common import init_context, run_app

app = typer.Typer(name="hubvault-backup", add_completion=False)


@app.command()
def backup(
    ctx: typer.Context,
    no_stop: bool = typer.Option(False, "--no-stop", help="Don't stop services during backup"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Also log to this file"),
):
    """Back up the hub installation to the restic repository."""
    init_context(ctx, debug, log_file)
    cmd_backup(ctx, no_stop)


def cli_main():
    run_app(app)
