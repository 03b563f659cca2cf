################################################################################
# HUBVAULT
#
# @file:        main.py
# @module:      hubvault.cli.main
# @description: Umbrella `hubvault` CLI bundling backup, restore and update.
# @author:      HubVault Contributors
# @repository:  https://github.com/hubvault/hubvault
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# Copyright (c) 2025 HubVault Contributors
# MIT-Lizenz: siehe LICENSE oder https://opensource.org/licenses/MIT
################################################################################

"""
Main CLI application using Typer.

Configuration is read from the environment once per invocation and kept in
the Typer context; commands fetch it from there.
"""

from pathlib import Path
from typing import Optional

import typer

from ..commands import backup_commands, config_commands, update_commands
from ..commands.common import init_context, run_app
from ..helpers.constants import VERSION
from ..helpers.ui_utils import console
from . import restore as restore_cli

app = typer.Typer(
    name="hubvault",
    help="HubVault - backup, restore and update for the Tailscale hub",
    add_completion=False,
    no_args_is_help=True,
)

backup_commands.register(app)
update_commands.register(app)
config_commands.register(app)
app.add_typer(restore_cli.app, name="restore")


@app.callback()
def main_callback(
    ctx: typer.Context,
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Also log to this file"),
):
    """
    HubVault - backup, restore and update for the Tailscale hub.

    All settings come from environment variables, see 'hubvault config'.
    """
    init_context(ctx, debug, log_file)


@app.command()
def version():
    """Show version information"""
    console.print(f"[cyan]HubVault[/cyan] v{VERSION}")


def cli_main():
    """Entry point for the `hubvault` console script."""
    run_app(app)


if __name__ == "__main__":
    cli_main()
