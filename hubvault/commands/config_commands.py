"""Configuration commands."""

import typer

from ..cores import NotificationManager
from ..helpers.constants import EXIT_FAILURE
from ..helpers.ui_utils import console, create_table, print_error, print_success, print_warning
from .common import ensure_config


def cmd_config(ctx: typer.Context):
    """Show the effective configuration with secrets masked."""
    cfg = ensure_config(ctx)
    table = create_table("Configuration", [("Variable", "cyan", 24), ("Value", "white", 60)])
    for name, value in cfg.masked_items():
        table.add_row(name, value)
    console.print(table)
    if not cfg.has_credentials():
        print_warning("RESTIC_REPOSITORY / RESTIC_PASSWORD not set: snapshot commands will fail")


def cmd_test_notification(ctx: typer.Context):
    """Send a test message to the configured targets."""
    cfg = ensure_config(ctx)
    if not cfg.notifications_enabled:
        print_error("No notification target configured (WEBHOOK_URL / EMAIL_TO)")
        raise typer.Exit(code=EXIT_FAILURE)
    if NotificationManager(cfg).send_test():
        print_success("Test notification sent")
    else:
        print_error("Test notification could not be delivered")
        raise typer.Exit(code=EXIT_FAILURE)


def register(app: typer.Typer):
    """Register configuration commands."""

    @app.command("config")
    def _config_cmd(ctx: typer.Context):
        """Show current configuration (secrets masked)."""
        cmd_config(ctx)

    @app.command("test-notification")
    def _test_notification_cmd(ctx: typer.Context):
        """Send a test notification."""
        cmd_test_notification(ctx)
