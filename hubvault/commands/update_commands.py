"""Update command."""

import os

import typer

from ..cores import UPDATE_MODES, UpdateManager
from ..helpers.constants import EXIT_FAILURE
from ..helpers.ui_utils import (
    confirm_action,
    console,
    create_table,
    print_header,
    print_info,
    print_success,
    print_warning,
)
from .common import ensure_config, ensure_repository_config, pipeline_guard

# Modes that take a snapshot or restore one
REPOSITORY_MODES = {"all", "images", "rollback"}


def _check_permissions(yes: bool):
    if os.geteuid() != 0:
        return
    print_warning("Running as root. This may cause permission issues with Docker volumes.")
    if not yes and not confirm_action("Continue anyway?"):
        raise typer.Exit(code=EXIT_FAILURE)


def _print_updates(record):
    updates = record.details.get("updates") or {}
    if not updates:
        return
    table = create_table("Image updates", [("Service", "cyan", 24), ("Update", "white", 12)])
    for service, available in sorted(updates.items()):
        table.add_row(service, "[green]available[/green]" if available else "up to date")
    console.print(table)


def _print_summary(summary):
    table = create_table("Services", [("Name", "cyan", 24), ("Image", "white", 36), ("Status", "green", 20)])
    for svc in summary.get("services", []):
        table.add_row(svc["name"], svc["image"], svc["status"])
    console.print(table)
    print_info(f"Docker version: {summary.get('docker', '-')}")
    print_info(f"Docker Compose version: {summary.get('compose', '-')}")
    print_info(f"Free disk space: {summary.get('disk_free', '-')}")
    print_info(f"Memory usage: {summary.get('memory', '-')}")


def cmd_update(ctx: typer.Context, mode: str = "all", force: bool = False, yes: bool = False):
    """Run one update mode."""
    if mode not in UPDATE_MODES:
        raise typer.BadParameter(
            f"expected one of: {', '.join(UPDATE_MODES)}", param_hint="MODE"
        )
    backup_needed = mode in REPOSITORY_MODES
    cfg = ensure_config(ctx)
    if mode == "rollback" or (backup_needed and cfg.backup_before_update):
        cfg = ensure_repository_config(ctx)

    print_header("HubVault Update", f"mode: {mode}")
    _check_permissions(yes)

    def confirm(message: str) -> bool:
        return False if yes else confirm_action(message)

    with pipeline_guard(cfg):
        record = UpdateManager(cfg).run(mode, force=force, confirm=confirm)

    _print_updates(record)
    if "summary" in record.details:
        _print_summary(record.details["summary"])
    for warning in record.warnings:
        print_warning(warning)
    print_success(record.details.get("result", "Update process completed").capitalize())


def register(app: typer.Typer):
    """Register the update command."""

    @app.command("update")
    def _update_cmd(
        ctx: typer.Context,
        mode: str = typer.Argument("all", help=f"One of: {', '.join(UPDATE_MODES)}"),
        force: bool = typer.Option(False, "--force", help="Force update even if no updates detected"),
        yes: bool = typer.Option(False, "--yes", "-y", help="Don't ask for confirmation"),
    ):
        """Update images, system packages and blocklists, or roll back."""
        cmd_update(ctx, mode, force, yes)
