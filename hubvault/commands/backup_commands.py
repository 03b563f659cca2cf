"""Backup command."""

import typer

from ..cores import BackupManager
from ..helpers.ui_utils import print_header, print_success, print_warning
from .common import ensure_repository_config, pipeline_guard


def cmd_backup(ctx: typer.Context, no_stop: bool = False):
    """Create a snapshot of the installation."""
    cfg = ensure_repository_config(ctx)
    print_header("HubVault Backup", str(cfg.install_root))

    with pipeline_guard(cfg):
        record = BackupManager(cfg).run(stop_services=not no_stop)

    for warning in record.warnings:
        print_warning(warning)
    print_success(
        f"Backup completed: snapshot {(record.snapshot_id or '')[:8]} "
        f"({record.details.get('pruned', 0)} old snapshots pruned)"
    )


def register(app: typer.Typer):
    """Register the backup command."""

    @app.command("backup")
    def _backup_cmd(
        ctx: typer.Context,
        no_stop: bool = typer.Option(False, "--no-stop", help="Don't stop services during backup"),
    ):
        """Back up the hub installation to the restic repository."""
        cmd_backup(ctx, no_stop)
