"""Restore commands: list, restore, latest, date, extract, unlock."""

import re
from pathlib import Path
from typing import Optional

import typer
from rich.prompt import Prompt

from ..cores import ResticRepository, RestoreManager
from ..helpers.constants import LATEST_SELECTOR
from ..helpers.ui_utils import (
    console,
    create_table,
    print_header,
    print_info,
    print_success,
    print_warning,
)
from .common import ensure_repository_config, pipeline_guard

DATE_PATTERN = re.compile(r"^\d{4}(-\d{2}(-\d{2})?)?$")


def _print_snapshots(snapshots):
    table = create_table(
        "Snapshots",
        [
            ("ID", "cyan", 10),
            ("Time", "yellow", 20),
            ("Host", "white", 16),
            ("Tags", "green", 20),
        ],
    )
    for snap in snapshots:
        table.add_row(
            snap.short_id,
            snap.time.strftime("%Y-%m-%d %H:%M:%S"),
            snap.hostname or "-",
            ", ".join(snap.tags) or "-",
        )
    console.print(table)


def _select_snapshot(manager: RestoreManager) -> str:
    """Show snapshots and ask for an id (or 'latest')."""
    snapshots = manager.list_snapshots()
    if not snapshots:
        print_warning("No snapshots found")
        raise typer.Exit(code=1)
    _print_snapshots(snapshots)
    return Prompt.ask(
        "Enter snapshot ID (or 'latest' for most recent)", default=LATEST_SELECTOR, console=console
    ).strip()


def _report(record):
    for warning in record.warnings:
        print_warning(warning)
    if "previous_installation" in record.details:
        print_info(f"Previous installation kept at {record.details['previous_installation']}")
    if record.operation == "extract":
        print_success(f"Snapshot extracted to {record.details.get('staged_path')}")
    else:
        print_success(f"Restore completed from snapshot {(record.snapshot_id or '')[:8]}")


# -------------------------
# Commands
# -------------------------

def cmd_list(ctx: typer.Context):
    """List available snapshots."""
    cfg = ensure_repository_config(ctx)
    with pipeline_guard(cfg):
        snapshots = RestoreManager(cfg).list_snapshots()
    if not snapshots:
        print_warning("No snapshots found")
        return
    _print_snapshots(snapshots)
    print_info(f"Total: {len(snapshots)} snapshots")


def cmd_restore(
    ctx: typer.Context,
    selector: Optional[str],
    target: Optional[Path] = None,
    replace: bool = True,
    start: bool = True,
    by_date: bool = False,
):
    """Restore (or extract) a snapshot; asks for one if no selector is given."""
    cfg = ensure_repository_config(ctx)
    print_header("HubVault Restore", str(cfg.install_root))

    with pipeline_guard(cfg):
        manager = RestoreManager(cfg)
        if not selector:
            selector = _select_snapshot(manager)
        record = manager.run(selector, target=target, replace=replace, start=start,
                             by_date=by_date)
    _report(record)


def cmd_unlock(ctx: typer.Context):
    """Remove stale repository locks."""
    cfg = ensure_repository_config(ctx)
    with pipeline_guard(cfg):
        ResticRepository(cfg).unlock()
    print_success("Stale repository locks removed")


def register(app: typer.Typer):
    """Register restore commands on `app`."""

    target_opt = typer.Option(None, "--target", help="Restore target directory (default: RESTORE_TARGET)")
    replace_opt = typer.Option(True, "--replace/--no-replace", help="Replace the current installation")
    start_opt = typer.Option(True, "--start/--no-start", help="Start services after restore")

    @app.command("list")
    def _list_cmd(ctx: typer.Context):
        """List available snapshots."""
        cmd_list(ctx)

    @app.command("restore")
    def _restore_cmd(
        ctx: typer.Context,
        snapshot_id: Optional[str] = typer.Argument(None, help="Snapshot ID (interactive if omitted)"),
        target: Optional[Path] = target_opt,
        replace: bool = replace_opt,
        start: bool = start_opt,
    ):
        """Restore from a specific snapshot."""
        cmd_restore(ctx, snapshot_id, target, replace, start)

    @app.command("latest")
    def _latest_cmd(
        ctx: typer.Context,
        target: Optional[Path] = target_opt,
        replace: bool = replace_opt,
        start: bool = start_opt,
    ):
        """Restore from the latest snapshot."""
        cmd_restore(ctx, LATEST_SELECTOR, target, replace, start)

    @app.command("date")
    def _date_cmd(
        ctx: typer.Context,
        date: str = typer.Argument(..., help="Date prefix, YYYY-MM-DD"),
        target: Optional[Path] = target_opt,
        replace: bool = replace_opt,
        start: bool = start_opt,
    ):
        """Restore the most recent snapshot from a specific date."""
        if not DATE_PATTERN.match(date):
            raise typer.BadParameter("Please specify a date in YYYY-MM-DD format", param_hint="DATE")
        cmd_restore(ctx, date, target, replace, start, by_date=True)

    @app.command("extract")
    def _extract_cmd(
        ctx: typer.Context,
        snapshot_id: Optional[str] = typer.Argument(None, help="Snapshot ID (interactive if omitted)"),
        target: Optional[Path] = target_opt,
    ):
        """Extract a snapshot without replacing the current installation."""
        cmd_restore(ctx, snapshot_id, target, replace=False, start=False)

    @app.command("unlock")
    def _unlock_cmd(ctx: typer.Context):
        """Remove stale locks from the repository."""
        cmd_unlock(ctx)
