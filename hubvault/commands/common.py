"""Shared CLI plumbing: context, configuration, logging, locking, exit codes."""

import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

import typer
from rich.markup import escape

from ..helpers.config import HubConfig
from ..helpers.constants import EXIT_FAILURE, EXIT_LOCKED
from ..helpers.errors import HubVaultError
from ..helpers.logging import get_logger, setup_logging
from ..helpers.process_lock import ProcessLock
from ..helpers.ui_utils import err_console, print_error

logger = get_logger(__name__)


def init_context(ctx: typer.Context, debug: bool = False, log_file: Optional[Path] = None):
    """Store global options; nested callbacks only add what they were given."""
    if ctx.obj is None:
        ctx.obj = {}
    if debug:
        ctx.obj["debug"] = True
    if log_file:
        ctx.obj["log_file"] = log_file
    ctx.obj.setdefault("debug", False)
    ctx.obj.setdefault("log_file", None)


def get_config(ctx: typer.Context) -> Optional[HubConfig]:
    """Get config from context."""
    return (ctx.obj or {}).get("config")


def ensure_config(ctx: typer.Context) -> HubConfig:
    """Load the configuration once, set up logging, or exit 1."""
    cfg = get_config(ctx)
    if cfg:
        return cfg
    init_context(ctx)

    try:
        cfg = HubConfig.from_env()
    except HubVaultError as e:
        print_error(str(e))
        raise typer.Exit(code=EXIT_FAILURE)

    level = "DEBUG" if ctx.obj["debug"] else cfg.log_level
    setup_logging(level=level, log_file=ctx.obj["log_file"] or cfg.log_file)
    ctx.obj["config"] = cfg
    return cfg


def ensure_repository_config(ctx: typer.Context) -> HubConfig:
    """Like ensure_config, but snapshot credentials must be present."""
    cfg = ensure_config(ctx)
    try:
        cfg.require_repository()
    except HubVaultError as e:
        print_error(str(e))
        raise typer.Exit(code=EXIT_FAILURE)
    return cfg


@contextmanager
def pipeline_guard(cfg: HubConfig):
    """
    Serialize runs with the process lock and map errors to exit codes.

    Exit 75 when another run holds the lock, 1 on any HubVaultError.
    """
    lock = ProcessLock(str(cfg.lock_file) if cfg.lock_file else None)
    if not lock.acquire():
        print_error(
            f"Another HubVault run is in progress (PID {lock.get_holder_pid()}), lock: {lock.lock_path}"
        )
        raise typer.Exit(code=EXIT_LOCKED)
    try:
        yield
    except HubVaultError as e:
        print_error(f"{type(e).__name__}: {e}")
        raise typer.Exit(code=EXIT_FAILURE)
    finally:
        lock.release()


def run_app(typer_app: typer.Typer):
    """Run a Typer app with the shared interrupt and crash handling."""
    try:
        typer_app()
    except KeyboardInterrupt:
        err_console.print("\n[yellow]Cancelled by user[/yellow]")
        sys.exit(EXIT_FAILURE)
    except Exception as e:
        err_console.print(f"[red]Error:[/red] {escape(str(e))}")
        if "--debug" in sys.argv:
            raise
        sys.exit(EXIT_FAILURE)
