"""
CLI and subprocess utilities for HubVault.

Rich-based helpers for consistent CLI output, plus the single place where
external commands (restic, docker, apt) are executed.
"""

import os
import subprocess
from typing import Dict, List, Optional, Sequence

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm
from rich.table import Table

from .logging import get_logger

logger = get_logger(__name__)

console = Console()
err_console = Console(stderr=True)


class SubprocessError(Exception):
    """An external command exited non-zero."""

    def __init__(self, cmd, returncode: int, stdout: str = "", stderr: str = ""):
        self.cmd = list(cmd) if isinstance(cmd, (list, tuple)) else [str(cmd)]
        self.returncode = returncode
        self.stdout = stdout or ""
        self.stderr = stderr or ""
        detail = self.stderr.strip() or self.stdout.strip() or "no output"
        super().__init__(
            f"Command '{' '.join(self.cmd)}' failed with exit code {returncode}: {detail}"
        )


def run_command(
    cmd: Sequence[str],
    description: str = "",
    timeout: Optional[float] = None,
    check: bool = True,
    env: Optional[Dict[str, str]] = None,
    cwd: Optional[str] = None,
) -> subprocess.CompletedProcess:
    """
    Run an external command and capture its output.

    Args:
        cmd: Command and arguments
        description: Human readable description for debug logs
        timeout: Timeout in seconds (None = no timeout)
        check: Raise SubprocessError on non-zero exit
        env: Full environment for the child (defaults to os.environ)
        cwd: Working directory

    Returns:
        CompletedProcess with text stdout/stderr

    Raises:
        SubprocessError: Non-zero exit with check=True
        FileNotFoundError: Binary not installed
        subprocess.TimeoutExpired: Timeout exceeded
    """
    cmd = [str(c) for c in cmd]
    if description:
        logger.debug(f"{description}: {' '.join(cmd)}")

    result = subprocess.run(
        cmd,
        capture_output=True,
        text=True,
        timeout=timeout,
        env=env if env is not None else os.environ.copy(),
        cwd=cwd,
    )
    if check and result.returncode != 0:
        raise SubprocessError(cmd, result.returncode, result.stdout, result.stderr)
    return result


def print_header(title: str, subtitle: str = ""):
    """Print styled header with optional subtitle"""
    content = f"[bold cyan]{escape(title)}[/bold cyan]"
    if subtitle:
        content += f"\n[dim]{escape(subtitle)}[/dim]"
    console.print(Panel(content, border_style="cyan"))


def print_success(message: str):
    """Print success message with green checkmark"""
    console.print(f"[green]✓[/green] {escape(message)}")


def print_error(message: str):
    """Print error message with red X (stderr)"""
    err_console.print(f"[red]✗[/red] {escape(message)}")


def print_warning(message: str):
    """Print warning message with yellow warning symbol"""
    console.print(f"[yellow]⚠[/yellow]  {escape(message)}")


def print_info(message: str):
    """Print info message with cyan arrow"""
    console.print(f"[cyan]→[/cyan] {escape(message)}")


def print_separator():
    """Print a visual separator line"""
    console.print("\n" + "─" * 60 + "\n")


def create_table(title: str, columns: List[tuple]) -> Table:
    """
    Create a styled Rich table

    Args:
        title: Table title
        columns: List of (name, style, width) tuples

    Returns:
        Rich Table instance
    """
    table = Table(title=title, show_header=True, header_style="bold cyan")
    for name, style, width in columns:
        table.add_column(name, style=style, width=width)
    return table


def confirm_action(message: str, default: bool = False) -> bool:
    """Ask a yes/no question (defaults to No)."""
    return Confirm.ask(message, default=default, console=console)
