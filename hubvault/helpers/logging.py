################################################################################
# HUBVAULT
#
# @file:        logging.py
# @module:      hubvault.helpers.logging
# @description: Logging setup with colored console, structured extras and journal support.
# @author:      HubVault Contributors
# @repository:  https://github.com/hubvault/hubvault
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# Copyright (c) 2025 HubVault Contributors
# MIT-Lizenz: siehe LICENSE oder https://opensource.org/licenses/MIT
# ==============================================================================
# Hinweise:
# - StructuredFormatter appends `extra={...}` fields as key=value pairs
# - SystemdHandler is only attached when systemd-python is installed
# - log_manager keeps setup idempotent across the three entry points
################################################################################

"""
Logging helpers for HubVault.

All modules obtain their logger through :func:`get_logger`. The CLI calls
:func:`setup_logging` once per invocation.
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional, Union

from .constants import LOG_DATE_FORMAT, LOG_FORMAT

try:
    from systemd import journal
    HAS_SYSTEMD = True
except ImportError:
    HAS_SYSTEMD = False

ROOT_LOGGER_NAME = "hubvault"

# Attributes every LogRecord has; everything else came in through `extra`
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "asctime"}


class Colors:
    """ANSI color codes for console output."""

    RED = "\033[0;31m"
    GREEN = "\033[0;32m"
    YELLOW = "\033[1;33m"
    BLUE = "\033[0;34m"
    CYAN = "\033[0;36m"
    BOLD = "\033[1m"
    NC = "\033[0m"

    LEVELS = {
        logging.DEBUG: CYAN,
        logging.INFO: GREEN,
        logging.WARNING: YELLOW,
        logging.ERROR: RED,
        logging.CRITICAL: RED + BOLD,
    }


class StructuredFormatter(logging.Formatter):
    """
    Formatter that appends structured context to the message.

    ``logger.info("Snapshot created", extra={"snapshot_id": "ab12"})`` renders
    as ``... - Snapshot created [snapshot_id=ab12]``.
    """

    def __init__(self, fmt: str = LOG_FORMAT, datefmt: str = LOG_DATE_FORMAT,
                 use_colors: bool = False):
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        extras = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS and not key.startswith("_")
        }
        if extras:
            context = " ".join(f"{k}={v}" for k, v in sorted(extras.items()))
            message = f"{message} [{context}]"
        if self.use_colors:
            color = Colors.LEVELS.get(record.levelno, "")
            message = f"{color}{message}{Colors.NC}"
        return message


class SystemdHandler(logging.Handler):
    """
    Log handler that sends messages to systemd journal.
    """

    def emit(self, record: logging.LogRecord) -> None:
        if not HAS_SYSTEMD:
            return

        priority_map = {
            logging.DEBUG: journal.LOG_DEBUG,
            logging.INFO: journal.LOG_INFO,
            logging.WARNING: journal.LOG_WARNING,
            logging.ERROR: journal.LOG_ERR,
            logging.CRITICAL: journal.LOG_CRIT,
        }
        journal.send(
            record.getMessage(),
            PRIORITY=priority_map.get(record.levelno, journal.LOG_INFO),
            LOGGER=record.name,
            CODE_FILE=record.pathname,
            CODE_LINE=record.lineno,
            CODE_FUNC=record.funcName,
            SYSLOG_IDENTIFIER="hubvault",
        )


class LogManager:
    """Owns the handlers attached to the ``hubvault`` logger."""

    def __init__(self):
        self._configured = False
        self._handlers: list[logging.Handler] = []

    @property
    def configured(self) -> bool:
        return self._configured

    def setup(
        self,
        level: Union[int, str] = logging.INFO,
        log_file: Optional[Union[str, Path]] = None,
        use_journal: bool = True,
        stream=None,
    ) -> logging.Logger:
        root = logging.getLogger(ROOT_LOGGER_NAME)
        self.reset()

        if isinstance(level, str):
            level = logging.getLevelName(level.upper())
            if not isinstance(level, int):
                level = logging.INFO
        root.setLevel(level)
        root.propagate = False

        stream = stream or sys.stderr
        console = logging.StreamHandler(stream)
        console.setFormatter(
            StructuredFormatter(use_colors=hasattr(stream, "isatty") and stream.isatty())
        )
        self._attach(root, console)

        if log_file:
            path = Path(log_file).expanduser()
            path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                path, maxBytes=100 * 1024 * 1024, backupCount=5, encoding="utf-8"
            )
            file_handler.setFormatter(StructuredFormatter())
            self._attach(root, file_handler)

        if use_journal and HAS_SYSTEMD:
            self._attach(root, SystemdHandler())

        self._configured = True
        return root

    def reset(self) -> None:
        root = logging.getLogger(ROOT_LOGGER_NAME)
        for handler in self._handlers:
            root.removeHandler(handler)
            handler.close()
        self._handlers = []
        self._configured = False

    def _attach(self, logger: logging.Logger, handler: logging.Handler) -> None:
        logger.addHandler(handler)
        self._handlers.append(handler)


log_manager = LogManager()


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[Union[str, Path]] = None,
    use_journal: bool = True,
) -> logging.Logger:
    """Configure HubVault logging (console, optional file, optional journal)."""
    return log_manager.setup(level=level, log_file=log_file, use_journal=use_journal)


def get_logger(name: str) -> logging.Logger:
    """Return a logger below the ``hubvault`` namespace."""
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
