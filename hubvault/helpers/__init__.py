"""Helper modules and utilities for HubVault."""

from .constants import VERSION, DEFAULT_INSTALL_ROOT, DEFAULT_RESTORE_TARGET
from .errors import HubVaultError
from .logging import get_logger, log_manager, setup_logging
from .process_lock import ProcessLock
from .system_utils import SystemUtils
from .ui_utils import SubprocessError, run_command

__all__ = [
    'VERSION',
    'DEFAULT_INSTALL_ROOT',
    'DEFAULT_RESTORE_TARGET',
    'HubVaultError',
    'get_logger',
    'log_manager',
    'setup_logging',
    'ProcessLock',
    'SystemUtils',
    'SubprocessError',
    'run_command',
]
