"""Core business logic modules for HubVault."""

from .backup_manager import BackupManager
from .hooks_manager import HooksManager
from .notification_manager import NotificationManager
from .repository_manager import ResticRepository
from .restore_manager import RestoreManager
from .service_manager import ComposeServiceController
from .update_manager import UPDATE_MODES, UpdateManager

__all__ = [
    'BackupManager',
    'HooksManager',
    'NotificationManager',
    'ResticRepository',
    'RestoreManager',
    'ComposeServiceController',
    'UPDATE_MODES',
    'UpdateManager',
]
