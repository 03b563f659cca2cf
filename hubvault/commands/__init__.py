"""CLI command modules for HubVault."""

from . import (
    backup_commands,
    config_commands,
    restore_commands,
    update_commands,
)

__all__ = [
    'backup_commands',
    'config_commands',
    'restore_commands',
    'update_commands',
]
