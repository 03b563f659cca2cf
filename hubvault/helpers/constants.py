"""
Constants used throughout the HubVault application.

This module defines all constant values used across different modules
to ensure consistency and ease of maintenance.
"""

from pathlib import Path

# Version information
VERSION = "1.0.0"

# Installation layout
DEFAULT_INSTALL_ROOT = Path("/opt/tailscale-hub")
DEFAULT_RESTORE_TARGET = Path("/opt/restore")
COMPOSE_FILE_NAME = "docker-compose.yml"
ENV_FILE_NAME = ".env"
CONTAINER_STATE_FILE = "container-state.json"
METADATA_DIR = "backup-metadata"

# Files that must exist in a healthy installation after a restore
REQUIRED_RESTORE_FILES = (
    COMPOSE_FILE_NAME,
    "configs/unbound/unbound.conf",
    "configs/adguard/AdGuardHome.yaml",
)

# Snapshot defaults
BACKUP_TAG = "automated-backup"
DEFAULT_EXCLUDE_PATTERNS = (
    "*/logs/*",
    "*/tmp/*",
    "*/.cache/*",
    "*.log",
)
LATEST_SELECTOR = "latest"

# Retention defaults
DEFAULT_RETENTION_DAILY = 30
DEFAULT_RETENTION_WEEKLY = 4
DEFAULT_RETENTION_MONTHLY = 12

# Health polling
HEALTH_POLL_ATTEMPTS = 30
HEALTH_POLL_INTERVAL = 2.0
RESTORE_GRACE_SECONDS = 30
HEALTH_HTTP_TIMEOUT = 5.0

# Timeouts (in seconds)
COMPOSE_TIMEOUT = 300
BACKUP_OPERATION_TIMEOUT = 3600  # 1 hour
HOOK_TIMEOUT = 300

# Services
DEFAULT_ADGUARD_SERVICE = "adguard"

# Hooks
HOOK_PRE_BACKUP = "pre_backup"
HOOK_POST_BACKUP = "post_backup"
HOOK_PRE_RESTORE = "pre_restore"
HOOK_POST_RESTORE = "post_restore"

# Locking
DEFAULT_LOCK_PATH = "/run/hubvault.lock"
FALLBACK_LOCK_PATH = "/tmp/hubvault.lock"

# Exit codes
EXIT_FAILURE = 1
EXIT_LOCKED = 75  # EX_TEMPFAIL

# Logging
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
