################################################################################
# HUBVAULT
#
# @file:        __init__.py
# @module:      hubvault
# @description: Exposes version, configuration, data types and pipeline managers.
# @author:      HubVault Contributors
# @repository:  https://github.com/hubvault/hubvault
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# Copyright (c) 2025 HubVault Contributors
# MIT-Lizenz: siehe LICENSE oder https://opensource.org/licenses/MIT
################################################################################

"""
HubVault: backup, restore and update lifecycle for a Docker Compose hub.

Snapshots are stored in a restic repository; the service group is driven
through docker compose.
"""

from .helpers.constants import VERSION

__version__ = VERSION
__author__ = "HubVault Contributors"

from .helpers.logging import get_logger, log_manager, setup_logging
from .helpers.errors import (
    HubVaultError,
    ConfigurationError,
    RepositoryUnreachable,
    SnapshotFailed,
    SnapshotNotFound,
    RestoreFailed,
    ServiceError,
    HookFailed,
)
from .types import (
    Snapshot,
    RetentionPolicy,
    OperationRecord,
    PipelineStage,
    HealthStatus,
)
from .helpers.config import HubConfig
from .cores import (
    BackupManager,
    ComposeServiceController,
    ResticRepository,
    RestoreManager,
    UpdateManager,
)

__all__ = [
    "VERSION",
    "get_logger",
    "log_manager",
    "setup_logging",
    "HubVaultError",
    "ConfigurationError",
    "RepositoryUnreachable",
    "SnapshotFailed",
    "SnapshotNotFound",
    "RestoreFailed",
    "ServiceError",
    "HookFailed",
    "Snapshot",
    "RetentionPolicy",
    "OperationRecord",
    "PipelineStage",
    "HealthStatus",
    "HubConfig",
    "BackupManager",
    "ComposeServiceController",
    "ResticRepository",
    "RestoreManager",
    "UpdateManager",
]
