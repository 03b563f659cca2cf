################################################################################
# HUBVAULT
#
# @file:        backup_manager.py
# @module:      hubvault.cores.backup_manager
# @description: Backup pipeline: metadata capture, quiescence, snapshot, retention.
# @author:      HubVault Contributors
# @repository:  https://github.com/hubvault/hubvault
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# Copyright (c) 2025 HubVault Contributors
# MIT-Lizenz: siehe LICENSE oder https://opensource.org/licenses/MIT
# ==============================================================================
# Hinweise:
# - Services are only stopped around snapshot creation (_quiesced)
# - If stop succeeded, start runs exactly once on every exit path
# - Verification and post hook failures are warnings, not failures
# - Every run ends with exactly one notification attempt
################################################################################

"""
Backup management module.

Runs the backup pipeline against one installation:

    REPO_ENSURED -> PRE_BACKUP_SNAPSHOT_TAKEN -> [SERVICES_STOPPED]
    -> SNAPSHOT_CREATED -> [SERVICES_STARTED] -> PRUNED -> VERIFIED
"""

from __future__ import annotations

import shutil
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Optional

from ..helpers.config import HubConfig
from ..helpers.constants import (
    BACKUP_TAG,
    CONTAINER_STATE_FILE,
    ENV_FILE_NAME,
    METADATA_DIR,
)
from ..helpers.errors import ConfigurationError, HookFailed, ServiceError, SnapshotFailed
from ..helpers.logging import get_logger
from ..types import OperationRecord, PipelineStage
from .hooks_manager import HooksManager
from .notification_manager import NotificationManager
from .repository_manager import ResticRepository
from .service_manager import ComposeServiceController

logger = get_logger(__name__)


class BackupManager:
    """Orchestrates one backup run."""

    def __init__(
        self,
        config: HubConfig,
        repository: Optional[ResticRepository] = None,
        services: Optional[ComposeServiceController] = None,
        notifier: Optional[NotificationManager] = None,
        hooks: Optional[HooksManager] = None,
    ):
        self.config = config
        self.repo = repository or ResticRepository(config)
        self.services = services or ComposeServiceController(config)
        self.notifier = notifier or NotificationManager(config)
        self.hooks = hooks or HooksManager(config)
        self.install_root = Path(config.install_root)

    def run(self, stop_services: bool = True, notify: bool = True) -> OperationRecord:
        """
        Execute the backup pipeline.

        Args:
            stop_services: Quiesce the service group while the snapshot is taken
            notify: Send the result notification (disabled for nested runs)

        Returns:
            The finished OperationRecord

        Raises:
            HubVaultError: The run failed; services were restarted if stopped
        """
        record = OperationRecord(operation="backup")
        logger.info(
            f"Starting backup of {self.install_root}",
            extra={"operation": "backup", "stop_services": stop_services},
        )
        try:
            self._execute(record, stop_services)
        except Exception as e:
            record.fail(e)
            logger.error(f"Backup failed: {e}", extra={"operation": "backup"})
            if notify:
                self.notifier.send_failure(record)
            raise

        record.succeed()
        logger.info(
            f"Backup completed successfully in {record.duration_seconds:.1f}s",
            extra={"operation": "backup", "snapshot_id": record.snapshot_id},
        )
        if notify:
            self.notifier.send_success(record)
        return record

    # ------------------------------------------------------------------
    # Pipeline steps
    # ------------------------------------------------------------------

    def _execute(self, record: OperationRecord, stop_services: bool) -> None:
        if not self.install_root.is_dir():
            raise ConfigurationError(f"Installation directory not found: {self.install_root}")

        self.repo.ensure_repository()
        record.advance(PipelineStage.REPO_ENSURED)

        if not self.hooks.execute_pre_backup():
            raise HookFailed("Pre-backup hook failed, aborting backup")

        self._capture_metadata()
        record.advance(PipelineStage.PRE_BACKUP_SNAPSHOT_TAKEN)

        with self._quiesced(record, stop_services):
            snapshot = self.repo.create_snapshot(
                [self.install_root],
                exclude_patterns=self.config.exclude_patterns,
                tags=[BACKUP_TAG],
            )
            record.snapshot_id = snapshot.id
            record.advance(PipelineStage.SNAPSHOT_CREATED)

        removed = self.repo.prune(self.config.retention_policy, protect=[snapshot.id])
        record.details["pruned"] = len(removed)
        record.advance(PipelineStage.PRUNED)

        if self.repo.verify_integrity():
            record.advance(PipelineStage.VERIFIED)
        else:
            record.warn("Repository integrity check reported problems")

        if not self.hooks.execute_post_backup():
            record.warn("Post-backup hook failed")

    @contextmanager
    def _quiesced(self, record: OperationRecord, stop_services: bool):
        """Stop the service group for the duration of the block."""
        if not stop_services:
            logger.info("Skipping service stop (--no-stop)")
            yield
            return

        self.services.stop_all()
        record.advance(PipelineStage.SERVICES_STOPPED)
        try:
            yield
        finally:
            try:
                self.services.start_all()
            except ServiceError as e:
                # Only surface the start failure if the block itself succeeded
                logger.error(f"Failed to restart services: {e}")
                if record.reached(PipelineStage.SNAPSHOT_CREATED):
                    raise
            else:
                record.advance(PipelineStage.SERVICES_STARTED)

    def _capture_metadata(self) -> None:
        """Write service state and tool versions into the installation tree."""
        logger.info("Capturing pre-backup metadata")
        try:
            self.services.capture_state(self.install_root / CONTAINER_STATE_FILE)

            meta_dir = self.install_root / METADATA_DIR
            meta_dir.mkdir(parents=True, exist_ok=True)
            (meta_dir / "backup-timestamp").write_text(
                datetime.now().strftime("%Y%m%d-%H%M%S") + "\n", encoding="utf-8"
            )
            versions = self.services.tool_versions()
            (meta_dir / "docker-version").write_text(versions.get("docker", "") + "\n",
                                                     encoding="utf-8")
            (meta_dir / "compose-version").write_text(versions.get("compose", "") + "\n",
                                                      encoding="utf-8")
            (meta_dir / "restic-version").write_text(self.repo.version() + "\n",
                                                     encoding="utf-8")

            env_file = self.install_root / ENV_FILE_NAME
            if env_file.is_file():
                shutil.copy2(env_file, meta_dir / "env.backup")
        except OSError as e:
            raise SnapshotFailed(f"Could not write backup metadata: {e}") from e
