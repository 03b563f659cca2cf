################################################################################
# HUBVAULT
#
# @file:        restore_manager.py
# @module:      hubvault.cores.restore_manager
# @description: Restore pipeline: selection, extraction, installation swap, verify.
# @author:      HubVault Contributors
# @repository:  https://github.com/hubvault/hubvault
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# Copyright (c) 2025 HubVault Contributors
# MIT-Lizenz: siehe LICENSE oder https://opensource.org/licenses/MIT
# ==============================================================================
# Hinweise:
# - Extraction always goes to a staging directory, never the live tree
# - The live tree is copied to <root>-backup-YYYYMMDD-HHMMSS before the swap
# - Swap is a two-phase rename; a failed final rename puts the old tree back
# - Post-restore verification only produces warnings
################################################################################

"""
Restore management module.

Runs the restore pipeline:

    SELECTOR_RESOLVED -> EXTRACTED -> [SERVICES_STOPPED] -> CURRENT_BACKED_UP
    -> SWAPPED -> [SERVICES_STARTED] -> VERIFIED
"""

from __future__ import annotations

import os
import shutil
import time
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, Union

from ..helpers.config import HubConfig
from ..helpers.constants import LATEST_SELECTOR, REQUIRED_RESTORE_FILES
from ..helpers.errors import (
    ConfigurationError,
    HookFailed,
    RestoreFailed,
    ServiceError,
    ServiceUnhealthy,
    VerificationWarning,
)
from ..helpers.logging import get_logger
from ..helpers.system_utils import SystemUtils
from ..helpers.ui_utils import SubprocessError, run_command
from ..types import HealthStatus, OperationRecord, PipelineStage, Snapshot
from .hooks_manager import HooksManager
from .notification_manager import NotificationManager
from .repository_manager import ResticRepository
from .service_manager import ComposeServiceController

logger = get_logger(__name__)


class RestoreManager:
    """Restores the installation from a snapshot."""

    def __init__(
        self,
        config: HubConfig,
        repository: Optional[ResticRepository] = None,
        services: Optional[ComposeServiceController] = None,
        notifier: Optional[NotificationManager] = None,
        hooks: Optional[HooksManager] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.repo = repository or ResticRepository(config)
        self.services = services or ComposeServiceController(config)
        self.notifier = notifier or NotificationManager(config)
        self.hooks = hooks or HooksManager(config)
        self.install_root = Path(config.install_root)
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_snapshots(self) -> List[Snapshot]:
        """All snapshots, newest first."""
        self.repo.check_access()
        return self.repo.list_snapshots()

    def staged_path(self, target: Union[str, Path]) -> Path:
        """Where restic puts the installation tree below `target`."""
        return Path(target) / self.install_root.relative_to(self.install_root.anchor)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def run(
        self,
        selector: str = LATEST_SELECTOR,
        target: Optional[Union[str, Path]] = None,
        replace: bool = True,
        start: bool = True,
        notify: bool = True,
        by_date: bool = False,
    ) -> OperationRecord:
        """
        Restore a snapshot.

        Args:
            selector: 'latest', a snapshot id or an ISO date prefix
            target: Staging directory (default RESTORE_TARGET)
            replace: Swap the staged tree into place; False only extracts
            start: Start and verify services after the swap
            notify: Send the result notification (disabled for nested runs)
            by_date: Match the selector against snapshot dates only

        Returns:
            The finished OperationRecord

        Raises:
            HubVaultError: The run failed; stopped services were started again
        """
        record = OperationRecord(operation="restore" if replace else "extract")
        staging = Path(target) if target else Path(self.config.restore_target)
        logger.info(
            f"Starting restore of '{selector}'",
            extra={"operation": record.operation, "target": str(staging)},
        )
        try:
            self._execute(record, selector, staging, replace, start, by_date)
        except Exception as e:
            record.fail(e)
            logger.error(f"Restore failed: {e}", extra={"operation": record.operation})
            if notify:
                self.notifier.send_failure(record)
            raise

        record.succeed()
        logger.info(
            f"Restore completed successfully in {record.duration_seconds:.1f}s",
            extra={"operation": record.operation, "snapshot_id": record.snapshot_id},
        )
        if notify:
            self.notifier.send_success(record)
        return record

    def _execute(self, record: OperationRecord, selector: str, staging: Path,
                 replace: bool, start: bool, by_date: bool = False) -> None:
        self._validate_target(staging)
        self.repo.check_access()

        snapshot = self.repo.resolve_selector(selector, by_date=by_date)
        record.snapshot_id = snapshot.id
        record.details["snapshot_time"] = snapshot.time.isoformat()
        record.advance(PipelineStage.SELECTOR_RESOLVED)
        logger.info(f"Selected snapshot {snapshot.short_id} from {snapshot.time:%Y-%m-%d %H:%M:%S}")

        staged = self.staged_path(staging)
        if staged.exists():
            logger.info(f"Removing stale staged tree {staged}")
            shutil.rmtree(staged)
        self.repo.restore(snapshot, staging)
        self._check_staged(staged)
        record.details["staged_path"] = str(staged)
        record.advance(PipelineStage.EXTRACTED)

        if not replace:
            logger.info(f"Snapshot extracted to {staged}")
            return

        self._check_free_space()
        if not self.hooks.execute_pre_restore():
            raise HookFailed("Pre-restore hook failed, aborting restore")

        self.services.down()
        record.advance(PipelineStage.SERVICES_STOPPED)
        try:
            backup_copy = self._backup_current()
            if backup_copy:
                record.details["previous_installation"] = str(backup_copy)
            record.advance(PipelineStage.CURRENT_BACKED_UP)

            self._swap(staged)
            record.advance(PipelineStage.SWAPPED)
        except Exception:
            self._restart_after_failure()
            raise

        if start:
            self.services.start_all(pull=True)
            record.advance(PipelineStage.SERVICES_STARTED)
            if self._verify(record):
                record.advance(PipelineStage.VERIFIED)
        else:
            logger.info("Not starting services (--no-start)")

        if not self.hooks.execute_post_restore():
            record.warn("Post-restore hook failed")

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _validate_target(self, staging: Path) -> None:
        if not staging.is_absolute():
            raise ConfigurationError(f"Restore target must be an absolute path: {staging}")
        root = self.install_root.resolve()
        target = staging.resolve()
        if target == root or root in target.parents or target in root.parents:
            raise ConfigurationError(
                f"Restore target {staging} overlaps the installation at {self.install_root}"
            )

    @staticmethod
    def _check_staged(staged: Path) -> None:
        if not staged.is_dir():
            raise RestoreFailed(f"Snapshot does not contain the installation: {staged} missing")
        if not any(staged.iterdir()):
            raise RestoreFailed(f"Restored installation is empty: {staged}")

    def _check_free_space(self) -> None:
        """The copy of the live tree must fit next to it."""
        if not self.install_root.exists():
            return
        needed = SystemUtils.get_tree_size(self.install_root)
        free = SystemUtils.get_disk_free(self.install_root.parent)
        if free < needed:
            raise RestoreFailed(
                f"Not enough free space to back up the current installation: "
                f"{SystemUtils.format_bytes(needed)} needed, {SystemUtils.format_bytes(free)} free"
            )

    def _backup_current(self) -> Optional[Path]:
        """Copy the live tree aside; the copy is never removed automatically."""
        if not self.install_root.exists():
            logger.info("No current installation to back up")
            return None
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        copy = self.install_root.with_name(f"{self.install_root.name}-backup-{stamp}")
        suffix = 1
        while copy.exists():
            copy = self.install_root.with_name(f"{self.install_root.name}-backup-{stamp}-{suffix}")
            suffix += 1
        logger.info(f"Backing up current installation to {copy}")
        try:
            shutil.copytree(self.install_root, copy, symlinks=True)
        except (OSError, shutil.Error) as e:
            raise RestoreFailed(f"Could not back up current installation: {e}") from e
        return copy

    def _swap(self, staged: Path) -> None:
        """Replace the live tree with the staged one."""
        stamp = datetime.now().strftime("%Y%m%d%H%M%S")
        parent = self.install_root.parent
        incoming = parent / f".{self.install_root.name}.incoming-{stamp}"
        outgoing = parent / f".{self.install_root.name}.outgoing-{stamp}"

        logger.info("Replacing current installation...")
        try:
            shutil.move(str(staged), str(incoming))
        except (OSError, shutil.Error) as e:
            raise RestoreFailed(f"Could not move staged tree next to the installation: {e}") from e

        had_current = self.install_root.exists()
        try:
            if had_current:
                os.rename(self.install_root, outgoing)
            os.rename(incoming, self.install_root)
        except OSError as e:
            if had_current and outgoing.exists() and not self.install_root.exists():
                os.rename(outgoing, self.install_root)
                logger.warning("Swap failed, previous installation put back")
            self._return_to_staging(incoming, staged)
            raise RestoreFailed(f"Could not swap installation: {e}") from e

        if had_current:
            shutil.rmtree(outgoing, ignore_errors=True)
        self._fix_ownership()
        logger.info("Installation replaced successfully")

    @staticmethod
    def _return_to_staging(incoming: Path, staged: Path) -> None:
        if not incoming.exists():
            return
        try:
            shutil.move(str(incoming), str(staged))
            logger.info(f"Restored tree moved back to {staged}")
        except (OSError, shutil.Error) as e:
            logger.error(f"Restored tree left at {incoming}: {e}")

    def _fix_ownership(self) -> None:
        owner = self.config.owner
        if not owner:
            return
        try:
            run_command(["chown", "-R", owner, str(self.install_root)],
                        "Fixing ownership", timeout=600)
        except (SubprocessError, FileNotFoundError) as e:
            logger.warning(f"Could not change ownership to {owner}: {e}")

    def _restart_after_failure(self) -> None:
        logger.warning("Restarting services on the current installation after failure")
        try:
            self.services.start_all()
        except ServiceError as e:
            logger.error(f"Failed to restart services: {e}")

    def _verify(self, record: OperationRecord) -> bool:
        """Check required files and service health; problems become warnings."""
        issues: List[Warning] = []
        for rel in REQUIRED_RESTORE_FILES:
            if not (self.install_root / rel).is_file():
                issues.append(VerificationWarning(f"Required file missing: {self.install_root / rel}"))

        if self.config.restore_grace_seconds:
            logger.info(f"Waiting {self.config.restore_grace_seconds:.0f}s for services to start")
            self._sleep(self.config.restore_grace_seconds)

        try:
            statuses = self.services.health_check()
        except ServiceError as e:
            statuses = {}
            issues.append(ServiceUnhealthy(f"Health check failed: {e}"))

        unhealthy = sorted(n for n, s in statuses.items() if s != HealthStatus.HEALTHY)
        if unhealthy:
            issues.append(ServiceUnhealthy(f"Services not healthy: {', '.join(unhealthy)}"))

        for issue in issues:
            logger.warning(str(issue), extra={"category": type(issue).__name__})
            record.warn(str(issue))
        if not issues:
            logger.info("Restored installation verified")
        return not issues
