################################################################################
# HUBVAULT
#
# @file:        update_manager.py
# @module:      hubvault.cores.update_manager
# @description: Image, package and blocklist updates with backup and rollback.
# @author:      HubVault Contributors
# @repository:  https://github.com/hubvault/hubvault
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# Copyright (c) 2025 HubVault Contributors
# MIT-Lizenz: siehe LICENSE oder https://opensource.org/licenses/MIT
# ==============================================================================
# Hinweise:
# - The pre-update backup runs without stopping services
# - Rollback restores 'latest' without start, then starts and checks health
# - Volume pruning needs an explicit confirmation callback
################################################################################

"""
Update management module.

Modes:
    all         pre-update backup, check, then (if updates or --force) images,
                system packages, blocklists, docker cleanup
    images      pre-update backup, pull, recreate, health check
    system      apt-get update/upgrade/autoremove/autoclean
    blocklists  AdGuard Home filter refresh
    check       report available image updates, change nothing
    rollback    restore the latest snapshot and restart services
"""

from __future__ import annotations

import os
import subprocess
from typing import Callable, Dict, List, Optional

import httpx

from ..helpers.config import HubConfig
from ..helpers.constants import HEALTH_HTTP_TIMEOUT, LATEST_SELECTOR
from ..helpers.errors import ConfigurationError, HubVaultError, ServiceError
from ..helpers.logging import get_logger
from ..helpers.system_utils import SystemUtils
from ..helpers.ui_utils import SubprocessError, run_command
from ..types import HealthStatus, ImageUpdate, OperationRecord, PipelineStage
from .backup_manager import BackupManager
from .notification_manager import NotificationManager
from .restore_manager import RestoreManager
from .service_manager import ComposeServiceController

logger = get_logger(__name__)

UPDATE_MODES = ("all", "images", "system", "blocklists", "check", "rollback")

APT_STEPS = (
    (["apt-get", "update"], "Refreshing package lists"),
    (["apt-get", "upgrade", "-y"], "Upgrading packages"),
    (["apt-get", "autoremove", "-y"], "Removing unused packages"),
    (["apt-get", "autoclean"], "Cleaning package cache"),
)

ConfirmCallback = Callable[[str], bool]


def _never(_message: str) -> bool:
    return False


class UpdateManager:
    """Runs one update mode against the installation."""

    def __init__(
        self,
        config: HubConfig,
        services: Optional[ComposeServiceController] = None,
        backup_manager: Optional[BackupManager] = None,
        restore_manager: Optional[RestoreManager] = None,
        notifier: Optional[NotificationManager] = None,
    ):
        self.config = config
        self.services = services or ComposeServiceController(config)
        self.notifier = notifier or NotificationManager(config)
        self.backup_manager = backup_manager or BackupManager(
            config, services=self.services, notifier=self.notifier
        )
        self.restore_manager = restore_manager or RestoreManager(
            config, services=self.services, notifier=self.notifier
        )

    def run(self, mode: str = "all", force: bool = False,
            confirm: Optional[ConfirmCallback] = None) -> OperationRecord:
        """
        Execute an update mode.

        Args:
            mode: One of UPDATE_MODES
            force: Apply updates even if none were detected ('all')
            confirm: Asked before destructive optional steps; defaults to "no"

        Raises:
            ConfigurationError: Unknown mode
            HubVaultError: The run failed
        """
        if mode not in UPDATE_MODES:
            raise ConfigurationError(
                f"Unknown update mode '{mode}', expected one of: {', '.join(UPDATE_MODES)}"
            )
        confirm = confirm or _never
        record = OperationRecord(operation=f"update:{mode}")
        logger.info(f"Starting update process ({mode})", extra={"operation": "update", "force": force})

        handler = getattr(self, f"_run_{mode}")
        try:
            handler(record, force, confirm)
        except Exception as e:
            record.fail(e)
            logger.error(f"Update failed: {e}", extra={"operation": "update"})
            self.notifier.send_failure(record)
            raise

        record.succeed()
        logger.info("Update process completed", extra={"operation": "update", "mode": mode})
        self.notifier.send_success(record)
        return record

    # ------------------------------------------------------------------
    # Modes
    # ------------------------------------------------------------------

    def _run_all(self, record: OperationRecord, force: bool, confirm: ConfirmCallback) -> None:
        self._backup_before_update(record)
        updates = self.check_updates(record)
        if not any(u.update_available for u in updates) and not force:
            logger.info("No updates available")
            record.details["result"] = "no updates available"
            return
        self.update_images(record)
        self.update_system(record)
        self.update_blocklists(record)
        self.cleanup(record, confirm)
        record.details["summary"] = self.summary()

    def _run_images(self, record: OperationRecord, force: bool, confirm: ConfirmCallback) -> None:
        self._backup_before_update(record)
        self.update_images(record)
        record.details["summary"] = self.summary()

    def _run_system(self, record: OperationRecord, force: bool, confirm: ConfirmCallback) -> None:
        self.update_system(record)

    def _run_blocklists(self, record: OperationRecord, force: bool,
                        confirm: ConfirmCallback) -> None:
        self.update_blocklists(record)

    def _run_check(self, record: OperationRecord, force: bool, confirm: ConfirmCallback) -> None:
        record.details["versions"] = self.services.tool_versions()
        updates = self.check_updates(record)
        pending = [u.service for u in updates if u.update_available]
        if pending:
            logger.info(f"Updates available for: {', '.join(pending)}")
        else:
            logger.info("No updates available")

    def _run_rollback(self, record: OperationRecord, force: bool,
                      confirm: ConfirmCallback) -> None:
        logger.warning("Rolling back to previous version...")
        restored = self.restore_manager.run(LATEST_SELECTOR, start=False, notify=False)
        record.snapshot_id = restored.snapshot_id
        record.warnings.extend(restored.warnings)
        self.services.start_all()
        record.advance(PipelineStage.ROLLED_BACK)
        self._check_health(record)
        logger.info("Rollback completed")

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _backup_before_update(self, record: OperationRecord) -> None:
        if not self.config.backup_before_update:
            logger.info("Pre-update backup disabled (BACKUP_BEFORE_UPDATE=false)")
            return
        logger.info("Creating backup before update...")
        backup = self.backup_manager.run(stop_services=False, notify=False)
        record.snapshot_id = backup.snapshot_id
        record.advance(PipelineStage.PRE_UPDATE_BACKUP)

    def check_updates(self, record: Optional[OperationRecord] = None) -> List[ImageUpdate]:
        """Pull and compare all configured images."""
        logger.info("Checking for image updates...")
        updates = self.services.check_image_updates()
        if record is not None:
            record.details["updates"] = {
                u.service: u.update_available for u in updates
            }
            record.advance(PipelineStage.UPDATES_CHECKED)
        return updates

    def update_images(self, record: OperationRecord) -> None:
        logger.info("Updating Docker images...")
        self.services.pull()
        self.services.recreate()
        record.advance(PipelineStage.IMAGES_UPDATED)
        self._check_health(record)

    def update_system(self, record: OperationRecord) -> None:
        logger.info("Updating system packages...")
        env = dict(os.environ, DEBIAN_FRONTEND="noninteractive")
        for cmd, description in APT_STEPS:
            try:
                run_command(cmd, description, timeout=3600, env=env)
            except (SubprocessError, FileNotFoundError, subprocess.TimeoutExpired) as e:
                raise HubVaultError(f"{description} failed: {e}") from e
        record.advance(PipelineStage.SYSTEM_UPDATED)
        logger.info("System packages updated")

    def update_blocklists(self, record: OperationRecord) -> None:
        logger.info("Updating AdGuard Home blocklists...")
        if self.config.adguard_url and self._refresh_filters_via_api():
            record.details["blocklists"] = "api"
        else:
            self.services.restart(self.config.adguard_service)
            record.details["blocklists"] = "restart"
            logger.info("AdGuard Home restarted to update blocklists")
        record.advance(PipelineStage.BLOCKLISTS_UPDATED)

    def _refresh_filters_via_api(self) -> bool:
        url = self.config.adguard_url.rstrip("/") + "/control/filtering/refresh"
        try:
            response = httpx.post(url, json={"whitelist": False}, timeout=HEALTH_HTTP_TIMEOUT * 6)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Could not refresh AdGuard filters via API: {e}")
            return False
        logger.info("AdGuard filters refresh triggered")
        return True

    def cleanup(self, record: OperationRecord, confirm: ConfirmCallback) -> Dict[str, int]:
        logger.info("Cleaning up Docker resources...")
        volumes = confirm("Remove unused Docker volumes?")
        counts = self.services.prune_resources(volumes=volumes)
        record.details["cleanup"] = counts
        record.advance(PipelineStage.CLEANED_UP)
        return counts

    def _check_health(self, record: OperationRecord) -> None:
        statuses = self.services.health_check()
        failed = sorted(n for n, s in statuses.items() if s != HealthStatus.HEALTHY)
        if not failed:
            logger.info("All services are healthy")
            return
        record.warn(f"Services not running properly: {', '.join(failed)}")
        for service in failed:
            try:
                logger.warning(f"Logs for {service}:\n{self.services.logs(service, tail=20)}")
            except ServiceError as e:
                logger.debug(f"Could not read logs for {service}: {e}")

    def summary(self) -> Dict[str, object]:
        """Service states, tool versions and host resources."""
        try:
            states = [
                {"name": s.name or s.service, "image": s.image, "status": s.status or s.state}
                for s in self.services.service_states()
            ]
        except ServiceError as e:
            logger.warning(f"Could not read service state: {e}")
            states = []
        summary = {"services": states, **self.services.tool_versions()}
        summary.update(SystemUtils.resource_summary("/"))
        return summary
