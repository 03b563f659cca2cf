################################################################################
# HUBVAULT
#
# @file:        repository_manager.py
# @module:      hubvault.cores.repository_manager
# @description: Wraps restic CLI interactions for snapshots, restore, retention and checks.
# @author:      HubVault Contributors
# @repository:  https://github.com/hubvault/hubvault
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# Copyright (c) 2025 HubVault Contributors
# MIT-Lizenz: siehe LICENSE oder https://opensource.org/licenses/MIT
# ==============================================================================
# Hinweise:
# - Prepares restic environment variables via _get_env
# - Retention is computed locally so protected snapshots are never forgotten
# - restore() only ever writes below the given staging target
################################################################################

"""
Restic repository management module.

This module handles all interactions with the restic repository, including
initialization, snapshot creation, listing, selector resolution, restore,
retention pruning and integrity checks.
"""

from __future__ import annotations

import json
import os
import shutil
import subprocess
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from ..helpers.config import HubConfig
from ..helpers.constants import BACKUP_OPERATION_TIMEOUT, LATEST_SELECTOR
from ..helpers.errors import (
    ConfigurationError,
    RepositoryUnreachable,
    RestoreFailed,
    SnapshotFailed,
    SnapshotNotFound,
)
from ..helpers.logging import get_logger
from ..helpers.ui_utils import SubprocessError, run_command
from ..types import RetentionPolicy, Snapshot

logger = get_logger(__name__)


class ResticRepository:
    """
    Manages restic repository operations.

    Provides a Python interface to restic commands for repository management,
    snapshot creation, listing, verification, and restoration.
    """

    def __init__(self, config: HubConfig):
        self.config = config
        self.repository: Optional[str] = config.repository

    # ---------------------------------------------------------------------
    # Repository lifecycle
    # ---------------------------------------------------------------------

    def is_initialized(self) -> bool:
        """Return True if the repository exists and the password opens it."""
        if not shutil.which("restic"):
            logger.error("restic binary not found")
            return False
        try:
            result = self._restic(["cat", "config"], "Checking repository", check=False, timeout=120)
            return result.returncode == 0
        except subprocess.TimeoutExpired:
            logger.error("Timed out checking repository status")
            return False

    def initialize(self) -> None:
        """Create a new repository at RESTIC_REPOSITORY."""
        logger.info("Initializing restic repository", extra={"repository": self.repository})
        # Für lokale Repos das Zielverzeichnis anlegen
        if self.repository and "://" not in self.repository and ":" not in self.repository.split("/")[0]:
            Path(self.repository).expanduser().parent.mkdir(parents=True, exist_ok=True)
        self._restic(["init"], "Initializing repository", timeout=300)
        logger.info("Repository initialized successfully")

    def ensure_repository(self) -> None:
        """
        Make sure the repository is reachable, initializing it if absent.

        Raises:
            RepositoryUnreachable: Credentials missing, or the repository
                still cannot be opened after an init attempt
        """
        if not self.config.has_credentials():
            raise RepositoryUnreachable("RESTIC_REPOSITORY and RESTIC_PASSWORD must be set")
        try:
            self._get_env()
        except ConfigurationError as e:
            raise RepositoryUnreachable(str(e)) from e

        if self.is_initialized():
            logger.debug("Repository reachable")
            return

        logger.info("Repository not reachable or missing, attempting init")
        try:
            self.initialize()
        except (SubprocessError, FileNotFoundError, subprocess.TimeoutExpired) as e:
            logger.warning(f"Repository init failed: {e}")

        if not self.is_initialized():
            raise RepositoryUnreachable(
                "Cannot access restic repository. Check your credentials and network connection."
            )

    def check_access(self) -> None:
        """
        Verify the repository is reachable without ever initializing it.

        Raises:
            RepositoryUnreachable
        """
        if not self.config.has_credentials():
            raise RepositoryUnreachable("RESTIC_REPOSITORY and RESTIC_PASSWORD must be set")
        try:
            self._get_env()
        except ConfigurationError as e:
            raise RepositoryUnreachable(str(e)) from e
        if not self.is_initialized():
            raise RepositoryUnreachable(
                "Cannot access restic repository. Check your credentials and network connection."
            )

    def unlock(self) -> None:
        """Remove stale locks left behind by killed restic processes."""
        try:
            self._restic(["unlock"], "Removing stale locks", timeout=120)
        except (SubprocessError, FileNotFoundError, subprocess.TimeoutExpired) as e:
            raise RepositoryUnreachable(f"Unlock failed: {e}") from e
        logger.info("Stale repository locks removed")

    def version(self) -> str:
        result = self._restic(["version"], "Reading restic version", check=False, timeout=30)
        return (result.stdout or result.stderr).strip()

    # ---------------------------------------------------------------------
    # Snapshots
    # ---------------------------------------------------------------------

    def create_snapshot(
        self,
        paths: Sequence[Union[str, Path]],
        exclude_patterns: Iterable[str] = (),
        tags: Iterable[str] = (),
    ) -> Snapshot:
        """
        Create a snapshot of the given paths.

        Args:
            paths: Source paths
            exclude_patterns: restic --exclude patterns
            tags: Tags to attach

        Returns:
            The created snapshot

        Raises:
            SnapshotFailed: Engine exited non-zero or reported no snapshot id
        """
        if not paths:
            raise SnapshotFailed("No source paths given")

        tags = list(tags)
        cmd: List[str] = ["backup", *[str(p) for p in paths], "--json"]
        for pattern in exclude_patterns:
            cmd.append(f"--exclude={pattern}")
        for tag in tags:
            cmd.append(f"--tag={tag}")

        logger.info("Creating snapshot", extra={"paths": ",".join(str(p) for p in paths)})
        try:
            result = self._restic(cmd, "Creating snapshot", timeout=BACKUP_OPERATION_TIMEOUT)
        except SubprocessError as e:
            logger.error(f"Failed to create snapshot: {e.stderr.strip()}")
            # Exit 3 (unreadable source files) still saves a snapshot
            partial_id = self._find_summary(e.stdout).get("snapshot_id")
            if partial_id:
                self._discard_partial(partial_id)
            raise SnapshotFailed(f"Backup failed: {e.stderr.strip() or e}") from e
        except (FileNotFoundError, subprocess.TimeoutExpired) as e:
            raise SnapshotFailed(f"Backup failed: {e}") from e

        summary = self._find_summary(result.stdout)
        snap_id = summary.get("snapshot_id") or ""
        if not snap_id:
            raise SnapshotFailed(
                f"Could not determine snapshot ID from: {result.stdout[-200:]}"
            )

        snapshot = self._lookup(snap_id) or Snapshot.from_restic(
            {
                "id": snap_id,
                "time": summary.get("backup_end") or summary.get("backup_start") or "",
                "tags": tags,
                "paths": [str(p) for p in paths],
            }
        )
        logger.info(f"Created snapshot: {snapshot.short_id}", extra={"snapshot_id": snapshot.id})
        return snapshot

    def list_snapshots(
        self, tag: Optional[str] = None, date_prefix: Optional[str] = None
    ) -> List[Snapshot]:
        """
        List snapshots, newest first.

        Raises:
            RepositoryUnreachable: Listing failed
        """
        cmd = ["snapshots", "--json"]
        if tag:
            cmd.append(f"--tag={tag}")
        try:
            result = self._restic(cmd, "Listing snapshots", timeout=300)
        except (SubprocessError, FileNotFoundError, subprocess.TimeoutExpired) as e:
            logger.error(f"Failed to list snapshots: {e}")
            raise RepositoryUnreachable(f"Cannot list snapshots: {e}") from e

        try:
            raw = json.loads(result.stdout or "[]") or []
        except json.JSONDecodeError as e:
            raise RepositoryUnreachable(f"Unexpected restic output: {e}") from e

        snapshots = [Snapshot.from_restic(item) for item in raw if item.get("id")]
        if date_prefix:
            snapshots = [s for s in snapshots if s.matches_date(date_prefix)]
        snapshots.sort(key=lambda s: s.time, reverse=True)
        return snapshots

    def resolve_selector(self, selector: str, by_date: bool = False) -> Snapshot:
        """
        Resolve 'latest', a snapshot id (full, short or prefix) or an ISO date prefix.

        With by_date the selector is only matched against snapshot dates, so
        "2024" never resolves to an id starting with those digits.

        Raises:
            SnapshotNotFound: Nothing matches
        """
        selector = (selector or "").strip()
        if not selector:
            raise SnapshotNotFound(selector, "Empty snapshot selector")

        snapshots = self.list_snapshots()
        if selector == LATEST_SELECTOR:
            if not snapshots:
                raise SnapshotNotFound(selector, "No snapshots found")
            return snapshots[0]

        by_id = [] if by_date else [s for s in snapshots if s.matches_id(selector)]
        if len(by_id) == 1:
            return by_id[0]
        if len(by_id) > 1:
            exact = [s for s in by_id if s.id == selector or s.short_id == selector]
            if len(exact) == 1:
                return exact[0]
            raise SnapshotNotFound(selector, f"Snapshot id prefix is ambiguous: {selector}")

        dated = [s for s in snapshots if s.matches_date(selector)]
        if dated:
            # newest-first ordering makes the first match deterministic
            return dated[0]

        if by_date or _looks_like_date(selector):
            raise SnapshotNotFound(selector, f"No snapshots found for date: {selector}")
        raise SnapshotNotFound(selector)

    def restore(self, snapshot: Snapshot, target_path: Union[str, Path]) -> Path:
        """
        Extract a snapshot below target_path.

        Restic recreates absolute source paths below the target, e.g.
        /opt/tailscale-hub ends up at <target>/opt/tailscale-hub.

        Raises:
            RestoreFailed: Engine failure; target content is then unusable
        """
        target = Path(target_path)
        logger.info(f"Restoring snapshot {snapshot.short_id} to {target}",
                    extra={"snapshot_id": snapshot.id})
        try:
            target.mkdir(parents=True, exist_ok=True)
            self._restic(
                ["restore", snapshot.id, "--target", str(target)],
                "Restoring snapshot",
                timeout=BACKUP_OPERATION_TIMEOUT,
            )
        except SubprocessError as e:
            logger.error(f"Failed to restore snapshot: {e.stderr.strip()}")
            raise RestoreFailed(f"Restore failed: {e.stderr.strip() or e}") from e
        except (OSError, subprocess.TimeoutExpired) as e:
            raise RestoreFailed(f"Restore failed: {e}") from e
        logger.info(f"Snapshot restored to {target}")
        return target

    # ---------------------------------------------------------------------
    # Retention & maintenance
    # ---------------------------------------------------------------------

    def prune(self, policy: RetentionPolicy, protect: Sequence[str] = ()) -> List[str]:
        """
        Forget snapshots outside the retention policy and prune unused data.

        Snapshot ids in `protect` are never forgotten. When nothing falls
        outside the policy no engine call is made.

        Returns:
            Ids of forgotten snapshots

        Raises:
            SnapshotFailed: forget/prune failed
        """
        snapshots = self.list_snapshots()
        _, remove = policy.apply(snapshots, protect=protect)
        if not remove:
            logger.info("Retention: nothing to forget", extra={"snapshots": len(snapshots)})
            return []

        ids = [s.id for s in remove]
        logger.info(f"Retention: forgetting {len(ids)} of {len(snapshots)} snapshots")
        try:
            self._restic(["forget", *ids], "Forgetting snapshots", timeout=BACKUP_OPERATION_TIMEOUT)
            self._restic(["prune"], "Pruning repository", timeout=BACKUP_OPERATION_TIMEOUT)
        except (SubprocessError, FileNotFoundError, subprocess.TimeoutExpired) as e:
            logger.error(f"Retention run failed: {e}")
            raise SnapshotFailed(f"Cleanup failed: {e}") from e
        logger.info("Cleanup completed")
        return ids

    def verify_integrity(self) -> bool:
        """Structural repository check (`restic check`)."""
        logger.info("Verifying backup integrity...")
        try:
            result = self._restic(["check"], "Checking repository", check=False,
                                  timeout=BACKUP_OPERATION_TIMEOUT)
        except (FileNotFoundError, subprocess.TimeoutExpired) as e:
            logger.warning(f"Integrity check could not run: {e}")
            return False
        if result.returncode != 0:
            logger.warning(f"Integrity check failed: {result.stderr.strip()}")
            return False
        logger.info("Backup verification completed")
        return True

    # ---------------------------------------------------------------------
    # Internals
    # ---------------------------------------------------------------------

    def _get_env(self) -> Dict[str, str]:
        """Build environment for restic CLI."""
        env = os.environ.copy()
        env["RESTIC_REPOSITORY"] = self.repository or ""
        env["RESTIC_PASSWORD"] = self.config.get_password()
        env.pop("RESTIC_PASSWORD_FILE", None)
        if self.config.cache_dir:
            env["RESTIC_CACHE_DIR"] = str(self.config.cache_dir.expanduser())
        return env

    def _restic(self, args: List[str], description: str, check: bool = True,
                timeout: Optional[float] = None) -> subprocess.CompletedProcess:
        return run_command(
            ["restic", *args], description, timeout=timeout, check=check, env=self._get_env()
        )

    def _discard_partial(self, snap_id: str) -> None:
        """
        Forget a snapshot the engine saved before reporting failure.

        Raises:
            SnapshotFailed: The snapshot could not be forgotten
        """
        logger.warning(f"Forgetting incomplete snapshot {snap_id[:8]}", extra={"snapshot_id": snap_id})
        try:
            self._restic(["forget", snap_id], "Forgetting incomplete snapshot", timeout=300)
        except (SubprocessError, FileNotFoundError, subprocess.TimeoutExpired) as e:
            logger.error(f"Could not forget incomplete snapshot {snap_id}: {e}")
            raise SnapshotFailed(
                f"Backup failed and incomplete snapshot {snap_id[:8]} could not be forgotten: {e}"
            ) from e

    def _lookup(self, snap_id: str) -> Optional[Snapshot]:
        try:
            for snap in self.list_snapshots():
                if snap.id == snap_id:
                    return snap
        except RepositoryUnreachable as e:
            logger.debug(f"Could not look up snapshot {snap_id}: {e}")
        return None

    @staticmethod
    def _find_summary(stdout: str) -> Dict[str, Any]:
        """restic --json emits one JSON object per line; the summary comes last."""
        for line in reversed((stdout or "").strip().splitlines()):
            line = line.strip()
            if not line:
                continue
            try:
                data = json.loads(line)
            except json.JSONDecodeError:
                continue
            if isinstance(data, dict) and data.get("message_type") == "summary":
                return data
        return {}


def _looks_like_date(value: str) -> bool:
    head = value[:10]
    return len(head) >= 4 and head[:4].isdigit() and all(c.isdigit() or c == "-" for c in head)
