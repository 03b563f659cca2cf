"""
Shared pytest fixtures for HubVault tests.

Provides an in-memory snapshot store that restores real directory trees, a
recording service controller and a ready-made installation tree.
"""

import fnmatch
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import MagicMock, Mock

import pytest
from typer.testing import CliRunner

from hubvault.cores.notification_manager import NotificationManager
from hubvault.cores.repository_manager import ResticRepository
from hubvault.helpers.config import HubConfig
from hubvault.helpers.errors import RestoreFailed, ServiceError, SnapshotFailed
from hubvault.helpers.logging import ROOT_LOGGER_NAME, log_manager
from hubvault.types import HealthStatus, Snapshot


class FakeRepository(ResticRepository):
    """
    ResticRepository with the restic binary replaced by a dict.

    Selector resolution and retention run through the real implementation;
    only engine calls are faked.
    """

    def __init__(self, config, start=None, step=timedelta(hours=1)):
        super().__init__(config)
        self.snapshots = {}
        self.contents = {}
        self.calls = []
        self.initialized = False
        self.fail_create = False
        self.fail_restore = False
        self.verify_result = True
        self._next_time = start or datetime(2024, 3, 1, 3, 0, tzinfo=timezone.utc)
        self._step = step
        self._counter = 0

    # -- engine replacements -------------------------------------------

    def is_initialized(self):
        return self.initialized

    def initialize(self):
        self.calls.append("init")
        self.initialized = True

    def version(self):
        return "restic 0.16.4 (fake)"

    def set_next_time(self, when):
        self._next_time = when

    def create_snapshot(self, paths, exclude_patterns=(), tags=()):
        self.calls.append("backup")
        if self.fail_create:
            raise SnapshotFailed("Backup failed: simulated engine error")
        self._counter += 1
        snap_id = f"{self._counter:08x}" + "ab" * 28
        files = {}
        for root in paths:
            root = Path(root)
            for path in root.rglob("*"):
                if not path.is_file():
                    continue
                if any(fnmatch.fnmatch(str(path), pat) for pat in exclude_patterns):
                    continue
                files[str(path)] = path.read_bytes()
        when = self._next_time
        self._next_time = when + self._step
        snapshot = Snapshot(
            id=snap_id,
            short_id=snap_id[:8],
            time=when,
            tags=tuple(tags),
            paths=tuple(str(p) for p in paths),
            hostname="hub",
        )
        self.snapshots[snap_id] = snapshot
        self.contents[snap_id] = files
        return snapshot

    def list_snapshots(self, tag=None, date_prefix=None):
        snaps = list(self.snapshots.values())
        if tag:
            snaps = [s for s in snaps if tag in s.tags]
        if date_prefix:
            snaps = [s for s in snaps if s.matches_date(date_prefix)]
        return sorted(snaps, key=lambda s: s.time, reverse=True)

    def restore(self, snapshot, target_path):
        self.calls.append("restore")
        if self.fail_restore:
            raise RestoreFailed("Restore failed: simulated engine error")
        target = Path(target_path)
        for abs_path, data in self.contents[snapshot.id].items():
            dest = target / Path(abs_path).relative_to("/")
            dest.parent.mkdir(parents=True, exist_ok=True)
            dest.write_bytes(data)
        return target

    def verify_integrity(self):
        self.calls.append("check")
        return self.verify_result

    def _restic(self, args, description, check=True, timeout=None):
        self.calls.append(args[0])
        if args[0] == "forget":
            for snap_id in args[1:]:
                self.snapshots.pop(snap_id, None)
                self.contents.pop(snap_id, None)
        elif args[0] != "prune":
            raise AssertionError(f"unexpected restic call: {args}")
        return Mock(returncode=0, stdout="", stderr="")


class RecordingServices:
    """Service controller double that records lifecycle calls."""

    def __init__(self, services=("tailscale", "adguard", "unbound")):
        self.calls = []
        self.names = list(services)
        self.fail = set()
        self.health = {name: HealthStatus.HEALTHY for name in self.names}
        self.image_updates = []

    def _record(self, name, *args):
        self.calls.append(name if not args else (name, *args))
        if name in self.fail:
            raise ServiceError(f"{name} failed")

    def stop_all(self):
        self._record("stop_all")

    def start_all(self, pull=False):
        self._record("start_all")

    def down(self):
        self._record("down")

    def pull(self):
        self._record("pull")

    def recreate(self):
        self._record("recreate")

    def restart(self, service_name):
        self._record("restart", service_name)

    def services(self):
        return list(self.names)

    def service_states(self):
        return []

    def health_check(self, timeout=None):
        self._record("health_check")
        return dict(self.health)

    def capture_state(self, path):
        path.write_text('{"services": []}')
        return path

    def tool_versions(self):
        return {"docker": "Docker version 27.0.0", "compose": "Docker Compose version v2.29.0"}

    def check_image_updates(self):
        self._record("check_image_updates")
        return list(self.image_updates)

    def prune_resources(self, volumes=False):
        self._record("prune_resources", volumes)
        return {"images": 0, "networks": 0}

    def logs(self, service_name, tail=50):
        return ""

    def count(self, name):
        return sum(1 for c in self.calls if c == name or (isinstance(c, tuple) and c[0] == name))


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop handlers added by CLI runs so caplog keeps working."""
    yield
    log_manager.reset()
    logging.getLogger(ROOT_LOGGER_NAME).propagate = True
    logging.getLogger(ROOT_LOGGER_NAME).setLevel(logging.NOTSET)


@pytest.fixture
def cli_runner():
    """Typer CLI runner for testing commands."""
    return CliRunner()


@pytest.fixture
def install_root(tmp_path):
    """A minimal hub installation tree."""
    root = tmp_path / "opt" / "tailscale-hub"
    (root / "configs" / "unbound").mkdir(parents=True)
    (root / "configs" / "adguard").mkdir(parents=True)
    (root / "data").mkdir()
    (root / "logs").mkdir()
    (root / "docker-compose.yml").write_text("services:\n  adguard:\n    image: adguard/adguardhome\n")
    (root / "configs" / "unbound" / "unbound.conf").write_text("server:\n")
    (root / "configs" / "adguard" / "AdGuardHome.yaml").write_text("http:\n")
    (root / "data" / "state.db").write_text("version-1")
    (root / "logs" / "app.log").write_text("noise")
    (root / ".env").write_text("TS_AUTHKEY=tskey-123\n")
    return root


@pytest.fixture
def hub_config(tmp_path, install_root):
    """Configuration pointing at the temporary installation."""
    return HubConfig(
        repository=str(tmp_path / "repo"),
        password="test-password-123",
        install_root=install_root,
        restore_target=tmp_path / "restore",
        restore_grace_seconds=0,
        health_interval=0,
        health_attempts=2,
        lock_file=tmp_path / "hubvault.lock",
    )


@pytest.fixture
def fake_repo(hub_config):
    repo = FakeRepository(hub_config)
    repo.initialized = True
    return repo


@pytest.fixture
def services():
    return RecordingServices()


@pytest.fixture
def notifier():
    return MagicMock(spec=NotificationManager)


@pytest.fixture
def hooks():
    manager = Mock()
    manager.execute_pre_backup.return_value = True
    manager.execute_post_backup.return_value = True
    manager.execute_pre_restore.return_value = True
    manager.execute_post_restore.return_value = True
    return manager
