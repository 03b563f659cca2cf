"""
Integration tests for the backup -> change -> restore lifecycle.

All pipelines share one FakeRepository and one RecordingServices instance,
so the tests exercise the managers together on a real directory tree.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock, patch

import pytest

from hubvault.cores.backup_manager import BackupManager
from hubvault.cores.restore_manager import RestoreManager
from hubvault.cores.update_manager import UpdateManager
from hubvault.helpers.errors import SnapshotNotFound
from hubvault.types import ImageUpdate, PipelineStage


@pytest.fixture
def pipelines(hub_config, fake_repo, services, notifier, hooks):
    backup = BackupManager(hub_config, repository=fake_repo, services=services,
                           notifier=notifier, hooks=hooks)
    restore = RestoreManager(hub_config, repository=fake_repo, services=services,
                             notifier=notifier, hooks=hooks, sleep=Mock())
    update = UpdateManager(hub_config, services=services, backup_manager=backup,
                           restore_manager=restore, notifier=notifier)
    return backup, restore, update


def state(root):
    return (root / "data" / "state.db").read_text()


def tree_bytes(root):
    """Relative path -> file content for every file below root."""
    return {
        str(path.relative_to(root)): path.read_bytes()
        for path in sorted(root.rglob("*"))
        if path.is_file()
    }


@pytest.mark.integration
class TestBackupRestoreCycle:
    """End-to-end lifecycle on a temporary installation."""

    def test_backup_then_restore_latest(self, pipelines, install_root, services, notifier):
        backup, restore, _ = pipelines

        created = backup.run()
        (install_root / "data" / "state.db").write_text("corrupted")
        restored = restore.run("latest")

        assert restored.snapshot_id == created.snapshot_id
        assert state(install_root) == "version-1"
        assert (install_root / "backup-metadata" / "env.backup").is_file()
        assert services.count("stop_all") == services.count("start_all") - 1
        assert notifier.send_success.call_count == 2
        notifier.send_failure.assert_not_called()

    def test_point_in_time_restore(self, pipelines, install_root, fake_repo):
        backup, restore, _ = pipelines
        fake_repo.set_next_time(datetime(2024, 3, 1, 3, tzinfo=timezone.utc))
        fake_repo._step = timedelta(days=1)

        backup.run()
        (install_root / "data" / "state.db").write_text("version-2")
        backup.run()
        (install_root / "data" / "state.db").write_text("version-3")

        restore.run("2024-03-01")
        assert state(install_root) == "version-1"

        restore.run("2024-03-02")
        assert state(install_root) == "version-2"

    def test_missing_date_keeps_installation(self, pipelines, install_root, services):
        backup, restore, _ = pipelines
        backup.run()
        (install_root / "data" / "state.db").write_text("live")
        calls_before = list(services.calls)

        with pytest.raises(SnapshotNotFound):
            restore.run("1999-01-01")

        assert state(install_root) == "live"
        assert services.calls == calls_before

    def test_extract_for_inspection(self, pipelines, install_root, hub_config):
        backup, restore, _ = pipelines
        backup.run()
        (install_root / "data" / "state.db").write_text("live")
        live_before = tree_bytes(install_root)

        record = restore.run("latest", replace=False)

        assert tree_bytes(install_root) == live_before
        assert state(restore.staged_path(hub_config.restore_target)) == "version-1"
        assert record.reached(PipelineStage.EXTRACTED)

    def test_extracts_to_two_targets_are_identical(self, pipelines, install_root, tmp_path):
        backup, restore, _ = pipelines
        created = backup.run()
        (install_root / "data" / "state.db").write_text("version-2")
        restore.run(created.snapshot_id)

        first = restore.run(created.snapshot_id, target=tmp_path / "inspect-a", replace=False)
        second = restore.run(created.snapshot_id, target=tmp_path / "inspect-b", replace=False)

        first_tree = tree_bytes(restore.staged_path(tmp_path / "inspect-a"))
        second_tree = tree_bytes(restore.staged_path(tmp_path / "inspect-b"))
        assert first.snapshot_id == second.snapshot_id == created.snapshot_id
        assert first_tree
        assert first_tree == second_tree
        assert first_tree["data/state.db"] == b"version-1"

    def test_update_then_rollback(self, pipelines, install_root, services, fake_repo):
        backup, restore, update = pipelines
        backup.run()
        services.image_updates = [ImageUpdate("adguard", "adguard/adguardhome", "sha256:a", "sha256:b")]

        with patch("hubvault.cores.update_manager.run_command"), \
             patch("hubvault.cores.update_manager.SystemUtils.resource_summary", return_value={}):
            updated = update.run("all")
        (install_root / "data" / "state.db").write_text("broken-by-update")

        rolled_back = update.run("rollback")

        assert updated.reached(PipelineStage.PRE_UPDATE_BACKUP)
        assert len(fake_repo.snapshots) >= 1
        assert rolled_back.snapshot_id == updated.snapshot_id
        assert state(install_root) == "version-1"
        assert rolled_back.reached(PipelineStage.ROLLED_BACK)
