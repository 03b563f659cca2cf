"""
Unit tests for RestoreManager.

Snapshots are taken from a real directory tree with FakeRepository, so
extraction and the installation swap operate on actual files.
"""

import os
from datetime import datetime, timezone
from unittest.mock import Mock, patch

import pytest

from conftest import FakeRepository
from hubvault.cores.restore_manager import RestoreManager
from hubvault.helpers.errors import (
    ConfigurationError,
    HookFailed,
    RepositoryUnreachable,
    RestoreFailed,
    SnapshotNotFound,
)
from hubvault.types import HealthStatus, PipelineStage


@pytest.fixture
def sleep():
    return Mock()


@pytest.fixture
def manager(hub_config, fake_repo, services, notifier, hooks, sleep):
    return RestoreManager(hub_config, repository=fake_repo, services=services,
                          notifier=notifier, hooks=hooks, sleep=sleep)


@pytest.fixture
def snapshot(fake_repo, hub_config, install_root):
    """A backup of the installation while data/state.db says version-1."""
    return fake_repo.create_snapshot([install_root], exclude_patterns=hub_config.exclude_patterns,
                                     tags=["automated-backup"])


def state(root):
    return (root / "data" / "state.db").read_text()


# =============================================================================
# Full Restore Tests
# =============================================================================


@pytest.mark.unit
class TestRestoreRun:
    """Tests for a full restore with swap."""

    def test_restores_snapshot_content(self, manager, snapshot, install_root):
        (install_root / "data" / "state.db").write_text("version-2")
        (install_root / "new-file.txt").write_text("created after backup")

        record = manager.run("latest")

        assert record.success
        assert record.snapshot_id == snapshot.id
        assert state(install_root) == "version-1"
        assert not (install_root / "new-file.txt").exists()

    def test_previous_installation_kept(self, manager, snapshot, install_root):
        (install_root / "data" / "state.db").write_text("version-2")

        record = manager.run("latest")

        copy = install_root.parent / os.path.basename(record.details["previous_installation"])
        assert copy.name.startswith("tailscale-hub-backup-")
        assert state(copy) == "version-2"
        assert (copy / "logs" / "app.log").read_text() == "noise"

    def test_stage_order(self, manager, snapshot):
        record = manager.run("latest")

        assert record.stages == [
            PipelineStage.SELECTOR_RESOLVED,
            PipelineStage.EXTRACTED,
            PipelineStage.SERVICES_STOPPED,
            PipelineStage.CURRENT_BACKED_UP,
            PipelineStage.SWAPPED,
            PipelineStage.SERVICES_STARTED,
            PipelineStage.VERIFIED,
        ]

    def test_service_calls(self, manager, snapshot, services):
        manager.run("latest")

        assert services.calls == ["down", "start_all", "health_check"]

    def test_no_leftover_swap_directories(self, manager, snapshot, install_root):
        manager.run("latest")

        leftovers = [p.name for p in install_root.parent.iterdir() if p.name.startswith(".")]
        assert leftovers == []

    def test_exactly_one_success_notification(self, manager, snapshot, notifier):
        record = manager.run("latest")

        notifier.send_success.assert_called_once_with(record)
        notifier.send_failure.assert_not_called()

    def test_no_start(self, manager, snapshot, services):
        record = manager.run("latest", start=False)

        assert services.calls == ["down"]
        assert not record.reached(PipelineStage.SERVICES_STARTED)
        assert record.reached(PipelineStage.SWAPPED)

    def test_grace_period_before_verify(self, hub_config, fake_repo, services, notifier, hooks,
                                        sleep, snapshot):
        cfg = hub_config.model_copy(update={"restore_grace_seconds": 5})
        manager = RestoreManager(cfg, repository=fake_repo, services=services,
                                 notifier=notifier, hooks=hooks, sleep=sleep)

        manager.run("latest")

        sleep.assert_called_once_with(5)

    def test_ownership_fixed_when_configured(self, hub_config, fake_repo, services, notifier,
                                             hooks, sleep, snapshot, install_root):
        cfg = hub_config.model_copy(update={"owner": "hub:hub"})
        manager = RestoreManager(cfg, repository=fake_repo, services=services,
                                 notifier=notifier, hooks=hooks, sleep=sleep)

        with patch("hubvault.cores.restore_manager.run_command") as run:
            manager.run("latest")

        assert run.call_args.args[0] == ["chown", "-R", "hub:hub", str(install_root)]


# =============================================================================
# Selector Tests
# =============================================================================


@pytest.mark.unit
class TestRestoreSelection:
    """Tests for choosing the snapshot to restore."""

    def test_by_short_id(self, manager, fake_repo, snapshot, install_root, hub_config):
        (install_root / "data" / "state.db").write_text("version-2")
        fake_repo.create_snapshot([install_root], exclude_patterns=hub_config.exclude_patterns)

        manager.run(snapshot.short_id)

        assert state(install_root) == "version-1"

    def test_by_date_picks_newest_of_day(self, manager, fake_repo, install_root, hub_config):
        for version in ("early", "late"):
            (install_root / "data" / "state.db").write_text(version)
            fake_repo.create_snapshot([install_root], exclude_patterns=hub_config.exclude_patterns)
        fake_repo.set_next_time(datetime(2024, 3, 2, 3, 0, tzinfo=timezone.utc))
        (install_root / "data" / "state.db").write_text("next-day")
        fake_repo.create_snapshot([install_root], exclude_patterns=hub_config.exclude_patterns)

        manager.run("2024-03-01")

        assert state(install_root) == "late"

    def test_by_year_in_date_mode(self, manager, snapshot, install_root):
        (install_root / "data" / "state.db").write_text("version-2")

        record = manager.run("2024", by_date=True)

        assert record.snapshot_id == snapshot.id
        assert state(install_root) == "version-1"

    def test_date_without_snapshot_leaves_install_untouched(self, manager, snapshot, services,
                                                            install_root, notifier):
        (install_root / "data" / "state.db").write_text("version-2")

        with pytest.raises(SnapshotNotFound):
            manager.run("2023-12-24")

        assert state(install_root) == "version-2"
        assert services.calls == []
        notifier.send_failure.assert_called_once()

    def test_unreachable_repository_is_not_initialized(self, hub_config, services, notifier,
                                                       hooks, sleep):
        repo = FakeRepository(hub_config)
        manager = RestoreManager(hub_config, repository=repo, services=services,
                                 notifier=notifier, hooks=hooks, sleep=sleep)

        with pytest.raises(RepositoryUnreachable):
            manager.run("latest")

        assert "init" not in repo.calls

    def test_list_snapshots(self, manager, snapshot):
        assert [s.id for s in manager.list_snapshots()] == [snapshot.id]


# =============================================================================
# Extract Tests
# =============================================================================


@pytest.mark.unit
class TestExtract:
    """Tests for extract-only mode."""

    def test_extract_leaves_install_untouched(self, manager, snapshot, install_root, services,
                                              hub_config):
        (install_root / "data" / "state.db").write_text("version-2")

        record = manager.run("latest", replace=False)

        staged = manager.staged_path(hub_config.restore_target)
        assert record.operation == "extract"
        assert record.stages == [PipelineStage.SELECTOR_RESOLVED, PipelineStage.EXTRACTED]
        assert state(install_root) == "version-2"
        assert state(staged) == "version-1"
        assert services.calls == []

    def test_custom_target(self, manager, snapshot, tmp_path):
        target = tmp_path / "inspect"

        record = manager.run("latest", target=target, replace=False)

        assert record.details["staged_path"] == str(manager.staged_path(target))

    def test_stale_staging_removed(self, manager, snapshot, hub_config):
        staged = manager.staged_path(hub_config.restore_target)
        staged.mkdir(parents=True)
        (staged / "stale.txt").write_text("left over")

        manager.run("latest", replace=False)

        assert not (staged / "stale.txt").exists()

    def test_target_inside_install_rejected(self, manager, snapshot, install_root):
        with pytest.raises(ConfigurationError):
            manager.run("latest", target=install_root / "restore", replace=False)

    def test_target_containing_install_rejected(self, manager, snapshot, install_root):
        with pytest.raises(ConfigurationError):
            manager.run("latest", target=install_root.parent, replace=False)

    def test_relative_target_rejected(self, manager, snapshot):
        with pytest.raises(ConfigurationError):
            manager.run("latest", target="restore", replace=False)


# =============================================================================
# Failure Tests
# =============================================================================


@pytest.mark.unit
class TestRestoreFailures:
    """Failures never leave services stopped or the installation half-swapped."""

    def test_engine_failure_before_stop(self, manager, fake_repo, snapshot, services,
                                        install_root):
        fake_repo.fail_restore = True

        with pytest.raises(RestoreFailed):
            manager.run("latest")

        assert services.calls == []
        assert state(install_root) == "version-1"

    def test_snapshot_without_installation(self, manager, fake_repo, snapshot, services):
        fake_repo.contents[snapshot.id] = {}

        with pytest.raises(RestoreFailed):
            manager.run("latest")

        assert services.calls == []

    def test_not_enough_space_for_previous_copy(self, manager, snapshot, services,
                                                install_root, notifier):
        with patch("hubvault.cores.restore_manager.SystemUtils.get_disk_free", return_value=0):
            with pytest.raises(RestoreFailed, match="free space"):
                manager.run("latest")

        assert services.calls == []
        assert state(install_root) == "version-1"
        notifier.send_failure.assert_called_once()

    def test_pre_hook_failure(self, manager, snapshot, hooks, services):
        hooks.execute_pre_restore.return_value = False

        with pytest.raises(HookFailed):
            manager.run("latest")

        assert services.calls == []

    def test_swap_failure_restarts_services(self, manager, snapshot, services, install_root,
                                            notifier):
        (install_root / "data" / "state.db").write_text("version-2")

        with patch("hubvault.cores.restore_manager.os.rename", side_effect=OSError("busy")):
            with pytest.raises(RestoreFailed):
                manager.run("latest")

        assert services.calls == ["down", "start_all"]
        assert state(install_root) == "version-2"
        notifier.send_failure.assert_called_once()

    def test_failed_final_rename_puts_old_tree_back(self, manager, snapshot, services,
                                                    install_root):
        (install_root / "data" / "state.db").write_text("version-2")
        real_rename = os.rename

        def flaky_rename(src, dst):
            if ".incoming-" in str(src):
                raise OSError("disk full")
            return real_rename(src, dst)

        with patch("hubvault.cores.restore_manager.os.rename", side_effect=flaky_rename):
            with pytest.raises(RestoreFailed):
                manager.run("latest")

        assert state(install_root) == "version-2"
        assert services.calls == ["down", "start_all"]

    def test_busy_installation_keeps_staged_tree(self, manager, snapshot, services,
                                                 install_root, hub_config):
        (install_root / "data" / "state.db").write_text("version-2")
        real_rename = os.rename

        def busy_rename(src, dst):
            if str(src) == str(install_root):
                raise OSError(16, "Device or resource busy")
            return real_rename(src, dst)

        with patch("hubvault.cores.restore_manager.os.rename", side_effect=busy_rename):
            with pytest.raises(RestoreFailed):
                manager.run("latest")

        staged = manager.staged_path(hub_config.restore_target)
        assert state(install_root) == "version-2"
        assert state(staged) == "version-1"
        assert not [p for p in install_root.parent.iterdir() if ".incoming-" in p.name]
        assert services.calls == ["down", "start_all"]


# =============================================================================
# Verification Tests
# =============================================================================


@pytest.mark.unit
class TestRestoreVerification:
    """Post-restore problems are warnings, never failures."""

    def test_missing_required_file(self, manager, fake_repo, install_root, hub_config):
        (install_root / "configs" / "unbound" / "unbound.conf").unlink()
        fake_repo.create_snapshot([install_root], exclude_patterns=hub_config.exclude_patterns)

        record = manager.run("latest")

        assert record.success
        assert not record.reached(PipelineStage.VERIFIED)
        assert any("unbound.conf" in w for w in record.warnings)

    def test_unhealthy_service(self, manager, snapshot, services):
        services.health["adguard"] = HealthStatus.UNHEALTHY

        record = manager.run("latest")

        assert record.success
        assert any("adguard" in w for w in record.warnings)

    def test_post_hook_warning(self, manager, snapshot, hooks):
        hooks.execute_post_restore.return_value = False

        record = manager.run("latest")

        assert record.success
        assert "Post-restore hook failed" in record.warnings
