"""
Unit tests for HooksManager.

Runs small shell scripts from tmp_path as real hooks.
"""

import subprocess
from unittest.mock import patch

import pytest

from hubvault.cores.hooks_manager import HooksManager
from hubvault.helpers.config import HubConfig
from hubvault.helpers.constants import HOOK_POST_BACKUP, HOOK_PRE_BACKUP


def make_script(path, body, executable=True):
    path.write_text("#!/bin/sh\n" + body + "\n")
    path.chmod(0o755 if executable else 0o644)
    return path


def make_config(tmp_path, **hooks):
    return HubConfig(
        install_root=tmp_path / "hub",
        restore_target=tmp_path / "restore",
        **hooks,
    )


# =============================================================================
# Hook Execution Tests
# =============================================================================


@pytest.mark.unit
class TestExecuteHook:
    """Tests for execute_hook."""

    def test_no_hook_configured(self, tmp_path):
        manager = HooksManager(make_config(tmp_path))

        assert manager.execute_pre_backup() is True
        assert manager.get_executed_hooks() == []

    def test_successful_hook(self, tmp_path):
        script = make_script(tmp_path / "pre.sh", "exit 0")
        manager = HooksManager(make_config(tmp_path, pre_backup_hook=script))

        assert manager.execute_pre_backup() is True
        assert manager.get_executed_hooks() == [f"{HOOK_PRE_BACKUP}:pre.sh"]

    def test_hook_sees_environment(self, tmp_path):
        marker = tmp_path / "env.txt"
        script = make_script(
            tmp_path / "post.sh", f'echo "$HUBVAULT_HOOK_TYPE $HUBVAULT_HUB_DIR" > {marker}'
        )
        manager = HooksManager(make_config(tmp_path, post_backup_hook=script))

        assert manager.execute_post_backup() is True
        assert marker.read_text().strip() == f"{HOOK_POST_BACKUP} {tmp_path / 'hub'}"

    def test_failing_hook(self, tmp_path):
        script = make_script(tmp_path / "pre.sh", "echo nope >&2; exit 3")
        manager = HooksManager(make_config(tmp_path, pre_restore_hook=script))

        assert manager.execute_pre_restore() is False
        assert manager.get_executed_hooks() == []

    def test_missing_script(self, tmp_path):
        manager = HooksManager(make_config(tmp_path, post_restore_hook=tmp_path / "missing.sh"))

        assert manager.execute_post_restore() is False

    def test_not_executable(self, tmp_path):
        script = make_script(tmp_path / "pre.sh", "exit 0", executable=False)
        manager = HooksManager(make_config(tmp_path, pre_backup_hook=script))

        with patch("hubvault.cores.hooks_manager.os.access", return_value=False):
            assert manager.execute_pre_backup() is False

    def test_timeout(self, tmp_path):
        script = make_script(tmp_path / "pre.sh", "exit 0")
        manager = HooksManager(make_config(tmp_path, pre_backup_hook=script))

        with patch("hubvault.cores.hooks_manager.subprocess.run",
                   side_effect=subprocess.TimeoutExpired([str(script)], 5)):
            assert manager.execute_hook(HOOK_PRE_BACKUP, timeout=5) is False

    def test_default_timeout_from_config(self, tmp_path):
        script = make_script(tmp_path / "pre.sh", "exit 0")
        manager = HooksManager(make_config(tmp_path, pre_backup_hook=script, hook_timeout=42))

        with patch("hubvault.cores.hooks_manager.subprocess.run") as run:
            run.return_value = subprocess.CompletedProcess([str(script)], 0, "", "")
            manager.execute_pre_backup()

        assert run.call_args.kwargs["timeout"] == 42

    def test_executed_hooks_is_a_copy(self, tmp_path):
        manager = HooksManager(make_config(tmp_path))

        manager.get_executed_hooks().append("bogus")

        assert manager.get_executed_hooks() == []
