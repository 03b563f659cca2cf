"""Unit tests for system_utils module."""

from unittest.mock import MagicMock, patch

import pytest

from hubvault.helpers.system_utils import SystemUtils


@pytest.mark.unit
class TestFormatBytes:
    """Tests for SystemUtils.format_bytes."""

    def test_units(self):
        assert SystemUtils.format_bytes(512) == "512.0B"
        assert SystemUtils.format_bytes(2048) == "2.0KB"
        assert SystemUtils.format_bytes(5 * 1024 ** 3) == "5.0GB"


@pytest.mark.unit
class TestDiskAndTree:
    """Tests for disk probes and tree size."""

    def test_disk_free_walks_up_to_existing_parent(self, tmp_path):
        with patch("hubvault.helpers.system_utils.psutil.disk_usage") as usage:
            usage.return_value = MagicMock(free=1234)

            free = SystemUtils.get_disk_free(tmp_path / "does" / "not" / "exist")

        assert free == 1234
        usage.assert_called_once_with(str(tmp_path))

    def test_tree_size(self, tmp_path):
        (tmp_path / "a").mkdir()
        (tmp_path / "a" / "one").write_bytes(b"x" * 10)
        (tmp_path / "two").write_bytes(b"x" * 5)
        (tmp_path / "link").symlink_to(tmp_path / "two")

        assert SystemUtils.get_tree_size(tmp_path) == 15


@pytest.mark.unit
class TestResourceSummary:
    """Tests for SystemUtils.resource_summary."""

    def test_summary(self):
        with patch("hubvault.helpers.system_utils.psutil.disk_usage",
                   return_value=MagicMock(free=3 * 1024 ** 3)), \
             patch("hubvault.helpers.system_utils.psutil.virtual_memory",
                   return_value=MagicMock(used=1024 ** 3, total=4 * 1024 ** 3, percent=25.0)):
            summary = SystemUtils.resource_summary("/")

        assert summary == {"disk_free": "3.0GB", "memory": "1.0GB/4.0GB (25.0%)"}
