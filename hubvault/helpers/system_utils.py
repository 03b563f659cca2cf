"""
System utilities for HubVault.

Host resource probes used by the update summary and the restore free-space check.
"""

from pathlib import Path
from typing import Dict, Union

import psutil

from .logging import get_logger

logger = get_logger(__name__)


class SystemUtils:
    """Small wrappers around psutil."""

    @staticmethod
    def format_bytes(num: float) -> str:
        for unit in ("B", "KB", "MB", "GB", "TB"):
            if abs(num) < 1024.0:
                return f"{num:.1f}{unit}"
            num /= 1024.0
        return f"{num:.1f}PB"

    @staticmethod
    def get_disk_free(path: Union[str, Path] = "/") -> int:
        """Free bytes on the filesystem holding `path` (nearest existing parent)."""
        probe = Path(path)
        while not probe.exists() and probe != probe.parent:
            probe = probe.parent
        return psutil.disk_usage(str(probe)).free

    @staticmethod
    def get_tree_size(path: Union[str, Path]) -> int:
        """Total size in bytes of regular files below `path`."""
        total = 0
        for p in Path(path).rglob("*"):
            try:
                if p.is_file() and not p.is_symlink():
                    total += p.stat().st_size
            except OSError:
                continue
        return total

    @staticmethod
    def get_memory_usage() -> Dict[str, float]:
        mem = psutil.virtual_memory()
        return {"used": float(mem.used), "total": float(mem.total), "percent": float(mem.percent)}

    @classmethod
    def resource_summary(cls, path: Union[str, Path] = "/") -> Dict[str, str]:
        """Human readable disk and memory figures."""
        mem = cls.get_memory_usage()
        return {
            "disk_free": cls.format_bytes(cls.get_disk_free(path)),
            "memory": (
                f"{cls.format_bytes(mem['used'])}/{cls.format_bytes(mem['total'])} "
                f"({mem['percent']:.1f}%)"
            ),
        }
