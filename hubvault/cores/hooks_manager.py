################################################################################
# HUBVAULT
#
# @file:        hooks_manager.py
# @module:      hubvault.cores.hooks_manager
# @description: Runs operator supplied scripts around backup and restore.
# @author:      HubVault Contributors
# @repository:  https://github.com/hubvault/hubvault
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# Copyright (c) 2025 HubVault Contributors
# MIT-Lizenz: siehe LICENSE oder https://opensource.org/licenses/MIT
# ==============================================================================
# Hinweise:
# - Hooks receive HUBVAULT_HOOK_TYPE and HUBVAULT_HUB_DIR in their environment
# - execute_hook never raises; callers decide whether a failure aborts
################################################################################

"""
Hooks management module.

Executes the scripts configured via PRE_BACKUP_HOOK, POST_BACKUP_HOOK,
PRE_RESTORE_HOOK and POST_RESTORE_HOOK.
"""

import os
import subprocess
from pathlib import Path
from typing import List, Optional

from ..helpers.config import HubConfig
from ..helpers.constants import (
    HOOK_POST_BACKUP,
    HOOK_POST_RESTORE,
    HOOK_PRE_BACKUP,
    HOOK_PRE_RESTORE,
)
from ..helpers.logging import get_logger

logger = get_logger(__name__)


class HooksManager:
    """Runs configured hook scripts."""

    def __init__(self, config: HubConfig):
        self.config = config
        self.executed_hooks: List[str] = []

    def _hook_path(self, hook_type: str) -> Optional[Path]:
        return getattr(self.config, f"{hook_type}_hook", None)

    def execute_hook(self, hook_type: str, timeout: Optional[int] = None) -> bool:
        """
        Execute the hook script for `hook_type`.

        Args:
            hook_type: One of the HOOK_* constants
            timeout: Seconds before the script is killed (default HOOK_TIMEOUT)

        Returns:
            True if no hook is configured or it exited 0, else False
        """
        configured = self._hook_path(hook_type)
        if not configured:
            return True

        script = Path(configured).expanduser()
        if not script.is_file():
            logger.error(f"Hook script not found: {script}", extra={"hook": hook_type})
            return False
        if not os.access(script, os.X_OK):
            logger.error(f"Hook script not executable: {script}", extra={"hook": hook_type})
            return False

        env = os.environ.copy()
        env["HUBVAULT_HOOK_TYPE"] = hook_type
        env["HUBVAULT_HUB_DIR"] = str(self.config.install_root)

        timeout = timeout or self.config.hook_timeout
        logger.info(f"Running {hook_type} hook: {script}", extra={"hook": hook_type})
        try:
            result = subprocess.run(
                [str(script)],
                capture_output=True,
                text=True,
                timeout=timeout,
                env=env,
            )
        except subprocess.TimeoutExpired:
            logger.error(f"Hook {hook_type} timed out after {timeout}s", extra={"hook": hook_type})
            return False
        except OSError as e:
            logger.error(f"Hook {hook_type} could not run: {e}", extra={"hook": hook_type})
            return False

        if result.stdout.strip():
            logger.debug(f"Hook output: {result.stdout.strip()}")
        if result.returncode != 0:
            logger.error(
                f"Hook {hook_type} failed (exit {result.returncode}): {result.stderr.strip()}",
                extra={"hook": hook_type},
            )
            return False

        self.executed_hooks.append(f"{hook_type}:{script.name}")
        return True

    def execute_pre_backup(self) -> bool:
        return self.execute_hook(HOOK_PRE_BACKUP)

    def execute_post_backup(self) -> bool:
        return self.execute_hook(HOOK_POST_BACKUP)

    def execute_pre_restore(self) -> bool:
        return self.execute_hook(HOOK_PRE_RESTORE)

    def execute_post_restore(self) -> bool:
        return self.execute_hook(HOOK_POST_RESTORE)

    def get_executed_hooks(self) -> List[str]:
        return list(self.executed_hooks)
