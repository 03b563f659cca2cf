#!/usr/bin/env python3
################################################################################
# HUBVAULT
#
# @file:        config.py
# @module:      hubvault.helpers.config
# @description: Environment based configuration with validation and secret masking
# @author:      HubVault Contributors
# @repository:  https://github.com/hubvault/hubvault
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# MIT-Lizenz: siehe LICENSE oder https://opensource.org/licenses/MIT
################################################################################

"""
Configuration management for HubVault.

All settings come from environment variables (the same names the cron jobs
and systemd units of the hub already export). The parsed values live in one
validated pydantic model that is passed into every manager at construction.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from ..types import RetentionPolicy
from .constants import (
    COMPOSE_FILE_NAME,
    DEFAULT_ADGUARD_SERVICE,
    DEFAULT_EXCLUDE_PATTERNS,
    DEFAULT_INSTALL_ROOT,
    DEFAULT_RESTORE_TARGET,
    DEFAULT_RETENTION_DAILY,
    DEFAULT_RETENTION_MONTHLY,
    DEFAULT_RETENTION_WEEKLY,
    HEALTH_POLL_ATTEMPTS,
    HEALTH_POLL_INTERVAL,
    HOOK_TIMEOUT,
    RESTORE_GRACE_SECONDS,
)
from .errors import ConfigurationError
from .logging import get_logger

logger = get_logger(__name__)

# Environment variable -> model field
ENV_MAPPING: Dict[str, str] = {
    "RESTIC_REPOSITORY": "repository",
    "RESTIC_PASSWORD": "password",
    "RESTIC_PASSWORD_FILE": "password_file",
    "RESTIC_CACHE_DIR": "cache_dir",
    "HUB_DIR": "install_root",
    "RESTORE_TARGET": "restore_target",
    "RETENTION_DAYS": "retention_daily",
    "RETENTION_WEEKS": "retention_weekly",
    "RETENTION_MONTHS": "retention_monthly",
    "BACKUP_EXCLUDES": "extra_excludes",
    "WEBHOOK_URL": "webhook_url",
    "EMAIL_TO": "email_to",
    "SMTP_URL": "smtp_url",
    "BACKUP_BEFORE_UPDATE": "backup_before_update",
    "ADGUARD_SERVICE": "adguard_service",
    "ADGUARD_URL": "adguard_url",
    "HEALTH_ENDPOINTS": "health_endpoints",
    "HEALTH_ATTEMPTS": "health_attempts",
    "HEALTH_INTERVAL": "health_interval",
    "RESTORE_GRACE_SECONDS": "restore_grace_seconds",
    "HUB_OWNER": "owner",
    "PRE_BACKUP_HOOK": "pre_backup_hook",
    "POST_BACKUP_HOOK": "post_backup_hook",
    "PRE_RESTORE_HOOK": "pre_restore_hook",
    "POST_RESTORE_HOOK": "post_restore_hook",
    "HOOK_TIMEOUT": "hook_timeout",
    "LOG_LEVEL": "log_level",
    "LOG_FILE": "log_file",
    "HUBVAULT_LOCK_FILE": "lock_file",
}

SENSITIVE_PATTERN = re.compile(r"(password|secret|token|webhook|smtp)", re.IGNORECASE)


def _split_list(value) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return [str(item).strip() for item in value if str(item).strip()]


class HubConfig(BaseModel):
    """Validated runtime configuration."""

    repository: Optional[str] = None
    password: Optional[str] = Field(default=None, repr=False)
    password_file: Optional[Path] = None
    cache_dir: Optional[Path] = None

    install_root: Path = DEFAULT_INSTALL_ROOT
    restore_target: Path = DEFAULT_RESTORE_TARGET

    retention_daily: int = Field(default=DEFAULT_RETENTION_DAILY, ge=0)
    retention_weekly: int = Field(default=DEFAULT_RETENTION_WEEKLY, ge=0)
    retention_monthly: int = Field(default=DEFAULT_RETENTION_MONTHLY, ge=0)
    extra_excludes: List[str] = Field(default_factory=list)

    webhook_url: Optional[str] = Field(default=None, repr=False)
    email_to: Optional[str] = None
    smtp_url: Optional[str] = Field(default=None, repr=False)

    backup_before_update: bool = True
    adguard_service: str = DEFAULT_ADGUARD_SERVICE
    adguard_url: Optional[str] = None
    health_endpoints: Dict[str, str] = Field(default_factory=dict)
    health_attempts: int = Field(default=HEALTH_POLL_ATTEMPTS, ge=1)
    health_interval: float = Field(default=HEALTH_POLL_INTERVAL, ge=0)
    restore_grace_seconds: float = Field(default=RESTORE_GRACE_SECONDS, ge=0)
    owner: Optional[str] = None

    pre_backup_hook: Optional[Path] = None
    post_backup_hook: Optional[Path] = None
    pre_restore_hook: Optional[Path] = None
    post_restore_hook: Optional[Path] = None
    hook_timeout: int = Field(default=HOOK_TIMEOUT, ge=1)

    log_level: str = "INFO"
    log_file: Optional[Path] = None
    lock_file: Optional[Path] = None

    # --------------- Validators ---------------

    @field_validator("extra_excludes", mode="before")
    @classmethod
    def split_excludes(cls, v):
        return _split_list(v)

    @field_validator("health_endpoints", mode="before")
    @classmethod
    def parse_endpoints(cls, v):
        if isinstance(v, dict) or v is None:
            return v or {}
        endpoints: Dict[str, str] = {}
        for item in _split_list(v):
            service, sep, url = item.partition("=")
            if not sep or not service.strip() or not url.strip():
                raise ValueError(f"Expected 'service=url', got: {item!r}")
            endpoints[service.strip()] = url.strip()
        return endpoints

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
        return level

    @field_validator("install_root", "restore_target")
    @classmethod
    def require_absolute(cls, v: Path) -> Path:
        if not v.is_absolute():
            raise ValueError(f"Path must be absolute: {v}")
        return v

    @model_validator(mode="after")
    def validate_paths(self) -> HubConfig:
        root = self.install_root.resolve()
        target = self.restore_target.resolve()
        if root == target:
            raise ValueError("RESTORE_TARGET must differ from the installation root")
        return self

    # --------------- Construction ---------------

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> HubConfig:
        """
        Build the configuration from environment variables.

        Empty variables count as unset. Keyword overrides win over the
        environment (used by CLI flags).

        Raises:
            ConfigurationError: Invalid values
        """
        environ = os.environ if environ is None else environ
        values = {}
        for env_name, field_name in ENV_MAPPING.items():
            raw = environ.get(env_name)
            if raw is not None and raw.strip() != "":
                values[field_name] = raw.strip()
        values.update({k: v for k, v in overrides.items() if v is not None})
        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    # --------------- Properties ---------------

    @property
    def retention_policy(self) -> RetentionPolicy:
        return RetentionPolicy(
            keep_daily=self.retention_daily,
            keep_weekly=self.retention_weekly,
            keep_monthly=self.retention_monthly,
        )

    @property
    def exclude_patterns(self) -> List[str]:
        return list(DEFAULT_EXCLUDE_PATTERNS) + list(self.extra_excludes)

    @property
    def compose_file(self) -> Path:
        return self.install_root / COMPOSE_FILE_NAME

    @property
    def notifications_enabled(self) -> bool:
        return bool(self.webhook_url or self.email_to)

    # --------------- Password Management ---------------

    def get_password(self) -> str:
        """
        Repository password.

        Priority: RESTIC_PASSWORD_FILE, then RESTIC_PASSWORD.

        Raises:
            ConfigurationError: Nothing configured or file unreadable
        """
        if self.password_file:
            path = self.password_file.expanduser()
            try:
                secret = path.read_text(encoding="utf-8").strip()
            except OSError as e:
                raise ConfigurationError(f"Password file not readable: {path} ({e})") from e
            if secret:
                return secret
            logger.warning(f"Password file is empty: {path}")
        if self.password:
            return self.password
        raise ConfigurationError("RESTIC_PASSWORD or RESTIC_PASSWORD_FILE must be set")

    def has_credentials(self) -> bool:
        return bool(self.repository) and bool(self.password or self.password_file)

    def require_repository(self) -> None:
        """
        Raises:
            ConfigurationError: Repository or password missing
        """
        if not self.repository:
            raise ConfigurationError("RESTIC_REPOSITORY and RESTIC_PASSWORD must be set")
        self.get_password()

    # --------------- Display ---------------

    def masked_items(self) -> List[Tuple[str, str]]:
        """(ENV_NAME, value) pairs with secrets masked, for display."""
        items = []
        for env_name, field_name in ENV_MAPPING.items():
            value = getattr(self, field_name)
            if value in (None, "", [], {}):
                shown = "-"
            elif isinstance(value, dict):
                shown = ", ".join(f"{k}={v}" for k, v in value.items())
            elif isinstance(value, list):
                shown = ", ".join(value)
            else:
                shown = str(value)
            if shown != "-" and SENSITIVE_PATTERN.search(env_name) and not env_name.endswith("_FILE"):
                shown = f"{shown[:3]}***MASKED***" if len(shown) > 3 else "***MASKED***"
            items.append((env_name, shown))
        return items
