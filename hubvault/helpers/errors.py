################################################################################
# HUBVAULT
#
# @file:        errors.py
# @module:      hubvault.helpers.errors
# @description: Error taxonomy shared by the snapshot store, services and pipelines.
# @author:      HubVault Contributors
# @repository:  https://github.com/hubvault/hubvault
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# Copyright (c) 2025 HubVault Contributors
# MIT-Lizenz: siehe LICENSE oder https://opensource.org/licenses/MIT
# ==============================================================================
# Hinweise:
# - Fatal errors derive from HubVaultError and abort a pipeline run
# - ServiceUnhealthy and VerificationWarning only classify warnings
################################################################################

"""Exceptions raised by HubVault."""

from typing import Optional


class HubVaultError(Exception):
    """Base class for all fatal HubVault errors."""


class ConfigurationError(HubVaultError):
    """Missing or invalid configuration (no retry)."""


class RepositoryUnreachable(HubVaultError):
    """Snapshot repository cannot be reached or initialized."""


class SnapshotFailed(HubVaultError):
    """The backup engine failed to create a snapshot."""


class SnapshotNotFound(HubVaultError):
    """No snapshot matches the given selector."""

    def __init__(self, selector: str, message: Optional[str] = None):
        self.selector = selector
        super().__init__(message or f"No snapshot found for selector: {selector}")


class RestoreFailed(HubVaultError):
    """Extraction or installation swap failed."""


class ServiceError(HubVaultError):
    """A service group command (stop, start, pull, ...) failed."""


class HookFailed(HubVaultError):
    """A blocking hook script exited non-zero."""


class ServiceUnhealthy(Warning):
    """One or more services did not report healthy after an operation."""


class VerificationWarning(Warning):
    """Diagnostic check failed; the operation itself already completed."""
