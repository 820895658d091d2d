"""Exceptions raised by registry-prune."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from registry_prune.base import Artifact


class RegistryPruneError(Exception):
    pass


class ConfigurationError(RegistryPruneError, ValueError):
    """Missing or invalid configuration. Raised before any network call."""


class FetchError(RegistryPruneError):
    """Listing a registry failed part way through.

    `artifacts` holds whatever was retrieved before the failure so the run can
    proceed with partial data.
    """

    def __init__(self, message: str, artifacts: list[Artifact] | None = None):
        super().__init__(message)
        self.artifacts: list[Artifact] = artifacts or []


class LoginError(RegistryPruneError):
    pass


class DeleteError(RegistryPruneError):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class DeletionDeclined(RegistryPruneError):
    pass
