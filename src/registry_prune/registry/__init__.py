from __future__ import annotations

from loguru import logger

from registry_prune.base import Artifact, RegistryClient
from registry_prune.settings import Settings

from .dockerhub import DockerHubClient
from .ghcr import GHCRClient

__all__ = [
    "Artifact",
    "RegistryClient",
    "DockerHubClient",
    "GHCRClient",
    "init_registries",
]

REGISTRIES: list[type[RegistryClient]] = [GHCRClient, DockerHubClient]


def _describe(registry: RegistryClient) -> str:
    if isinstance(registry, GHCRClient):
        location = f"{registry.owner_type}/{registry.owner}/{registry.package}"
    elif isinstance(registry, DockerHubClient):
        location = f"{registry.namespace}/{registry.repository}"
    else:
        location = "?"
    return f"{registry.name.upper()}: {location}"


def init_registries(settings: Settings) -> list[tuple[RegistryClient, str]]:
    """Create a client for every registry whose settings are complete.

    Registries with missing settings are skipped.
    """
    registries = []
    for registry_class in REGISTRIES:
        if not registry_class.is_configured(settings):
            logger.info(f"{registry_class.name.upper()}: skipping (missing settings)")
            continue
        registry = registry_class.from_settings(settings)
        registries.append((registry, _describe(registry)))
    return registries
