from __future__ import annotations

from typing import Literal

import requests
from loguru import logger
from pydantic import BaseModel, ValidationError

from registry_prune.base import Artifact, DeletionTarget, RegistryClient, parse_timestamp
from registry_prune.errors import ConfigurationError, FetchError
from registry_prune.logic import DELETE, RetentionPlan
from registry_prune.report import ordered_tag_decisions, ordered_untagged_decisions
from registry_prune.settings import Settings

API_URL = "https://api.github.com"


class GHCRSettings(BaseModel):
    owner_type: Literal["users", "orgs"]
    owner: str
    token: str
    package: str


class GHCRClient(RegistryClient):
    """GitHub Container Registry client.

    Required settings: GHCR_OWNER (or GITHUB_REPO_OWNER), GHCR_TOKEN (or
    GITHUB_TOKEN), GHCR_PACKAGE. Optional: GHCR_OWNER_TYPE (users or orgs).
    The token needs read:packages and delete:packages.
    """

    name = "ghcr"
    supports_untagged = True

    @classmethod
    def is_configured(cls, settings: Settings) -> bool:
        return bool(settings.ghcr_owner and settings.ghcr_token and settings.ghcr_package)

    @classmethod
    def from_settings(cls, settings: Settings) -> GHCRClient:
        try:
            ghcr_settings = GHCRSettings(
                owner_type=settings.ghcr_owner_type.lower(),  # type: ignore[arg-type]
                owner=settings.ghcr_owner,
                token=settings.ghcr_token,
                package=settings.ghcr_package,
            )
        except ValidationError as e:
            raise ConfigurationError(
                f"GHCR_OWNER_TYPE must be 'users' or 'orgs', got '{settings.ghcr_owner_type}'"
            ) from e
        return cls(
            ghcr_settings.token,
            ghcr_settings.owner,
            ghcr_settings.package,
            ghcr_settings.owner_type,
        )

    def __init__(self, token: str, owner: str, package: str, owner_type: str = "users"):
        self.token = token
        self.owner = owner
        self.package = package
        self.owner_type = owner_type
        self.headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    @property
    def versions_url(self) -> str:
        return f"{API_URL}/{self.owner_type}/{self.owner}/packages/container/{self.package}/versions"

    def list_artifacts(self) -> list[Artifact]:
        all_artifacts: list[Artifact] = []
        page = 1

        while True:
            params: dict[str, str | int] = {"page": page, "per_page": 100}
            try:
                response = requests.get(
                    self.versions_url, headers=self.headers, params=params, timeout=30
                )
                response.raise_for_status()
                versions = response.json()
            except (requests.exceptions.RequestException, ValueError) as e:
                raise FetchError(
                    f"GHCR listing failed on page {page}: {e}", all_artifacts
                ) from e

            if not versions:
                break

            for version in versions:
                version_id = str(version.get("id", ""))
                created_at = parse_timestamp(version.get("created_at"))
                if created_at is None:
                    logger.warning(f"Skipping GHCR version {version_id}: no valid created_at")
                    continue
                container = (version.get("metadata") or {}).get("container") or {}
                tags = container.get("tags") or []

                all_artifacts.append(
                    Artifact(
                        identifier=version_id,
                        tags=list(tags),
                        created_at=created_at,
                        metadata={"version": version},
                    )
                )

            page += 1

        return all_artifacts

    def deletion_targets(self, plan: RetentionPlan) -> list[DeletionTarget]:
        """Versions to delete, in presentation order.

        Deleting a version removes every tag on it, so a version is only a
        target when all of its tags are marked for deletion.
        """
        by_id = {a.identifier: a for a in plan.artifacts}
        doomed = {d.name for d in plan.tags_to_delete}
        targets: list[DeletionTarget] = []
        seen: set[str] = set()

        for decision in ordered_tag_decisions(plan):
            if decision.action != DELETE:
                continue
            for version_id in decision.tag.artifact_ids:
                if version_id in seen:
                    continue
                seen.add(version_id)
                artifact = by_id.get(version_id)
                tags = artifact.tags if artifact else [decision.name]
                kept = [t for t in tags if t not in doomed]
                if kept:
                    logger.info(
                        f"GHCR keeping version {version_id}: tag '{decision.name}' "
                        f"expired but it also carries kept tags {', '.join(kept)}"
                    )
                    continue
                targets.append(
                    DeletionTarget(version_id, f"version {version_id} [{', '.join(tags)}]")
                )

        for u in ordered_untagged_decisions(plan):
            if u.action == DELETE and u.identifier not in seen:
                seen.add(u.identifier)
                targets.append(
                    DeletionTarget(u.identifier, f"version {u.identifier} [untagged]", True)
                )
        return targets

    def delete(self, target: DeletionTarget) -> None:
        url = f"{self.versions_url}/{target.identifier}"
        response = requests.delete(url, headers=self.headers, timeout=30)
        response.raise_for_status()
