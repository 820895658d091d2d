from __future__ import annotations

from typing import Any

import requests
from loguru import logger
from pydantic import BaseModel

from registry_prune.base import Artifact, DeletionTarget, RegistryClient, parse_timestamp
from registry_prune.errors import FetchError, LoginError
from registry_prune.logic import DELETE, RetentionPlan
from registry_prune.report import ordered_tag_decisions
from registry_prune.settings import Settings

HUB_URL = "https://hub.docker.com"


class DockerHubSettings(BaseModel):
    username: str
    password: str
    namespace: str
    repository: str


class DockerHubClient(RegistryClient):
    """Docker Hub client.

    Required settings:
      DOCKERHUB_USERNAME,
      DOCKERHUB_PASSWORD,
      DOCKERHUB_NAMESPACE,
      DOCKERHUB_REPOSITORY

    Every Docker Hub tag is listed as its own artifact, identified by the tag
    name and dated by its last update.
    """

    name = "dockerhub"

    @classmethod
    def is_configured(cls, settings: Settings) -> bool:
        return all(
            [
                settings.dockerhub_username,
                settings.dockerhub_password,
                settings.dockerhub_namespace,
                settings.dockerhub_repository,
            ]
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> DockerHubClient:
        hub_settings = DockerHubSettings(
            username=settings.dockerhub_username,
            password=settings.dockerhub_password,
            namespace=settings.dockerhub_namespace,
            repository=settings.dockerhub_repository,
        )
        return cls(
            hub_settings.username,
            hub_settings.password,
            hub_settings.namespace,
            hub_settings.repository,
        )

    def __init__(self, username: str, password: str, namespace: str, repository: str):
        self.username = username
        self.password = password
        self.namespace = namespace
        self.repository = repository
        self.token: str | None = None

    def _get_api_url(self, path: str) -> str:
        return f"{HUB_URL}/v2{path}"

    @property
    def headers(self) -> dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    def login(self) -> None:
        try:
            response = requests.post(
                self._get_api_url("/users/login"),
                json={"username": self.username, "password": self.password},
                timeout=30,
            )
            response.raise_for_status()
            token = response.json().get("token")
        except (requests.exceptions.RequestException, ValueError) as e:
            raise LoginError(f"Docker Hub login failed: {e}") from e
        if not token:
            raise LoginError("Docker Hub login failed: no token in response")
        self.token = token

    def list_artifacts(self) -> list[Artifact]:
        url: str | None = self._get_api_url(
            f"/repositories/{self.namespace}/{self.repository}/tags"
        )
        params: dict[str, Any] | None = {"page_size": 100, "ordering": "last_updated"}

        all_artifacts: list[Artifact] = []
        while url:
            try:
                response = requests.get(url, headers=self.headers, params=params, timeout=30)
                response.raise_for_status()
                payload = response.json()
            except (requests.exceptions.RequestException, ValueError) as e:
                raise FetchError(f"Docker Hub listing failed: {e}", all_artifacts) from e

            results = payload.get("results") or []
            if not results:
                break

            for result in results:
                name = result.get("name")
                if not name:
                    continue
                updated_at = parse_timestamp(
                    result.get("last_updated") or result.get("tag_last_pushed")
                )
                if updated_at is None:
                    logger.warning(f"Skipping Docker Hub tag {name}: no valid last_updated")
                    continue
                all_artifacts.append(
                    Artifact(
                        identifier=name,
                        tags=[name],
                        created_at=updated_at,
                        metadata={"tag": result},
                    )
                )

            # "next" already carries the query string
            url = payload.get("next")
            params = None

        return all_artifacts

    def deletion_targets(self, plan: RetentionPlan) -> list[DeletionTarget]:
        return [
            DeletionTarget(d.name, f"tag {d.name}")
            for d in ordered_tag_decisions(plan)
            if d.action == DELETE
        ]

    def delete(self, target: DeletionTarget) -> None:
        url = self._get_api_url(
            f"/repositories/{self.namespace}/{self.repository}/tags/{target.identifier}/"
        )
        response = requests.delete(url, headers=self.headers, timeout=30)
        response.raise_for_status()
