from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, ClassVar, TYPE_CHECKING

from dateutil import parser as date_parser  # type: ignore[import-untyped]

from registry_prune.versions import Classification, ParsedVersion, VersionClass

if TYPE_CHECKING:
    from registry_prune.logic import RetentionPlan
    from registry_prune.settings import Settings


@dataclass(frozen=True)
class Artifact:
    """One stored unit in a registry.

    It standardizes image data across registry implementations so the retention
    logic works with a single structure. `created_at` is the creation time for
    GHCR versions and the last update time for Docker Hub tags.
    """

    identifier: str
    tags: list[str]
    created_at: datetime
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class Tag:
    """A distinct tag name observed across one or more artifacts.

    `age_days` is the youngest age among the artifacts carrying the tag.
    """

    name: str
    age_days: int
    classification: Classification
    artifact_ids: tuple[str, ...] = ()

    @property
    def version_class(self) -> VersionClass:
        return self.classification.version_class

    @property
    def version(self) -> ParsedVersion | None:
        return self.classification.version

    @property
    def is_release(self) -> bool:
        return self.classification.is_release and self.version is not None


@dataclass(frozen=True)
class DeletionTarget:
    """A single registry-native delete call."""

    identifier: str
    description: str
    untagged: bool = False


def age_in_days(created_at: datetime, now: datetime) -> int:
    """Whole days elapsed since `created_at`, never negative."""
    return max((now - created_at).days, 0)


class RegistryClient(ABC):
    """Abstract base class for registry implementations."""

    name: ClassVar[str] = ""
    supports_untagged: ClassVar[bool] = False

    @classmethod
    @abstractmethod
    def is_configured(cls, settings: Settings) -> bool:
        pass

    @classmethod
    @abstractmethod
    def from_settings(cls, settings: Settings) -> RegistryClient:
        pass

    def login(self) -> None:
        """Authenticate before listing. Most registries use a static token."""

    @abstractmethod
    def list_artifacts(self) -> list[Artifact]:
        pass

    @abstractmethod
    def deletion_targets(self, plan: RetentionPlan) -> list[DeletionTarget]:
        pass

    @abstractmethod
    def delete(self, target: DeletionTarget) -> None:
        pass


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    """Parse a registry timestamp into an aware datetime (UTC if naive).

    Returns None when the value is missing or unparseable.
    """
    if isinstance(value, datetime):
        parsed = value
    elif not value:
        return None
    else:
        try:
            parsed = date_parser.isoparse(value)
        except (TypeError, ValueError, OverflowError):
            try:
                parsed = date_parser.parse(value)
            except (TypeError, ValueError, OverflowError):
                return None
    return parsed.replace(tzinfo=UTC) if parsed.tzinfo is None else parsed
