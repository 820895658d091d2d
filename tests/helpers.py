from datetime import UTC, datetime, timedelta

from registry_prune.base import Artifact

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


def artifact(identifier: str, tags: list[str], days: int) -> Artifact:
    return Artifact(identifier, tags, NOW - timedelta(days=days))


def tag_artifacts(ages: dict[str, int]) -> list[Artifact]:
    """One single-tag artifact per entry, in dict order."""
    return [artifact(f"id-{name}", [name], days) for name, days in ages.items()]
