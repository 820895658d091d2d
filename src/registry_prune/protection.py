"""Selection of tags that must never be deleted."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Literal

from loguru import logger

from registry_prune.base import Tag
from registry_prune.versions import version_sort_key

ProtectScope = Literal["minor", "patch"]

EXPLICIT = "explicit"
HIGHEST = "highest"
SCOPE_HEAD = "scope-head"


@dataclass(frozen=True)
class ProtectionSet:
    """Protected tag names with the rules that protect each of them."""

    reasons: dict[str, tuple[str, ...]] = field(default_factory=dict)
    highest: str | None = None

    @property
    def names(self) -> frozenset[str]:
        return frozenset(self.reasons)

    def is_protected(self, tag_name: str) -> bool:
        return tag_name in self.reasons

    def describe(self, tag_name: str) -> str:
        return ", ".join(self.reasons.get(tag_name, ()))


def _release_key(tag: Tag) -> tuple[int, int, int, int, bool, str, int]:
    assert tag.version is not None
    return version_sort_key(tag.version, tag.age_days)


def highest_release(tags: Iterable[Tag]) -> Tag | None:
    """Return the maximal release tag, or None when there are no releases.

    Equal keys keep the first tag in fetch order.
    """
    best: Tag | None = None
    for tag in tags:
        if not tag.is_release:
            continue
        if best is None or _release_key(tag) > _release_key(best):
            best = tag
    return best


def scope_heads(tags: Iterable[Tag], scope: ProtectScope) -> dict[str, Tag]:
    """Return the highest release tag of every minor or patch family."""
    heads: dict[str, Tag] = {}
    for tag in tags:
        if not tag.is_release:
            continue
        assert tag.version is not None
        family = tag.version.family(scope)
        current = heads.get(family)
        if current is None or _release_key(tag) > _release_key(current):
            heads[family] = tag
    return heads


def select_protected(
    tags: Sequence[Tag],
    explicit: Iterable[str],
    scope_enabled: bool = False,
    scope: ProtectScope = "patch",
) -> ProtectionSet:
    reasons: dict[str, list[str]] = {}

    def protect(name: str, reason: str) -> None:
        reasons.setdefault(name, [])
        if reason not in reasons[name]:
            reasons[name].append(reason)

    for name in explicit:
        protect(name, EXPLICIT)

    highest = highest_release(tags)
    if highest is None:
        logger.info("No release tags found, nothing protected as highest version")
    else:
        protect(highest.name, HIGHEST)
        logger.debug(f"Highest release: {highest.name} ({highest.age_days}d old)")

    if scope_enabled:
        for family, head in scope_heads(tags, scope).items():
            protect(head.name, SCOPE_HEAD)
            logger.debug(f"Head of {scope} family {family}: {head.name}")

    return ProtectionSet(
        reasons={name: tuple(r) for name, r in reasons.items()},
        highest=highest.name if highest else None,
    )
