"""Release/development classification of tag names."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

VersionClass = Literal["release", "development"]

RELEASE: VersionClass = "release"
DEVELOPMENT: VersionClass = "development"

RELEASE_PATTERN = re.compile(
    r"v?(?P<major>[0-9]+)\.(?P<minor>[0-9]+)\.(?P<patch>[0-9]+)"
    r"(?:\.(?P<revision>[0-9]+))?"
    r"(?:-(?P<suffix>[A-Za-z0-9][A-Za-z0-9.-]*))?",
    re.ASCII,
)


@dataclass(frozen=True)
class ParsedVersion:
    major: int
    minor: int
    patch: int
    revision: int = -1  # no fourth component
    suffix: str = ""

    @property
    def minor_family(self) -> str:
        return f"{self.major}.{self.minor}"

    @property
    def patch_family(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"

    def family(self, scope: str) -> str:
        return self.minor_family if scope == "minor" else self.patch_family

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.revision >= 0:
            text += f".{self.revision}"
        if self.suffix:
            text += f"-{self.suffix}"
        return text


@dataclass(frozen=True)
class Classification:
    version_class: VersionClass
    version: ParsedVersion | None = None

    @property
    def is_release(self) -> bool:
        return self.version_class == RELEASE


def parse_version(tag_name: str) -> ParsedVersion | None:
    match = RELEASE_PATTERN.fullmatch(tag_name)
    if not match:
        return None
    revision = match.group("revision")
    return ParsedVersion(
        major=int(match.group("major")),
        minor=int(match.group("minor")),
        patch=int(match.group("patch")),
        revision=int(revision) if revision is not None else -1,
        suffix=match.group("suffix") or "",
    )


def classify(tag_name: str) -> Classification:
    """Classify a tag name as a release or development tag.

    Never raises: anything that does not parse as a release version, including
    non-string input, is a development tag.
    """
    if not isinstance(tag_name, str):
        return Classification(DEVELOPMENT)
    version = parse_version(tag_name)
    if version is None:
        return Classification(DEVELOPMENT)
    return Classification(RELEASE, version)


def version_sort_key(
    version: ParsedVersion, age_days: int
) -> tuple[int, int, int, int, bool, str, int]:
    """Ascending sort key for release ordering.

    A release without suffix outranks every suffixed release with the same
    numeric tuple. Identical versions prefer the younger tag.
    """
    return (
        version.major,
        version.minor,
        version.patch,
        version.revision,
        version.suffix == "",
        version.suffix,
        -age_days,
    )
