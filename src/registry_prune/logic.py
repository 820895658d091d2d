"""Core logic for registry retention: decisions and their execution."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from functools import partial

from loguru import logger

from registry_prune.base import Artifact, RegistryClient, Tag, age_in_days
from registry_prune.errors import DeleteError, DeletionDeclined
from registry_prune.protection import ProtectionSet, ProtectScope, select_protected
from registry_prune.retry import RetryPolicy
from registry_prune.settings import ALWAYS_PROTECTED, Settings
from registry_prune.versions import DEVELOPMENT, RELEASE, VersionClass, classify

KEEP = "keep"
DELETE = "delete"

PROTECTED = "protected"
FORCED_KEEP = "forced-keep"
WITHIN_THRESHOLD = "within-threshold"
EXPIRED = "expired"


@dataclass(frozen=True)
class RetentionPolicy:
    max_release_days: int
    max_dev_days: int
    keep_release_count: int = 0
    keep_dev_count: int = 0
    protected_tags: tuple[str, ...] = ALWAYS_PROTECTED
    scope_enabled: bool = False
    scope: ProtectScope = "patch"
    include_untagged: bool = False
    max_untagged_days: int = 0

    @classmethod
    def from_settings(cls, settings: Settings) -> RetentionPolicy:
        settings.validate_for_run()
        assert settings.max_release_days is not None
        assert settings.max_dev_days is not None
        return cls(
            max_release_days=settings.max_release_days,
            max_dev_days=settings.max_dev_days,
            keep_release_count=settings.keep_release_count,
            keep_dev_count=settings.keep_dev_count,
            protected_tags=settings.protected_tags,
            scope_enabled=settings.protect_latest_per_scope,
            scope=settings.protect_scope,
            include_untagged=settings.include_untagged,
            max_untagged_days=settings.max_untagged_days or 0,
        )

    def threshold(self, version_class: VersionClass) -> int:
        return self.max_release_days if version_class == RELEASE else self.max_dev_days

    def keep_count(self, version_class: VersionClass) -> int:
        return self.keep_release_count if version_class == RELEASE else self.keep_dev_count


@dataclass(frozen=True)
class TagDecision:
    """Decision about what to do with a tag."""

    tag: Tag
    action: str  # "keep" or "delete"
    reason: str
    protected_by: str = ""

    @property
    def name(self) -> str:
        return self.tag.name

    @property
    def age_days(self) -> int:
        return self.tag.age_days

    @property
    def version_class(self) -> VersionClass:
        return self.tag.version_class

    @property
    def is_protected(self) -> bool:
        return self.reason == PROTECTED


@dataclass(frozen=True)
class UntaggedDecision:
    artifact: Artifact
    age_days: int
    action: str
    reason: str

    @property
    def identifier(self) -> str:
        return self.artifact.identifier


@dataclass(frozen=True)
class RetentionPlan:
    tag_decisions: list[TagDecision]
    untagged_decisions: list[UntaggedDecision] = field(default_factory=list)
    protection: ProtectionSet = field(default_factory=ProtectionSet)
    artifacts: list[Artifact] = field(default_factory=list)

    @property
    def tags_to_delete(self) -> list[TagDecision]:
        return [d for d in self.tag_decisions if d.action == DELETE]

    def decision_for(self, tag_name: str) -> TagDecision | None:
        for decision in self.tag_decisions:
            if decision.name == tag_name:
                return decision
        return None

    def counts(self) -> dict[str, dict[str, int]]:
        """Kept/deleted counts per class, plus untagged."""
        counts = {
            group: {KEEP: 0, DELETE: 0} for group in (RELEASE, DEVELOPMENT, "untagged")
        }
        for d in self.tag_decisions:
            counts[d.version_class][d.action] += 1
        for u in self.untagged_decisions:
            counts["untagged"][u.action] += 1
        return counts


def build_tags(artifacts: Iterable[Artifact], now: datetime) -> list[Tag]:
    """Deduplicate tag names across artifacts, in first-seen order.

    A tag pushed more than once takes the age of its youngest artifact.
    """
    ages: dict[str, int] = {}
    carriers: dict[str, list[str]] = {}
    for artifact in artifacts:
        age = age_in_days(artifact.created_at, now)
        for name in dict.fromkeys(artifact.tags):
            if name in ages:
                ages[name] = min(ages[name], age)
                carriers[name].append(artifact.identifier)
            else:
                ages[name] = age
                carriers[name] = [artifact.identifier]
    return [
        Tag(name, ages[name], classify(name), tuple(carriers[name])) for name in ages
    ]


def _forced_keeps(
    tags: Sequence[Tag], protection: ProtectionSet, policy: RetentionPolicy
) -> set[str]:
    forced: set[str] = set()
    for version_class in (RELEASE, DEVELOPMENT):
        count = policy.keep_count(version_class)
        if count <= 0:
            continue
        candidates = [
            t
            for t in tags
            if t.version_class == version_class and not protection.is_protected(t.name)
        ]
        # sorted() is stable, so equal ages keep fetch order
        youngest = sorted(candidates, key=lambda t: t.age_days)[:count]
        forced.update(t.name for t in youngest)
    return forced


def _decide_tag(
    tag: Tag, protection: ProtectionSet, forced: set[str], policy: RetentionPolicy
) -> TagDecision:
    if protection.is_protected(tag.name):
        return TagDecision(tag, KEEP, PROTECTED, protection.describe(tag.name))
    if tag.name in forced:
        return TagDecision(tag, KEEP, FORCED_KEEP)
    if tag.age_days <= policy.threshold(tag.version_class):
        return TagDecision(tag, KEEP, WITHIN_THRESHOLD)
    return TagDecision(tag, DELETE, EXPIRED)


def decide_tags(
    tags: Sequence[Tag], protection: ProtectionSet, policy: RetentionPolicy
) -> list[TagDecision]:
    forced = _forced_keeps(tags, protection, policy)
    return [_decide_tag(tag, protection, forced, policy) for tag in tags]


def decide_untagged(
    artifacts: Iterable[Artifact], policy: RetentionPolicy, now: datetime
) -> list[UntaggedDecision]:
    """Untagged artifacts are only ever judged by age."""
    decisions = []
    for artifact in artifacts:
        if artifact.tags:
            continue
        age = age_in_days(artifact.created_at, now)
        if age <= policy.max_untagged_days:
            decisions.append(UntaggedDecision(artifact, age, KEEP, WITHIN_THRESHOLD))
        else:
            decisions.append(UntaggedDecision(artifact, age, DELETE, EXPIRED))
    return decisions


def create_retention_plan(
    artifacts: Sequence[Artifact],
    policy: RetentionPolicy,
    now: datetime | None = None,
) -> RetentionPlan:
    now = now or datetime.now(UTC)
    tags = build_tags(artifacts, now)
    protection = select_protected(
        tags, policy.protected_tags, policy.scope_enabled, policy.scope
    )
    decisions = decide_tags(tags, protection, policy)
    untagged = decide_untagged(artifacts, policy, now) if policy.include_untagged else []

    for d in decisions:
        suffix = f" [{d.protected_by}]" if d.protected_by else ""
        logger.debug(
            f"tag '{d.name}' ({d.version_class}, {d.age_days}d old): "
            f"{d.action.upper()} - {d.reason}{suffix}"
        )
    for u in untagged:
        logger.debug(
            f"[{u.identifier}] untagged ({u.age_days}d old): "
            f"{u.action.upper()} - {u.reason}"
        )

    return RetentionPlan(decisions, untagged, protection, list(artifacts))


@dataclass
class DeleteBudget:
    """Global cap on delete calls, shared by every registry in one run."""

    limit: int | None = None
    used: int = 0

    @property
    def exhausted(self) -> bool:
        return self.limit is not None and self.used >= self.limit

    def take(self) -> bool:
        if self.exhausted:
            return False
        self.used += 1
        return True


@dataclass
class ExecutionResult:
    deleted: int = 0
    failed: int = 0
    skipped: int = 0

    def __add__(self, other: ExecutionResult) -> ExecutionResult:
        return ExecutionResult(
            self.deleted + other.deleted,
            self.failed + other.failed,
            self.skipped + other.skipped,
        )


def execute_plan(
    registry: RegistryClient,
    plan: RetentionPlan,
    dry_run: bool,
    budget: DeleteBudget | None = None,
    confirm: Callable[[int], bool] | None = None,
    retry: RetryPolicy | None = None,
) -> ExecutionResult:
    targets = registry.deletion_targets(plan)
    if not targets:
        logger.info("No artifacts to delete")
        return ExecutionResult()

    if dry_run:
        for target in targets:
            logger.info(f"DRY RUN: would delete {target.description}")
        logger.info(f"DRY RUN: Would delete {len(targets)} artifacts")
        return ExecutionResult()

    if confirm is not None and not confirm(len(targets)):
        raise DeletionDeclined(f"Deletion of {len(targets)} artifacts was declined")

    budget = budget or DeleteBudget()
    retry = retry or RetryPolicy()
    result = ExecutionResult()

    logger.info("PERFORMING DELETIONS...")
    for target in targets:
        if not budget.take():
            if result.skipped == 0:
                logger.warning(
                    f"Delete limit of {budget.limit} reached, "
                    "remaining deletions are skipped this run"
                )
            result.skipped += 1
            continue
        try:
            retry.call(partial(registry.delete, target), f"delete {target.description}")
        except DeleteError as e:
            logger.error(f"Error deleting {target.description}: {e}")
            result.failed += 1
        else:
            logger.info(f"Deleted {target.description}")
            result.deleted += 1

    logger.info(
        f"Deleted: {result.deleted}, errors: {result.failed}, skipped: {result.skipped}"
    )
    return result
