"""Deterministic ordering of decisions and the reports built from it."""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from registry_prune.logic import (
    DELETE,
    KEEP,
    ExecutionResult,
    RetentionPlan,
    TagDecision,
    UntaggedDecision,
)
from registry_prune.settings import Settings
from registry_prune.versions import DEVELOPMENT, RELEASE, version_sort_key

LATEST = "latest"


@dataclass
class RegistryReport:
    """Outcome of one registry, as shown in the step summary."""

    info: str
    plan: RetentionPlan
    result: ExecutionResult


def _version_desc(decisions: list[TagDecision]) -> list[TagDecision]:
    def key(d: TagDecision) -> tuple[int, int, int, int, bool, str, int]:
        assert d.tag.version is not None
        return version_sort_key(d.tag.version, d.age_days)

    return sorted(decisions, key=key, reverse=True)


def _age_asc(decisions: list[TagDecision]) -> list[TagDecision]:
    return sorted(decisions, key=lambda d: (d.age_days, d.name))


def ordered_tag_decisions(plan: RetentionPlan) -> list[TagDecision]:
    """Tag decisions in presentation order.

    Sections, in order: protected `latest`, other protected releases (newest
    version first), other protected non-releases (by name), kept releases,
    kept development tags (youngest first), deleted releases, deleted
    development tags.
    """
    protected = [d for d in plan.tag_decisions if d.is_protected]
    unprotected = [d for d in plan.tag_decisions if not d.is_protected]

    def releases(decisions: list[TagDecision], action: str) -> list[TagDecision]:
        return [d for d in decisions if d.action == action and d.tag.is_release]

    def others(decisions: list[TagDecision], action: str) -> list[TagDecision]:
        return [d for d in decisions if d.action == action and not d.tag.is_release]

    latest = [d for d in protected if d.name == LATEST]
    protected_rest = [d for d in protected if d.name != LATEST]

    return [
        *latest,
        *_version_desc(releases(protected_rest, KEEP)),
        *sorted(others(protected_rest, KEEP), key=lambda d: d.name),
        *_version_desc(releases(unprotected, KEEP)),
        *_age_asc(others(unprotected, KEEP)),
        *_version_desc(releases(unprotected, DELETE)),
        *_age_asc(others(unprotected, DELETE)),
    ]


def ordered_untagged_decisions(plan: RetentionPlan) -> list[UntaggedDecision]:
    return [
        *(u for u in plan.untagged_decisions if u.action == KEEP),
        *(u for u in plan.untagged_decisions if u.action == DELETE),
    ]


def _describe(d: TagDecision) -> str:
    reason = f"{d.reason}: {d.protected_by}" if d.protected_by else d.reason
    return f"{d.name} ({d.version_class}, {d.age_days}d old) - {reason}"


def log_plan(plan: RetentionPlan, registry_info: str) -> None:
    """Log the ordered plan, one line per decision."""
    logger.info(f"Retention plan for {registry_info}:")
    for d in ordered_tag_decisions(plan):
        logger.info(f"  {d.action.upper():6} {_describe(d)}")
    for u in ordered_untagged_decisions(plan):
        logger.info(
            f"  {u.action.upper():6} [{u.identifier}] untagged "
            f"({u.age_days}d old) - {u.reason}"
        )


def log_summary(registry_info: str, plan: RetentionPlan, result: ExecutionResult) -> None:
    counts = plan.counts()
    parts = [
        f"{group}: keep={counts[group][KEEP]} delete={counts[group][DELETE]}"
        for group in (RELEASE, DEVELOPMENT, "untagged")
        if group != "untagged" or plan.untagged_decisions
    ]
    logger.info(f"Summary {registry_info}: {' | '.join(parts)}")
    logger.info(
        f"Summary {registry_info}: deleted={result.deleted} "
        f"errors={result.failed} skipped={result.skipped}"
    )


def decisions_as_records(plan: RetentionPlan) -> list[dict[str, object]]:
    records: list[dict[str, object]] = [
        {
            "name": d.name,
            "class": d.version_class,
            "age_days": d.age_days,
            "action": d.action,
            "reason": d.reason,
            "protected_by": d.protected_by or None,
            "artifact_ids": list(d.tag.artifact_ids),
        }
        for d in ordered_tag_decisions(plan)
    ]
    records.extend(
        {
            "name": None,
            "class": "untagged",
            "age_days": u.age_days,
            "action": u.action,
            "reason": u.reason,
            "protected_by": None,
            "artifact_ids": [u.identifier],
        }
        for u in ordered_untagged_decisions(plan)
    )
    return records


def write_reports(plan: RetentionPlan, directory: str | Path, registry_name: str) -> list[Path]:
    """Write the decision dump (JSON) and the plan (TSV) for one registry."""
    out_dir = Path(directory)
    out_dir.mkdir(parents=True, exist_ok=True)
    records = decisions_as_records(plan)

    json_path = out_dir / f"{registry_name}-decisions.json"
    with open(json_path, "w") as f:
        json.dump(records, f, indent=2)
        f.write("\n")

    tsv_path = out_dir / f"{registry_name}-plan.tsv"
    with open(tsv_path, "w") as f:
        f.write("action\tclass\tname\tage_days\treason\tartifact_ids\n")
        for d in ordered_tag_decisions(plan):
            ids = ",".join(d.tag.artifact_ids)
            f.write(
                f"{d.action}\t{d.version_class}\t{d.name}\t{d.age_days}\t{d.reason}\t{ids}\n"
            )
        for u in ordered_untagged_decisions(plan):
            f.write(
                f"{u.action}\tuntagged\t\t{u.age_days}\t{u.reason}\t{u.identifier}\n"
            )

    logger.info(f"Wrote {json_path} and {tsv_path}")
    return [json_path, tsv_path]


def write_summary(reports: Sequence[RegistryReport], settings: Settings) -> None:
    """Write cleanup summary to GitHub Actions step summary."""
    if not settings.github_step_summary:
        return

    mode = "Dry Run" if settings.dry_run else "Live"

    with open(settings.github_step_summary, "w") as f:
        f.write(
            f"### Container Registry Retention\n\n"
            f"**Mode:** {mode} | "
            f"**Retention:** Release={settings.max_release_days}d, "
            f"Dev={settings.max_dev_days}d\n\n"
        )
        for report in reports:
            counts = report.plan.counts()
            f.write(f"#### {report.info}\n\n")
            f.write("| Class | Keep | Delete |\n|-------|------|--------|\n")
            for group in (RELEASE, DEVELOPMENT, "untagged"):
                f.write(f"| {group} | {counts[group][KEEP]} | {counts[group][DELETE]} |\n")
            f.write("\n| Deleted | Errors | Skipped |\n|---------|--------|---------|\n")
            f.write(
                f"| {report.result.deleted} | {report.result.failed} "
                f"| {report.result.skipped} |\n\n"
            )

            to_delete = [
                d for d in ordered_tag_decisions(report.plan) if d.action == DELETE
            ]
            if to_delete:
                f.write(f"**Planned deletions: {len(to_delete)} tags**\n\n")
                f.write("| Tag | Class | Age | Reason |\n")
                f.write("|-----|-------|-----|--------|\n")
                for d in to_delete:
                    f.write(
                        f"| `{d.name}` | {d.version_class} | {d.age_days}d | {d.reason} |\n"
                    )
                f.write("\n")

            untagged = ordered_untagged_decisions(report.plan)
            if untagged:
                f.write("| Untagged | Age | Action |\n")
                f.write("|----------|-----|--------|\n")
                for u in untagged:
                    f.write(f"| `{u.identifier}` | {u.age_days}d | {u.action} |\n")
                f.write("\n")
