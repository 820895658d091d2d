"""Tests for logic module."""

import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import requests

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from helpers import NOW, artifact, tag_artifacts
from registry_prune.base import DeletionTarget
from registry_prune.errors import DeletionDeclined
from registry_prune.logic import (
    DELETE,
    EXPIRED,
    FORCED_KEEP,
    KEEP,
    PROTECTED,
    WITHIN_THRESHOLD,
    DeleteBudget,
    RetentionPlan,
    RetentionPolicy,
    build_tags,
    create_retention_plan,
    execute_plan,
)
from registry_prune.retry import RetryPolicy


def actions(plan: RetentionPlan) -> dict[str, str]:
    return {d.name: d.action for d in plan.tag_decisions}


def http_error(status: int) -> requests.exceptions.HTTPError:
    response = requests.Response()
    response.status_code = status
    return requests.exceptions.HTTPError(f"{status} error", response=response)


NO_WAIT = RetryPolicy(max_attempts=3, sleep=lambda _: None)


class TestBuildTags:
    def test_deduplicates_with_youngest_age(self) -> None:
        artifacts = [
            artifact("a", ["v1.0.0", "main"], 30),
            artifact("b", ["main"], 2),
            artifact("c", ["main", "main"], 10),
        ]
        tags = build_tags(artifacts, NOW)
        assert [t.name for t in tags] == ["v1.0.0", "main"]
        main = tags[1]
        assert main.age_days == 2
        assert main.artifact_ids == ("a", "b", "c")
        assert main.version_class == "development"
        assert tags[0].is_release

    def test_untagged_artifacts_produce_no_tags(self) -> None:
        assert build_tags([artifact("a", [], 3)], NOW) == []


class TestScenarios:
    def test_default_policy(self) -> None:
        """latest and the highest release are protected, the rest ages out."""
        artifacts = tag_artifacts(
            {
                "latest": 0,
                "v2.1.0": 45,
                "v2.0.1": 60,
                "v1.5.0": 95,
                "feature-old": 120,
                "pr-123": 40,
            }
        )
        policy = RetentionPolicy(max_release_days=90, max_dev_days=60)
        plan = create_retention_plan(artifacts, policy, NOW)

        assert actions(plan) == {
            "latest": KEEP,
            "v2.1.0": KEEP,
            "v2.0.1": KEEP,
            "v1.5.0": DELETE,
            "feature-old": DELETE,
            "pr-123": KEEP,
        }
        assert plan.decision_for("v2.1.0").reason == PROTECTED  # type: ignore[union-attr]
        assert plan.decision_for("v2.0.1").reason == WITHIN_THRESHOLD  # type: ignore[union-attr]
        assert plan.decision_for("v1.5.0").reason == EXPIRED  # type: ignore[union-attr]

    def test_minor_scope_heads(self) -> None:
        artifacts = tag_artifacts({"1.2.3": 10, "1.2.5": 5, "1.3.0": 1})
        policy = RetentionPolicy(
            max_release_days=0, max_dev_days=0, scope_enabled=True, scope="minor"
        )
        plan = create_retention_plan(artifacts, policy, NOW)
        assert plan.protection.names == {"latest", "1.2.5", "1.3.0"}
        assert plan.protection.highest == "1.3.0"
        assert actions(plan) == {"1.2.3": DELETE, "1.2.5": KEEP, "1.3.0": KEEP}

    def test_force_keep_picks_youngest(self) -> None:
        """The youngest dev tag is force-kept even when already within threshold."""
        artifacts = tag_artifacts({"a": 5, "b": 50})
        policy = RetentionPolicy(max_release_days=90, max_dev_days=10, keep_dev_count=1)
        plan = create_retention_plan(artifacts, policy, NOW)
        assert plan.decision_for("a").reason == FORCED_KEEP  # type: ignore[union-attr]
        assert plan.decision_for("b").action == DELETE  # type: ignore[union-attr]


class TestRetentionRules:
    def test_threshold_is_inclusive(self) -> None:
        artifacts = tag_artifacts({"main": 7, "dev": 8, "0.1.0": 30, "0.0.9": 31, "1.0.0": 0})
        policy = RetentionPolicy(max_release_days=30, max_dev_days=7)
        plan = create_retention_plan(artifacts, policy, NOW)
        assert actions(plan) == {
            "main": KEEP,
            "dev": DELETE,
            "0.1.0": KEEP,
            "0.0.9": DELETE,
            "1.0.0": KEEP,
        }

    def test_zero_threshold_keeps_only_protected_and_fresh(self) -> None:
        artifacts = tag_artifacts({"latest": 400, "main": 1, "today": 0})
        policy = RetentionPolicy(max_release_days=0, max_dev_days=0)
        plan = create_retention_plan(artifacts, policy, NOW)
        assert actions(plan) == {"latest": KEEP, "main": DELETE, "today": KEEP}

    def test_protected_tags_kept_regardless_of_age(self) -> None:
        artifacts = tag_artifacts({"latest": 5000, "stable": 5000, "9.9.9": 5000})
        policy = RetentionPolicy(
            max_release_days=1, max_dev_days=1, protected_tags=("latest", "stable")
        )
        plan = create_retention_plan(artifacts, policy, NOW)
        assert all(d.action == KEEP and d.reason == PROTECTED for d in plan.tag_decisions)

    def test_force_keep_skips_protected_and_respects_count(self) -> None:
        artifacts = tag_artifacts(
            {"latest": 0, "3.0.0": 200, "2.0.0": 150, "1.0.0": 100, "0.9.0": 100}
        )
        policy = RetentionPolicy(max_release_days=10, max_dev_days=10, keep_release_count=2)
        plan = create_retention_plan(artifacts, policy, NOW)
        forced = [d.name for d in plan.tag_decisions if d.reason == FORCED_KEEP]
        # equal ages fall back to fetch order
        assert forced == ["1.0.0", "0.9.0"]
        assert plan.decision_for("3.0.0").reason == PROTECTED  # type: ignore[union-attr]
        assert plan.decision_for("2.0.0").action == DELETE  # type: ignore[union-attr]

    def test_force_keep_counts_are_per_class(self) -> None:
        artifacts = tag_artifacts({"main": 50, "dev": 60, "2.0.0": 1, "1.0.0": 70})
        policy = RetentionPolicy(
            max_release_days=10, max_dev_days=10, keep_release_count=0, keep_dev_count=5
        )
        plan = create_retention_plan(artifacts, policy, NOW)
        assert actions(plan) == {
            "main": KEEP,
            "dev": KEEP,
            "2.0.0": KEEP,
            "1.0.0": DELETE,
        }

    def test_untagged_only_when_included(self) -> None:
        artifacts = [artifact("u1", [], 3), artifact("u2", [], 30), artifact("t", ["main"], 1)]
        excluded = create_retention_plan(
            artifacts, RetentionPolicy(max_release_days=5, max_dev_days=5), NOW
        )
        assert excluded.untagged_decisions == []

        policy = RetentionPolicy(
            max_release_days=5, max_dev_days=5, include_untagged=True, max_untagged_days=3
        )
        plan = create_retention_plan(artifacts, policy, NOW)
        assert [(u.identifier, u.action) for u in plan.untagged_decisions] == [
            ("u1", KEEP),
            ("u2", DELETE),
        ]
        assert plan.counts()["untagged"] == {KEEP: 1, DELETE: 1}

    def test_plan_is_idempotent(self) -> None:
        artifacts = tag_artifacts({"latest": 0, "1.0.0": 40, "1.1.0": 100, "x": 9, "y": 9})
        policy = RetentionPolicy(max_release_days=30, max_dev_days=5, keep_dev_count=1)
        first = create_retention_plan(artifacts, policy, NOW)
        second = create_retention_plan(artifacts, policy, NOW)
        assert first.tag_decisions == second.tag_decisions
        assert first.protection == second.protection

    def test_counts(self) -> None:
        artifacts = tag_artifacts({"latest": 0, "1.0.0": 40, "0.9.0": 100, "x": 9})
        policy = RetentionPolicy(max_release_days=30, max_dev_days=5)
        counts = create_retention_plan(artifacts, policy, NOW).counts()
        assert counts["release"] == {KEEP: 1, DELETE: 1}
        assert counts["development"] == {KEEP: 1, DELETE: 1}


class TestRetentionPolicy:
    def test_from_settings(self) -> None:
        from registry_prune.settings import Settings

        settings = Settings(
            max_release_days=90,
            max_dev_days=14,
            protect="stable, edge",
            keep_dev_count=2,
            protect_latest_per_scope=True,
            protect_scope="minor",
        )
        policy = RetentionPolicy.from_settings(settings)
        assert policy.max_release_days == 90
        assert policy.max_dev_days == 14
        assert policy.protected_tags == ("latest", "stable", "edge")
        assert policy.keep_dev_count == 2
        assert policy.scope_enabled
        assert policy.scope == "minor"

    def test_from_settings_missing_thresholds(self) -> None:
        from registry_prune.errors import ConfigurationError
        from registry_prune.settings import Settings

        with pytest.raises(ConfigurationError, match="MAX_DEV_DAYS"):
            RetentionPolicy.from_settings(Settings(max_release_days=90))


def _registry(*names: str) -> MagicMock:
    registry = MagicMock()
    registry.deletion_targets.return_value = [DeletionTarget(n, f"tag {n}") for n in names]
    return registry


EMPTY_PLAN = RetentionPlan([])


class TestExecutePlan:
    def test_nothing_to_delete(self) -> None:
        registry = _registry()
        result = execute_plan(registry, EMPTY_PLAN, dry_run=False)
        assert (result.deleted, result.failed, result.skipped) == (0, 0, 0)
        registry.delete.assert_not_called()

    def test_dry_run_makes_no_calls(self) -> None:
        registry = _registry("a", "b")
        confirm = MagicMock(return_value=True)
        result = execute_plan(registry, EMPTY_PLAN, dry_run=True, confirm=confirm)
        registry.delete.assert_not_called()
        confirm.assert_not_called()
        assert result.deleted == 0

    def test_deletes_in_order(self) -> None:
        registry = _registry("a", "b", "c")
        result = execute_plan(registry, EMPTY_PLAN, dry_run=False, retry=NO_WAIT)
        assert result.deleted == 3
        assert [c.args[0].identifier for c in registry.delete.call_args_list] == [
            "a",
            "b",
            "c",
        ]

    def test_failure_does_not_abort_remaining(self) -> None:
        registry = _registry("a", "b", "c")
        registry.delete.side_effect = [None, http_error(404), None]
        result = execute_plan(registry, EMPTY_PLAN, dry_run=False, retry=NO_WAIT)
        assert result.deleted == 2
        assert result.failed == 1
        assert registry.delete.call_count == 3

    def test_retryable_failure_is_retried(self) -> None:
        registry = _registry("a")
        registry.delete.side_effect = [http_error(429), http_error(502), None]
        result = execute_plan(registry, EMPTY_PLAN, dry_run=False, retry=NO_WAIT)
        assert result.deleted == 1
        assert registry.delete.call_count == 3

    def test_retries_exhausted(self) -> None:
        registry = _registry("a", "b")
        registry.delete.side_effect = [http_error(500)] * 3 + [None]
        result = execute_plan(registry, EMPTY_PLAN, dry_run=False, retry=NO_WAIT)
        assert result.failed == 1
        assert result.deleted == 1

    def test_connection_error_is_not_fatal(self) -> None:
        registry = _registry("a", "b")
        registry.delete.side_effect = [requests.exceptions.ConnectionError("down"), None]
        result = execute_plan(registry, EMPTY_PLAN, dry_run=False, retry=NO_WAIT)
        assert (result.deleted, result.failed) == (1, 1)

    def test_delete_limit_is_global(self) -> None:
        budget = DeleteBudget(3)
        first = execute_plan(_registry("a", "b"), EMPTY_PLAN, False, budget, retry=NO_WAIT)
        second_registry = _registry("c", "d", "e")
        second = execute_plan(second_registry, EMPTY_PLAN, False, budget, retry=NO_WAIT)
        assert first.deleted == 2
        assert second.deleted == 1
        assert second.skipped == 2
        assert second_registry.delete.call_count == 1

    def test_failed_calls_count_against_limit(self) -> None:
        registry = _registry("a", "b")
        registry.delete.side_effect = [http_error(403), None]
        result = execute_plan(registry, EMPTY_PLAN, False, DeleteBudget(1), retry=NO_WAIT)
        assert (result.deleted, result.failed, result.skipped) == (0, 1, 1)

    def test_confirmation_declined(self) -> None:
        registry = _registry("a")
        with pytest.raises(DeletionDeclined):
            execute_plan(registry, EMPTY_PLAN, False, confirm=lambda pending: False)
        registry.delete.assert_not_called()

    def test_confirmation_receives_pending_count(self) -> None:
        registry = _registry("a", "b")
        confirm = MagicMock(return_value=True)
        execute_plan(registry, EMPTY_PLAN, False, confirm=confirm, retry=NO_WAIT)
        confirm.assert_called_once_with(2)
        assert registry.delete.call_count == 2
