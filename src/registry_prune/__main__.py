import sys

from loguru import logger
from pydantic import ValidationError

from registry_prune.errors import ConfigurationError, DeletionDeclined, FetchError, LoginError
from registry_prune.logic import (
    DeleteBudget,
    ExecutionResult,
    RetentionPolicy,
    create_retention_plan,
    execute_plan,
)
from registry_prune.registry import init_registries
from registry_prune.report import RegistryReport, log_plan, log_summary, write_reports, write_summary
from registry_prune.retry import RetryPolicy
from registry_prune.settings import Settings


def prompt_confirmation(pending: int) -> bool:
    try:
        answer = input(f"Delete {pending} artifact(s)? [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def main() -> int:
    try:
        settings = Settings()
    except ValidationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    logger.remove()
    logger.add(sys.stderr, level=settings.log_level)

    try:
        registries = init_registries(settings)
        if not registries:
            logger.info("No registry settings provided. Nothing to do.")
            return 0
        policy = RetentionPolicy.from_settings(settings)
    except ConfigurationError as e:
        logger.error(f"Error: {e}")
        return 1

    logger.info(
        f"Protected: {', '.join(policy.protected_tags)} | "
        f"Release={policy.max_release_days}d, Dev={policy.max_dev_days}d | "
        f"Dry run: {settings.dry_run}"
    )

    budget = DeleteBudget(settings.delete_limit)
    retry = RetryPolicy(
        max_attempts=settings.max_retries, base_delay=settings.retry_base_delay
    )
    interactive = (
        not settings.dry_run and not settings.assume_yes and sys.stdin.isatty()
    )
    confirm = prompt_confirmation if interactive else None

    total = ExecutionResult()
    reports: list[RegistryReport] = []

    for registry, registry_info in registries:
        logger.info(f"==> {registry_info}")
        if policy.include_untagged and not registry.supports_untagged:
            logger.warning(f"{registry_info}: untagged cleanup not supported, ignored")
        try:
            registry.login()
        except LoginError as e:
            logger.error(f"{e}. Skipping {registry_info}")
            continue

        try:
            artifacts = registry.list_artifacts()
        except FetchError as e:
            logger.error(f"{e}. Continuing with {len(e.artifacts)} artifact(s) retrieved")
            artifacts = e.artifacts
        logger.info(f"Found {len(artifacts)} artifact(s)")

        plan = create_retention_plan(artifacts, policy)
        log_plan(plan, registry_info)

        if settings.report_dir:
            try:
                write_reports(plan, settings.report_dir, registry.name)
            except OSError as e:
                logger.error(f"Could not write reports: {e}")

        try:
            result = execute_plan(
                registry, plan, settings.dry_run, budget, confirm=confirm, retry=retry
            )
        except DeletionDeclined as e:
            logger.error(f"Aborted: {e}")
            return 1

        log_summary(registry_info, plan, result)
        total += result
        reports.append(RegistryReport(registry_info, plan, result))

    write_summary(reports, settings)

    return 0 if total.failed == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
