from typing import Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from registry_prune.errors import ConfigurationError

ALWAYS_PROTECTED = ("latest",)

LogLevel = Literal["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="", case_sensitive=False, extra="ignore", env_ignore_empty=True
    )

    max_release_days: int | None = Field(default=None, ge=0)
    max_dev_days: int | None = Field(default=None, ge=0)

    protect: str = ""
    protect_latest_per_scope: bool = False
    protect_scope: Literal["minor", "patch"] = "patch"

    keep_release_count: int = Field(default=0, ge=0)
    keep_dev_count: int = Field(default=0, ge=0)

    include_untagged: bool = False
    max_untagged_days: int | None = Field(default=None, ge=0)

    delete_limit: int | None = Field(default=None, ge=0)
    dry_run: bool = True
    assume_yes: bool = False

    max_retries: int = Field(default=4, ge=1)
    retry_base_delay: float = Field(default=1.0, ge=0)

    report_dir: str = ""
    github_step_summary: str = ""
    log_level: LogLevel = "INFO"

    ghcr_owner_type: str = "users"
    ghcr_owner: str = Field(
        default="", validation_alias=AliasChoices("ghcr_owner", "github_repo_owner")
    )
    ghcr_token: str = Field(
        default="", validation_alias=AliasChoices("ghcr_token", "github_token")
    )
    ghcr_package: str = ""

    dockerhub_username: str = ""
    dockerhub_password: str = ""
    dockerhub_namespace: str = ""
    dockerhub_repository: str = ""

    @field_validator(
        "dry_run",
        "assume_yes",
        "include_untagged",
        "protect_latest_per_scope",
        mode="before",
    )
    @classmethod
    def _parse_bool(cls, v: str | bool) -> bool:
        return v if isinstance(v, bool) else v.lower() == "true"

    @field_validator("protect_scope", mode="before")
    @classmethod
    def _normalize_scope(cls, v: str) -> str:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_level(cls, v: str) -> str:
        return v.strip().upper() if isinstance(v, str) else v

    @property
    def protected_tags(self) -> tuple[str, ...]:
        """Explicitly protected tags. `latest` is always included."""
        extra = [t.strip() for t in self.protect.split(",") if t.strip()]
        return tuple(dict.fromkeys([*ALWAYS_PROTECTED, *extra]))

    def validate_for_run(self) -> None:
        """Check settings required once at least one registry is enabled."""
        missing = [
            name.upper()
            for name in ("max_release_days", "max_dev_days")
            if getattr(self, name) is None
        ]
        if self.include_untagged and self.max_untagged_days is None:
            missing.append("MAX_UNTAGGED_DAYS")
        if missing:
            raise ConfigurationError(
                f"Missing required setting(s): {', '.join(missing)}"
            )
