"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_TASK_STATUSES = {"pending", "off"}
_VERBOSITIES = {"silent", "normal", "debug"}


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """crontask configuration. All values come from environment variables."""

    # Database
    database_path: Path = Field(default=Path("data/crontask.db"))

    # Turso (hosted libSQL): when set, overrides local database_path
    turso_database_url: str = Field(default="")
    turso_auth_token: str = Field(default="")

    # Scheduling
    scheduler_timezone: str = Field(default="UTC")
    default_task_status: str = Field(default="pending")
    default_max_execution_seconds: int = Field(default=300, gt=0)

    # Task discovery: comma separated module paths imported at startup
    cron_task_modules: str = Field(default="")

    # Reporting
    cron_verbosity: str = Field(default="normal")

    # HTTP endpoint
    cron_secret: str = Field(default="")
    webhook_port: int = Field(default=8443)

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    @field_validator("default_task_status")
    @classmethod
    def _check_task_status(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in _TASK_STATUSES:
            msg = f"DEFAULT_TASK_STATUS must be one of {sorted(_TASK_STATUSES)}"
            raise ValueError(msg)
        return value

    @field_validator("cron_verbosity")
    @classmethod
    def _check_verbosity(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in _VERBOSITIES:
            msg = f"CRON_VERBOSITY must be one of {sorted(_VERBOSITIES)}"
            raise ValueError(msg)
        return value

    def get_task_modules(self) -> list[str]:
        """Parse CRON_TASK_MODULES into a list of importable module paths."""
        if not self.cron_task_modules.strip():
            return []
        return [name.strip() for name in self.cron_task_modules.split(",") if name.strip()]


settings = Settings()
