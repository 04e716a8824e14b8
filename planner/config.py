from typing import Literal

from pydantic import Field, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PlannerSettings(BaseSettings):
    """Deployment configuration, read from ``PLANNER_*`` and ``DJANGO_*`` variables."""

    model_config = SettingsConfigDict(
        env_prefix="PLANNER_",
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    # Django core
    secret_key: str = Field("insecure-dev-key-change-me", validation_alias="DJANGO_SECRET_KEY")
    debug: bool = Field(False, validation_alias="DJANGO_DEBUG")
    allowed_hosts: str = Field("localhost,127.0.0.1", validation_alias="DJANGO_ALLOWED_HOSTS")

    # Database; SQLite unless overridden
    db_engine: str = "django.db.backends.sqlite3"
    db_name: str = "db.sqlite3"
    db_user: str = ""
    db_password: str = ""
    db_host: str = ""
    db_port: str = ""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: Literal["console", "json"] = "console"

    allow_weekend_assignments: bool = True
    skip_weekend_window_start: bool = False

    @field_validator("log_level", mode="before")
    @classmethod
    def upper_log_level(cls, value):
        return value.upper() if isinstance(value, str) else value

    @computed_field  # type: ignore[prop-decorator]
    @property
    def allowed_host_list(self) -> list[str]:
        return [host.strip() for host in self.allowed_hosts.split(",") if host.strip()]

    def database(self, base_dir) -> dict:
        name = self.db_name
        if self.db_engine.endswith("sqlite3") and not name.startswith("/"):
            name = str(base_dir / name)
        return {
            "ENGINE": self.db_engine,
            "NAME": name,
            "USER": self.db_user,
            "PASSWORD": self.db_password,
            "HOST": self.db_host,
            "PORT": self.db_port,
        }

    def scheduling(self) -> dict:
        return {
            "MAX_TASKS_PER_SLOT": 4,
            "SLOT_HOURS": 4.0,
            "DEFAULT_TASK_ESTIMATED_HOURS": 4,
            "ALLOW_WEEKEND_ASSIGNMENTS": self.allow_weekend_assignments,
            "SKIP_WEEKEND_WINDOW_START": self.skip_weekend_window_start,
        }
