"""
Configuration for the Linxio automation service.

Settings are loaded from environment variables or a `.env` file next to the
project root, with defaults suitable for local development. The worker and
the HTTP app share the same settings object.
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from pathlib import Path
from dotenv import load_dotenv
import logging
import os

ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(ENV_PATH, override=False)


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    # Local default is a SQLite file; production points this at PostgreSQL.
    database_url: str = Field(default="sqlite+pysqlite:///./linxio_automation.db")
    mqtt_broker_host: str = Field(default="localhost")
    mqtt_broker_port: int = Field(default=1883)
    mqtt_username: str | None = Field(default=None)
    mqtt_password: str | None = Field(default=None)
    mqtt_topic_prefix: str = Field(default="linxio")
    # log | mqtt
    event_notifier: str = Field(default="log")
    auto_create_db: bool = Field(default=True)
    auto_run_migrations: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    # Pool options apply to server databases only; SQLite uses a single-file connection.
    db_pool_size: int = Field(default=5)
    db_max_overflow: int = Field(default=10)
    db_pool_recycle_sec: int = Field(default=1800)
    db_pool_timeout_sec: int = Field(default=30)

    # Overall budget for one rule execution; 0 or None disables the timeout.
    automation_execution_timeout_sec: float | None = Field(default=30.0)
    # Write an audit record even when the rule is missing or inactive.
    automation_record_missing_rules: bool = Field(default=False)
    automation_job_max_attempts: int = Field(default=3)
    create_task_max_attempts: int = Field(default=3)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def automation_job_topic(self) -> str:
        return f"{self.mqtt_topic_prefix}/automation/jobs"


settings = Settings()


def get_app_env() -> str:
    raw = os.getenv("LINXIO_ENV") or os.getenv("APP_ENV") or "dev"
    env = raw.strip().lower()
    if env not in {"dev", "prod"}:
        logging.getLogger("config").warning("Unknown LINXIO_ENV=%s; defaulting to dev", raw)
        env = "dev"
    return env


def validate_runtime_settings(current: Settings | None = None) -> None:
    cfg = current or settings
    env = get_app_env()
    logger = logging.getLogger("config")

    notifier = (cfg.event_notifier or "").strip().lower()
    if notifier not in {"log", "mqtt"}:
        logger.error("EVENT_NOTIFIER=%s is not supported; falling back to log notifier.", cfg.event_notifier)
        cfg.event_notifier = "log"
    if cfg.automation_job_max_attempts < 1:
        logger.warning("AUTOMATION_JOB_MAX_ATTEMPTS=%s is below 1; using 1.", cfg.automation_job_max_attempts)
        cfg.automation_job_max_attempts = 1
    if cfg.create_task_max_attempts < 1:
        logger.warning("CREATE_TASK_MAX_ATTEMPTS=%s is below 1; using 1.", cfg.create_task_max_attempts)
        cfg.create_task_max_attempts = 1

    if env == "prod":
        if cfg.database_url.startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must point at a server database in prod.")
        if cfg.auto_create_db:
            logger.warning("AUTO_CREATE_DB is enabled in prod. Consider setting it to false.")
        if not cfg.automation_execution_timeout_sec:
            logger.warning("AUTOMATION_EXECUTION_TIMEOUT_SEC is disabled in prod; a stuck handler blocks its worker.")
        if notifier == "log":
            logger.warning("EVENT_NOTIFIER=log in prod; connected clients will not receive live updates.")


validate_runtime_settings()
