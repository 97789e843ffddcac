"""
Bring the automation database schema up to the latest Alembic revision.

Usage:
    python -m linxio_automation.scripts.run_migrations
    linxio-automation-migrate
"""

from __future__ import annotations

import logging
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

from ..core.config import settings
from ..core.logging_config import setup_logging


# Revision matching the schema that Base.metadata.create_all() produces.
CREATE_ALL_REVISION = "20261017_02"
AUTOMATION_TABLES = frozenset({"automation_rules", "rule_executions"})

logger = logging.getLogger("run_migrations")


def alembic_config(database_url: str | None = None) -> Config:
    root = Path(__file__).resolve().parents[2]
    ini_path = root / "alembic.ini"
    if not ini_path.is_file():
        raise FileNotFoundError(f"alembic.ini not found at {ini_path}")
    cfg = Config(str(ini_path))
    cfg.set_main_option("script_location", str(root / "alembic"))
    cfg.set_main_option("sqlalchemy.url", database_url or settings.database_url)
    return cfg


def _built_without_alembic(database_url: str) -> bool:
    engine = create_engine(database_url)
    try:
        tables = set(inspect(engine).get_table_names())
    finally:
        engine.dispose()
    return "alembic_version" not in tables and AUTOMATION_TABLES <= tables


def run_migrations_to_head(database_url: str | None = None) -> None:
    cfg = alembic_config(database_url)
    url = cfg.get_main_option("sqlalchemy.url")
    if _built_without_alembic(url):
        logger.info("Stamping pre-existing schema at %s", CREATE_ALL_REVISION)
        command.stamp(cfg, CREATE_ALL_REVISION)
    command.upgrade(cfg, "head")
    logger.info("Automation schema is at head")


def main() -> int:
    setup_logging(settings.log_level)
    try:
        run_migrations_to_head()
    except Exception as exc:
        logger.error("Migration failed: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
