"""
Engine and session factory for the automation database.

``SessionLocal`` is what the SQL stores and the worker open sessions from;
``get_db`` hands one to FastAPI routes.
"""

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from .config import Settings, settings


def engine_options(cfg: Settings) -> dict:
    if cfg.database_url.startswith("sqlite"):
        # Stores are called from executor threads as well as the request thread.
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_pre_ping": True,
        "pool_size": cfg.db_pool_size,
        "max_overflow": cfg.db_max_overflow,
        "pool_recycle": cfg.db_pool_recycle_sec,
        "pool_timeout": cfg.db_pool_timeout_sec,
    }


engine = create_engine(settings.database_url, echo=False, future=True, **engine_options(settings))

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


def get_db():
    """Yield a database session for FastAPI dependencies."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
