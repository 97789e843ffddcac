"""
Entry point for the Linxio automation HTTP app.

This module creates the FastAPI application and includes the API routers.
Run with:

    uvicorn linxio_automation.main:app --reload

"""

from __future__ import annotations

import logging

from fastapi import FastAPI

from .api import api_router
from .core.config import settings, get_app_env
from .core.db import engine
from .core.errors import log_exception
from .core.logging_config import setup_logging
from .models import Base
from .scripts.run_migrations import run_migrations_to_head
from .services.automation_service import build_orchestrator
from .services.event_notifier import MqttEventNotifier, build_event_notifier


def create_app() -> FastAPI:
    app = FastAPI(title="Linxio Automation", version="0.1.0")
    app.include_router(api_router)
    app.state.orchestrator = None
    app.state.event_notifier = None
    app.state.job_consumer = None

    @app.on_event("startup")
    def _init_db() -> None:
        logger = logging.getLogger("startup")
        env = get_app_env()
        if settings.auto_create_db:
            try:
                Base.metadata.create_all(bind=engine)
            except Exception as exc:
                log_exception(logger, "DB create_all failed", exc=exc)
                if env == "prod":
                    raise
        if settings.auto_run_migrations:
            try:
                run_migrations_to_head()
            except Exception as exc:
                log_exception(logger, "DB migrations failed", exc=exc)
                if env == "prod":
                    raise
        if app.state.orchestrator is None:
            app.state.event_notifier = build_event_notifier(settings)
            app.state.orchestrator = build_orchestrator(notifier=app.state.event_notifier)

    @app.on_event("shutdown")
    def _shutdown() -> None:
        orchestrator = app.state.orchestrator
        if orchestrator is not None:
            orchestrator.shutdown()
        notifier = app.state.event_notifier
        if isinstance(notifier, MqttEventNotifier):
            notifier.stop()

    return app


setup_logging(settings.log_level)
app = create_app()
