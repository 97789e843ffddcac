"""
Health endpoints for the automation service.
"""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.orm import Session

from ...core.config import settings
from ...core.db import get_db
from ...core.errors import log_exception


router = APIRouter(prefix="/api/v1/health", tags=["health"])

logger = logging.getLogger("health")


@router.get("")
def health(request: Request, db: Session = Depends(get_db)) -> dict:
    database_ok = True
    try:
        db.execute(text("SELECT 1"))
    except Exception as exc:
        log_exception(logger, "Database health check failed", exc=exc)
        database_ok = False

    mqtt_status = {"enabled": False, "connected": False, "topic": settings.automation_job_topic}
    consumer = getattr(request.app.state, "job_consumer", None)
    if consumer is not None:
        mqtt_status["enabled"] = True
        mqtt_status["connected"] = consumer.is_connected()

    return {
        "status": "ok" if database_ok else "degraded",
        "timestamp_utc": datetime.utcnow().isoformat() + "Z",
        "database": {"ok": database_ok},
        "job_consumer": mqtt_status,
    }
