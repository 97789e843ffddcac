"""
Automation worker process entrypoint.

Subscribes to the automation job topic and runs each job through the rule
orchestrator until interrupted.
"""

from __future__ import annotations

import logging
import os
import time

from .core.config import settings
from .core.db import engine
from .core.errors import log_exception
from .core.logging_config import setup_logging
from .models import Base
from .services.automation_service import build_orchestrator
from .services.event_notifier import MqttEventNotifier, build_event_notifier
from .services.job_consumer import AutomationJobConsumer


logger = logging.getLogger("worker")


def main() -> int:
    setup_logging(settings.log_level, os.getenv("WORKER_LOG_FILE") or None)
    logger.info("Automation worker booted (pid=%s)", os.getpid())
    interval = int(os.getenv("WORKER_INTERVAL_SEC", "5"))

    if settings.auto_create_db:
        try:
            Base.metadata.create_all(bind=engine)
        except Exception as exc:
            log_exception(logger, "DB create_all failed", exc=exc)
            return 1

    notifier = build_event_notifier(settings)
    orchestrator = build_orchestrator(notifier=notifier)
    consumer = AutomationJobConsumer(orchestrator, settings)
    consumer.start()
    logger.info("Worker consuming %s", consumer.topic)

    try:
        while True:
            time.sleep(interval)
            if not consumer.is_connected():
                logger.warning("Job consumer not connected to %s:%s", settings.mqtt_broker_host, settings.mqtt_broker_port)
    except KeyboardInterrupt:
        logger.info("Worker stopping")
    finally:
        consumer.stop()
        orchestrator.shutdown()
        if isinstance(notifier, MqttEventNotifier):
            notifier.stop()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
