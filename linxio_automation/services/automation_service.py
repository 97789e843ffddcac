"""
Wiring for the automation engine.

Builds a ``RuleOrchestrator`` over the SQL stores so the worker, the HTTP
app and tests construct it the same way.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..core.config import Settings, settings as default_settings
from .action_handlers import HandlerDeps, build_default_registry
from .conditions import ConditionEvaluator
from .event_notifier import LogEventNotifier
from .execution_recorder import ExecutionRecorder
from .orchestrator import RuleOrchestrator
from .sql_stores import (
    SessionFactory,
    SqlCommentStore,
    SqlExecutionStore,
    SqlNotificationStore,
    SqlRuleStore,
    SqlTaskStore,
)
from .stores import EventNotifier


logger = logging.getLogger("automation_service")


def build_orchestrator(
    session_factory: Optional[SessionFactory] = None,
    notifier: Optional[EventNotifier] = None,
    cfg: Optional[Settings] = None,
) -> RuleOrchestrator:
    cfg = cfg or default_settings
    if session_factory is None:
        from ..core.db import SessionLocal

        session_factory = SessionLocal
    deps = HandlerDeps(
        task_store=SqlTaskStore(session_factory),
        notification_store=SqlNotificationStore(session_factory),
        comment_store=SqlCommentStore(session_factory),
        notifier=notifier or LogEventNotifier(),
        create_task_max_attempts=cfg.create_task_max_attempts,
    )
    orchestrator = RuleOrchestrator(
        SqlRuleStore(session_factory),
        ConditionEvaluator(),
        build_default_registry(deps),
        ExecutionRecorder(SqlExecutionStore(session_factory)),
        timeout_sec=cfg.automation_execution_timeout_sec,
        record_missing_rules=cfg.automation_record_missing_rules,
    )
    logger.info(
        "Automation orchestrator ready timeout_sec=%s record_missing_rules=%s",
        cfg.automation_execution_timeout_sec,
        cfg.automation_record_missing_rules,
    )
    return orchestrator
