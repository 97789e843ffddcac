"""
Automation rule definitions.

A rule pairs one trigger type with an optional condition spec and exactly one
action. The engine only reads rules; authoring happens in the host product
API. The enable/disable endpoints are the only writers in this service.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import String, DateTime, Text, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column

from . import Base


class RuleStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class TriggerType(str, Enum):
    TASK_CREATED = "TASK_CREATED"
    TASK_UPDATED = "TASK_UPDATED"
    TASK_STATUS_CHANGED = "TASK_STATUS_CHANGED"
    TASK_ASSIGNED = "TASK_ASSIGNED"
    TASK_PRIORITY_CHANGED = "TASK_PRIORITY_CHANGED"
    TASK_COMMENTED = "TASK_COMMENTED"
    TASK_DUE_DATE_APPROACHING = "TASK_DUE_DATE_APPROACHING"
    SPRINT_STARTED = "SPRINT_STARTED"
    SPRINT_COMPLETED = "SPRINT_COMPLETED"


class ActionType(str, Enum):
    ASSIGN_TASK = "ASSIGN_TASK"
    CHANGE_STATUS = "CHANGE_STATUS"
    ADD_LABEL = "ADD_LABEL"
    SEND_NOTIFICATION = "SEND_NOTIFICATION"
    ADD_COMMENT = "ADD_COMMENT"
    CHANGE_PRIORITY = "CHANGE_PRIORITY"
    SET_DUE_DATE = "SET_DUE_DATE"
    CREATE_TASK = "CREATE_TASK"


class AutomationRule(Base):
    __tablename__ = "automation_rules"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(256))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), default=RuleStatus.ACTIVE.value)
    trigger_type: Mapped[str] = mapped_column(String(48), index=True)
    # Legacy filters (taskType, priority, projectId, assigneeId) and optional nested conditions
    trigger_config: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    conditions: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    action_type: Mapped[str] = mapped_column(String(48))
    action_config: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    project_id: Mapped[str | None] = mapped_column(String(36), index=True, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_automation_rules_project_trigger_status", "project_id", "trigger_type", "status"),
    )
