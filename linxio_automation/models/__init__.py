"""
SQLAlchemy model base class for the Linxio automation service.

This package defines ORM models for automation rules and their execution
audit trail, plus the host project-management entities (projects, tasks,
labels, comments, notifications) that action handlers mutate. All models
inherit from the declarative `Base` defined here.
"""

from __future__ import annotations

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""

    pass


from .user import User  # noqa: E402,F401
from .project import Project, TaskStatus, Label  # noqa: E402,F401
from .task import Task, TaskAssignee, TaskLabel, TaskComment  # noqa: E402,F401
from .notification import Notification  # noqa: E402,F401
from .automation_rule import AutomationRule  # noqa: E402,F401
from .rule_execution import RuleExecution  # noqa: E402,F401

__all__ = [
    "Base",

    # Automation
    "AutomationRule",
    "RuleExecution",

    # Projects / Tasks
    "Project",
    "TaskStatus",
    "Label",
    "Task",
    "TaskAssignee",
    "TaskLabel",
    "TaskComment",

    # Users / Notifications
    "User",
    "Notification",
]
