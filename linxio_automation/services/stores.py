"""
Collaborator interfaces consumed by the rule engine.

The host application owns rules, tasks, comments and notifications. The
engine talks to them only through these base classes; ``sql_stores``
provides the SQLAlchemy implementations and tests substitute in-memory
ones.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from .automation_types import (
    CommentRecord,
    ExecutionRecord,
    NotificationDraft,
    ProjectSnapshot,
    RuleDefinition,
    TaskChanges,
    TaskDraft,
    TaskSnapshot,
)


class RuleStore:
    def find_by_id(self, rule_id: str) -> Optional[RuleDefinition]:
        raise NotImplementedError

    def set_status(self, rule_id: str, status: str) -> Optional[RuleDefinition]:
        raise NotImplementedError


class ExecutionStore:
    def create(self, record: ExecutionRecord) -> ExecutionRecord:
        raise NotImplementedError

    def list_for_rule(
        self,
        rule_id: str,
        *,
        success: Optional[bool] = None,
        since: Optional[datetime] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> tuple[list[ExecutionRecord], int]:
        raise NotImplementedError


class TaskStore:
    def get(self, task_id: str) -> Optional[TaskSnapshot]:
        raise NotImplementedError

    def update(self, task_id: str, changes: TaskChanges) -> TaskSnapshot:
        """Apply ``changes`` in one transaction. Raises EntityNotFoundError."""
        raise NotImplementedError

    def find_project(self, project_id: str) -> Optional[ProjectSnapshot]:
        raise NotImplementedError

    def find_default_status(self, workflow_id: Optional[str]) -> Optional[str]:
        raise NotImplementedError

    def find_next_sequence(self, project_id: str) -> int:
        raise NotImplementedError

    def create(self, draft: TaskDraft) -> TaskSnapshot:
        """Insert a task. Raises TaskSequenceConflictError on a number/slug clash."""
        raise NotImplementedError


class NotificationStore:
    def create(self, drafts: list[NotificationDraft]) -> list[str]:
        raise NotImplementedError


class CommentStore:
    def create(self, task_id: str, content: str, author_id: Optional[str]) -> CommentRecord:
        raise NotImplementedError


class EventNotifier:
    """Fire-and-forget channel to connected clients."""

    def emit(self, kind: str, payload: dict) -> None:
        raise NotImplementedError
