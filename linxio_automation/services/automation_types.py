"""
Plain data carriers passed between the orchestrator, the action handlers
and the storage collaborators.

Stores hand out snapshots rather than ORM instances so a handler never
holds a session open across the notifier call.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from ..models.automation_rule import RuleStatus, AutomationRule
from ..models.rule_execution import ExecutionOutcomeKind


@dataclass(frozen=True)
class RuleDefinition:
    id: str
    name: str
    status: str
    trigger_type: str
    action_type: str
    trigger_config: Optional[dict] = None
    conditions: Optional[dict] = None
    action_config: Optional[dict] = None
    project_id: Optional[str] = None
    created_by: Optional[str] = None
    description: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == RuleStatus.ACTIVE.value

    @classmethod
    def from_model(cls, rule: AutomationRule) -> "RuleDefinition":
        return cls(
            id=rule.id,
            name=rule.name,
            status=rule.status,
            trigger_type=rule.trigger_type,
            action_type=rule.action_type,
            trigger_config=rule.trigger_config,
            conditions=rule.conditions,
            action_config=rule.action_config,
            project_id=rule.project_id,
            created_by=rule.created_by,
            description=rule.description,
        )


@dataclass(frozen=True)
class ActionContext:
    rule_id: str
    rule_owner: Optional[str] = None
    triggered_by: Optional[str] = None
    project_id: Optional[str] = None

    @property
    def actor(self) -> Optional[str]:
        return self.triggered_by or self.rule_owner


@dataclass
class ActionResult:
    success: bool
    data: dict = field(default_factory=dict)
    error: Optional[str] = None
    retryable: bool = False

    @classmethod
    def ok(cls, **data: Any) -> "ActionResult":
        return cls(success=True, data=data)

    @classmethod
    def failure(cls, error: str, *, retryable: bool = False, **data: Any) -> "ActionResult":
        return cls(success=False, data=data, error=error, retryable=retryable)


@dataclass
class TaskSnapshot:
    id: str
    project_id: str
    task_number: int
    slug: str
    title: str
    type: str
    priority: str
    status_id: str
    status_name: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    sprint_id: Optional[str] = None
    created_by: Optional[str] = None
    assignee_ids: list[str] = field(default_factory=list)
    label_ids: list[str] = field(default_factory=list)

    def to_event(self) -> dict:
        return {
            "id": self.id,
            "projectId": self.project_id,
            "taskNumber": self.task_number,
            "slug": self.slug,
            "title": self.title,
            "type": self.type,
            "priority": self.priority,
            "statusId": self.status_id,
            "dueDate": self.due_date.isoformat() if self.due_date else None,
            "sprintId": self.sprint_id,
            "assigneeIds": list(self.assignee_ids),
        }


@dataclass
class ProjectSnapshot:
    id: str
    slug: str
    workflow_id: Optional[str] = None


@dataclass
class TaskChanges:
    """One atomic update to a task. ``None`` means "leave unchanged"."""

    status_id: Optional[str] = None
    priority: Optional[str] = None
    due_date: Optional[datetime] = None
    clear_due_date: bool = False
    assignee_ids: Optional[list[str]] = None
    replace_assignees: bool = False
    add_label_ids: list[str] = field(default_factory=list)
    updated_by: Optional[str] = None


@dataclass
class TaskDraft:
    project_id: str
    task_number: int
    slug: str
    title: str
    status_id: str
    type: str = "TASK"
    priority: str = "MEDIUM"
    description: Optional[str] = None
    assignee_ids: list[str] = field(default_factory=list)
    due_date: Optional[datetime] = None
    start_date: Optional[datetime] = None
    sprint_id: Optional[str] = None
    created_by: Optional[str] = None


@dataclass
class CommentRecord:
    id: str
    task_id: str
    project_id: str
    author_id: Optional[str]
    content: str


@dataclass
class NotificationDraft:
    user_id: str
    title: str
    message: str
    type: str = "AUTOMATION"
    data: Optional[dict] = None


@dataclass
class ExecutionRecord:
    rule_id: str
    trigger_type: str
    trigger_data: dict
    success: bool
    outcome: str
    execution_time_ms: int
    action_result: Optional[dict] = None
    error_message: Optional[str] = None
    triggered_by_id: Optional[str] = None
    created_by: Optional[str] = None
    job_id: Optional[str] = None
    id: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def skipped(self) -> bool:
        return self.outcome == ExecutionOutcomeKind.SKIPPED.value


@dataclass
class ExecutionOutcome:
    success: bool
    execution_time_ms: int
    skipped: bool = False
    result: Optional[dict] = None
    error: Optional[str] = None
    record_id: Optional[str] = None
    # Terminal orchestrator state, e.g. "RECORDED_SKIPPED"
    state: Optional[str] = None

    def to_dict(self) -> dict:
        out: dict[str, Any] = {"success": self.success, "executionTimeMs": self.execution_time_ms}
        if self.skipped:
            out["skipped"] = True
        if self.result is not None:
            out["result"] = self.result
        if self.error:
            out["error"] = self.error
        return out
