"""
Pydantic schemas for per-action configuration.

Rule authors write ``action_config`` in camelCase. Unknown keys are ignored
so configs written for newer builders still run here.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from ..models.task import Priority, TaskType


def parse_when(value: Any) -> Any:
    """Accept a bare ISO date ("2026-10-20") as midnight of that day."""
    if isinstance(value, str):
        text = value.strip()
        if len(text) == 10:
            try:
                return datetime.combine(date.fromisoformat(text), datetime.min.time())
            except ValueError:
                return value
        return text
    return value


def _upper(value: Any) -> Any:
    return value.strip().upper() if isinstance(value, str) else value


class ActionConfig(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, alias_generator=to_camel)


class TaskActionConfig(ActionConfig):
    # Overrides the task id taken from the trigger payload
    task_id: Optional[str] = None


class AssignTaskConfig(TaskActionConfig):
    assignee_ids: List[str]
    replace_existing: bool = False

    @model_validator(mode="before")
    @classmethod
    def _legacy_assignee_id(cls, data: Any) -> Any:
        if not isinstance(data, dict) or data.get("assigneeIds") or data.get("assignee_ids"):
            return data
        legacy = data.get("assigneeId")
        if legacy is None:
            return data
        data = dict(data)
        data["assigneeIds"] = legacy if isinstance(legacy, list) else [legacy]
        return data

    @field_validator("assignee_ids")
    @classmethod
    def _non_empty(cls, value: List[str]) -> List[str]:
        cleaned = [v for v in dict.fromkeys(value) if v]
        if not cleaned:
            raise ValueError("at least one assignee is required")
        return cleaned


class ChangeStatusConfig(TaskActionConfig):
    status_id: str = Field(min_length=1)


class AddLabelConfig(TaskActionConfig):
    label_id: str = Field(min_length=1)


class SendNotificationConfig(ActionConfig):
    user_id: Optional[str] = None
    user_ids: List[str] = Field(default_factory=list)
    message: str = Field(min_length=1)
    title: str = "Automation Notification"
    type: str = "AUTOMATION"

    @property
    def recipients(self) -> List[str]:
        ids = list(self.user_ids)
        if self.user_id:
            ids.insert(0, self.user_id)
        return [v for v in dict.fromkeys(ids) if v]

    @model_validator(mode="after")
    def _has_recipient(self) -> "SendNotificationConfig":
        if not self.recipients:
            raise ValueError("userId or userIds is required")
        return self


class AddCommentConfig(TaskActionConfig):
    content: str = Field(min_length=1)
    author_id: Optional[str] = None


class ChangePriorityConfig(TaskActionConfig):
    priority: Priority

    @field_validator("priority", mode="before")
    @classmethod
    def _normalize_priority(cls, value: Any) -> Any:
        return _upper(value)


class SetDueDateConfig(TaskActionConfig):
    # Required key; null clears the due date
    due_date: Optional[datetime] = Field(...)

    @field_validator("due_date", mode="before")
    @classmethod
    def _parse_due_date(cls, value: Any) -> Any:
        return parse_when(value)


class CreateTaskConfig(ActionConfig):
    project_id: str = Field(min_length=1)
    title: Optional[str] = None
    description: Optional[str] = None
    type: TaskType = TaskType.TASK
    priority: Priority = Priority.MEDIUM
    status_id: Optional[str] = None
    assignee_ids: List[str] = Field(default_factory=list)
    due_date: Optional[datetime] = None
    start_date: Optional[datetime] = None
    sprint_id: Optional[str] = None

    @field_validator("type", "priority", mode="before")
    @classmethod
    def _normalize_enums(cls, value: Any) -> Any:
        return _upper(value) if value is not None else value

    @field_validator("due_date", "start_date", mode="before")
    @classmethod
    def _parse_dates(cls, value: Any) -> Any:
        if value in ("", None):
            return None
        return parse_when(value)


def describe_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "__root__")
        msg = err.get("msg", "invalid")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts)
