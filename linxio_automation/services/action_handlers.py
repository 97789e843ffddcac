"""
Action handlers for the eight automation action kinds.

Handlers receive a config model already parsed by the registry. Each makes
one store call that mutates the domain and then emits a real-time event per
affected entity. Results are JSON-serialisable snapshots of what changed;
they become ``rule_executions.action_result``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from ..core.errors import ActionConfigError, EntityNotFoundError, TaskSequenceConflictError
from ..models.automation_rule import ActionType
from ..schemas.actions import (
    AddCommentConfig,
    AddLabelConfig,
    AssignTaskConfig,
    ChangePriorityConfig,
    ChangeStatusConfig,
    CreateTaskConfig,
    SendNotificationConfig,
    SetDueDateConfig,
    TaskActionConfig,
)
from .action_registry import ActionHandler, ActionRegistry
from .automation_types import ActionContext, ActionResult, NotificationDraft, TaskChanges, TaskDraft
from .conditions import MISSING, resolve_path
from .event_notifier import (
    COMMENT_ADDED,
    NOTIFICATION,
    TASK_ASSIGNED,
    TASK_CREATED,
    TASK_STATUS_CHANGED,
    TASK_UPDATED,
    safe_emit,
)
from .stores import CommentStore, EventNotifier, NotificationStore, TaskStore


logger = logging.getLogger("action_handlers")


@dataclass
class HandlerDeps:
    task_store: TaskStore
    notification_store: NotificationStore
    comment_store: CommentStore
    notifier: Optional[EventNotifier] = None
    create_task_max_attempts: int = 3


def resolve_task_id(config: TaskActionConfig, payload: dict) -> str:
    """Config ``taskId`` first, then payload ``taskId``, then payload ``task.id``."""
    if config.task_id:
        return config.task_id
    task_id = payload.get("taskId")
    if task_id:
        return str(task_id)
    nested = resolve_path(payload, "task.id")
    if nested is not MISSING and nested:
        return str(nested)
    raise ActionConfigError("taskId is required in the action config or the trigger payload")


def _iso(value: Any) -> Optional[str]:
    return value.isoformat() if value is not None else None


class _TaskHandler(ActionHandler):
    def __init__(self, deps: HandlerDeps) -> None:
        self.deps = deps

    def emit(self, kind: str, payload: dict) -> None:
        safe_emit(self.deps.notifier, kind, payload)


class AssignTaskHandler(_TaskHandler):
    kind = ActionType.ASSIGN_TASK
    config_model = AssignTaskConfig

    def execute(self, config: AssignTaskConfig, payload: dict, context: ActionContext) -> ActionResult:
        task_id = resolve_task_id(config, payload)
        task = self.deps.task_store.update(
            task_id,
            TaskChanges(
                assignee_ids=config.assignee_ids,
                replace_assignees=config.replace_existing,
                updated_by=context.actor,
            ),
        )
        for assignee_id in config.assignee_ids:
            self.emit(TASK_ASSIGNED, {"projectId": task.project_id, "taskId": task.id, "assigneeId": assignee_id})
        return ActionResult.ok(
            taskId=task.id,
            assigneeIds=list(task.assignee_ids),
            addedAssigneeIds=list(config.assignee_ids),
            replaceExisting=config.replace_existing,
        )


class ChangeStatusHandler(_TaskHandler):
    kind = ActionType.CHANGE_STATUS
    config_model = ChangeStatusConfig

    def execute(self, config: ChangeStatusConfig, payload: dict, context: ActionContext) -> ActionResult:
        task_id = resolve_task_id(config, payload)
        task = self.deps.task_store.update(task_id, TaskChanges(status_id=config.status_id, updated_by=context.actor))
        self.emit(
            TASK_STATUS_CHANGED,
            {
                "projectId": task.project_id,
                "taskId": task.id,
                "statusId": task.status_id,
                "status": {"id": task.status_id, "name": task.status_name},
            },
        )
        return ActionResult.ok(taskId=task.id, statusId=task.status_id, statusName=task.status_name)


class AddLabelHandler(_TaskHandler):
    kind = ActionType.ADD_LABEL
    config_model = AddLabelConfig

    def execute(self, config: AddLabelConfig, payload: dict, context: ActionContext) -> ActionResult:
        task_id = resolve_task_id(config, payload)
        task = self.deps.task_store.update(task_id, TaskChanges(add_label_ids=[config.label_id], updated_by=context.actor))
        self.emit(TASK_UPDATED, {"projectId": task.project_id, "taskId": task.id, "labelAdded": config.label_id})
        return ActionResult.ok(taskId=task.id, labelId=config.label_id, labelIds=list(task.label_ids))


class SendNotificationHandler(_TaskHandler):
    kind = ActionType.SEND_NOTIFICATION
    config_model = SendNotificationConfig

    def execute(self, config: SendNotificationConfig, payload: dict, context: ActionContext) -> ActionResult:
        recipients = config.recipients
        drafts = [
            NotificationDraft(
                user_id=user_id,
                title=config.title,
                message=config.message,
                type=config.type,
                data={"ruleId": context.rule_id},
            )
            for user_id in recipients
        ]
        notification_ids = self.deps.notification_store.create(drafts)
        for user_id, notification_id in zip(recipients, notification_ids):
            self.emit(
                NOTIFICATION,
                {
                    "userId": user_id,
                    "notificationId": notification_id,
                    "type": "automation",
                    "title": config.title,
                    "message": config.message,
                    "data": payload,
                },
            )
        return ActionResult.ok(userIds=recipients, notificationIds=list(notification_ids), message=config.message)


class AddCommentHandler(_TaskHandler):
    kind = ActionType.ADD_COMMENT
    config_model = AddCommentConfig

    def execute(self, config: AddCommentConfig, payload: dict, context: ActionContext) -> ActionResult:
        task_id = resolve_task_id(config, payload)
        author_id = config.author_id or context.rule_owner
        comment = self.deps.comment_store.create(task_id, config.content, author_id)
        self.emit(
            COMMENT_ADDED,
            {
                "projectId": comment.project_id,
                "taskId": comment.task_id,
                "commentId": comment.id,
                "content": comment.content,
                "authorId": comment.author_id,
            },
        )
        return ActionResult.ok(taskId=comment.task_id, commentId=comment.id, authorId=comment.author_id)


class ChangePriorityHandler(_TaskHandler):
    kind = ActionType.CHANGE_PRIORITY
    config_model = ChangePriorityConfig

    def execute(self, config: ChangePriorityConfig, payload: dict, context: ActionContext) -> ActionResult:
        task_id = resolve_task_id(config, payload)
        priority = config.priority.value
        task = self.deps.task_store.update(task_id, TaskChanges(priority=priority, updated_by=context.actor))
        self.emit(TASK_UPDATED, {"projectId": task.project_id, "taskId": task.id, "priority": task.priority})
        return ActionResult.ok(taskId=task.id, priority=task.priority)


class SetDueDateHandler(_TaskHandler):
    kind = ActionType.SET_DUE_DATE
    config_model = SetDueDateConfig

    def execute(self, config: SetDueDateConfig, payload: dict, context: ActionContext) -> ActionResult:
        task_id = resolve_task_id(config, payload)
        changes = TaskChanges(updated_by=context.actor)
        if config.due_date is None:
            changes.clear_due_date = True
        else:
            changes.due_date = config.due_date
        task = self.deps.task_store.update(task_id, changes)
        due = _iso(task.due_date)
        self.emit(TASK_UPDATED, {"projectId": task.project_id, "taskId": task.id, "dueDate": due})
        return ActionResult.ok(taskId=task.id, dueDate=due)


class CreateTaskHandler(_TaskHandler):
    kind = ActionType.CREATE_TASK
    config_model = CreateTaskConfig

    def execute(self, config: CreateTaskConfig, payload: dict, context: ActionContext) -> ActionResult:
        store = self.deps.task_store
        project = store.find_project(config.project_id)
        if project is None:
            raise EntityNotFoundError("Project", config.project_id)
        status_id = config.status_id or store.find_default_status(project.workflow_id)
        if not status_id:
            raise EntityNotFoundError("Default status for workflow", project.workflow_id)

        source = payload.get("taskId") or "automation"
        title = config.title or f"Auto-created task from {source}"
        attempts = max(1, self.deps.create_task_max_attempts)
        for attempt in range(1, attempts + 1):
            sequence = store.find_next_sequence(project.id)
            draft = TaskDraft(
                project_id=project.id,
                task_number=sequence,
                slug=f"{project.slug}-{sequence}",
                title=title,
                status_id=status_id,
                type=config.type.value,
                priority=config.priority.value,
                description=config.description,
                assignee_ids=list(config.assignee_ids),
                due_date=config.due_date,
                start_date=config.start_date,
                sprint_id=config.sprint_id,
                created_by=context.rule_owner or context.triggered_by,
            )
            try:
                task = store.create(draft)
                break
            except TaskSequenceConflictError:
                if attempt >= attempts:
                    raise
                logger.info(
                    "Task number %s taken in project %s; retrying (%s/%s)",
                    sequence,
                    project.id,
                    attempt,
                    attempts,
                )

        self.emit(TASK_CREATED, {"projectId": task.project_id, "taskId": task.id, "task": task.to_event()})
        return ActionResult.ok(taskId=task.id, taskNumber=task.task_number, slug=task.slug)


HANDLER_TYPES: tuple[type[_TaskHandler], ...] = (
    AssignTaskHandler,
    ChangeStatusHandler,
    AddLabelHandler,
    SendNotificationHandler,
    AddCommentHandler,
    ChangePriorityHandler,
    SetDueDateHandler,
    CreateTaskHandler,
)


def build_default_registry(deps: HandlerDeps) -> ActionRegistry:
    registry = ActionRegistry()
    for handler_type in HANDLER_TYPES:
        registry.register(handler_type(deps))
    registry.ensure_complete()
    return registry
