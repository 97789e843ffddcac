"""
SQLAlchemy implementations of the engine's collaborator interfaces.

Every call opens its own short-lived session from ``session_factory`` and
returns dataclass snapshots, so one store call is one transaction.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.errors import EntityNotFoundError, TaskSequenceConflictError
from ..models.automation_rule import AutomationRule
from ..models.notification import Notification
from ..models.project import Label, Project, TaskStatus
from ..models.rule_execution import RuleExecution
from ..models.task import Task, TaskAssignee, TaskComment, TaskLabel
from ..models.user import User
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
from .stores import CommentStore, ExecutionStore, NotificationStore, RuleStore, TaskStore


logger = logging.getLogger("sql_stores")

SessionFactory = Callable[[], Session]


class SqlRuleStore(RuleStore):
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def find_by_id(self, rule_id: str) -> Optional[RuleDefinition]:
        with self._session_factory() as db:
            rule = db.get(AutomationRule, rule_id)
            return RuleDefinition.from_model(rule) if rule else None

    def set_status(self, rule_id: str, status: str) -> Optional[RuleDefinition]:
        with self._session_factory() as db:
            rule = db.get(AutomationRule, rule_id)
            if rule is None:
                return None
            if rule.status != status:
                rule.status = status
                db.commit()
                db.refresh(rule)
            return RuleDefinition.from_model(rule)


def execution_to_record(row: RuleExecution) -> ExecutionRecord:
    return ExecutionRecord(
        id=row.id,
        rule_id=row.rule_id,
        trigger_type=row.trigger_type,
        trigger_data=row.trigger_data or {},
        action_result=row.action_result,
        success=bool(row.success),
        outcome=row.outcome,
        execution_time_ms=row.execution_time_ms or 0,
        error_message=row.error_message,
        triggered_by_id=row.triggered_by_id,
        created_by=row.created_by,
        job_id=row.job_id,
        created_at=row.created_at,
    )


class SqlExecutionStore(ExecutionStore):
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def create(self, record: ExecutionRecord) -> ExecutionRecord:
        with self._session_factory() as db:
            row = RuleExecution(
                rule_id=record.rule_id,
                trigger_type=record.trigger_type,
                trigger_data=record.trigger_data,
                action_result=record.action_result,
                success=record.success,
                outcome=record.outcome,
                execution_time_ms=record.execution_time_ms,
                error_message=record.error_message,
                triggered_by_id=record.triggered_by_id,
                created_by=record.created_by,
                job_id=record.job_id,
            )
            if record.created_at is not None:
                row.created_at = record.created_at
            db.add(row)
            db.commit()
            db.refresh(row)
            return execution_to_record(row)

    def list_for_rule(
        self,
        rule_id: str,
        *,
        success: Optional[bool] = None,
        since: Optional[datetime] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> tuple[list[ExecutionRecord], int]:
        with self._session_factory() as db:
            query = db.query(RuleExecution).filter(RuleExecution.rule_id == rule_id)
            if success is not None:
                query = query.filter(RuleExecution.success.is_(success))
            if since is not None:
                query = query.filter(RuleExecution.created_at >= since)
            total = query.count()
            rows = (
                query.order_by(RuleExecution.created_at.desc(), RuleExecution.id.desc())
                .offset(offset)
                .limit(limit)
                .all()
            )
            return [execution_to_record(row) for row in rows], total


class SqlTaskStore(TaskStore):
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def _snapshot(self, db: Session, task: Task) -> TaskSnapshot:
        status = db.get(TaskStatus, task.status_id) if task.status_id else None
        assignee_ids = list(
            db.scalars(
                select(TaskAssignee.user_id)
                .where(TaskAssignee.task_id == task.id)
                .order_by(TaskAssignee.assigned_at.asc(), TaskAssignee.user_id.asc())
            )
        )
        label_ids = list(
            db.scalars(select(TaskLabel.label_id).where(TaskLabel.task_id == task.id).order_by(TaskLabel.label_id.asc()))
        )
        return TaskSnapshot(
            id=task.id,
            project_id=task.project_id,
            task_number=task.task_number,
            slug=task.slug,
            title=task.title,
            type=task.type,
            priority=task.priority,
            status_id=task.status_id,
            status_name=status.name if status else None,
            description=task.description,
            due_date=task.due_date,
            sprint_id=task.sprint_id,
            created_by=task.created_by,
            assignee_ids=assignee_ids,
            label_ids=label_ids,
        )

    def _require_users(self, db: Session, user_ids: list[str]) -> None:
        if not user_ids:
            return
        found = set(db.scalars(select(User.id).where(User.id.in_(user_ids))))
        for user_id in user_ids:
            if user_id not in found:
                raise EntityNotFoundError("User", user_id)

    def get(self, task_id: str) -> Optional[TaskSnapshot]:
        with self._session_factory() as db:
            task = db.get(Task, task_id)
            return self._snapshot(db, task) if task else None

    def update(self, task_id: str, changes: TaskChanges) -> TaskSnapshot:
        with self._session_factory() as db:
            task = db.get(Task, task_id)
            if task is None:
                raise EntityNotFoundError("Task", task_id)

            if changes.status_id is not None:
                if db.get(TaskStatus, changes.status_id) is None:
                    raise EntityNotFoundError("Task status", changes.status_id)
                task.status_id = changes.status_id
            if changes.priority is not None:
                task.priority = changes.priority
            if changes.clear_due_date:
                task.due_date = None
            elif changes.due_date is not None:
                task.due_date = changes.due_date

            if changes.assignee_ids is not None:
                wanted = list(dict.fromkeys(changes.assignee_ids))
                self._require_users(db, wanted)
                existing = set(db.scalars(select(TaskAssignee.user_id).where(TaskAssignee.task_id == task_id)))
                if changes.replace_assignees:
                    stale = existing - set(wanted)
                    if stale:
                        db.execute(
                            delete(TaskAssignee).where(
                                TaskAssignee.task_id == task_id,
                                TaskAssignee.user_id.in_(sorted(stale)),
                            )
                        )
                for user_id in wanted:
                    if user_id not in existing:
                        db.add(TaskAssignee(task_id=task_id, user_id=user_id))

            for label_id in changes.add_label_ids:
                if db.get(Label, label_id) is None:
                    raise EntityNotFoundError("Label", label_id)
                if db.get(TaskLabel, (task_id, label_id)) is None:
                    db.add(TaskLabel(task_id=task_id, label_id=label_id))

            if changes.updated_by:
                task.updated_by = changes.updated_by
            task.updated_at = datetime.utcnow()
            db.commit()
            db.refresh(task)
            return self._snapshot(db, task)

    def find_project(self, project_id: str) -> Optional[ProjectSnapshot]:
        with self._session_factory() as db:
            project = db.get(Project, project_id)
            if project is None:
                return None
            return ProjectSnapshot(id=project.id, slug=project.slug, workflow_id=project.workflow_id)

    def find_default_status(self, workflow_id: Optional[str]) -> Optional[str]:
        if not workflow_id:
            return None
        with self._session_factory() as db:
            return db.scalars(
                select(TaskStatus.id)
                .where(TaskStatus.workflow_id == workflow_id, TaskStatus.is_default.is_(True))
                .order_by(TaskStatus.position.asc())
                .limit(1)
            ).first()

    def find_next_sequence(self, project_id: str) -> int:
        with self._session_factory() as db:
            current = db.scalar(select(func.max(Task.task_number)).where(Task.project_id == project_id))
            return int(current or 0) + 1

    def create(self, draft: TaskDraft) -> TaskSnapshot:
        with self._session_factory() as db:
            if draft.status_id and db.get(TaskStatus, draft.status_id) is None:
                raise EntityNotFoundError("Task status", draft.status_id)
            assignee_ids = list(dict.fromkeys(draft.assignee_ids))
            self._require_users(db, assignee_ids)
            task = Task(
                project_id=draft.project_id,
                task_number=draft.task_number,
                slug=draft.slug,
                title=draft.title,
                description=draft.description,
                type=draft.type,
                priority=draft.priority,
                status_id=draft.status_id,
                due_date=draft.due_date,
                start_date=draft.start_date,
                sprint_id=draft.sprint_id,
                created_by=draft.created_by,
            )
            db.add(task)
            try:
                db.flush()
                for user_id in assignee_ids:
                    db.add(TaskAssignee(task_id=task.id, user_id=user_id))
                db.commit()
            except IntegrityError:
                db.rollback()
                taken = db.scalar(
                    select(func.count(Task.id)).where(
                        Task.project_id == draft.project_id,
                        or_(Task.task_number == draft.task_number, Task.slug == draft.slug),
                    )
                )
                if taken:
                    logger.info("Task number %s already taken in project %s", draft.task_number, draft.project_id)
                    raise TaskSequenceConflictError(draft.project_id, draft.task_number, draft.slug) from None
                raise
            db.refresh(task)
            return self._snapshot(db, task)


class SqlNotificationStore(NotificationStore):
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def create(self, drafts: list[NotificationDraft]) -> list[str]:
        if not drafts:
            return []
        with self._session_factory() as db:
            rows = [
                Notification(
                    user_id=draft.user_id,
                    title=draft.title,
                    message=draft.message,
                    type=draft.type,
                    data=draft.data,
                )
                for draft in drafts
            ]
            db.add_all(rows)
            db.flush()
            ids = [row.id for row in rows]
            db.commit()
            return ids


class SqlCommentStore(CommentStore):
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def create(self, task_id: str, content: str, author_id: Optional[str]) -> CommentRecord:
        with self._session_factory() as db:
            task = db.get(Task, task_id)
            if task is None:
                raise EntityNotFoundError("Task", task_id)
            comment = TaskComment(task_id=task_id, content=content, author_id=author_id)
            db.add(comment)
            db.flush()
            record = CommentRecord(
                id=comment.id,
                task_id=task_id,
                project_id=task.project_id,
                author_id=author_id,
                content=content,
            )
            db.commit()
            return record
