"""
Error types and shared error-handling helpers for the automation engine.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

T = TypeVar("T")


class AutomationError(RuntimeError):
    """Base class for errors raised by the rule engine.

    ``retryable`` tells the queue consumer whether redelivering the same
    trigger could succeed.
    """

    retryable = True


class ConditionSpecError(AutomationError, ValueError):
    """A rule's condition spec cannot be parsed."""

    retryable = False


class ActionConfigError(AutomationError, ValueError):
    """A rule's action config is missing a required field or has a bad value."""

    retryable = False


class UnsupportedActionError(ActionConfigError):
    def __init__(self, action_type: Any) -> None:
        self.action_type = action_type
        super().__init__(f"Unsupported action type: {action_type}")


class EntityNotFoundError(AutomationError):
    def __init__(self, entity: str, entity_id: Any) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class TaskSequenceConflictError(AutomationError):
    """Another writer took the task number or slug we computed."""

    def __init__(self, project_id: str, task_number: int, slug: str) -> None:
        self.project_id = project_id
        self.task_number = task_number
        self.slug = slug
        super().__init__(f"Task number {task_number} ({slug}) already exists in project {project_id}")


class ActionFailedError(AutomationError):
    """An action handler reported ``success=False``."""

    def __init__(self, message: str, *, retryable: bool = True, data: dict | None = None) -> None:
        self.retryable = retryable
        self.data = data or {}
        super().__init__(message)


class ExecutionTimeoutError(AutomationError, TimeoutError):
    def __init__(self, rule_id: str, timeout_sec: float, *, cancelled: bool = False) -> None:
        self.rule_id = rule_id
        self.timeout_sec = timeout_sec
        # True when the action never started and will not run.
        self.cancelled = cancelled
        super().__init__("timeout")


class AuditWriteError(AutomationError):
    """The execution record itself could not be written."""

    def __init__(self, rule_id: str, cause: BaseException) -> None:
        self.rule_id = rule_id
        super().__init__(f"Audit write failed for rule {rule_id}: {cause}")


def error_message(exc: BaseException) -> str:
    text = str(exc).strip()
    return text or exc.__class__.__name__


def _context_suffix(extra: dict | None) -> str:
    pairs = " ".join(f"{key}={value}" for key, value in (extra or {}).items() if value is not None)
    return f" {pairs}" if pairs else ""


def log_exception(logger: logging.Logger, msg: str, *, extra: dict | None = None, exc: BaseException | None = None) -> None:
    """Log a failure as ``"<msg> key=value ...: <exc>"`` with its traceback.

    Context keys such as ``rule_id`` and ``job_id`` are appended when not None.
    """
    suffix = _context_suffix(extra)
    if exc is not None:
        logger.error(f"{msg}{suffix}: {exc}", exc_info=exc)
        return
    logger.exception(f"{msg}{suffix}")


def guarded_call(
    name: str,
    fn: Callable[[], T],
    *,
    fallback: T | None = None,
    logger: logging.Logger | None = None,
    context: dict | None = None,
) -> T | None:
    """Run ``fn`` for a side effect that must not fail its caller.

    Used around event emission and client shutdown: any exception is logged
    as ``"<name> failed"`` and ``fallback`` is returned instead.
    """
    try:
        return fn()
    except Exception as exc:
        if logger:
            log_exception(logger, f"{name} failed", extra=context or {}, exc=exc)
        return fallback
