"""
Registry of action handlers keyed by ``ActionType``.

``dispatch`` turns every configuration problem (unknown kind, missing or
invalid ``action_config``) into a structured ``ActionResult`` failure.
Anything a handler raises past validation (missing entities, database
errors) propagates to the orchestrator, which records and re-raises it.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Optional

from pydantic import ValidationError

from ..core.errors import ActionConfigError, UnsupportedActionError
from ..models.automation_rule import ActionType
from ..schemas.actions import ActionConfig, describe_validation_error
from .automation_types import ActionContext, ActionResult


logger = logging.getLogger("action_registry")


class ActionHandler:
    """Performs one domain mutation for one action kind."""

    kind: ActionType
    config_model: type[ActionConfig] = ActionConfig

    def execute(self, config: Any, payload: dict, context: ActionContext) -> ActionResult:
        raise NotImplementedError


class ActionRegistry:
    def __init__(self) -> None:
        self._handlers: dict[ActionType, ActionHandler] = {}

    def register(self, handler: ActionHandler) -> None:
        kind = ActionType(handler.kind)
        if kind in self._handlers:
            raise ValueError(f"Handler already registered for {kind.value}")
        self._handlers[kind] = handler

    def handler_for(self, action_kind: Any) -> ActionHandler:
        try:
            kind = ActionType(action_kind)
        except ValueError:
            raise UnsupportedActionError(action_kind) from None
        handler = self._handlers.get(kind)
        if handler is None:
            raise UnsupportedActionError(kind.value)
        return handler

    def missing_kinds(self) -> list[ActionType]:
        return [kind for kind in ActionType if kind not in self._handlers]

    def ensure_complete(self) -> None:
        missing = self.missing_kinds()
        if missing:
            raise RuntimeError(f"No handler registered for: {', '.join(k.value for k in missing)}")

    def dispatch(
        self,
        action_kind: Any,
        action_config: Optional[Mapping],
        payload: Optional[Mapping],
        context: ActionContext,
    ) -> ActionResult:
        try:
            handler = self.handler_for(action_kind)
        except UnsupportedActionError as exc:
            logger.warning("Rule %s: %s", context.rule_id, exc)
            return ActionResult.failure(str(exc))

        if not action_config:
            return ActionResult.failure("Action configuration is required")
        if not isinstance(action_config, Mapping):
            return ActionResult.failure("Action configuration must be an object")

        try:
            config = handler.config_model.model_validate(dict(action_config))
        except ValidationError as exc:
            kind = ActionType(handler.kind).value
            return ActionResult.failure(f"Invalid {kind} configuration: {describe_validation_error(exc)}")

        try:
            return handler.execute(config, dict(payload or {}), context)
        except ActionConfigError as exc:
            return ActionResult.failure(str(exc), retryable=exc.retryable)
