"""
Rule orchestrator: one trigger job in, one audit record out.

State machine for a single run::

    LOADED -> CONDITIONS_EVALUATED -> SKIPPED -> RECORDED_SKIPPED
                                   -> ACTION_DISPATCHED -> RECORDED_SUCCESS
                                                        -> RECORDED_FAILURE

A missing or inactive rule short-circuits to RECORDED_SKIPPED and is only
written to the audit trail when ``record_missing_rules`` is on. Every other
terminal state writes exactly one record. Failures are recorded first and
then re-raised so the queue's retry policy can decide on redelivery.

The orchestrator holds no lock. Concurrent runs rely on each store call
being its own transaction.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, wait
from enum import Enum
from typing import Any, Callable, Optional

from ..core.errors import ActionFailedError, ExecutionTimeoutError, error_message, log_exception
from ..models.rule_execution import ExecutionOutcomeKind
from .action_registry import ActionRegistry
from .automation_types import ActionContext, ActionResult, ExecutionOutcome, ExecutionRecord, RuleDefinition
from .conditions import ConditionEvaluator
from .execution_recorder import ExecutionRecorder, snapshot_payload
from .stores import RuleStore


logger = logging.getLogger("automation_orchestrator")

RULE_UNAVAILABLE = "Rule not found or inactive"
TIMEOUT_MESSAGE = "timeout"


class RunState(str, Enum):
    LOADED = "LOADED"
    CONDITIONS_EVALUATED = "CONDITIONS_EVALUATED"
    SKIPPED = "SKIPPED"
    ACTION_DISPATCHED = "ACTION_DISPATCHED"
    RECORDED_SUCCESS = "RECORDED_SUCCESS"
    RECORDED_FAILURE = "RECORDED_FAILURE"
    RECORDED_SKIPPED = "RECORDED_SKIPPED"


def _enter(rule_id: str, state: RunState) -> None:
    logger.debug("Rule %s -> %s", rule_id, state.value)


class RuleOrchestrator:
    def __init__(
        self,
        rule_store: RuleStore,
        evaluator: ConditionEvaluator,
        registry: ActionRegistry,
        recorder: ExecutionRecorder,
        *,
        timeout_sec: Optional[float] = None,
        record_missing_rules: bool = False,
        max_workers: int = 4,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.rule_store = rule_store
        self.evaluator = evaluator
        self.registry = registry
        self.recorder = recorder
        self.timeout_sec = timeout_sec
        self.record_missing_rules = record_missing_rules
        self.max_workers = max(1, max_workers)
        self._clock = clock
        self._executor: ThreadPoolExecutor | None = None

    def shutdown(self, wait: bool = False) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None

    def _elapsed_ms(self, started: float) -> int:
        return max(0, int(round((self._clock() - started) * 1000)))

    def _dispatch(
        self,
        rule: RuleDefinition,
        payload: dict,
        context: ActionContext,
        timeout: Optional[float],
    ) -> ActionResult:
        if not timeout or timeout <= 0:
            return self.registry.dispatch(rule.action_type, rule.action_config, payload, context)
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="automation-action")
        future = self._executor.submit(self.registry.dispatch, rule.action_type, rule.action_config, payload, context)
        done, _ = wait([future], timeout=timeout)
        if not done:
            # A dispatch still queued behind busy workers is dropped; one that
            # already started keeps running.
            cancelled = future.cancel()
            raise ExecutionTimeoutError(rule.id, timeout, cancelled=cancelled)
        return future.result()

    def execute(
        self,
        rule_id: str,
        trigger_type: Any,
        trigger_payload: Optional[dict],
        triggered_by: Optional[str] = None,
        *,
        job_id: Optional[str] = None,
        timeout_sec: Optional[float] = None,
    ) -> ExecutionOutcome:
        trigger = getattr(trigger_type, "value", trigger_type)
        trigger_data = snapshot_payload(trigger_payload)
        payload = dict(trigger_payload or {})
        logger.info("Executing automation rule %s for trigger %s", rule_id, trigger)

        rule = self.rule_store.find_by_id(rule_id)
        started = self._clock()

        def record(**fields: Any) -> ExecutionRecord:
            return self.recorder.write(
                ExecutionRecord(
                    rule_id=rule_id,
                    trigger_type=str(trigger),
                    trigger_data=trigger_data,
                    execution_time_ms=self._elapsed_ms(started),
                    triggered_by_id=triggered_by,
                    created_by=triggered_by or (rule.created_by if rule else None),
                    job_id=job_id,
                    **fields,
                )
            )

        if rule is None or not rule.is_active:
            logger.warning("Rule %s not found or inactive", rule_id)
            outcome = ExecutionOutcome(
                success=False,
                skipped=True,
                error=RULE_UNAVAILABLE,
                execution_time_ms=self._elapsed_ms(started),
                state=RunState.RECORDED_SKIPPED.value,
            )
            if self.record_missing_rules:
                saved = record(
                    success=False,
                    outcome=ExecutionOutcomeKind.SKIPPED.value,
                    error_message=RULE_UNAVAILABLE,
                )
                outcome.record_id = saved.id
                outcome.execution_time_ms = saved.execution_time_ms
            return outcome

        _enter(rule_id, RunState.LOADED)
        matched = self.evaluator.matches(rule, payload)
        _enter(rule_id, RunState.CONDITIONS_EVALUATED)
        if not matched:
            _enter(rule_id, RunState.SKIPPED)
            logger.debug("Rule %s conditions not met, skipping execution", rule_id)
            saved = record(success=True, outcome=ExecutionOutcomeKind.SKIPPED.value, action_result=None)
            return ExecutionOutcome(
                success=True,
                skipped=True,
                execution_time_ms=saved.execution_time_ms,
                record_id=saved.id,
                state=RunState.RECORDED_SKIPPED.value,
            )

        context = ActionContext(
            rule_id=rule.id,
            rule_owner=rule.created_by,
            triggered_by=triggered_by,
            project_id=rule.project_id,
        )
        timeout = self.timeout_sec if timeout_sec is None else timeout_sec
        _enter(rule_id, RunState.ACTION_DISPATCHED)
        try:
            result = self._dispatch(rule, payload, context, timeout)
        except ExecutionTimeoutError as exc:
            logger.error(
                "Rule %s timed out after %ss (dispatch %s)",
                rule_id,
                exc.timeout_sec,
                "cancelled before start" if exc.cancelled else "still running",
            )
            record(success=False, outcome=ExecutionOutcomeKind.FAILURE.value, error_message=TIMEOUT_MESSAGE)
            raise
        except Exception as exc:
            log_exception(
                logger,
                "Rule execution failed",
                extra={"rule_id": rule_id, "state": RunState.ACTION_DISPATCHED.value},
                exc=exc,
            )
            record(success=False, outcome=ExecutionOutcomeKind.FAILURE.value, error_message=error_message(exc))
            raise

        if not result.success:
            failure = ActionFailedError(result.error or "Action failed", retryable=result.retryable, data=result.data)
            logger.error("Rule %s action %s failed: %s", rule_id, rule.action_type, failure)
            record(success=False, outcome=ExecutionOutcomeKind.FAILURE.value, error_message=str(failure))
            raise failure

        saved = record(success=True, outcome=ExecutionOutcomeKind.SUCCESS.value, action_result=result.data)
        logger.info("Rule %s executed successfully in %sms", rule_id, saved.execution_time_ms)
        return ExecutionOutcome(
            success=True,
            execution_time_ms=saved.execution_time_ms,
            result=result.data,
            record_id=saved.id,
            state=RunState.RECORDED_SUCCESS.value,
        )
