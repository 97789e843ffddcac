import itertools
import logging
import threading

import pytest

from linxio_automation.core.config import Settings
from linxio_automation.core.errors import (
    ActionFailedError,
    AuditWriteError,
    EntityNotFoundError,
    ExecutionTimeoutError,
)
from linxio_automation.models.automation_rule import ActionType, TriggerType
from linxio_automation.schemas.actions import ChangeStatusConfig
from linxio_automation.services.action_registry import ActionHandler, ActionRegistry
from linxio_automation.services.automation_service import build_orchestrator
from linxio_automation.services.automation_types import ActionResult, ExecutionOutcome
from linxio_automation.services.conditions import ConditionEvaluator
from linxio_automation.services.execution_recorder import ExecutionRecorder
from linxio_automation.services.orchestrator import RULE_UNAVAILABLE, RuleOrchestrator, RunState
from linxio_automation.services.sql_stores import SqlExecutionStore, SqlRuleStore, SqlTaskStore
from linxio_automation.services.stores import ExecutionStore


HIGH_ONLY = {"op": "and", "children": [{"op": "equals", "field": "task.priority", "value": "HIGH"}]}


class CountingHandler(ActionHandler):
    kind = ActionType.CHANGE_STATUS
    config_model = ChangeStatusConfig

    def __init__(self, result=None, block: threading.Event | None = None):
        self.calls = 0
        self.result = result
        self.block = block

    def execute(self, config, payload, context):
        self.calls += 1
        if self.block is not None:
            self.block.wait(5)
        return self.result or ActionResult.ok(statusId=config.status_id)


class BrokenExecutionStore(ExecutionStore):
    def create(self, record):
        raise ConnectionError("audit database unreachable")


def _settings(**overrides) -> Settings:
    values = {"automation_execution_timeout_sec": 5.0, "automation_record_missing_rules": False}
    values.update(overrides)
    return Settings(**values)


def _orchestrator(session_factory, handler, *, store=None, **kwargs) -> RuleOrchestrator:
    registry = ActionRegistry()
    registry.register(handler)
    return RuleOrchestrator(
        SqlRuleStore(session_factory),
        ConditionEvaluator(),
        registry,
        ExecutionRecorder(store or SqlExecutionStore(session_factory)),
        **kwargs,
    )


def _records(orchestrator, rule_id):
    records, total = orchestrator.recorder.store.list_for_rule(rule_id)
    assert total == len(records)
    return records


def test_matching_rule_changes_status_and_records_success(seeded, notifier, make_rule):
    orchestrator = build_orchestrator(seeded.session_factory, notifier, _settings())
    rule_id = make_rule(conditions=HIGH_ONLY)

    outcome = orchestrator.execute(
        rule_id,
        TriggerType.TASK_CREATED,
        {"task": {"priority": "HIGH", "id": "t-1"}},
        "u-bob",
    )
    orchestrator.shutdown()

    assert outcome.success is True
    assert outcome.skipped is False
    assert outcome.state == RunState.RECORDED_SUCCESS.value
    assert outcome.result == {"taskId": "t-1", "statusId": "s-doing", "statusName": "In Progress"}

    task = SqlTaskStore(seeded.session_factory).get("t-1")
    assert task.status_id == "s-doing"
    assert notifier.kinds() == ["task:status_changed"]

    records = _records(orchestrator, rule_id)
    assert len(records) == 1
    record = records[0]
    assert record.id == outcome.record_id
    assert record.success is True
    assert record.outcome == "SUCCESS"
    assert record.trigger_type == "TASK_CREATED"
    assert record.trigger_data == {"task": {"priority": "HIGH", "id": "t-1"}}
    assert record.action_result == outcome.result
    assert record.triggered_by_id == "u-bob"
    assert record.error_message is None


def test_unmatched_conditions_skip_without_calling_the_handler(session_factory, make_rule):
    handler = CountingHandler()
    orchestrator = _orchestrator(session_factory, handler)
    rule_id = make_rule(conditions=HIGH_ONLY)

    outcome = orchestrator.execute(rule_id, "TASK_CREATED", {"task": {"priority": "LOW", "id": "t-1"}})

    assert handler.calls == 0
    assert outcome.success is True
    assert outcome.skipped is True
    assert outcome.state == RunState.RECORDED_SKIPPED.value
    records = _records(orchestrator, rule_id)
    assert len(records) == 1
    assert records[0].success is True
    assert records[0].outcome == "SKIPPED"
    assert records[0].skipped is True
    assert records[0].action_result is None


def test_missing_entity_is_recorded_then_reraised(seeded, notifier, make_rule):
    orchestrator = build_orchestrator(seeded.session_factory, notifier, _settings(automation_execution_timeout_sec=None))
    rule_id = make_rule()

    with pytest.raises(EntityNotFoundError) as excinfo:
        orchestrator.execute(rule_id, "TASK_CREATED", {"taskId": "t-missing"})

    assert str(excinfo.value) == "Task t-missing not found"
    records = _records(orchestrator, rule_id)
    assert len(records) == 1
    assert records[0].success is False
    assert records[0].outcome == "FAILURE"
    assert records[0].error_message == "Task t-missing not found"
    assert notifier.events == []


def test_structured_failure_is_recorded_and_raised_as_action_failed(seeded, notifier, make_rule):
    orchestrator = build_orchestrator(seeded.session_factory, notifier, _settings())
    rule_id = make_rule(action_config={"statusId": ""})

    with pytest.raises(ActionFailedError) as excinfo:
        orchestrator.execute(rule_id, "TASK_CREATED", {"taskId": "t-1"})
    orchestrator.shutdown()

    assert excinfo.value.retryable is False
    assert str(excinfo.value).startswith("Invalid CHANGE_STATUS configuration")
    records = _records(orchestrator, rule_id)
    assert [r.success for r in records] == [False]
    assert records[0].error_message == str(excinfo.value)
    assert SqlTaskStore(seeded.session_factory).get("t-1").status_id == "s-todo"


def test_missing_action_config_fails(seeded, notifier, make_rule):
    orchestrator = build_orchestrator(seeded.session_factory, notifier, _settings(automation_execution_timeout_sec=0))
    rule_id = make_rule(action_config=None)

    with pytest.raises(ActionFailedError, match="Action configuration is required"):
        orchestrator.execute(rule_id, "TASK_CREATED", {"taskId": "t-1"})


def test_timeout_records_timeout_and_raises(session_factory, make_rule):
    release = threading.Event()
    handler = CountingHandler(block=release)
    orchestrator = _orchestrator(session_factory, handler, timeout_sec=0.05)
    rule_id = make_rule()

    try:
        with pytest.raises(ExecutionTimeoutError) as excinfo:
            orchestrator.execute(rule_id, "TASK_CREATED", {"taskId": "t-1"})
    finally:
        release.set()
        orchestrator.shutdown()

    assert str(excinfo.value) == "timeout"
    records = _records(orchestrator, rule_id)
    assert len(records) == 1
    assert records[0].success is False
    assert records[0].error_message == "timeout"


def test_per_call_timeout_overrides_default(session_factory, make_rule):
    release = threading.Event()
    handler = CountingHandler(block=release)
    orchestrator = _orchestrator(session_factory, handler, timeout_sec=None)
    rule_id = make_rule()

    try:
        with pytest.raises(ExecutionTimeoutError):
            orchestrator.execute(rule_id, "TASK_CREATED", {"taskId": "t-1"}, timeout_sec=0.05)
    finally:
        release.set()
        orchestrator.shutdown()


def test_missing_rule_is_not_recorded_by_default(session_factory):
    handler = CountingHandler()
    orchestrator = _orchestrator(session_factory, handler)

    outcome = orchestrator.execute("no-such-rule", "TASK_CREATED", {"taskId": "t-1"})

    assert outcome.success is False
    assert outcome.skipped is True
    assert outcome.error == RULE_UNAVAILABLE
    assert outcome.record_id is None
    assert _records(orchestrator, "no-such-rule") == []
    assert handler.calls == 0


def test_inactive_rule_is_recorded_when_configured(session_factory, make_rule):
    handler = CountingHandler()
    orchestrator = _orchestrator(session_factory, handler, record_missing_rules=True)
    rule_id = make_rule(status="INACTIVE")

    outcome = orchestrator.execute(rule_id, "TASK_CREATED", {"taskId": "t-1"}, "u-bob")

    assert handler.calls == 0
    assert outcome.success is False
    assert outcome.state == RunState.RECORDED_SKIPPED.value
    records = _records(orchestrator, rule_id)
    assert len(records) == 1
    assert records[0].id == outcome.record_id
    assert records[0].success is False
    assert records[0].outcome == "SKIPPED"
    assert records[0].error_message == RULE_UNAVAILABLE


def test_execution_time_is_measured_from_rule_load(session_factory, make_rule):
    clock = itertools.chain([100.0], itertools.repeat(100.25))
    orchestrator = _orchestrator(session_factory, CountingHandler(), clock=lambda: next(clock))
    rule_id = make_rule()

    outcome = orchestrator.execute(rule_id, "TASK_CREATED", {"taskId": "t-1"})

    assert outcome.execution_time_ms == 250
    assert _records(orchestrator, rule_id)[0].execution_time_ms == 250


def test_handler_failure_keeps_retryable_flag(session_factory, make_rule):
    handler = CountingHandler(result=ActionResult.failure("mail relay down", retryable=True))
    orchestrator = _orchestrator(session_factory, handler)
    rule_id = make_rule()

    with pytest.raises(ActionFailedError) as excinfo:
        orchestrator.execute(rule_id, "TASK_CREATED", {"taskId": "t-1"})

    assert excinfo.value.retryable is True
    assert _records(orchestrator, rule_id)[0].error_message == "mail relay down"


def test_audit_failure_surfaces_as_audit_write_error(session_factory, make_rule, caplog):
    orchestrator = _orchestrator(session_factory, CountingHandler(), store=BrokenExecutionStore())
    rule_id = make_rule()

    with pytest.raises(AuditWriteError):
        orchestrator.execute(rule_id, "TASK_CREATED", {"taskId": "t-1"})
    assert any("Audit write failed" in rec.message for rec in caplog.records)


def test_job_id_is_kept_on_the_record(session_factory, make_rule):
    orchestrator = _orchestrator(session_factory, CountingHandler())
    rule_id = make_rule()

    orchestrator.execute(rule_id, "TASK_CREATED", {"taskId": "t-1"}, job_id="job-42")
    orchestrator.execute(rule_id, "TASK_CREATED", {"taskId": "t-1"}, job_id="job-42")

    records = _records(orchestrator, rule_id)
    assert [r.job_id for r in records] == ["job-42", "job-42"]


def test_outcome_to_dict_shapes():
    assert ExecutionOutcome(success=True, execution_time_ms=12, result={"taskId": "t-1"}).to_dict() == {
        "success": True,
        "executionTimeMs": 12,
        "result": {"taskId": "t-1"},
    }
    assert ExecutionOutcome(success=True, execution_time_ms=3, skipped=True).to_dict() == {
        "success": True,
        "executionTimeMs": 3,
        "skipped": True,
    }
    assert ExecutionOutcome(success=False, execution_time_ms=0, skipped=True, error=RULE_UNAVAILABLE).to_dict() == {
        "success": False,
        "executionTimeMs": 0,
        "skipped": True,
        "error": RULE_UNAVAILABLE,
    }


def test_queued_dispatch_is_cancelled_on_timeout(session_factory, make_rule, caplog):
    caplog.set_level(logging.ERROR, logger="automation_orchestrator")
    release = threading.Event()
    handler = CountingHandler(block=release)
    orchestrator = _orchestrator(session_factory, handler, timeout_sec=None, max_workers=1)
    rule_id = make_rule()

    try:
        with pytest.raises(ExecutionTimeoutError) as running:
            orchestrator.execute(rule_id, "TASK_CREATED", {"taskId": "t-1"}, timeout_sec=0.5)
        with pytest.raises(ExecutionTimeoutError) as queued:
            orchestrator.execute(rule_id, "TASK_CREATED", {"taskId": "t-1"}, timeout_sec=0.05)
    finally:
        release.set()
        orchestrator.shutdown(wait=True)

    assert running.value.cancelled is False
    assert queued.value.cancelled is True
    assert handler.calls == 1
    assert [r.error_message for r in _records(orchestrator, rule_id)] == ["timeout", "timeout"]
    assert any("cancelled before start" in rec.message for rec in caplog.records)


def test_payload_numbers_beyond_float_range_skip_and_record(session_factory, make_rule):
    handler = CountingHandler()
    orchestrator = _orchestrator(session_factory, handler)
    rule_id = make_rule(conditions={"op": "gt", "field": "task.points", "value": 5})

    outcome = orchestrator.execute(rule_id, "TASK_CREATED", {"task": {"id": "t-1", "points": 10**400}})

    assert outcome.skipped is True
    assert handler.calls == 0
    assert len(_records(orchestrator, rule_id)) == 1


def test_state_transitions_are_logged_at_debug(session_factory, make_rule, caplog):
    caplog.set_level(logging.DEBUG, logger="automation_orchestrator")
    orchestrator = _orchestrator(session_factory, CountingHandler())
    rule_id = make_rule()

    orchestrator.execute(rule_id, "TASK_CREATED", {"taskId": "t-1"})

    transitions = [rec.message for rec in caplog.records if " -> " in rec.message]
    assert transitions == [
        f"Rule {rule_id} -> LOADED",
        f"Rule {rule_id} -> CONDITIONS_EVALUATED",
        f"Rule {rule_id} -> ACTION_DISPATCHED",
    ]
