import logging
from datetime import date, datetime

import pytest

from linxio_automation.core.errors import AuditWriteError
from linxio_automation.models.rule_execution import RuleExecution
from linxio_automation.services.automation_types import ExecutionRecord
from linxio_automation.services.execution_recorder import ExecutionRecorder, snapshot_payload
from linxio_automation.services.sql_stores import SqlExecutionStore
from linxio_automation.services.stores import ExecutionStore


class DownExecutionStore(ExecutionStore):
    def create(self, record):
        raise ConnectionError("connection refused")


def _record(**overrides):
    fields = dict(
        rule_id="r-1",
        trigger_type="TASK_UPDATED",
        trigger_data={"taskId": "t-1"},
        success=True,
        outcome="SUCCESS",
        execution_time_ms=7,
    )
    fields.update(overrides)
    return ExecutionRecord(**fields)


def test_snapshot_payload_is_detached_and_json_safe():
    original = {"task": {"labels": ["a"]}, "when": datetime(2026, 10, 17, 8, 30), "day": date(2026, 10, 17)}
    snapshot = snapshot_payload(original)
    original["task"]["labels"].append("b")

    assert snapshot["task"]["labels"] == ["a"]
    assert snapshot["when"] == "2026-10-17 08:30:00"
    assert snapshot["day"] == "2026-10-17"
    assert snapshot_payload(None) == {}
    assert snapshot_payload([1, 2]) == {"value": [1, 2]}


def test_write_persists_one_row(session_factory):
    recorder = ExecutionRecorder(SqlExecutionStore(session_factory))
    saved = recorder.write(_record())
    with session_factory() as db:
        rows = db.query(RuleExecution).all()
    assert [row.id for row in rows] == [saved.id]


def test_write_failure_raises_audit_write_error(caplog):
    caplog.set_level(logging.ERROR, logger="execution_recorder")
    recorder = ExecutionRecorder(DownExecutionStore())

    with pytest.raises(AuditWriteError) as excinfo:
        recorder.write(_record(job_id="job-7"))

    assert excinfo.value.rule_id == "r-1"
    assert isinstance(excinfo.value.__cause__, ConnectionError)
    messages = [rec.message for rec in caplog.records if rec.name == "execution_recorder"]
    assert any(m.startswith("Audit write failed") and "job_id=job-7" in m for m in messages)


def test_execution_rows_are_append_only(session_factory):
    saved = ExecutionRecorder(SqlExecutionStore(session_factory)).write(_record())
    with session_factory() as db:
        row = db.get(RuleExecution, saved.id)
        row.error_message = "rewritten"
        with pytest.raises(RuntimeError, match="append-only"):
            db.commit()
