"""
Audit writer for rule executions.

A failed audit write is reported as ``AuditWriteError`` and logged under the
``execution_recorder`` logger, so operators can tell "the audit store is
down" apart from "the rule failed".
"""

from __future__ import annotations

import json
import logging
from typing import Any

from ..core.errors import AuditWriteError, log_exception
from .automation_types import ExecutionRecord
from .stores import ExecutionStore


logger = logging.getLogger("execution_recorder")


def snapshot_payload(payload: Any) -> dict:
    """Detached, JSON-safe copy of a trigger payload for the audit row."""
    if payload is None:
        return {}
    data = json.loads(json.dumps(payload, default=str))
    return data if isinstance(data, dict) else {"value": data}


class ExecutionRecorder:
    def __init__(self, store: ExecutionStore) -> None:
        self.store = store

    def write(self, record: ExecutionRecord) -> ExecutionRecord:
        try:
            return self.store.create(record)
        except Exception as exc:
            log_exception(
                logger,
                "Audit write failed",
                extra={"rule_id": record.rule_id, "outcome": record.outcome, "job_id": record.job_id},
                exc=exc,
            )
            raise AuditWriteError(record.rule_id, exc) from exc
