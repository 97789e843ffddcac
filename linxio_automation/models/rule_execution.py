"""
Append-only audit trail of automation rule executions.

Exactly one row is written per orchestrator run. Rows are never updated;
the ORM refuses to flush changes to an existing row.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import String, DateTime, Integer, Text, Boolean, JSON, Index, event
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from . import Base


class ExecutionOutcomeKind(str, Enum):
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    SKIPPED = "SKIPPED"


class RuleExecution(Base):
    __tablename__ = "rule_executions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    # No FK: executions outlive deleted rules
    rule_id: Mapped[str] = mapped_column(String(36), index=True)
    trigger_type: Mapped[str] = mapped_column(String(48))
    trigger_data: Mapped[dict] = mapped_column(JSON().with_variant(JSONB(), "postgresql"), default=dict)
    action_result: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    success: Mapped[bool] = mapped_column(Boolean)
    outcome: Mapped[str] = mapped_column(String(16))  # SUCCESS | FAILURE | SKIPPED
    execution_time_ms: Mapped[int] = mapped_column(Integer, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    triggered_by_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    # Queue delivery id; duplicates of one delivery share it
    job_id: Mapped[str | None] = mapped_column(String(64), index=True, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    __table_args__ = (
        Index("ix_rule_executions_rule_created", "rule_id", "created_at"),
        Index("ix_rule_executions_rule_success", "rule_id", "success"),
    )


@event.listens_for(RuleExecution, "before_update")
def _reject_update(mapper, connection, target: RuleExecution) -> None:
    raise RuntimeError(f"rule_executions is append-only; refusing to update {target.id}")
