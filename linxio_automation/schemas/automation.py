"""
Pydantic schemas for automation jobs, rules and execution history.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..models.automation_rule import TriggerType


class AutomationJob(BaseModel):
    """Message consumed from the automation job topic."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel, extra="ignore")

    rule_id: str = Field(min_length=1)
    trigger_type: TriggerType
    trigger_data: Dict[str, Any] = Field(default_factory=dict)
    triggered_by_id: Optional[str] = None
    # Queue delivery id; kept on the execution record
    job_id: Optional[str] = None
    attempt: int = Field(default=1, ge=1)

    def to_message(self) -> dict:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class RuleOut(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    status: str
    trigger_type: str
    trigger_config: Optional[Dict[str, Any]] = None
    conditions: Optional[Dict[str, Any]] = None
    action_type: str
    action_config: Optional[Dict[str, Any]] = None
    project_id: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class RuleExecutionOut(BaseModel):
    id: str
    rule_id: str
    trigger_type: str
    trigger_data: Dict[str, Any] = Field(default_factory=dict)
    action_result: Optional[Dict[str, Any]] = None
    success: bool
    outcome: str
    execution_time_ms: int
    error_message: Optional[str] = None
    triggered_by_id: Optional[str] = None
    created_by: Optional[str] = None
    job_id: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class RuleExecutionList(BaseModel):
    items: List[RuleExecutionOut]
    total: int
    page: int
    page_size: int


class ManualRunRequest(BaseModel):
    trigger_type: TriggerType
    trigger_data: Dict[str, Any] = Field(default_factory=dict)
    triggered_by_id: Optional[str] = None
    timeout_sec: Optional[float] = Field(default=None, ge=0)
