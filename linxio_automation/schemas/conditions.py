"""
Pydantic schemas for rule condition trees.

A condition spec is a tree discriminated on ``op``: comparison leaves
(``FieldCondition``) combined with ``and``/``or`` groups. Every accepted input
form is normalised into this tree by ``services.conditions.parse_condition_spec``.
"""

from __future__ import annotations

from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


FieldOperator = Literal[
    "equals",
    "not_equals",
    "in",
    "not_in",
    "contains",
    "starts_with",
    "ends_with",
    "gt",
    "gte",
    "lt",
    "lte",
    "is_empty",
    "is_not_empty",
]


class FieldCondition(BaseModel):
    model_config = ConfigDict(frozen=True)

    op: FieldOperator
    # Dot-path into the trigger payload, e.g. "task.priority"
    field: str = Field(min_length=1)
    value: Any = None
    # Candidate list for in / not_in; falls back to `value` when omitted
    values: Optional[List[Any]] = None


class AllOf(BaseModel):
    model_config = ConfigDict(frozen=True)

    op: Literal["and"] = "and"
    children: List["ConditionSpec"] = Field(default_factory=list)


class AnyOf(BaseModel):
    model_config = ConfigDict(frozen=True)

    op: Literal["or"] = "or"
    children: List["ConditionSpec"] = Field(default_factory=list)


ConditionSpec = Annotated[Union[FieldCondition, AllOf, AnyOf], Field(discriminator="op")]

AllOf.model_rebuild()
AnyOf.model_rebuild()
