"""
Condition evaluation for automation rules.

Rules carry their conditions as loosely-shaped JSON written by several
generations of the rule builder. ``parse_condition_spec`` translates every
accepted shape into the ``schemas.conditions`` tree once; ``evaluate`` only
ever walks that tree. Evaluation is pure: no I/O, no hidden state.

Accepted shapes:

* canonical tree: ``{"op": "and", "children": [...]}`` /
  ``{"op": "equals", "field": "task.type", "value": "BUG"}``
* builder form: ``{"and": [...]}``, ``{"or": [...]}``,
  ``{"field": "task.type", "operator": "equals", "value": "BUG"}``,
  optionally wrapped in ``{"if": ...}``
* legacy flat map: ``{"task.type": "BUG", "task.priority": {"in": [...]}}``
  (implicit AND)
* legacy trigger filters on ``trigger_config`` (``taskType``, ``priority``,
  ``projectId``, ``assigneeId``), used only when a rule has no conditions
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from typing import Any, Callable, Optional

from pydantic import ValidationError

from ..core.errors import ConditionSpecError
from ..schemas.conditions import AllOf, AnyOf, ConditionSpec, FieldCondition
from .automation_types import RuleDefinition


logger = logging.getLogger("automation_conditions")


class _Missing:
    """Marker for a dot-path that does not resolve."""

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


_OPERATOR_ALIASES = {
    "equals": "equals",
    "eq": "equals",
    "==": "equals",
    "notequals": "not_equals",
    "ne": "not_equals",
    "neq": "not_equals",
    "!=": "not_equals",
    "in": "in",
    "notin": "not_in",
    "contains": "contains",
    "startswith": "starts_with",
    "endswith": "ends_with",
    "gt": "gt",
    ">": "gt",
    "greaterthan": "gt",
    "gte": "gte",
    ">=": "gte",
    "greaterthanorequal": "gte",
    "greaterthanorequals": "gte",
    "lt": "lt",
    "<": "lt",
    "lessthan": "lt",
    "lte": "lte",
    "<=": "lte",
    "lessthanorequal": "lte",
    "lessthanorequals": "lte",
    "isempty": "is_empty",
    "empty": "is_empty",
    "isnotempty": "is_not_empty",
    "notempty": "is_not_empty",
}

# Legacy flat-map operator keys, checked in this order; the first present wins.
_LEGACY_OPERATORS = (("equals", "equals"), ("in", "in"), ("not", "not_equals"), ("contains", "contains"))

# trigger_config key -> payload path
LEGACY_TRIGGER_FILTERS = (
    ("taskType", "task.type"),
    ("priority", "task.priority"),
    ("projectId", "task.projectId"),
    ("assigneeId", "task.assigneeId"),
)


def canonical_operator(raw: Any) -> str:
    if not isinstance(raw, str) or not raw.strip():
        raise ConditionSpecError(f"Condition operator must be a non-empty string, got {raw!r}")
    key = raw.strip().lower().replace("_", "").replace("-", "")
    try:
        return _OPERATOR_ALIASES[key]
    except KeyError:
        raise ConditionSpecError(f"Unknown condition operator: {raw}") from None


def resolve_path(payload: Any, path: str) -> Any:
    """Walk ``payload`` along a dot-path. Any missing hop yields ``MISSING``."""
    current = payload
    for part in path.split("."):
        if isinstance(current, Mapping):
            if part not in current:
                return MISSING
            current = current[part]
        elif isinstance(current, (list, tuple)) and part.isdigit():
            idx = int(part)
            if idx >= len(current):
                return MISSING
            current = current[idx]
        else:
            return MISSING
    return current


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _leaf(op: str, field: Any, value: Any = None, values: Any = None) -> FieldCondition:
    try:
        return FieldCondition(op=op, field=field, value=value, values=values)
    except ValidationError as exc:
        raise ConditionSpecError(f"Invalid condition on field {field!r}: {exc.errors()[0].get('msg')}") from exc


def _children(raw: Any, key: str) -> list:
    if not isinstance(raw, list):
        raise ConditionSpecError(f"'{key}' must be a list of conditions")
    return [_normalize(child) for child in raw]


def _flat_map(node: Mapping) -> AllOf:
    children: list[ConditionSpec] = []
    for field, expected in node.items():
        if field in {"if", "then"}:
            continue
        if isinstance(expected, Mapping):
            for key, op in _LEGACY_OPERATORS:
                if key in expected:
                    children.append(_leaf(op, field, expected[key]))
                    break
            else:
                raise ConditionSpecError(f"Unsupported legacy condition for {field!r}: {sorted(expected)}")
        else:
            children.append(_leaf("equals", field, expected))
    return AllOf(children=children)


def _normalize(node: Any) -> ConditionSpec:
    if isinstance(node, (FieldCondition, AllOf, AnyOf)):
        return node
    if isinstance(node, list):
        return AllOf(children=[_normalize(child) for child in node])
    if not isinstance(node, Mapping):
        raise ConditionSpecError(f"Condition must be an object, got {type(node).__name__}")

    if "if" in node:
        return _normalize(node["if"])

    if "op" in node:
        op = node["op"]
        if isinstance(op, str) and op.strip().lower() in {"and", "or"}:
            children = _children(node.get("children", []), "children")
            if op.strip().lower() == "and":
                return AllOf(children=children)
            return AnyOf(children=children)
        return _leaf(canonical_operator(op), node.get("field"), node.get("value"), node.get("values"))

    if "field" in node:
        operator = node.get("operator")
        op = canonical_operator(operator) if operator is not None else "equals"
        return _leaf(op, node["field"], node.get("value"), node.get("values"))

    if "and" in node:
        return AllOf(children=_children(node["and"], "and"))
    if "or" in node:
        return AnyOf(children=_children(node["or"], "or"))

    return _flat_map(node)


def parse_condition_spec(raw: Any) -> ConditionSpec:
    """Normalise any accepted condition shape into the tree form.

    ``None`` and empty containers mean "always match" and parse to an empty
    ``AllOf``. Malformed input raises ``ConditionSpecError``.
    """
    if raw is None or (isinstance(raw, (Mapping, list)) and not raw):
        return AllOf()
    return _normalize(raw)


def legacy_filter_spec(trigger_config: Optional[Mapping]) -> AllOf:
    if not trigger_config:
        return AllOf()
    children = [
        _leaf("equals", path, trigger_config[key])
        for key, path in LEGACY_TRIGGER_FILTERS
        if trigger_config.get(key)
    ]
    return AllOf(children=children)


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is MISSING or value is None:
        return None
    if not isinstance(value, (int, float, str)):
        return None
    try:
        number = float(value.strip() if isinstance(value, str) else value)
    except (OverflowError, ValueError):
        # Integers beyond float range are not comparable.
        return None
    if math.isnan(number):
        return None
    return number


def _strict_equals(actual: Any, expected: Any) -> bool:
    if actual is MISSING or expected is MISSING:
        return False
    if isinstance(actual, bool) or isinstance(expected, bool):
        return isinstance(actual, bool) and isinstance(expected, bool) and actual == expected
    if isinstance(actual, str) != isinstance(expected, str):
        return False
    return actual == expected


def _is_empty(actual: Any) -> bool:
    if actual is MISSING or actual is None:
        return True
    if isinstance(actual, str):
        return not actual.strip()
    if isinstance(actual, (list, tuple, dict, set)):
        return len(actual) == 0
    return False


def _candidates(cond: FieldCondition) -> Optional[list]:
    values = cond.values if cond.values is not None else cond.value
    return values if isinstance(values, list) else None


def _op_in(actual: Any, cond: FieldCondition) -> bool:
    values = _candidates(cond)
    if values is None:
        return False
    return any(_strict_equals(actual, v) for v in values)


def _op_not_in(actual: Any, cond: FieldCondition) -> bool:
    values = _candidates(cond)
    if values is None or actual is MISSING:
        return False
    return not any(_strict_equals(actual, v) for v in values)


def _op_contains(actual: Any, cond: FieldCondition) -> bool:
    if isinstance(actual, str):
        return isinstance(cond.value, str) and cond.value in actual
    if isinstance(actual, (list, tuple)):
        return any(_strict_equals(item, cond.value) for item in actual)
    return False


def _numeric(compare: Callable[[float, float], bool]) -> Callable[[Any, FieldCondition], bool]:
    def _op(actual: Any, cond: FieldCondition) -> bool:
        left = _as_number(actual)
        right = _as_number(cond.value)
        if left is None or right is None:
            return False
        return compare(left, right)

    return _op


_OPERATORS: dict[str, Callable[[Any, FieldCondition], bool]] = {
    "equals": lambda actual, cond: _strict_equals(actual, cond.value),
    "not_equals": lambda actual, cond: actual is not MISSING and not _strict_equals(actual, cond.value),
    "in": _op_in,
    "not_in": _op_not_in,
    "contains": _op_contains,
    "starts_with": lambda actual, cond: isinstance(actual, str) and isinstance(cond.value, str) and actual.startswith(cond.value),
    "ends_with": lambda actual, cond: isinstance(actual, str) and isinstance(cond.value, str) and actual.endswith(cond.value),
    "gt": _numeric(lambda a, b: a > b),
    "gte": _numeric(lambda a, b: a >= b),
    "lt": _numeric(lambda a, b: a < b),
    "lte": _numeric(lambda a, b: a <= b),
    "is_empty": lambda actual, cond: _is_empty(actual),
    "is_not_empty": lambda actual, cond: actual is not MISSING and not _is_empty(actual),
}


def evaluate(spec: ConditionSpec, payload: Any) -> bool:
    if isinstance(spec, AllOf):
        return all(evaluate(child, payload) for child in spec.children)
    if isinstance(spec, AnyOf):
        return any(evaluate(child, payload) for child in spec.children)
    actual = resolve_path(payload, spec.field)
    return _OPERATORS[spec.op](actual, spec)


class ConditionEvaluator:
    """Decides whether a rule's conditions hold for a trigger payload."""

    def spec_for(self, rule: RuleDefinition) -> ConditionSpec:
        trigger_config = rule.trigger_config if isinstance(rule.trigger_config, Mapping) else {}
        conditions = rule.conditions or trigger_config.get("conditions")
        if not conditions:
            return legacy_filter_spec(trigger_config)
        return parse_condition_spec(conditions)

    def matches(self, rule: RuleDefinition, payload: Any) -> bool:
        try:
            spec = self.spec_for(rule)
        except ConditionSpecError as exc:
            logger.warning("Rule %s has a malformed condition spec; treating as not met: %s", rule.id, exc)
            return False
        try:
            return evaluate(spec, payload if payload is not None else {})
        except Exception as exc:
            logger.warning("Rule %s condition evaluation failed; treating as not met: %s", rule.id, exc)
            return False
