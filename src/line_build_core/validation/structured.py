"""
line-build-core — structured rule evaluator

File: src/line_build_core/validation/structured.py

Purpose
- Evaluate field/operator/value conditions against single work units.

What should be included in this file
- Dot-path field resolution over the camelCase wire shape of a WorkUnit.
- The five operators: equals, in, notEmpty, greaterThan, lessThan.
- Build-level cross product in build order then rule order.

Functional requirements
- Never raises: operator misuse and unknown operators become failing results.
- Failure strings name the field, the expected condition and the actual value,
  with values rendered as compact JSON.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime
from typing import Final

from line_build_core.domain.models import (
    ConditionOperator,
    JSONValue,
    LineBuild,
    RuleCondition,
    RuleType,
    StructuredRule,
    ValidationResult,
    ValidationRule,
    WorkUnit,
    clip_result_text,
    utc_now,
)
from line_build_core.validation.aggregate import ResultSummary, summarize


class _Absent:
    __slots__ = ()

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT: Final = _Absent()

# Alternate spellings accepted in rule field paths.
_FIELD_ALIASES: Final[dict[str, str]] = {
    "duration": "time",
    "depends_on": "dependsOn",
    "timing_mode": "timingMode",
    "requires_order": "requiresOrder",
    "prep_type": "prepType",
    "storage_location": "storageLocation",
    "bulk_prep": "bulkPrep",
    "bom_id": "bomId",
}


def resolve_field(work_unit: WorkUnit, path: str) -> object:
    """Walk ``path`` into the wire shape of ``work_unit``.

    Missing intermediate keys resolve to :data:`ABSENT` rather than raising.
    """

    current: object = work_unit.to_dict()
    for key in path.split("."):
        if isinstance(current, Mapping):
            if key in current:
                current = current[key]
                continue
            alias = _FIELD_ALIASES.get(key)
            if alias is not None and alias in current:
                current = current[alias]
                continue
            return ABSENT
        if isinstance(current, list) and key.isdigit():
            index = int(key)
            if index < len(current):
                current = current[index]
                continue
        return ABSENT
    return current


def render_value(value: object) -> str:
    """Compact JSON rendering used inside failure strings."""

    if value is ABSENT:
        return "undefined"
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def _render_number(value: int | float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _is_number(value: object) -> bool:
    return _number(value) is not None


def _number(value: object) -> int | float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def _type_name(value: object) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if _is_number(value):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, Mapping):
        return "object"
    if isinstance(value, (list, tuple)):
        return "array"
    return type(value).__name__


def strict_equals(left: object, right: object) -> bool:
    """Equality without bool/number coercion; containers compare element-wise."""

    if left is ABSENT or right is ABSENT:
        return left is right
    if isinstance(left, bool) or isinstance(right, bool):
        return type(left) is type(right) and left == right
    if _is_number(left) and _is_number(right):
        return left == right
    if isinstance(left, str) and isinstance(right, str):
        return left == right
    if left is None or right is None:
        return left is right
    if isinstance(left, Sequence) and isinstance(right, Sequence):
        return len(left) == len(right) and all(
            strict_equals(a, b) for a, b in zip(left, right, strict=True)
        )
    if isinstance(left, Mapping) and isinstance(right, Mapping):
        return left.keys() == right.keys() and all(
            strict_equals(left[key], right[key]) for key in left
        )
    return False


def _is_empty(value: object) -> bool:
    if value is ABSENT or value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if isinstance(value, (list, tuple, Mapping)):
        return len(value) == 0
    return False


def evaluate_condition(work_unit: WorkUnit, condition: RuleCondition) -> str | None:
    """Return the failure string for ``condition``, or ``None`` when it holds."""

    field_name = condition.field
    expected: JSONValue = condition.value
    actual = resolve_field(work_unit, field_name)
    operator = condition.operator

    if operator == ConditionOperator.EQUALS:
        if strict_equals(actual, expected):
            return None
        return f"{field_name} must equal {render_value(expected)}, but got {render_value(actual)}"

    if operator == ConditionOperator.IN:
        if not isinstance(expected, list):
            return (
                "Validation rule error: 'in' operator requires array value, "
                f"got {_type_name(expected)}"
            )
        if any(strict_equals(actual, candidate) for candidate in expected):
            return None
        return (
            f"{field_name} must be one of {render_value(expected)}, "
            f"but got {render_value(actual)}"
        )

    if operator == ConditionOperator.NOT_EMPTY:
        if not _is_empty(actual):
            return None
        return f"{field_name} is required but is empty"

    if operator in (ConditionOperator.GREATER_THAN, ConditionOperator.LESS_THAN):
        left, right = _number(actual), _number(expected)
        if left is None or right is None:
            return f"{field_name} must be a number to use '{operator}' operator"
        if operator == ConditionOperator.GREATER_THAN:
            if left > right:
                return None
            symbol = ">"
        else:
            if left < right:
                return None
            symbol = "<"
        return (
            f"{field_name} must be {symbol} {_render_number(right)}, "
            f"but got {_render_number(left)}"
        )

    return f"Unknown operator: {operator}"


def evaluate_rule(
    rule: StructuredRule,
    work_unit: WorkUnit,
    build: LineBuild | None = None,
    *,
    now: datetime | None = None,
) -> ValidationResult:
    """Evaluate one structured rule against one work unit.

    Disabled rules and rules whose ``applies_to`` excludes the unit's action
    pass with no failures. ``build`` is accepted for context parity with the
    semantic evaluator; conditions only look at the unit itself.
    """

    del build
    timestamp = now if now is not None else utc_now()
    failure: str | None = None
    if rule.enabled and rule.applies_to_action(work_unit.action):
        failure = evaluate_condition(work_unit, rule.condition)

    return ValidationResult(
        rule_id=rule.id,
        rule_name=rule.name,
        rule_type=RuleType.STRUCTURED,
        work_unit_id=work_unit.id,
        passed=failure is None,
        failures=() if failure is None else (clip_result_text(failure),),
        timestamp=timestamp,
    )


def structured_rules(rules: Iterable[ValidationRule]) -> tuple[StructuredRule, ...]:
    return tuple(rule for rule in rules if isinstance(rule, StructuredRule) and rule.enabled)


def evaluate_build(
    build: LineBuild,
    rules: Iterable[ValidationRule],
    *,
    now: datetime | None = None,
) -> list[ValidationResult]:
    """Cross product of work units (build order) and enabled structured rules (rule order).

    Semantic rules in ``rules`` are ignored here.
    """

    timestamp = now if now is not None else utc_now()
    active_rules = structured_rules(rules)
    return [
        evaluate_rule(rule, work_unit, build, now=timestamp)
        for work_unit in build.work_units
        for rule in active_rules
    ]


def summarize_structured(results: Iterable[ValidationResult]) -> ResultSummary:
    return summarize(results)


__all__ = [
    "ABSENT",
    "evaluate_build",
    "evaluate_condition",
    "evaluate_rule",
    "render_value",
    "resolve_field",
    "strict_equals",
    "structured_rules",
    "summarize_structured",
]
