"""Structural checks on rule definitions before they are evaluated."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from line_build_core.domain.models import (
    ConditionOperator,
    RuleType,
    SemanticRule,
    StructuredRule,
    ValidationRule,
)
from line_build_core.reliability.errors import CircularRuleDependencyError, MalformedRuleError

VALID_OPERATORS: tuple[str, ...] = tuple(
    operator.value
    for operator in (
        ConditionOperator.IN,
        ConditionOperator.EQUALS,
        ConditionOperator.NOT_EMPTY,
        ConditionOperator.GREATER_THAN,
        ConditionOperator.LESS_THAN,
    )
)


def _present(value: object) -> bool:
    return isinstance(value, str) and bool(value.strip())


def validate_rule_definition(
    rule: ValidationRule | Mapping[str, object],
) -> MalformedRuleError | None:
    """Return a malformed-rule error for the first structural problem, else ``None``.

    Accepts parsed rules or raw mappings in the wire shape. A ``notEmpty``
    condition may omit ``value``; every other operator needs one.
    """

    raw: Mapping[str, object]
    if isinstance(rule, (StructuredRule, SemanticRule)):
        raw = rule.to_dict()
    elif isinstance(rule, Mapping):
        raw = rule
    else:
        return MalformedRuleError(f"Rule definition must be an object, got {type(rule).__name__}")

    rule_id = raw.get("id") if isinstance(raw.get("id"), str) else None
    if not _present(raw.get("id")) or not _present(raw.get("name")) or not isinstance(
        raw.get("enabled"), bool
    ):
        return MalformedRuleError(
            "Rule missing required fields (id, name, enabled)", rule_id=rule_id
        )

    rule_type = raw.get("type")
    if rule_type == RuleType.STRUCTURED:
        return _validate_structured(raw, rule_id)
    if rule_type == RuleType.SEMANTIC:
        return _validate_semantic(raw, rule_id)
    return MalformedRuleError(
        f"Unknown rule type: {rule_type}. Must be one of: structured, semantic",
        rule_id=rule_id,
    )


def _validate_structured(raw: Mapping[str, object], rule_id: str | None) -> MalformedRuleError | None:
    condition = raw.get("condition")
    if not isinstance(condition, Mapping):
        return MalformedRuleError("Structured rule missing condition field", rule_id=rule_id)

    operator = condition.get("operator")
    value_required = operator != ConditionOperator.NOT_EMPTY
    if (
        not _present(condition.get("field"))
        or not _present(operator)
        or (value_required and "value" not in condition)
    ):
        return MalformedRuleError(
            "Rule condition incomplete (missing field, operator, or value)", rule_id=rule_id
        )

    if operator not in VALID_OPERATORS:
        return MalformedRuleError(
            f"Invalid operator: {operator}. Must be one of: {', '.join(VALID_OPERATORS)}",
            rule_id=rule_id,
        )

    if not _present(raw.get("failureMessage")):
        return MalformedRuleError("Structured rule missing failureMessage", rule_id=rule_id)
    return None


def _validate_semantic(raw: Mapping[str, object], rule_id: str | None) -> MalformedRuleError | None:
    if not _present(raw.get("prompt")):
        return MalformedRuleError("Semantic rule missing or empty prompt", rule_id=rule_id)
    return None


def detect_circular_rule_dependencies(
    rules: Iterable[ValidationRule],
) -> CircularRuleDependencyError | None:
    """Rules cannot reference each other's results yet, so there is nothing to walk."""

    del rules
    return None


__all__ = [
    "VALID_OPERATORS",
    "detect_circular_rule_dependencies",
    "validate_rule_definition",
]
