"""
line-build-core — domain layer

File: src/line_build_core/domain/__init__.py

Purpose
- Graph model (WorkUnit, LineBuild), rule variants, and validation result types.

What should be included in this file
- Re-export of core domain entities for convenience.
- Keep domain layer free of IO side effects.

Functional requirements
- Domain objects must round-trip through the camelCase wire shape.
"""

from line_build_core.domain.models import (
    ActionType,
    BuildStatus,
    BuildValidationStatus,
    ChangelogEntry,
    ConditionOperator,
    Duration,
    ItemReference,
    LineBuild,
    Phase,
    PrepType,
    RuleCondition,
    RuleType,
    SemanticRule,
    StructuredRule,
    TimeActivity,
    TimeUnit,
    TimingMode,
    ValidationResult,
    ValidationRule,
    WorkUnit,
    rule_from_dict,
)

__all__ = [
    "ActionType",
    "BuildStatus",
    "BuildValidationStatus",
    "ChangelogEntry",
    "ConditionOperator",
    "Duration",
    "ItemReference",
    "LineBuild",
    "Phase",
    "PrepType",
    "RuleCondition",
    "RuleType",
    "SemanticRule",
    "StructuredRule",
    "TimeActivity",
    "TimeUnit",
    "TimingMode",
    "ValidationResult",
    "ValidationRule",
    "WorkUnit",
    "rule_from_dict",
]
