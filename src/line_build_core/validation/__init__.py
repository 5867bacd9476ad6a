"""Structured and semantic rule evaluation over line builds.

``structured.evaluate_build`` and ``semantic.SemanticRuleEvaluator`` are the
two engines; :func:`validate_build` runs both and aggregates the results.
"""

from line_build_core.validation.aggregate import (
    ResultSummary,
    aggregate,
    failures_by_rule,
    summarize,
)
from line_build_core.validation.cook_time import default_semantic_rules
from line_build_core.validation.orchestrator import (
    ValidationReport,
    ValidationSettings,
    validate_build,
)
from line_build_core.validation.response import ParsedVerdict, parse_reasoning_response
from line_build_core.validation.rule_definitions import (
    detect_circular_rule_dependencies,
    validate_rule_definition,
)
from line_build_core.validation.rule_library import (
    RuleLibrary,
    RuleLibraryError,
    load_rule_library,
    parse_rule_library,
)
from line_build_core.validation.semantic import SemanticRuleEvaluator, evaluate_semantic_rule
from line_build_core.validation.vocabulary import match_equipment_to_capability

__all__ = [
    "ParsedVerdict",
    "ResultSummary",
    "RuleLibrary",
    "RuleLibraryError",
    "SemanticRuleEvaluator",
    "ValidationReport",
    "ValidationSettings",
    "aggregate",
    "default_semantic_rules",
    "detect_circular_rule_dependencies",
    "evaluate_semantic_rule",
    "failures_by_rule",
    "load_rule_library",
    "match_equipment_to_capability",
    "parse_reasoning_response",
    "parse_rule_library",
    "summarize",
    "validate_build",
    "validate_rule_definition",
]
