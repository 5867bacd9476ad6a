"""Error taxonomy, retry policy and health tracking for unreliable calls."""

from line_build_core.reliability.errors import (
    CircularRuleDependencyError,
    LineBuildValidationError,
    MalformedRuleError,
    ValidationApiError,
    ValidationErrorType,
    ValidationTimeoutError,
    classify_error,
)
from line_build_core.reliability.health import EngineHealth, HealthMonitor
from line_build_core.reliability.retry import (
    RetryPolicy,
    default_should_retry,
    run_with_retry,
    semantic_retry_policy,
)

__all__ = [
    "CircularRuleDependencyError",
    "EngineHealth",
    "HealthMonitor",
    "LineBuildValidationError",
    "MalformedRuleError",
    "RetryPolicy",
    "ValidationApiError",
    "ValidationErrorType",
    "ValidationTimeoutError",
    "classify_error",
    "default_should_retry",
    "run_with_retry",
    "semantic_retry_policy",
]
