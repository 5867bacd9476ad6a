"""
line-build-core — validation engine error taxonomy

File: src/line_build_core/reliability/errors.py

Purpose
- Normalized error type for the semantic validation path and its classifier.

What should be included in this file
- ``LineBuildValidationError`` with machine-readable ``error_type``,
  ``retryable`` and ``rule_id`` fields.
- One subclass per taxonomy member with its retryability fixed.
- ``classify_error`` mapping arbitrary exceptions (SDK, transport, text) into
  the taxonomy.

Functional requirements
- Timeout and api-error are retryable; malformed-rule and circular-dependency
  never are; unknown is logged but not retried.
"""

from __future__ import annotations

import asyncio
from enum import StrEnum


class ValidationErrorType(StrEnum):
    TIMEOUT = "timeout"
    API_ERROR = "api-error"
    MALFORMED_RULE = "malformed-rule"
    CIRCULAR_DEPENDENCY = "circular-dependency"
    UNKNOWN = "unknown"


_RETRYABLE_TYPES: frozenset[ValidationErrorType] = frozenset(
    {ValidationErrorType.TIMEOUT, ValidationErrorType.API_ERROR}
)

_TIMEOUT_MARKERS: tuple[str, ...] = ("timeout", "deadline exceeded", "timed out")
_RATE_LIMIT_MARKERS: tuple[str, ...] = ("429", "rate limit", "quota")


class LineBuildValidationError(RuntimeError):
    """Base normalized validation engine error."""

    def __init__(
        self,
        message: str,
        *,
        error_type: ValidationErrorType | str = ValidationErrorType.UNKNOWN,
        rule_id: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self.error_type = ValidationErrorType(error_type)
        self.message = _normalize_detail(message)
        self.rule_id = rule_id
        self.status_code = status_code
        self.retryable = self.error_type in _RETRYABLE_TYPES
        super().__init__(self.message)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"type": self.error_type.value, "message": self.message}
        if self.rule_id is not None:
            payload["ruleId"] = self.rule_id
        return payload


class ValidationTimeoutError(LineBuildValidationError):
    """Reasoning call exceeded its deadline (retryable)."""

    def __init__(self, message: str, *, rule_id: str | None = None) -> None:
        super().__init__(message, error_type=ValidationErrorType.TIMEOUT, rule_id=rule_id)


class ValidationApiError(LineBuildValidationError):
    """Rate limiting or quota exhaustion at the reasoning service (retryable)."""

    def __init__(
        self,
        message: str,
        *,
        rule_id: str | None = None,
        status_code: int | None = 429,
    ) -> None:
        super().__init__(
            message,
            error_type=ValidationErrorType.API_ERROR,
            rule_id=rule_id,
            status_code=status_code,
        )


class MalformedRuleError(LineBuildValidationError):
    """Rule definition is structurally invalid."""

    def __init__(self, message: str, *, rule_id: str | None = None) -> None:
        super().__init__(message, error_type=ValidationErrorType.MALFORMED_RULE, rule_id=rule_id)


class CircularRuleDependencyError(LineBuildValidationError):
    def __init__(self, message: str, *, rule_id: str | None = None) -> None:
        super().__init__(
            message, error_type=ValidationErrorType.CIRCULAR_DEPENDENCY, rule_id=rule_id
        )


def read_status_code(error: BaseException) -> int | None:
    """Best-effort HTTP status extraction from SDK/transport exceptions."""

    for attr_name in ("status_code", "status", "http_status"):
        value = getattr(error, attr_name, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value

    response = getattr(error, "response", None)
    if response is not None:
        value = getattr(response, "status_code", None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def is_timeout_error(error: BaseException | str | None) -> bool:
    if error is None:
        return False
    if isinstance(error, (TimeoutError, asyncio.TimeoutError)):
        return True
    if isinstance(error, LineBuildValidationError):
        return error.error_type is ValidationErrorType.TIMEOUT
    message = str(error).lower()
    return any(marker in message for marker in _TIMEOUT_MARKERS)


def is_rate_limit_error(error: BaseException | str | None) -> bool:
    if error is None:
        return False
    if isinstance(error, LineBuildValidationError):
        return error.error_type is ValidationErrorType.API_ERROR
    if isinstance(error, BaseException) and read_status_code(error) == 429:
        return True
    message = str(error).lower()
    return any(marker in message for marker in _RATE_LIMIT_MARKERS)


def classify_error(
    error: BaseException | str,
    *,
    rule_id: str | None = None,
) -> LineBuildValidationError:
    """Map ``error`` into the validation error taxonomy.

    Already-normalized errors pass through unchanged, except that a missing
    ``rule_id`` is filled in.
    """

    if isinstance(error, LineBuildValidationError):
        if error.rule_id is None and rule_id is not None:
            error.rule_id = rule_id
        return error

    detail = str(error) if isinstance(error, str) else _exception_detail(error)
    if is_timeout_error(error):
        return ValidationTimeoutError(detail, rule_id=rule_id)
    if is_rate_limit_error(error):
        status = read_status_code(error) if isinstance(error, BaseException) else None
        return ValidationApiError(detail, rule_id=rule_id, status_code=status)
    return LineBuildValidationError(
        detail,
        error_type=ValidationErrorType.UNKNOWN,
        rule_id=rule_id,
        status_code=read_status_code(error) if isinstance(error, BaseException) else None,
    )


def _exception_detail(error: BaseException) -> str:
    message = str(error).strip()
    if message:
        return message
    return type(error).__name__


def _normalize_detail(value: object) -> str:
    text = str(value).strip()
    if not text:
        return "Unknown error"
    return " ".join(text.split())


__all__ = [
    "CircularRuleDependencyError",
    "LineBuildValidationError",
    "MalformedRuleError",
    "ValidationApiError",
    "ValidationErrorType",
    "ValidationTimeoutError",
    "classify_error",
    "is_rate_limit_error",
    "is_timeout_error",
    "read_status_code",
]
