"""In-memory error counters for the semantic validation engine."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog

from line_build_core.constants import DEFAULT_HEALTH_ERROR_THRESHOLD
from line_build_core.domain.models import datetime_to_iso8601z, utc_now
from line_build_core.reliability.errors import (
    LineBuildValidationError,
    ValidationErrorType,
)


@dataclass(frozen=True, slots=True)
class EngineHealth:
    """Point-in-time copy of the monitor counters."""

    error_count: int = 0
    timeout_count: int = 0
    rate_limit_count: int = 0
    last_error: LineBuildValidationError | None = None
    last_error_time: datetime | None = None

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "errorCount": self.error_count,
            "timeoutCount": self.timeout_count,
            "rateLimitCount": self.rate_limit_count,
        }
        if self.last_error is not None:
            payload["lastError"] = self.last_error.to_dict()
        if self.last_error_time is not None:
            payload["lastErrorTime"] = datetime_to_iso8601z(self.last_error_time)
        return payload


class HealthMonitor:
    """
    Caller-owned error tracker used to decide whether to keep offering
    semantic validation or fall back to structured-only.

    Unhealthy once ``threshold`` errors have accumulated since the last reset.
    """

    def __init__(
        self,
        *,
        threshold: int = DEFAULT_HEALTH_ERROR_THRESHOLD,
        clock: Any | None = None,
        logger: Any | None = None,
    ) -> None:
        if isinstance(threshold, bool) or not isinstance(threshold, int) or threshold < 1:
            raise ValueError("threshold must be an integer >= 1")
        self._threshold = threshold
        self._clock = clock if clock is not None else utc_now
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._health = EngineHealth()

    @property
    def threshold(self) -> int:
        return self._threshold

    def record_error(self, error: LineBuildValidationError | BaseException | str) -> None:
        if isinstance(error, LineBuildValidationError):
            normalized = error
        elif isinstance(error, str):
            normalized = LineBuildValidationError(error)
        else:
            normalized = LineBuildValidationError(str(error) or "Unknown")

        current = self._health
        self._health = EngineHealth(
            error_count=current.error_count + 1,
            timeout_count=current.timeout_count
            + (1 if normalized.error_type is ValidationErrorType.TIMEOUT else 0),
            rate_limit_count=current.rate_limit_count
            + (1 if normalized.error_type is ValidationErrorType.API_ERROR else 0),
            last_error=normalized,
            last_error_time=self._clock(),
        )

        self._logger.warning(
            "validation_engine_error",
            error_type=normalized.error_type.value,
            error_message=normalized.message,
            rule_id=normalized.rule_id,
            total_errors=self._health.error_count,
            timeouts=self._health.timeout_count,
        )

    def get_health(self) -> EngineHealth:
        return self._health

    def is_healthy(self) -> bool:
        return self._health.error_count < self._threshold

    def reset(self) -> None:
        self._health = EngineHealth()


__all__ = ["EngineHealth", "HealthMonitor"]
