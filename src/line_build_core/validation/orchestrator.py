"""
line-build-core — validation orchestrator

File: src/line_build_core/validation/orchestrator.py

Purpose
- Run both validation engines over one build and produce a single report.

What should be included in this file
- ``ValidationSettings`` derived from the loaded runtime config.
- Structured pass first, then the semantic pass when a reasoning client is
  available, the run is not structured-only, and the engine is healthy.
- A ``ValidationReport`` carrying the aggregated build status plus counts,
  failures grouped by rule, and timing.

Functional requirements
- Log records emitted during a run carry the ``build_id`` correlation field.
- A skipped semantic pass is reported, never silently dropped.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Final

import structlog

from line_build_core.constants import (
    DEFAULT_HEALTH_ERROR_THRESHOLD,
    DEFAULT_SEMANTIC_MAX_CONCURRENCY,
)
from line_build_core.domain.models import (
    BuildValidationStatus,
    JSONValue,
    LineBuild,
    ValidationResult,
    ValidationRule,
    datetime_to_iso8601z,
    utc_now,
)
from line_build_core.observability.logging import correlation_scope
from line_build_core.reasoning.base import ReasoningClient
from line_build_core.reliability.health import HealthMonitor
from line_build_core.reliability.retry import RetryPolicy, SleepFn, semantic_retry_policy
from line_build_core.utils.concurrency import CancellationToken
from line_build_core.validation import structured
from line_build_core.validation.aggregate import aggregate, failures_by_rule, summarize
from line_build_core.validation.semantic import (
    CatalogLookup,
    SemanticRuleEvaluator,
    semantic_rules,
)

SKIP_STRUCTURED_ONLY: Final[str] = "structured_only"
SKIP_NO_CLIENT: Final[str] = "no_reasoning_client"
SKIP_UNHEALTHY: Final[str] = "engine_unhealthy"


@dataclass(frozen=True, slots=True)
class ValidationSettings:
    structured_only: bool = False
    max_concurrency: int = DEFAULT_SEMANTIC_MAX_CONCURRENCY
    semantic_retry: RetryPolicy = field(default_factory=semantic_retry_policy)
    request_timeout_seconds: float | None = None
    health_threshold: int = DEFAULT_HEALTH_ERROR_THRESHOLD

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> ValidationSettings:
        """Build settings from a validated config mapping (see ``config.load_config``)."""

        validation = config.get("validation", {})
        semantic = config.get("semantic", {})
        health = config.get("health", {})
        defaults = cls()
        return cls(
            structured_only=bool(validation.get("structured_only", defaults.structured_only)),
            max_concurrency=int(
                validation.get("max_concurrent_semantic", defaults.max_concurrency)
            ),
            semantic_retry=semantic_retry_policy(
                max_attempts=semantic.get(
                    "max_attempts", defaults.semantic_retry.max_attempts
                ),
                initial_delay_seconds=semantic.get(
                    "initial_delay_seconds", defaults.semantic_retry.initial_delay_seconds
                ),
                max_delay_seconds=semantic.get(
                    "max_delay_seconds", defaults.semantic_retry.max_delay_seconds
                ),
            ),
            request_timeout_seconds=semantic.get("request_timeout_seconds"),
            health_threshold=int(health.get("error_threshold", defaults.health_threshold)),
        )


@dataclass(frozen=True, slots=True)
class ValidationReport:
    status: BuildValidationStatus
    pass_count: int
    fail_count: int
    failures_by_rule: dict[str, tuple[ValidationResult, ...]]
    checked_at: datetime
    duration_ms: float
    semantic_skipped: bool = False
    skip_reason: str | None = None

    @property
    def total_count(self) -> int:
        return self.pass_count + self.fail_count

    @property
    def is_valid(self) -> bool:
        return self.fail_count == 0

    @property
    def results(self) -> tuple[ValidationResult, ...]:
        return self.status.results

    def to_dict(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {
            "status": self.status.to_dict(),
            "passCount": self.pass_count,
            "failCount": self.fail_count,
            "totalCount": self.total_count,
            "isValid": self.is_valid,
            "failuresByRule": {
                rule_id: [result.to_dict() for result in results]
                for rule_id, results in self.failures_by_rule.items()
            },
            "checkedAt": datetime_to_iso8601z(self.checked_at),
            "durationMs": round(self.duration_ms, 3),
            "semanticSkipped": self.semantic_skipped,
        }
        if self.skip_reason is not None:
            payload["skipReason"] = self.skip_reason
        return payload


async def validate_build(
    build: LineBuild,
    rules: Iterable[ValidationRule],
    *,
    client: ReasoningClient | None = None,
    settings: ValidationSettings | None = None,
    health: HealthMonitor | None = None,
    catalog_lookup: CatalogLookup | None = None,
    structured_only: bool | None = None,
    cancel_token: CancellationToken | None = None,
    sleep: SleepFn = asyncio.sleep,
    logger: Any | None = None,
) -> ValidationReport:
    """Validate ``build`` against ``rules`` with both engines.

    ``structured_only`` overrides the setting of the same name. The caller
    owns ``health`` so engine errors accumulate across builds.
    """

    active = settings if settings is not None else ValidationSettings()
    log = logger if logger is not None else structlog.get_logger(__name__)
    monitor = health if health is not None else HealthMonitor(
        threshold=active.health_threshold, logger=log
    )
    only_structured = active.structured_only if structured_only is None else structured_only
    rule_list = tuple(rules)

    started = time.perf_counter()
    checked_at = utc_now()

    with correlation_scope(build_id=build.id):
        log.info(
            "build_validation_started",
            build_id=build.id,
            work_units=len(build.work_units),
            rules=len(rule_list),
        )
        results: list[ValidationResult] = structured.evaluate_build(
            build, rule_list, now=checked_at
        )

        skip_reason: str | None = None
        if semantic_rules(rule_list) and build.work_units:
            if only_structured:
                skip_reason = SKIP_STRUCTURED_ONLY
            elif client is None:
                skip_reason = SKIP_NO_CLIENT
            elif not monitor.is_healthy():
                skip_reason = SKIP_UNHEALTHY
                log.warning(
                    "semantic_validation_skipped",
                    build_id=build.id,
                    reason=skip_reason,
                    error_count=monitor.get_health().error_count,
                )
            else:
                evaluator = SemanticRuleEvaluator(
                    client,
                    health=monitor,
                    retry=active.semantic_retry,
                    catalog_lookup=catalog_lookup,
                    max_concurrency=active.max_concurrency,
                    request_timeout_seconds=active.request_timeout_seconds,
                    sleep=sleep,
                    logger=log,
                )
                results.extend(
                    await evaluator.evaluate_build(build, rule_list, cancel_token=cancel_token)
                )

        status = aggregate(
            build.id,
            build.menu_item_id,
            results,
            is_draft=build.is_draft,
            checked_at=checked_at,
        )
        summary = summarize(status.results)
        report = ValidationReport(
            status=status,
            pass_count=summary.pass_count,
            fail_count=summary.fail_count,
            failures_by_rule=failures_by_rule(status.results),
            checked_at=checked_at,
            duration_ms=(time.perf_counter() - started) * 1000.0,
            semantic_skipped=skip_reason is not None,
            skip_reason=skip_reason,
        )
        log.info(
            "build_validation_completed",
            build_id=build.id,
            pass_count=report.pass_count,
            fail_count=report.fail_count,
            semantic_skipped=report.semantic_skipped,
            duration_ms=round(report.duration_ms, 3),
        )
    return report


__all__ = [
    "SKIP_NO_CLIENT",
    "SKIP_STRUCTURED_ONLY",
    "SKIP_UNHEALTHY",
    "ValidationReport",
    "ValidationSettings",
    "validate_build",
]
