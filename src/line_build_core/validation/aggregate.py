"""Roll evaluator results into a build-level verdict."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from line_build_core.domain.models import (
    BuildValidationStatus,
    RuleType,
    ValidationResult,
    utc_now,
)


@dataclass(frozen=True, slots=True)
class ResultSummary:
    pass_count: int
    fail_count: int
    failures_by_work_unit: dict[str, tuple[ValidationResult, ...]] = field(default_factory=dict)
    avg_reasoning_length: float | None = None

    @property
    def total_count(self) -> int:
        return self.pass_count + self.fail_count

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "passCount": self.pass_count,
            "failCount": self.fail_count,
            "failuresByWorkUnit": {
                unit_id: [result.to_dict() for result in results]
                for unit_id, results in self.failures_by_work_unit.items()
            },
        }
        if self.avg_reasoning_length is not None:
            payload["avgReasoningLength"] = self.avg_reasoning_length
        return payload


def aggregate(
    build_id: str,
    item_id: str | None,
    results: Iterable[ValidationResult],
    *,
    is_draft: bool = True,
    checked_at: datetime | None = None,
) -> BuildValidationStatus:
    """Merge structured and semantic results into one ``BuildValidationStatus``."""

    ordered = tuple(results)
    failing = [result for result in ordered if not result.passed]
    return BuildValidationStatus(
        build_id=build_id,
        item_id=item_id,
        is_draft=is_draft,
        has_structured_failures=any(r.rule_type is RuleType.STRUCTURED for r in failing),
        has_semantic_failures=any(r.rule_type is RuleType.SEMANTIC for r in failing),
        failure_count=len(failing),
        last_checked=checked_at if checked_at is not None else utc_now(),
        results=ordered,
    )


def summarize(
    results: Iterable[ValidationResult],
    *,
    include_reasoning_length: bool = False,
) -> ResultSummary:
    """Pass/fail counts plus failing results grouped by work unit, in input order."""

    pass_count = 0
    total = 0
    reasoning_chars = 0
    grouped: dict[str, list[ValidationResult]] = {}
    for result in results:
        total += 1
        if result.reasoning:
            reasoning_chars += len(result.reasoning)
        if result.passed:
            pass_count += 1
            continue
        grouped.setdefault(result.work_unit_id, []).append(result)

    avg_length: float | None = None
    if include_reasoning_length:
        avg_length = reasoning_chars / total if total else 0.0

    return ResultSummary(
        pass_count=pass_count,
        fail_count=sum(len(group) for group in grouped.values()),
        failures_by_work_unit={unit_id: tuple(group) for unit_id, group in grouped.items()},
        avg_reasoning_length=avg_length,
    )


def failures_by_rule(results: Iterable[ValidationResult]) -> dict[str, tuple[ValidationResult, ...]]:
    grouped: dict[str, list[ValidationResult]] = {}
    for result in results:
        if not result.passed:
            grouped.setdefault(result.rule_id, []).append(result)
    return {rule_id: tuple(group) for rule_id, group in grouped.items()}


__all__ = ["ResultSummary", "aggregate", "failures_by_rule", "summarize"]
