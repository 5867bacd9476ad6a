"""Unit tests for result aggregation into a build-level verdict."""

from __future__ import annotations

from datetime import datetime, timezone

from line_build_core.domain.models import RuleType, ValidationResult
from line_build_core.validation.aggregate import aggregate, failures_by_rule, summarize

_NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)


def _result(
    rule_id: str,
    unit_id: str,
    *,
    passed: bool,
    rule_type: RuleType = RuleType.STRUCTURED,
    reasoning: str | None = None,
) -> ValidationResult:
    return ValidationResult(
        rule_id=rule_id,
        rule_name=rule_id.title(),
        rule_type=rule_type,
        work_unit_id=unit_id,
        passed=passed,
        failures=() if passed else (f"{rule_id} failed",),
        reasoning=reasoning,
        timestamp=_NOW,
    )


def test_single_structured_failure_blocks_promotion() -> None:
    status = aggregate(
        "b1",
        "m1",
        [
            _result("r1", "a", passed=True),
            _result("r1", "b", passed=False),
            _result("s1", "a", passed=True, rule_type=RuleType.SEMANTIC),
        ],
        checked_at=_NOW,
    )

    assert status.has_structured_failures
    assert not status.has_semantic_failures
    assert status.failure_count == 1
    assert not status.can_promote
    assert status.item_id == "m1"
    assert status.last_checked == _NOW


def test_clean_draft_can_promote_but_active_cannot() -> None:
    results = [_result("r1", "a", passed=True)]

    assert aggregate("b1", None, results, is_draft=True).can_promote
    assert not aggregate("b1", None, results, is_draft=False).can_promote


def test_semantic_failure_is_tracked_separately() -> None:
    status = aggregate("b1", None, [_result("s1", "a", passed=False, rule_type=RuleType.SEMANTIC)])

    assert status.has_semantic_failures
    assert not status.has_structured_failures
    assert status.to_dict()["hasSemanticFailures"] is True


def test_summarize_groups_failures_by_unit_in_input_order() -> None:
    summary = summarize(
        [
            _result("r2", "b", passed=False),
            _result("r1", "a", passed=False),
            _result("r1", "b", passed=False),
            _result("r3", "a", passed=True),
        ]
    )

    assert summary.pass_count == 1
    assert summary.fail_count == 3
    assert summary.total_count == 4
    assert list(summary.failures_by_work_unit) == ["b", "a"]
    assert [r.rule_id for r in summary.failures_by_work_unit["b"]] == ["r2", "r1"]
    assert summary.avg_reasoning_length is None


def test_summarize_reasoning_length_averages_over_all_results() -> None:
    summary = summarize(
        [
            _result("s1", "a", passed=True, rule_type=RuleType.SEMANTIC, reasoning="abcd"),
            _result("s1", "b", passed=False, rule_type=RuleType.SEMANTIC, reasoning="ab"),
            _result("s1", "c", passed=True, rule_type=RuleType.SEMANTIC),
        ],
        include_reasoning_length=True,
    )

    assert summary.avg_reasoning_length == 2.0
    assert summarize([], include_reasoning_length=True).avg_reasoning_length == 0.0


def test_failures_by_rule_skips_passing_results() -> None:
    grouped = failures_by_rule(
        [_result("r1", "a", passed=False), _result("r2", "a", passed=True), _result("r1", "b", passed=False)]
    )

    assert list(grouped) == ["r1"]
    assert [r.work_unit_id for r in grouped["r1"]] == ["a", "b"]
