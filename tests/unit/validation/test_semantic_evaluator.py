"""
line-build-core — unit tests for the semantic rule evaluator

File: tests/unit/validation/test_semantic_evaluator.py

Purpose
- Drive the staged semantic pipeline with a scripted reasoning client.

What this test file should cover
- Local rejections (missing fields, unknown equipment) make zero client calls.
- Prompt/context construction sent to the client.
- Client errors, timeouts and unparseable responses become failing results
  and are recorded on the health monitor.
- Build-level fan-out returns results in unit-then-rule order.

Functional requirements
- Offline only; no real sleeps.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Sequence

import pytest

from line_build_core.domain.models import (
    MAX_RESULT_TEXT,
    ActionType,
    Duration,
    ItemReference,
    LineBuild,
    RuleCondition,
    RuleType,
    SemanticRule,
    StructuredRule,
    TimeUnit,
    WorkUnit,
)
from line_build_core.reliability.errors import ValidationErrorType
from line_build_core.reliability.health import HealthMonitor
from line_build_core.validation.cook_time import COOK_TIME_RULE, FieldRequirements
from line_build_core.validation.semantic import (
    DEFAULT_SYSTEM_INSTRUCTION,
    PARSE_FAILURE_MESSAGE,
    SemanticRuleEvaluator,
    build_work_unit_context,
    format_duration,
    summarize_semantic,
)

_PASS = '{"pass": true, "reasoning": "Looks right", "failures": []}'


class ScriptedClient:
    """Returns scripted responses (or raises scripted errors) in call order."""

    def __init__(self, responses: Sequence[str | BaseException] = (_PASS,)) -> None:
        self._responses = list(responses)
        self.calls: list[tuple[str, str | None]] = []

    async def generate_content(self, prompt: str, system_instruction: str | None = None) -> str:
        self.calls.append((prompt, system_instruction))
        item = self._responses[min(len(self.calls), len(self._responses)) - 1]
        if isinstance(item, BaseException):
            raise item
        return item


class _SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _heat(
    unit_id: str = "fry",
    *,
    equipment: str | None = "Deep fryer, 350F",
    duration: Duration | None = Duration(4, TimeUnit.MIN),
    depends_on: tuple[str, ...] = (),
) -> WorkUnit:
    return WorkUnit(
        id=unit_id,
        action=ActionType.HEAT,
        target=ItemReference(name="Chicken Tenders"),
        equipment=equipment,
        duration=duration,
        depends_on=depends_on,
    )


def _build(*units: WorkUnit) -> LineBuild:
    return LineBuild(
        id="b1", menu_item_id="m1", menu_item_name="Tender Basket", work_units=units
    )


def _evaluator(
    client: ScriptedClient,
    *,
    health: HealthMonitor | None = None,
    sleep: _SleepRecorder | None = None,
    **kwargs: object,
) -> SemanticRuleEvaluator:
    return SemanticRuleEvaluator(
        client,
        health=health or HealthMonitor(),
        sleep=sleep or _SleepRecorder(),
        **kwargs,  # type: ignore[arg-type]
    )


async def test_passing_verdict_uses_rule_guidance_as_system_instruction() -> None:
    client = ScriptedClient()
    unit = _heat()

    result = await _evaluator(client).evaluate_rule(COOK_TIME_RULE, unit, _build(unit))

    assert result.passed
    assert result.reasoning == "Looks right"
    assert result.rule_type is RuleType.SEMANTIC
    assert len(client.calls) == 1
    prompt, system_instruction = client.calls[0]
    assert system_instruction == COOK_TIME_RULE.guidance
    assert prompt.startswith("Validation Rule: Realistic Cook Time by Equipment\n")
    assert "Equipment: Deep fryer, 350F (normalized: fryer)" in prompt
    assert "Time: 4 min (active time)" in prompt


async def test_unknown_equipment_is_rejected_without_calling_client() -> None:
    client = ScriptedClient()
    health = HealthMonitor()
    unit = _heat(equipment="cutting board")

    result = await _evaluator(client, health=health).evaluate_rule(
        COOK_TIME_RULE, unit, _build(unit)
    )

    assert client.calls == []
    assert not result.passed
    assert result.failures == ('Unknown equipment type: "cutting board"',)
    assert result.reasoning is not None
    assert "fryer" in result.reasoning
    assert health.get_health().error_count == 0


@pytest.mark.parametrize(
    ("unit", "expected"),
    [
        (_heat(equipment=None), "HEAT action requires equipment to be specified"),
        (_heat(duration=None), "HEAT action requires cooking time to be specified"),
    ],
)
async def test_missing_required_fields_fail_locally(unit: WorkUnit, expected: str) -> None:
    client = ScriptedClient()
    health = HealthMonitor()

    result = await _evaluator(client, health=health).evaluate_rule(
        COOK_TIME_RULE, unit, _build(unit)
    )

    assert client.calls == []
    assert result.failures == (expected,)
    assert health.get_health().error_count == 0


async def test_disabled_and_non_applicable_rules_pass_without_calls() -> None:
    client = ScriptedClient()
    prep = WorkUnit(id="p", action=ActionType.PREP, target=ItemReference(name="Lettuce"))
    disabled = SemanticRule(id="off", name="Off", prompt="?", enabled=False)
    evaluator = _evaluator(client)

    skipped = await evaluator.evaluate_rule(COOK_TIME_RULE, prep, _build(prep))
    off = await evaluator.evaluate_rule(disabled, prep, _build(prep))

    assert skipped.passed and skipped.reasoning == "rule does not apply to this action"
    assert off.passed and off.reasoning == "Rule is disabled"
    assert client.calls == []


async def test_requirement_overrides_replace_registered_checks() -> None:
    client = ScriptedClient()
    unit = _heat(equipment="cutting board")
    evaluator = _evaluator(client, requirements={COOK_TIME_RULE.id: FieldRequirements()})

    result = await evaluator.evaluate_rule(COOK_TIME_RULE, unit, _build(unit))

    assert result.passed
    assert len(client.calls) == 1


async def test_unparseable_response_fails_and_records_health() -> None:
    client = ScriptedClient(["I think it is fine."])
    health = HealthMonitor()
    unit = _heat()

    result = await _evaluator(client, health=health).evaluate_rule(
        COOK_TIME_RULE, unit, _build(unit)
    )

    assert not result.passed
    assert result.failures == (PARSE_FAILURE_MESSAGE,)
    assert health.get_health().error_count == 1


async def test_failing_verdict_without_failures_falls_back_to_reasoning() -> None:
    client = ScriptedClient(['{"pass": false, "reasoning": "Microwave for 45 minutes"}'])
    unit = _heat(equipment="microwave", duration=Duration(45))

    result = await _evaluator(client).evaluate_rule(COOK_TIME_RULE, unit, _build(unit))

    assert result.failures == ("Microwave for 45 minutes",)


async def test_oversized_failure_and_reasoning_are_clipped() -> None:
    verdict = json.dumps({"pass": False, "failures": ["x" * 40_000], "reasoning": "r" * 40_000})
    client = ScriptedClient([verdict])
    unit = _heat()

    result = await _evaluator(client).evaluate_rule(COOK_TIME_RULE, unit, _build(unit))

    assert not result.passed
    (failure,) = result.failures
    assert len(failure) == MAX_RESULT_TEXT
    assert failure.endswith("x...")
    assert result.reasoning is not None
    assert len(result.reasoning) == MAX_RESULT_TEXT


async def test_oversized_verdict_does_not_abort_the_rest_of_the_build() -> None:
    oversized = json.dumps({"pass": False, "failures": ["x" * 40_000]})
    client = ScriptedClient([oversized, _PASS])
    units = (_heat("a"), _heat("b"))

    results = await _evaluator(client, max_concurrency=1).evaluate_build(
        _build(*units), [COOK_TIME_RULE]
    )

    assert [(r.work_unit_id, r.passed) for r in results] == [("a", False), ("b", True)]


async def test_client_error_becomes_failure_and_is_not_retried() -> None:
    client = ScriptedClient([RuntimeError("upstream exploded")])
    health = HealthMonitor()
    sleep = _SleepRecorder()
    unit = _heat()

    result = await _evaluator(client, health=health, sleep=sleep).evaluate_rule(
        COOK_TIME_RULE, unit, _build(unit)
    )

    assert result.failures == ("Validation error: upstream exploded",)
    assert len(client.calls) == 1
    assert sleep.delays == []
    snapshot = health.get_health()
    assert snapshot.error_count == 1
    assert snapshot.last_error is not None
    assert snapshot.last_error.error_type is ValidationErrorType.UNKNOWN
    assert snapshot.last_error.rule_id == COOK_TIME_RULE.id


async def test_timeouts_are_retried_then_recorded() -> None:
    client = ScriptedClient([TimeoutError("deadline exceeded"), TimeoutError("deadline exceeded")])
    health = HealthMonitor()
    sleep = _SleepRecorder()
    unit = _heat()

    result = await _evaluator(client, health=health, sleep=sleep).evaluate_rule(
        COOK_TIME_RULE, unit, _build(unit)
    )

    assert len(client.calls) == 2
    assert sleep.delays == [0.1]
    assert result.failures == ("Validation error: deadline exceeded",)
    assert health.get_health().timeout_count == 1


async def test_rate_limit_then_success_passes() -> None:
    client = ScriptedClient([RuntimeError("429 rate limit exceeded"), _PASS])
    health = HealthMonitor()

    unit = _heat()
    result = await _evaluator(client, health=health).evaluate_rule(
        COOK_TIME_RULE, unit, _build(unit)
    )

    assert result.passed
    assert health.get_health().error_count == 0


async def test_request_timeout_wraps_slow_client() -> None:
    class SlowClient(ScriptedClient):
        async def generate_content(
            self, prompt: str, system_instruction: str | None = None
        ) -> str:
            self.calls.append((prompt, system_instruction))
            await asyncio.sleep(10)
            return _PASS

    client = SlowClient()
    health = HealthMonitor()
    unit = _heat()
    evaluator = _evaluator(client, health=health, request_timeout_seconds=0.01)

    result = await evaluator.evaluate_rule(COOK_TIME_RULE, unit, _build(unit))

    assert not result.passed
    assert result.failures[0].startswith("Validation error: reasoning call timed out")
    assert health.get_health().timeout_count == 1


async def test_evaluate_build_covers_units_times_semantic_rules_in_order() -> None:
    generic = SemanticRule(id="sem-generic", name="Generic", prompt="Is this sensible?")
    structured = StructuredRule(
        id="struct", name="Struct", condition=RuleCondition("tags.action", "notEmpty")
    )
    units = (_heat("a"), _heat("b", depends_on=("a",)))
    client = ScriptedClient()

    results = await _evaluator(client, max_concurrency=2).evaluate_build(
        _build(*units), [COOK_TIME_RULE, structured, generic]
    )

    assert [(r.work_unit_id, r.rule_id) for r in results] == [
        ("a", COOK_TIME_RULE.id),
        ("a", "sem-generic"),
        ("b", COOK_TIME_RULE.id),
        ("b", "sem-generic"),
    ]
    assert all(r.passed for r in results)
    assert {instruction for _, instruction in client.calls} == {
        COOK_TIME_RULE.guidance,
        DEFAULT_SYSTEM_INSTRUCTION,
    }
    assert summarize_semantic(results).avg_reasoning_length == len("Looks right")


def test_context_includes_catalog_name_and_dependency_actions() -> None:
    first = WorkUnit(id="a", action=ActionType.PREP, target=ItemReference(bom_id="40-1"))
    second = _heat("b", depends_on=("a", "ghost"))
    build = _build(first, second)

    context = build_work_unit_context(second, build, catalog_lookup=lambda _id: "Catalog Name")

    assert context.splitlines()[0] == "Menu Item: Catalog Name"
    assert "Depends on: a (PREP), ghost" in context
    assert "Phase: unspecified" in context


def test_format_duration_switches_units() -> None:
    assert format_duration(Duration(45, TimeUnit.SEC)) == "45 sec"
    assert format_duration(Duration(90, TimeUnit.SEC)) == "1.5 min"
    assert format_duration(Duration(3)) == "3 min"
