"""
line-build-core — unit tests for the validation orchestrator

File: tests/unit/validation/test_orchestrator.py

Purpose
- Verify the combined structured + semantic run and the skip bookkeeping.

What this test file should cover
- Structured-only, missing-client and unhealthy-engine skip reasons.
- No skip reported when there is nothing semantic to run.
- Report counts, grouping, promotion flag and JSON shape.
- Settings derived from the loaded config.
"""

from __future__ import annotations

from line_build_core.config.schema import default_config
from line_build_core.domain.models import (
    ActionType,
    Duration,
    ItemReference,
    LineBuild,
    RuleCondition,
    SemanticRule,
    StructuredRule,
    WorkUnit,
)
from line_build_core.reliability.health import HealthMonitor
from line_build_core.validation.cook_time import COOK_TIME_RULE
from line_build_core.validation.orchestrator import (
    SKIP_NO_CLIENT,
    SKIP_STRUCTURED_ONLY,
    SKIP_UNHEALTHY,
    ValidationSettings,
    validate_build,
)


class _Client:
    def __init__(self, response: str) -> None:
        self.response = response
        self.calls = 0

    async def generate_content(self, prompt: str, system_instruction: str | None = None) -> str:
        self.calls += 1
        return self.response


async def _no_sleep(delay: float) -> None:
    del delay


_EQUIPMENT_RULE = StructuredRule(
    id="heat-equipment",
    name="HEAT needs equipment",
    condition=RuleCondition("tags.equipment", "notEmpty"),
    failure_message="Specify equipment",
    applies_to=(ActionType.HEAT,),
)


def _build() -> LineBuild:
    return LineBuild(
        id="b1",
        menu_item_id="m1",
        work_units=(
            WorkUnit(id="prep", action=ActionType.PREP, target=ItemReference(name="Chicken")),
            WorkUnit(
                id="fry",
                action=ActionType.HEAT,
                target=ItemReference(name="Chicken"),
                equipment="fryer",
                duration=Duration(4),
                depends_on=("prep",),
            ),
        ),
    )


async def test_full_run_combines_both_engines() -> None:
    client = _Client('{"pass": false, "reasoning": "Too long", "failures": ["Cook time too long"]}')

    report = await validate_build(
        _build(), [_EQUIPMENT_RULE, COOK_TIME_RULE], client=client, sleep=_no_sleep
    )

    assert client.calls == 1
    assert not report.semantic_skipped
    assert report.skip_reason is None
    # 2 units x 1 structured rule + 2 units x 1 semantic rule
    assert report.total_count == 4
    assert report.fail_count == 1
    assert not report.is_valid
    assert list(report.failures_by_rule) == [COOK_TIME_RULE.id]
    assert report.status.has_semantic_failures
    assert not report.status.can_promote

    payload = report.to_dict()
    assert payload["failCount"] == 1
    assert payload["semanticSkipped"] is False
    assert "skipReason" not in payload


async def test_structured_only_skips_semantic_pass() -> None:
    client = _Client('{"pass": true}')

    report = await validate_build(
        _build(), [_EQUIPMENT_RULE, COOK_TIME_RULE], client=client, structured_only=True
    )

    assert client.calls == 0
    assert report.semantic_skipped
    assert report.skip_reason == SKIP_STRUCTURED_ONLY
    assert report.total_count == 2
    assert report.is_valid
    assert report.status.can_promote
    assert report.to_dict()["skipReason"] == SKIP_STRUCTURED_ONLY


async def test_missing_client_is_reported() -> None:
    report = await validate_build(_build(), [COOK_TIME_RULE])

    assert report.skip_reason == SKIP_NO_CLIENT
    assert report.total_count == 0


async def test_unhealthy_engine_skips_semantic_pass() -> None:
    health = HealthMonitor(threshold=1)
    health.record_error(TimeoutError("timed out"))
    client = _Client('{"pass": true}')

    report = await validate_build(_build(), [COOK_TIME_RULE], client=client, health=health)

    assert client.calls == 0
    assert report.skip_reason == SKIP_UNHEALTHY


async def test_no_skip_reported_without_semantic_rules_or_units() -> None:
    structured_only_rules = await validate_build(_build(), [_EQUIPMENT_RULE])
    empty_build = await validate_build(
        LineBuild(id="b2", menu_item_id="m1"), [COOK_TIME_RULE, _EQUIPMENT_RULE]
    )
    disabled_semantic = await validate_build(
        _build(), [SemanticRule(id="off", name="Off", prompt="?", enabled=False)]
    )

    assert not structured_only_rules.semantic_skipped
    assert not empty_build.semantic_skipped
    assert empty_build.total_count == 0
    assert not disabled_semantic.semantic_skipped


async def test_engine_errors_accumulate_on_caller_health() -> None:
    health = HealthMonitor(threshold=2)
    client = _Client("no verdict here")

    first = await validate_build(
        _build(), [COOK_TIME_RULE], client=client, health=health, sleep=_no_sleep
    )

    assert first.fail_count == 1
    assert health.get_health().error_count == 1
    assert health.is_healthy()


def test_settings_from_config() -> None:
    config = default_config()
    config["validation"]["structured_only"] = True
    config["validation"]["max_concurrent_semantic"] = 7
    config["semantic"]["max_attempts"] = 4
    config["health"]["error_threshold"] = 5

    settings = ValidationSettings.from_config(config)

    assert settings.structured_only
    assert settings.max_concurrency == 7
    assert settings.semantic_retry.max_attempts == 4
    assert settings.health_threshold == 5
    assert settings.request_timeout_seconds is None
    assert ValidationSettings.from_config({}) == ValidationSettings()
