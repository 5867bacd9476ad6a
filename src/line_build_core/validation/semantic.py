"""
line-build-core — semantic rule evaluator

File: src/line_build_core/validation/semantic.py

Purpose
- Evaluate natural-language rules against work units through a reasoning client.

What should be included in this file
- Staged pipeline: applicability, required fields, equipment vocabulary gate,
  prompt construction, retried client call, verdict parsing.
- Bounded fan-out over a whole build.

Functional requirements
- Never raises for client or parse failures; those become failing results and
  are recorded on the caller-owned ``HealthMonitor``.
- Local rejections (missing fields, unknown equipment) make zero client calls.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime
from typing import Any, Final

import structlog

from line_build_core.constants import DEFAULT_SEMANTIC_MAX_CONCURRENCY
from line_build_core.domain.models import (
    Duration,
    LineBuild,
    RuleType,
    SemanticRule,
    ValidationResult,
    ValidationRule,
    WorkUnit,
    clip_result_text,
    utc_now,
)
from line_build_core.reasoning.base import ReasoningClient
from line_build_core.reliability.errors import (
    LineBuildValidationError,
    ValidationErrorType,
    classify_error,
)
from line_build_core.reliability.health import HealthMonitor
from line_build_core.reliability.retry import (
    RetryPolicy,
    SleepFn,
    run_with_retry,
    semantic_retry_policy,
)
from line_build_core.utils.concurrency import CancellationToken, WorkerPool, run_with_timeout
from line_build_core.validation.aggregate import ResultSummary, summarize
from line_build_core.validation.cook_time import FieldRequirements, requirements_for
from line_build_core.validation.response import parse_reasoning_response
from line_build_core.validation.vocabulary import (
    KNOWN_EQUIPMENT_CAPABILITIES,
    match_equipment_to_capability,
)

CatalogLookup = Callable[[str], str | None]

DEFAULT_SYSTEM_INSTRUCTION: Final[str] = (
    "You are a food production line validation expert. "
    "Evaluate the provided work unit against the validation rule.\n"
    'Respond with JSON: {"pass": true|false, "reasoning": "explanation", '
    '"failures": ["specific issue 1", ...]}\n'
    "Be concise but specific in your reasoning."
)

PARSE_FAILURE_MESSAGE: Final[str] = "Validation engine error: response could not parse"
_PARSE_FAILURE_REASONING: Final[str] = (
    "The semantic validation engine encountered an error while processing the "
    "reasoning response."
)
_UNSPECIFIED: Final[str] = "unspecified"
_MAX_ERROR_TEXT: Final[int] = 2000


def format_duration(duration: Duration) -> str:
    """Render a duration in one unit: seconds below a minute, minutes otherwise."""

    total_seconds = duration.seconds
    if total_seconds < 60:
        return f"{_trim_number(total_seconds)} sec"
    minutes = total_seconds / 60
    return f"{_trim_number(round(minutes, 2))} min"


def _trim_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.2f}".rstrip("0").rstrip(".")


def build_work_unit_context(
    work_unit: WorkUnit,
    build: LineBuild,
    *,
    canonical_equipment: str | None = None,
    catalog_lookup: CatalogLookup | None = None,
) -> str:
    menu_item = None
    if catalog_lookup is not None:
        menu_item = catalog_lookup(build.menu_item_id)
    if not menu_item:
        menu_item = build.menu_item_name or build.menu_item_id

    target = work_unit.target
    target_text = target.name or target.bom_id or _UNSPECIFIED
    if target.name and target.bom_id:
        target_text = f"{target.name} (BOM: {target.bom_id})"

    lines = [
        f"Menu Item: {menu_item}",
        f"Work Unit: {work_unit.id}",
        f"Action: {work_unit.action.value}",
        f"Target: {target_text}",
    ]
    if work_unit.equipment:
        normalized = canonical_equipment or match_equipment_to_capability(work_unit.equipment)
        suffix = f" (normalized: {normalized})" if normalized else ""
        lines.append(f"Equipment: {work_unit.equipment}{suffix}")
    if work_unit.duration is not None:
        lines.append(
            f"Time: {format_duration(work_unit.duration)} "
            f"({work_unit.duration.activity.value} time)"
        )
    lines.append(f"Phase: {work_unit.phase.value if work_unit.phase else _UNSPECIFIED}")
    lines.append(f"Station: {work_unit.station or _UNSPECIFIED}")
    if work_unit.timing_mode is not None:
        lines.append(f"Timing Mode: {work_unit.timing_mode.value}")
    if work_unit.depends_on:
        names = []
        for dep_id in work_unit.depends_on:
            dep = build.get_work_unit(dep_id)
            names.append(f"{dep_id} ({dep.action.value})" if dep is not None else dep_id)
        lines.append(f"Depends on: {', '.join(names)}")
    if work_unit.requires_order:
        lines.append("Requires Order: Yes")
    if work_unit.bulk_prep:
        lines.append("Bulk Prep: Yes")
    return "\n".join(lines)


def build_prompt(rule: SemanticRule, context: str) -> str:
    return (
        f"Validation Rule: {rule.name}\n"
        f"{rule.prompt}\n\n"
        f"Work Unit Context:\n{context}\n\n"
        "Evaluate this work unit against the rule. Return JSON with pass (boolean), "
        "reasoning (string), and failures (array of strings)."
    )


class SemanticRuleEvaluator:
    """Owns the reasoning client plus the reliability pieces wrapped around it."""

    def __init__(
        self,
        client: ReasoningClient,
        *,
        health: HealthMonitor | None = None,
        retry: RetryPolicy | None = None,
        catalog_lookup: CatalogLookup | None = None,
        requirements: Mapping[str, FieldRequirements] | None = None,
        max_concurrency: int = DEFAULT_SEMANTIC_MAX_CONCURRENCY,
        request_timeout_seconds: float | None = None,
        sleep: SleepFn = asyncio.sleep,
        logger: Any | None = None,
    ) -> None:
        if max_concurrency <= 0:
            raise ValueError("max_concurrency must be > 0")
        if request_timeout_seconds is not None and request_timeout_seconds <= 0:
            raise ValueError("request_timeout_seconds must be > 0")
        self._client = client
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._health = health if health is not None else HealthMonitor(logger=self._logger)
        self._retry = retry if retry is not None else semantic_retry_policy()
        self._catalog_lookup = catalog_lookup
        self._requirements = dict(requirements) if requirements is not None else None
        self._max_concurrency = max_concurrency
        self._request_timeout_seconds = request_timeout_seconds
        self._sleep = sleep

    @property
    def health(self) -> HealthMonitor:
        return self._health

    async def evaluate_rule(
        self,
        rule: SemanticRule,
        work_unit: WorkUnit,
        build: LineBuild,
    ) -> ValidationResult:
        timestamp = utc_now()

        if not rule.enabled:
            return _result(rule, work_unit, True, reasoning="Rule is disabled", at=timestamp)
        if not rule.applies_to_action(work_unit.action):
            return _result(
                rule,
                work_unit,
                True,
                reasoning="rule does not apply to this action",
                at=timestamp,
            )

        requirements = requirements_for(rule.id, self._requirements)
        rejection = _check_requirements(rule, work_unit, requirements, timestamp)
        if rejection is not None:
            self._logger.info(
                "semantic_rule_prevalidation_failed",
                rule_id=rule.id,
                work_unit_id=work_unit.id,
                failures=list(rejection.failures),
            )
            return rejection

        canonical = match_equipment_to_capability(work_unit.equipment)
        prompt = build_prompt(
            rule,
            build_work_unit_context(
                work_unit,
                build,
                canonical_equipment=canonical,
                catalog_lookup=self._catalog_lookup,
            ),
        )
        system_instruction = rule.guidance or DEFAULT_SYSTEM_INSTRUCTION

        try:
            response = await run_with_retry(
                lambda: self._call_client(prompt, system_instruction),
                self._retry,
                sleep=self._sleep,
                logger=self._logger,
            )
        except Exception as exc:
            classified = classify_error(exc, rule_id=rule.id)
            self._health.record_error(classified)
            message = _error_text(exc)
            self._logger.warning(
                "semantic_rule_call_failed",
                rule_id=rule.id,
                work_unit_id=work_unit.id,
                error_type=classified.error_type.value,
                error=message,
            )
            return _result(
                rule,
                work_unit,
                False,
                failures=(f"Validation error: {message}",),
                reasoning=f"The semantic validation engine encountered an error: {message}",
                at=timestamp,
            )

        verdict = parse_reasoning_response(response)
        if verdict is None:
            self._health.record_error(
                LineBuildValidationError(
                    "response could not parse",
                    error_type=ValidationErrorType.UNKNOWN,
                    rule_id=rule.id,
                )
            )
            return _result(
                rule,
                work_unit,
                False,
                failures=(PARSE_FAILURE_MESSAGE,),
                reasoning=_PARSE_FAILURE_REASONING,
                at=timestamp,
            )

        if verdict.passed:
            return _result(rule, work_unit, True, reasoning=verdict.reasoning, at=timestamp)

        failures = verdict.failures
        if not failures:
            fallback = verdict.reasoning.strip() or f"{rule.name} failed without a specific reason"
            failures = (fallback,)
        return _result(
            rule,
            work_unit,
            False,
            failures=failures,
            reasoning=verdict.reasoning,
            at=timestamp,
        )

    async def evaluate_build(
        self,
        build: LineBuild,
        rules: Iterable[ValidationRule],
        *,
        cancel_token: CancellationToken | None = None,
    ) -> list[ValidationResult]:
        """Every enabled semantic rule against every unit, in build then rule order."""

        active_rules = semantic_rules(rules)
        pool: WorkerPool[ValidationResult] = WorkerPool(
            max_concurrency=self._max_concurrency,
            cancel_token=cancel_token,
        )
        return await pool.gather(
            self.evaluate_rule(rule, work_unit, build)
            for work_unit in build.work_units
            for rule in active_rules
        )

    async def _call_client(self, prompt: str, system_instruction: str) -> str:
        call = self._client.generate_content(prompt, system_instruction)
        if self._request_timeout_seconds is None:
            return await call
        return await run_with_timeout(call, self._request_timeout_seconds)


def semantic_rules(rules: Iterable[ValidationRule]) -> tuple[SemanticRule, ...]:
    return tuple(rule for rule in rules if isinstance(rule, SemanticRule) and rule.enabled)


async def evaluate_semantic_rule(
    rule: SemanticRule,
    work_unit: WorkUnit,
    build: LineBuild,
    client: ReasoningClient,
    *,
    health: HealthMonitor | None = None,
    retry: RetryPolicy | None = None,
    catalog_lookup: CatalogLookup | None = None,
    sleep: SleepFn = asyncio.sleep,
) -> ValidationResult:
    evaluator = SemanticRuleEvaluator(
        client,
        health=health,
        retry=retry,
        catalog_lookup=catalog_lookup,
        sleep=sleep,
    )
    return await evaluator.evaluate_rule(rule, work_unit, build)


def summarize_semantic(results: Iterable[ValidationResult]) -> ResultSummary:
    return summarize(results, include_reasoning_length=True)


def _check_requirements(
    rule: SemanticRule,
    work_unit: WorkUnit,
    requirements: FieldRequirements,
    timestamp: datetime,
) -> ValidationResult | None:
    if requirements.equipment is not None and not work_unit.equipment:
        failure, reasoning = requirements.equipment
        return _result(rule, work_unit, False, failures=(failure,), reasoning=reasoning, at=timestamp)

    if requirements.duration is not None and work_unit.duration is None:
        failure, reasoning = requirements.duration
        return _result(rule, work_unit, False, failures=(failure,), reasoning=reasoning, at=timestamp)

    if (
        requirements.check_equipment_vocabulary
        and work_unit.equipment
        and match_equipment_to_capability(work_unit.equipment) is None
    ):
        raw = work_unit.equipment
        return _result(
            rule,
            work_unit,
            False,
            failures=(f'Unknown equipment type: "{raw}"',),
            reasoning=(
                f'Equipment "{raw}" is not in the known equipment list. '
                f"Valid options include: {', '.join(KNOWN_EQUIPMENT_CAPABILITIES)}. "
                "Please use a recognized equipment type."
            ),
            at=timestamp,
        )
    return None


def _result(
    rule: SemanticRule,
    work_unit: WorkUnit,
    passed: bool,
    *,
    failures: tuple[str, ...] = (),
    reasoning: str | None = None,
    at: datetime,
) -> ValidationResult:
    return ValidationResult(
        rule_id=rule.id,
        rule_name=rule.name,
        rule_type=RuleType.SEMANTIC,
        work_unit_id=work_unit.id,
        passed=passed,
        failures=tuple(clip_result_text(text) for text in failures),
        reasoning=None if reasoning is None else clip_result_text(reasoning),
        timestamp=at,
    )


def _error_text(exc: BaseException) -> str:
    if isinstance(exc, LineBuildValidationError):
        return exc.message
    text = " ".join(str(exc).split())
    return text[:_MAX_ERROR_TEXT] or type(exc).__name__


__all__ = [
    "DEFAULT_SYSTEM_INSTRUCTION",
    "PARSE_FAILURE_MESSAGE",
    "CatalogLookup",
    "SemanticRuleEvaluator",
    "build_prompt",
    "build_work_unit_context",
    "evaluate_semantic_rule",
    "format_duration",
    "semantic_rules",
    "summarize_semantic",
]
