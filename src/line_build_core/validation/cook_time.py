"""Built-in semantic rules and the local field requirements they declare."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Final

from line_build_core.domain.models import ActionType, SemanticRule

COOK_TIME_RULE_ID: Final[str] = "semantic-cook-time-equipment"

COOK_TIME_PROMPT: Final[str] = """Evaluate whether this cook time is realistic for the specified equipment.

Consider:
1. What is the typical cooking time range for this equipment type?
2. Is the specified time within a reasonable range, or is it suspiciously long/short?
3. Could there be a valid culinary reason for an unusual time (e.g., low-and-slow cooking)?

Equipment-specific guidance:
- Microwave: Usually 30 seconds to 10 minutes. Over 15 minutes is suspicious.
- Fryer: Usually 2-8 minutes. Over 15 minutes is suspicious.
- Turbo/Speed oven: Usually 1-10 minutes. Over 20 minutes is suspicious.
- Grill/Flat-top: Usually 3-20 minutes. Over 45 minutes is suspicious.
- Oven: Can be 5 minutes to 4+ hours depending on dish. Use culinary judgment.
- Waterbath/Sous vide: Can be 30 minutes to 72+ hours. Long times are often valid.
- Steamer: Usually 5-30 minutes. Over 60 minutes is suspicious.
- Hot hold wells: Holding time, not cooking. Any "cook time" is suspicious.

Return your assessment as JSON with pass (boolean), reasoning (string), and failures (array of strings)."""

COOK_TIME_GUIDANCE: Final[str] = """You are a professional culinary consultant reviewing kitchen procedures.
Your job is to identify cook times that seem unrealistic or potentially erroneous.
Be practical - flag obvious mistakes but allow for legitimate culinary techniques.
Respond with JSON: {"pass": true|false, "reasoning": "explanation", "failures": ["specific issue 1", ...]}"""

COOK_TIME_RULE: Final[SemanticRule] = SemanticRule(
    id=COOK_TIME_RULE_ID,
    name="Realistic Cook Time by Equipment",
    description=(
        "Flags unrealistic cook times based on equipment type "
        "(e.g., microwave for 45 minutes)"
    ),
    enabled=True,
    applies_to=(ActionType.HEAT,),
    prompt=COOK_TIME_PROMPT,
    guidance=COOK_TIME_GUIDANCE,
)


@dataclass(frozen=True, slots=True)
class FieldRequirements:
    """Local checks run before a semantic rule is allowed to call out.

    Each message is ``(failure, reasoning)``. ``check_equipment_vocabulary``
    turns on the known-equipment gate.
    """

    equipment: tuple[str, str] | None = None
    duration: tuple[str, str] | None = None
    check_equipment_vocabulary: bool = False


COOK_TIME_REQUIREMENTS: Final[FieldRequirements] = FieldRequirements(
    equipment=(
        "HEAT action requires equipment to be specified",
        "Cannot validate cook time without knowing the equipment type. "
        "Please specify the equipment used for this heating step.",
    ),
    duration=(
        "HEAT action requires cooking time to be specified",
        "Cannot validate cook time without a time value. "
        "Please specify the cooking duration.",
    ),
    check_equipment_vocabulary=True,
)

NO_REQUIREMENTS: Final[FieldRequirements] = FieldRequirements()

_REGISTRY: Final[dict[str, tuple[SemanticRule, FieldRequirements]]] = {
    COOK_TIME_RULE_ID: (COOK_TIME_RULE, COOK_TIME_REQUIREMENTS),
}


def default_semantic_rules() -> tuple[SemanticRule, ...]:
    return tuple(rule for rule, _ in _REGISTRY.values())


def enabled_semantic_rules() -> tuple[SemanticRule, ...]:
    return tuple(rule for rule in default_semantic_rules() if rule.enabled)


def get_semantic_rule(rule_id: str) -> SemanticRule | None:
    entry = _REGISTRY.get(rule_id)
    return entry[0] if entry is not None else None


def requirements_for(
    rule_id: str,
    overrides: Mapping[str, FieldRequirements] | None = None,
) -> FieldRequirements:
    """Requirements registered for ``rule_id``; unknown rules have none."""

    if overrides is not None and rule_id in overrides:
        return overrides[rule_id]
    entry = _REGISTRY.get(rule_id)
    return entry[1] if entry is not None else NO_REQUIREMENTS


__all__ = [
    "COOK_TIME_GUIDANCE",
    "COOK_TIME_PROMPT",
    "COOK_TIME_REQUIREMENTS",
    "COOK_TIME_RULE",
    "COOK_TIME_RULE_ID",
    "FieldRequirements",
    "NO_REQUIREMENTS",
    "default_semantic_rules",
    "enabled_semantic_rules",
    "get_semantic_rule",
    "requirements_for",
]
