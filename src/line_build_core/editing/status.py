"""Draft/active/archived lifecycle for line builds.

Promotion to active is gated on the latest :class:`BuildValidationStatus`;
demotion back to draft is always allowed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from line_build_core.domain.models import BuildStatus, BuildValidationStatus, LineBuild
from line_build_core.editing.mutations import record_change

ALREADY_IN_STATUS: Final[str] = "Already in target status"
NO_VALIDATION_RESULTS: Final[str] = (
    "Cannot transition to active: No validation results. Run validation first."
)

_TRANSITIONS: Final[dict[BuildStatus, tuple[BuildStatus, ...]]] = {
    BuildStatus.DRAFT: (BuildStatus.ACTIVE, BuildStatus.ARCHIVED),
    BuildStatus.ACTIVE: (BuildStatus.DRAFT, BuildStatus.ARCHIVED),
    BuildStatus.ARCHIVED: (BuildStatus.DRAFT,),
}


class StatusTransitionError(ValueError):
    def __init__(self, reason: str, *, current: BuildStatus, target: BuildStatus) -> None:
        self.reason = reason
        self.current = current
        self.target = target
        super().__init__(reason)


@dataclass(frozen=True, slots=True)
class TransitionCheck:
    allowed: bool
    reason: str | None = None


def can_transition(
    current: BuildStatus | str,
    target: BuildStatus | str,
    validation: BuildValidationStatus | None = None,
) -> TransitionCheck:
    current_status = BuildStatus(current)
    target_status = BuildStatus(target)

    if current_status is target_status:
        return TransitionCheck(False, ALREADY_IN_STATUS)
    if target_status not in _TRANSITIONS[current_status]:
        return TransitionCheck(
            False,
            f"Invalid transition from {current_status.value} to {target_status.value}",
        )
    if target_status is not BuildStatus.ACTIVE:
        return TransitionCheck(True)

    if validation is None:
        return TransitionCheck(False, NO_VALIDATION_RESULTS)
    if validation.has_structured_failures:
        return TransitionCheck(
            False,
            "Cannot transition to active: "
            f"{validation.failure_count} structured validation failure(s) found",
        )
    if validation.has_semantic_failures:
        return TransitionCheck(
            False,
            "Cannot transition to active: "
            f"{validation.failure_count} semantic validation failure(s) found",
        )
    return TransitionCheck(True)


def transition_to(
    build: LineBuild,
    target: BuildStatus | str,
    validation: BuildValidationStatus | None = None,
    *,
    actor: str,
    agent_assisted: bool = False,
) -> LineBuild:
    """Apply a status change, raising ``StatusTransitionError`` when it is blocked."""

    target_status = BuildStatus(target)
    check = can_transition(build.status, target_status, validation)
    if not check.allowed:
        raise StatusTransitionError(
            check.reason or ALREADY_IN_STATUS, current=build.status, target=target_status
        )
    return record_change(
        build,
        actor=actor,
        action="status_change",
        agent_assisted=agent_assisted,
        details={"from": build.status.value, "to": target_status.value},
        status=target_status,
    )


def is_editable_status(status: BuildStatus | str) -> bool:
    return BuildStatus(status) is BuildStatus.DRAFT


def requires_validation(current: BuildStatus | str, target: BuildStatus | str) -> bool:
    return BuildStatus(current) is BuildStatus.DRAFT and BuildStatus(target) is BuildStatus.ACTIVE


def possible_transitions(current: BuildStatus | str) -> tuple[BuildStatus, ...]:
    return _TRANSITIONS[BuildStatus(current)]


def suggested_action(
    status: BuildStatus | str,
    validation: BuildValidationStatus | None = None,
) -> str:
    """Short next-step hint for an author looking at a build."""

    current = BuildStatus(status)
    if current is BuildStatus.DRAFT:
        if validation is None:
            return "Run validation to check for issues"
        if validation.failure_count == 0:
            return "Ready to activate - all validations passed"
        plural = "" if validation.failure_count == 1 else "s"
        return f"Fix {validation.failure_count} validation issue{plural} before activating"
    if current is BuildStatus.ACTIVE:
        return "Demote to draft to make edits"
    return "Restore to draft to make edits"


__all__ = [
    "ALREADY_IN_STATUS",
    "NO_VALIDATION_RESULTS",
    "StatusTransitionError",
    "TransitionCheck",
    "can_transition",
    "is_editable_status",
    "possible_transitions",
    "requires_validation",
    "suggested_action",
    "transition_to",
]
