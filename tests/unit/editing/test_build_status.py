"""Unit tests for the draft/active/archived build lifecycle."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from line_build_core.domain.models import (
    ActionType,
    BuildStatus,
    BuildValidationStatus,
    ItemReference,
    LineBuild,
    WorkUnit,
)
from line_build_core.editing.status import (
    ALREADY_IN_STATUS,
    NO_VALIDATION_RESULTS,
    StatusTransitionError,
    TransitionCheck,
    can_transition,
    is_editable_status,
    possible_transitions,
    requires_validation,
    suggested_action,
    transition_to,
)

_NOW = datetime(2026, 5, 1, tzinfo=timezone.utc)


def _validation(*, structured: int = 0, semantic: int = 0) -> BuildValidationStatus:
    return BuildValidationStatus(
        build_id="b1",
        is_draft=True,
        has_structured_failures=structured > 0,
        has_semantic_failures=semantic > 0,
        failure_count=structured + semantic,
        last_checked=_NOW,
    )


def _build(status: BuildStatus = BuildStatus.DRAFT) -> LineBuild:
    return LineBuild(
        id="b1",
        menu_item_id="m1",
        status=status,
        work_units=(WorkUnit(id="a", action=ActionType.PREP, target=ItemReference(name="x")),),
    )


def test_promotion_requires_clean_validation() -> None:
    assert can_transition("draft", "active") == TransitionCheck(False, NO_VALIDATION_RESULTS)
    assert can_transition("draft", "active", _validation(structured=2, semantic=1)) == TransitionCheck(
        False, "Cannot transition to active: 3 structured validation failure(s) found"
    )
    assert can_transition("draft", "active", _validation(semantic=1)) == TransitionCheck(
        False, "Cannot transition to active: 1 semantic validation failure(s) found"
    )
    assert can_transition("draft", "active", _validation()).allowed


@pytest.mark.parametrize(
    ("current", "target", "allowed"),
    [
        (BuildStatus.DRAFT, BuildStatus.ARCHIVED, True),
        (BuildStatus.ACTIVE, BuildStatus.DRAFT, True),
        (BuildStatus.ACTIVE, BuildStatus.ARCHIVED, True),
        (BuildStatus.ARCHIVED, BuildStatus.DRAFT, True),
        (BuildStatus.ARCHIVED, BuildStatus.ACTIVE, False),
    ],
)
def test_transition_table(current: BuildStatus, target: BuildStatus, allowed: bool) -> None:
    check = can_transition(current, target)

    assert check.allowed is allowed
    if not allowed:
        assert check.reason == f"Invalid transition from {current.value} to {target.value}"


def test_same_status_is_rejected() -> None:
    assert can_transition("active", "active") == TransitionCheck(False, ALREADY_IN_STATUS)


def test_transition_to_bumps_version_and_logs_change() -> None:
    build = _build()

    active = transition_to(build, BuildStatus.ACTIVE, _validation(), actor="chef")

    assert active.status is BuildStatus.ACTIVE
    assert active.version == 2
    assert active.changelog[-1].action == "status_change"
    assert active.changelog[-1].details == {"from": "draft", "to": "active"}

    demoted = transition_to(active, "draft", actor="chef", agent_assisted=True)
    assert demoted.is_draft
    assert demoted.version == 3
    assert demoted.changelog[-1].agent_assisted


def test_transition_to_raises_with_context() -> None:
    with pytest.raises(StatusTransitionError) as excinfo:
        transition_to(_build(), BuildStatus.ACTIVE, _validation(structured=1), actor="chef")

    assert excinfo.value.current is BuildStatus.DRAFT
    assert excinfo.value.target is BuildStatus.ACTIVE
    assert "1 structured validation failure(s)" in excinfo.value.reason


def test_status_helpers() -> None:
    assert is_editable_status("draft")
    assert not is_editable_status(BuildStatus.ACTIVE)
    assert requires_validation("draft", "active")
    assert not requires_validation("active", "draft")
    assert possible_transitions("archived") == (BuildStatus.DRAFT,)


@pytest.mark.parametrize(
    ("status", "validation", "expected"),
    [
        ("draft", None, "Run validation to check for issues"),
        ("draft", _validation(), "Ready to activate - all validations passed"),
        ("draft", _validation(structured=1), "Fix 1 validation issue before activating"),
        ("draft", _validation(structured=1, semantic=2), "Fix 3 validation issues before activating"),
        ("active", None, "Demote to draft to make edits"),
        ("archived", None, "Restore to draft to make edits"),
    ],
)
def test_suggested_action(
    status: str, validation: BuildValidationStatus | None, expected: str
) -> None:
    assert suggested_action(status, validation) == expected
