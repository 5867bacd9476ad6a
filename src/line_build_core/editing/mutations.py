"""
line-build-core — build mutations.

File: src/line_build_core/editing/mutations.py

Purpose
- Apply user or agent edits to a draft line build and return the new build.

What should be included in this file
- Add, edit, remove, reorder, and re-wire work units; change the menu item.
- Dependency edits admitted only through ``graph.guard.validate_new_edge``.
- A changelog entry and version bump on every successful mutation.

Functional requirements
- Builds are immutable values; every function returns a new ``LineBuild``.
- Rejected edits raise ``BuildEditError`` carrying a user-facing reason and,
  for graph problems, the ``GraphError`` that caused it.
- Only draft builds accept mutations.
"""

from __future__ import annotations

import dataclasses
import uuid
from collections.abc import Iterable, Mapping
from typing import Any, Final

import structlog

from line_build_core.domain.models import (
    ChangelogEntry,
    ItemReference,
    JSONValue,
    LineBuild,
    WorkUnit,
    utc_now,
)
from line_build_core.graph.guard import GraphError, cascade_removal, validate_new_edge

STEP_NOT_FOUND: Final[str] = "Step not found"
MISSING_REQUIRED_FIELDS: Final[str] = "Missing required fields: action, targetItemName"

# Editable WorkUnit fields; ``id`` is fixed once a unit exists.
EDITABLE_FIELDS: Final[frozenset[str]] = frozenset(
    field.name for field in dataclasses.fields(WorkUnit) if field.name != "id"
)

_DRAFT_ONLY: Final[dict[str, str]] = {
    "add_work_unit": "Cannot add step to active build (demote first)",
    "edit_work_unit": "Cannot edit step in active build (demote first)",
    "remove_work_unit": "Cannot remove step from active build (demote first)",
    "reorder_work_units": "Cannot reorder steps in active build (demote first)",
    "set_dependencies": "Cannot modify dependencies in active build (demote first)",
    "change_menu_item": "Cannot change BOM of active build (demote first)",
}


class BuildEditError(ValueError):
    """A mutation was rejected; ``reason`` is safe to show to the author."""

    reason: str
    graph_error: GraphError | None

    def __init__(self, reason: str, *, graph_error: GraphError | None = None) -> None:
        self.reason = reason
        self.graph_error = graph_error
        super().__init__(reason)


def new_work_unit_id() -> str:
    return str(uuid.uuid4())


def record_change(
    build: LineBuild,
    *,
    actor: str,
    action: str,
    agent_assisted: bool = False,
    details: Mapping[str, JSONValue] | None = None,
    **updates: Any,
) -> LineBuild:
    """Return ``build`` with ``updates`` applied, the version bumped and one changelog entry added."""

    entry = ChangelogEntry(
        id=str(uuid.uuid4()),
        timestamp=utc_now(),
        actor=actor,
        action=action,
        agent_assisted=agent_assisted,
        details=dict(details or {}),
    )
    return dataclasses.replace(
        build,
        version=build.version + 1,
        changelog=(*build.changelog, entry),
        **updates,
    )


def add_work_unit(
    build: LineBuild,
    unit: WorkUnit,
    *,
    actor: str,
    agent_assisted: bool = False,
    logger: Any | None = None,
) -> LineBuild:
    """Append ``unit`` to the build after checking its predecessors."""

    _require_draft(build, "add_work_unit")
    if unit.target.name is None or not unit.target.name.strip():
        raise BuildEditError(MISSING_REQUIRED_FIELDS)
    if build.get_work_unit(unit.id) is not None:
        raise BuildEditError(f"Step {unit.id} already exists")

    _guard_edges(build, unit.id, unit.depends_on, logger=logger)
    return record_change(
        build,
        actor=actor,
        action="add_work_unit",
        agent_assisted=agent_assisted,
        details={"workUnitId": unit.id},
        work_units=(*build.work_units, unit),
    )


def edit_work_unit(
    build: LineBuild,
    unit_id: str,
    changes: Mapping[str, object],
    *,
    actor: str,
    agent_assisted: bool = False,
    logger: Any | None = None,
) -> LineBuild:
    """Merge ``changes`` (WorkUnit field names) into one unit.

    ``target_name`` and ``bom_id`` are accepted as shorthands that update the
    target reference in place. A ``depends_on`` change is admitted through
    the graph guard.
    """

    _require_draft(build, "edit_work_unit")
    index = build.index_of(unit_id)
    if index < 0:
        raise BuildEditError(STEP_NOT_FOUND)
    current = build.work_units[index]

    updates = dict(changes)
    target_name = updates.pop("target_name", None)
    bom_id = updates.pop("bom_id", None)
    if target_name is not None or bom_id is not None:
        base = updates.get("target", current.target)
        if not isinstance(base, ItemReference):
            raise BuildEditError("target must be an item reference")
        updates["target"] = ItemReference(
            name=target_name if target_name is not None else base.name,
            bom_id=bom_id if bom_id is not None else base.bom_id,
        )

    unknown = sorted(key for key in updates if key not in EDITABLE_FIELDS)
    if unknown:
        raise BuildEditError(f"Unknown step fields: {', '.join(unknown)}")
    if not updates:
        return build

    if "depends_on" in updates:
        raw_deps = updates["depends_on"]
        if isinstance(raw_deps, (str, bytes)) or not isinstance(raw_deps, Iterable):
            raise BuildEditError("depends_on must be a list of step ids")
        deps = tuple(raw_deps)
        _guard_edges(build, unit_id, deps, logger=logger)
        updates["depends_on"] = deps

    try:
        edited = dataclasses.replace(current, **updates)
    except (TypeError, ValueError) as exc:
        raise BuildEditError(str(exc)) from exc

    units = list(build.work_units)
    units[index] = edited
    return record_change(
        build,
        actor=actor,
        action="edit_work_unit",
        agent_assisted=agent_assisted,
        details={"workUnitId": unit_id, "fields": sorted(updates)},
        work_units=tuple(units),
    )


def remove_work_unit(
    build: LineBuild,
    unit_id: str,
    *,
    actor: str,
    agent_assisted: bool = False,
) -> LineBuild:
    """Delete a unit and drop it from every other unit's predecessors."""

    _require_draft(build, "remove_work_unit")
    if build.get_work_unit(unit_id) is None:
        raise BuildEditError(STEP_NOT_FOUND)

    dependents = build.dependents_of(unit_id)
    cascaded = cascade_removal(build, unit_id)
    return record_change(
        cascaded,
        actor=actor,
        action="remove_work_unit",
        agent_assisted=agent_assisted,
        details={"workUnitId": unit_id, "detachedDependents": list(dependents)},
        work_units=tuple(unit for unit in cascaded.work_units if unit.id != unit_id),
    )


def reorder_work_units(
    build: LineBuild,
    from_index: int,
    to_index: int,
    *,
    actor: str,
    agent_assisted: bool = False,
) -> LineBuild:
    """Move one unit within authoring order. Dependencies are unaffected."""

    _require_draft(build, "reorder_work_units")
    size = len(build.work_units)
    for name, value in (("from_index", from_index), ("to_index", to_index)):
        if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value < size:
            raise BuildEditError(f"{name} {value!r} is out of range for {size} step(s)")
    if from_index == to_index:
        return build

    units = list(build.work_units)
    moved = units.pop(from_index)
    units.insert(to_index, moved)
    return record_change(
        build,
        actor=actor,
        action="reorder_work_units",
        agent_assisted=agent_assisted,
        details={"workUnitId": moved.id, "fromIndex": from_index, "toIndex": to_index},
        work_units=tuple(units),
    )


def set_dependencies(
    build: LineBuild,
    unit_id: str,
    deps: Iterable[str],
    *,
    actor: str,
    agent_assisted: bool = False,
    logger: Any | None = None,
) -> LineBuild:
    """Replace the predecessor set of ``unit_id``."""

    _require_draft(build, "set_dependencies")
    index = build.index_of(unit_id)
    if index < 0:
        raise BuildEditError(STEP_NOT_FOUND)

    candidate = tuple(dict.fromkeys(deps))
    _guard_edges(build, unit_id, candidate, logger=logger)

    units = list(build.work_units)
    units[index] = dataclasses.replace(units[index], depends_on=candidate)
    return record_change(
        build,
        actor=actor,
        action="set_dependencies",
        agent_assisted=agent_assisted,
        details={"workUnitId": unit_id, "dependsOn": list(candidate)},
        work_units=tuple(units),
    )


def change_menu_item(
    build: LineBuild,
    menu_item_id: str,
    menu_item_name: str | None = None,
    *,
    actor: str,
    agent_assisted: bool = False,
) -> LineBuild:
    """Point the build at another menu item. All steps are cleared."""

    _require_draft(build, "change_menu_item")
    if not isinstance(menu_item_id, str) or not menu_item_id.strip():
        raise BuildEditError("menu_item_id must not be empty")

    details: dict[str, JSONValue] = {
        "previousMenuItemId": build.menu_item_id,
        "menuItemId": menu_item_id,
        "clearedSteps": len(build.work_units),
    }
    return record_change(
        build,
        actor=actor,
        action="change_menu_item",
        agent_assisted=agent_assisted,
        details=details,
        menu_item_id=menu_item_id,
        menu_item_name=menu_item_name,
        work_units=(),
    )


def _require_draft(build: LineBuild, operation: str) -> None:
    if not build.is_draft:
        raise BuildEditError(_DRAFT_ONLY[operation])


def _guard_edges(
    build: LineBuild,
    unit_id: str,
    deps: Iterable[str],
    *,
    logger: Any | None,
) -> None:
    problem = validate_new_edge(build, unit_id, deps)
    if problem is None:
        return
    log = logger if logger is not None else structlog.get_logger(__name__)
    log.info(
        "graph_edge_rejected",
        build_id=build.id,
        work_unit_id=unit_id,
        reason=problem.reason,
        error_class=type(problem).__name__,
    )
    raise BuildEditError(problem.reason, graph_error=problem)


__all__ = [
    "BuildEditError",
    "EDITABLE_FIELDS",
    "MISSING_REQUIRED_FIELDS",
    "STEP_NOT_FOUND",
    "add_work_unit",
    "change_menu_item",
    "edit_work_unit",
    "new_work_unit_id",
    "record_change",
    "remove_work_unit",
    "reorder_work_units",
    "set_dependencies",
]
