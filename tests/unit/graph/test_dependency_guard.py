"""
line-build-core — unit tests for the dependency-graph guard

File: tests/unit/graph/test_dependency_guard.py

Purpose
- Verify edge admission, reachability, removal cascade, and cycle detection
  for build graphs.

What this test file should cover
- Self reference, unknown dependency, and cycle rejections with their reasons.
- Check order when several problems apply at once.
- Cascade idempotency and dangling-reference reporting.
- Deterministic property coverage: a graph grown only through admitted edges
  never contains a cycle and always has a topological order.

Functional requirements
- Offline only.
"""

from __future__ import annotations

import dataclasses

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from line_build_core.domain.models import ActionType, ItemReference, LineBuild, WorkUnit
from line_build_core.graph.guard import (
    Cycle,
    CycleError,
    SelfReference,
    UnknownDependency,
    cascade_removal,
    dangling_dependencies,
    find_cycles,
    has_path,
    topological_order,
    validate_new_edge,
)

pytestmark = pytest.mark.unit


def _unit(unit_id: str, *deps: str) -> WorkUnit:
    return WorkUnit(
        id=unit_id,
        action=ActionType.PREP,
        target=ItemReference(name=f"item-{unit_id}"),
        depends_on=deps,
    )


def _build(*units: WorkUnit) -> LineBuild:
    return LineBuild(id="build-1", menu_item_id="menu-1", work_units=units)


def _chain() -> LineBuild:
    # c -> b -> a
    return _build(_unit("a"), _unit("b", "a"), _unit("c", "b"))


def test_has_path_follows_predecessors_transitively() -> None:
    build = _chain()

    assert has_path(build, "c", "a")
    assert has_path(build, "b", "a")
    assert not has_path(build, "a", "c")


def test_has_path_is_not_reflexive_on_acyclic_graph() -> None:
    build = _chain()

    assert not has_path(build, "a", "a")
    assert not has_path(build, "c", "c")


def test_has_path_treats_dangling_ids_as_leaves() -> None:
    build = _build(_unit("a", "ghost"))

    assert has_path(build, "a", "ghost")
    assert not has_path(build, "ghost", "a")


def test_validate_new_edge_accepts_admissible_edges() -> None:
    build = _chain()

    assert validate_new_edge(build, "c", ["a", "b"]) is None
    assert validate_new_edge(build, "c", []) is None
    # unit ids that are not in the build yet are allowed for add flows
    assert validate_new_edge(build, "new-step", ["c"]) is None


def test_validate_new_edge_rejects_self_reference() -> None:
    problem = validate_new_edge(_chain(), "b", ["a", "b"])

    assert problem == SelfReference(unit_id="b")
    assert problem.reason == "A step cannot depend on itself"


def test_validate_new_edge_rejects_unknown_dependency() -> None:
    problem = validate_new_edge(_chain(), "c", ["a", "zzz"])

    assert problem == UnknownDependency(dependency_id="zzz")
    assert problem.reason == "Dependency zzz not found"


def test_validate_new_edge_rejects_cycles() -> None:
    problem = validate_new_edge(_chain(), "a", ["c"])

    assert problem == Cycle(unit_id="a", dependency_id="c")
    assert problem.reason == "Circular dependency detected"


def test_validate_new_edge_checks_self_before_unknown_before_cycle() -> None:
    build = _chain()

    assert isinstance(validate_new_edge(build, "a", ["c", "zzz", "a"]), SelfReference)
    assert isinstance(validate_new_edge(build, "a", ["c", "zzz"]), UnknownDependency)


def test_cascade_removal_detaches_dependents_and_is_idempotent() -> None:
    build = _build(_unit("a"), _unit("b", "a"), _unit("c", "a", "b"))

    once = cascade_removal(build, "a")
    twice = cascade_removal(once, "a")

    assert [unit.depends_on for unit in once.work_units] == [(), (), ("b",)]
    assert once.unit_ids == ("a", "b", "c")
    assert twice == once
    assert cascade_removal(build, "not-referenced") is build


def test_dangling_dependencies_lists_missing_predecessors() -> None:
    build = _build(_unit("a", "gone"), _unit("b", "a", "also-gone"))

    assert dangling_dependencies(build) == (("a", "gone"), ("b", "also-gone"))


def test_find_cycles_reports_canonical_paths() -> None:
    build = _build(_unit("a", "b"), _unit("b", "a"), _unit("c"))

    assert find_cycles(build) == (("a", "b", "a"),)
    assert find_cycles(_chain()) == ()


def test_topological_order_respects_dependencies_and_authoring_order() -> None:
    build = _build(_unit("plate", "fry", "toast"), _unit("toast"), _unit("fry", "bread"), _unit("bread"))

    order = topological_order(build)

    assert order == ("toast", "bread", "fry", "plate")


def test_topological_order_raises_cycle_error() -> None:
    build = _build(_unit("a", "b"), _unit("b", "a"))

    with pytest.raises(CycleError) as excinfo:
        topological_order(build)

    assert excinfo.value.cycles == (("a", "b", "a"),)
    assert "a -> b -> a" in str(excinfo.value)


_EDGE_ATTEMPTS = st.lists(
    st.tuples(st.integers(min_value=0, max_value=7), st.integers(min_value=0, max_value=7)),
    max_size=40,
)


@given(_EDGE_ATTEMPTS)
@settings(max_examples=60, derandomize=True, deadline=None)
def test_graph_grown_through_guard_stays_acyclic(attempts: list[tuple[int, int]]) -> None:
    build = _build(*(_unit(f"u{index}") for index in range(8)))

    for source_index, target_index in attempts:
        source = f"u{source_index}"
        target = f"u{target_index}"
        unit = build.get_work_unit(source)
        assert unit is not None
        candidate = (*unit.depends_on, target)
        if validate_new_edge(build, source, candidate) is not None:
            continue
        updated = dataclasses.replace(unit, depends_on=candidate)
        build = dataclasses.replace(
            build,
            work_units=tuple(updated if item.id == source else item for item in build.work_units),
        )

    assert find_cycles(build) == ()
    order = topological_order(build)
    position = {unit_id: index for index, unit_id in enumerate(order)}
    for unit in build.work_units:
        assert not has_path(build, unit.id, unit.id)
        for dep in unit.depends_on:
            assert position[dep] < position[unit.id]
            # transitivity: anything reachable from a predecessor is reachable from the unit
            for other in build.unit_ids:
                if has_path(build, dep, other):
                    assert has_path(build, unit.id, other)
