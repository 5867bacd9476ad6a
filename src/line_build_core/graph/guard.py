"""Dependency-graph guard: reachability, edge admission, and removal cascade.

Edges point from a work unit to its predecessors (``depends_on``). Every
mutation path that changes edges goes through :func:`validate_new_edge`; no
other module walks the graph on its own.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from heapq import heapify, heappop, heappush
from typing import TypeAlias

from line_build_core.domain.models import LineBuild


class CycleError(ValueError):
    """Raised when a loaded build already contains a dependency cycle."""

    cycles: tuple[tuple[str, ...], ...]

    def __init__(self, cycles: Iterable[Sequence[str]]) -> None:
        normalized: tuple[tuple[str, ...], ...] = tuple(tuple(path) for path in cycles)
        self.cycles = normalized

        if not normalized:
            message = "Line build contains at least one dependency cycle."
        else:
            preview = ", ".join(" -> ".join(path) for path in normalized[:3])
            suffix = "..." if len(normalized) > 3 else ""
            message = f"Line build contains dependency cycle(s): {preview}{suffix}"
        super().__init__(message)


@dataclass(frozen=True, slots=True)
class SelfReference:
    unit_id: str

    @property
    def reason(self) -> str:
        return "A step cannot depend on itself"


@dataclass(frozen=True, slots=True)
class UnknownDependency:
    dependency_id: str

    @property
    def reason(self) -> str:
        return f"Dependency {self.dependency_id} not found"


@dataclass(frozen=True, slots=True)
class Cycle:
    """Adding ``dependency_id`` as a predecessor of ``unit_id`` would close a loop."""

    unit_id: str
    dependency_id: str

    @property
    def reason(self) -> str:
        return "Circular dependency detected"


GraphError: TypeAlias = SelfReference | UnknownDependency | Cycle


def _predecessor_map(build: LineBuild) -> dict[str, tuple[str, ...]]:
    return {unit.id: unit.depends_on for unit in build.work_units}


def has_path(build: LineBuild, from_id: str, to_id: str) -> bool:
    """Return True when ``to_id`` is reachable from ``from_id`` along ``depends_on``.

    The walk starts at the predecessors of ``from_id``, so ``has_path(b, x, x)``
    is only true when ``x`` already sits on a cycle. Dangling ids are treated
    as leaves.
    """

    predecessors = _predecessor_map(build)
    visited: set[str] = set()
    pending: list[str] = list(predecessors.get(from_id, ()))

    while pending:
        node = pending.pop()
        if node == to_id:
            return True
        if node in visited:
            continue

        visited.add(node)
        for neighbor in predecessors.get(node, ()):
            if neighbor not in visited:
                pending.append(neighbor)

    return False


def validate_new_edge(
    build: LineBuild,
    unit_id: str,
    candidate_deps: Iterable[str],
) -> GraphError | None:
    """Check a replacement predecessor set for ``unit_id``.

    Returns the first problem found, checking self reference, then unknown ids,
    then cycles, or ``None`` when the edges may be applied. ``unit_id`` does not
    have to exist yet, which lets add-operations use the same check.
    """

    deps = tuple(dict.fromkeys(candidate_deps))
    if unit_id in deps:
        return SelfReference(unit_id=unit_id)

    known = set(build.unit_ids)
    for dep in deps:
        if dep not in known:
            return UnknownDependency(dependency_id=dep)

    for dep in deps:
        if has_path(build, dep, unit_id):
            return Cycle(unit_id=unit_id, dependency_id=dep)

    return None


def cascade_removal(build: LineBuild, removed_id: str) -> LineBuild:
    """Return ``build`` with ``removed_id`` dropped from every ``depends_on``.

    The unit itself is left in place; callers that delete a unit filter it
    out separately. Idempotent.
    """

    if not any(removed_id in unit.depends_on for unit in build.work_units):
        return build

    units = tuple(
        dataclasses.replace(
            unit, depends_on=tuple(dep for dep in unit.depends_on if dep != removed_id)
        )
        if removed_id in unit.depends_on
        else unit
        for unit in build.work_units
    )
    return dataclasses.replace(build, work_units=units)


def dangling_dependencies(build: LineBuild) -> tuple[tuple[str, str], ...]:
    """``(unit_id, missing_dep)`` pairs for predecessors absent from the build."""

    known = set(build.unit_ids)
    return tuple(
        (unit.id, dep)
        for unit in build.work_units
        for dep in unit.depends_on
        if dep not in known
    )


def find_cycles(build: LineBuild) -> tuple[tuple[str, ...], ...]:
    """
    Detect directed cycles in a build loaded from outside the guard.

    Returns closed, canonicalized paths in predecessor direction, e.g.
    ``("a", "b", "a")`` when ``a`` depends on ``b`` and ``b`` on ``a``.
    """

    known = set(build.unit_ids)
    predecessors = {
        unit_id: tuple(sorted(dep for dep in deps if dep in known))
        for unit_id, deps in _predecessor_map(build).items()
    }
    state: dict[str, int] = {}
    stack: list[str] = []
    stack_index: dict[str, int] = {}
    cycles: dict[tuple[str, ...], None] = {}

    for start in sorted(predecessors):
        if state.get(start, 0) != 0:
            continue

        state[start] = 1
        stack.append(start)
        stack_index[start] = len(stack) - 1
        frames: list[tuple[str, Iterator[str]]] = [(start, iter(predecessors[start]))]

        while frames:
            node, dep_iter = frames[-1]

            try:
                dep = next(dep_iter)
            except StopIteration:
                frames.pop()
                state[node] = 2
                stack.pop()
                del stack_index[node]
                continue

            dep_state = state.get(dep, 0)
            if dep_state == 0:
                state[dep] = 1
                stack_index[dep] = len(stack)
                stack.append(dep)
                frames.append((dep, iter(predecessors[dep])))
                continue

            if dep_state == 1:
                cycle = tuple(stack[stack_index[dep] :] + [dep])
                cycles[_canonicalize_cycle(cycle)] = None

    return tuple(sorted(cycles))


def topological_order(build: LineBuild) -> tuple[str, ...]:
    """Return an execution order (predecessors first) or raise ``CycleError``.

    Ties are broken by authoring order. Dangling predecessors are ignored.
    """

    position = {unit.id: index for index, unit in enumerate(build.work_units)}
    dependents: dict[str, list[str]] = {unit_id: [] for unit_id in position}
    indegree: dict[str, int] = {unit_id: 0 for unit_id in position}
    for unit in build.work_units:
        for dep in unit.depends_on:
            if dep in position:
                dependents[dep].append(unit.id)
                indegree[unit.id] += 1

    ready: list[tuple[int, str]] = [
        (position[unit_id], unit_id) for unit_id, degree in indegree.items() if degree == 0
    ]
    heapify(ready)

    order: list[str] = []
    while ready:
        _, node = heappop(ready)
        order.append(node)
        for child in dependents[node]:
            indegree[child] -= 1
            if indegree[child] == 0:
                heappush(ready, (position[child], child))

    if len(order) != len(position):
        raise CycleError(find_cycles(build))

    return tuple(order)


def _canonicalize_cycle(cycle: Sequence[str]) -> tuple[str, ...]:
    core = tuple(cycle[:-1])
    if len(core) == 1:
        return (core[0], core[0])

    best = core
    for offset in range(1, len(core)):
        rotated = core[offset:] + core[:offset]
        if rotated < best:
            best = rotated

    return best + (best[0],)


__all__ = [
    "Cycle",
    "CycleError",
    "GraphError",
    "SelfReference",
    "UnknownDependency",
    "cascade_removal",
    "dangling_dependencies",
    "find_cycles",
    "has_path",
    "topological_order",
    "validate_new_edge",
]
