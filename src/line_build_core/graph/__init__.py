"""Graph integrity checks for line builds."""

from line_build_core.graph.guard import (
    Cycle,
    CycleError,
    GraphError,
    SelfReference,
    UnknownDependency,
    cascade_removal,
    dangling_dependencies,
    find_cycles,
    has_path,
    topological_order,
    validate_new_edge,
)

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
