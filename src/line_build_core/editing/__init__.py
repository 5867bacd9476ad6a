"""Draft build editing: guarded mutations and status lifecycle."""

from line_build_core.editing.mutations import (
    BuildEditError,
    add_work_unit,
    change_menu_item,
    edit_work_unit,
    new_work_unit_id,
    remove_work_unit,
    reorder_work_units,
    set_dependencies,
)
from line_build_core.editing.status import (
    StatusTransitionError,
    TransitionCheck,
    can_transition,
    is_editable_status,
    possible_transitions,
    suggested_action,
    transition_to,
)

__all__ = [
    "BuildEditError",
    "StatusTransitionError",
    "TransitionCheck",
    "add_work_unit",
    "can_transition",
    "change_menu_item",
    "edit_work_unit",
    "is_editable_status",
    "new_work_unit_id",
    "possible_transitions",
    "remove_work_unit",
    "reorder_work_units",
    "set_dependencies",
    "suggested_action",
    "transition_to",
]
