"""Sibling navigation over the refinement forest."""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

from ..tree.ops import find_siblings

if TYPE_CHECKING:
    from .state import AppState


LEFT = "left"
RIGHT = "right"

_KEY_DIRECTIONS = {
    "arrowleft": LEFT,
    "left": LEFT,
    "h": LEFT,
    "prev": LEFT,
    "arrowright": RIGHT,
    "right": RIGHT,
    "l": RIGHT,
    "next": RIGHT,
}

_CLOSE_KEYS = {"escape", "esc"}


def direction_for_key(key: str) -> str | None:
    return _KEY_DIRECTIONS.get(str(key or "").strip().lower())


def is_close_key(key: str) -> bool:
    return str(key or "").strip().lower() in _CLOSE_KEYS


def navigate(state: "AppState", direction: str) -> "AppState":
    """Move the selection to the previous/next sibling, wrapping at the ends.

    Ignored while nothing is selected, while the preview is open, or when the
    selected node has disappeared from the forest.
    """
    if direction not in {LEFT, RIGHT}:
        return state
    if state.selected_id is None or state.modal_open:
        return state
    siblings = find_siblings(state.forest, state.selected_id)
    if not siblings:
        return state
    current = next(idx for idx, record in enumerate(siblings) if record.id == state.selected_id)
    step = -1 if direction == LEFT else 1
    target = siblings[(current + step) % len(siblings)]
    if target.id == state.selected_id:
        return state
    return replace(state, selected_id=target.id)


def handle_key(state: "AppState", key: str) -> "AppState":
    if is_close_key(key):
        return replace(state, preview_id=None)
    direction = direction_for_key(key)
    if direction is None:
        return state
    return navigate(state, direction)
