"""Session state and the single reducer that mutates it."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Sequence, Union

from ..tree.ops import add_children, find_by_id
from ..tree.records import Forest, ImageRecord
from .navigation import handle_key, navigate


@dataclass(frozen=True)
class AppState:
    forest: Forest = ()
    selected_id: str | None = None
    pending_refinement_id: str | None = None
    preview_id: str | None = None
    generating: bool = False
    epoch: int = 0
    error: str | None = None

    @property
    def modal_open(self) -> bool:
        return self.preview_id is not None

    @property
    def selected(self) -> ImageRecord | None:
        return find_by_id(self.forest, self.selected_id)


@dataclass(frozen=True)
class SelectRecord:
    record_id: str


@dataclass(frozen=True)
class Navigate:
    direction: str


@dataclass(frozen=True)
class PressKey:
    key: str


@dataclass(frozen=True)
class OpenPreview:
    record_id: str


@dataclass(frozen=True)
class ClosePreview:
    pass


@dataclass(frozen=True)
class GenerationStarted:
    pass


@dataclass(frozen=True)
class GenerationCompleted:
    records: Sequence[ImageRecord]


@dataclass(frozen=True)
class GenerationFailed:
    message: str


@dataclass(frozen=True)
class RefinementStarted:
    target_id: str


@dataclass(frozen=True)
class RefinementCompleted:
    target_id: str
    epoch: int
    records: Sequence[ImageRecord]


@dataclass(frozen=True)
class RefinementFailed:
    target_id: str
    epoch: int
    message: str


Action = Union[
    SelectRecord,
    Navigate,
    PressKey,
    OpenPreview,
    ClosePreview,
    GenerationStarted,
    GenerationCompleted,
    GenerationFailed,
    RefinementStarted,
    RefinementCompleted,
    RefinementFailed,
]


def reduce(state: AppState, action: Action) -> AppState:
    if isinstance(action, SelectRecord):
        if state.selected_id == action.record_id:
            return replace(state, selected_id=None)
        if find_by_id(state.forest, action.record_id) is None:
            return state
        return replace(state, selected_id=action.record_id)
    if isinstance(action, Navigate):
        return navigate(state, action.direction)
    if isinstance(action, PressKey):
        return handle_key(state, action.key)
    if isinstance(action, OpenPreview):
        if find_by_id(state.forest, action.record_id) is None:
            return state
        return replace(state, preview_id=action.record_id)
    if isinstance(action, ClosePreview):
        return replace(state, preview_id=None)
    if isinstance(action, GenerationStarted):
        return replace(state, generating=True, error=None)
    if isinstance(action, GenerationCompleted):
        # A new forest invalidates every in-flight refinement.
        return AppState(forest=tuple(action.records), epoch=state.epoch + 1)
    if isinstance(action, GenerationFailed):
        return replace(state, generating=False, error=action.message)
    if isinstance(action, RefinementStarted):
        if state.pending_refinement_id is not None:
            return state
        return replace(state, pending_refinement_id=action.target_id, error=None)
    if isinstance(action, RefinementCompleted):
        if action.epoch != state.epoch:
            return state
        return replace(
            state,
            forest=add_children(state.forest, action.target_id, action.records),
            selected_id=None,
            pending_refinement_id=None,
        )
    if isinstance(action, RefinementFailed):
        if action.epoch != state.epoch:
            return state
        return replace(state, pending_refinement_id=None, error=action.message)
    raise TypeError(f"Unknown action: {action!r}")
