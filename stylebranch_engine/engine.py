"""Generation and refinement orchestration over the image forest."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Sequence

from .credentials import CredentialStore
from .errors import (
    EmptyInstructionError,
    GenerationError,
    InvalidCountError,
    MissingCredentialError,
    MissingReferencesError,
    RefinementPendingError,
    StaleTargetError,
    StyleBranchError,
    TooManyReferencesError,
    ValidationError,
)
from .prompts import STYLE_PROMPT, compose_generation_prompt, compose_refinement_prompt
from .providers.base import BatchRequest, BatchResult, GenerationProvider, ReferenceImage, SlotError
from .references import MAX_REFERENCES, ReferenceSet
from .runs.events import EventWriter
from .runs.export import export_html
from .session.state import (
    Action,
    AppState,
    ClosePreview,
    GenerationCompleted,
    GenerationFailed,
    GenerationStarted,
    Navigate,
    OpenPreview,
    PressKey,
    RefinementCompleted,
    RefinementFailed,
    RefinementStarted,
    SelectRecord,
    reduce,
)
from .tree.ops import add_children, count_records, find_by_id, path_to, position_label
from .tree.records import Forest, ImageRecord, records_from_batch, save_record

DEFAULT_GENERATION_COUNT = 5
MIN_GENERATION_COUNT = 4
MAX_GENERATION_COUNT = 10
REFINEMENT_COUNT = 3


@dataclass
class BatchOutcome:
    forest: Forest
    records: list[ImageRecord]
    errors: list[SlotError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    discarded: bool = False


def validate_generation(
    references: Sequence[ReferenceImage],
    credential: str | None,
    count: int,
) -> None:
    if not references:
        raise MissingReferencesError("Please upload at least one reference image")
    if len(references) > MAX_REFERENCES:
        raise TooManyReferencesError(f"At most {MAX_REFERENCES} reference images are allowed")
    if not MIN_GENERATION_COUNT <= int(count) <= MAX_GENERATION_COUNT:
        raise InvalidCountError(
            f"Image count must be between {MIN_GENERATION_COUNT} and {MAX_GENERATION_COUNT}"
        )
    if not credential:
        raise MissingCredentialError("Set a Gemini API key before generating")


def validate_refinement(instruction: str, credential: str | None) -> str:
    cleaned = (instruction or "").strip()
    if not cleaned:
        raise EmptyInstructionError("Refinement instruction must not be empty")
    if not credential:
        raise MissingCredentialError("Set a Gemini API key before refining")
    return cleaned


def _call_provider(provider: GenerationProvider, request: BatchRequest) -> tuple[BatchResult, list[ImageRecord]]:
    try:
        result = provider.generate_batch(request)
        records = records_from_batch(result.images, prompt=request.prompt)
    except StyleBranchError:
        raise
    except Exception as exc:
        raise GenerationError(str(exc) or "Failed to generate images") from exc
    return result, records


def generate_forest(
    provider: GenerationProvider,
    content: str,
    references: Sequence[ReferenceImage],
    *,
    credential: str | None,
    style_prompt: str = STYLE_PROMPT,
    count: int = DEFAULT_GENERATION_COUNT,
    model: str | None = None,
) -> BatchOutcome:
    """Run an initial batch; the returned forest replaces any previous one."""
    validate_generation(references, credential, count)
    request = BatchRequest(
        prompt=compose_generation_prompt(content, style_prompt),
        reference_images=list(references),
        count=int(count),
        credential=credential,
        model=model,
    )
    result, records = _call_provider(provider, request)
    return BatchOutcome(forest=tuple(records), records=records, errors=list(result.errors), warnings=list(result.warnings))


def refine_forest(
    provider: GenerationProvider,
    forest: Forest,
    target_id: str,
    instruction: str,
    base_references: Sequence[ReferenceImage],
    *,
    credential: str | None,
    content: str = "",
    style_prompt: str = STYLE_PROMPT,
    count: int = REFINEMENT_COUNT,
    model: str | None = None,
) -> BatchOutcome:
    """Refine one node: its image joins the base references for a new batch.

    Surviving results are appended to the target's children. On failure the
    input forest is left as it was.
    """
    cleaned = validate_refinement(instruction, credential)
    target = find_by_id(forest, target_id)
    if target is None:
        raise StaleTargetError(f"Image {target_id} is no longer available")
    request = BatchRequest(
        prompt=compose_refinement_prompt(content, cleaned, style_prompt),
        reference_images=list(base_references) + [target.image.to_reference()],
        count=int(count),
        credential=credential,
        model=model,
    )
    result, records = _call_provider(provider, request)
    return BatchOutcome(
        forest=add_children(forest, target_id, records),
        records=records,
        errors=list(result.errors),
        warnings=list(result.warnings),
    )


class StyleSession:
    """Owns the forest, selection and pending marker for one user session."""

    def __init__(
        self,
        provider: GenerationProvider,
        *,
        credentials: CredentialStore | None = None,
        events: EventWriter | None = None,
        references: ReferenceSet | None = None,
        style_prompt: str = STYLE_PROMPT,
        generation_count: int = DEFAULT_GENERATION_COUNT,
        model: str | None = None,
        session_id: str | None = None,
    ) -> None:
        self.provider = provider
        self.credentials = credentials or CredentialStore()
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self.events = events or EventWriter(None, self.session_id)
        self.references = references or ReferenceSet()
        self.style_prompt = style_prompt
        self.generation_count = generation_count
        self.model = model
        self.content = ""
        self.state = AppState()
        self.events.emit("session_started", provider=getattr(provider, "name", "unknown"))

    def dispatch(self, action: Action) -> AppState:
        self.state = reduce(self.state, action)
        return self.state

    @property
    def forest(self) -> Forest:
        return self.state.forest

    def _validation_failed(self, exc: ValidationError, operation: str) -> None:
        self.events.emit("validation_failed", operation=operation, code=exc.code, error=str(exc))

    def generate(self, content: str | None = None, count: int | None = None) -> BatchOutcome:
        if content is not None:
            self.content = content
        count = int(count or self.generation_count)
        references = self.references.images()
        credential = self.credentials.get()
        try:
            validate_generation(references, credential, count)
        except ValidationError as exc:
            self._validation_failed(exc, "generate")
            raise

        self.dispatch(GenerationStarted())
        self.events.emit("generation_started", count=count, references=len(references))
        started_at = time.monotonic()
        try:
            outcome = generate_forest(
                self.provider,
                self.content,
                references,
                credential=credential,
                style_prompt=self.style_prompt,
                count=count,
                model=self.model,
            )
        except StyleBranchError as exc:
            self.dispatch(GenerationFailed(str(exc)))
            self.events.emit("generation_failed", error=str(exc))
            raise

        self.dispatch(GenerationCompleted(outcome.records))
        self.events.emit(
            "generation_completed",
            epoch=self.state.epoch,
            images=len(outcome.records),
            errors=[error.to_wire() for error in outcome.errors],
            elapsed_s=round(time.monotonic() - started_at, 3),
        )
        return outcome

    def refine(self, instruction: str, target_id: str | None = None) -> BatchOutcome:
        ticket = self.begin_refinement(instruction, target_id)
        return self.run_refinement(ticket)

    def begin_refinement(self, instruction: str, target_id: str | None = None) -> "RefinementTicket":
        target_id = target_id or self.state.selected_id
        try:
            if self.state.pending_refinement_id is not None:
                raise RefinementPendingError("A refinement is already in progress")
            if not target_id:
                raise StaleTargetError("Select an image to refine")
            cleaned = validate_refinement(instruction, self.credentials.get())
        except ValidationError as exc:
            self._validation_failed(exc, "refine")
            raise
        if find_by_id(self.state.forest, target_id) is None:
            self.events.emit("attach_skipped", target_id=target_id, reason="target not in forest")
            raise StaleTargetError(f"Image {target_id} is no longer available")

        self.dispatch(RefinementStarted(target_id))
        ticket = RefinementTicket(
            target_id=target_id,
            instruction=cleaned,
            epoch=self.state.epoch,
            forest=self.state.forest,
        )
        self.events.emit(
            "refinement_started",
            target_id=target_id,
            depth=len(path_to(ticket.forest, target_id)) - 1,
            instruction=cleaned,
            epoch=ticket.epoch,
        )
        return ticket

    def run_refinement(self, ticket: "RefinementTicket") -> BatchOutcome:
        try:
            outcome = refine_forest(
                self.provider,
                ticket.forest,
                ticket.target_id,
                ticket.instruction,
                self.references.images(),
                credential=self.credentials.get(),
                content=self.content,
                style_prompt=self.style_prompt,
                model=self.model,
            )
        except StyleBranchError as exc:
            self.dispatch(RefinementFailed(ticket.target_id, ticket.epoch, str(exc)))
            self.events.emit("refinement_failed", target_id=ticket.target_id, error=str(exc))
            raise
        return self.finish_refinement(ticket, outcome)

    def finish_refinement(self, ticket: "RefinementTicket", outcome: BatchOutcome) -> BatchOutcome:
        if ticket.epoch != self.state.epoch:
            self.events.emit(
                "refinement_discarded",
                target_id=ticket.target_id,
                epoch=ticket.epoch,
                current_epoch=self.state.epoch,
            )
            outcome.discarded = True
            outcome.forest = self.state.forest
            return outcome
        if find_by_id(self.state.forest, ticket.target_id) is None:
            self.events.emit("attach_skipped", target_id=ticket.target_id, reason="target not in forest")
        self.dispatch(RefinementCompleted(ticket.target_id, ticket.epoch, outcome.records))
        outcome.forest = self.state.forest
        self.events.emit(
            "refinement_completed",
            target_id=ticket.target_id,
            images=len(outcome.records),
            errors=[error.to_wire() for error in outcome.errors],
        )
        return outcome

    def select(self, record_id: str) -> AppState:
        return self._track_selection(SelectRecord(record_id))

    def navigate(self, direction: str) -> AppState:
        return self._track_selection(Navigate(direction))

    def handle_key(self, key: str) -> AppState:
        return self._track_selection(PressKey(key))

    def _track_selection(self, action: Action) -> AppState:
        before = self.state.selected_id
        self.dispatch(action)
        if self.state.selected_id != before:
            self.events.emit("selection_changed", selected_id=self.state.selected_id)
        return self.state

    def open_preview(self, record_id: str | None = None) -> AppState:
        record_id = record_id or self.state.selected_id
        if not record_id:
            return self.state
        return self.dispatch(OpenPreview(record_id))

    def close_preview(self) -> AppState:
        return self.dispatch(ClosePreview())

    def save(self, record_id: str, out_dir: Path) -> Path | None:
        record = find_by_id(self.state.forest, record_id)
        label = position_label(self.state.forest, record_id)
        if record is None or label is None:
            return None
        return save_record(record, out_dir, label)

    def export(self, out_path: Path) -> Path:
        path = export_html(self.state, out_path, content=self.content)
        self.events.emit("export_written", path=str(path))
        return path

    def summary(self) -> dict[str, Any]:
        return {
            "roots": len(self.state.forest),
            "records": count_records(self.state.forest),
            "selected_id": self.state.selected_id,
            "pending_refinement_id": self.state.pending_refinement_id,
            "epoch": self.state.epoch,
            "references": len(self.references.items),
        }


@dataclass
class RefinementTicket:
    target_id: str
    instruction: str
    epoch: int
    forest: Forest
