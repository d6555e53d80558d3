from __future__ import annotations

from pathlib import Path

import pytest

from stylebranch_engine.credentials import CredentialStore
from stylebranch_engine.engine import StyleSession, refine_forest
from stylebranch_engine.errors import (
    EmptyInstructionError,
    GenerationError,
    MissingCredentialError,
    RefinementPendingError,
    StaleTargetError,
)
from stylebranch_engine.prompts import STYLE_PROMPT
from stylebranch_engine.providers.base import BatchRequest, BatchResult, ReferenceImage
from stylebranch_engine.references import ReferenceSet, UploadedReference
from stylebranch_engine.runs.events import EventWriter, read_events
from stylebranch_engine.tree.ops import find_by_id
from stylebranch_engine.tree.records import ImagePayload, ImageRecord
from stylebranch_engine.utils import encode_data_url


class ScriptedProvider:
    name = "scripted"

    def __init__(self, *batches) -> None:
        self.batches = list(batches)
        self.requests: list[BatchRequest] = []

    def generate_batch(self, request: BatchRequest) -> BatchResult:
        self.requests.append(request)
        batch = self.batches.pop(0)
        if isinstance(batch, Exception):
            raise batch
        return BatchResult(images=list(batch))


def _img(label: str) -> str:
    return encode_data_url(label.encode("utf-8"), "image/png")


def _session(tmp_path: Path, provider, *, credential: str | None = "test-key") -> StyleSession:
    credentials = CredentialStore(path=tmp_path / "credentials.json", use_env=False)
    if credential:
        credentials.set(credential)
    references = ReferenceSet(
        items=[UploadedReference(id="ref-1", name="ref.png", image=ReferenceImage(b"ref", "image/png"))]
    )
    return StyleSession(
        provider,
        credentials=credentials,
        events=EventWriter(tmp_path / "events.jsonl", "s-1"),
        references=references,
    )


def _generated(tmp_path: Path, *refinements) -> StyleSession:
    provider = ScriptedProvider([_img(f"root-{i}") for i in range(5)], *refinements)
    session = _session(tmp_path, provider)
    session.generate("a fox in a forest")
    return session


def test_refine_attaches_three_children_in_order(tmp_path: Path) -> None:
    session = _generated(tmp_path, [_img("r0"), _img("r1"), _img("r2")])
    target = session.forest[2]
    untouched = [record for record in session.forest if record.id != target.id]
    session.select(target.id)

    session.refine("brighter colors")

    refined = find_by_id(session.forest, target.id)
    assert [child.image.data for child in refined.children] == [b"r0", b"r1", b"r2"]
    assert all(child.children == () for child in refined.children)
    assert [record for record in session.forest if record.id != target.id] == untouched
    assert session.state.selected_id is None
    assert session.state.pending_refinement_id is None


def test_sequential_refinements_append(tmp_path: Path) -> None:
    session = _generated(tmp_path, [_img("a0"), _img("a1"), None], [None, _img("b0"), None])
    target_id = session.forest[0].id

    session.refine("first pass", target_id)
    session.refine("second pass", target_id)

    children = find_by_id(session.forest, target_id).children
    assert [child.image.data for child in children] == [b"a0", b"a1", b"b0"]


def test_refinement_request_composes_references_and_prompt(tmp_path: Path) -> None:
    session = _generated(tmp_path, [_img("c")] * 3)
    target = session.forest[1]

    session.refine("  add a moon  ", target.id)

    request = session.provider.requests[-1]
    assert request.count == 3
    assert request.reference_images == [
        ReferenceImage(b"ref", "image/png"),
        ReferenceImage(b"root-1", "image/png"),
    ]
    style_at = request.prompt.index(STYLE_PROMPT)
    content_at = request.prompt.index("Content to visualize:\na fox in a forest")
    refine_at = request.prompt.index("Refinement instructions:\nadd a moon")
    assert style_at < content_at < refine_at


def test_refining_a_child_nests_deeper(tmp_path: Path) -> None:
    session = _generated(tmp_path, [_img("c0"), _img("c1"), _img("c2")], [_img("g0"), None, None])
    root_id = session.forest[0].id
    session.refine("pass one", root_id)
    child_id = find_by_id(session.forest, root_id).children[1].id

    session.refine("pass two", child_id)

    grandchild = find_by_id(session.forest, child_id).children
    assert [g.image.data for g in grandchild] == [b"g0"]
    assert session.provider.requests[-1].reference_images[-1] == ReferenceImage(b"c1", "image/png")


@pytest.mark.parametrize("instruction", ["", "   ", "\n\t"])
def test_blank_instruction_rejected_before_call(tmp_path: Path, instruction: str) -> None:
    session = _generated(tmp_path)
    calls = len(session.provider.requests)
    with pytest.raises(EmptyInstructionError):
        session.refine(instruction, session.forest[0].id)
    assert len(session.provider.requests) == calls
    assert session.state.pending_refinement_id is None


def test_refine_forest_requires_credential_and_known_target() -> None:
    forest = (ImageRecord(id="x", image=ImagePayload(b"x")),)
    provider = ScriptedProvider()
    with pytest.raises(MissingCredentialError):
        refine_forest(provider, forest, "x", "more", [], credential=None)
    with pytest.raises(StaleTargetError):
        refine_forest(provider, forest, "gone", "more", [], credential="k")
    assert provider.requests == []


def test_failed_refinement_does_not_mutate(tmp_path: Path) -> None:
    session = _generated(tmp_path, RuntimeError("quota exceeded"))
    before = session.forest
    with pytest.raises(GenerationError):
        session.refine("sharper", before[0].id)
    assert session.forest is before
    assert session.state.pending_refinement_id is None
    assert "refinement_failed" in [e["type"] for e in read_events(tmp_path / "events.jsonl")]


def test_second_refinement_rejected_while_pending(tmp_path: Path) -> None:
    session = _generated(tmp_path)
    session.begin_refinement("one", session.forest[0].id)
    with pytest.raises(RefinementPendingError):
        session.begin_refinement("two", session.forest[1].id)


def test_stale_refinement_result_discarded_after_new_generation(tmp_path: Path) -> None:
    provider = ScriptedProvider(
        [_img(f"root-{i}") for i in range(5)],
        [_img(f"next-{i}") for i in range(5)],
        [_img("late")] * 3,
    )
    session = _session(tmp_path, provider)
    session.generate("first")
    ticket = session.begin_refinement("warmer", session.forest[0].id)

    session.generate("second")
    outcome = session.run_refinement(ticket)

    assert outcome.discarded is True
    assert [record.image.data for record in session.forest] == [f"next-{i}".encode() for i in range(5)]
    assert all(record.children == () for record in session.forest)
    assert "refinement_discarded" in [e["type"] for e in read_events(tmp_path / "events.jsonl")]


def test_stale_target_reported(tmp_path: Path) -> None:
    session = _generated(tmp_path)
    with pytest.raises(StaleTargetError):
        session.refine("more contrast", "not-a-real-id")
    assert "attach_skipped" in [e["type"] for e in read_events(tmp_path / "events.jsonl")]


def test_saving_root_and_child_into_one_directory_keeps_both(tmp_path: Path) -> None:
    session = _generated(tmp_path, [_img("child-0"), _img("child-1"), None])
    root = session.forest[0]
    session.refine("add a moon", root.id)
    child = find_by_id(session.forest, root.id).children[0]
    out_dir = tmp_path / "out"

    root_path = session.save(root.id, out_dir)
    child_path = session.save(child.id, out_dir)

    assert root_path.name == "generated-image-1.png"
    assert child_path.name == "generated-image-1-1.png"
    assert root_path.read_bytes() == b"root-0"
    assert child_path.read_bytes() == b"child-0"
    assert session.save("missing", out_dir) is None


def test_handle_key_goes_through_the_reducer(tmp_path: Path) -> None:
    session = _generated(tmp_path)
    first, last = session.forest[0], session.forest[-1]
    session.select(first.id)

    session.handle_key("ArrowLeft")
    assert session.state.selected_id == last.id

    session.open_preview()
    session.handle_key("ArrowRight")
    assert session.state.selected_id == last.id
    session.handle_key("Escape")
    assert session.state.modal_open is False

    changes = [e for e in read_events(tmp_path / "events.jsonl") if e["type"] == "selection_changed"]
    assert [e["selected_id"] for e in changes] == [first.id, last.id]
