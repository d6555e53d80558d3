from __future__ import annotations

from pathlib import Path

from stylebranch_engine.runs.export import export_html, render_forest, render_text_tree
from stylebranch_engine.session.state import AppState
from stylebranch_engine.tree.records import ImagePayload, ImageRecord


def _node(record_id: str, *children: ImageRecord, slot: int = 0) -> ImageRecord:
    return ImageRecord(id=record_id, image=ImagePayload(record_id.encode("utf-8")), children=tuple(children), slot=slot)


def _forest() -> tuple[ImageRecord, ...]:
    return (
        _node("root-a000", _node("child-a00", _node("grand-a00"), slot=0), slot=0),
        _node("root-b000", slot=2),
    )


def test_render_forest_visits_every_level_with_depth() -> None:
    seen: list[tuple[str, int]] = []

    def node(record: ImageRecord, depth: int, children: str) -> str:
        seen.append((record.id, depth))
        return f"[{record.id}{children}]"

    markup = render_forest(_forest(), node)

    assert markup == "[root-a000[child-a00[grand-a00]]][root-b000]"
    assert sorted(seen) == [("child-a00", 1), ("grand-a00", 2), ("root-a000", 0), ("root-b000", 0)]


def test_render_text_tree_marks_selection_and_pending() -> None:
    state = AppState(forest=_forest(), selected_id="child-a00", pending_refinement_id="root-b000")
    lines = render_text_tree(state).splitlines()
    assert lines[0] == "  #1 root-a00"
    assert lines[1] == "  * #1 child-a0"
    assert lines[2].startswith("    ")
    assert lines[3] == "  #3 root-b00 (refining…)"


def test_export_html(tmp_path: Path) -> None:
    state = AppState(forest=_forest(), selected_id="grand-a00", pending_refinement_id="root-a000")
    out_path = tmp_path / "export.html"
    export_html(state, out_path, content="a <b>bold</b> idea")
    html = out_path.read_text(encoding="utf-8")

    assert "Generated Images (2)" in html
    assert "a &lt;b&gt;bold&lt;/b&gt; idea" in html
    assert "data-depth='2'" in html
    assert "class='card selected' data-id='grand-a00'" in html
    assert "Refining..." in html
    assert html.count("<button disabled>") == 4
    assert "data:image/png;base64," in html
