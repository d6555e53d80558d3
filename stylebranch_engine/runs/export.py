"""Recursive rendering of the forest to HTML and plain text."""

from __future__ import annotations

import html
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Sequence

from ..tree.records import ImageRecord

if TYPE_CHECKING:
    from ..session.state import AppState


NodeRenderer = Callable[[ImageRecord, int, str], str]


def render_forest(records: Sequence[ImageRecord], render_node: NodeRenderer, depth: int = 0, joiner: str = "") -> str:
    """Render every level with the same callback.

    ``render_node`` receives a record, its depth and the already rendered
    markup of its children.
    """
    parts = []
    for record in records:
        children = render_forest(record.children, render_node, depth + 1, joiner) if record.children else ""
        parts.append(render_node(record, depth, children))
    return joiner.join(parts)


def render_text_tree(state: "AppState") -> str:
    def node(record: ImageRecord, depth: int, children: str) -> str:
        marker = "*" if record.id == state.selected_id else " "
        pending = " (refining…)" if record.id == state.pending_refinement_id else ""
        slot = f"#{record.slot + 1}" if record.slot is not None else "#?"
        line = f"{'  ' * depth}{marker} {slot} {record.id[:8]}{pending}"
        return f"{line}\n{children}" if children else line

    return render_forest(state.forest, node, joiner="\n")


def _html_node(state: "AppState") -> NodeRenderer:
    refining = state.pending_refinement_id is not None

    def node(record: ImageRecord, depth: int, children: str) -> str:
        classes = ["card"]
        if record.id == state.selected_id:
            classes.append("selected")
        label = "Refining..." if record.id == state.pending_refinement_id else "Refine"
        disabled = " disabled" if refining else ""
        slot = (record.slot or 0) + 1
        nested = f"<div class='level depth-{depth + 1}'>{children}</div>" if children else ""
        return (
            f"<div class='{' '.join(classes)}' data-id='{html.escape(record.id)}' data-depth='{depth}'>"
            f"<div class='thumb'><img src='{record.image.data_url}' alt='Generated {slot}'></div>"
            f"<div class='meta'><span class='rid'>{html.escape(record.id[:8])}</span>"
            f"<button{disabled}>{label}</button></div>"
            f"{nested}"
            f"</div>"
        )

    return node


def export_html(state: "AppState", out_path: Path, content: str = "") -> Path:
    body = render_forest(state.forest, _html_node(state))
    html_doc = f"""
<!doctype html>
<html>
<head>
  <meta charset='utf-8'>
  <title>Stylebranch Export</title>
  <style>
    body {{ font-family: Arial, sans-serif; background: #f6f6f6; margin: 0; padding: 20px; }}
    .level {{ display: grid; grid-template-columns: repeat(auto-fill, minmax(200px, 1fr)); gap: 16px; }}
    .level .level {{ margin: 12px 0 0 12px; padding-left: 12px; border-left: 2px solid #ddd; }}
    .card {{ background: white; border-radius: 10px; overflow: hidden; box-shadow: 0 2px 8px rgba(0,0,0,0.08); }}
    .card.selected {{ outline: 3px solid #2563eb; }}
    .thumb img {{ width: 100%; aspect-ratio: 1; object-fit: cover; }}
    .meta {{ padding: 8px; display: flex; justify-content: space-between; font-size: 12px; color: #444; }}
  </style>
</head>
<body>
  <h1>Generated Images ({len(state.forest)})</h1>
  <p class='content'>{html.escape(content)}</p>
  <div class='level depth-0'>
    {body}
  </div>
</body>
</html>
"""
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(html_doc, encoding="utf-8")
    return out_path
