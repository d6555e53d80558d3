"""Lookups and copy-on-write updates over a forest of image records.

None of these raise on an unknown id: a stale selection is a normal UI
condition, so lookups return ``None`` and updates hand back the forest
they were given. Walks use an explicit stack, so refinement chains of
any depth are fine.
"""

from __future__ import annotations

from typing import Iterator, Sequence

from .records import Forest, ImageRecord


def iter_records(forest: Sequence[ImageRecord], depth: int = 0) -> Iterator[tuple[int, ImageRecord]]:
    """Depth-first walk yielding ``(depth, record)`` pairs."""
    stack = [(depth, record) for record in reversed(forest)]
    while stack:
        level, record = stack.pop()
        yield level, record
        stack.extend((level + 1, child) for child in reversed(record.children))


def find_by_id(forest: Sequence[ImageRecord], record_id: str | None) -> ImageRecord | None:
    if record_id is None:
        return None
    for _, record in iter_records(forest):
        if record.id == record_id:
            return record
    return None


def path_to(forest: Sequence[ImageRecord], record_id: str | None) -> list[ImageRecord]:
    """Records from a root down to ``record_id`` inclusive; empty when absent."""
    if record_id is None:
        return []
    path: list[ImageRecord] = []
    for depth, record in iter_records(forest):
        del path[depth:]
        path.append(record)
        if record.id == record_id:
            return path
    return []


def add_children(forest: Forest, target_id: str, new_records: Sequence[ImageRecord]) -> Forest:
    """Append ``new_records`` to the target's children.

    Only the path from the root down to the target is rebuilt; every other
    subtree is shared with the input forest. Returns ``forest`` itself when
    the target is absent.
    """
    path = path_to(forest, target_id)
    if not path:
        return forest
    target = path[-1]
    replacement = target.with_children(target.children + tuple(new_records))
    for parent in reversed(path[:-1]):
        replacement = parent.with_children(_swap(parent.children, replacement))
    return _swap(tuple(forest), replacement)


def _swap(nodes: tuple[ImageRecord, ...], replacement: ImageRecord) -> tuple[ImageRecord, ...]:
    idx = next(i for i, node in enumerate(nodes) if node.id == replacement.id)
    return nodes[:idx] + (replacement,) + nodes[idx + 1 :]


def find_siblings(forest: Sequence[ImageRecord], record_id: str | None) -> tuple[ImageRecord, ...] | None:
    if record_id is None:
        return None
    if any(record.id == record_id for record in forest):
        return tuple(forest)
    path = path_to(forest, record_id)
    if not path:
        return None
    return path[-2].children


def count_records(forest: Sequence[ImageRecord]) -> int:
    return sum(1 for _ in iter_records(forest))


def position_label(forest: Sequence[ImageRecord], record_id: str) -> str | None:
    """1-based sibling positions from the root down, e.g. ``"2-1-3"``.

    Children are append-only, so a record keeps its label for as long as
    its forest lives.
    """
    path = path_to(forest, record_id)
    if not path:
        return None
    positions: list[str] = []
    siblings: Sequence[ImageRecord] = forest
    for record in path:
        idx = next(i for i, node in enumerate(siblings, start=1) if node.id == record.id)
        positions.append(str(idx))
        siblings = record.children
    return "-".join(positions)
