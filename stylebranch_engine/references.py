"""Reference image loading and the bounded reference set."""

from __future__ import annotations

from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from typing import Iterable

from PIL import Image, UnidentifiedImageError

from .errors import UnsupportedImageError
from .providers.base import ReferenceImage
from .utils import mime_type_for_suffix, new_record_id

MAX_REFERENCES = 3
_SCAN_SUFFIXES = (".png", ".jpg", ".jpeg", ".webp", ".gif")


@dataclass(frozen=True)
class UploadedReference:
    id: str
    name: str
    image: ReferenceImage


def sniff_mime_type(data: bytes, fallback: str | None = None) -> str:
    """Identify image bytes with Pillow; raise when they are not an image."""
    try:
        with Image.open(BytesIO(data)) as image:
            fmt = image.format
    except (UnidentifiedImageError, OSError) as exc:
        raise UnsupportedImageError("not an image file") from exc
    mime_type = Image.MIME.get(fmt or "") or fallback
    if not mime_type or not mime_type.startswith("image/"):
        raise UnsupportedImageError(f"unsupported image format: {fmt}")
    return mime_type


def load_reference(path: Path) -> UploadedReference:
    data = Path(path).read_bytes()
    mime_type = sniff_mime_type(data, mime_type_for_suffix(Path(path).suffix))
    return UploadedReference(id=new_record_id(), name=Path(path).name, image=ReferenceImage(data, mime_type))


@dataclass
class ReferenceSet:
    max_images: int = MAX_REFERENCES
    items: list[UploadedReference] = field(default_factory=list)

    @property
    def remaining(self) -> int:
        return max(0, self.max_images - len(self.items))

    def images(self) -> list[ReferenceImage]:
        return [item.image for item in self.items]

    def add_paths(self, paths: Iterable[Path]) -> tuple[list[UploadedReference], list[str]]:
        """Load as many paths as there are free slots.

        Returns the references added and warnings for files that were skipped,
        either because they are not images or because the set is full.
        """
        added: list[UploadedReference] = []
        warnings: list[str] = []
        for path in paths:
            if not self.remaining:
                warnings.append(f"{Path(path).name}: reference limit of {self.max_images} reached")
                continue
            try:
                ref = load_reference(Path(path))
            except (UnsupportedImageError, OSError) as exc:
                warnings.append(f"{Path(path).name}: {exc}")
                continue
            self.items.append(ref)
            added.append(ref)
        return added, warnings

    def remove(self, ref_id: str) -> bool:
        before = len(self.items)
        self.items = [item for item in self.items if item.id != ref_id and item.name != ref_id]
        return len(self.items) != before

    def clear(self) -> None:
        self.items = []


def scan_reference_dir(directory: Path) -> list[Path]:
    if not directory.is_dir():
        return []
    return sorted(p for p in directory.iterdir() if p.suffix.lower() in _SCAN_SUFFIXES)
