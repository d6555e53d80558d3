"""Image records: nodes of the refinement forest."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from ..providers.base import ReferenceImage
from ..utils import decode_data_url, encode_data_url, extension_for_mime, new_record_id


@dataclass(frozen=True)
class ImagePayload:
    data: bytes
    mime_type: str = "image/png"

    @property
    def data_url(self) -> str:
        return encode_data_url(self.data, self.mime_type)

    @classmethod
    def from_data_url(cls, value: str) -> "ImagePayload":
        data, mime_type = decode_data_url(value)
        return cls(data=data, mime_type=mime_type)

    def to_reference(self) -> ReferenceImage:
        return ReferenceImage(data=self.data, mime_type=self.mime_type)


@dataclass(frozen=True)
class ImageRecord:
    id: str
    image: ImagePayload
    children: tuple["ImageRecord", ...] = ()
    prompt: str = ""
    slot: int | None = None

    def with_children(self, children: Sequence["ImageRecord"]) -> "ImageRecord":
        return ImageRecord(
            id=self.id,
            image=self.image,
            children=tuple(children),
            prompt=self.prompt,
            slot=self.slot,
        )

    def __repr__(self) -> str:
        return f"ImageRecord(id={self.id!r}, slot={self.slot!r}, children={len(self.children)})"


Forest = tuple[ImageRecord, ...]


def new_record(image: ImagePayload, *, prompt: str = "", slot: int | None = None) -> ImageRecord:
    return ImageRecord(id=new_record_id(), image=image, prompt=prompt, slot=slot)


def records_from_batch(images: Sequence[str | None], *, prompt: str = "") -> list[ImageRecord]:
    """Wrap the non-null slots of a batch, keeping slot order."""
    records: list[ImageRecord] = []
    for idx, image in enumerate(images):
        if image is None:
            continue
        records.append(new_record(ImagePayload.from_data_url(image), prompt=prompt, slot=idx))
    return records


def save_record(record: ImageRecord, out_dir: Path, position: int | str) -> Path:
    """Write as ``generated-image-{position}.{ext}``; nested records use labels like ``1-2``."""
    out_dir.mkdir(parents=True, exist_ok=True)
    ext = extension_for_mime(record.image.mime_type)
    path = out_dir / f"generated-image-{position}.{ext}"
    path.write_bytes(record.image.data)
    return path
