"""Provider base classes."""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Protocol, Sequence


DEFAULT_IMAGE_MODEL = "gemini-3-pro-image-preview"
MAX_BATCH_COUNT = 10


@dataclass(frozen=True)
class ReferenceImage:
    data: bytes
    mime_type: str = "image/png"

    def to_wire(self) -> dict[str, str]:
        return {"data": base64.b64encode(self.data).decode("ascii"), "mimeType": self.mime_type}

    @classmethod
    def from_wire(cls, payload: Mapping[str, Any]) -> "ReferenceImage":
        raw = payload.get("data")
        if not isinstance(raw, str) or not raw:
            raise ValueError("reference image is missing base64 data")
        mime_type = payload.get("mimeType") or payload.get("mime_type") or "image/png"
        return cls(data=base64.b64decode(raw), mime_type=str(mime_type))


@dataclass
class BatchRequest:
    prompt: str
    reference_images: Sequence[ReferenceImage] = ()
    count: int = 5
    credential: str | None = None
    model: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SlotError:
    index: int
    message: str

    def to_wire(self) -> dict[str, Any]:
        return {"index": self.index, "error": self.message}


@dataclass
class BatchResult:
    """One entry per requested slot; failed slots hold ``None``."""

    images: list[str | None]
    errors: list[SlotError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_wire(self) -> dict[str, Any]:
        return {"images": list(self.images), "errors": [error.to_wire() for error in self.errors]}

    @classmethod
    def from_wire(cls, payload: Mapping[str, Any]) -> "BatchResult":
        images = payload.get("images", [])
        if not isinstance(images, list):
            raise ValueError("response images must be a list")
        errors: list[SlotError] = []
        for item in payload.get("errors", []) or []:
            if not isinstance(item, Mapping):
                continue
            message = item.get("error") or item.get("message") or "Unknown error"
            errors.append(SlotError(index=int(item.get("index", -1)), message=str(message)))
        return cls(images=[img if isinstance(img, str) and img else None for img in images], errors=errors)


class GenerationProvider(Protocol):
    name: str

    def generate_batch(self, request: BatchRequest) -> BatchResult:
        ...


def variation_prompt(prompt: str, index: int) -> str:
    return f"{prompt} (Variation {index + 1})"


class ProviderRegistry:
    def __init__(self, providers: Iterable[GenerationProvider]) -> None:
        self._providers = {provider.name: provider for provider in providers}

    def get(self, name: str) -> GenerationProvider | None:
        return self._providers.get(name)

    def list(self) -> list[str]:
        return sorted(self._providers.keys())
