"""Dry-run generation provider (offline)."""

from __future__ import annotations

import hashlib
from io import BytesIO
from typing import Iterable

from PIL import Image, ImageDraw, ImageFont

from ..utils import encode_data_url
from .base import BatchRequest, BatchResult, SlotError, variation_prompt


class DryRunProvider:
    name = "dryrun"

    def __init__(self, size: tuple[int, int] = (512, 512), fail_slots: Iterable[int] = ()) -> None:
        self.size = size
        self.fail_slots = set(fail_slots)
        self._font = None

    def generate_batch(self, request: BatchRequest) -> BatchResult:
        images: list[str | None] = []
        errors: list[SlotError] = []
        for idx in range(max(1, int(request.count))):
            if idx in self.fail_slots:
                images.append(None)
                errors.append(SlotError(index=idx, message="dryrun slot failure"))
                continue
            prompt = variation_prompt(request.prompt, idx)
            images.append(encode_data_url(self._render(prompt, len(request.reference_images)), "image/png"))
        return BatchResult(images=images, errors=errors)

    def _render(self, prompt: str, reference_count: int) -> bytes:
        image = Image.new("RGB", self.size, _color_from_prompt(prompt))
        draw = ImageDraw.Draw(image)
        font = self._font or ImageFont.load_default()
        text = f"dryrun refs={reference_count}\n{prompt[-60:]}"
        draw.text((16, 16), text, fill=(255, 255, 255), font=font)
        buffer = BytesIO()
        image.save(buffer, format="PNG")
        return buffer.getvalue()


def _color_from_prompt(prompt: str) -> tuple[int, int, int]:
    digest = hashlib.sha256(prompt.encode("utf-8")).digest()
    return digest[0], digest[1], digest[2]
