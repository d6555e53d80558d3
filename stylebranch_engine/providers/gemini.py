"""Gemini provider."""

from __future__ import annotations

import os
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Sequence

from google import genai
from google.genai import types

from ..utils import encode_data_url, getenv_int
from .base import (
    DEFAULT_IMAGE_MODEL,
    BatchRequest,
    BatchResult,
    ReferenceImage,
    SlotError,
    variation_prompt,
)

MAX_WORKERS_ENV = "STYLEBRANCH_MAX_WORKERS"
IMAGE_MODEL_ENV = "STYLEBRANCH_IMAGE_MODEL"


class GeminiProvider:
    name = "gemini"

    def __init__(self, model: str | None = None, max_workers: int | None = None) -> None:
        self.model = model
        self.max_workers = max_workers

    def generate_batch(self, request: BatchRequest) -> BatchResult:
        api_key = request.credential or os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
        if not api_key:
            raise RuntimeError("GEMINI_API_KEY or GOOGLE_API_KEY not set.")

        client = _build_client(api_key)
        model = request.model or self.model or os.getenv(IMAGE_MODEL_ENV) or DEFAULT_IMAGE_MODEL
        count = max(1, int(request.count))
        workers = self.max_workers or getenv_int(MAX_WORKERS_ENV, count)
        references = list(request.reference_images)

        with ThreadPoolExecutor(max_workers=max(1, min(count, workers))) as pool:
            futures = [
                pool.submit(_generate_slot, client, model, request.prompt, references, idx)
                for idx in range(count)
            ]
            outcomes = [future.result() for future in futures]

        outcomes.sort(key=lambda item: item[0])
        images = [image for _, image, _ in outcomes]
        errors = [SlotError(index=idx, message=error) for idx, _, error in outcomes if error]
        warnings: list[str] = []
        if errors:
            warnings.append(f"{len(errors)} of {count} images failed to generate.")
        return BatchResult(images=images, errors=errors, warnings=warnings)


def _build_client(api_key: str) -> Any:
    return genai.Client(api_key=api_key)


def _build_parts(prompt: str, references: Sequence[ReferenceImage], index: int) -> list[types.Part]:
    parts: list[types.Part] = [types.Part(text=variation_prompt(prompt, index))]
    for ref in references:
        parts.append(types.Part(inline_data=types.Blob(data=ref.data, mime_type=ref.mime_type)))
    return parts


def _generate_slot(
    client: Any,
    model: str,
    prompt: str,
    references: Sequence[ReferenceImage],
    index: int,
) -> tuple[int, str | None, str | None]:
    """Run one variation; failures are reported per slot, never raised."""
    try:
        response = client.models.generate_content(
            model=model,
            contents=[types.Content(role="user", parts=_build_parts(prompt, references, index))],
            config=types.GenerateContentConfig(response_modalities=["TEXT", "IMAGE"]),
        )
    except Exception as exc:
        return index, None, str(exc) or type(exc).__name__

    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return index, None, "No response from model"
    content = getattr(candidates[0], "content", None)
    parts = getattr(content, "parts", None)
    if not parts:
        return index, None, "No response from model"
    blob = _first_image_blob(parts)
    if blob is None:
        return index, None, "No image in response"
    data, mime_type = blob
    return index, encode_data_url(data, mime_type or "image/png"), None


def _first_image_blob(parts: Sequence[Any]) -> tuple[bytes, str | None] | None:
    for part in parts:
        inline_data = getattr(part, "inline_data", None)
        data = getattr(inline_data, "data", None) if inline_data else None
        if not data:
            continue
        if isinstance(data, str):
            data = data.encode("latin1")
        if isinstance(data, (bytes, bytearray)):
            return bytes(data), getattr(inline_data, "mime_type", None)
    return None
