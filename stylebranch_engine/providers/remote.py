"""Provider that forwards batches to a running ``/api/generate`` endpoint."""

from __future__ import annotations

import json
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from .base import BatchRequest, BatchResult

DEFAULT_ENDPOINT = "http://127.0.0.1:8787/api/generate"


class RemoteProvider:
    name = "remote"

    def __init__(self, endpoint: str = DEFAULT_ENDPOINT, timeout: float = 300.0) -> None:
        self.endpoint = endpoint
        self.timeout = timeout

    def generate_batch(self, request: BatchRequest) -> BatchResult:
        body: dict[str, Any] = {
            "prompt": request.prompt,
            "referenceImages": [ref.to_wire() for ref in request.reference_images],
            "count": int(request.count),
        }
        if request.credential:
            body["apiKey"] = request.credential
        if request.model:
            body["model"] = request.model
        req = Request(
            self.endpoint,
            data=json.dumps(body).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with urlopen(req, timeout=self.timeout) as response:
                payload = json.loads(response.read().decode("utf-8"))
        except HTTPError as exc:
            raise RuntimeError(_error_message(exc)) from exc
        except URLError as exc:
            raise RuntimeError(f"Generation endpoint unreachable: {exc.reason}") from exc
        if not isinstance(payload, dict):
            raise RuntimeError("Generation endpoint returned an unexpected payload.")
        return BatchResult.from_wire(payload)


def _error_message(exc: HTTPError) -> str:
    try:
        payload = json.loads(exc.read().decode("utf-8"))
    except Exception:
        payload = None
    if isinstance(payload, dict) and payload.get("error"):
        return str(payload["error"])
    return f"Failed to generate images (HTTP {exc.code})"
