from __future__ import annotations

import json
import threading
from http import HTTPStatus
from urllib.error import HTTPError
from urllib.request import Request, urlopen

import pytest

from stylebranch_engine.providers.base import BatchRequest, BatchResult, SlotError
from stylebranch_engine.server import build_server, handle_generate

_REF = {"data": "AA==", "mimeType": "image/png"}


class RecordingProvider:
    name = "recording"

    def __init__(self, fail: Exception | None = None) -> None:
        self.fail = fail
        self.requests: list[BatchRequest] = []

    def generate_batch(self, request: BatchRequest) -> BatchResult:
        self.requests.append(request)
        if self.fail is not None:
            raise self.fail
        images = ["data:image/png;base64,AA==" if idx % 2 == 0 else None for idx in range(request.count)]
        errors = [SlotError(idx, "No image in response") for idx, image in enumerate(images) if image is None]
        return BatchResult(images=images, errors=errors)


@pytest.fixture(autouse=True)
def _no_env_key(monkeypatch) -> None:
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)


def test_generate_success_shape() -> None:
    provider = RecordingProvider()
    status, body = handle_generate({"prompt": "p", "referenceImages": [_REF], "count": 3, "apiKey": "k"}, provider)

    assert status == HTTPStatus.OK
    assert body == {
        "images": ["data:image/png;base64,AA==", None, "data:image/png;base64,AA=="],
        "errors": [{"index": 1, "error": "No image in response"}],
    }
    assert provider.requests[0].credential == "k"
    assert provider.requests[0].reference_images[0].data == b"\x00"


@pytest.mark.parametrize(
    "payload",
    [
        [],
        {"referenceImages": [_REF], "apiKey": "k"},
        {"prompt": "p", "apiKey": "k"},
        {"prompt": "p", "referenceImages": [], "apiKey": "k"},
        {"prompt": "p", "referenceImages": [{"mimeType": "image/png"}], "apiKey": "k"},
        {"prompt": "p", "referenceImages": [_REF], "count": 0, "apiKey": "k"},
        {"prompt": "p", "referenceImages": [_REF], "count": 11, "apiKey": "k"},
        {"prompt": "p", "referenceImages": [_REF], "count": "many", "apiKey": "k"},
        {"prompt": "p", "referenceImages": [_REF], "count": float("inf"), "apiKey": "k"},
    ],
)
def test_generate_rejects_bad_requests(payload) -> None:
    provider = RecordingProvider()
    status, body = handle_generate(payload, provider)
    assert status == HTTPStatus.BAD_REQUEST
    assert body["error"]
    assert provider.requests == []


def test_generate_requires_credential(monkeypatch) -> None:
    provider = RecordingProvider()
    status, _ = handle_generate({"prompt": "p", "referenceImages": [_REF]}, provider)
    assert status == HTTPStatus.UNAUTHORIZED

    monkeypatch.setenv("GEMINI_API_KEY", "env-key")
    status, _ = handle_generate({"prompt": "p", "referenceImages": [_REF]}, provider)
    assert status == HTTPStatus.OK
    assert provider.requests[0].credential == "env-key"
    assert provider.requests[0].count == 5


def test_generate_provider_failure_is_500() -> None:
    status, body = handle_generate(
        {"prompt": "p", "referenceImages": [_REF], "apiKey": "k"},
        RecordingProvider(fail=RuntimeError("upstream exploded")),
    )
    assert status == HTTPStatus.INTERNAL_SERVER_ERROR
    assert body == {"error": "upstream exploded"}


def _post(url: str, data: bytes) -> tuple[int, dict]:
    req = Request(url, data=data, headers={"Content-Type": "application/json"}, method="POST")
    try:
        with urlopen(req, timeout=5) as response:
            return response.status, json.loads(response.read().decode("utf-8"))
    except HTTPError as exc:
        return exc.code, json.loads(exc.read().decode("utf-8"))


def test_http_roundtrip() -> None:
    server = build_server(RecordingProvider(), port=0, quiet=True)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    base = f"http://127.0.0.1:{server.server_address[1]}"
    try:
        with urlopen(f"{base}/healthz", timeout=5) as response:
            assert json.loads(response.read().decode("utf-8"))["ok"] is True

        status, body = _post(f"{base}/api/generate", json.dumps({"prompt": "p", "referenceImages": [_REF], "count": 2, "apiKey": "k"}).encode("utf-8"))
        assert status == 200
        assert body["images"][1] is None

        status, body = _post(f"{base}/api/generate", b"{not json")
        assert status == 400
        assert body == {"error": "Invalid JSON body"}
    finally:
        server.shutdown()
        server.server_close()


class BrokenProvider:
    name = "broken"

    def generate_batch(self, request: BatchRequest):
        return None


def test_http_always_answers() -> None:
    server = build_server(BrokenProvider(), port=0, quiet=True)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    url = f"http://127.0.0.1:{server.server_address[1]}/api/generate"
    try:
        status, body = _post(url, b'{"prompt": "p", "referenceImages": [{"data": "AA=="}], "count": 1e400, "apiKey": "k"}')
        assert status == 400
        assert body == {"error": "count must be an integer"}

        status, body = _post(url, json.dumps({"prompt": "p", "referenceImages": [_REF], "apiKey": "k"}).encode("utf-8"))
        assert status == 500
        assert body == {"error": "Internal server error"}
    finally:
        server.shutdown()
        server.server_close()
