"""Stateless HTTP proxy in front of the generation provider.

Endpoints:
  GET  /healthz
  POST /api/generate   {prompt, referenceImages, count?, apiKey?}
"""

from __future__ import annotations

import json
import sys
import time
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Mapping
from urllib.parse import urlparse

from .credentials import credential_from_env
from .providers.base import MAX_BATCH_COUNT, BatchRequest, GenerationProvider, ReferenceImage

DEFAULT_COUNT = 5


def _json_dumps(obj: Any) -> bytes:
    return (json.dumps(obj) + "\n").encode("utf-8")


def _log(msg: str) -> None:
    sys.stderr.write(msg + "\n")


def handle_generate(payload: Any, provider: GenerationProvider) -> tuple[int, dict[str, Any]]:
    if not isinstance(payload, Mapping):
        return HTTPStatus.BAD_REQUEST, {"error": "Request body must be a JSON object"}
    prompt = payload.get("prompt")
    raw_refs = payload.get("referenceImages")
    if not isinstance(prompt, str) or not prompt.strip() or not isinstance(raw_refs, list) or not raw_refs:
        return HTTPStatus.BAD_REQUEST, {"error": "Prompt and at least one reference image are required"}
    try:
        references = [ReferenceImage.from_wire(item) for item in raw_refs if isinstance(item, Mapping)]
    except ValueError as exc:
        return HTTPStatus.BAD_REQUEST, {"error": f"Invalid reference image: {exc}"}
    if len(references) != len(raw_refs):
        return HTTPStatus.BAD_REQUEST, {"error": "Invalid reference image entry"}
    try:
        count = int(payload.get("count", DEFAULT_COUNT))
    except (TypeError, ValueError, OverflowError):
        return HTTPStatus.BAD_REQUEST, {"error": "count must be an integer"}
    if not 1 <= count <= MAX_BATCH_COUNT:
        return HTTPStatus.BAD_REQUEST, {"error": f"count must be between 1 and {MAX_BATCH_COUNT}"}

    api_key = payload.get("apiKey")
    credential = api_key.strip() if isinstance(api_key, str) and api_key.strip() else credential_from_env()
    if not credential:
        return HTTPStatus.UNAUTHORIZED, {"error": "API key is required"}

    model = payload.get("model")
    request = BatchRequest(
        prompt=prompt,
        reference_images=references,
        count=count,
        credential=credential,
        model=model if isinstance(model, str) and model else None,
    )
    try:
        result = provider.generate_batch(request)
    except Exception as exc:
        _log(f"API Error: {exc}")
        return HTTPStatus.INTERNAL_SERVER_ERROR, {"error": str(exc) or "Internal server error"}
    for error in result.errors:
        _log(f"Error generating image {error.index}: {error.message}")
    return HTTPStatus.OK, result.to_wire()


class _Handler(BaseHTTPRequestHandler):
    server_version = "stylebranch/0"

    def _send_json(self, status: int, payload: Any) -> None:
        body = _json_dumps(payload)
        self.send_response(status)
        self.send_header("Content-Type", "application/json; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Access-Control-Allow-Origin", "*")
        self.send_header("Access-Control-Allow-Headers", "Content-Type")
        self.send_header("Access-Control-Allow-Methods", "GET, POST, OPTIONS")
        self.end_headers()
        self.wfile.write(body)

    def _read_json_body(self) -> Any:
        try:
            length = int(self.headers.get("Content-Length", "0"))
        except ValueError:
            return None
        if length <= 0:
            return None
        raw = self.rfile.read(length)
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return None

    def log_message(self, format: str, *args: Any) -> None:  # noqa: A002 (BaseHTTPRequestHandler API)
        if getattr(self.server, "quiet", False):
            return
        _log(f"{self.address_string()} - {format % args}")

    def do_OPTIONS(self) -> None:  # noqa: N802 (BaseHTTPRequestHandler API)
        self.send_response(HTTPStatus.NO_CONTENT)
        self.send_header("Access-Control-Allow-Origin", "*")
        self.send_header("Access-Control-Allow-Headers", "Content-Type")
        self.send_header("Access-Control-Allow-Methods", "GET, POST, OPTIONS")
        self.end_headers()

    def do_GET(self) -> None:  # noqa: N802 (BaseHTTPRequestHandler API)
        if urlparse(self.path).path == "/healthz":
            self._send_json(HTTPStatus.OK, {"ok": True, "ts": int(time.time())})
            return
        self._send_json(HTTPStatus.NOT_FOUND, {"error": "not found"})

    def do_POST(self) -> None:  # noqa: N802 (BaseHTTPRequestHandler API)
        if urlparse(self.path).path != "/api/generate":
            self._send_json(HTTPStatus.NOT_FOUND, {"error": "not found"})
            return
        payload = self._read_json_body()
        if payload is None:
            self._send_json(HTTPStatus.BAD_REQUEST, {"error": "Invalid JSON body"})
            return
        started = time.monotonic()
        try:
            status, body = handle_generate(payload, self.server.provider)  # type: ignore[attr-defined]
        except Exception as exc:
            _log(f"Unhandled error in /api/generate: {exc!r}")
            status, body = HTTPStatus.INTERNAL_SERVER_ERROR, {"error": "Internal server error"}
        if not getattr(self.server, "quiet", False):
            _log(f"generate -> {int(status)} in {time.monotonic() - started:.2f}s")
        self._send_json(status, body)


def build_server(
    provider: GenerationProvider,
    host: str = "127.0.0.1",
    port: int = 8787,
    quiet: bool = False,
) -> ThreadingHTTPServer:
    server = ThreadingHTTPServer((host, port), _Handler)
    server.provider = provider  # type: ignore[attr-defined]
    server.quiet = quiet  # type: ignore[attr-defined]
    return server


def serve(provider: GenerationProvider, host: str = "127.0.0.1", port: int = 8787) -> int:
    server = build_server(provider, host, port)
    _log(f"stylebranch listening on http://{host}:{server.server_address[1]}")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()
    return 0
