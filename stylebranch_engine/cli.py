"""Stylebranch CLI entrypoints."""

from __future__ import annotations

import argparse
import sys
import uuid
from pathlib import Path

from .chat.loop import SessionLoop
from .cli_progress import ProgressTicker
from .credentials import CredentialStore
from .engine import DEFAULT_GENERATION_COUNT, StyleSession
from .errors import StyleBranchError
from .providers import default_registry
from .providers.base import GenerationProvider
from .providers.remote import DEFAULT_ENDPOINT
from .references import ReferenceSet, scan_reference_dir
from .runs.events import EventWriter
from .server import serve
from .utils import getenv_flag, load_dotenv


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="stylebranch", description="Reference-style image generation with refinement trees")
    sub = parser.add_subparsers(dest="command")

    serve_cmd = sub.add_parser("serve", help="Run the /api/generate proxy")
    serve_cmd.add_argument("--host", default="127.0.0.1")
    serve_cmd.add_argument("--port", type=int, default=8787)
    serve_cmd.add_argument("--provider", default="gemini", choices=["gemini", "dryrun"])

    session = sub.add_parser("session", help="Interactive generate/refine session")
    session.add_argument("--out", default="outputs", help="Directory for saved images and exports")
    session.add_argument("--events", help="Path to events.jsonl")
    session.add_argument("--ref", action="append", default=[], help="Reference image (repeatable)")
    session.add_argument("--references-dir", dest="references_dir", help="Load default references from a directory")
    _add_provider_args(session)

    generate = sub.add_parser("generate", help="Single batch generation")
    generate.add_argument("--content", default="", help="Content to visualize")
    generate.add_argument("--ref", action="append", default=[], required=True, help="Reference image (repeatable)")
    generate.add_argument("--out", required=True)
    generate.add_argument("--events")
    _add_provider_args(generate)

    return parser


def _add_provider_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--provider", default="gemini", choices=default_registry().list())
    parser.add_argument("--endpoint", default=DEFAULT_ENDPOINT, help="Endpoint for --provider remote")
    parser.add_argument("--image-model", dest="image_model")
    parser.add_argument("--count", type=int, default=DEFAULT_GENERATION_COUNT)


def _resolve_provider(name: str, endpoint: str | None = None) -> GenerationProvider:
    provider = default_registry(endpoint).get(name)
    if provider is None:
        raise SystemExit(f"Unknown provider: {name}")
    return provider


def _events_writer(args: argparse.Namespace, out_dir: Path, session_id: str) -> EventWriter:
    if args.events:
        return EventWriter(Path(args.events), session_id)
    if not getenv_flag("STYLEBRANCH_EVENTS", True):
        return EventWriter(None, session_id)
    return EventWriter(out_dir / "events.jsonl", session_id)


def _build_session(args: argparse.Namespace, out_dir: Path) -> StyleSession:
    references = ReferenceSet()
    paths = [Path(p).expanduser() for p in args.ref]
    if getattr(args, "references_dir", None):
        paths = scan_reference_dir(Path(args.references_dir).expanduser()) + paths
    _, warnings = references.add_paths(paths)
    for warning in warnings:
        print(warning)
    session_id = uuid.uuid4().hex[:12]
    return StyleSession(
        _resolve_provider(args.provider, args.endpoint),
        credentials=CredentialStore(),
        events=_events_writer(args, out_dir, session_id),
        references=references,
        generation_count=args.count,
        model=args.image_model,
        session_id=session_id,
    )


def _handle_serve(args: argparse.Namespace) -> int:
    return serve(_resolve_provider(args.provider), host=args.host, port=args.port)


def _handle_session(args: argparse.Namespace) -> int:
    out_dir = Path(args.out)
    session = _build_session(args, out_dir)
    SessionLoop(session, out_dir).run()
    return 0


def _handle_generate(args: argparse.Namespace) -> int:
    out_dir = Path(args.out)
    session = _build_session(args, out_dir)
    try:
        with ProgressTicker(f"Generating {args.count} images"):
            outcome = session.generate(args.content, args.count)
    except StyleBranchError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    for error in outcome.errors:
        print(f"Slot {error.index + 1} failed: {error.message}", file=sys.stderr)
    for record in outcome.records:
        print(session.save(record.id, out_dir))
    session.export(out_dir / "export.html")
    return 0 if outcome.records else 1


def main() -> None:
    load_dotenv()
    parser = _build_parser()
    args = parser.parse_args()
    if args.command == "serve":
        raise SystemExit(_handle_serve(args))
    if args.command == "session":
        raise SystemExit(_handle_session(args))
    if args.command == "generate":
        raise SystemExit(_handle_generate(args))
    parser.print_help()
    raise SystemExit(1)


if __name__ == "__main__":
    main()
