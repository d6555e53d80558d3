"""Interactive session loop."""

from __future__ import annotations

from pathlib import Path

from ..cli_progress import ProgressTicker
from ..credentials import mask_credential
from ..engine import BatchOutcome, StyleSession
from ..errors import StaleTargetError, StyleBranchError, ValidationError
from ..runs.export import render_text_tree
from ..session.navigation import LEFT, RIGHT
from ..tree.ops import iter_records
from .command_registry import help_lines
from .intent_parser import parse_intent
from .intent_schema import Intent


class SessionLoop:
    def __init__(self, session: StyleSession, out_dir: Path | None = None) -> None:
        self.session = session
        self.out_dir = out_dir or Path("outputs")

    def run(self) -> None:
        print("Stylebranch session started. Type /help for commands.")
        while True:
            try:
                line = input("> ")
            except (EOFError, KeyboardInterrupt):
                break
            self.handle_line(line)

    def handle_line(self, line: str) -> None:
        intent = parse_intent(line, has_selection=self.session.state.selected_id is not None)
        try:
            self._dispatch(intent)
        except ValidationError as exc:
            print(str(exc))
        except StaleTargetError as exc:
            print(str(exc))
        except StyleBranchError as exc:
            print(f"Generation failed: {exc}")

    def resolve_id(self, prefix: str) -> str | None:
        prefix = prefix.strip()
        if not prefix:
            return None
        matches = [record.id for _, record in iter_records(self.session.forest) if record.id.startswith(prefix)]
        if len(matches) == 1:
            return matches[0]
        if len(matches) > 1:
            print(f"Ambiguous id prefix: {prefix}")
        else:
            print(f"No image matches {prefix}")
        return None

    def _dispatch(self, intent: Intent) -> None:
        action = intent.action
        session = self.session
        if action == "noop":
            return
        if action == "help":
            print("\n".join(help_lines()))
            return
        if action == "unknown":
            print(f"Unknown command: /{intent.command_args.get('command')}")
            return
        if action == "set_content":
            session.content = intent.text or ""
            print("Content updated.")
            return
        if action == "set_count":
            value = intent.command_args.get("value") or ""
            if not value.isdigit():
                print("/count requires a number")
                return
            session.generation_count = int(value)
            print(f"Images per generation: {session.generation_count}")
            return
        if action == "generate":
            count = session.generation_count
            with ProgressTicker(f"Generating {count} images"):
                outcome = session.generate(intent.text or None)
            self._report(outcome)
            return
        if action == "refine":
            target = session.state.selected_id
            if target is None:
                print("Select an image to refine first (/select <id>).")
                return
            with ProgressTicker("Refining image"):
                outcome = session.refine(intent.text or "", target)
            self._report(outcome)
            return
        if action == "select":
            record_id = self.resolve_id(intent.command_args.get("value") or "")
            if record_id:
                session.select(record_id)
                self._print_selection()
            return
        if action in {"navigate_left", "navigate_right"}:
            session.navigate(LEFT if action == "navigate_left" else RIGHT)
            self._print_selection()
            return
        if action == "key":
            session.handle_key(intent.command_args.get("value") or "")
            self._print_selection()
            return
        if action == "open_preview":
            value = intent.command_args.get("value") or ""
            record_id = self.resolve_id(value) if value else session.state.selected_id
            if record_id:
                session.open_preview(record_id)
                print(f"Previewing {record_id[:8]} (navigation paused, /close to resume)")
            return
        if action == "close_preview":
            session.close_preview()
            return
        if action == "show_tree":
            summary = session.summary()
            print(f"{summary['records']} image(s), {summary['roots']} root(s), epoch {summary['epoch']}")
            print(render_text_tree(session.state) or "(no images yet)")
            return
        if action == "add_references":
            paths = [Path(p).expanduser() for p in intent.command_args.get("paths", [])]
            added, warnings = session.references.add_paths(paths)
            for warning in warnings:
                print(warning)
            print(f"Added {len(added)} reference(s); {len(session.references.items)}/{session.references.max_images} in use")
            return
        if action == "remove_reference":
            removed = session.references.remove(intent.command_args.get("value") or "")
            print("Reference removed." if removed else "No such reference.")
            return
        if action == "list_references":
            for item in session.references.items:
                print(f"{item.id[:8]} {item.name} ({item.image.mime_type})")
            return
        if action == "save":
            self._save(intent.command_args.get("paths", []))
            return
        if action == "export":
            out_path = Path(intent.command_args.get("value") or self.out_dir / "export.html")
            print(f"Exported to {session.export(out_path)}")
            return
        if action == "set_api_key":
            session.credentials.set(intent.text or "")
            print(f"API key: {mask_credential(session.credentials.get())}")
            return
        if action == "clear_api_key":
            session.credentials.clear()
            print("API key cleared.")
            return
        print(f"Unhandled action: {action}")

    def _save(self, args: list[str]) -> None:
        out_dir = Path(args[0]).expanduser() if args else self.out_dir
        if len(args) > 1:
            record_id = self.resolve_id(args[1])
            targets = [record_id] if record_id else []
        elif self.session.state.selected_id:
            targets = [self.session.state.selected_id]
        else:
            targets = [record.id for record in self.session.forest]
        for record_id in targets:
            path = self.session.save(record_id, out_dir)
            if path:
                print(f"Saved {path}")

    def _print_selection(self) -> None:
        selected = self.session.state.selected_id
        print(f"Selected {selected[:8]}" if selected else "Selection cleared.")

    def _report(self, outcome: BatchOutcome) -> None:
        if outcome.discarded:
            print("Result discarded: the forest was replaced while the request was in flight.")
            return
        print(f"Generated {len(outcome.records)} image(s).")
        for error in outcome.errors:
            print(f"  slot {error.index + 1} failed: {error.message}")
        for warning in outcome.warnings:
            print(f"  warning: {warning}")
        print(render_text_tree(self.session.state))
