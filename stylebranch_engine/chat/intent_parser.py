"""Parse user input into structured intents."""

from __future__ import annotations

import re
import shlex

from .command_registry import (
    MULTI_PATH_COMMAND_MAP,
    NO_ARG_COMMAND_MAP,
    SINGLE_ARG_COMMAND_MAP,
    TEXT_COMMAND_MAP,
)
from .intent_schema import Intent

_SLASH_PATTERN = re.compile(r"^/(\w+)(?:\s+(.*))?$", re.DOTALL)


def _parse_path_args(arg: str) -> list[str]:
    """Parse one or more path args from a slash command.

    Supports quoted paths so spaces work:
      /ref "/path/with spaces/a.png" "/path/b.png"
    """
    if not arg:
        return []
    try:
        parts = shlex.split(arg)
    except ValueError:
        parts = arg.split()
    return [part for part in parts if part]


def parse_intent(text: str, *, has_selection: bool = False) -> Intent:
    raw = text.strip()
    if not raw:
        return Intent(action="noop", raw=text)
    match = _SLASH_PATTERN.match(raw)
    if match:
        command = match.group(1).lower()
        arg = (match.group(2) or "").strip()
        if command in TEXT_COMMAND_MAP:
            return Intent(action=TEXT_COMMAND_MAP[command], raw=text, text=arg)
        if command in SINGLE_ARG_COMMAND_MAP:
            parts = _parse_path_args(arg)
            value = " ".join(parts) if parts else ""
            return Intent(action=SINGLE_ARG_COMMAND_MAP[command], raw=text, command_args={"value": value})
        if command in MULTI_PATH_COMMAND_MAP:
            return Intent(action=MULTI_PATH_COMMAND_MAP[command], raw=text, command_args={"paths": _parse_path_args(arg)})
        if command in NO_ARG_COMMAND_MAP:
            return Intent(action=NO_ARG_COMMAND_MAP[command], raw=text)
        return Intent(action="unknown", raw=text, command_args={"command": command, "arg": arg})

    # Free text refines the selected image, otherwise it starts a new generation.
    if has_selection:
        return Intent(action="refine", raw=text, text=raw)
    return Intent(action="generate", raw=text, text=raw)
