"""Shared slash-command metadata for parse + session handling."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class CommandSpec:
    command: str
    action: str
    arg_kind: str
    help: str = ""


TEXT_COMMANDS: tuple[CommandSpec, ...] = (
    CommandSpec("generate", "generate", "text", "generate a new batch (optionally with new content)"),
    CommandSpec("content", "set_content", "text", "set the content to visualize"),
    CommandSpec("refine", "refine", "text", "refine the selected image with an instruction"),
    CommandSpec("apikey", "set_api_key", "text", "store the Gemini API key"),
)

SINGLE_ARG_COMMANDS: tuple[CommandSpec, ...] = (
    CommandSpec("select", "select", "single", "toggle selection of an image by id prefix"),
    CommandSpec("preview", "open_preview", "single", "open the preview of an image"),
    CommandSpec("key", "key", "single", "send a key (ArrowLeft, ArrowRight, Escape)"),
    CommandSpec("count", "set_count", "single", "images per initial generation (4-10)"),
    CommandSpec("unref", "remove_reference", "single", "remove a reference image by id or name"),
    CommandSpec("export", "export", "single", "write the forest to an HTML file"),
)

MULTI_PATH_COMMANDS: tuple[CommandSpec, ...] = (
    CommandSpec("ref", "add_references", "multi_path", "add reference images"),
    CommandSpec("save", "save", "multi_path", "save images: /save <dir> [id]"),
)

NO_ARG_COMMANDS: tuple[CommandSpec, ...] = (
    CommandSpec("left", "navigate_left", "none", "select the previous sibling"),
    CommandSpec("prev", "navigate_left", "none"),
    CommandSpec("right", "navigate_right", "none", "select the next sibling"),
    CommandSpec("next", "navigate_right", "none"),
    CommandSpec("close", "close_preview", "none", "close the preview"),
    CommandSpec("tree", "show_tree", "none", "print the refinement tree"),
    CommandSpec("refs", "list_references", "none", "list reference images"),
    CommandSpec("apikey_clear", "clear_api_key", "none", "forget the stored API key"),
    CommandSpec("help", "help", "none", "show this help"),
)

TEXT_COMMAND_MAP = {spec.command: spec.action for spec in TEXT_COMMANDS}
SINGLE_ARG_COMMAND_MAP = {spec.command: spec.action for spec in SINGLE_ARG_COMMANDS}
MULTI_PATH_COMMAND_MAP = {spec.command: spec.action for spec in MULTI_PATH_COMMANDS}
NO_ARG_COMMAND_MAP = {spec.command: spec.action for spec in NO_ARG_COMMANDS}


def help_lines() -> list[str]:
    lines: list[str] = []
    for spec in TEXT_COMMANDS + SINGLE_ARG_COMMANDS + MULTI_PATH_COMMANDS + NO_ARG_COMMANDS:
        if spec.help:
            lines.append(f"/{spec.command:<13} {spec.help}")
    return lines
