"""Intent schema for session commands."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class Intent:
    action: str
    raw: str
    text: str | None = None
    command_args: dict[str, Any] = field(default_factory=dict)
