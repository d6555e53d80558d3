"""Terminal progress line shown while a batch is in flight."""

from __future__ import annotations

import os
import shutil
import sys
import threading
import time
from typing import TextIO

_BOLD = "\x1b[1m"
_GREY = "\x1b[38;2;150;157;165m"
_RESET = "\x1b[0m"


def format_duration(seconds: int) -> str:
    minutes, secs = divmod(max(0, seconds), 60)
    if minutes:
        return f"{minutes}m {secs:02d}s"
    return f"{secs}s"


def progress_line(label: str, start: float) -> str:
    elapsed = int(time.monotonic() - start)
    return f"• {label} ({format_duration(elapsed)})"


class ProgressTicker:
    """Redraws one status line in place on a TTY, prints once otherwise."""

    def __init__(self, label: str, stream: TextIO | None = None, interval_s: float = 1.0) -> None:
        self.label = label
        self.stream = stream or sys.stdout
        self.interval_s = max(0.2, interval_s)
        self.start = time.monotonic()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._tty = bool(getattr(self.stream, "isatty", lambda: False)())

    def __enter__(self) -> "ProgressTicker":
        self.start_ticking()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop(summary=None if exc_type is None else f"{self.label} failed")

    def start_ticking(self) -> None:
        self.start = time.monotonic()
        if not self._tty:
            self.stream.write(f"{_BOLD}{progress_line(self.label, self.start)}{_RESET}\n")
            self.stream.flush()
            return
        self._redraw()
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def stop(self, summary: str | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        elapsed = format_duration(int(time.monotonic() - self.start))
        text = summary or f"Done in {elapsed}"
        line = f"{_GREY}{_separator_line(text, _terminal_width(self.stream, 100))}{_RESET}"
        prefix = "\r" if self._tty else ""
        suffix = "\033[K\n" if self._tty else "\n"
        self.stream.write(f"{prefix}{line}{suffix}")
        self.stream.flush()

    def _run(self) -> None:
        while not self._stop.wait(self.interval_s):
            self._redraw()

    def _redraw(self) -> None:
        self.stream.write(f"\r{_BOLD}{progress_line(self.label, self.start)}{_RESET}\033[K")
        self.stream.flush()


def _separator_line(label: str, width: int) -> str:
    content = f" {label} "
    if width <= len(content) + 2:
        return content.strip()
    remaining = width - len(content)
    left = remaining // 2
    return f"{'─' * left}{content}{'─' * (remaining - left)}"


def _terminal_width(stream: TextIO | None, fallback: int) -> int:
    if stream and hasattr(stream, "fileno"):
        try:
            return os.get_terminal_size(stream.fileno()).columns
        except (OSError, ValueError):
            pass
    return shutil.get_terminal_size(fallback=(fallback, 20)).columns
