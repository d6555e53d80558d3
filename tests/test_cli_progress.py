from __future__ import annotations

import time

import pytest

from stylebranch_engine.cli_progress import ProgressTicker, format_duration


class FakeStream:
    def __init__(self, is_tty: bool) -> None:
        self._isatty = is_tty
        self.buffer: list[str] = []

    def isatty(self) -> bool:  # pragma: no cover - signature mimic
        return self._isatty

    def write(self, data: str) -> None:
        self.buffer.append(data)

    def flush(self) -> None:  # pragma: no cover - no-op for tests
        return None

    @property
    def text(self) -> str:
        return "".join(self.buffer)


def test_format_duration() -> None:
    assert format_duration(7) == "7s"
    assert format_duration(125) == "2m 05s"
    assert format_duration(-3) == "0s"


def test_ticker_non_tty_prints_once() -> None:
    stream = FakeStream(is_tty=False)
    ticker = ProgressTicker("Generating images", stream=stream, interval_s=0.01)
    ticker.start_ticking()
    ticker.stop()
    output = stream.text
    lines = [line for line in output.splitlines() if line.strip()]
    assert len(lines) == 2
    assert "Generating images" in lines[0]
    assert "Done in" in lines[1]
    assert "\r" not in output


def test_ticker_tty_updates_in_place() -> None:
    stream = FakeStream(is_tty=True)
    ticker = ProgressTicker("Refining image", stream=stream, interval_s=0.01)
    ticker.start_ticking()
    time.sleep(0.3)
    ticker.stop()
    output = stream.text
    assert "\r" in output
    assert "\x1b[K" in output
    assert output.count("Done in") == 1


def test_ticker_context_manager_reports_failure() -> None:
    stream = FakeStream(is_tty=False)
    with pytest.raises(RuntimeError):
        with ProgressTicker("Refining image", stream=stream):
            raise RuntimeError("boom")
    assert "Refining image failed" in stream.text
