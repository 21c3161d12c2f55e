"""Shared fixtures: run scripts with the current Python instead of kotlinc."""

from __future__ import annotations

import sys
import threading
from pathlib import Path
from typing import Callable

import pytest

from ktsrun.core.config import RuntimeConfig
from ktsrun.core.events import OutputEvent, OutputLine, RunFinished

WAIT_S = 15.0


class RecordingSink:
    def __init__(self) -> None:
        self.events: list[OutputEvent] = []
        self._cond = threading.Condition()

    def __call__(self, event: OutputEvent) -> None:
        with self._cond:
            self.events.append(event)
            self._cond.notify_all()

    def wait_for(self, predicate: Callable[[list[OutputEvent]], bool], timeout: float = WAIT_S) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: predicate(self.events), timeout=timeout)

    def wait_finished(self, count: int = 1, timeout: float = WAIT_S) -> list[RunFinished]:
        assert self.wait_for(
            lambda events: len([e for e in events if isinstance(e, RunFinished)]) >= count,
            timeout=timeout,
        ), f"no RunFinished within {timeout}s: {self.events!r}"
        return self.finished

    def wait_line(self, text: str, timeout: float = WAIT_S) -> None:
        assert self.wait_for(
            lambda events: any(isinstance(e, OutputLine) and e.text == text for e in events),
            timeout=timeout,
        ), f"line {text!r} not seen: {self.events!r}"

    @property
    def finished(self) -> list[RunFinished]:
        with self._cond:
            return [e for e in self.events if isinstance(e, RunFinished)]

    @property
    def lines(self) -> list[str]:
        with self._cond:
            return [e.text for e in self.events if isinstance(e, OutputLine)]


@pytest.fixture
def script_dir(tmp_path: Path) -> Path:
    path = tmp_path / "scripts"
    path.mkdir()
    return path


@pytest.fixture
def python_config(script_dir: Path) -> RuntimeConfig:
    return RuntimeConfig(
        interpreter=sys.executable,
        interpreter_args=["-u"],
        script_prefix="ktsrun_test_",
        script_suffix=".py",
        temp_dir=script_dir,
        run_timeout_s=None,
    )


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()
