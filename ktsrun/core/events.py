from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Union


@dataclass(frozen=True)
class ExecutionResult:
    exit_code: int | None
    line_count: int = 0
    truncated: bool = False
    cancelled: bool = False
    error: str | None = None
    timed_out: bool = False
    duration_s: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.error is None and not self.cancelled and self.exit_code == 0


@dataclass(frozen=True)
class RunStarted:
    entry_point_appended: bool = False


@dataclass(frozen=True)
class OutputLine:
    text: str


@dataclass(frozen=True)
class OutputTruncated:
    limit: int


@dataclass(frozen=True)
class RunFinished:
    result: ExecutionResult


OutputEvent = Union[RunStarted, OutputLine, OutputTruncated, RunFinished]
OutputSink = Callable[[OutputEvent], None]
