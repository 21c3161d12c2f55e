from __future__ import annotations

import re
from dataclasses import dataclass

SOURCE_EXTENSIONS = ("kts", "kt")

ERROR_LOCATION_RE = re.compile(
    r"(?P<path>[^\s:]*\.(?:%s)):(?P<line>\d+):(?P<column>\d+):" % "|".join(SOURCE_EXTENSIONS)
)


@dataclass(frozen=True)
class ErrorLocation:
    path: str
    line: int
    column: int


def find_error_location(text: str) -> ErrorLocation | None:
    """Return the first ``file.kts:LINE:COL:`` reference in an output line."""
    match = ERROR_LOCATION_RE.search(text)
    if match is None:
        return None
    return ErrorLocation(
        path=match.group("path"),
        line=int(match.group("line")),
        column=int(match.group("column")),
    )


def resolve_position(source: str, line: int, column: int) -> tuple[int, int] | None:
    """
    Map a 1-based compiler location onto a 0-based (row, column) in source.

    Columns past the end of the line are clamped; lines outside the source
    yield None.
    """
    lines = source.split("\n")
    if line < 1 or line > len(lines):
        return None
    row = line - 1
    col = max(0, min(column - 1, len(lines[row])))
    return row, col
