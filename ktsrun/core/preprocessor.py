"""Entry-point detection for Kotlin scripts.

Kotlin scripts only run top-level statements, so a script that declares
``fun main()`` without calling it prints nothing. :class:`ScriptPreprocessor`
appends the call when no top-level invocation exists.

Detection is a text heuristic, not a tokenizer: comments and string
literals are blanked out, then every ``main()`` call is checked for brace
depth zero. Unbalanced braces never raise; a call at negative depth counts
as nested, so pathological input may end up with a second invocation.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

AUTO_CALL_COMMENT = "// Auto-generated: Call the main function"

# Order matters: the first alternative that matches at a position wins, so a
# "//" inside a string literal is consumed as part of the string.
_SCRUB_RE = re.compile(
    r"""
      (?P<line_comment>//[^\n]*)
    | (?P<block_comment>/\*.*?(?:\*/|\Z))
    | (?P<raw_string>\"\"\".*?(?:\"\"\"|\Z))
    | (?P<string>"(?:[^"\\\n]|\\.)*")
    | (?P<char>'(?:[^'\\\n]|\\.)*')
    """,
    re.DOTALL | re.VERBOSE,
)


@dataclass(frozen=True)
class PreparedScript:
    text: str
    entry_point_appended: bool = False


def scrub_source(source: str) -> str:
    """Blank out comments and literals, keeping everything else in place."""

    def neutral(match: re.Match[str]) -> str:
        if match.lastgroup in {"line_comment", "block_comment"}:
            # Keep newlines so later positions stay on the same line.
            return "\n" * match.group(0).count("\n") or " "
        return '""'

    return _SCRUB_RE.sub(neutral, source)


class ScriptPreprocessor:
    def __init__(self, entry_point: str = "main") -> None:
        name = re.escape(entry_point)
        self.entry_point = entry_point
        self._declaration_re = re.compile(rf"\bfun\s+{name}\s*\(")
        self._declaration_full_re = re.compile(rf"\bfun\s+{name}\s*\([^)]*\)")
        self._call_re = re.compile(rf"(?<![\w.]){name}\s*\(\s*\)")

    def prepare(self, source: str) -> PreparedScript:
        if not source or not source.strip():
            return PreparedScript(source)

        scrubbed = scrub_source(source)
        if not self._declaration_re.search(scrubbed):
            return PreparedScript(source)

        if self._has_top_level_call(scrubbed):
            return PreparedScript(source)

        suffix = f"\n\n{AUTO_CALL_COMMENT}\n{self.entry_point}()\n"
        return PreparedScript(source + suffix, entry_point_appended=True)

    def _has_top_level_call(self, scrubbed: str) -> bool:
        cleaned = self._declaration_full_re.sub("", scrubbed)
        depth = 0
        cursor = 0
        for match in self._call_re.finditer(cleaned):
            depth += brace_delta(cleaned, cursor, match.start())
            cursor = match.start()
            if depth == 0:
                return True
        return False


def brace_delta(text: str, start: int, end: int) -> int:
    segment = text[start:end]
    return segment.count("{") - segment.count("}")


_DEFAULT = ScriptPreprocessor()


def prepare_script(source: str) -> PreparedScript:
    return _DEFAULT.prepare(source)
