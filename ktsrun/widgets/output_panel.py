from __future__ import annotations

from textual import events
from textual.widgets import Log

from ktsrun.core.error_locations import find_error_location
from ktsrun.core.events import ExecutionResult
from ktsrun.core.messages import NavigateToErrorRequest


class ScriptOutputLog(Log):
    """Live script output; clicking a ``file.kts:L:C:`` line jumps to it."""

    def begin_run(self, *, entry_point_appended: bool, entry_point: str = "main") -> None:
        self.clear()
        if entry_point_appended:
            self.write_line(
                f"[Note: {entry_point}() function detected and will be called automatically]"
            )
            self.write_line("")

    def append_line(self, text: str) -> None:
        self.write_line(text)

    def show_truncated(self, limit: int) -> None:
        self.write_line("")
        self.write_line(
            f"[Output limit reached: {limit} lines. Script continues running...]"
        )

    def show_finished(self, result: ExecutionResult) -> None:
        if result.timed_out:
            self.write_line("")
            self.write_line(f"[{result.error}]")
        elif result.cancelled:
            self.write_line("")
            self.write_line("--- Script stopped by user ---")
        elif result.error:
            self.write_line("")
            self.write_line(f"Error: {result.error}")
        elif result.line_count == 0 and result.exit_code == 0:
            self.write_line("[Script completed with no output]")

    def on_click(self, event: events.Click) -> None:
        offset = event.get_content_offset(self)
        if offset is None:
            return
        index = self.scroll_offset.y + offset.y
        lines = self.lines
        if not 0 <= index < len(lines):
            return
        location = find_error_location(lines[index])
        if location is not None:
            self.post_message(NavigateToErrorRequest(location))
