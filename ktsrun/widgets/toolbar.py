from __future__ import annotations

from textual.app import ComposeResult
from textual.containers import Horizontal
from textual.widgets import Button, Label

from ktsrun.core.events import ExecutionResult
from ktsrun.core.messages import RunScriptRequest, StopScriptRequest

_TONES = ("-idle", "-running", "-success", "-warning", "-error")


class RunToolbar(Horizontal):
    """Run/Stop buttons plus the status and exit code indicators."""

    def compose(self) -> ComposeResult:
        yield Button("▶ Run", id="run_button", variant="success")
        yield Button("⬛ Stop", id="stop_button", variant="error", disabled=True)
        yield Label("● Idle", id="run_status", classes="-idle")
        yield Label("", id="exit_code")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        event.stop()
        if event.button.id == "run_button":
            self.post_message(RunScriptRequest())
        elif event.button.id == "stop_button":
            self.post_message(StopScriptRequest())

    def show_running(self) -> None:
        self._set_buttons(running=True)
        self._set_label("#run_status", "● Running", "-running")
        self._set_label("#exit_code", "", "-idle")

    def show_stopping(self) -> None:
        self.query_one("#stop_button", Button).disabled = True
        self._set_label("#run_status", "● Stopping", "-warning")

    def show_result(self, result: ExecutionResult) -> None:
        self._set_buttons(running=False)
        if result.timed_out:
            self._set_label("#run_status", "● Timed out", "-warning")
            self._set_label("#exit_code", "⚠ Stopped", "-warning")
        elif result.cancelled:
            self._set_label("#run_status", "● Stopped", "-warning")
            self._set_label("#exit_code", "⚠ Stopped", "-warning")
        elif result.error:
            self._set_label("#run_status", "● Error", "-error")
            self._set_label("#exit_code", "✗ Error", "-error")
        elif result.exit_code == 0:
            self._set_label("#run_status", "● Idle", "-idle")
            self._set_label("#exit_code", "✓ Exit Code: 0", "-success")
        else:
            self._set_label("#run_status", "● Idle", "-idle")
            self._set_label("#exit_code", f"✗ Exit Code: {result.exit_code}", "-error")

    def _set_buttons(self, *, running: bool) -> None:
        self.query_one("#run_button", Button).disabled = running
        self.query_one("#stop_button", Button).disabled = not running

    def _set_label(self, selector: str, text: str, tone: str) -> None:
        label = self.query_one(selector, Label)
        label.update(text)
        label.remove_class(*_TONES)
        label.add_class(tone)
