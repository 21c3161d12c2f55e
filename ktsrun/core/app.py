from __future__ import annotations

from pathlib import Path

from textual import on
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.widgets import Footer

from ktsrun import __version__
from ktsrun.core.config import RuntimeConfig, get_runtime_config
from ktsrun.core.controller import ExecutionController
from ktsrun.core.errors import ScriptValidationError, format_error
from ktsrun.core.events import (
    OutputEvent,
    OutputLine,
    OutputTruncated,
    RunFinished,
    RunStarted,
)
from ktsrun.core.logging import get_logger, log_event
from ktsrun.core.messages import (
    ExecutionEventPosted,
    NavigateToErrorRequest,
    RunScriptRequest,
    StopScriptRequest,
)
from ktsrun.widgets import DEFAULT_SCRIPT, RunToolbar, ScriptEditor, ScriptOutputLog

logger = get_logger(__name__)


class ScriptRunnerApp(App):
    TITLE = "Kotlin Script Runner"
    CSS_PATH = Path(__file__).parent.parent / "styles" / "index.tcss"

    BINDINGS = [
        Binding("f5", "run_script", "Run", show=True),
        Binding("f6", "stop_script", "Stop", show=True),
        Binding("ctrl+q", "quit", "Quit", show=True),
    ]

    def __init__(
        self,
        *,
        config: RuntimeConfig | None = None,
        initial_script: str | None = None,
        script_name: str | None = None,
    ) -> None:
        super().__init__()
        self.config = config or get_runtime_config()
        self._initial_script = DEFAULT_SCRIPT if initial_script is None else initial_script
        self._script_name = script_name
        self.controller = ExecutionController(self._deliver_event, self.config)

    def compose(self) -> ComposeResult:
        with Vertical(id="app_main_container"):
            yield RunToolbar(id="toolbar")
            yield Horizontal(
                ScriptEditor(self._initial_script, id="script_editor"),
                ScriptOutputLog(
                    id="script_output",
                    max_lines=self.config.max_output_lines + 16,
                ),
                id="main_pane",
            )
        yield Footer()

    def on_mount(self) -> None:
        self.sub_title = f"v{__version__}"
        editor = self.query_one(ScriptEditor)
        editor.border_title = self._script_name or "Kotlin Script Editor"
        self.query_one(ScriptOutputLog).border_title = "Output"
        editor.focus()

    def on_unmount(self) -> None:
        self.controller.shutdown()

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def action_run_script(self) -> None:
        source = self.query_one(ScriptEditor).text
        try:
            accepted = self.controller.start(source)
        except ScriptValidationError as exc:
            message, severity = format_error(exc)
            self.notify(message, title="Cannot run script", severity=severity)
            return

        if not accepted:
            self.notify(
                "A script is already running. Please stop it first.",
                title="Script running",
                severity="warning",
            )
            return
        self.query_one(RunToolbar).show_running()

    def action_stop_script(self) -> None:
        if self.controller.cancel():
            self.query_one(RunToolbar).show_stopping()

    @on(RunScriptRequest)
    def handle_run_request(self, _: RunScriptRequest) -> None:
        self.action_run_script()

    @on(StopScriptRequest)
    def handle_stop_request(self, _: StopScriptRequest) -> None:
        self.action_stop_script()

    @on(NavigateToErrorRequest)
    def handle_navigation(self, event: NavigateToErrorRequest) -> None:
        location = event.location
        moved = self.query_one(ScriptEditor).goto_location(location.line, location.column)
        log_event(logger, "navigate_error", line=location.line, column=location.column, moved=moved)

    # ------------------------------------------------------------------
    # Execution events
    # ------------------------------------------------------------------

    def _deliver_event(self, event: OutputEvent) -> None:
        # Called on the controller's dispatcher thread.
        self.post_message(ExecutionEventPosted(event))

    @on(ExecutionEventPosted)
    def handle_execution_event(self, message: ExecutionEventPosted) -> None:
        output = self.query_one(ScriptOutputLog)
        event = message.event
        if isinstance(event, OutputLine):
            output.append_line(event.text)
        elif isinstance(event, RunStarted):
            output.begin_run(
                entry_point_appended=event.entry_point_appended,
                entry_point=self.config.entry_point,
            )
        elif isinstance(event, OutputTruncated):
            output.show_truncated(event.limit)
        elif isinstance(event, RunFinished):
            output.show_finished(event.result)
            self.query_one(RunToolbar).show_result(event.result)
