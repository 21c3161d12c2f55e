from __future__ import annotations

import queue
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import Optional

from ktsrun.core.config import RuntimeConfig, get_runtime_config
from ktsrun.core.errors import ScriptValidationError
from ktsrun.core.events import (
    ExecutionResult,
    OutputEvent,
    OutputLine,
    OutputSink,
    OutputTruncated,
    RunFinished,
    RunStarted,
)
from ktsrun.core.logging import get_logger, log_event
from ktsrun.core.preprocessor import PreparedScript, ScriptPreprocessor
from ktsrun.core.session import ProcessSession
from ktsrun.core.state import RunState

logger = get_logger(__name__)

_STOP = object()


class ExecutionController:
    """Runs at most one script at a time and publishes its events."""

    def __init__(
        self,
        sink: OutputSink,
        config: RuntimeConfig | None = None,
        preprocessor: ScriptPreprocessor | None = None,
    ) -> None:
        self._sink = sink
        self._config = config or get_runtime_config()
        self._preprocessor = preprocessor or ScriptPreprocessor(
            self._config.entry_point
        )

        self._lock = threading.Lock()
        self._state = RunState.IDLE
        self._session: Optional[ProcessSession] = None
        self._cancel_requested = False
        self._timed_out = False
        self._deadline: Optional[threading.Timer] = None
        self._closed = False

        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="ktsrun-session"
        )
        self._events: queue.Queue[object] = queue.Queue()
        self._dispatcher = threading.Thread(
            target=self._dispatch_loop,
            name="ktsrun-events",
            daemon=True,
        )
        self._dispatcher.start()

    @property
    def state(self) -> RunState:
        return self._state

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start(self, source: str) -> bool:
        """
        Submit a script. Returns False if a run is already active.

        Raises ScriptValidationError for empty or oversized scripts; nothing
        is emitted in that case.
        """
        with self._lock:
            if self._closed or self._state is not RunState.IDLE:
                log_event(logger, "start_rejected", state=self._state.name)
                return False
            self._state = RunState.STARTING

        try:
            self._validate(source)
            prepared = self._preprocessor.prepare(source)
        except Exception:
            with self._lock:
                self._state = RunState.IDLE
            raise

        session = ProcessSession(self._config)
        with self._lock:
            self._session = session
            self._cancel_requested = False
            self._timed_out = False
            self._emit(RunStarted(entry_point_appended=prepared.entry_point_appended))

        log_event(
            logger,
            "run_accepted",
            size=len(source),
            entry_point_appended=prepared.entry_point_appended,
        )
        try:
            self._executor.submit(self._drive, session, prepared)
        except RuntimeError as exc:
            # Executor already shut down.
            self._finish(
                session,
                ExecutionResult(exit_code=None, error=f"Could not schedule run: {exc}"),
            )
        return True

    def cancel(self) -> bool:
        with self._lock:
            session = self._begin_cancel()
        if session is None:
            return False
        self._kill(session)
        return True

    def shutdown(self, timeout: float = 5.0) -> None:
        """
        Kill any live process and stop the worker threads.

        Must be called by the host before it exits.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            session = self._session
            self._cancel_requested = session is not None

        if session is not None:
            session.kill()
        # A queued run is left to execute: its killed session skips the spawn
        # and still publishes RunFinished.
        self._executor.shutdown(wait=True)
        self._events.put(_STOP)
        self._dispatcher.join(timeout=timeout)
        log_event(logger, "controller_shutdown")

    def __enter__(self) -> "ExecutionController":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.shutdown()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _validate(self, source: str) -> None:
        if not source or not source.strip():
            raise ScriptValidationError(
                code="script_empty",
                message="Script is empty. Please write some code first.",
            )
        size = len(source.encode(self._config.encoding, errors="replace"))
        limit = self._config.max_script_bytes
        if size > limit:
            raise ScriptValidationError(
                code="script_too_large",
                message=f"Script is too large ({size} bytes). Maximum is {limit} bytes.",
            )

    def _drive(self, session: ProcessSession, prepared: PreparedScript) -> None:
        finished = False

        def on_done(result: ExecutionResult) -> None:
            nonlocal finished
            finished = True
            self._finish(session, result)

        try:
            session.run(
                prepared,
                on_line=lambda text: self._emit(OutputLine(text)),
                on_done=on_done,
                on_spawn=lambda _pid: self._mark_running(session),
                on_truncated=lambda limit: self._emit(OutputTruncated(limit)),
            )
        except Exception as exc:
            logger.exception("Session driver failed")
            if not finished:
                self._finish(
                    session,
                    ExecutionResult(exit_code=None, error=f"Unexpected error: {exc}"),
                )

    def _mark_running(self, session: ProcessSession) -> None:
        with self._lock:
            if self._session is not session or self._state is not RunState.STARTING:
                return
            self._state = RunState.RUNNING
            timeout = self._config.run_timeout_s
            if timeout:
                timer = threading.Timer(timeout, self._on_deadline, args=(session,))
                timer.daemon = True
                self._deadline = timer
                timer.start()

    def _begin_cancel(self) -> ProcessSession | None:
        if self._state is not RunState.RUNNING:
            return None
        self._state = RunState.CANCELLING
        self._cancel_requested = True
        return self._session

    def _kill(self, session: ProcessSession) -> None:
        log_event(logger, "run_cancel_requested", timed_out=self._timed_out)
        session.kill()

    def _on_deadline(self, session: ProcessSession) -> None:
        with self._lock:
            if self._session is not session:
                return
            if self._begin_cancel() is None:
                return
            self._timed_out = True
        log_event(logger, "run_timed_out", timeout_s=self._config.run_timeout_s)
        self._kill(session)

    def _finish(self, session: ProcessSession, result: ExecutionResult) -> None:
        with self._lock:
            if self._session is not session:
                return
            timer = self._deadline
            self._deadline = None
            self._state = RunState.FINISHING

            if self._cancel_requested and not result.cancelled:
                result = replace(result, cancelled=True)
            if self._timed_out:
                result = replace(
                    result,
                    timed_out=True,
                    error=result.error
                    or f"Script timed out after {self._config.run_timeout_s:g} seconds",
                )

            self._session = None
            self._state = RunState.IDLE
            # Published under the gate and after the reset, so a sink seeing
            # RunFinished can immediately start the next run.
            self._emit(RunFinished(result))

        if timer is not None:
            timer.cancel()
        log_event(
            logger,
            "run_finished",
            exit_code=result.exit_code,
            lines=result.line_count,
            truncated=result.truncated,
            cancelled=result.cancelled,
            timed_out=result.timed_out,
            error=result.error,
            duration_s=round(result.duration_s, 3),
        )

    def _emit(self, event: OutputEvent) -> None:
        self._events.put(event)

    def _dispatch_loop(self) -> None:
        while True:
            event = self._events.get()
            if event is _STOP:
                return
            try:
                self._sink(event)  # type: ignore[arg-type]
            except Exception:
                logger.exception("Output sink raised while handling %r", event)
