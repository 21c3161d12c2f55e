from __future__ import annotations

import os
import shutil
import subprocess
import tempfile
import time
from pathlib import Path
from typing import Callable, Optional

import psutil

from ktsrun.core.config import RuntimeConfig
from ktsrun.core.errors import LaunchError, format_error, wrap_error
from ktsrun.core.events import ExecutionResult
from ktsrun.core.logging import get_logger, log_event
from ktsrun.core.preprocessor import PreparedScript

LineCallback = Callable[[str], None]
DoneCallback = Callable[[ExecutionResult], None]

logger = get_logger(__name__)


class ProcessSession:
    """Owns one interpreter process and the temp file it runs."""

    def __init__(self, config: RuntimeConfig) -> None:
        self._config = config
        self._process: Optional[subprocess.Popen[str]] = None
        self._script_path: Optional[Path] = None
        self._killed = False
        self.line_count = 0
        self.truncated = False

    @property
    def pid(self) -> int | None:
        process = self._process
        return process.pid if process is not None else None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(
        self,
        script: PreparedScript,
        on_line: LineCallback,
        on_done: DoneCallback,
        *,
        on_spawn: Callable[[int], None] | None = None,
        on_truncated: Callable[[int], None] | None = None,
    ) -> None:
        """
        Run the script to completion on the calling thread.

        ``on_done`` is called exactly once, after the process is reaped and
        the temp file is gone, whether the run succeeded, failed or was
        killed.
        """
        started = time.monotonic()
        try:
            result = self._execute(script, on_line, on_spawn, on_truncated, started)
        except Exception as exc:
            result = self._failure(exc, started)
        finally:
            self._release()
        on_done(result)

    def kill(self) -> None:
        """
        Forcefully kill the interpreter and its children. Never waits.

        A process that has already exited keeps its own exit code.
        """
        process = self._process
        if process is None:
            self._killed = True
            return
        if process.poll() is not None:
            return
        self._killed = True

        try:
            children = psutil.Process(process.pid).children(recursive=True)
        except psutil.Error:
            children = []
        for child in children:
            try:
                child.kill()
            except psutil.Error:
                pass

        try:
            process.kill()
        except OSError:
            pass
        log_event(logger, "session_killed", pid=process.pid, children=len(children))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _execute(
        self,
        script: PreparedScript,
        on_line: LineCallback,
        on_spawn: Callable[[int], None] | None,
        on_truncated: Callable[[int], None] | None,
        started: float,
    ) -> ExecutionResult:
        self._script_path = self._write_script(script.text)
        if self._killed:
            return ExecutionResult(exit_code=None, cancelled=True)
        process = self._spawn(self._script_path)
        if self._killed:
            # kill() ran before the handle was published.
            self.kill()
        log_event(logger, "session_spawned", pid=process.pid, script=str(self._script_path))
        if on_spawn is not None:
            on_spawn(process.pid)

        self._pump(process, on_line, on_truncated)
        returncode = process.wait()

        return ExecutionResult(
            exit_code=None if self._killed else returncode,
            line_count=self.line_count,
            truncated=self.truncated,
            cancelled=self._killed,
            duration_s=time.monotonic() - started,
        )

    def _write_script(self, text: str) -> Path:
        config = self._config
        try:
            handle, name = tempfile.mkstemp(
                prefix=config.script_prefix,
                suffix=config.script_suffix,
                dir=str(config.temp_dir) if config.temp_dir else None,
            )
        except OSError as exc:
            raise LaunchError(
                code="launch_failed",
                message="Could not create temporary script file",
                detail=str(exc),
            ) from exc

        path = Path(name)
        try:
            with os.fdopen(handle, "w", encoding=config.encoding, newline="") as stream:
                stream.write(text)
        except OSError as exc:
            self._script_path = path
            raise LaunchError(
                code="launch_failed",
                message="Could not write temporary script file",
                detail=str(exc),
            ) from exc
        return path

    def _spawn(self, script_path: Path) -> subprocess.Popen[str]:
        config = self._config
        executable = shutil.which(config.interpreter)
        if executable is None:
            raise LaunchError(
                code="interpreter_not_found",
                message=f"Interpreter '{config.interpreter}' not found on PATH",
            )

        env = os.environ.copy()
        env["LANG"] = config.locale
        env["LC_ALL"] = config.locale

        command = [executable, *config.interpreter_args, str(script_path)]
        try:
            self._process = subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                env=env,
                text=True,
                encoding=config.encoding,
                errors="replace",
                bufsize=1,
            )
        except OSError as exc:
            raise wrap_error(
                exc,
                code="launch_failed",
                message=f"Could not start '{config.interpreter}'",
            ) from exc
        return self._process

    def _pump(
        self,
        process: subprocess.Popen[str],
        on_line: LineCallback,
        on_truncated: Callable[[int], None] | None,
    ) -> None:
        stream = process.stdout
        if stream is None:
            return

        limit = self._config.max_output_lines
        # Past the limit the pipe is still drained so the child never blocks.
        for raw in stream:
            if self.line_count < limit:
                self.line_count += 1
                on_line(raw.rstrip("\r\n"))
            elif not self.truncated:
                self.truncated = True
                log_event(logger, "session_truncated", limit=limit)
                if on_truncated is not None:
                    on_truncated(limit)

    def _failure(self, exc: Exception, started: float) -> ExecutionResult:
        if not isinstance(exc, LaunchError):
            logger.exception("Script session failed")
            exc = wrap_error(exc, code="run_failed", message="Script execution failed")
        message, _ = format_error(exc)
        log_event(logger, "session_failed", error=message)
        return ExecutionResult(
            exit_code=None,
            line_count=self.line_count,
            truncated=self.truncated,
            cancelled=self._killed,
            error=message,
            duration_s=time.monotonic() - started,
        )

    def _release(self) -> None:
        process = self._process
        if process is not None:
            if process.poll() is None:
                try:
                    process.kill()
                except OSError:
                    pass
                try:
                    process.wait(timeout=1.0)
                except subprocess.TimeoutExpired:
                    log_event(logger, "session_reap_timeout", pid=process.pid)
            if process.stdout is not None:
                try:
                    process.stdout.close()
                except OSError:
                    pass

        path = self._script_path
        if path is not None:
            try:
                path.unlink(missing_ok=True)
            except OSError:
                pass
