from __future__ import annotations

import json
import threading
from pathlib import Path

import psutil

from ktsrun.core.events import ExecutionResult
from ktsrun.core.preprocessor import PreparedScript
from ktsrun.core.session import ProcessSession


def _run(session: ProcessSession, text: str):
    lines: list[str] = []
    truncations: list[int] = []
    results: list[ExecutionResult] = []
    session.run(
        PreparedScript(text),
        on_line=lines.append,
        on_done=results.append,
        on_truncated=truncations.append,
    )
    assert len(results) == 1
    return lines, truncations, results[0]


def test_streams_lines_and_reports_exit_code(python_config, script_dir: Path):
    session = ProcessSession(python_config)

    lines, truncations, result = _run(
        session, "import sys\nprint('one')\nprint('two', file=sys.stderr)\nsys.exit(4)\n"
    )

    assert lines == ["one", "two"]
    assert truncations == []
    assert result.exit_code == 4
    assert result.line_count == 2
    assert not result.truncated
    assert not result.cancelled
    assert result.error is None
    assert list(script_dir.iterdir()) == []


def test_exactly_the_line_limit_is_not_truncated(python_config):
    config = python_config.model_copy(update={"max_output_lines": 5})

    lines, truncations, result = _run(
        ProcessSession(config), "for i in range(5):\n    print(i)\n"
    )

    assert lines == ["0", "1", "2", "3", "4"]
    assert truncations == []
    assert not result.truncated
    assert result.exit_code == 0


def test_one_past_the_limit_truncates_and_keeps_exit_code(python_config):
    config = python_config.model_copy(update={"max_output_lines": 5})

    lines, truncations, result = _run(
        ProcessSession(config),
        "import sys\nfor i in range(6):\n    print(i)\nsys.exit(3)\n",
    )

    assert lines == ["0", "1", "2", "3", "4"]
    assert truncations == [5]
    assert result.truncated
    assert result.line_count == 5
    assert result.exit_code == 3


def test_large_output_is_drained_past_the_limit(python_config):
    config = python_config.model_copy(update={"max_output_lines": 10})

    lines, truncations, result = _run(
        ProcessSession(config),
        "for i in range(50000):\n    print('x' * 80)\nprint('done')\n",
    )

    assert len(lines) == 10
    assert truncations == [10]
    assert result.exit_code == 0


def test_utf8_output_is_decoded(python_config):
    lines, _, result = _run(
        ProcessSession(python_config),
        "import sys\nsys.stdout.buffer.write('héllo 🚀\\n'.encode('utf-8'))\n",
    )

    assert lines == ["héllo 🚀"]
    assert result.exit_code == 0


def test_missing_interpreter_reports_launch_error(python_config, script_dir: Path):
    config = python_config.model_copy(update={"interpreter": "ktsrun-no-such-interpreter"})

    lines, _, result = _run(ProcessSession(config), "print(1)\n")

    assert lines == []
    assert result.exit_code is None
    assert result.error is not None
    assert "interpreter_not_found" in result.error
    assert list(script_dir.iterdir()) == []


def test_missing_temp_dir_reports_launch_error(python_config, tmp_path: Path):
    config = python_config.model_copy(update={"temp_dir": tmp_path / "missing"})

    _, _, result = _run(ProcessSession(config), "print(1)\n")

    assert result.exit_code is None
    assert "launch_failed" in result.error


def test_kill_terminates_and_marks_cancelled(python_config, script_dir: Path):
    session = ProcessSession(python_config)
    ready = threading.Event()
    results: list[ExecutionResult] = []

    def on_line(text: str) -> None:
        if text == "ready":
            ready.set()

    worker = threading.Thread(
        target=session.run,
        args=(
            PreparedScript("import time\nprint('ready')\ntime.sleep(60)\n"),
            on_line,
            results.append,
        ),
    )
    worker.start()
    assert ready.wait(15)

    session.kill()
    worker.join(15)

    assert not worker.is_alive()
    assert len(results) == 1
    assert results[0].cancelled
    assert results[0].exit_code is None
    assert list(script_dir.iterdir()) == []


def test_kill_also_stops_child_processes(python_config):
    session = ProcessSession(python_config)
    ready = threading.Event()
    results: list[ExecutionResult] = []
    # The grandchild inherits stdout, so the pipe only closes when both die.
    script = (
        "import subprocess, sys, time\n"
        "subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(60)'])\n"
        "print('ready')\n"
        "time.sleep(60)\n"
    )

    def on_line(text: str) -> None:
        if text == "ready":
            ready.set()

    worker = threading.Thread(
        target=session.run, args=(PreparedScript(script), on_line, results.append)
    )
    worker.start()
    assert ready.wait(15)

    session.kill()
    worker.join(15)

    assert not worker.is_alive()
    assert results[0].cancelled


def test_kill_before_spawn_skips_the_process(python_config, script_dir: Path):
    session = ProcessSession(python_config)
    session.kill()

    lines, _, result = _run(session, "print('never')\n")

    assert lines == []
    assert result.cancelled
    assert session.pid is None
    assert list(script_dir.iterdir()) == []


def test_invocation_uses_locale_and_temp_script_path(python_config, script_dir: Path):
    config = python_config.model_copy(
        update={
            "script_prefix": "kotlin_script_",
            "script_suffix": ".kts",
            "locale": "en_US.UTF-8",
        }
    )
    script = (
        "import json, os, sys\n"
        "print(os.environ['LANG'])\n"
        "print(os.environ['LC_ALL'])\n"
        "print(json.dumps(sys.orig_argv[1:]))\n"
    )

    lines, _, result = _run(ProcessSession(config), script)

    assert result.exit_code == 0
    assert lines[:2] == ["en_US.UTF-8", "en_US.UTF-8"]
    flags, script_path = json.loads(lines[2])[:-1], Path(json.loads(lines[2])[-1])
    assert flags == ["-u"]
    assert script_path.parent == script_dir
    assert script_path.name.startswith("kotlin_script_")
    assert script_path.suffix == ".kts"
    assert not script_path.exists()


def test_kill_after_exit_keeps_the_exit_code(python_config):
    session = ProcessSession(python_config)

    def on_line(text: str) -> None:
        # The script exits right after this line; wait for that, then kill.
        process = session._process
        assert process is not None
        process.wait(timeout=15)
        session.kill()

    results: list[ExecutionResult] = []
    session.run(
        PreparedScript("import sys\nprint('bye')\nsys.exit(5)\n"),
        on_line=on_line,
        on_done=results.append,
    )

    (result,) = results
    assert result.exit_code == 5
    assert not result.cancelled


def test_failing_line_handler_reports_run_failed_and_cleans_up(
    python_config, script_dir: Path
):
    session = ProcessSession(python_config)
    pids: list[int] = []
    results: list[ExecutionResult] = []

    def on_line(text: str) -> None:
        raise RuntimeError("display went away")

    session.run(
        PreparedScript("import time\nprint('ready')\ntime.sleep(60)\n"),
        on_line=on_line,
        on_done=results.append,
        on_spawn=pids.append,
    )

    (result,) = results
    assert result.exit_code is None
    assert result.error is not None
    assert result.error.startswith("[run_failed]")
    assert "display went away" in result.error
    assert not psutil.pid_exists(pids[0])
    assert list(script_dir.iterdir()) == []
