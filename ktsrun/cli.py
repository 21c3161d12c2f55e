from __future__ import annotations

import argparse
import json
import sys
import threading
from pathlib import Path
from typing import Any, Sequence

from ktsrun import __version__
from ktsrun.app import log_dir
from ktsrun.app import main as run_app
from ktsrun.core.config import RuntimeConfig, get_runtime_config
from ktsrun.core.controller import ExecutionController
from ktsrun.core.errors import ScriptValidationError, format_error
from ktsrun.core.events import (
    ExecutionResult,
    OutputEvent,
    OutputLine,
    OutputTruncated,
    RunFinished,
    RunStarted,
)
from ktsrun.core.logging import configure_logging
from ktsrun.core.preprocessor import ScriptPreprocessor

EXIT_ERROR = 1
EXIT_INTERRUPTED = 130

COMMANDS = ("edit", "run", "prepare", "print-config")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ktsrun",
        usage="%(prog)s [-h] [--version] [FILE | {edit,run,prepare,print-config} ...]",
        description="Edit and run Kotlin scripts with live output.",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
        help="Print version and exit.",
    )

    subparsers = parser.add_subparsers(dest="command")

    edit_parser = subparsers.add_parser(
        "edit",
        help="Open a script in the editor UI (the default when no command is given).",
    )
    edit_parser.add_argument("script", nargs="?", help="Script to load into the editor.")
    edit_parser.set_defaults(handler=handle_edit)

    run_parser = subparsers.add_parser(
        "run",
        help="Run a script without the UI, streaming its output to stdout.",
    )
    run_parser.add_argument("script", help="Path to the .kts script.")
    run_parser.add_argument(
        "--timeout",
        type=float,
        help="Kill the script after this many seconds (0 disables the limit).",
    )
    run_parser.add_argument(
        "--max-lines",
        type=int,
        help="Stop printing output after this many lines.",
    )
    run_parser.add_argument(
        "--interpreter",
        help="Interpreter binary to run the script with (default: kotlinc).",
    )
    run_parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Write JSON log events to stderr.",
    )
    run_parser.set_defaults(handler=handle_run)

    prepare_parser = subparsers.add_parser(
        "prepare",
        help="Print the script as it will be executed (with main() appended if needed).",
    )
    prepare_parser.add_argument("script", help="Path to the .kts script.")
    prepare_parser.set_defaults(handler=handle_prepare)

    config_parser = subparsers.add_parser(
        "print-config",
        help="Print the resolved runtime config to stdout.",
    )
    config_parser.set_defaults(handler=handle_print_config)

    return parser


def _read_script(raw_path: str) -> Path:
    path = Path(raw_path).expanduser()
    if not path.exists() or not path.is_file():
        raise SystemExit(f"Script not found: {path}")
    return path


def _config_overrides(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    if getattr(args, "timeout", None) is not None:
        overrides["run_timeout_s"] = args.timeout or None
    if getattr(args, "max_lines", None) is not None:
        overrides["max_output_lines"] = args.max_lines
    if getattr(args, "interpreter", None):
        overrides["interpreter"] = args.interpreter
    return overrides


def handle_edit(args: argparse.Namespace) -> int:
    config = get_runtime_config()
    script_path = _read_script(args.script) if args.script else None
    run_app(script_path, config)
    return 0


class _ConsoleSink:
    """Prints script output to stdout and harness notes to stderr."""

    def __init__(self, entry_point: str) -> None:
        self.entry_point = entry_point
        self.result: ExecutionResult | None = None
        self.done = threading.Event()

    def __call__(self, event: OutputEvent) -> None:
        if isinstance(event, OutputLine):
            print(event.text, flush=True)
        elif isinstance(event, RunStarted):
            if event.entry_point_appended:
                self._note(
                    f"[Note: {self.entry_point}() function detected and will be called automatically]"
                )
        elif isinstance(event, OutputTruncated):
            self._note(f"[Output limit reached: {event.limit} lines. Script continues running...]")
        elif isinstance(event, RunFinished):
            self.result = event.result
            self.done.set()

    @staticmethod
    def _note(text: str) -> None:
        print(text, file=sys.stderr, flush=True)


def handle_run(args: argparse.Namespace) -> int:
    try:
        config = RuntimeConfig(**_config_overrides(args))
    except ValueError as exc:
        raise SystemExit(f"Invalid option: {exc}") from exc
    if args.verbose:
        configure_logging(level="debug", format_name=config.log_format, stream=sys.stderr)

    path = _read_script(args.script)
    source = path.read_text(encoding=config.encoding)
    sink = _ConsoleSink(config.entry_point)
    interrupted = False

    with ExecutionController(sink, config) as controller:
        try:
            controller.start(source)
        except ScriptValidationError as exc:
            message, _ = format_error(exc)
            print(message, file=sys.stderr)
            return EXIT_ERROR
        try:
            while not sink.done.wait(0.1):
                pass
        except KeyboardInterrupt:
            interrupted = True
            controller.cancel()
    # shutdown() has killed anything still alive and flushed the last event.
    sink.done.wait(timeout=5.0)

    result = sink.result
    if result is None:
        return EXIT_INTERRUPTED if interrupted else EXIT_ERROR
    if result.timed_out or result.error:
        print(f"Error: {result.error}", file=sys.stderr)
    elif result.cancelled:
        print("--- Script stopped by user ---", file=sys.stderr)
    if result.exit_code is not None:
        return result.exit_code
    return EXIT_INTERRUPTED if interrupted else EXIT_ERROR


def handle_prepare(args: argparse.Namespace) -> int:
    config = get_runtime_config()
    path = _read_script(args.script)
    prepared = ScriptPreprocessor(config.entry_point).prepare(
        path.read_text(encoding=config.encoding)
    )
    sys.stdout.write(prepared.text)
    return 0


def handle_print_config(_args: argparse.Namespace) -> int:
    config = get_runtime_config()
    payload = {
        "runtime": config.model_dump(mode="json"),
        "log_dir": str(log_dir(config)),
    }
    print(json.dumps(payload, indent=2))
    return 0


def _with_default_command(argv: Sequence[str] | None) -> list[str]:
    # "ktsrun FILE" is shorthand for "ktsrun edit FILE".
    args = list(sys.argv[1:] if argv is None else argv)
    if args and args[0] not in COMMANDS and not args[0].startswith("-"):
        args.insert(0, "edit")
    return args


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(_with_default_command(argv))

    handler = getattr(args, "handler", None)
    if handler is None:
        run_app()
        return

    raise SystemExit(handler(args))


if __name__ == "__main__":
    main()
