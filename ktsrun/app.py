from __future__ import annotations

from pathlib import Path

from platformdirs import user_log_path

from ktsrun.core.app import ScriptRunnerApp
from ktsrun.core.config import RuntimeConfig, get_runtime_config
from ktsrun.core.logging import configure_logging

APP_NAME = "ktsrun"
APP_AUTHOR = "ktsrun"


def log_dir(config: RuntimeConfig | None = None) -> Path:
    config = config or get_runtime_config()
    if config.log_dir is not None:
        return config.log_dir.expanduser()
    return Path(user_log_path(APP_NAME, APP_AUTHOR))


def main(
    script_path: Path | None = None,
    config: RuntimeConfig | None = None,
) -> None:
    config = config or get_runtime_config()
    # The UI owns the terminal, so logs go to a file.
    configure_logging(
        level=config.log_level,
        format_name=config.log_format,
        log_dir=log_dir(config),
    )

    initial_script = None
    if script_path is not None:
        initial_script = script_path.read_text(encoding=config.encoding)

    app = ScriptRunnerApp(
        config=config,
        initial_script=initial_script,
        script_name=script_path.name if script_path else None,
    )
    try:
        app.run()
    finally:
        app.controller.shutdown()
