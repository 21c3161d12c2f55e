from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import IO, Any

LOG_FILENAME = "ktsrun.log"

# Name of the root handler owned by configure_logging(); a later call swaps it.
_HANDLER_NAME = "ktsrun"

_FORMATS = {
    # log_event() already renders the message as a JSON object.
    "json": "%(message)s",
    "text": "%(asctime)s %(levelname)s %(name)s %(message)s",
}


def get_logger(name: str = "ktsrun") -> logging.Logger:
    return logging.getLogger(name)


def configure_logging(
    *,
    level: str = "info",
    format_name: str = "json",
    stream: IO[str] | None = None,
    log_dir: Path | None = None,
) -> logging.Handler:
    """
    Install the ktsrun handler on the root logger and return it.

    Output goes to ``stream`` when given, else to ``log_dir/ktsrun.log``,
    else nowhere. Calling again closes and replaces the previous handler.
    """
    handler: logging.Handler
    if stream is not None:
        handler = logging.StreamHandler(stream)
    elif log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_dir / LOG_FILENAME, encoding="utf-8")
    else:
        handler = logging.NullHandler()
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(logging.Formatter(_FORMATS.get(format_name, _FORMATS["text"])))

    root = logging.getLogger()
    for existing in list(root.handlers):
        if existing.get_name() == _HANDLER_NAME:
            root.removeHandler(existing)
            existing.close()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.strip().upper(), logging.INFO))
    return handler


def log_event(logger: logging.Logger, event: str, **fields: Any) -> None:
    payload = {"event": event, **fields}
    logger.info(json.dumps(payload, sort_keys=True, default=str))
