from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

Severity = Literal["error", "warning", "information"]

DEFAULT_SEVERITY_BY_CODE: dict[str, Severity] = {
    "script_empty": "warning",
    "script_too_large": "warning",
}


@dataclass
class KtsrunError(Exception):
    code: str
    message: str
    detail: str | None = None
    severity: Severity = "error"

    def __str__(self) -> str:
        if self.detail:
            return f"{self.message} ({self.detail})"
        return self.message


@dataclass
class ScriptValidationError(KtsrunError):
    """Rejected before any process state is created."""


@dataclass
class LaunchError(KtsrunError):
    """The temp file or the interpreter process could not be created."""


def format_error(error: BaseException) -> tuple[str, Severity]:
    if isinstance(error, KtsrunError):
        prefix = f"[{error.code}] " if error.code else ""
        severity = DEFAULT_SEVERITY_BY_CODE.get(error.code, error.severity)
        return f"{prefix}{error}", severity
    text = str(error) or type(error).__name__
    return text, "error"


def wrap_error(
    error: BaseException,
    *,
    code: str,
    message: str,
    severity: Severity = "error",
) -> KtsrunError:
    if isinstance(error, KtsrunError):
        return error
    detail = str(error) or type(error).__name__
    return KtsrunError(code=code, message=message, detail=detail, severity=severity)
