from .editor import DEFAULT_SCRIPT, ScriptEditor
from .output_panel import ScriptOutputLog
from .toolbar import RunToolbar

__all__ = [
    "DEFAULT_SCRIPT",
    "RunToolbar",
    "ScriptEditor",
    "ScriptOutputLog",
]
