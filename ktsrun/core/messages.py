from textual.message import Message

from ktsrun.core.error_locations import ErrorLocation
from ktsrun.core.events import OutputEvent


class RunScriptRequest(Message):
    pass


class StopScriptRequest(Message):
    pass


class ExecutionEventPosted(Message):
    def __init__(self, event: OutputEvent) -> None:
        self.event = event
        super().__init__()


class NavigateToErrorRequest(Message):
    def __init__(self, location: ErrorLocation) -> None:
        self.location = location
        super().__init__()
