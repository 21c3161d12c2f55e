from __future__ import annotations

from enum import Enum, auto


class RunState(Enum):
    IDLE = auto()         # no session, start() accepted
    STARTING = auto()     # accepted, interpreter not spawned yet
    RUNNING = auto()      # output streaming
    CANCELLING = auto()   # kill sent, waiting for end of stream
    FINISHING = auto()    # terminal event being published
