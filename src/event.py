# event.py
"""
Immutable record of something that happened on one process, stamped with the
clock snapshot taken at that moment.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from clock import LamportClock


class EventKind(str, Enum):
    INTERNAL = "internal"
    SEND = "send"
    RECEIVE = "receive"


@dataclass(frozen=True)
class Event:
    label: str
    clock: LamportClock
    kind: EventKind = EventKind.INTERNAL
    # counterpart identity for send/receive events
    peer: Optional[str] = None

    @property
    def counter(self) -> int:
        return self.clock.value

    @property
    def owner(self) -> str:
        return self.clock.owner

    def __str__(self) -> str:
        return f"{self.owner}@{self.counter} {self.label}"
