# clock.py
from dataclasses import dataclass


@dataclass(frozen=True)
class LamportClock:
    """
    Lamport Clock value owned by a single process

    The clock assigns a number to each event so that even without a global clock,
    we can determine a logical order of events. Instances are never mutated:
    every tick returns a new clock and the owning process swaps it in.
    """

    owner: str
    value: int = 0

    def __post_init__(self):
        if self.value < 0:
            raise ValueError(f"clock counter must be non-negative, got {self.value}")

    def increment(self):
        return LamportClock(self.owner, self.value + 1)

    def merge_on_receive(self, received):
        """Advance past a received timestamp: max(self.value, received) + 1."""
        if received < 0:
            raise ValueError(f"received counter must be non-negative, got {received}")
        return LamportClock(self.owner, max(self.value, received) + 1)

    def __str__(self):
        return f"{self.owner}: {self.value}"
