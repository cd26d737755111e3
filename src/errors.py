# errors.py


class LogicalClockError(Exception):
    """Base class for errors raised by the simulation core."""


class UnknownRecipient(LogicalClockError):
    """A message targeted a process that was never started or has terminated."""

    def __init__(self, recipient):
        super().__init__(f"unknown or terminated recipient: {recipient}")
        self.recipient = recipient


class ProcessTerminated(LogicalClockError):
    """An action was attempted on a process that has already finished."""

    def __init__(self, identity):
        super().__init__(f"process {identity} is terminated")
        self.identity = identity


class InvariantViolation(LogicalClockError):
    """Causal ordering guarantee is broken; never recover from this."""
