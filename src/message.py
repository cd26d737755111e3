# message.py
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Message:
    """
    Message handed from one process mailbox to another.

    Args:
        sender: identity of the sending process.
        receiver: identity of the receiving process.
        counter: sender's clock value right after the send was recorded.
        payload: application content, ignored by the ordering logic.
    """

    sender: str
    receiver: str
    counter: int
    payload: Any = None
