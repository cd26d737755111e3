# ordering.py
"""
Linearize the union of every process's event log.

Events are ordered by Lamport counter, ties broken by a fixed ranking of
process identities. Because a single process never stamps two events with
the same counter, the result is a strict total order. Concurrent events end
up in an arbitrary but repeatable relative position.
"""

from collections import defaultdict, deque
from typing import Dict, Iterable, Mapping, Optional, Sequence, Tuple, Union

from errors import InvariantViolation
from event import Event, EventKind

Logs = Union[Mapping[object, Sequence[Event]], Iterable[Sequence[Event]]]


class ProcessRanking:
    """
    Fixed total order over process identities used to break counter ties.

    With an explicit list, earlier identities win ties. Without one, identities
    are ranked by their string form, then by type name so that 1 and "1" differ.
    """

    def __init__(self, identities: Optional[Sequence] = None):
        self._ranks: Optional[Dict[object, int]] = None
        if identities is not None:
            identities = list(identities)
            if len(set(identities)) != len(identities):
                raise ValueError(f"duplicate identities in ranking: {identities}")
            self._ranks = {identity: i for i, identity in enumerate(identities)}

    def rank(self, identity):
        if self._ranks is None:
            return (str(identity), type(identity).__name__)
        try:
            return self._ranks[identity]
        except KeyError:
            raise ValueError(f"identity {identity!r} is not in the ranking") from None

    def sort_key(self, event: Event) -> Tuple:
        return (event.counter, self.rank(event.owner))

    def compare(self, x: Event, y: Event) -> int:
        """Return -1 if x orders before y, 1 if after, 0 only when x is y."""
        if x == y:
            return 0
        kx, ky = self.sort_key(x), self.sort_key(y)
        if kx == ky:
            raise InvariantViolation(
                f"distinct events share counter {x.counter} on process {x.owner}: "
                f"{x.label!r} / {y.label!r}"
            )
        return -1 if kx < ky else 1


def _flatten(logs: Logs):
    if isinstance(logs, Mapping):
        logs = logs.values()
    for log in logs:
        yield from log


def total_order(logs: Logs, ranking: Optional[ProcessRanking] = None, reverse=False):
    """Return every event from ``logs`` as one tuple in total order.

    ``logs`` is either a mapping of identity to events or an iterable of event
    sequences. Ascending by default; ``reverse`` gives most recent first.
    """
    ranking = ranking or ProcessRanking()
    events = sorted(_flatten(logs), key=ranking.sort_key, reverse=reverse)
    for previous, current in zip(events, events[1:]):
        if ranking.sort_key(previous) == ranking.sort_key(current):
            raise InvariantViolation(
                f"two events of {current.owner} share counter {current.counter}"
            )
    return tuple(events)


def check_log(events: Sequence[Event]):
    """Raise InvariantViolation unless ``events`` is one process's well-formed log."""
    owners = {event.owner for event in events}
    if len(owners) > 1:
        raise InvariantViolation(f"log mixes events of {sorted(map(str, owners))}")
    for previous, current in zip(events, events[1:]):
        if current.counter <= previous.counter:
            raise InvariantViolation(
                f"counter of {current.owner} went from {previous.counter} "
                f"to {current.counter} at {current.label!r}"
            )


def check_send_receive(logs: Logs):
    """
    Pair every receive with its send and check the receive is stamped later.

    Sends and receives are matched in order per sender/receiver pair, which
    holds because mailboxes are FIFO.
    """
    sends = defaultdict(deque)
    receives = []
    for event in _flatten(logs):
        if event.kind is EventKind.SEND:
            sends[(event.owner, event.peer)].append(event)
        elif event.kind is EventKind.RECEIVE:
            receives.append(event)
    # each pair's sends in the order they were made
    for queued in sends.values():
        queued_sorted = sorted(queued, key=lambda e: e.counter)
        queued.clear()
        queued.extend(queued_sorted)

    for receive in sorted(receives, key=lambda e: e.counter):
        pending = sends.get((receive.peer, receive.owner))
        if not pending:
            raise InvariantViolation(
                f"{receive.owner}@{receive.counter} received from {receive.peer} "
                "with no matching send"
            )
        send = pending.popleft()
        if receive.counter <= send.counter:
            raise InvariantViolation(
                f"{receive.owner}@{receive.counter} is not later than "
                f"{send.owner}@{send.counter} that sent it"
            )


def format_order(events: Iterable[Event]) -> str:
    return "\n".join(str(event) for event in events)
