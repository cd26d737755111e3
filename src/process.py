# process.py
import logging
import os
import queue
import threading
import time
from collections import deque
from enum import Enum
from typing import Any, Callable, Dict, Optional, Sequence, Union

import logger
from clock import LamportClock
from errors import InvariantViolation, ProcessTerminated, UnknownRecipient
from event import Event, EventKind
from message import Message

# Seconds an idle process waits on its mailbox before re-checking for a stop request
MAILBOX_POLL_INTERVAL = float(os.environ.get("MAILBOX_POLL_INTERVAL", "0.05"))

Step = Callable[["Process"], Any]


class ProcessState(str, Enum):
    CREATED = "created"
    RUNNING = "running"
    IDLE = "idle"
    TERMINATED = "terminated"


def _as_steps(task: Union[None, Step, Sequence[Step]]):
    if task is None:
        return []
    if callable(task):
        return [task]
    return list(task)


class Process(threading.Thread):
    """
    Simulated process with its own Lamport clock, event log and mailbox.

    The thread runs the caller-supplied task (a callable taking the process,
    or a sequence of such steps). Pending messages are received before each
    of the process's own actions and between task steps, so a delivery
    pre-empts whatever the task was about to do next. Once the task is done
    the process keeps serving its mailbox until stopped, unless ``linger`` is
    False, in which case it terminates straight away.

    Clock and log are only touched under the process's own lock, so actions
    never interleave even when a driver thread calls into the process.
    """

    def __init__(
        self,
        identity,
        task=None,
        directory: Optional[Dict[Any, "Process"]] = None,
        linger: bool = True,
        process_logger=None,
        log_dir=None,
        log_level=logging.INFO,
    ):
        super().__init__(name=f"Process-{identity}", daemon=True)
        self.identity = identity
        self.clock = LamportClock(identity)
        self.events = []
        self.mailbox = queue.Queue()
        # identity -> Process, owned by whoever started the processes
        self.directory = directory if directory is not None else {}
        self.linger = linger
        self.state = ProcessState.CREATED
        self.failure: Optional[BaseException] = None
        self.task_finished = threading.Event()
        self.logger = (
            process_logger
            if process_logger is not None
            else logger.setup_logger(
                identity, self, log_level=log_level, log_dir=log_dir
            )
        )

        self._steps = _as_steps(task)
        self._lock = threading.RLock()
        # guards state and the in-flight message count; never held while taking another lock
        self._state_lock = threading.Lock()
        self._pending = 0
        # messages kept for receive() while the task runs or a receive() waits
        self._unclaimed = deque()
        self._waiting = 0
        self._stop_requested = threading.Event()

    # ---- actions ---------------------------------------------------------

    def record_internal(self, label: str) -> Event:
        with self._lock:
            self._ensure_alive()
            self._drain_mailbox()
            self.clock = self.clock.increment()
            return self._append(Event(label, self.clock))

    def send(self, to, payload=None) -> Message:
        """Record a send event and hand the stamped message to ``to``'s mailbox."""
        with self._lock:
            self._ensure_alive()
            peer = self.directory.get(to)
            if peer is None or not peer.accepting():
                self.logger.error(f"Cannot send to {to}: unknown or terminated")
                raise UnknownRecipient(to)
            self._drain_mailbox()
            self.clock = self.clock.increment()
            self._append(Event(f"sent to {to}", self.clock, EventKind.SEND, peer=to))
            message = Message(self.identity, to, self.clock.value, payload)
            peer.deliver(message)
            return message

    def on_receive(self, message: Message) -> Event:
        with self._lock:
            self._ensure_alive()
            return self._receive(message)

    def receive(self, sender=None, timeout: Optional[float] = None) -> Message:
        """
        Block until a message (from ``sender``, if given) has been received.

        Every message handled while waiting is recorded. Messages from other
        senders stay available to later ``receive`` calls made while the task
        is still running.
        """
        with self._lock:
            self._waiting += 1
        try:
            return self._wait_for(sender, timeout)
        finally:
            with self._lock:
                self._waiting -= 1

    def _wait_for(self, sender, timeout):
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            with self._lock:
                self._ensure_alive()
                self._drain_mailbox()
                claimed = self._claim(sender)
            if claimed is not None:
                return claimed
            if self._stop_requested.is_set():
                raise ProcessTerminated(self.identity)

            wait = MAILBOX_POLL_INTERVAL
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise TimeoutError(
                        f"process {self.identity} got no message from {sender or 'anyone'}"
                    )
                wait = min(wait, remaining)
            try:
                message = self.mailbox.get(timeout=wait)
            except queue.Empty:
                continue
            with self._lock:
                self._consume(message)

    def deliver(self, message: Message):
        if message.receiver != self.identity:
            raise ValueError(
                f"message for {message.receiver} handed to process {self.identity}"
            )
        with self._state_lock:
            if self.state is ProcessState.TERMINATED:
                raise UnknownRecipient(self.identity)
            self._pending += 1
            self.mailbox.put(message)

    def get_log(self):
        """Snapshot of this process's events in insertion order."""
        with self._lock:
            return tuple(self.events)

    # ---- lifecycle -------------------------------------------------------

    def run(self):
        self._set_state(ProcessState.RUNNING)
        self.logger.info(f"Starting process {self.identity}")
        drain_on_exit = True
        try:
            self._run_task()
            with self._lock:
                self._unclaimed.clear()
            self.task_finished.set()
            if self.linger and not self._stop_requested.is_set():
                self._set_state(ProcessState.IDLE)
                self._serve_mailbox()
        except InvariantViolation:
            # _append already recorded the failure and marked the process terminated
            drain_on_exit = False
        except Exception as e:
            self.failure = e
            self.logger.exception(f"Process {self.identity} failed: {e}")
        finally:
            self.task_finished.set()
            self._terminate(drain=drain_on_exit)

    def stop(self):
        """Ask the process to terminate once its current action completes."""
        self._stop_requested.set()
        if self.state is ProcessState.CREATED:
            self.task_finished.set()
            self._terminate()

    def wait_stopped(self, timeout=None):
        self.join(timeout)

    def accepting(self) -> bool:
        with self._state_lock:
            return self.state is not ProcessState.TERMINATED

    def is_quiet(self) -> bool:
        """True once the task is done and no delivered message awaits handling."""
        with self._state_lock:
            pending = self._pending
        return self.task_finished.is_set() and pending == 0

    # ---- internals -------------------------------------------------------

    def _run_task(self):
        for step in self._steps:
            if self._stop_requested.is_set():
                self.logger.info("Stop requested, skipping remaining task steps")
                return
            with self._lock:
                self._drain_mailbox()
            try:
                step(self)
            except InvariantViolation:
                raise
            except ProcessTerminated as e:
                if self._stop_requested.is_set():
                    self.logger.info("Task interrupted by stop request")
                    return
                self.failure = e
                self.logger.error(f"Task step failed: {e}")
                return
            except Exception as e:
                self.failure = e
                self.logger.exception(f"Task step failed: {e}")
                return

    def _serve_mailbox(self):
        while not self._stop_requested.is_set():
            try:
                message = self.mailbox.get(timeout=MAILBOX_POLL_INTERVAL)
            except queue.Empty:
                continue
            with self._lock:
                self._consume(message)

    def _terminate(self, drain=True):
        with self._lock:
            with self._state_lock:
                if self.state is ProcessState.TERMINATED:
                    return
                self.state = ProcessState.TERMINATED
            # deliver() refuses new messages from here on
            leftovers = self._drain_mailbox() if drain else []
        if leftovers:
            self.logger.info(f"Received {len(leftovers)} message(s) while shutting down")
        self.logger.info(f"Process {self.identity} terminated")

    def _set_state(self, state):
        with self._state_lock:
            if self.state is not ProcessState.TERMINATED:
                self.state = state

    def _ensure_alive(self):
        if self.state is ProcessState.TERMINATED:
            raise ProcessTerminated(self.identity)

    def _drain_mailbox(self):
        handled = []
        while True:
            try:
                message = self.mailbox.get_nowait()
            except queue.Empty:
                return handled
            self._consume(message)
            handled.append(message)

    def _consume(self, message):
        try:
            self._receive(message)
            if self._waiting or self.state is ProcessState.RUNNING:
                self._unclaimed.append(message)
        finally:
            with self._state_lock:
                self._pending -= 1

    def _claim(self, sender):
        for message in self._unclaimed:
            if sender is None or message.sender == sender:
                self._unclaimed.remove(message)
                return message
        return None

    def _receive(self, message):
        if message.receiver != self.identity:
            raise ValueError(
                f"message for {message.receiver} handed to process {self.identity}"
            )
        self.clock = self.clock.merge_on_receive(message.counter)
        return self._append(
            Event(
                f"received from {message.sender}",
                self.clock,
                EventKind.RECEIVE,
                peer=message.sender,
            )
        )

    def _append(self, event):
        if event.owner != self.identity:
            self._abort(
                f"event owned by {event.owner} appended to log of {self.identity}"
            )
        if self.events and event.counter <= self.events[-1].counter:
            self._abort(
                f"clock of {self.identity} went from {self.events[-1].counter} "
                f"to {event.counter}"
            )
        self.events.append(event)
        self.logger.info(f"Event: {event.label}")
        return event

    def _abort(self, reason):
        """Record the violation, shut the process and raise, whichever thread got here."""
        violation = InvariantViolation(reason)
        self.failure = violation
        self._stop_requested.set()
        with self._state_lock:
            self.state = ProcessState.TERMINATED
        self.logger.critical(f"Invariant violated, aborting: {reason}")
        raise violation
