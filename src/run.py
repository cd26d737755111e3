# run.py
import logging
import os
import random
import time
from typing import Optional

import ordering
from errors import InvariantViolation
from ordering import ProcessRanking
from process import MAILBOX_POLL_INTERVAL, Process

TOTAL_PROCESSES = int(os.environ.get("TOTAL_PROCESSES", "3"))
STEPS = int(os.environ.get("STEPS", "5"))
RUN_TIMEOUT = float(os.environ.get("RUN_TIMEOUT", "10"))
LOG_DIR = os.environ.get("LOG_DIR") or None
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()


class Simulation:
    """
    Starts processes, keeps the identity -> process directory they use to
    find each other, and collects their logs once things go quiet.
    """

    def __init__(
        self,
        ranking: Optional[ProcessRanking] = None,
        log_dir=None,
        log_level=logging.INFO,
    ):
        self.ranking = ranking or ProcessRanking()
        self.log_dir = log_dir
        self.log_level = log_level
        self.processes = {}

    def start(self, identity, task=None, linger=True, process_logger=None) -> Process:
        process = self._create(identity, task, linger, process_logger)
        process.start()
        return process

    def start_all(self, tasks, linger=True):
        """Register every process before any of them runs, so tasks can address all peers."""
        created = [self._create(identity, task, linger) for identity, task in tasks.items()]
        for process in created:
            process.start()
        return created

    def _create(self, identity, task, linger, process_logger=None):
        if identity in self.processes:
            raise ValueError(f"process {identity} already started")
        process = Process(
            identity,
            task,
            directory=self.processes,
            linger=linger,
            process_logger=process_logger,
            log_dir=self.log_dir,
            log_level=self.log_level,
        )
        self.processes[identity] = process
        return process

    def record_internal(self, handle: Process, label):
        return handle.record_internal(label)

    def send(self, handle: Process, to, payload=None):
        return handle.send(to, payload)

    def get_log(self, handle: Process):
        return handle.get_log()

    def logs(self):
        return {identity: p.get_log() for identity, p in self.processes.items()}

    def total_order(self, reverse=False):
        return ordering.total_order(self.logs(), self.ranking, reverse=reverse)

    def quiesce(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until every task has finished and every delivered message has
        been received. Returns False if that did not happen within ``timeout``.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        processes = list(self.processes.values())
        self._raise_failures()
        # receiving never sends, so once all tasks are done in-flight work only shrinks
        for process in processes:
            remaining = None if deadline is None else max(0, deadline - time.monotonic())
            if not process.task_finished.wait(remaining):
                self._raise_failures()
                return False
        while not all(p.is_quiet() or not p.accepting() for p in processes):
            self._raise_failures()
            if deadline is not None and time.monotonic() >= deadline:
                return False
            time.sleep(MAILBOX_POLL_INTERVAL)
        self._raise_failures()
        return True

    def stop(self, timeout=None):
        for process in self.processes.values():
            process.stop()
        for process in self.processes.values():
            if process.is_alive():
                process.wait_stopped(timeout)

    def failures(self):
        return {
            identity: p.failure
            for identity, p in self.processes.items()
            if p.failure is not None
        }

    def _raise_failures(self):
        for process in self.processes.values():
            if isinstance(process.failure, InvariantViolation):
                raise process.failure

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()


def random_task(steps, rng=None):
    """Demo workload: each step sends to one or two peers or records an internal event."""
    rng = rng or random.Random()

    def task(process: Process):
        peer_ids = sorted(
            (i for i in process.directory if i != process.identity), key=str
        )
        for step in range(steps):
            action = rng.randint(1, 10)
            if action == 1 and peer_ids:
                process.send(peer_ids[0], payload=f"step {step}")
            elif action == 2 and len(peer_ids) >= 2:
                process.send(peer_ids[1], payload=f"step {step}")
            elif action == 3 and len(peer_ids) >= 2:
                process.send(peer_ids[0], payload=f"step {step}")
                process.send(peer_ids[1], payload=f"step {step}")
            else:
                process.record_internal(f"internal event {step}")

    return task


def main():
    seed = os.environ.get("SEED")
    rng = random.Random(int(seed)) if seed is not None else random.Random()
    identities = [f"P{i}" for i in range(1, TOTAL_PROCESSES + 1)]

    with Simulation(
        ProcessRanking(identities),
        log_dir=LOG_DIR,
        log_level=getattr(logging, LOG_LEVEL, logging.INFO),
    ) as simulation:
        tasks = {
            i: random_task(STEPS, random.Random(rng.randrange(2**32)))
            for i in identities
        }
        simulation.start_all(tasks)
        if not simulation.quiesce(RUN_TIMEOUT):
            print("Simulation did not quiesce before the timeout")
        events = simulation.total_order()
        ordering.check_send_receive(simulation.logs())

    print(ordering.format_order(events))


if __name__ == "__main__":
    main()
