"""
worker.py

A worker owns one WorkAssignment: it opens its output file (truncating any
previous run), walks range_start..range_end-1 in ascending order, checks the
cancellation signal before every candidate and writes each prime on its own
line.

run_worker() is the in-process loop; worker_main() is the entry point of a
worker process started by the dispatcher.
"""

import logging
import sys
import threading
import time
from dataclasses import dataclass
from typing import Optional

from primecores.cancellation import (
    DEFAULT_QUIT_SIGNALS,
    install_quit_handler,
    unblock_quit_signals,
)
from primecores.errors import DestinationError
from primecores.primality import is_prime
from primecores.topology import bind_memory_to_unit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkerOutcome:
    """
    Result reported by one worker.

    Attributes:
      - index (int): worker ordinal
      - ok (bool): False only when the destination could not be opened/written
      - reason (str|None): failure text
      - primes_found (int): number of lines written
      - last_candidate (int|None): last number examined
      - cancelled (bool): stopped early on the cancellation signal
      - elapsed (float): seconds spent in the loop
    """
    index: int
    ok: bool
    reason: Optional[str] = None
    primes_found: int = 0
    last_candidate: Optional[int] = None
    cancelled: bool = False
    elapsed: float = 0.0

    @classmethod
    def success(cls, index, primes_found=0, last_candidate=None, cancelled=False, elapsed=0.0):
        return cls(index, True, None, primes_found, last_candidate, cancelled, elapsed)

    @classmethod
    def failure(cls, index, reason, elapsed=0.0):
        return cls(index, False, reason, elapsed=elapsed)


def _stop_requested(cancel_signal, stop):
    return cancel_signal.is_set() or (stop is not None and stop.is_set())


def _open_destination(path):
    """Open `path` fresh for writing. Raises DestinationError."""
    try:
        return open(path, "w", encoding="ascii")
    except OSError as e:
        raise DestinationError(path, e.strerror or str(e)) from e


def _sweep(out, assignment, cancel_signal, stop):
    """
    Write every prime of the assignment's range to `out`.
    Returns (primes_found, last_candidate, cancelled). Raises DestinationError.
    """
    found = 0
    last = None
    cancelled = False
    try:
        for num in range(assignment.range_start, assignment.range_end):
            if _stop_requested(cancel_signal, stop):
                cancelled = True
                break
            last = num
            if is_prime(num):
                out.write(f"{num}\n")
                found += 1
        out.flush()
    except OSError as e:
        raise DestinationError(assignment.destination, e.strerror or str(e)) from e
    return found, last, cancelled


def run_worker(assignment, cancel_signal, stop=None) -> WorkerOutcome:
    """
    Enumerate primes in the assignment's range into its destination.

    Arguments:
      assignment (WorkAssignment): range and destination
      cancel_signal (CancellationSignal): process-wide quit flag
      stop (CancellationSignal|None): per-worker cancel request from the dispatcher

    Returns:
      WorkerOutcome: success on completion or cancellation, failure if the
      destination cannot be opened or written.
    """
    label = f"Worker {assignment.index}"
    t0 = time.monotonic()

    try:
        out = _open_destination(assignment.destination)
    except DestinationError as e:
        logger.error(f"[{label}] Could not open {e.path}: {e.reason}")
        return WorkerOutcome.failure(assignment.index, str(e), time.monotonic() - t0)

    try:
        with out:
            found, last, cancelled = _sweep(out, assignment, cancel_signal, stop)
    except DestinationError as e:
        logger.error(f"[{label}] Could not write {e.path}: {e.reason}")
        return WorkerOutcome.failure(assignment.index, str(e), time.monotonic() - t0)

    elapsed = time.monotonic() - t0
    state = "cancelled" if cancelled else "done"
    logger.info(
        f"[{label}] handling [{assignment.range_start}..{assignment.range_end}): "
        f"found {found} primes, {state}. Elapsed={elapsed:.2f}s"
    )
    return WorkerOutcome.success(assignment.index, found, last, cancelled, elapsed)


def worker_main(assignment, cancel_signal, stop, conn, stack_size=None,
                quit_signals=DEFAULT_QUIT_SIGNALS, unit=None):
    """
    Worker process entry point.

      - Routes quit signals to the shared cancellation flag
      - Optionally binds memory to the NUMA node of `unit`
      - Runs run_worker() on a thread with `stack_size` bytes of stack
      - Sends the WorkerOutcome back through `conn`

    Exits with status 1 if the loop raised instead of returning an outcome.
    """
    label = f"Worker {assignment.index}"
    install_quit_handler(cancel_signal, quit_signals)
    # launched with quit signals blocked; anything pending lands in the handler now
    unblock_quit_signals(quit_signals)
    if unit is not None:
        bind_memory_to_unit(unit, label)

    result = []

    def _target():
        result.append(run_worker(assignment, cancel_signal, stop))

    if stack_size:
        threading.stack_size(stack_size)
    t = threading.Thread(target=_target, name=f"primes-{assignment.index}")
    t.start()
    # short joins keep the main thread responsive to quit signals
    while t.is_alive():
        t.join(0.5)

    if not result:
        logger.error(f"[{label}] enumeration thread exited without an outcome")
        conn.close()
        sys.exit(1)

    conn.send(result[0])
    conn.close()
