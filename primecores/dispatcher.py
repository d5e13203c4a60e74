"""
dispatcher.py

Splits [0, domain_max) across the machine's execution units and runs one
pinned worker process per unit.

The batch is supervised as a unit:
  - the quit handler is installed before the first worker starts
  - if any launch fails, every worker already started is asked to stop,
    given `cancel_grace` seconds, then terminated; the batch fails
  - otherwise every worker is joined in order; a join failure is logged and
    the remaining workers are still joined

State per batch:
  IDLE -> PARTITIONING -> LAUNCHING -> RUNNING -> JOINING -> TERMINATED
  LAUNCHING -> FAILED (spawn failure)
"""

import logging
import multiprocessing
import os
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from primecores.assignment import DEFAULT_DOMAIN_MAX, partition as partition_range
from primecores.cancellation import (
    DEFAULT_QUIT_SIGNALS,
    CancellationSignal,
    install_quit_handler,
    quit_signals_blocked,
    restore_handlers,
)
from primecores.errors import AllocationError, JoinError, SpawnError, UnitCountError
from primecores.topology import available_units, pin_to_unit, pinning_supported, worker_stack_size
from primecores.worker import worker_main

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1


class DispatchState(Enum):
    IDLE = "idle"
    PARTITIONING = "partitioning"
    LAUNCHING = "launching"
    RUNNING = "running"
    JOINING = "joining"
    TERMINATED = "terminated"
    FAILED = "failed"


@dataclass
class DispatchConfig:
    """
    Tunables for one dispatch. The defaults reproduce a plain run with no
    arguments: the full unsigned 64-bit domain, one worker per available
    core, output in the current directory.

    Attributes:
      - domain_max (int): exclusive upper bound of the search
      - output_dir (str|None): where PRIMES_THREAD_<i>.TXT go (cwd if None)
      - unit_count (int|None): number of workers (discovered if None)
      - stack_multiplier (int): worker stack = multiplier x platform minimum
      - clamp_last (bool): last worker's range ends exactly at domain_max
      - strict_outcomes (bool): a worker that cannot write its file fails the batch
      - pin_workers (bool): bind each worker to its execution unit
      - quit_signals (tuple[int]): signals that request cancellation
      - start_method (str|None): multiprocessing start method
      - cancel_grace (float): seconds a cancelled worker gets before terminate()
    """
    domain_max: int = DEFAULT_DOMAIN_MAX
    output_dir: Optional[str] = None
    unit_count: Optional[int] = None
    stack_multiplier: int = 8
    clamp_last: bool = True
    strict_outcomes: bool = False
    pin_workers: bool = True
    quit_signals: Tuple[int, ...] = DEFAULT_QUIT_SIGNALS
    start_method: Optional[str] = None
    cancel_grace: float = 5.0


class WorkerHandle:
    """
    Dispatcher-side bookkeeping for one running worker process.
    """
    def __init__(self, assignment, process, conn, stop, unit=None):
        self.assignment = assignment
        self.process = process
        self.conn = conn
        self.stop = stop
        self.unit = unit
        self.cancel_requested = False

    @property
    def index(self):
        return self.assignment.index

    def cancel(self):
        """Ask the worker to stop at its next candidate."""
        self.stop.set()
        self.cancel_requested = True

    def is_alive(self):
        return self.process.is_alive()

    def terminate(self):
        self.process.terminate()
        self.process.join()

    def join(self, timeout=None):
        """
        Wait for the worker and collect its WorkerOutcome.
        Raises JoinError if it is still running after `timeout`, exited with a
        nonzero code, or never sent an outcome.
        """
        self.process.join(timeout)
        if self.process.is_alive():
            raise JoinError(f"Worker {self.index} still running after {timeout}s.", self.index)

        outcome = None
        try:
            if self.conn.poll():
                outcome = self.conn.recv()
        except (EOFError, OSError) as e:
            logger.debug(f"[Dispatcher] Worker {self.index} pipe closed: {e}")
        finally:
            self.conn.close()

        exitcode = self.process.exitcode
        if exitcode != 0:
            raise JoinError(f"Worker {self.index} exited with code {exitcode}.", self.index)
        if outcome is None:
            raise JoinError(f"Worker {self.index} exited without reporting an outcome.", self.index)
        return outcome


class Dispatcher:
    """
    Runs one batch of workers described by a DispatchConfig.

    Usage:
      dispatcher = Dispatcher(DispatchConfig(domain_max=10**6))
      status = dispatcher.run()
      for outcome in dispatcher.outcomes:
          ...
    """
    def __init__(self, config=None, cancel_signal=None):
        self.config = config or DispatchConfig()
        self.ctx = multiprocessing.get_context(self.config.start_method)
        self.cancel_signal = cancel_signal or CancellationSignal(self.ctx)
        self.state = DispatchState.IDLE
        self.handles = []
        self.outcomes = []
        self._units = None
        self._stack_size = None
        self._previous_handlers = None

    def determine_unit_count(self):
        """
        Number of workers to run: the configured override, else the number of
        CPUs this process may run on. Raises UnitCountError if < 1.
        """
        if self.config.unit_count is not None:
            if self.config.unit_count < 1:
                raise UnitCountError(f"Worker count must be >= 1, got {self.config.unit_count}.")
            return self.config.unit_count
        self._units = available_units()
        return len(self._units)

    def partition(self, domain_max, count):
        output_dir = self.config.output_dir or os.getcwd()
        try:
            return partition_range(domain_max, count, output_dir, self.config.clamp_last)
        except MemoryError as e:
            raise AllocationError(f"Memory allocation error for {count} assignment(s).") from e

    def _unit_for(self, index):
        if self._units is None:
            self._units = available_units()
        return self._units[index % len(self._units)]

    def launch(self, assignment):
        """
        Start one worker process for `assignment`, pinned to its execution
        unit. Raises SpawnError if the process cannot be created or pinned.
        """
        index = assignment.index
        if self._stack_size is None:
            self._stack_size = worker_stack_size(self.config.stack_multiplier)

        unit = None
        if self.config.pin_workers and pinning_supported():
            try:
                unit = self._unit_for(index)
            except UnitCountError as e:
                raise SpawnError(f"Worker {index}: no execution unit to bind to: {e}", index) from e

        try:
            stop = CancellationSignal(self.ctx)
            parent_conn, child_conn = self.ctx.Pipe(duplex=False)
        except OSError as e:
            raise SpawnError(f"Worker {index}: could not allocate worker resources: {e}", index) from e

        process = self.ctx.Process(
            target=worker_main,
            args=(assignment, self.cancel_signal, stop, child_conn,
                  self._stack_size, self.config.quit_signals, unit),
            name=f"primes-worker-{index}",
        )
        try:
            # the child unblocks these once its own quit handler is in place
            with quit_signals_blocked(self.config.quit_signals):
                process.start()
        except (OSError, ValueError, RuntimeError) as e:
            parent_conn.close()
            child_conn.close()
            raise SpawnError(f"Worker {index}: could not start process: {e}", index) from e
        # the parent only reads
        child_conn.close()

        if unit is not None:
            try:
                pin_to_unit(process.pid, unit)
            except OSError as e:
                process.terminate()
                process.join()
                parent_conn.close()
                raise SpawnError(f"Worker {index}: could not pin to CPU {unit}: {e}", index) from e

        logger.debug(f"[Dispatcher] Worker {index} pid={process.pid} cpu={unit} "
                     f"range=[{assignment.range_start}..{assignment.range_end})")
        return WorkerHandle(assignment, process, parent_conn, stop, unit)

    def _rollback(self):
        """Cancel, then reap, every worker launched so far in this batch."""
        for handle in self.handles:
            handle.cancel()
            logger.info(f"[Dispatcher] Cancellation requested for worker {handle.index}.")

        deadline = time.monotonic() + self.config.cancel_grace
        for handle in self.handles:
            handle.process.join(max(0.0, deadline - time.monotonic()))
            if handle.is_alive():
                logger.warning(f"[Dispatcher] Worker {handle.index} ignored cancellation, terminating.")
                handle.terminate()
            handle.conn.close()

    def supervise(self, assignments):
        """
        Launch every assignment, then join every worker. Each call starts a
        fresh batch: handles and outcomes of a previous batch are discarded.

        Returns:
          bool: True when all launches and joins succeeded (and, with
          strict_outcomes, every worker wrote its file without error).
        """
        self.handles = []
        self.outcomes = []
        self.state = DispatchState.LAUNCHING
        for assignment in assignments:
            try:
                self.handles.append(self.launch(assignment))
            except SpawnError as e:
                logger.error(f"[Dispatcher] Worker creation failed: {e}")
                self._rollback()
                self.state = DispatchState.FAILED
                return False

        self.state = DispatchState.RUNNING
        logger.info(f"[Dispatcher] {len(self.handles)} worker(s) running.")

        self.state = DispatchState.JOINING
        ok = True
        for handle in self.handles:
            try:
                outcome = handle.join()
            except JoinError as e:
                logger.error(f"[Dispatcher] Worker join error: {e}")
                ok = False
                continue
            self.outcomes.append(outcome)
            if not outcome.ok:
                logger.warning(f"[Dispatcher] Worker {outcome.index} failed: {outcome.reason}")
                if self.config.strict_outcomes:
                    ok = False

        self.state = DispatchState.TERMINATED
        return ok

    def install_cancellation_handler(self):
        self._previous_handlers = install_quit_handler(self.cancel_signal, self.config.quit_signals)

    def restore_cancellation_handler(self):
        if self._previous_handlers is not None:
            restore_handlers(self._previous_handlers)
            self._previous_handlers = None

    def run(self):
        """
        Full lifecycle. Returns EXIT_SUCCESS or EXIT_FAILURE.
        """
        self.install_cancellation_handler()
        try:
            try:
                count = self.determine_unit_count()
                self.state = DispatchState.PARTITIONING
                assignments = self.partition(self.config.domain_max, count)
                self._stack_size = worker_stack_size(self.config.stack_multiplier)
            except (UnitCountError, AllocationError, ValueError) as e:
                logger.error(f"[Dispatcher] {e}")
                self.state = DispatchState.FAILED
                return EXIT_FAILURE

            logger.info(f"[Dispatcher] domain=[0..{self.config.domain_max}), workers={count}")
            for a in assignments:
                logger.info(f"  worker#{a.index}: [{a.range_start}..{a.range_end}) ({a.size} numbers) -> {a.destination}")

            return EXIT_SUCCESS if self.supervise(assignments) else EXIT_FAILURE
        finally:
            self.restore_cancellation_handler()
