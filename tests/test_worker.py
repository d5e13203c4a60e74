"""
Unit tests for the worker enumeration loop.
"""

import errno
import multiprocessing
import os
import threading

import pytest

from primecores.assignment import WorkAssignment
from primecores import worker
from primecores.cancellation import CancellationSignal
from primecores.errors import DestinationError
from primecores.topology import worker_stack_size
from primecores.worker import WorkerOutcome, run_worker, worker_main


def make_assignment(tmp_path, start, end, index=0):
    return WorkAssignment(index, start, end, str(tmp_path / f"PRIMES_THREAD_{index}.TXT"))


class TestRunWorker:

    def test_ten_to_twenty(self, tmp_path, read_primes):
        a = make_assignment(tmp_path, 10, 20)
        outcome = run_worker(a, CancellationSignal())
        assert outcome.ok is True
        assert outcome.cancelled is False
        assert outcome.primes_found == 4
        assert outcome.last_candidate == 19
        assert read_primes(a.destination) == [11, 13, 17, 19]

    def test_file_format(self, tmp_path):
        a = make_assignment(tmp_path, 10, 20)
        run_worker(a, CancellationSignal())
        with open(a.destination, "rb") as f:
            assert f.read() == b"11\n13\n17\n19\n"

    def test_range_from_zero_includes_zero_and_one(self, tmp_path, read_primes):
        a = make_assignment(tmp_path, 0, 10)
        run_worker(a, CancellationSignal())
        assert read_primes(a.destination) == [0, 1, 2, 3, 5, 7]

    def test_preset_signal_writes_nothing(self, tmp_path):
        s = CancellationSignal()
        s.set()
        a = make_assignment(tmp_path, 10, 20)
        outcome = run_worker(a, s)
        assert outcome.ok is True
        assert outcome.cancelled is True
        assert outcome.primes_found == 0
        assert outcome.last_candidate is None
        assert os.path.getsize(a.destination) == 0

    def test_stop_request(self, tmp_path):
        stop = CancellationSignal()
        stop.set()
        outcome = run_worker(make_assignment(tmp_path, 10, 20), CancellationSignal(), stop)
        assert outcome.ok is True
        assert outcome.cancelled is True

    def test_cancel_midway_keeps_ascending_prefix(self, tmp_path, read_primes, countdown_signal):
        a = make_assignment(tmp_path, 0, 100)
        outcome = run_worker(a, countdown_signal(30))
        assert outcome.cancelled is True
        assert outcome.last_candidate == 29
        primes = read_primes(a.destination)
        assert primes == [0, 1, 2, 3, 5, 7, 11, 13, 17, 19, 23, 29]
        assert outcome.primes_found == len(primes)

    def test_truncates_previous_content(self, tmp_path, read_primes):
        a = make_assignment(tmp_path, 10, 20)
        with open(a.destination, "w") as f:
            f.write("999\n" * 50)
        run_worker(a, CancellationSignal())
        run_worker(a, CancellationSignal())
        assert read_primes(a.destination) == [11, 13, 17, 19]

    def test_unopenable_destination(self, tmp_path):
        missing = tmp_path / "missing" / "PRIMES_THREAD_0.TXT"
        a = WorkAssignment(0, 10, 20, str(missing))
        outcome = run_worker(a, CancellationSignal())
        assert outcome.ok is False
        assert str(missing) in outcome.reason
        assert outcome.primes_found == 0
        assert not missing.exists()

    def test_directory_destination(self, tmp_path):
        target = tmp_path / "PRIMES_THREAD_0.TXT"
        target.mkdir()
        outcome = run_worker(WorkAssignment(0, 10, 20, str(target)), CancellationSignal())
        assert outcome.ok is False


class TestWorkerOutcome:

    def test_failure_has_no_primes(self):
        o = WorkerOutcome.failure(2, "denied")
        assert (o.index, o.ok, o.reason, o.primes_found) == (2, False, "denied", 0)

    def test_success_defaults(self):
        o = WorkerOutcome.success(1)
        assert o.ok is True and o.reason is None and o.cancelled is False


class TestWorkerMain:

    def test_sends_outcome(self, tmp_path, read_primes):
        parent_conn, child_conn = multiprocessing.Pipe(duplex=False)
        a = make_assignment(tmp_path, 10, 20, index=5)
        try:
            worker_main(a, CancellationSignal(), CancellationSignal(), child_conn,
                        stack_size=worker_stack_size())
        finally:
            threading.stack_size(0)
        outcome = parent_conn.recv()
        assert outcome.index == 5
        assert outcome.ok is True
        assert read_primes(a.destination) == [11, 13, 17, 19]


class FullDiskFile:
    """File object whose writes fail as on a full filesystem."""
    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def write(self, text):
        raise OSError(errno.ENOSPC, "No space left on device")

    def flush(self):
        pass


class TestDestinationError:

    def test_open_raises_destination_error(self, tmp_path):
        missing = str(tmp_path / "missing" / "PRIMES_THREAD_0.TXT")
        with pytest.raises(DestinationError) as excinfo:
            worker._open_destination(missing)
        assert excinfo.value.path == missing
        assert excinfo.value.reason

    def test_write_failure_is_reported(self, tmp_path, monkeypatch):
        monkeypatch.setattr(worker, "_open_destination", lambda path: FullDiskFile())
        outcome = run_worker(make_assignment(tmp_path, 10, 20), CancellationSignal())
        assert outcome.ok is False
        assert "No space left on device" in outcome.reason
        assert outcome.primes_found == 0

    def test_sweep_raises_on_write_failure(self, tmp_path):
        with pytest.raises(DestinationError):
            worker._sweep(FullDiskFile(), make_assignment(tmp_path, 10, 20), CancellationSignal(), None)
