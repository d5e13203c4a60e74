"""
Pytest configuration for primecores tests.
"""

import signal

import pytest

from primecores.cancellation import DEFAULT_QUIT_SIGNALS


class CountdownSignal:
    """Cancellation signal that becomes set after `remaining` reads."""
    def __init__(self, remaining):
        self.remaining = remaining

    def set(self):
        self.remaining = 0

    def is_set(self):
        if self.remaining <= 0:
            return True
        self.remaining -= 1
        return False


@pytest.fixture
def countdown_signal():
    return CountdownSignal


@pytest.fixture(autouse=True)
def restore_quit_handlers():
    """Tests install quit handlers; put the originals back afterwards."""
    saved = {signum: signal.getsignal(signum) for signum in DEFAULT_QUIT_SIGNALS}
    yield
    for signum, handler in saved.items():
        signal.signal(signum, handler)


def read_lines(path):
    with open(path) as f:
        return [line.rstrip("\n") for line in f]


@pytest.fixture
def read_primes():
    def _read(path):
        return [int(x) for x in read_lines(path)]
    return _read
