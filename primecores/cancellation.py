"""
cancellation.py

Process-wide cooperative cancellation.

CancellationSignal is a single shared byte in memory visible to every worker
process. It only moves from 0 to 1: there is a set() but no clear(). The quit
handler is its only writer; workers read it once per candidate number.
"""

import multiprocessing
import signal
from contextlib import contextmanager

DEFAULT_QUIT_SIGNALS = tuple(
    getattr(signal, name) for name in ("SIGQUIT", "SIGINT") if hasattr(signal, name)
)


class CancellationSignal:
    """
    Monotonic shared flag backed by a lock-free RawValue. set() never blocks,
    so it can be called from a signal handler.
    """
    def __init__(self, ctx=None):
        ctx = ctx or multiprocessing
        self._flag = ctx.RawValue("b", 0)

    def set(self):
        self._flag.value = 1

    def is_set(self) -> bool:
        return self._flag.value != 0

    def __repr__(self):
        return f"CancellationSignal(set={self.is_set()})"


def install_quit_handler(cancel_signal, signums=DEFAULT_QUIT_SIGNALS):
    """
    Make every signal in `signums` set `cancel_signal`.

    Must be called from the main thread. Returns {signum: previous_handler}
    so the caller can restore them with restore_handlers().
    """
    def _handle_quit(signum, frame):
        cancel_signal.set()

    previous = {}
    for signum in signums:
        previous[signum] = signal.signal(signum, _handle_quit)
    return previous


def restore_handlers(previous):
    for signum, handler in previous.items():
        signal.signal(signum, handler)


@contextmanager
def quit_signals_blocked(signums=DEFAULT_QUIT_SIGNALS):
    """
    Hold back `signums` in the calling thread for the duration of the block.

    A process started inside the block inherits the mask, so a quit signal
    that reaches it before worker_main() has installed its handler stays
    pending instead of killing it. Signals that reach this process meanwhile
    are delivered when the block exits.
    """
    if not hasattr(signal, "pthread_sigmask"):
        yield
        return
    previous = signal.pthread_sigmask(signal.SIG_BLOCK, signums)
    try:
        yield
    finally:
        signal.pthread_sigmask(signal.SIG_SETMASK, previous)


def unblock_quit_signals(signums=DEFAULT_QUIT_SIGNALS):
    if hasattr(signal, "pthread_sigmask"):
        signal.pthread_sigmask(signal.SIG_UNBLOCK, signums)
