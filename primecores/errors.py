"""
errors.py

Exception taxonomy for the per-core prime sweep.

  - UnitCountError   -> execution units cannot be enumerated (fatal)
  - AllocationError  -> dispatcher bookkeeping cannot be built (fatal)
  - SpawnError       -> a worker process cannot be created (fatal to the batch)
  - DestinationError -> a worker cannot open/write its output file (local)
  - JoinError        -> a worker cannot be waited on cleanly (per worker)
"""


class PrimeCoresError(Exception):
    """Base class for every error raised by primecores."""


class UnitCountError(PrimeCoresError):
    """The number of available execution units is unknown or less than 1."""


class AllocationError(PrimeCoresError):
    """The dispatcher could not allocate its per-worker bookkeeping."""


class SpawnError(PrimeCoresError):
    """
    A worker could not be created.

    Attributes:
      - index (int|None): ordinal of the worker whose launch failed
    """
    def __init__(self, message, index=None):
        super().__init__(message)
        self.index = index


class DestinationError(PrimeCoresError):
    """A worker's output file could not be opened or written."""
    def __init__(self, path, reason):
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class JoinError(PrimeCoresError):
    """A worker terminated abnormally or never reported its outcome."""
    def __init__(self, message, index=None):
        super().__init__(message)
        self.index = index
