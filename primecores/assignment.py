"""
assignment.py

WorkAssignment: the immutable description of one worker's sub-range and
output file, plus the range partitioning used by the dispatcher.

    chunk = domain_max // count
    worker i  ->  [i * chunk, (i + 1) * chunk)

With clamp_last the final worker's end is moved to domain_max so the whole
domain is covered. Without it the integer-division remainder (at most
count - 1 numbers at the top of the domain) is left unexamined.
"""

import os
from dataclasses import dataclass

# ULONG_MAX on LP64 platforms
DEFAULT_DOMAIN_MAX = 2**64 - 1

DESTINATION_TEMPLATE = "PRIMES_THREAD_{index}.TXT"


@dataclass(frozen=True)
class WorkAssignment:
    """
    One worker's task.

    Attributes:
      - index (int): 0-based worker ordinal, also the execution unit ordinal
      - range_start (int): first candidate (inclusive)
      - range_end (int): end of the range (exclusive)
      - destination (str): path of the output file
    """
    index: int
    range_start: int
    range_end: int
    destination: str

    def __post_init__(self):
        if self.index < 0:
            raise ValueError(f"Worker index must be >= 0, got {self.index}.")
        if not 0 <= self.range_start < self.range_end:
            raise ValueError(
                f"Worker {self.index}: invalid range [{self.range_start}..{self.range_end})."
            )

    @property
    def size(self) -> int:
        return self.range_end - self.range_start


def destination_for(index, output_dir):
    return os.path.join(output_dir, DESTINATION_TEMPLATE.format(index=index))


def partition(domain_max, count, output_dir=None, clamp_last=True):
    """
    Split [0, domain_max) into `count` contiguous, disjoint assignments.

    Arguments:
      domain_max (int): exclusive upper bound of the search
      count (int): number of workers
      output_dir (str|None): directory for the output files; defaults to the
          current working directory
      clamp_last (bool): end the last assignment exactly at domain_max

    Returns:
      list[WorkAssignment]: ordered by index

    Raises ValueError when count < 1 or when domain_max is too small to give
    every worker at least one number.
    """
    if count < 1:
        raise ValueError(f"Worker count must be >= 1, got {count}.")
    if domain_max < count:
        raise ValueError(
            f"Domain [0..{domain_max}) is too small to split across {count} worker(s)."
        )
    if output_dir is None:
        output_dir = os.getcwd()

    chunk = domain_max // count
    assignments = []
    for i in range(count):
        start = i * chunk
        end = start + chunk
        if clamp_last and i == count - 1:
            end = domain_max
        assignments.append(WorkAssignment(i, start, end, destination_for(i, output_dir)))
    return assignments
