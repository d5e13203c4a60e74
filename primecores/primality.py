"""
primality.py

Trial-division primality predicate used by every worker.

Every integer in [2, num) is tried as a divisor, with no square-root bound
and no even-number shortcut. The divisor range is empty for 0 and 1, so both
are reported as prime.
"""


def is_prime(num: int) -> bool:
    denom = 2
    while denom < num:
        if num % denom == 0:
            return False
        denom += 1
    return True
