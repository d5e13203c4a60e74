"""
Unit tests for the trial-division primality predicate.
"""

import pytest

from primecores.primality import is_prime


class TestIsPrime:

    @pytest.mark.parametrize("num", [2, 3, 5, 7, 11, 13, 97, 7919])
    def test_primes(self, num):
        assert is_prime(num) is True

    @pytest.mark.parametrize("num", [4, 6, 9, 15, 25, 91, 7917, 7921])
    def test_composites(self, num):
        assert is_prime(num) is False

    def test_zero_and_one_are_reported_prime(self):
        """The divisor range [2, num) is empty, so 0 and 1 pass."""
        assert is_prime(0) is True
        assert is_prime(1) is True

    def test_matches_definition_below_200(self):
        for num in range(2, 200):
            has_divisor = any(num % d == 0 for d in range(2, num))
            assert is_prime(num) is (not has_divisor)
