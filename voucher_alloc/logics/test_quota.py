"""
Unit tests for the Hamilton quota calculation.
"""

import math

import pytest

from voucher_alloc.logics.domain import StaffMember
from voucher_alloc.logics.quota import compute_quota, even_split


def make_staff(*weights):
    return [StaffMember(code=f"U{i}", weight_pct=w) for i, w in enumerate(weights)]


class TestEvenSplit:

    def test_extra_rows_go_to_first_staff(self):
        assert even_split(3, 10) == [4, 3, 3]

    def test_no_staff(self):
        assert even_split(0, 5) == []


class TestComputeQuota:
    """compute_quota: sums to the row count, respects weights."""

    def test_weighted_split(self):
        assert compute_quota(make_staff(200, 100, 100), 8) == [4, 2, 2]

    def test_equal_weights_tie_goes_to_earlier_staff(self):
        assert compute_quota(make_staff(100, 100, 100), 10) == [4, 3, 3]

    def test_largest_remainder_wins(self):
        # shares 1.5, 2.7, 0.8 -> floors 1, 2, 0; remainders .5, .7, .8
        assert compute_quota(make_staff(30, 54, 16), 5) == [1, 3, 1]

    def test_zero_rows(self):
        assert compute_quota(make_staff(100, 50), 0) == [0, 0]

    def test_no_staff(self):
        assert compute_quota([], 10) == []

    def test_single_staff_gets_everything(self):
        assert compute_quota(make_staff(150), 10) == [10]

    def test_zero_total_weight_falls_back_to_even_split(self):
        staff = [StaffMember(code="A", weight_pct=0), StaffMember(code="B", weight_pct=0)]
        assert compute_quota(staff, 5) == [3, 2]

    def test_negative_rows_raise(self):
        with pytest.raises(ValueError):
            compute_quota(make_staff(100), -1)

    @pytest.mark.parametrize("weights, total", [
        ((100, 100, 100), 7),
        ((33.3, 66.7), 13),
        ((1, 1, 1, 1, 1, 1, 1), 100),
        ((250, 50, 100, 75), 37),
    ])
    def test_conservation_and_ceiling_bound(self, weights, total):
        quotas = compute_quota(make_staff(*weights), total)
        assert sum(quotas) == total
        total_weight = sum(weights)
        for quota, weight in zip(quotas, weights):
            assert quota >= 0
            assert quota <= math.ceil(total * weight / total_weight)
