"""Tests for Stripe timestamp conversion and month-end calculation."""

import math
from datetime import datetime

import pytest

from app.billing.timestamps import end_of_month, from_unix_timestamp


class TestFromUnixTimestamp:
    def test_integer_epoch(self):
        assert from_unix_timestamp(1700000000) == datetime(2023, 11, 14, 22, 13, 20)

    def test_result_is_naive(self):
        assert from_unix_timestamp(1700000000).tzinfo is None

    def test_numeric_string(self):
        assert from_unix_timestamp("1700000000") == datetime(2023, 11, 14, 22, 13, 20)
        assert from_unix_timestamp(" 1700000000.5 ") == datetime(2023, 11, 14, 22, 13, 20, 500000)

    @pytest.mark.parametrize(
        "value",
        [
            None,
            True,
            False,
            0,
            -1,
            -1700000000,
            math.nan,
            math.inf,
            -math.inf,
            "",
            "soon",
            "nan",
            [1700000000],
            {"ts": 1700000000},
            object(),
            10**20,
            1e300,
        ],
    )
    def test_unusable_values_return_none(self, value):
        assert from_unix_timestamp(value) is None


class TestEndOfMonth:
    def test_fifteenth_of_31_day_month(self):
        assert end_of_month(datetime(2026, 1, 15, 8, 30)) == datetime(2026, 1, 31, 23, 59, 59, 999999)

    def test_february_leap_year(self):
        assert end_of_month(datetime(2028, 2, 3)) == datetime(2028, 2, 29, 23, 59, 59, 999999)

    def test_february_common_year(self):
        assert end_of_month(datetime(2027, 2, 28, 23, 59, 59, 999999)) == datetime(2027, 2, 28, 23, 59, 59, 999999)

    def test_thirty_day_month(self):
        assert end_of_month(datetime(2026, 4, 1)).day == 30
