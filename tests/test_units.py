"""Tests for nick/$NOCK conversion and timestamp rendering."""

from decimal import Decimal

import pytest

from nockwatch import NICK_PER_NOCK, format_balance, format_timestamp, to_display


class TestToDisplay:

    def test_exact_division(self):
        assert to_display(65536) == Decimal(1)
        assert to_display(32768) == Decimal("0.5")
        assert to_display(0) == Decimal(0)

    def test_scale_is_two_to_the_sixteenth(self):
        assert NICK_PER_NOCK == 2 ** 16

    def test_large_amount_has_no_float_error(self):
        amount = 2 ** 60 + 1
        assert to_display(amount) * NICK_PER_NOCK == amount


class TestFormatBalance:

    @pytest.mark.parametrize("amount, expected", [
        (0, "0 nick (0.00 $NOCK)"),
        (65536, "65536 nick (1.00 $NOCK)"),
        (98304, "98304 nick (1.50 $NOCK)"),
        (34492645376, "34492645376 nick (526316.00 $NOCK)"),
        (34492645377, "34492645377 nick (526316.00 $NOCK)"),
    ])
    def test_format(self, amount, expected):
        assert format_balance(amount) == expected

    def test_ties_round_half_even(self):
        # 8192 / 65536 == 0.125 exactly
        assert format_balance(8192) == "8192 nick (0.12 $NOCK)"
        # 40960 / 65536 == 0.625 exactly
        assert format_balance(40960) == "40960 nick (0.62 $NOCK)"

    def test_integer_amount_is_verbatim(self):
        amount = 123456789012345
        assert format_balance(amount).startswith(f"{amount} nick (")


class TestFormatTimestamp:

    def test_rfc3339_utc(self):
        assert format_timestamp(0) == "1970-01-01T00:00:00+00:00"
        assert format_timestamp(1_700_000_000) == "2023-11-14T22:13:20+00:00"


class TestLargeAmounts:

    def test_display_is_exact_beyond_default_precision(self):
        amount = 10 ** 35 + 65536 * 12345 + 32768
        assert format_balance(amount) == f"{amount} nick (1525878906250000000000000012345.50 $NOCK)"
