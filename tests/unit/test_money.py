"""
Unit tests for Money and decimal handling.

Verifies:
- Float constructor prohibition
- Half-up rounding per currency minor unit
- Same-currency arithmetic
"""

from decimal import Decimal

import pytest

from gtn_kernel.domain.currency import CurrencyRegistry
from gtn_kernel.domain.values import Currency, Money, round_half_up, to_decimal
from gtn_kernel.exceptions import CurrencyMismatchError, InvalidCurrencyError


class TestToDecimal:

    def test_string_and_int(self):
        assert to_decimal("10.50") == Decimal("10.50")
        assert to_decimal(" 3 ") == Decimal("3")
        assert to_decimal(7) == Decimal("7")

    def test_float_refused(self):
        with pytest.raises(ValueError):
            to_decimal(0.1)

    def test_bool_refused(self):
        with pytest.raises(ValueError):
            to_decimal(True)

    def test_garbage_refused(self):
        with pytest.raises(ValueError):
            to_decimal("ten")


class TestRoundHalfUp:

    @pytest.mark.parametrize(
        "value, places, expected",
        [
            ("2.345", 2, "2.35"),
            ("2.344", 2, "2.34"),
            ("-2.345", 2, "-2.35"),  # away from zero
            ("0.5", 0, "1"),
            ("1.0005", 3, "1.001"),
        ],
    )
    def test_values(self, value, places, expected):
        assert round_half_up(Decimal(value), places) == Decimal(expected)


class TestMoney:

    def test_round_uses_currency_places(self):
        assert Money.of("10.005", "EUR").round().amount == Decimal("10.01")
        assert Money.of("904.5", "JPY").round().amount == Decimal("905")
        assert Money.of("1.2345", "KWD").round().amount == Decimal("1.235")

    def test_arithmetic(self):
        a = Money.of("10.00", "EUR")
        b = Money.of("2.50", "EUR")
        assert a + b == Money.of("12.50", "EUR")
        assert a - b == Money.of("7.50", "EUR")
        assert -b == Money.of("-2.50", "EUR")
        assert a * 3 == Money.of("30", "EUR")
        assert Decimal("0.5") * a == Money.of("5", "EUR")

    def test_currency_mismatch(self):
        with pytest.raises(CurrencyMismatchError):
            Money.of("1", "EUR") + Money.of("1", "USD")

    def test_unknown_currency(self):
        with pytest.raises(InvalidCurrencyError):
            Currency("XXX")

    def test_total(self):
        amounts = [Money.of("1.10", "EUR"), Money.of("2.20", "EUR")]
        assert Money.total(amounts, "EUR") == Money.of("3.30", "EUR")
        assert Money.total([], "EUR").is_zero

    def test_sign_predicates(self):
        assert Money.of("-1", "EUR").is_negative
        assert Money.of("1", "EUR").is_positive
        assert Money.zero("EUR").is_zero

    def test_comparisons(self):
        assert Money.of("1", "EUR") < Money.of("2", "EUR")
        assert Money.of("2", "EUR") >= Money.of("2.00", "EUR")


class TestCurrencyRegistry:

    def test_known_codes(self):
        assert CurrencyRegistry.is_valid("eur")
        assert CurrencyRegistry.get_decimal_places("JPY") == 0
        assert not CurrencyRegistry.is_valid("")
