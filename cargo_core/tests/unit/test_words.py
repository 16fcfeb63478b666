"""Unit tests for cargo_core.billing.words."""

from __future__ import annotations

from decimal import Decimal

import pytest
from cargo_core.billing.words import integer_to_words, to_words


class TestIntegerToWords:
    @pytest.mark.parametrize(
        ("num", "expected"),
        [
            (0, ""),
            (7, "seven"),
            (13, "thirteen"),
            (40, "forty"),
            (99, "ninety nine"),
            (100, "one hundred"),
            (105, "one hundred five"),
            (1000, "one thousand"),
            (1050, "one thousand fifty"),
            (20_019, "twenty thousand nineteen"),
            (2_000_000_000, "two billion"),
        ],
    )
    def test_values(self, num: int, expected: str) -> None:
        assert integer_to_words(num) == expected


class TestToWords:
    def test_zero(self) -> None:
        assert to_words(0) == "zero"
        assert to_words(0.0) == "zero"

    def test_whole_amount_has_no_fils(self) -> None:
        assert to_words(1260) == "one thousand two hundred sixty"

    def test_fractional_digits_read_as_fils(self) -> None:
        assert to_words(105.5) == "one hundred five and five fils"
        assert to_words(100.25) == "one hundred and twenty five fils"

    def test_million(self) -> None:
        assert to_words(1234567.5) == (
            "one million two hundred thirty four thousand five hundred sixty seven and five fils"
        )

    def test_decimal_input(self) -> None:
        assert to_words(Decimal("1312.50")) == "one thousand three hundred twelve and fifty fils"

    def test_negative(self) -> None:
        assert to_words(-42) == "minus forty two"

    def test_lowercase_and_no_currency(self) -> None:
        words = to_words(315)
        assert words == words.lower()
        assert "dirham" not in words
