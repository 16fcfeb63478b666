"""Unit tests for cargo_core.billing.totals.

Covers:
- Parsing of loosely typed money values
- Half-up rounding to cents
- Shape detection from the first line item
- Totals for the amount, per-item-total and quantity/rate shapes
"""

from __future__ import annotations

import pytest
from cargo_core.billing.totals import (
    AmountItems,
    PerItemTotalItems,
    QuantityRateItems,
    Totals,
    classify_items,
    compute_totals,
    round2,
    to_number,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestToNumber:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (12, 12.0),
            ("12.5", 12.5),
            (" 7 ", 7.0),
            (None, 0.0),
            ("abc", 0.0),
            (True, 0.0),
            (float("nan"), 0.0),
            (float("inf"), 0.0),
            ([1], 0.0),
        ],
    )
    def test_parses_or_zero(self, value, expected) -> None:
        assert to_number(value) == expected


class TestRound2:
    def test_half_up(self) -> None:
        assert round2(2.675) == 2.68
        assert round2(0.125) == 0.13

    def test_negative_half_away_from_zero(self) -> None:
        assert round2(-0.125) == -0.13

    def test_already_rounded(self) -> None:
        assert round2(1050.0) == 1050.0

    def test_beyond_default_decimal_precision(self) -> None:
        assert round2(1e27) == 1e27
        assert round2(-3.5e300) == -3.5e300

    def test_non_finite_passed_through(self) -> None:
        assert round2(float("inf")) == float("inf")


# ---------------------------------------------------------------------------
# Shape detection
# ---------------------------------------------------------------------------


class TestClassifyItems:
    def test_amount_shape(self) -> None:
        assert isinstance(classify_items([{"amount": 10}]), AmountItems)

    def test_per_item_total_shape(self) -> None:
        assert isinstance(classify_items([{"billAmount": 10, "billTotal": 10.5}]), PerItemTotalItems)

    def test_quantity_rate_shape(self) -> None:
        assert isinstance(classify_items([{"quantity": 1, "unitPrice": 10}]), QuantityRateItems)

    def test_first_item_decides(self) -> None:
        schema = classify_items([{"amount": 10}, {"billTotal": 99}])
        assert schema.kind == "amount"

    def test_empty_raises(self) -> None:
        with pytest.raises(ValueError):
            classify_items([])


# ---------------------------------------------------------------------------
# compute_totals
# ---------------------------------------------------------------------------


class TestAmountTotals:
    """Current B2B shape: VAT is a fixed 5% of the subtotal."""

    def test_fixed_five_percent(self) -> None:
        totals = compute_totals([{"amount": 1000}, {"amount": 200}])
        assert totals == Totals(subtotal=1200.0, tax_amount=60.0, bill_total=1260.0, grand_total=1260.0)

    def test_tax_rate_ignored(self) -> None:
        items = [{"amount": 1000}]
        assert compute_totals(items, 15) == compute_totals(items, 0)

    def test_vat5_alias(self) -> None:
        totals = compute_totals([{"amount": 300}])
        assert totals.vat5 == totals.tax_amount == 15.0

    def test_unparseable_amount_counts_zero(self) -> None:
        totals = compute_totals([{"amount": "n/a"}, {"amount": "100"}])
        assert totals.subtotal == 100.0
        assert totals.grand_total == 105.0

    def test_huge_amount(self) -> None:
        totals = compute_totals([{"amount": 1e27}])
        assert totals.subtotal == 1e27
        assert totals.tax_amount == pytest.approx(5e25)
        assert totals.grand_total == pytest.approx(1.05e27)


class TestPerItemTotals:
    """Each line carries its own bill amount, tax and total."""

    def test_sums_columns(self) -> None:
        items = [
            {"billAmount": 100, "taxAmount": 5, "billTotal": 105},
            {"billAmount": 200, "taxAmount": 10, "billTotal": 210},
        ]
        totals = compute_totals(items)
        assert totals == Totals(subtotal=300.0, tax_amount=15.0, bill_total=315.0, grand_total=315.0)

    def test_vat_amount_column(self) -> None:
        items = [{"billAmount": 1000, "vatAmount": 50, "billTotal": 1050}]
        assert compute_totals(items).tax_amount == 50.0

    def test_tax_amount_preferred_over_vat_amount(self) -> None:
        items = [
            {"billAmount": 1000, "taxAmount": 0, "vatAmount": 50, "billTotal": 1000},
            {"billAmount": 200, "vatAmount": 10, "billTotal": 210},
        ]
        assert compute_totals(items).tax_amount == 10.0

    def test_bill_total_taken_as_stored(self) -> None:
        # The stored line total wins even when it disagrees with amount + tax.
        items = [{"billAmount": 100, "taxAmount": 5, "billTotal": 110}]
        assert compute_totals(items).grand_total == 110.0


class TestQuantityRateTotals:
    def test_applies_tax_rate(self) -> None:
        items = [{"quantity": 2, "unitPrice": 50}, {"quantity": 1, "unitPrice": 100}]
        totals = compute_totals(items, 10)
        assert totals == Totals(subtotal=200.0, tax_amount=20.0, bill_total=220.0, grand_total=220.0)

    def test_rate_used_when_no_unit_price(self) -> None:
        totals = compute_totals([{"quantity": 3, "rate": 40}], 0)
        assert totals.subtotal == 120.0
        assert totals.tax_amount == 0.0

    def test_unparseable_tax_rate_is_zero(self) -> None:
        totals = compute_totals([{"quantity": 1, "unitPrice": 80}], "abc")
        assert totals.grand_total == 80.0


class TestEmptyInputs:
    @pytest.mark.parametrize("items", [None, [], "not-a-list"])
    def test_zero_totals(self, items) -> None:
        assert compute_totals(items) == Totals()


class TestAsDocument:
    def test_keys(self) -> None:
        doc = compute_totals([{"amount": 100}]).as_document()
        assert doc == {
            "subtotal": 100.0,
            "taxAmount": 5.0,
            "billTotal": 105.0,
            "vat_5_percent": 5.0,
            "grand_total": 105.0,
        }
