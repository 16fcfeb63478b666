"""Unit tests for line-item validation and normalisation."""

from __future__ import annotations

import pytest
from cargo_core.billing.errors import ValidationError
from cargo_core.billing.line_items import (
    build_b2b_items,
    build_b2c_items,
    build_items,
    resolve_vat_percentage,
    validate_items,
)
from cargo_core.billing.numbering import BusinessMode
from cargo_core.billing.totals import compute_totals

_B2C_ITEM = {"workDate": "2026-03-02", "description": "Crane hire", "quantity": 2, "rate": 500}


class TestValidateItems:
    @pytest.mark.parametrize("mode", list(BusinessMode))
    def test_empty_rejected(self, mode: BusinessMode) -> None:
        with pytest.raises(ValidationError, match="Items are required"):
            validate_items(mode, [])

    def test_b2c_requires_work_date_and_description(self) -> None:
        with pytest.raises(ValidationError, match="workDate, description, quantity, and rate"):
            validate_items(BusinessMode.B2C, [{"quantity": 1, "rate": 10}])

    def test_b2c_valid(self) -> None:
        validate_items(BusinessMode.B2C, [_B2C_ITEM])

    def test_b2b_requires_quantity_and_rate(self) -> None:
        with pytest.raises(ValidationError, match="B2B items must have quantity and rate"):
            validate_items(BusinessMode.B2B, [{"quantity": 1}])

    def test_b2b_zero_quantity_is_present(self) -> None:
        validate_items(BusinessMode.B2B, [{"quantity": 0, "rate": 10}])

    def test_non_mapping_item(self) -> None:
        with pytest.raises(ValidationError):
            validate_items(BusinessMode.B2B, ["not-an-item"])


class TestResolveVatPercentage:
    def test_first_parseable_wins(self) -> None:
        assert resolve_vat_percentage(None, "7.5", 5) == 7.5

    def test_explicit_zero_honoured(self) -> None:
        assert resolve_vat_percentage(0, 5) == 0.0

    def test_skips_garbage_and_bools(self) -> None:
        assert resolve_vat_percentage("abc", True, 3) == 3.0

    def test_default(self) -> None:
        assert resolve_vat_percentage(None, None) == 5.0


class TestBuildItems:
    def test_b2c_rows(self) -> None:
        rows = build_b2c_items([{**_B2C_ITEM, "vehicleId": "veh-1"}], 5)
        assert rows == [
            {
                "workDate": "2026-03-02",
                "description": "Crane hire",
                "quantity": 2.0,
                "rate": 500.0,
                "billAmount": 1000.0,
                "vatAmount": 50.0,
                "billTotal": 1050.0,
                "vehicleId": "veh-1",
            }
        ]

    def test_b2c_custom_vat(self) -> None:
        rows = build_b2c_items([_B2C_ITEM], 10)
        assert rows[0]["vatAmount"] == 100.0
        assert rows[0]["billTotal"] == 1100.0

    def test_b2b_rows(self) -> None:
        rows = build_b2b_items([{"description": "Container move", "quantity": 3, "rate": 1000}])
        assert rows == [
            {"workDate": None, "description": "Container move", "quantity": 3.0, "rate": 1000.0, "amount": 3000.0}
        ]

    def test_b2c_rows_total_per_line(self) -> None:
        rows = build_items(BusinessMode.B2C, [_B2C_ITEM, {**_B2C_ITEM, "quantity": 1, "rate": 250}])
        totals = compute_totals(rows)
        assert totals.subtotal == 1250.0
        assert totals.tax_amount == 62.5
        assert totals.grand_total == 1312.5

    def test_b2b_rows_total_fixed_vat(self) -> None:
        rows = build_items(BusinessMode.B2B, [{"quantity": 3, "rate": 1000}])
        totals = compute_totals(rows, 20)
        assert totals.tax_amount == 150.0
        assert totals.grand_total == 3150.0
