"""Unit tests for business-mode partitions and invoice number formatting."""

from __future__ import annotations

import re
from datetime import UTC, date, datetime

import pytest
from cargo_core.billing.numbering import BusinessMode, format_invoice_number, parse_sequence

_NUMBER_RE = re.compile(r"^INV-\d{6}-\d{4,}$")


class TestBusinessMode:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("b2c", BusinessMode.B2C), ("B2B", BusinessMode.B2B), (" b2b ", BusinessMode.B2B)],
    )
    def test_parse_ignores_case_and_whitespace(self, raw: str, expected: BusinessMode) -> None:
        assert BusinessMode.parse(raw) is expected

    @pytest.mark.parametrize("raw", ["retail", "", None, 2])
    def test_parse_unknown(self, raw) -> None:
        assert BusinessMode.parse(raw) is None

    def test_parse_passthrough(self) -> None:
        assert BusinessMode.parse(BusinessMode.B2C) is BusinessMode.B2C

    def test_partition_keys_distinct(self) -> None:
        assert BusinessMode.B2C.partition_key == "invoices_b2c"
        assert BusinessMode.B2B.partition_key == "invoices_b2b"


class TestFormatInvoiceNumber:
    def test_pads_sequence(self) -> None:
        assert format_invoice_number(date(2026, 3, 15), 7) == "INV-202603-0007"

    def test_uses_month_of_datetime(self) -> None:
        assert format_invoice_number(datetime(2025, 12, 31, 23, 59, tzinfo=UTC), 1) == "INV-202512-0001"

    def test_wide_sequence_not_truncated(self) -> None:
        assert format_invoice_number(date(2026, 1, 1), 12345) == "INV-202601-12345"

    def test_custom_width(self) -> None:
        assert format_invoice_number(date(2026, 1, 1), 42, width=6) == "INV-202601-000042"

    @pytest.mark.parametrize("sequence", [1, 9, 10, 999, 9999, 10000])
    def test_matches_pattern(self, sequence: int) -> None:
        assert _NUMBER_RE.match(format_invoice_number(date(2026, 6, 1), sequence))


class TestParseSequence:
    def test_formatted_number(self) -> None:
        assert parse_sequence("INV-202603-0042") == 42

    def test_surrounding_whitespace(self) -> None:
        assert parse_sequence("  INV-202603-0007 ") == 7

    @pytest.mark.parametrize("value", [None, "", "INV-42", "INV-2026-0001", "1234", 1234, "INV-202603-00A1"])
    def test_unparseable(self, value) -> None:
        assert parse_sequence(value) is None
