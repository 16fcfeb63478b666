"""Builders that normalise request line items into their stored shape."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from cargo_core.billing.errors import ValidationError
from cargo_core.billing.numbering import BusinessMode
from cargo_core.billing.totals import round2, to_number

DEFAULT_VAT_PERCENTAGE = 5.0


def _has_quantity_and_rate(item: Mapping[str, Any]) -> bool:
    return item.get("quantity") is not None and item.get("rate") is not None


def validate_items(mode: BusinessMode, items: Sequence[Mapping[str, Any]] | None) -> None:
    """Check that every item carries the fields *mode* requires.

    Raises
    ------
    ValidationError
        If the list is empty or any item misses a required field.
    """
    if not items:
        raise ValidationError("Items are required")

    for item in items:
        if not isinstance(item, Mapping) or not _has_quantity_and_rate(item):
            raise ValidationError(
                "All B2C items must have workDate, description, quantity, and rate"
                if mode is BusinessMode.B2C
                else "All B2B items must have quantity and rate"
            )
        if mode is BusinessMode.B2C and (not item.get("workDate") or not item.get("description")):
            raise ValidationError("All B2C items must have workDate, description, quantity, and rate")


def resolve_vat_percentage(*candidates: Any) -> float:
    """Return the first parseable VAT percentage among *candidates*.

    ``None`` and unparseable values are skipped; falls back to
    :data:`DEFAULT_VAT_PERCENTAGE`.
    """
    for candidate in candidates:
        if candidate is None or isinstance(candidate, bool):
            continue
        try:
            return float(candidate)
        except (TypeError, ValueError):
            continue
    return DEFAULT_VAT_PERCENTAGE


def build_b2c_items(items: Sequence[Mapping[str, Any]], vat_percentage: float) -> list[dict[str, Any]]:
    """Build VAT-per-line B2C rows: bill amount, VAT and bill total per line."""
    rows: list[dict[str, Any]] = []
    for item in items:
        quantity = to_number(item.get("quantity"))
        rate = to_number(item.get("rate"))
        bill_amount = quantity * rate
        vat_amount = bill_amount * vat_percentage / 100
        row: dict[str, Any] = {
            "workDate": item.get("workDate"),
            "description": item.get("description"),
            "quantity": quantity,
            "rate": round2(rate),
            "billAmount": round2(bill_amount),
            "vatAmount": round2(vat_amount),
            "billTotal": round2(bill_amount + vat_amount),
        }
        if item.get("vehicleId"):
            row["vehicleId"] = item["vehicleId"]
        rows.append(row)
    return rows


def build_b2b_items(items: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Build amount-based B2B rows; VAT is applied on the invoice total."""
    rows: list[dict[str, Any]] = []
    for item in items:
        quantity = to_number(item.get("quantity"))
        rate = to_number(item.get("rate"))
        row: dict[str, Any] = {
            "workDate": item.get("workDate") or None,
            "description": item.get("description") or "",
            "quantity": quantity,
            "rate": round2(rate),
            "amount": round2(quantity * rate),
        }
        if item.get("vehicleId"):
            row["vehicleId"] = item["vehicleId"]
        rows.append(row)
    return rows


def build_items(
    mode: BusinessMode,
    items: Sequence[Mapping[str, Any]],
    *,
    vat_percentage: float = DEFAULT_VAT_PERCENTAGE,
) -> list[dict[str, Any]]:
    """Build stored rows for *mode*."""
    if mode is BusinessMode.B2C:
        return build_b2c_items(items, vat_percentage)
    return build_b2b_items(items)
