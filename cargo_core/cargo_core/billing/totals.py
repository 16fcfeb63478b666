"""Invoice totals for the three stored line-item shapes.

Invoices written at different points in the product's life carry
different line-item schemas, and each schema has its own tax rule:

* :class:`AmountItems` -- current B2B shape.  Every line carries a
  precomputed ``amount`` and VAT is a fixed 5% of the subtotal.
* :class:`PerItemTotalItems` -- older B2B lines and the B2C VAT-per-line
  shape.  Every line carries its own ``billAmount`` / tax / ``billTotal``
  and the aggregate sums each column independently.
* :class:`QuantityRateItems` -- raw ``quantity x unitPrice`` lines taxed at
  a caller-supplied percentage.

The shape is decided by inspecting the first item only; a single invoice
never mixes shapes.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Any, ClassVar

# Fixed VAT applied to the amount-based B2B shape, whatever rate is passed.
B2B_VAT_RATE = 0.05

_CENT = Decimal("0.01")

LineItem = Mapping[str, Any]


def to_number(value: Any) -> float:
    """Parse *value* as a float, treating anything unparseable as ``0.0``.

    Booleans, ``None``, NaN and infinities all count as unparseable.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def round2(value: float) -> float:
    """Round a monetary value to cents, half away from zero.

    Infinities and NaN are returned unchanged.
    """
    if not math.isfinite(value):
        return value
    exact = Decimal(repr(value))
    with localcontext() as ctx:
        # Enough digits for every integer digit plus the two cents.
        ctx.prec = max(ctx.prec, exact.adjusted() + 3)
        return float(exact.quantize(_CENT, rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class Totals:
    """Aggregate money fields of an invoice."""

    subtotal: float = 0.0
    tax_amount: float = 0.0
    bill_total: float = 0.0
    grand_total: float = 0.0

    @property
    def vat5(self) -> float:
        """Alias of :attr:`tax_amount` kept for B2B consumers."""
        return self.tax_amount

    def as_document(self) -> dict[str, float]:
        """Return the totals under the keys stored on invoice documents."""
        return {
            "subtotal": self.subtotal,
            "taxAmount": self.tax_amount,
            "billTotal": self.bill_total,
            "vat_5_percent": self.vat5,
            "grand_total": self.grand_total,
        }


# ---------------------------------------------------------------------------
# Line-item shapes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AmountItems:
    """Lines with a precomputed ``amount``; VAT fixed at 5%."""

    kind: ClassVar[str] = "amount"
    items: tuple[LineItem, ...]

    def totals(self, tax_rate_percent: Any = 0) -> Totals:
        subtotal = sum(to_number(item.get("amount")) for item in self.items)
        vat = round2(subtotal * B2B_VAT_RATE)
        grand_total = round2(subtotal + vat)
        return Totals(
            subtotal=round2(subtotal),
            tax_amount=vat,
            bill_total=grand_total,
            grand_total=grand_total,
        )


@dataclass(frozen=True)
class PerItemTotalItems:
    """Lines that each carry their own bill amount, tax and bill total."""

    kind: ClassVar[str] = "per_item_total"
    items: tuple[LineItem, ...]

    @staticmethod
    def _line_tax(item: LineItem) -> float:
        # B2C VAT-per-line rows name the column ``vatAmount``.
        if "taxAmount" in item:
            return to_number(item.get("taxAmount"))
        return to_number(item.get("vatAmount"))

    def totals(self, tax_rate_percent: Any = 0) -> Totals:
        subtotal = sum(to_number(item.get("billAmount")) for item in self.items)
        tax = sum(self._line_tax(item) for item in self.items)
        bill_total = sum(to_number(item.get("billTotal")) for item in self.items)
        return Totals(
            subtotal=round2(subtotal),
            tax_amount=round2(tax),
            bill_total=round2(bill_total),
            grand_total=round2(bill_total),
        )


@dataclass(frozen=True)
class QuantityRateItems:
    """Raw ``quantity x unitPrice`` lines taxed at the caller's rate."""

    kind: ClassVar[str] = "quantity_rate"
    items: tuple[LineItem, ...]

    @staticmethod
    def _line_amount(item: LineItem) -> float:
        if "billAmount" in item:
            return to_number(item.get("billAmount"))
        price = item.get("unitPrice", item.get("rate"))
        return to_number(item.get("quantity")) * to_number(price)

    def totals(self, tax_rate_percent: Any = 0) -> Totals:
        subtotal = sum(self._line_amount(item) for item in self.items)
        tax = subtotal * to_number(tax_rate_percent) / 100
        bill_total = subtotal + tax
        return Totals(
            subtotal=round2(subtotal),
            tax_amount=round2(tax),
            bill_total=round2(bill_total),
            grand_total=round2(bill_total),
        )


LineItemSchema = AmountItems | PerItemTotalItems | QuantityRateItems


def classify_items(items: Sequence[LineItem]) -> LineItemSchema:
    """Pick the line-item shape from the fields present on the first item.

    Raises
    ------
    ValueError
        If *items* is empty.
    """
    if not items:
        raise ValueError("Cannot classify an empty item list")
    rows = tuple(item for item in items if isinstance(item, Mapping))
    first = items[0] if isinstance(items[0], Mapping) else {}
    if "amount" in first:
        return AmountItems(rows)
    if "billTotal" in first:
        return PerItemTotalItems(rows)
    return QuantityRateItems(rows)


def compute_totals(items: Sequence[LineItem] | None, tax_rate_percent: Any = 0) -> Totals:
    """Compute invoice totals for *items*.

    Parameters
    ----------
    items:
        The invoice's line items.  ``None``, a non-list value or an empty
        list all yield zero totals.
    tax_rate_percent:
        Percentage applied to raw quantity/rate lines.  Ignored by the other
        shapes.  Unparseable values count as ``0``.
    """
    if not items or not isinstance(items, Sequence) or isinstance(items, (str, bytes)):
        return Totals()
    return classify_items(items).totals(tax_rate_percent)
