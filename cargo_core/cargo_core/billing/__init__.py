"""Invoice billing rules: totals, line items, numbering and amount-in-words."""

from cargo_core.billing.numbering import (
    AllocatedNumber,
    BusinessMode,
    format_invoice_number,
    parse_sequence,
)
from cargo_core.billing.totals import Totals, compute_totals, round2, to_number
from cargo_core.billing.words import to_words

__all__ = [
    "AllocatedNumber",
    "BusinessMode",
    "Totals",
    "compute_totals",
    "format_invoice_number",
    "parse_sequence",
    "round2",
    "to_number",
    "to_words",
]
