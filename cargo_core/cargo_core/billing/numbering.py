"""Business-mode partitions and invoice number formatting.

Invoice numbers have the form ``INV-YYYYMM-NNNN``: the year and month of
the invoice's logical date followed by the per-partition sequence,
zero-padded to four digits.  Sequences past 9999 simply widen the numeric
part.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any

INVOICE_PREFIX = "INV"
DEFAULT_SEQUENCE_WIDTH = 4

_INVOICE_NUMBER_RE = re.compile(r"^[A-Z]+-\d{6}-(\d+)$")


class BusinessMode(str, Enum):
    """Supported invoice partitions."""

    B2C = "b2c"
    B2B = "b2b"

    @property
    def partition_key(self) -> str:
        """Key of this partition's sequence counter row."""
        return f"invoices_{self.value}"

    @classmethod
    def parse(cls, value: Any) -> BusinessMode | None:
        """Return the mode for *value*, ignoring case, or ``None`` if unknown."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


@dataclass(frozen=True)
class AllocatedNumber:
    """An invoice number together with the sequence it encodes."""

    invoice_number: str
    sequence: int


def format_invoice_number(
    when: date | datetime,
    sequence: int,
    width: int = DEFAULT_SEQUENCE_WIDTH,
) -> str:
    """Format ``INV-<YYYY><MM>-<sequence>`` for the month of *when*."""
    return f"{INVOICE_PREFIX}-{when.year:04d}{when.month:02d}-{sequence:0{width}d}"


def parse_sequence(invoice_number: Any) -> int | None:
    """Extract the trailing sequence digits of a formatted invoice number.

    Returns ``None`` for anything that does not look like
    ``PREFIX-YYYYMM-digits``.
    """
    if not isinstance(invoice_number, str):
        return None
    match = _INVOICE_NUMBER_RE.match(invoice_number.strip())
    if match is None:
        return None
    return int(match.group(1))
