"""Invoice number allocation and partition resequencing.

:class:`InvoiceNumberAllocator` hands out ``INV-YYYYMM-NNNN`` numbers from
the per-partition sequence counter.  :class:`ResequenceService` keeps each
partition's sequences contiguous: it compacts a partition when an invoice
is deleted and renumbers every partition on demand.

Neither class commits; both run inside the caller's transaction.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import UTC, date, datetime
from typing import Any

from cargo_core.billing.errors import SequenceAllocationError
from cargo_core.billing.numbering import (
    AllocatedNumber,
    BusinessMode,
    format_invoice_number,
    parse_sequence,
)
from cargo_core.config import BillingSettings
from cargo_core.state.repository import InvoiceRepository, SequenceCounterRepository
from cargo_core.state.tables import InvoiceTable
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cargo_api.middleware.prometheus import INVOICE_NUMBERS_ALLOCATED, INVOICES_RESEQUENCED

logger = logging.getLogger(__name__)


def parse_logical_date(value: Any) -> datetime | None:
    """Parse an ISO date or datetime value; ``None`` when absent or invalid.

    Naive values are taken as UTC.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    else:
        return None
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)


def invoice_logical_date(row: InvoiceTable) -> datetime:
    """The date an invoice is numbered by: its ``date`` field, else its creation time."""
    document: Mapping[str, Any] = row.document or {}
    return parse_logical_date(document.get("date")) or row.created_at


# ---------------------------------------------------------------------------
# Allocation
# ---------------------------------------------------------------------------


class InvoiceNumberAllocator:
    """Allocate invoice numbers from the partition sequence counters.

    Parameters
    ----------
    session:
        Active database session; the counter bump joins its transaction.
    settings:
        Billing settings (sequence width, fallback switch).
    """

    def __init__(self, session: AsyncSession, settings: BillingSettings) -> None:
        self._session = session
        self._settings = settings
        self._counters = SequenceCounterRepository(session)
        self._invoices = InvoiceRepository(session)

    async def allocate(self, mode: BusinessMode, when: date | datetime) -> AllocatedNumber:
        """Reserve the next sequence in *mode*'s partition and format it for *when*."""
        sequence = await self.next_sequence(mode)
        number = format_invoice_number(when, sequence, self._settings.sequence_width)
        return AllocatedNumber(invoice_number=number, sequence=sequence)

    async def next_sequence(self, mode: BusinessMode) -> int:
        """Return the next sequence for *mode*.

        The counter bump runs in a savepoint so that a failed statement
        leaves the surrounding transaction usable for the fallback scan.

        Raises
        ------
        SequenceAllocationError
            If the counter fails and the fallback is disabled.
        """
        try:
            async with self._session.begin_nested():
                sequence = await self._counters.next_sequence(mode.partition_key)
        except SQLAlchemyError as exc:
            if not self._settings.allow_sequence_fallback:
                raise SequenceAllocationError(f"Could not allocate an invoice sequence for {mode.value}") from exc
            sequence = await self._estimate_sequence(mode, exc)
            INVOICE_NUMBERS_ALLOCATED.labels(business_mode=mode.value, path="fallback").inc()
            return sequence

        INVOICE_NUMBERS_ALLOCATED.labels(business_mode=mode.value, path="counter").inc()
        return sequence

    async def _estimate_sequence(self, mode: BusinessMode, exc: Exception) -> int:
        # Not atomic: two concurrent fallbacks can read the same latest invoice.
        latest = await self._invoices.get_latest_in_partition(mode.value)
        parsed = parse_sequence(latest.invoice_number) if latest is not None else None
        sequence = (parsed or 0) + 1
        logger.warning(
            "Sequence counter %s failed (%s); estimated sequence %d from latest invoice",
            mode.partition_key,
            exc,
            sequence,
        )
        return sequence


# ---------------------------------------------------------------------------
# Resequencing
# ---------------------------------------------------------------------------


class ResequenceService:
    """Renumber partitions so their sequences run ``1..N`` without gaps."""

    def __init__(self, session: AsyncSession, settings: BillingSettings) -> None:
        self._session = session
        self._settings = settings
        self._counters = SequenceCounterRepository(session)
        self._invoices = InvoiceRepository(session)

    async def delete_and_compact(self, row: InvoiceTable, mode: BusinessMode) -> int:
        """Delete *row* and renumber the rest of its partition.

        The partition is every invoice whose stored mode equals *row*'s
        exactly, so a legacy ``"B2B"`` group compacts on its own.  The
        counter row is locked first, so concurrent deletes in one partition
        run one after the other; it is only reset for the canonical
        spelling, which is the group new invoices are numbered in.
        Returns the number of invoices left in the partition.
        """
        await self._counters.lock(mode.partition_key)

        stored_mode = row.business_mode or mode.value
        partition = await self._invoices.list_partition(stored_mode)
        remaining = [other for other in partition if other.invoice_id != row.invoice_id]
        await self._invoices.delete(row.invoice_id)

        changed = await self._renumber(remaining)
        if stored_mode == mode.value:
            await self._counters.set(mode.partition_key, len(remaining))
        else:
            logger.info("Compacted legacy %r group; counter %s left as is", stored_mode, mode.partition_key)

        INVOICES_RESEQUENCED.labels(business_mode=mode.value, trigger="delete").inc(changed)
        logger.info(
            "Deleted invoice %s from %s; %d remaining, %d renumbered",
            row.invoice_id,
            mode.partition_key,
            len(remaining),
            changed,
        )
        return len(remaining)

    async def resequence_all(self) -> dict[str, int]:
        """Renumber every partition from its invoices' logical dates.

        Invoices are grouped by lower-cased business mode, with a missing
        mode counted as ``b2c``; the grouped mode is written back to each
        invoice.  Groups with an unknown mode are skipped.  Returns the
        invoice count per partition.
        """
        for mode in BusinessMode:
            await self._counters.lock(mode.partition_key)

        groups: dict[str, list[InvoiceTable]] = {}
        for row in await self._invoices.list_chronological():
            key = (row.business_mode or BusinessMode.B2C.value).strip().lower()
            groups.setdefault(key, []).append(row)

        counts: dict[str, int] = {}
        for key, members in groups.items():
            mode = BusinessMode.parse(key)
            if mode is None:
                logger.warning("Skipping %d invoice(s) with unknown business mode %r", len(members), key)
                continue
            changed = await self._renumber(members, business_mode=mode.value)
            await self._counters.set(mode.partition_key, len(members))
            INVOICES_RESEQUENCED.labels(business_mode=mode.value, trigger="batch").inc(changed)
            counts[mode.value] = len(members)
            logger.info("Resequenced %s: %d invoice(s), %d renumbered", mode.partition_key, len(members), changed)
        return counts

    async def _renumber(self, rows: list[InvoiceTable], *, business_mode: str | None = None) -> int:
        """Assign sequences ``1..N`` to *rows* in order; returns how many changed."""
        changed = 0
        for sequence, row in enumerate(rows, start=1):
            number = format_invoice_number(invoice_logical_date(row), sequence, self._settings.sequence_width)
            mode_changed = business_mode is not None and row.business_mode != business_mode
            if row.sequence == sequence and row.invoice_number == number and not mode_changed:
                continue
            await self._invoices.set_number(row.invoice_id, number, sequence, business_mode=business_mode)
            changed += 1
        return changed
