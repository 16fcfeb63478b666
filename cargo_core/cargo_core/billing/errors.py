"""Exceptions raised by the billing services.

Routers translate these into HTTP responses; the message is the only
thing a client ever sees.
"""

from __future__ import annotations


class ValidationError(ValueError):
    """Request data is missing or malformed.  Nothing has been written."""


class NotFoundError(LookupError):
    """A referenced document does not exist."""

    def __init__(self, kind: str, document_id: str) -> None:
        super().__init__(f"{kind} not found")
        self.kind = kind
        self.document_id = document_id


class ConflictError(RuntimeError):
    """The operation conflicts with the current state of a document."""


class SequenceAllocationError(RuntimeError):
    """No invoice sequence number could be allocated."""
