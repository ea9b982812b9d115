"""
RecordMutator -- the only component that writes documents.

Contract:
    ``update_line_field`` loads a document, overwrites one field on every
    line matching a key (or the first one when ``match_all`` is False) and
    saves with sourcing disabled and mandatory-field validation relaxed.

Invariants enforced:
    - Full-value overwrite, never a delta: repeating a call with the same
      value leaves the stored value unchanged.
    - Zero matching lines raises LineNotFoundError and nothing is saved.

Failure modes surfaced to callers (all from the store):
    - ClosedPeriodError: the document's period is locked.
    - NotFoundError: document or line gone since the pairing query ran.
    - BudgetExceededError: host operation quota hit mid-call.
    - ConcurrentModificationError: another save landed first.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from variance_kernel.domain.documents import (
    NARROW_OVERWRITE,
    REVIEWED_FIELD,
    DocumentType,
)
from variance_kernel.exceptions import LineNotFoundError
from variance_kernel.logging_config import LogContext, get_logger
from variance_services.document_store import DocumentStore

logger = get_logger("services.record_mutator")

DOCUMENT_LABELS = {
    DocumentType.PURCHASE_ORDER: "PO",
    DocumentType.ITEM_RECEIPT: "IR",
    DocumentType.VENDOR_BILL: "VB",
    DocumentType.JOURNAL_ENTRY: "JE",
}

MATCH_FIELD_LABELS = {
    "item_id": "Item ID",
    "line_key": "Line Key",
}


class RecordMutator:
    """Narrow field overwrites on externally owned documents."""

    def __init__(self, store: DocumentStore):
        self._store = store

    def update_line_field(
        self,
        document_type: DocumentType,
        document_id: str,
        match_field: str,
        match_value: str,
        field: str,
        new_value: Any,
        match_all: bool = True,
    ) -> str:
        """Overwrite ``field`` on the line(s) where ``match_field == match_value``.

        Returns:
            The saved document id.

        Raises:
            LineNotFoundError: If no line matches.
        """
        with LogContext.bind(document_id=document_id):
            document = self._store.load(document_type, document_id)
            lines = document.matching_item_lines(match_field, match_value)
            if not lines:
                raise LineNotFoundError(
                    DOCUMENT_LABELS[document_type],
                    document_id,
                    MATCH_FIELD_LABELS.get(match_field, match_field),
                    match_value,
                )
            if not match_all:
                lines = lines[:1]

            for line in lines:
                line.set_field(field, new_value)

            saved_id = self._store.save(document, NARROW_OVERWRITE)
            logger.info("line_field_updated", extra={
                "document_type": document_type.value,
                "match_field": match_field,
                "match_value": match_value,
                "field": field,
                "new_value": new_value,
                "lines_updated": len(lines),
            })
            return saved_id

    def update_receipt_rate(self, ir_id: str, item_id: str, new_rate: Decimal) -> str:
        """Set the rate on every receipt line carrying ``item_id``."""
        return self.update_line_field(
            DocumentType.ITEM_RECEIPT, ir_id, "item_id", item_id, "rate", new_rate,
        )

    def mark_po_line_reviewed(self, po_id: str, po_line_key: str) -> str:
        """Flag one purchase order line's rate variance as reviewed."""
        return self.update_line_field(
            DocumentType.PURCHASE_ORDER,
            po_id,
            "line_key",
            po_line_key,
            REVIEWED_FIELD,
            True,
            match_all=False,
        )
