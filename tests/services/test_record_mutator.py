"""
Tests for variance_services.record_mutator -- RecordMutator.

Narrow overwrites: full values (never deltas), every matching line or
only the first, saved with sourcing off and validation relaxed.
"""

from datetime import date
from decimal import Decimal

import pytest

from variance_kernel.domain.documents import (
    NARROW_OVERWRITE,
    REVIEWED_FIELD,
    Document,
    DocumentType,
    ItemLine,
)
from variance_kernel.exceptions import ClosedPeriodError, LineNotFoundError
from variance_services.record_mutator import RecordMutator

IR = DocumentType.ITEM_RECEIPT
PO = DocumentType.PURCHASE_ORDER


@pytest.fixture
def split_receipt(store):
    """Receipt with the same item on two lines plus one other item."""
    store.add_document(Document(
        document_id="IR5",
        document_type=IR,
        tran_date=date(2025, 8, 5),
        entity_id="V-1",
        period_id="P-OPEN",
        item_lines=[
            ItemLine("a", "ITEM-1", quantity=Decimal("2"), rate=Decimal("10")),
            ItemLine("b", "ITEM-2", quantity=Decimal("1"), rate=Decimal("4")),
            ItemLine("c", "ITEM-1", quantity=Decimal("3"), rate=Decimal("10")),
        ],
    ))
    return store


class TestUpdateReceiptRate:

    def test_every_matching_line_updated(self, split_receipt):
        RecordMutator(split_receipt).update_receipt_rate("IR5", "ITEM-1", Decimal("11"))

        rates = [line.rate for line in split_receipt.load(IR, "IR5").item_lines]
        assert rates == [Decimal("11"), Decimal("4"), Decimal("11")]

    def test_saved_as_narrow_overwrite(self, split_receipt):
        RecordMutator(split_receipt).update_receipt_rate("IR5", "ITEM-2", Decimal("5"))
        assert split_receipt.save_history == [("IR5", NARROW_OVERWRITE)]

    def test_repeating_an_update_is_idempotent(self, split_receipt):
        mutator = RecordMutator(split_receipt)
        mutator.update_receipt_rate("IR5", "ITEM-1", Decimal("11"))
        first = split_receipt.load(IR, "IR5")
        mutator.update_receipt_rate("IR5", "ITEM-1", Decimal("11"))
        second = split_receipt.load(IR, "IR5")

        assert first.item_lines == second.item_lines
        assert first.total == second.total

    def test_missing_item(self, split_receipt):
        with pytest.raises(LineNotFoundError) as excinfo:
            RecordMutator(split_receipt).update_receipt_rate("IR5", "ITEM-9", Decimal("1"))

        assert str(excinfo.value) == "No lines found with Item ID ITEM-9 on IR IR5"
        assert split_receipt.save_history == []

    def test_closed_period_propagates(self, factory):
        factory.receipt("IR1", po_line_key="L1", rate="10", period_id="P-CLOSED")
        with pytest.raises(ClosedPeriodError):
            RecordMutator(factory.store).update_receipt_rate("IR1", "ITEM-1", Decimal("12"))


class TestMarkReviewed:

    def test_flag_set_on_po_line(self, factory):
        factory.order("PO1", line_key="L1", rate="100")

        RecordMutator(factory.store).mark_po_line_reviewed("PO1", "L1")

        line = factory.store.load(PO, "PO1").item_lines[0]
        assert line.get_field(REVIEWED_FIELD) is True

    def test_unknown_line_key(self, factory):
        factory.order("PO1", line_key="L1", rate="100")
        with pytest.raises(LineNotFoundError, match="Line Key L2"):
            RecordMutator(factory.store).mark_po_line_reviewed("PO1", "L2")

    def test_update_logged(self, factory, captured_logs):
        factory.order("PO1", line_key="L1", rate="100")
        RecordMutator(factory.store).mark_po_line_reviewed("PO1", "L1")

        events = [r for r in captured_logs() if r["message"] == "line_field_updated"]
        assert events[0]["document_id"] == "PO1"
        assert events[0]["lines_updated"] == 1
