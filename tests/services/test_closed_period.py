"""
Tests for variance_services.closed_period -- ClosedPeriodAdjustment.

A locked receipt is reconciled by moving the bill to the receipt rate,
parking the difference on accrued purchases, and journaling it to COGS.
The bill total must not move.
"""

from datetime import date
from decimal import Decimal

import pytest

from variance_kernel.domain.documents import DocumentType
from variance_kernel.exceptions import (
    ClosedPeriodError,
    InvarianceViolationError,
    LineNotFoundError,
    PartialAdjustmentError,
)
from variance_services.closed_period import AdjustmentRequest, ClosedPeriodAdjustment

VB = DocumentType.VENDOR_BILL
JE = DocumentType.JOURNAL_ENTRY


def _request(vb_rate: str, ir_rate: str, vb_id: str = "VB1", item_id: str = "ITEM-1"):
    return AdjustmentRequest(
        vb_id=vb_id,
        item_id=item_id,
        vb_rate=Decimal(vb_rate),
        ir_rate=Decimal(ir_rate),
        vb_number="VB-100",
        item_name="Widget",
    )


class TestPositiveAdjustment:
    """Bill rate above receipt rate."""

    @pytest.fixture
    def result(self, factory, config, clock):
        factory.bill("VB1", po_line_key="L1", rate="55", department="13")
        return ClosedPeriodAdjustment(factory.store, config, clock).execute(
            _request("55", "50")
        )

    def test_bill_total_preserved(self, result, store):
        bill = store.load(VB, "VB1")

        assert bill.item_lines[0].rate == Decimal("50")
        assert bill.total == Decimal("55")
        expense = bill.expense_lines[0]
        assert expense.account == "112"
        assert expense.amount == Decimal("5")
        assert expense.memo == (
            "Closed Period Adj: Item Widget (ID: ITEM-1) - "
            "Orig VB Rate: $55.00, IR Rate: $50.00, Diff: $5.00"
        )

    def test_journal_entry_credits_accrued_debits_cogs(self, result, store):
        entry = store.load(JE, result.je_id)
        accrued, cogs = entry.journal_lines

        assert entry.tran_date == date(2025, 9, 1)
        assert entry.memo == "Closed Period Adjustment for VB VB-100 - Item: Widget"
        assert (accrued.account, accrued.credit, accrued.debit) == ("112", Decimal("5"), None)
        assert (cogs.account, cogs.debit, cogs.credit) == ("353", Decimal("5"), None)
        assert cogs.department == "13"
        assert accrued.memo == "Offset accrued purchases - VB VB-100"
        assert cogs.memo == "COGS adjustment for Widget"

    def test_result_params(self, result):
        assert result.to_params() == {
            "adjustmentSuccess": "true",
            "vbNumber": "VB-100",
            "jeNumber": "JE1",
            "itemName": "Widget",
            "adjustmentAmount": "5.00",
        }


class TestNegativeAdjustment:

    def test_debits_accrued_credits_cogs_with_default_department(self, factory, config, clock):
        factory.bill("VB1", po_line_key="L1", rate="48", department="99")

        result = ClosedPeriodAdjustment(factory.store, config, clock).execute(
            _request("48", "50")
        )

        accrued, cogs = factory.store.load(JE, result.je_id).journal_lines
        assert (accrued.debit, accrued.credit) == (Decimal("2"), None)
        assert (cogs.credit, cogs.debit) == (Decimal("2"), None)
        assert cogs.department == "107"
        assert result.adjustment_amount == Decimal("-2")


class TestNothingSavedOnEarlyFailure:
    """Failures before the bill save persist nothing."""

    def test_zero_adjustment_rejected(self, factory, config):
        factory.bill("VB1", po_line_key="L1", rate="50")
        with pytest.raises(ValueError, match="Nothing to adjust"):
            ClosedPeriodAdjustment(factory.store, config).execute(_request("50", "50"))

    def test_total_drift_cancels_adjustment(self, factory, config):
        factory.bill("VB1", po_line_key="L1", rate="10.02", quantity="2")

        with pytest.raises(InvarianceViolationError) as excinfo:
            ClosedPeriodAdjustment(factory.store, config).execute(_request("10.02", "10.00"))

        assert excinfo.value.original_total == "20.04"
        assert excinfo.value.new_total == "20.02"
        assert factory.store.save_history == []

    def test_item_not_on_bill(self, factory, config):
        factory.bill("VB1", po_line_key="L1", rate="55")
        with pytest.raises(LineNotFoundError):
            ClosedPeriodAdjustment(factory.store, config).execute(
                _request("55", "50", item_id="ITEM-7")
            )
        assert factory.store.save_history == []

    def test_bill_in_closed_period(self, factory, config):
        factory.bill("VB1", po_line_key="L1", rate="55", period_id="P-CLOSED")
        with pytest.raises(ClosedPeriodError):
            ClosedPeriodAdjustment(factory.store, config).execute(_request("55", "50"))


class TestPartialAdjustment:

    def test_bill_kept_and_error_carries_state(self, factory, config, clock, monkeypatch):
        factory.bill("VB1", po_line_key="L1", rate="55")

        def refuse(document, options=None):
            raise RuntimeError("journal posting unavailable")

        monkeypatch.setattr(factory.store, "create", refuse)

        with pytest.raises(PartialAdjustmentError) as excinfo:
            ClosedPeriodAdjustment(factory.store, config, clock).execute(_request("55", "50"))

        assert excinfo.value.saved_vb_id == "VB1"
        assert excinfo.value.adjustment_amount == "5.00"
        assert "journal posting unavailable" in excinfo.value.reason
        assert factory.store.load(VB, "VB1").item_lines[0].rate == Decimal("50")
