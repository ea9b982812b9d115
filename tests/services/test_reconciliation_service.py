"""
End-to-end tests for variance_services.reconciliation_service over the
in-memory store: search, grouping, pairing, batch rounds, closed-period
adjustment and the scheduled run.
"""

from datetime import date
from decimal import Decimal

from variance_batch.continuation import encode_selection
from variance_batch.domain.types import BatchVariant, RateCorrectionItem, ReviewMarkItem
from variance_kernel.domain.budget import OperationBudget
from variance_kernel.domain.documents import REVIEWED_FIELD, DocumentType
from variance_services.closed_period import AdjustmentRequest

IR = DocumentType.ITEM_RECEIPT
PO = DocumentType.PURCHASE_ORDER


def _selection(pair) -> RateCorrectionItem:
    return RateCorrectionItem(
        ir_id=pair.receipt.document_id,
        po_line_key=pair.info.po_line_key,
        new_rate=pair.bill.rate,
        ir_number=pair.receipt.number,
        item_name=pair.info.item_name,
        item_id=pair.info.item_id,
    )


class TestReceiptBillFlow:

    def test_single_variance_found_and_corrected(self, l1_scenario, service, store):
        pairs = service.receipt_bill_pairs()
        assert len(pairs) == 1
        assert pairs[0].variance == Decimal("2.00")

        outcome = service.run_round(
            BatchVariant.RATE_CORRECTION,
            {"selected_variances": encode_selection([_selection(pairs[0])])},
        )

        assert outcome.complete
        assert outcome.progress.updated == (
            {"ir_number": "IR1", "item_name": "Widget ITEM-1", "new_rate": "102"},
        )
        assert store.load(IR, "IR1").item_lines[0].rate == Decimal("102")
        assert service.receipt_bill_pairs() == []

    def test_closed_receipt_reported_then_adjusted(self, factory, service, store):
        factory.order("PO1", line_key="L1", rate="50")
        factory.receipt("IR1", po_line_key="L1", rate="50", period_id="P-CLOSED")
        factory.bill("VB1", po_line_key="L1", rate="55")

        pair = service.receipt_bill_pairs()[0]
        assert pair.receipt_period_closed
        outcome = service.run_round(
            BatchVariant.RATE_CORRECTION,
            {"selected_variances": encode_selection([_selection(pair)])},
        )
        assert outcome.closed_period_count == 1

        result = service.adjust_closed_period(AdjustmentRequest(
            vb_id="VB1", item_id="ITEM-1", vb_rate=pair.bill.rate,
            ir_rate=pair.receipt.rate, vb_number="VB1", item_name="Widget ITEM-1",
        ))

        assert result.adjustment_amount == Decimal("5")
        assert service.receipt_bill_pairs() == []


class TestOrderBillFlow:

    def test_threshold_boundary(self, factory, service):
        factory.order("PO1", line_key="L1", rate="100")
        factory.bill("VB1", po_line_key="L1", rate="101")
        factory.order("PO2", line_key="L2", rate="100")
        factory.bill("VB2", po_line_key="L2", rate="103")

        pairs = service.order_bill_pairs()

        assert [pair.info.po_id for pair in pairs] == ["PO2"]

    def test_request_overrides_apply(self, factory, service, config):
        factory.order("PO1", line_key="L1", rate="100")
        factory.bill("VB1", po_line_key="L1", rate="101")

        relaxed = config.with_threshold_overrides({"service_threshold": "0.5"})

        assert len(service.order_bill_pairs("service", relaxed)) == 1
        assert service.order_bill_pairs("kitchen", relaxed) == []

    def test_reviewed_line_drops_out(self, factory, service, store):
        factory.order("PO1", line_key="L1", rate="100")
        factory.bill("VB1", po_line_key="L1", rate="110", tran_date=date(2025, 8, 20))

        service.run_round(BatchVariant.REVIEW_MARK, {
            "selected_variances": encode_selection([ReviewMarkItem("PO1", "L1", "PO1", "W")]),
        })

        assert store.load(PO, "PO1").item_lines[0].get_field(REVIEWED_FIELD) is True
        assert service.order_bill_pairs() == []


class TestScheduledRun:

    def test_charges_shared_budget(self, l1_scenario, service, store):
        budget = OperationBudget(1_000)
        store.budget = budget

        report = service.scheduled_runner(budget).run()

        assert report.success_count == 1
        assert report.units_used == 40
        assert store.load(IR, "IR1").item_lines[0].rate == Decimal("102")
