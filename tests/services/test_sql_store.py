"""
Tests for the SQLAlchemy persistence path on in-memory SQLite:
SqlDocumentStore save rules and SqlVarianceSearchAdapter joins.
"""

from datetime import date
from decimal import Decimal

import pytest

from variance_batch.continuation import encode_selection
from variance_batch.domain.types import BatchVariant, ReviewMarkItem
from variance_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from variance_kernel.domain.budget import OperationBudget
from variance_kernel.domain.documents import (
    NARROW_OVERWRITE,
    REVIEWED_FIELD,
    AccountingPeriod,
    Document,
    DocumentType,
    ItemLine,
    JournalLine,
)
from variance_kernel.exceptions import (
    ClosedPeriodError,
    ConcurrentModificationError,
    DocumentNotFoundError,
)
from variance_services.reconciliation_service import ReconciliationService
from variance_services.search_adapter import SqlVarianceSearchAdapter
from variance_services.sql_store import SqlDocumentStore

PO = DocumentType.PURCHASE_ORDER
IR = DocumentType.ITEM_RECEIPT
VB = DocumentType.VENDOR_BILL
JE = DocumentType.JOURNAL_ENTRY


@pytest.fixture
def sql_store():
    reset_engine()
    init_engine_from_url("sqlite:///:memory:")
    create_tables()
    store = SqlDocumentStore(get_session_factory())
    store.add_period(AccountingPeriod("P-OPEN"))
    store.add_period(AccountingPeriod("P-CLOSED", closed=True))
    yield store
    reset_engine()


def _document(doc_id, doc_type, rate, *, po_line_key=None, line_key=None,
              period_id="P-OPEN", location_id="113", tran_date=date(2025, 8, 10)):
    return Document(
        document_id=doc_id,
        document_type=doc_type,
        number=f"#{doc_id}",
        tran_date=tran_date,
        entity_id="V-1",
        entity_name="Acme Supply",
        location_id=location_id,
        period_id=period_id,
        item_lines=[ItemLine(
            line_key=line_key or f"{doc_id}-1",
            item_id="ITEM-1",
            item_name="Widget",
            quantity=Decimal("1"),
            rate=Decimal(rate),
            department="13",
            order_line_key=po_line_key,
        )],
    )


def _seed_l1(store, receipt_period="P-OPEN"):
    store.add_document(_document("PO1", PO, "100", line_key="L1", tran_date=date(2025, 8, 1)))
    store.add_document(_document("IR1", IR, "100", po_line_key="L1", period_id=receipt_period))
    store.add_document(_document("VB1", VB, "102", po_line_key="L1", tran_date=date(2025, 8, 15)))


class TestSqlDocumentStore:

    def test_round_trip(self, sql_store):
        sql_store.add_document(_document("IR1", IR, "10.25", po_line_key="L1"))

        loaded = sql_store.load(IR, "IR1")

        assert loaded.number == "#IR1"
        assert loaded.item_lines[0].rate == Decimal("10.25")
        assert loaded.item_lines[0].order_line_key == "L1"

    def test_save_advances_revision_and_replaces_lines(self, sql_store):
        sql_store.add_document(_document("IR1", IR, "10", po_line_key="L1"))
        document = sql_store.load(IR, "IR1")
        document.item_lines[0].set_field("rate", "12")

        sql_store.save(document, NARROW_OVERWRITE)

        reloaded = sql_store.load(IR, "IR1")
        assert reloaded.revision == document.revision + 1
        assert len(reloaded.item_lines) == 1
        assert reloaded.item_lines[0].rate == Decimal("12")

    def test_stale_revision_rejected(self, sql_store):
        sql_store.add_document(_document("IR1", IR, "10", po_line_key="L1"))
        first = sql_store.load(IR, "IR1")
        second = sql_store.load(IR, "IR1")
        sql_store.save(first)

        second.item_lines[0].set_field("rate", "99")
        with pytest.raises(ConcurrentModificationError):
            sql_store.save(second)
        assert sql_store.load(IR, "IR1").item_lines[0].rate == Decimal("10")

    def test_closed_period_rejected(self, sql_store):
        sql_store.add_document(_document("IR1", IR, "10", po_line_key="L1", period_id="P-CLOSED"))
        with pytest.raises(ClosedPeriodError):
            sql_store.save(sql_store.load(IR, "IR1"), NARROW_OVERWRITE)

    def test_missing_document(self, sql_store):
        with pytest.raises(DocumentNotFoundError):
            sql_store.load(VB, "VB404")

    def test_create_journal_entry(self, sql_store):
        je_id = sql_store.create(Document(
            document_id="",
            document_type=JE,
            tran_date=date(2025, 9, 1),
            journal_lines=[
                JournalLine("112", credit=Decimal("5")),
                JournalLine("353", debit=Decimal("5"), department="13"),
            ],
        ))

        entry = sql_store.load(JE, je_id)
        assert je_id == "JE1"
        assert [line.account for line in entry.journal_lines] == ["112", "353"]
        assert entry.journal_lines[1].debit == Decimal("5")


class TestSqlVarianceSearchAdapter:

    def test_receipt_bill_rows(self, sql_store, config):
        _seed_l1(sql_store, receipt_period="P-CLOSED")

        rows = SqlVarianceSearchAdapter(get_session_factory(), config).receipt_bill_rows()

        assert len(rows) == 1
        assert rows[0].receipt.document_id == "IR1"
        assert rows[0].receipt.period_closed is True
        assert rows[0].bill.rate == Decimal("102")

    def test_appliances_includes_missing_location(self, sql_store, config):
        sql_store.add_document(_document("PO1", PO, "100", line_key="L1", location_id=None))
        sql_store.add_document(_document("PO2", PO, "100", line_key="L2", location_id="113"))
        sql_store.add_document(_document("VB1", VB, "110", po_line_key="L1"))
        sql_store.add_document(_document("VB2", VB, "110", po_line_key="L2"))

        adapter = SqlVarianceSearchAdapter(get_session_factory(), config)

        assert [row.po_id for row in adapter.order_bill_rows("appliances")] == ["PO1"]
        assert [row.po_id for row in adapter.order_bill_rows("service")] == ["PO2"]


class TestSqlReconciliation:

    @pytest.fixture
    def sql_service(self, sql_store, config, clock):
        return ReconciliationService(
            store=sql_store,
            search=SqlVarianceSearchAdapter(get_session_factory(), config),
            config=config,
            clock=clock,
        )

    def test_scheduled_run_corrects_receipt(self, sql_store, sql_service):
        _seed_l1(sql_store)
        budget = OperationBudget(1_000)
        sql_store.budget = budget

        report = sql_service.scheduled_runner(budget).run()

        assert report.success_count == 1
        assert sql_store.load(IR, "IR1").item_lines[0].rate == Decimal("102")
        assert sql_service.receipt_bill_pairs() == []

    def test_review_mark_persists_flag(self, sql_store, sql_service):
        _seed_l1(sql_store)

        sql_service.run_round(BatchVariant.REVIEW_MARK, {
            "selected_variances": encode_selection([ReviewMarkItem("PO1", "L1")]),
        })

        assert sql_store.load(PO, "PO1").item_lines[0].get_field(REVIEWED_FIELD) is True
        assert sql_service.order_bill_pairs() == []
