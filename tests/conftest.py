"""
Pytest fixtures for the rate variance reconciliation test suite.

Provides:
- Structured logging configured once per session, context cleared per test
- Captured JSON log records
- An in-memory document store seeded with one open and one closed period
- A document factory for purchase orders, receipts and bills
- A deterministic clock and the default configuration
"""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO

import pytest

from variance_config.schema import ReconciliationConfig
from variance_kernel.domain.clock import DeterministicClock
from variance_kernel.domain.documents import (
    REVIEWED_FIELD,
    AccountingPeriod,
    Document,
    DocumentType,
    ItemLine,
)
from variance_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from variance_services.document_store import InMemoryDocumentStore
from variance_services.reconciliation_service import ReconciliationService
from variance_services.search_adapter import VarianceSearchAdapter

OPEN_PERIOD = "P-OPEN"
CLOSED_PERIOD = "P-CLOSED"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture variance_recon logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, service):
            service.receipt_bill_pairs()
            logs = captured_logs()
            assert any(r["message"] == "receipt_bill_pairs_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("variance_recon")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Domain fixtures
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    """Fixed at 2025-09-01 12:00 UTC."""
    return DeterministicClock()


@pytest.fixture
def config() -> ReconciliationConfig:
    return ReconciliationConfig()


@pytest.fixture
def store() -> InMemoryDocumentStore:
    store = InMemoryDocumentStore()
    store.add_period(AccountingPeriod(OPEN_PERIOD, name="Sep 2025"))
    store.add_period(AccountingPeriod(CLOSED_PERIOD, name="Jul 2025", closed=True))
    return store


class DocumentFactory:
    """Builds one-line documents and adds them to a store."""

    def __init__(self, store: InMemoryDocumentStore):
        self.store = store

    def _add(
        self,
        document_id: str,
        document_type: DocumentType,
        tran_date: date,
        period_id: str | None,
        location_id: str | None,
        line: ItemLine,
        number: str | None = None,
    ) -> Document:
        document = Document(
            document_id=document_id,
            document_type=document_type,
            number=number or document_id,
            tran_date=tran_date,
            entity_id="V-1",
            entity_name="Acme Supply",
            location_id=location_id,
            period_id=period_id,
            item_lines=[line],
        )
        self.store.add_document(document)
        return document

    def order(
        self,
        document_id: str,
        *,
        line_key: str,
        rate: str,
        item_id: str = "ITEM-1",
        quantity: str = "1",
        tran_date: date = date(2025, 8, 1),
        location_id: str | None = "113",
        reviewed: bool = False,
    ) -> Document:
        line = ItemLine(
            line_key=line_key,
            item_id=item_id,
            item_name=f"Widget {item_id}",
            quantity=Decimal(quantity),
            rate=Decimal(rate),
            custom={REVIEWED_FIELD: True} if reviewed else {},
        )
        return self._add(
            document_id, DocumentType.PURCHASE_ORDER, tran_date, OPEN_PERIOD,
            location_id, line,
        )

    def receipt(
        self,
        document_id: str,
        *,
        po_line_key: str,
        rate: str,
        item_id: str = "ITEM-1",
        quantity: str = "1",
        tran_date: date = date(2025, 8, 5),
        period_id: str | None = OPEN_PERIOD,
        line_key: str | None = None,
    ) -> Document:
        line = ItemLine(
            line_key=line_key or f"{document_id}-1",
            item_id=item_id,
            item_name=f"Widget {item_id}",
            quantity=Decimal(quantity),
            rate=Decimal(rate),
            order_line_key=po_line_key,
        )
        return self._add(
            document_id, DocumentType.ITEM_RECEIPT, tran_date, period_id, "113", line,
        )

    def bill(
        self,
        document_id: str,
        *,
        po_line_key: str,
        rate: str,
        item_id: str = "ITEM-1",
        quantity: str = "1",
        tran_date: date = date(2025, 8, 15),
        period_id: str | None = OPEN_PERIOD,
        line_key: str | None = None,
        department: str | None = "13",
    ) -> Document:
        line = ItemLine(
            line_key=line_key or f"{document_id}-1",
            item_id=item_id,
            item_name=f"Widget {item_id}",
            quantity=Decimal(quantity),
            rate=Decimal(rate),
            department=department,
            order_line_key=po_line_key,
        )
        return self._add(
            document_id, DocumentType.VENDOR_BILL, tran_date, period_id, "113", line,
        )


@pytest.fixture
def factory(store) -> DocumentFactory:
    return DocumentFactory(store)


@pytest.fixture
def l1_scenario(factory):
    """PO line L1 at 100, received at 100, billed at 102."""
    factory.order("PO1", line_key="L1", rate="100")
    factory.receipt("IR1", po_line_key="L1", rate="100")
    factory.bill("VB1", po_line_key="L1", rate="102")
    return factory


@pytest.fixture
def service(store, config, clock) -> ReconciliationService:
    return ReconciliationService(
        store=store,
        search=VarianceSearchAdapter(store, config),
        config=config,
        clock=clock,
    )
