#!/usr/bin/env python3
"""
Seed a database with a small set of purchase orders, receipts and bills.

Creates the document tables if needed and adds:

    PO-1001  service location, receipt in an open period, bill 2.00 higher
    PO-1002  kitchen location, receipt in a closed period, bill 5.00 higher
    PO-1003  appliances, bill within the review threshold (no PO variance)

Usage:
    python3 scripts/seed_demo.py --db-url sqlite:///variance.db
"""

from __future__ import annotations

import argparse
import sys
from datetime import date
from decimal import Decimal
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

OPEN_PERIOD = "2025-09"
CLOSED_PERIOD = "2025-08"


def _documents():
    from variance_kernel.domain.documents import Document, DocumentType, ItemLine

    def doc(doc_id, doc_type, number, tran_date, period, location, rate, po_key, line_key):
        return Document(
            document_id=doc_id,
            document_type=doc_type,
            number=number,
            tran_date=tran_date,
            entity_id="V-200",
            entity_name="Northwind Supply",
            location_id=location,
            period_id=period,
            item_lines=[ItemLine(
                line_key=line_key,
                item_id=f"ITEM-{po_key}",
                item_name=f"Demo item {po_key}",
                item_number=f"SKU-{po_key}",
                quantity=Decimal("1"),
                rate=Decimal(rate),
                department="13",
                order_line_key=None if doc_type is DocumentType.PURCHASE_ORDER else po_key,
            )],
        )

    po, ir, vb = (
        DocumentType.PURCHASE_ORDER,
        DocumentType.ITEM_RECEIPT,
        DocumentType.VENDOR_BILL,
    )
    return [
        doc("PO1", po, "PO-1001", date(2025, 8, 2), OPEN_PERIOD, "113", "100", "POL1", "POL1"),
        doc("IR1", ir, "IR-2001", date(2025, 8, 5), OPEN_PERIOD, "113", "100", "POL1", "IRL1"),
        doc("VB1", vb, "VB-3001", date(2025, 8, 20), OPEN_PERIOD, "113", "102", "POL1", "VBL1"),
        doc("PO2", po, "PO-1002", date(2025, 7, 20), CLOSED_PERIOD, "17", "50", "POL2", "POL2"),
        doc("IR2", ir, "IR-2002", date(2025, 7, 28), CLOSED_PERIOD, "17", "50", "POL2", "IRL2"),
        doc("VB2", vb, "VB-3002", date(2025, 9, 3), OPEN_PERIOD, "17", "55", "POL2", "VBL2"),
        doc("PO3", po, "PO-1003", date(2025, 8, 10), OPEN_PERIOD, "5", "200", "POL3", "POL3"),
        doc("IR3", ir, "IR-2003", date(2025, 8, 12), OPEN_PERIOD, "5", "200", "POL3", "IRL3"),
        doc("VB3", vb, "VB-3003", date(2025, 8, 30), OPEN_PERIOD, "5", "201", "POL3", "VBL3"),
    ]


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed demo rate variance documents.")
    parser.add_argument("--db-url", required=True, help="SQLAlchemy database URL.")
    args = parser.parse_args()

    from variance_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url
    from variance_kernel.domain.documents import AccountingPeriod
    from variance_services.sql_store import SqlDocumentStore

    init_engine_from_url(args.db_url)
    create_tables()
    store = SqlDocumentStore(get_session_factory())

    store.add_period(AccountingPeriod(OPEN_PERIOD, name="Sep 2025"))
    store.add_period(AccountingPeriod(CLOSED_PERIOD, name="Aug 2025", closed=True))
    documents = _documents()
    for document in documents:
        store.add_document(document)

    print(f"  Seeded {len(documents)} documents into {args.db_url}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
