"""
Variance Search Adapter -- the joined PO / receipt / bill line query.

Responsibility:
    Produce flat RawJoinRow streams for the two views:

    ``receipt_bill_rows()``
        PO item lines joined to the receipt lines and bill lines that
        reference them.  Joined lines need quantity > 0 and the receipt
        rate must differ from the bill rate.  The receipt's period
        is closed if its accounting period is closed or all-locked.
        Ordered by PO date ascending.

    ``order_bill_rows(location_filter, bill_date_floor)``
        PO item lines (quantity > 0, not yet reviewed) joined to bill
        lines (quantity > 0) dated on/after the floor whose rate
        differs from the PO rate, optionally restricted by location:
        ``service`` / ``kitchen`` select the configured location,
        ``appliances`` excludes both, ``all`` applies no filter.

    Two implementations share that contract: VarianceSearchAdapter joins
    in Python over a document store; SqlVarianceSearchAdapter issues the
    same join in SQL.

Failure modes:
    - Unknown ``location_filter`` -> ValueError.
    - A failing period lookup is logged and the receipt treated as open.
    - Each query is charged one ``search`` against the store's budget.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable, Iterable, Iterator
from datetime import date
from enum import Enum

from sqlalchemy import and_, select
from sqlalchemy.orm import Session, aliased

from variance_config.schema import ReconciliationConfig
from variance_engines.types import JoinedLine, RawJoinRow, vendor_display_name
from variance_kernel.db.models import (
    LINE_KIND_ITEM,
    AccountingPeriodModel,
    DocumentLineModel,
    DocumentModel,
)
from variance_kernel.domain.amounts import ZERO
from variance_kernel.domain.budget import OperationBudget
from variance_kernel.domain.documents import (
    REVIEWED_FIELD,
    Document,
    DocumentType,
    ItemLine,
)
from variance_kernel.logging_config import get_logger
from variance_services.document_store import InMemoryDocumentStore

logger = get_logger("services.search_adapter")


class LocationFilter(str, Enum):
    ALL = "all"
    SERVICE = "service"
    KITCHEN = "kitchen"
    APPLIANCES = "appliances"

    @classmethod
    def parse(cls, value: str | None) -> LocationFilter:
        if value is None or value == "":
            return cls.ALL
        try:
            return cls(value)
        except ValueError:
            raise ValueError(
                f"Unknown location filter {value!r}; "
                f"expected one of {[f.value for f in cls]}"
            ) from None


def location_matches(
    location_id: str | None,
    location_filter: LocationFilter,
    config: ReconciliationConfig,
) -> bool:
    if location_filter is LocationFilter.SERVICE:
        return location_id == config.service_location_id
    if location_filter is LocationFilter.KITCHEN:
        return location_id == config.kitchen_location_id
    if location_filter is LocationFilter.APPLIANCES:
        return location_id not in (config.service_location_id, config.kitchen_location_id)
    return True


def _joined(document: Document, line: ItemLine, **extra) -> JoinedLine:
    return JoinedLine(
        document_id=document.document_id,
        number=document.number,
        date=document.tran_date,
        line_key=line.line_key,
        quantity=line.quantity,
        rate=line.rate,
        **extra,
    )


def _row(
    po: Document,
    po_line: ItemLine,
    receipt: JoinedLine | None = None,
    bill: JoinedLine | None = None,
) -> RawJoinRow:
    return RawJoinRow(
        po_id=po.document_id,
        po_number=po.number,
        po_date=po.tran_date,
        po_line_key=po_line.line_key,
        po_rate=po_line.rate,
        po_quantity=po_line.quantity,
        item_id=po_line.item_id,
        item_number=po_line.item_number,
        item_name=po_line.item_name or po_line.item_number,
        vendor_id=po.entity_id,
        vendor_name=vendor_display_name(po.entity_name, po.entity_id),
        location_id=po.location_id,
        location_name=po.location_name,
        receipt=receipt,
        bill=bill,
    )


class VarianceSearchAdapter:
    """Join over an InMemoryDocumentStore."""

    def __init__(self, store: InMemoryDocumentStore, config: ReconciliationConfig):
        self._store = store
        self._config = config

    def _charge(self) -> None:
        budget: OperationBudget | None = self._store.budget
        if budget is not None:
            budget.consume("search")

    def _linked_lines(
        self,
        document_type: DocumentType,
    ) -> dict[str, list[tuple[Document, ItemLine]]]:
        """Positive-quantity item lines indexed by the PO line they reference."""
        index: dict[str, list[tuple[Document, ItemLine]]] = defaultdict(list)
        for document in self._store.iter_documents(document_type):
            for line in document.item_lines:
                if line.order_line_key and line.quantity > ZERO:
                    index[line.order_line_key].append((document, line))
        return index

    def _po_lines(self) -> Iterator[tuple[Document, ItemLine]]:
        orders = sorted(
            self._store.iter_documents(DocumentType.PURCHASE_ORDER),
            key=lambda po: po.tran_date or date.min,
        )
        for po in orders:
            for line in po.item_lines:
                if line.quantity > ZERO:
                    yield po, line

    def _period_closed(self, period_id: str | None) -> bool:
        if period_id is None:
            return False
        try:
            period = self._store.get_period(period_id)
        except Exception:
            logger.warning("period_lookup_failed", exc_info=True, extra={
                "period_id": period_id,
            })
            return False
        return period is not None and period.is_locked

    def receipt_bill_rows(self) -> list[RawJoinRow]:
        self._charge()
        receipts = self._linked_lines(DocumentType.ITEM_RECEIPT)
        bills = self._linked_lines(DocumentType.VENDOR_BILL)

        rows: list[RawJoinRow] = []
        for po, po_line in self._po_lines():
            for ir, ir_line in receipts.get(po_line.line_key, ()):
                for vb, vb_line in bills.get(po_line.line_key, ()):
                    if ir_line.rate == vb_line.rate:
                        continue
                    rows.append(_row(
                        po,
                        po_line,
                        receipt=_joined(
                            ir,
                            ir_line,
                            period_id=ir.period_id,
                            period_closed=self._period_closed(ir.period_id),
                        ),
                        bill=_joined(vb, vb_line),
                    ))

        logger.info("receipt_bill_rows_fetched", extra={"row_count": len(rows)})
        return rows

    def order_bill_rows(
        self,
        location_filter: str | None = None,
        bill_date_floor: date | None = None,
    ) -> list[RawJoinRow]:
        selected = LocationFilter.parse(location_filter)
        floor = bill_date_floor or self._config.bill_date_floor
        self._charge()
        bills = self._linked_lines(DocumentType.VENDOR_BILL)

        rows: list[RawJoinRow] = []
        for po, po_line in self._po_lines():
            if po_line.custom.get(REVIEWED_FIELD):
                continue
            if not location_matches(po.location_id, selected, self._config):
                continue
            for vb, vb_line in bills.get(po_line.line_key, ()):
                if vb.tran_date is None or vb.tran_date < floor:
                    continue
                if po_line.rate == vb_line.rate:
                    continue
                rows.append(_row(po, po_line, bill=_joined(vb, vb_line)))

        logger.info("order_bill_rows_fetched", extra={
            "row_count": len(rows),
            "location_filter": selected.value,
            "bill_date_floor": floor,
        })
        return rows


class SqlVarianceSearchAdapter:
    """The same two queries as SQL joins over the document tables."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        config: ReconciliationConfig,
        budget: OperationBudget | None = None,
    ):
        self._session_factory = session_factory
        self._config = config
        self.budget = budget

    def _charge(self) -> None:
        if self.budget is not None:
            self.budget.consume("search")

    @staticmethod
    def _joined(header: DocumentModel, line: DocumentLineModel, **extra) -> JoinedLine:
        return JoinedLine(
            document_id=header.document_id,
            number=header.number,
            date=header.tran_date,
            line_key=line.line_key or "",
            quantity=line.quantity,
            rate=line.rate,
            **extra,
        )

    @staticmethod
    def _row(
        po: DocumentModel,
        po_line: DocumentLineModel,
        receipt: JoinedLine | None = None,
        bill: JoinedLine | None = None,
    ) -> RawJoinRow:
        return RawJoinRow(
            po_id=po.document_id,
            po_number=po.number,
            po_date=po.tran_date,
            po_line_key=po_line.line_key or "",
            po_rate=po_line.rate,
            po_quantity=po_line.quantity,
            item_id=po_line.item_id or "",
            item_number=po_line.item_number,
            item_name=po_line.item_name or po_line.item_number,
            vendor_id=po.entity_id,
            vendor_name=vendor_display_name(po.entity_name, po.entity_id),
            location_id=po.location_id,
            location_name=po.location_name,
            receipt=receipt,
            bill=bill,
        )

    def _fetch(self, statement) -> Iterable:
        session = self._session_factory()
        try:
            return session.execute(statement).all()
        finally:
            session.close()

    def receipt_bill_rows(self) -> list[RawJoinRow]:
        self._charge()
        po, po_line = aliased(DocumentModel), aliased(DocumentLineModel)
        ir, ir_line = aliased(DocumentModel), aliased(DocumentLineModel)
        vb, vb_line = aliased(DocumentModel), aliased(DocumentLineModel)
        period = aliased(AccountingPeriodModel)

        statement = (
            select(po, po_line, ir, ir_line, vb, vb_line, period)
            .join(po_line, po_line.document_id == po.document_id)
            .join(ir_line, ir_line.order_line_key == po_line.line_key)
            .join(ir, and_(
                ir.document_id == ir_line.document_id,
                ir.document_type == DocumentType.ITEM_RECEIPT.value,
            ))
            .join(vb_line, vb_line.order_line_key == po_line.line_key)
            .join(vb, and_(
                vb.document_id == vb_line.document_id,
                vb.document_type == DocumentType.VENDOR_BILL.value,
            ))
            .outerjoin(period, period.period_id == ir.period_id)
            .where(
                po.document_type == DocumentType.PURCHASE_ORDER.value,
                po_line.kind == LINE_KIND_ITEM,
                ir_line.kind == LINE_KIND_ITEM,
                vb_line.kind == LINE_KIND_ITEM,
                po_line.quantity > 0,
                ir_line.quantity > 0,
                vb_line.quantity > 0,
                ir_line.rate != vb_line.rate,
            )
            .order_by(po.tran_date, po.document_id, po_line.position,
                      ir_line.id, vb_line.id)
        )

        rows = [
            self._row(
                r_po,
                r_po_line,
                receipt=self._joined(
                    r_ir,
                    r_ir_line,
                    period_id=r_ir.period_id,
                    period_closed=bool(
                        r_period is not None and (r_period.closed or r_period.all_locked)
                    ),
                ),
                bill=self._joined(r_vb, r_vb_line),
            )
            for r_po, r_po_line, r_ir, r_ir_line, r_vb, r_vb_line, r_period
            in self._fetch(statement)
        ]
        logger.info("receipt_bill_rows_fetched", extra={"row_count": len(rows)})
        return rows

    def order_bill_rows(
        self,
        location_filter: str | None = None,
        bill_date_floor: date | None = None,
    ) -> list[RawJoinRow]:
        selected = LocationFilter.parse(location_filter)
        floor = bill_date_floor or self._config.bill_date_floor
        self._charge()
        po, po_line = aliased(DocumentModel), aliased(DocumentLineModel)
        vb, vb_line = aliased(DocumentModel), aliased(DocumentLineModel)

        statement = (
            select(po, po_line, vb, vb_line)
            .join(po_line, po_line.document_id == po.document_id)
            .join(vb_line, vb_line.order_line_key == po_line.line_key)
            .join(vb, and_(
                vb.document_id == vb_line.document_id,
                vb.document_type == DocumentType.VENDOR_BILL.value,
            ))
            .where(
                po.document_type == DocumentType.PURCHASE_ORDER.value,
                po_line.kind == LINE_KIND_ITEM,
                vb_line.kind == LINE_KIND_ITEM,
                po_line.quantity > 0,
                vb_line.quantity > 0,
                po_line.rate != vb_line.rate,
                po_line.rate_variance_reviewed.is_(False),
                vb.tran_date >= floor,
            )
            .order_by(po.tran_date, po.document_id, po_line.position, vb_line.id)
        )
        service_id = self._config.service_location_id
        kitchen_id = self._config.kitchen_location_id
        if selected is LocationFilter.SERVICE:
            statement = statement.where(po.location_id == service_id)
        elif selected is LocationFilter.KITCHEN:
            statement = statement.where(po.location_id == kitchen_id)
        elif selected is LocationFilter.APPLIANCES:
            # NULL locations count as appliances
            statement = statement.where(
                (po.location_id.is_(None))
                | (po.location_id.not_in([service_id, kitchen_id]))
            )

        rows = [
            self._row(r_po, r_po_line, bill=self._joined(r_vb, r_vb_line))
            for r_po, r_po_line, r_vb, r_vb_line in self._fetch(statement)
        ]
        logger.info("order_bill_rows_fetched", extra={
            "row_count": len(rows),
            "location_filter": selected.value,
            "bill_date_floor": floor,
        })
        return rows
