"""
ORM models for the persistent document store.

Contract:
    DocumentModel, DocumentLineModel and AccountingPeriodModel persist the
    purchasing documents the reconciliation core reads and writes.  Each
    has ``to_dto()`` / ``from_dto()`` round-trip methods to the kernel
    domain types.

Architecture: variance_kernel/db.  Imports from variance_kernel.db.base and
    variance_kernel.domain only.

Invariants enforced:
    - ``revision`` on DocumentModel is the optimistic lock counter; the
      store advances it with a guarded UPDATE on every save.
    - ``document_lines.kind`` is one of item / expense / journal; lines
      keep their sublist order through ``position``.
    - ``rate_variance_reviewed`` is a real column so the order/bill query
      can filter on it in SQL.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from variance_kernel.db.base import TrackedBase
from variance_kernel.domain.documents import REVIEWED_FIELD

if TYPE_CHECKING:
    from variance_kernel.domain.documents import (
        AccountingPeriod,
        Document,
        ExpenseLine,
        ItemLine,
        JournalLine,
    )

LINE_KIND_ITEM = "item"
LINE_KIND_EXPENSE = "expense"
LINE_KIND_JOURNAL = "journal"


class AccountingPeriodModel(TrackedBase):
    """Posting period with its lock flags."""

    __tablename__ = "accounting_periods"

    period_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), default="", nullable=False)
    closed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    all_locked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def to_dto(self) -> AccountingPeriod:
        from variance_kernel.domain.documents import AccountingPeriod

        return AccountingPeriod(
            period_id=self.period_id,
            name=self.name,
            closed=self.closed,
            all_locked=self.all_locked,
        )

    @classmethod
    def from_dto(cls, dto: AccountingPeriod) -> AccountingPeriodModel:
        return cls(
            period_id=dto.period_id,
            name=dto.name,
            closed=dto.closed,
            all_locked=dto.all_locked,
        )


class DocumentModel(TrackedBase):
    """Header of a purchase order, item receipt, vendor bill or journal entry."""

    __tablename__ = "documents"

    __table_args__ = (
        Index("ix_documents_type", "document_type"),
        Index("ix_documents_number", "number"),
    )

    document_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    document_type: Mapped[str] = mapped_column(String(50), nullable=False)
    number: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    tran_date: Mapped[date | None] = mapped_column(nullable=True)
    entity_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    entity_name: Mapped[str] = mapped_column(String(200), default="", nullable=False)
    location_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    location_name: Mapped[str] = mapped_column(String(200), default="", nullable=False)
    period_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("accounting_periods.period_id"), nullable=True,
    )
    memo: Mapped[str] = mapped_column(Text, default="", nullable=False)
    revision: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    lines: Mapped[list[DocumentLineModel]] = relationship(
        "DocumentLineModel",
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="DocumentLineModel.position",
    )

    def to_dto(self) -> Document:
        from variance_kernel.domain.documents import Document, DocumentType

        document = Document(
            document_id=self.document_id,
            document_type=DocumentType(self.document_type),
            number=self.number,
            tran_date=self.tran_date,
            entity_id=self.entity_id,
            entity_name=self.entity_name,
            location_id=self.location_id,
            location_name=self.location_name,
            period_id=self.period_id,
            memo=self.memo,
            revision=self.revision,
        )
        for line in self.lines:
            if line.kind == LINE_KIND_ITEM:
                document.item_lines.append(line.to_item_line())
            elif line.kind == LINE_KIND_EXPENSE:
                document.expense_lines.append(line.to_expense_line())
            elif line.kind == LINE_KIND_JOURNAL:
                document.journal_lines.append(line.to_journal_line())
        return document

    @classmethod
    def from_dto(cls, dto: Document) -> DocumentModel:
        model = cls(document_id=dto.document_id, revision=dto.revision)
        model.apply_header(dto)
        model.lines = DocumentLineModel.from_document(dto)
        return model

    def apply_header(self, dto: Document) -> None:
        """Copy header fields (everything but id and revision) from ``dto``."""
        self.document_type = dto.document_type.value
        self.number = dto.number
        self.tran_date = dto.tran_date
        self.entity_id = dto.entity_id
        self.entity_name = dto.entity_name
        self.location_id = dto.location_id
        self.location_name = dto.location_name
        self.period_id = dto.period_id
        self.memo = dto.memo


class DocumentLineModel(TrackedBase):
    """One line of any sublist; ``kind`` says which."""

    __tablename__ = "document_lines"

    __table_args__ = (
        Index("ix_document_lines_document", "document_id"),
        Index("ix_document_lines_order_line", "order_line_key"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    document_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("documents.document_id"), nullable=False,
    )
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    # item lines
    line_key: Mapped[str | None] = mapped_column(String(100), nullable=True)
    item_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    item_name: Mapped[str] = mapped_column(String(200), default="", nullable=False)
    item_number: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    quantity: Mapped[Decimal | None] = mapped_column(nullable=True)
    rate: Mapped[Decimal | None] = mapped_column(nullable=True)
    order_line_key: Mapped[str | None] = mapped_column(String(100), nullable=True)
    rate_variance_reviewed: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False,
    )
    custom: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    # expense and journal lines
    account: Mapped[str | None] = mapped_column(String(64), nullable=True)
    amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    debit: Mapped[Decimal | None] = mapped_column(nullable=True)
    credit: Mapped[Decimal | None] = mapped_column(nullable=True)
    memo: Mapped[str] = mapped_column(Text, default="", nullable=False)

    department: Mapped[str | None] = mapped_column(String(64), nullable=True)

    document: Mapped[DocumentModel] = relationship(
        "DocumentModel", back_populates="lines",
    )

    def to_item_line(self) -> ItemLine:
        from variance_kernel.domain.documents import ItemLine

        custom = dict(self.custom or {})
        custom[REVIEWED_FIELD] = self.rate_variance_reviewed
        return ItemLine(
            line_key=self.line_key or "",
            item_id=self.item_id or "",
            item_name=self.item_name,
            item_number=self.item_number,
            quantity=self.quantity if self.quantity is not None else Decimal("0"),
            rate=self.rate if self.rate is not None else Decimal("0"),
            department=self.department,
            order_line_key=self.order_line_key,
            custom=custom,
        )

    def to_expense_line(self) -> ExpenseLine:
        from variance_kernel.domain.documents import ExpenseLine

        return ExpenseLine(
            account=self.account or "",
            amount=self.amount if self.amount is not None else Decimal("0"),
            memo=self.memo,
            department=self.department,
        )

    def to_journal_line(self) -> JournalLine:
        from variance_kernel.domain.documents import JournalLine

        return JournalLine(
            account=self.account or "",
            debit=self.debit,
            credit=self.credit,
            memo=self.memo,
            department=self.department,
        )

    @classmethod
    def from_document(cls, dto: Document) -> list[DocumentLineModel]:
        """Flatten a document's three sublists into ordered line rows."""
        rows: list[DocumentLineModel] = []
        position = 0
        for item in dto.item_lines:
            custom = {k: v for k, v in item.custom.items() if k != REVIEWED_FIELD}
            rows.append(cls(
                kind=LINE_KIND_ITEM,
                position=position,
                line_key=item.line_key,
                item_id=item.item_id,
                item_name=item.item_name,
                item_number=item.item_number,
                quantity=item.quantity,
                rate=item.rate,
                order_line_key=item.order_line_key,
                rate_variance_reviewed=bool(item.custom.get(REVIEWED_FIELD, False)),
                custom=custom or None,
                department=item.department,
            ))
            position += 1
        for expense in dto.expense_lines:
            rows.append(cls(
                kind=LINE_KIND_EXPENSE,
                position=position,
                account=expense.account,
                amount=expense.amount,
                memo=expense.memo,
                department=expense.department,
            ))
            position += 1
        for journal in dto.journal_lines:
            rows.append(cls(
                kind=LINE_KIND_JOURNAL,
                position=position,
                account=journal.account,
                debit=journal.debit,
                credit=journal.credit,
                memo=journal.memo,
                department=journal.department,
            ))
            position += 1
        return rows
