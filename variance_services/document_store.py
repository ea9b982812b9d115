"""
DocumentStore -- load / save / create access to externally owned documents.

Responsibility:
    The reconciliation core never holds a document across calls: it
    loads a private copy, mutates it in memory and hands it back to
    ``save``.  This module defines that protocol and an in-memory store
    that applies the same rules a host platform applies on save.

Rules applied on save (both stores):
    - Unknown document id -> DocumentNotFoundError.
    - Revision differs from the loaded copy -> ConcurrentModificationError.
    - Document's accounting period closed or locked -> ClosedPeriodError.
    - Empty mandatory header field and validation not relaxed ->
      MandatoryFieldError.
    - Every load / save / create / search is charged to the optional
      OperationBudget first; an exhausted budget raises BudgetExceededError
      before anything is read or written.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Protocol, runtime_checkable

from variance_kernel.domain.budget import OperationBudget
from variance_kernel.domain.documents import (
    AccountingPeriod,
    Document,
    DocumentType,
    SaveOptions,
)
from variance_kernel.exceptions import (
    ClosedPeriodError,
    ConcurrentModificationError,
    DocumentNotFoundError,
    MandatoryFieldError,
)
from variance_kernel.logging_config import get_logger

logger = get_logger("services.document_store")

JOURNAL_PREFIX = "JE"


@runtime_checkable
class DocumentStore(Protocol):
    """Operations the reconciliation core needs from a document store."""

    budget: OperationBudget | None

    def load(self, document_type: DocumentType, document_id: str) -> Document: ...

    def save(self, document: Document, options: SaveOptions = SaveOptions()) -> str: ...

    def create(self, document: Document, options: SaveOptions = SaveOptions()) -> str: ...

    def get_period(self, period_id: str) -> AccountingPeriod | None: ...


def check_save_rules(
    document: Document,
    period: AccountingPeriod | None,
    options: SaveOptions,
) -> None:
    """Host rules shared by every store; raises on the first violation."""
    if period is not None and period.is_locked:
        raise ClosedPeriodError(document.document_id, period.period_id)
    if not options.ignore_mandatory_fields:
        missing = document.missing_mandatory_fields()
        if missing:
            raise MandatoryFieldError(document.document_id, missing[0])


class InMemoryDocumentStore:
    """
    Dict-backed store with host save semantics.

    ``save_history`` records (document id, options) for every successful
    save or create, in order.
    """

    def __init__(self, budget: OperationBudget | None = None):
        self.budget = budget
        self._documents: dict[str, Document] = {}
        self._periods: dict[str, AccountingPeriod] = {}
        self._journal_seq = 0
        self.save_history: list[tuple[str, SaveOptions]] = []

    # -- seeding (not charged) -------------------------------------------

    def add_document(self, document: Document) -> None:
        self._documents[document.document_id] = document.clone()

    def add_period(self, period: AccountingPeriod) -> None:
        self._periods[period.period_id] = period

    # -- host operations --------------------------------------------------

    def _charge(self, operation: str) -> None:
        if self.budget is not None:
            self.budget.consume(operation)

    def load(self, document_type: DocumentType, document_id: str) -> Document:
        self._charge("load")
        stored = self._documents.get(document_id)
        if stored is None or stored.document_type != document_type:
            raise DocumentNotFoundError(document_type.value, document_id)
        return stored.clone()

    def save(self, document: Document, options: SaveOptions = SaveOptions()) -> str:
        self._charge("save")
        stored = self._documents.get(document.document_id)
        if stored is None or stored.document_type != document.document_type:
            raise DocumentNotFoundError(
                document.document_type.value, document.document_id
            )
        if stored.revision != document.revision:
            raise ConcurrentModificationError(
                document.document_id, document.revision, stored.revision
            )
        check_save_rules(document, self.get_period(document.period_id), options)

        saved = document.clone()
        saved.revision = stored.revision + 1
        self._documents[saved.document_id] = saved
        self.save_history.append((saved.document_id, options))
        logger.debug("document_saved", extra={
            "document_id": saved.document_id,
            "document_type": saved.document_type.value,
            "revision": saved.revision,
        })
        return saved.document_id

    def create(self, document: Document, options: SaveOptions = SaveOptions()) -> str:
        self._charge("create")
        check_save_rules(document, self.get_period(document.period_id), options)

        created = document.clone()
        if not created.document_id:
            self._journal_seq += 1
            created.document_id = f"{JOURNAL_PREFIX}{self._journal_seq}"
        if created.document_id in self._documents:
            raise ValueError(f"Document {created.document_id} already exists")
        if not created.number:
            created.number = created.document_id
        created.revision = 1
        self._documents[created.document_id] = created
        self.save_history.append((created.document_id, options))
        logger.debug("document_created", extra={
            "document_id": created.document_id,
            "document_type": created.document_type.value,
        })
        return created.document_id

    def get_period(self, period_id: str | None) -> AccountingPeriod | None:
        if period_id is None:
            return None
        return self._periods.get(period_id)

    # -- query support ----------------------------------------------------

    def iter_documents(self, document_type: DocumentType) -> Iterator[Document]:
        """Read-only copies of every document of a type (not charged)."""
        for document in self._documents.values():
            if document.document_type == document_type:
                yield document.clone()
