"""
SqlDocumentStore -- DocumentStore on the SQLAlchemy document tables.

Contract:
    Same protocol and save rules as InMemoryDocumentStore.  Each call runs
    in its own short transaction: committed on success, rolled back on
    any error.

Invariants enforced:
    - Optimistic lock: the header row is updated with
      ``UPDATE ... WHERE revision = :loaded``; zero matched rows means a
      concurrent save won, and ConcurrentModificationError is raised with
      nothing written.
    - Lines are replaced wholesale on save, preserving sublist order.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, selectinload

from variance_kernel.db.models import (
    AccountingPeriodModel,
    DocumentLineModel,
    DocumentModel,
)
from variance_kernel.domain.budget import OperationBudget
from variance_kernel.domain.documents import (
    AccountingPeriod,
    Document,
    DocumentType,
    SaveOptions,
)
from variance_kernel.exceptions import (
    ConcurrentModificationError,
    DocumentNotFoundError,
)
from variance_kernel.logging_config import get_logger
from variance_services.document_store import JOURNAL_PREFIX, check_save_rules

logger = get_logger("services.sql_store")


class SqlDocumentStore:
    """Document store backed by the ``documents`` / ``document_lines`` tables."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        budget: OperationBudget | None = None,
    ):
        self._session_factory = session_factory
        self.budget = budget

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _charge(self, operation: str) -> None:
        if self.budget is not None:
            self.budget.consume(operation)

    def _get_model(
        self,
        session: Session,
        document_type: DocumentType,
        document_id: str,
    ) -> DocumentModel:
        model = session.execute(
            select(DocumentModel)
            .options(selectinload(DocumentModel.lines))
            .where(DocumentModel.document_id == document_id)
        ).scalar_one_or_none()
        if model is None or model.document_type != document_type.value:
            raise DocumentNotFoundError(document_type.value, document_id)
        return model

    # -- seeding (not charged) -------------------------------------------

    def add_document(self, document: Document) -> None:
        with self._session() as session:
            session.add(DocumentModel.from_dto(document))

    def add_period(self, period: AccountingPeriod) -> None:
        with self._session() as session:
            session.merge(AccountingPeriodModel.from_dto(period))

    # -- host operations --------------------------------------------------

    def load(self, document_type: DocumentType, document_id: str) -> Document:
        self._charge("load")
        with self._session() as session:
            return self._get_model(session, document_type, document_id).to_dto()

    def save(self, document: Document, options: SaveOptions = SaveOptions()) -> str:
        self._charge("save")
        with self._session() as session:
            model = self._get_model(
                session, document.document_type, document.document_id
            )
            period = self._period(session, document.period_id)
            check_save_rules(document, period, options)

            result = session.execute(
                update(DocumentModel)
                .where(
                    DocumentModel.document_id == document.document_id,
                    DocumentModel.revision == document.revision,
                )
                .values(revision=document.revision + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise ConcurrentModificationError(
                    document.document_id, document.revision, model.revision
                )

            model.apply_header(document)
            model.lines = DocumentLineModel.from_document(document)
            session.flush()

        logger.debug("document_saved", extra={
            "document_id": document.document_id,
            "document_type": document.document_type.value,
            "revision": document.revision + 1,
        })
        return document.document_id

    def create(self, document: Document, options: SaveOptions = SaveOptions()) -> str:
        self._charge("create")
        with self._session() as session:
            check_save_rules(document, self._period(session, document.period_id), options)
            created = document.clone()
            if not created.document_id:
                count = session.execute(
                    select(func.count())
                    .select_from(DocumentModel)
                    .where(DocumentModel.document_type == created.document_type.value)
                ).scalar_one()
                created.document_id = f"{JOURNAL_PREFIX}{count + 1}"
            if not created.number:
                created.number = created.document_id
            created.revision = 1
            session.add(DocumentModel.from_dto(created))

        logger.debug("document_created", extra={
            "document_id": created.document_id,
            "document_type": created.document_type.value,
        })
        return created.document_id

    def get_period(self, period_id: str | None) -> AccountingPeriod | None:
        if period_id is None:
            return None
        with self._session() as session:
            return self._period(session, period_id)

    @staticmethod
    def _period(session: Session, period_id: str | None) -> AccountingPeriod | None:
        if period_id is None:
            return None
        model = session.get(AccountingPeriodModel, period_id)
        return model.to_dto() if model is not None else None
