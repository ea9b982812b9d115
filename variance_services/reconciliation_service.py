"""
ReconciliationService -- facade wiring search, engines, batch and mutation.

Contract:
    One object per deployment (or per request, for the in-memory store)
    that the web layer and the scheduled script talk to.  It owns no
    state beyond its collaborators and its configuration.

    - ``receipt_bill_pairs()``: adapter -> grouper -> positional pairing.
    - ``order_bill_pairs(location_filter, config)``: adapter -> grouper ->
      oldest-bill pairing under (possibly overridden) thresholds.
    - ``run_round(variant, params)``: one window of an operator selection.
    - ``adjust_closed_period(request)``: compensating bill + journal entry.
    - ``scheduled_runner(budget)``: autonomous receipt rate correction.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol

from variance_batch.domain.types import BatchVariant, RoundOutcome
from variance_batch.driver import BatchReconciliationDriver
from variance_batch.scheduled import ScheduledReceiptRateRunner
from variance_batch.tasks.base import default_task_registry
from variance_config.schema import ReconciliationConfig
from variance_engines.grouping import LineGrouper
from variance_engines.pairing import PairingEngine
from variance_engines.types import OrderBillPair, RawJoinRow, ReceiptBillPair
from variance_kernel.domain.budget import OperationBudget
from variance_kernel.domain.clock import Clock
from variance_services.closed_period import (
    AdjustmentRequest,
    AdjustmentResult,
    ClosedPeriodAdjustment,
)
from variance_services.document_store import DocumentStore
from variance_services.record_mutator import RecordMutator


class SearchAdapter(Protocol):
    def receipt_bill_rows(self) -> list[RawJoinRow]: ...

    def order_bill_rows(
        self, location_filter: str | None = None, bill_date_floor: Any = None,
    ) -> list[RawJoinRow]: ...


class ReconciliationService:
    """Entry point for both operator views and the scheduled run."""

    def __init__(
        self,
        store: DocumentStore,
        search: SearchAdapter,
        config: ReconciliationConfig,
        clock: Clock | None = None,
    ):
        self.store = store
        self.config = config
        self._search = search
        self._grouper = LineGrouper()
        self._mutator = RecordMutator(store)
        self._driver = BatchReconciliationDriver(
            default_task_registry(self._mutator), config,
        )
        self._adjustment = ClosedPeriodAdjustment(store, config, clock)

    @property
    def mutator(self) -> RecordMutator:
        return self._mutator

    @property
    def driver(self) -> BatchReconciliationDriver:
        return self._driver

    def receipt_bill_pairs(self) -> list[ReceiptBillPair]:
        groups = self._grouper.group(self._search.receipt_bill_rows())
        return PairingEngine(self.config.pairing_policy()).pair_receipts_to_bills(groups)

    def order_bill_pairs(
        self,
        location_filter: str | None = None,
        config: ReconciliationConfig | None = None,
    ) -> list[OrderBillPair]:
        """Pairs under ``config`` (request overrides) or the service config."""
        effective = config or self.config
        rows = self._search.order_bill_rows(location_filter, effective.bill_date_floor)
        groups = self._grouper.group(rows)
        return PairingEngine(effective.pairing_policy()).pair_order_to_oldest_bill(groups)

    def run_round(
        self,
        variant: BatchVariant,
        params: Mapping[str, Any],
    ) -> RoundOutcome:
        return self._driver.run_round(variant, params)

    def adjust_closed_period(self, request: AdjustmentRequest) -> AdjustmentResult:
        return self._adjustment.execute(request)

    def scheduled_runner(self, budget: OperationBudget) -> ScheduledReceiptRateRunner:
        """Runner charging ``budget``; the store must charge the same budget."""
        return ScheduledReceiptRateRunner(
            pair_source=self.receipt_bill_pairs,
            mutator=self._mutator,
            budget=budget,
            config=self.config,
        )


def sql_reconciliation_service(
    database_url: str,
    config: ReconciliationConfig,
    budget: OperationBudget | None = None,
    clock: Clock | None = None,
) -> ReconciliationService:
    """Service over the SQLAlchemy document tables at ``database_url``."""
    from variance_kernel.db.engine import (
        create_tables,
        get_session_factory,
        init_engine_from_url,
    )
    from variance_services.search_adapter import SqlVarianceSearchAdapter
    from variance_services.sql_store import SqlDocumentStore

    init_engine_from_url(database_url)
    create_tables()
    session_factory = get_session_factory()
    return ReconciliationService(
        store=SqlDocumentStore(session_factory, budget=budget),
        search=SqlVarianceSearchAdapter(session_factory, config, budget=budget),
        config=config,
        clock=clock,
    )
