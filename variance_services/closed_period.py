"""
Closed-Period Adjustment Procedure.

Responsibility:
    When an item receipt cannot be edited because its accounting period
    is locked, bring the vendor bill down to the receipt rate instead and
    park the difference:

    1. Load the bill; its total is the invariance anchor.
    2. Set the first line of the item to the receipt rate, keeping the
       line's department.
    3. adjustment = original bill rate - receipt rate (signed).
    4. Append an expense line on the accrued purchases account for the
       adjustment.
    5. Abort, saving nothing, if the bill total moved by more than the
       tolerance.
    6. Save the bill (sourcing off, validation relaxed).
    7. Create a two-line journal entry moving the adjustment between
       accrued purchases and COGS, and re-read it for its number.

Invariants enforced:
    - Steps 1-5 work on an unsaved copy: any failure there persists nothing.
    - A positive adjustment credits accrued purchases and debits COGS; a
      negative one debits accrued purchases and credits COGS.  Both
      lines carry abs(adjustment).
    - COGS department comes from the bill line's department through the
      configured map.

Failure modes:
    - ValueError: zero adjustment (nothing to do).
    - LineNotFoundError: item not on the bill.
    - InvarianceViolationError: total drift; the bill is not saved.
    - ClosedPeriodError: the bill's own period is locked.
    - PartialAdjustmentError: bill saved but the journal entry failed.
      The corrected bill is NOT rolled back; the error carries the bill id
      and the adjustment for manual reconciliation.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from variance_config.schema import ReconciliationConfig
from variance_kernel.domain.amounts import ZERO, format_money
from variance_kernel.domain.clock import Clock, SystemClock
from variance_kernel.domain.documents import (
    NARROW_OVERWRITE,
    Document,
    DocumentType,
    ExpenseLine,
    JournalLine,
)
from variance_kernel.exceptions import (
    InvarianceViolationError,
    LineNotFoundError,
    PartialAdjustmentError,
)
from variance_kernel.logging_config import LogContext, get_logger
from variance_services.document_store import DocumentStore

logger = get_logger("services.closed_period")


@dataclass(frozen=True)
class AdjustmentRequest:
    """What the operator asked to adjust."""

    vb_id: str
    item_id: str
    vb_rate: Decimal
    ir_rate: Decimal
    vb_number: str = ""
    item_name: str = ""

    @property
    def adjustment(self) -> Decimal:
        return self.vb_rate - self.ir_rate


@dataclass(frozen=True)
class AdjustmentResult:
    vb_id: str
    vb_number: str
    je_id: str
    je_number: str
    item_name: str
    adjustment_amount: Decimal

    def to_params(self) -> dict[str, str]:
        return {
            "adjustmentSuccess": "true",
            "vbNumber": self.vb_number,
            "jeNumber": self.je_number,
            "itemName": self.item_name,
            "adjustmentAmount": format_money(self.adjustment_amount),
        }


def expense_memo(request: AdjustmentRequest) -> str:
    return (
        f"Closed Period Adj: Item {request.item_name} (ID: {request.item_id}) - "
        f"Orig VB Rate: ${format_money(request.vb_rate)}, "
        f"IR Rate: ${format_money(request.ir_rate)}, "
        f"Diff: ${format_money(request.adjustment)}"
    )


class ClosedPeriodAdjustment:
    """Compensating bill edit plus journal entry for a locked receipt."""

    def __init__(
        self,
        store: DocumentStore,
        config: ReconciliationConfig,
        clock: Clock | None = None,
    ):
        self._store = store
        self._config = config
        self._clock = clock or SystemClock()

    def execute(self, request: AdjustmentRequest) -> AdjustmentResult:
        adjustment = request.adjustment
        if adjustment == ZERO:
            raise ValueError(
                f"Nothing to adjust: VB rate equals IR rate ({request.ir_rate})"
            )

        with LogContext.bind(document_id=request.vb_id):
            logger.info("closed_period_adjustment_started", extra={
                "vb_id": request.vb_id,
                "item_id": request.item_id,
                "vb_rate": request.vb_rate,
                "ir_rate": request.ir_rate,
            })

            bill, department = self._prepare_bill(request)
            saved_vb_id = self._store.save(bill, NARROW_OVERWRITE)
            logger.info("vendor_bill_adjusted", extra={
                "vb_id": saved_vb_id,
                "adjustment_amount": adjustment,
            })

            try:
                je_id = self._store.create(self._journal_entry(request, department))
                je_number = self._store.load(DocumentType.JOURNAL_ENTRY, je_id).number
            except Exception as exc:
                logger.error("closed_period_journal_failed", exc_info=True, extra={
                    "vb_id": saved_vb_id,
                    "adjustment_amount": adjustment,
                })
                raise PartialAdjustmentError(
                    saved_vb_id, format_money(adjustment), str(exc)
                ) from exc

            logger.info("closed_period_adjustment_completed", extra={
                "vb_id": saved_vb_id,
                "je_id": je_id,
                "je_number": je_number,
                "adjustment_amount": adjustment,
            })
            return AdjustmentResult(
                vb_id=saved_vb_id,
                vb_number=request.vb_number or bill.number,
                je_id=je_id,
                je_number=je_number,
                item_name=request.item_name,
                adjustment_amount=adjustment,
            )

    def _prepare_bill(self, request: AdjustmentRequest) -> tuple[Document, str | None]:
        """Steps 1-5 on an unsaved copy of the bill."""
        bill = self._store.load(DocumentType.VENDOR_BILL, request.vb_id)
        original_total = bill.total

        lines = bill.matching_item_lines("item_id", request.item_id)
        if not lines:
            raise LineNotFoundError("VB", request.vb_id, "Item ID", request.item_id)
        line = lines[0]
        department = line.department
        line.set_field("rate", request.ir_rate)

        bill.expense_lines.append(ExpenseLine(
            account=self._config.adjustment.accrued_purchases_account,
            amount=request.adjustment,
            memo=expense_memo(request),
        ))

        new_total = bill.total
        if abs(new_total - original_total) > self._config.invariance_tolerance:
            logger.error("closed_period_invariance_violated", extra={
                "original_total": original_total,
                "new_total": new_total,
            })
            raise InvarianceViolationError(
                request.vb_id,
                format_money(original_total),
                format_money(new_total),
                format_money(self._config.invariance_tolerance),
            )
        return bill, department

    def _journal_entry(self, request: AdjustmentRequest, department: str | None) -> Document:
        accounts = self._config.adjustment
        amount = abs(request.adjustment)
        positive = request.adjustment > ZERO

        accrued = JournalLine(
            account=accounts.accrued_purchases_account,
            memo=f"Offset accrued purchases - VB {request.vb_number}",
        )
        cogs = JournalLine(
            account=accounts.cogs_account,
            memo=f"COGS adjustment for {request.item_name}",
            department=accounts.map_department(department),
        )
        if positive:
            accrued.credit = amount
            cogs.debit = amount
        else:
            accrued.debit = amount
            cogs.credit = amount

        return Document(
            document_id="",
            document_type=DocumentType.JOURNAL_ENTRY,
            tran_date=self._clock.today(),
            memo=(
                f"Closed Period Adjustment for VB {request.vb_number} "
                f"- Item: {request.item_name}"
            ),
            journal_lines=[accrued, cogs],
        )
