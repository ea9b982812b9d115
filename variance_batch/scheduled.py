"""
ScheduledReceiptRateRunner -- autonomous receipt rate correction under a budget.

Contract:
    ``run()`` fetches every receipt/bill pair above the absolute floor and
    writes the bill rate onto each receipt, one pair at a time, until the
    pairs or the operation budget run out.  Returns a ScheduledRunReport.

Invariants enforced:
    - Before each pair the remaining budget is compared with
      ``governance_margin``; below it the run stops and EVERY unprocessed
      pair is recorded as skipped (one record per pair).
    - Closed-period rejections are expected: tallied in ``closed_period``,
      not in ``errors``.
    - Per-pair failures never abort the run; failures outside the pair
      loop are logged and re-raised.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from variance_batch.tasks.base import LineMutator, error_code, simplify_error
from variance_batch.tasks.rate_correction import NOT_FOUND_MESSAGE
from variance_config.schema import ReconciliationConfig
from variance_engines.types import ReceiptBillPair
from variance_kernel.domain.amounts import plain_decimal
from variance_kernel.domain.budget import OperationBudget
from variance_kernel.exceptions import ClosedPeriodError
from variance_kernel.logging_config import get_logger

logger = get_logger("batch.scheduled")

GOVERNANCE_SKIP_REASON = "Governance limit reached"
CLOSED_PERIOD_REASON = "Period is closed"


@dataclass(frozen=True)
class ScheduledRunReport:
    """Outcome of one scheduled run."""

    total_found: int = 0
    processed: int = 0
    success_count: int = 0
    error_count: int = 0
    closed_period_count: int = 0
    updated: tuple[dict[str, Any], ...] = ()
    closed_period: tuple[dict[str, Any], ...] = ()
    errors: tuple[dict[str, Any], ...] = ()
    skipped: tuple[dict[str, Any], ...] = ()
    units_used: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_found": self.total_found,
            "processed": self.processed,
            "success_count": self.success_count,
            "error_count": self.error_count,
            "closed_period_count": self.closed_period_count,
            "updated": list(self.updated),
            "closed_period": list(self.closed_period),
            "errors": list(self.errors),
            "skipped": list(self.skipped),
            "units_used": self.units_used,
        }


def _pair_summary(pair: ReceiptBillPair) -> dict[str, Any]:
    return {
        "ir_id": pair.receipt.document_id,
        "ir_number": pair.receipt.number,
        "item_name": pair.info.item_name,
        "vb_number": pair.bill.number,
        "old_rate": plain_decimal(pair.receipt.rate),
        "new_rate": plain_decimal(pair.bill.rate),
        "variance": plain_decimal(pair.variance),
    }


@dataclass
class _Tally:
    processed: int = 0
    updated: list[dict[str, Any]] = field(default_factory=list)
    closed_period: list[dict[str, Any]] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)
    skipped: list[dict[str, Any]] = field(default_factory=list)


class ScheduledReceiptRateRunner:
    """Walks all receipt/bill variances in one invocation."""

    def __init__(
        self,
        pair_source: Callable[[], list[ReceiptBillPair]],
        mutator: LineMutator,
        budget: OperationBudget,
        config: ReconciliationConfig,
    ):
        self._pair_source = pair_source
        self._mutator = mutator
        self._budget = budget
        self._config = config

    def run(self) -> ScheduledRunReport:
        initial_units = self._budget.remaining
        logger.info("scheduled_run_started", extra={
            "budget_limit": self._budget.limit,
            "governance_margin": self._config.governance_margin,
        })

        try:
            pairs = self._pair_source()
        except Exception:
            logger.error("scheduled_run_failed", exc_info=True)
            raise

        if not pairs:
            logger.info("scheduled_run_no_variances")
            return ScheduledRunReport(units_used=initial_units - self._budget.remaining)

        tally = _Tally()
        for position, pair in enumerate(pairs):
            if not self._budget.has_margin(self._config.governance_margin):
                logger.warning("governance_limit_reached", extra={
                    "remaining_units": self._budget.remaining,
                    "unprocessed": len(pairs) - position,
                })
                for remaining in pairs[position:]:
                    record = _pair_summary(remaining)
                    record["reason"] = GOVERNANCE_SKIP_REASON
                    tally.skipped.append(record)
                break

            tally.processed += 1
            self._process_pair(pair, tally)

        report = ScheduledRunReport(
            total_found=len(pairs),
            processed=tally.processed,
            success_count=len(tally.updated),
            error_count=len(tally.errors),
            closed_period_count=len(tally.closed_period),
            updated=tuple(tally.updated),
            closed_period=tuple(tally.closed_period),
            errors=tuple(tally.errors),
            skipped=tuple(tally.skipped),
            units_used=initial_units - self._budget.remaining,
        )
        logger.info("scheduled_run_completed", extra={
            "total_found": report.total_found,
            "processed": report.processed,
            "success_count": report.success_count,
            "closed_period_count": report.closed_period_count,
            "error_count": report.error_count,
            "skipped_count": len(report.skipped),
            "units_used": report.units_used,
        })
        return report

    def _process_pair(self, pair: ReceiptBillPair, tally: _Tally) -> None:
        summary = _pair_summary(pair)
        try:
            self._mutator.update_receipt_rate(
                pair.receipt.document_id, pair.info.item_id, pair.bill.rate,
            )
        except ClosedPeriodError:
            summary["reason"] = CLOSED_PERIOD_REASON
            tally.closed_period.append(summary)
            logger.info("receipt_skipped_closed_period", extra={
                "ir_number": pair.receipt.number,
                "item_name": pair.info.item_name,
            })
        except Exception as exc:
            summary["error"] = simplify_error(
                exc,
                closed_message=CLOSED_PERIOD_REASON,
                not_found_message=NOT_FOUND_MESSAGE,
            )
            summary["full_error"] = str(exc)
            summary["code"] = error_code(exc)
            tally.errors.append(summary)
            logger.error("receipt_update_failed", exc_info=True, extra={
                "ir_number": pair.receipt.number,
                "item_name": pair.info.item_name,
            })
        else:
            tally.updated.append(summary)
            logger.info("receipt_rate_updated", extra={
                "ir_number": pair.receipt.number,
                "item_name": pair.info.item_name,
                "old_rate": summary["old_rate"],
                "new_rate": summary["new_rate"],
            })
