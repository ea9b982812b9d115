"""
Rate correction task: write the bill rate onto the item receipt.

Every line of the item on the receipt receives the new rate.  Window
size comes from ``rate_correction_batch_size`` (each item costs a load
and a save against the operation budget).
"""

from __future__ import annotations

from typing import Any

from variance_batch.domain.types import (
    UNKNOWN,
    BatchVariant,
    ErrorRecord,
    RateCorrectionItem,
)
from variance_batch.tasks.base import LineMutator, error_code, simplify_error
from variance_config.schema import ReconciliationConfig
from variance_kernel.domain.amounts import plain_decimal
from variance_kernel.logging_config import get_logger

logger = get_logger("batch.tasks.rate_correction")

CLOSED_PERIOD_MESSAGE = "Period is closed - cannot modify GL impact"
NOT_FOUND_MESSAGE = "Item not found on Item Receipt"


class RateCorrectionTask:
    """Receipt rate := bill rate, for one selected receipt/bill pair."""

    def __init__(self, mutator: LineMutator):
        self._mutator = mutator

    @property
    def variant(self) -> BatchVariant:
        return BatchVariant.RATE_CORRECTION

    @property
    def description(self) -> str:
        return "Update item receipt rates to match vendor bills"

    def window_size(self, config: ReconciliationConfig) -> int:
        return config.rate_correction_batch_size

    def execute(self, item: RateCorrectionItem) -> dict[str, Any]:
        saved_id = self._mutator.update_receipt_rate(
            item.ir_id, item.item_id, item.new_rate,
        )
        logger.info("receipt_rate_corrected", extra={
            "ir_id": saved_id,
            "ir_number": item.ir_number,
            "item_id": item.item_id,
            "new_rate": str(item.new_rate),
        })
        return {
            "ir_number": item.ir_number,
            "item_name": item.item_name,
            "new_rate": plain_decimal(item.new_rate),
        }

    def error_record(self, item: RateCorrectionItem, exc: BaseException) -> ErrorRecord:
        return ErrorRecord(
            document_id=item.ir_id,
            document_number=item.ir_number or UNKNOWN,
            item_name=item.item_name or UNKNOWN,
            error=simplify_error(
                exc,
                closed_message=CLOSED_PERIOD_MESSAGE,
                not_found_message=NOT_FOUND_MESSAGE,
            ),
            code=error_code(exc),
        )
