"""Review task: flag a purchase order line's rate variance as reviewed."""

from __future__ import annotations

from typing import Any

from variance_batch.domain.types import UNKNOWN, BatchVariant, ErrorRecord, ReviewMarkItem
from variance_batch.tasks.base import LineMutator, error_code, simplify_error
from variance_config.schema import ReconciliationConfig
from variance_kernel.logging_config import get_logger

logger = get_logger("batch.tasks.review_mark")

CLOSED_PERIOD_MESSAGE = "Period is closed - cannot modify transaction"
NOT_FOUND_MESSAGE = "Line not found on Purchase Order"


class ReviewMarkTask:
    """Sets the reviewed flag on one PO line."""

    def __init__(self, mutator: LineMutator):
        self._mutator = mutator

    @property
    def variant(self) -> BatchVariant:
        return BatchVariant.REVIEW_MARK

    @property
    def description(self) -> str:
        return "Mark purchase order line rate variances as reviewed"

    def window_size(self, config: ReconciliationConfig) -> int:
        return config.review_batch_size

    def execute(self, item: ReviewMarkItem) -> dict[str, Any]:
        self._mutator.mark_po_line_reviewed(item.po_id, item.po_line_key)
        logger.info("po_line_review_marked", extra={
            "po_id": item.po_id,
            "po_number": item.po_number,
            "po_line_key": item.po_line_key,
        })
        return {"po_number": item.po_number, "item_name": item.item_name}

    def error_record(self, item: ReviewMarkItem, exc: BaseException) -> ErrorRecord:
        return ErrorRecord(
            document_id=item.po_id,
            document_number=item.po_number or UNKNOWN,
            item_name=item.item_name or UNKNOWN,
            error=simplify_error(
                exc,
                closed_message=CLOSED_PERIOD_MESSAGE,
                not_found_message=NOT_FOUND_MESSAGE,
            ),
            code=error_code(exc),
        )
