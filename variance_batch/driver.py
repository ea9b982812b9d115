"""
BatchReconciliationDriver -- one bounded window of an operator selection per call.

Contract:
    ``run_round`` parses the inbound continuation token, processes the
    window ``[batch_index * size, min(+size, total))`` item by item and
    returns a RoundOutcome.  ``redirect_params`` renders the outcome as
    the next request's parameters: a continuation while items remain, a
    terminal summary once the window reached the end.

Architecture:
    variance_batch.  Stateless: nothing survives between calls except
    what the returned parameters carry.  Per-item work is delegated to
    the ItemTask registered for the variant.

Invariants enforced:
    - Per-item isolation: a failure is converted to an ErrorRecord and the
      next item still runs.
    - A malformed token (ParseError) or a batch index past the end of the
      selection fails the whole round before any item is touched.
    - Retrying a round re-applies the same full-value writes, so the
      observable effect is unchanged.

Known hazard:
    Two operators submitting overlapping selections are not serialized
    against each other.  A store with a revision check rejects the losing
    save with ConcurrentModificationError, which is recorded per item.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from typing import Any

from variance_batch.continuation import ContinuationToken, terminal_params
from variance_batch.domain.types import (
    BatchVariant,
    ErrorRecord,
    ItemResult,
    ItemStatus,
    RoundOutcome,
)
from variance_batch.tasks.base import TaskRegistry, error_code
from variance_config.schema import ReconciliationConfig
from variance_kernel.exceptions import ParseError
from variance_kernel.logging_config import LogContext, get_logger

logger = get_logger("batch.driver")


class EmptySelectionError(ValueError):
    """A POST arrived with no selected variances."""

    def __init__(self) -> None:
        super().__init__("No variances selected")


class BatchReconciliationDriver:
    """Processes selections in fixed-size windows across request round trips."""

    def __init__(self, registry: TaskRegistry, config: ReconciliationConfig):
        self._registry = registry
        self._config = config

    def parse_token(
        self,
        variant: BatchVariant,
        params: Mapping[str, Any],
    ) -> ContinuationToken:
        """Raises ParseError on a malformed or stale token."""
        return ContinuationToken.from_params(
            params, variant, self._config.continuation_token_version,
        )

    def run_round(
        self,
        variant: BatchVariant,
        params: Mapping[str, Any],
    ) -> RoundOutcome:
        """Process the next window of the selection carried in ``params``.

        Raises:
            EmptySelectionError: If no items are selected.
            ParseError: If the continuation state cannot be parsed or the
                batch index lies beyond the selection.
        """
        token = self.parse_token(variant, params)
        if not token.selection:
            raise EmptySelectionError()

        task = self._registry.get(variant)
        size = task.window_size(self._config)
        total = len(token.selection)
        progress = token.progress
        start = progress.batch_index * size
        if start >= total:
            raise ParseError(
                "batch_index",
                f"window {progress.batch_index} starts at {start}, "
                f"selection has {total} items",
            )
        end = min(start + size, total)

        round_start = time.monotonic()
        logger.info("batch_round_started", extra={
            "variant": variant.value,
            "batch_index": progress.batch_index,
            "window_start": start,
            "window_end": end,
            "total_items": total,
        })

        updated: list[dict[str, Any]] = []
        errors: list[ErrorRecord] = []
        item_results: list[ItemResult] = []

        with LogContext.bind(variant=variant.value, batch_index=progress.batch_index):
            for index in range(start, end):
                item = token.selection[index]
                try:
                    summary = task.execute(item)
                except Exception as exc:
                    record = task.error_record(item, exc)
                    errors.append(record)
                    item_results.append(ItemResult(
                        item_index=index,
                        item_key=item.item_key,
                        status=ItemStatus.FAILED,
                        error_code=error_code(exc),
                        error_message=record.error,
                    ))
                    logger.warning("batch_item_failed", exc_info=True, extra={
                        "item_index": index,
                        "item_key": item.item_key,
                        "error_code": record.code,
                        "simplified_error": record.error,
                    })
                    continue

                updated.append(summary)
                item_results.append(ItemResult(
                    item_index=index,
                    item_key=item.item_key,
                    status=ItemStatus.SUCCEEDED,
                    result_data=summary,
                ))

        outcome = RoundOutcome(
            variant=variant,
            selection=token.selection,
            window_start=start,
            window_end=end,
            progress=progress.advance(updated, errors),
            item_results=tuple(item_results),
        )

        duration_ms = round((time.monotonic() - round_start) * 1000, 2)
        if outcome.complete:
            logger.info("batch_run_completed", extra={
                "variant": variant.value,
                "total_batches": outcome.progress.batch_index,
                "success_count": outcome.progress.success_count,
                "error_count": outcome.progress.error_count,
                "failed_items": list(outcome.failed_item_keys),
                "duration_ms": duration_ms,
            })
        else:
            logger.info("batch_round_completed", extra={
                "variant": variant.value,
                "batch_index": progress.batch_index,
                "processed": end,
                "remaining": total - end,
                "round_successes": len(updated),
                "round_errors": len(errors),
                "failed_items": list(outcome.failed_item_keys),
                "duration_ms": duration_ms,
            })
        return outcome

    def redirect_params(self, outcome: RoundOutcome) -> dict[str, str]:
        """Next request parameters: continuation or terminal summary."""
        if outcome.complete:
            return terminal_params(outcome.progress)
        token = ContinuationToken(
            version=self._config.continuation_token_version,
            variant=outcome.variant,
            selection=outcome.selection,
            progress=outcome.progress,
        )
        return token.to_params()
