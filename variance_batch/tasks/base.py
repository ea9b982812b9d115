"""
ItemTask protocol, the mutator seam, and TaskRegistry.

Contract:
    ``ItemTask`` defines the interface every batch variant implements.
    ``TaskRegistry`` stores registered tasks keyed by variant.
    ``LineMutator`` is the narrow slice of the record mutator a task may
    call; the services layer supplies the implementation.

Architecture:
    variance_batch/tasks.  No imports from variance_services: tasks reach
    persistent state only through the LineMutator they are given.

Invariants enforced:
    - One task per variant.
    - Error simplification maps exception TYPES to operator messages;
      message text is never inspected.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Protocol, runtime_checkable

from variance_batch.domain.types import BatchVariant, ErrorRecord, SelectionItem
from variance_config.schema import ReconciliationConfig
from variance_kernel.exceptions import (
    BudgetExceededError,
    ClosedPeriodError,
    NotFoundError,
    VarianceReconError,
)

USAGE_LIMIT_MESSAGE = "Script usage limit exceeded"
UNEXPECTED_ERROR_CODE = "UNEXPECTED_ERROR"


# =============================================================================
# Mutator seam
# =============================================================================


@runtime_checkable
class LineMutator(Protocol):
    """Field overwrites the batch layer is allowed to request."""

    def update_receipt_rate(
        self, ir_id: str, item_id: str, new_rate: Decimal,
    ) -> str: ...

    def mark_po_line_reviewed(self, po_id: str, po_line_key: str) -> str: ...


# =============================================================================
# Error simplification
# =============================================================================


def simplify_error(
    exc: BaseException,
    *,
    closed_message: str,
    not_found_message: str,
) -> str:
    """Operator-facing message for a per-item failure."""
    if isinstance(exc, ClosedPeriodError):
        return closed_message
    if isinstance(exc, NotFoundError):
        return not_found_message
    if isinstance(exc, BudgetExceededError):
        return USAGE_LIMIT_MESSAGE
    return str(exc)


def error_code(exc: BaseException) -> str:
    if isinstance(exc, VarianceReconError):
        return exc.code
    return UNEXPECTED_ERROR_CODE


# =============================================================================
# ItemTask Protocol
# =============================================================================


@runtime_checkable
class ItemTask(Protocol):
    """Protocol defining the interface for batch variant implementations.

    Contract:
        - ``variant``: unique key registered in TaskRegistry.
        - ``window_size()``: items processed per round.
        - ``execute()``: performs ONE item; returns its completed-item
          summary, or raises.
        - ``error_record()``: converts a failure into an ErrorRecord.

    Non-goals:
        - Does NOT catch errors -- the driver owns per-item isolation.
        - Does NOT retry.
    """

    @property
    def variant(self) -> BatchVariant: ...

    @property
    def description(self) -> str: ...

    def window_size(self, config: ReconciliationConfig) -> int: ...

    def execute(self, item: SelectionItem) -> dict[str, Any]: ...

    def error_record(self, item: SelectionItem, exc: BaseException) -> ErrorRecord: ...


# =============================================================================
# TaskRegistry
# =============================================================================


class TaskRegistry:
    """Registry mapping batch variants to ItemTask implementations.

    Contract:
        - ``register()`` adds a task; raises ValueError on duplicate.
        - ``get()`` retrieves by variant; raises KeyError if missing.
        - ``list_tasks()`` returns all registered variant values.
    """

    def __init__(self) -> None:
        self._tasks: dict[BatchVariant, ItemTask] = {}

    def register(self, task: ItemTask) -> None:
        """Register a task implementation.

        Raises:
            ValueError: If a task for the same variant is already registered.
        """
        if task.variant in self._tasks:
            raise ValueError(
                f"Task for variant '{task.variant.value}' is already registered"
            )
        self._tasks[task.variant] = task

    def get(self, variant: BatchVariant) -> ItemTask:
        """Retrieve a registered task by variant.

        Raises:
            KeyError: If no task is registered for the variant.
        """
        try:
            return self._tasks[variant]
        except KeyError:
            raise KeyError(
                f"No task registered for variant '{variant.value}'. "
                f"Available: {self.list_tasks()}"
            ) from None

    def list_tasks(self) -> tuple[str, ...]:
        """Return all registered variant values, sorted."""
        return tuple(sorted(variant.value for variant in self._tasks))

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, variant: BatchVariant) -> bool:
        return variant in self._tasks


def default_task_registry(mutator: LineMutator) -> TaskRegistry:
    """Registry with both interactive variants bound to ``mutator``."""
    from variance_batch.tasks.rate_correction import RateCorrectionTask
    from variance_batch.tasks.review_mark import ReviewMarkTask

    registry = TaskRegistry()
    registry.register(RateCorrectionTask(mutator))
    registry.register(ReviewMarkTask(mutator))
    return registry
