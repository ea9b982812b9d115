"""
OperationBudget -- metering for host operation quotas.

Responsibility:
    The host platform charges a fixed number of units per document load,
    save and search, and kills a run that goes over its allowance.  The
    budget tracks remaining units so long runs can stop cooperatively
    before the host stops them.

Contract:
    - ``consume(op)`` deducts the cost of ``op``; raises
      BudgetExceededError if the remaining allowance cannot cover it.
    - ``has_margin(n)`` is the cooperative yield point checked before
      each item by the autonomous runner.
"""

from __future__ import annotations

from collections.abc import Mapping

from variance_kernel.exceptions import BudgetExceededError

DEFAULT_OPERATION_COSTS: Mapping[str, int] = {
    "load": 10,
    "save": 20,
    "create": 0,
    "search": 10,
}


class OperationBudget:
    """Remaining-units counter for one invocation."""

    def __init__(
        self,
        limit: int,
        costs: Mapping[str, int] | None = None,
    ):
        if limit < 0:
            raise ValueError(f"Budget limit must be non-negative, got {limit}")
        self._limit = limit
        self._remaining = limit
        self._costs = dict(costs or DEFAULT_OPERATION_COSTS)

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def remaining(self) -> int:
        return self._remaining

    @property
    def used(self) -> int:
        return self._limit - self._remaining

    def cost_of(self, operation: str) -> int:
        return self._costs.get(operation, 0)

    def has_margin(self, margin: int) -> bool:
        """True if at least ``margin`` units remain."""
        return self._remaining >= margin

    def consume(self, operation: str) -> None:
        """
        Charge one operation against the budget.

        Raises:
            BudgetExceededError: if the operation costs more than remains.
        """
        cost = self.cost_of(operation)
        if cost > self._remaining:
            raise BudgetExceededError(operation, cost, self._remaining)
        self._remaining -= cost
