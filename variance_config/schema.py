"""
Configuration schema (``variance_config.schema``).

Responsibility
--------------
Frozen dataclasses describing everything the reconciliation core is
allowed to be told from outside: inclusion thresholds, location ids,
the order/bill posting-date floor, batch window sizes, the governance
margin, adjustment accounts and the host operation costs.

Architecture position
---------------------
**Config layer**.  Instances are produced by ``variance_config.loader``
and handed to engines, batch runners and services at construction.
Nothing below this layer reads files or environment variables.

Invariants enforced
-------------------
* Every class is ``frozen=True``; request overrides produce a new
  instance via ``with_threshold_overrides`` and never mutate.
* Money and percent values are ``Decimal``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from typing import Any

from variance_engines.types import PairingPolicy
from variance_kernel.domain.amounts import ZERO, to_decimal
from variance_kernel.domain.budget import DEFAULT_OPERATION_COSTS

# Request parameter name -> VarianceThresholds attribute
THRESHOLD_PARAMS: Mapping[str, str] = {
    "service_threshold": "service",
    "kitchen_threshold": "kitchen",
    "appliances_threshold": "appliances",
}


@dataclass(frozen=True)
class VarianceThresholds:
    """Percent thresholds for the order/bill view, by location bucket."""

    service: Decimal = Decimal("2")
    kitchen: Decimal = Decimal("2")
    appliances: Decimal = Decimal("2")

    def as_params(self) -> dict[str, str]:
        return {
            param: str(getattr(self, attr))
            for param, attr in THRESHOLD_PARAMS.items()
        }


@dataclass(frozen=True)
class AdjustmentAccounts:
    """Fixed accounts and department mapping for closed-period adjustments."""

    accrued_purchases_account: str = "112"
    cogs_account: str = "353"
    department_map: Mapping[str, str] = field(
        default_factory=lambda: {"13": "13", "10": "10"}
    )
    default_department: str = "107"

    def map_department(self, department: str | None) -> str:
        """COGS department for a bill line's department."""
        if department is None:
            return self.default_department
        return self.department_map.get(str(department), self.default_department)


@dataclass(frozen=True)
class ReconciliationConfig:
    """Complete runtime configuration for one reconciliation deployment."""

    config_id: str = "default"
    version: int = 1
    min_variance: Decimal = Decimal("0.01")
    thresholds: VarianceThresholds = field(default_factory=VarianceThresholds)
    service_location_id: str = "113"
    kitchen_location_id: str = "17"
    bill_date_floor: date = date(2025, 8, 1)
    rate_correction_batch_size: int = 5
    review_batch_size: int = 10
    governance_margin: int = 100
    adjustment: AdjustmentAccounts = field(default_factory=AdjustmentAccounts)
    invariance_tolerance: Decimal = Decimal("0.01")
    continuation_token_version: int = 1
    operation_costs: Mapping[str, int] = field(
        default_factory=lambda: dict(DEFAULT_OPERATION_COSTS)
    )
    checksum: str = ""

    def pairing_policy(self) -> PairingPolicy:
        return PairingPolicy(
            min_variance=self.min_variance,
            service_threshold=self.thresholds.service,
            kitchen_threshold=self.thresholds.kitchen,
            appliances_threshold=self.thresholds.appliances,
            service_location_id=self.service_location_id,
            kitchen_location_id=self.kitchen_location_id,
        )

    def with_threshold_overrides(
        self,
        params: Mapping[str, Any],
    ) -> ReconciliationConfig:
        """
        Apply ``service_threshold`` / ``kitchen_threshold`` /
        ``appliances_threshold`` request overrides.

        Missing or empty values leave the configured threshold in place.

        Raises:
            ValueError: if a given override is not a non-negative number.
        """
        overrides: dict[str, Decimal] = {}
        for param, attr in THRESHOLD_PARAMS.items():
            raw = params.get(param)
            if raw is None or (isinstance(raw, str) and not raw.strip()):
                continue
            try:
                value = to_decimal(raw)
            except ValueError:
                raise ValueError(f"Invalid {param}: {raw!r}") from None
            if value < ZERO:
                raise ValueError(f"Invalid {param}: {raw!r} is negative")
            overrides[attr] = value

        if not overrides:
            return self
        return replace(self, thresholds=replace(self.thresholds, **overrides))
