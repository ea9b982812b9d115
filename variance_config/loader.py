"""
Configuration Loader (``variance_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into a frozen
``ReconciliationConfig``.  The single public entry point for runtime
config is ``variance_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Bad values (non-numeric threshold, bad date)  -> ``ValueError``.

Keys absent from the YAML keep the schema defaults.
"""

from __future__ import annotations

import hashlib
import json
from datetime import date
from pathlib import Path
from typing import Any

import yaml

from variance_config.schema import (
    AdjustmentAccounts,
    ReconciliationConfig,
    VarianceThresholds,
)
from variance_kernel.domain.amounts import to_decimal
from variance_kernel.domain.budget import DEFAULT_OPERATION_COSTS


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_date(value: Any) -> date:
    """
    Parse a date from YAML (string or date object).

    Raises:
        ValueError: if ``value`` is not a valid date representation.
    """
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Cannot parse date from {value!r}")


def parse_thresholds(data: dict[str, Any]) -> VarianceThresholds:
    """Parse percent thresholds; absent keys keep the default."""
    defaults = VarianceThresholds()
    return VarianceThresholds(
        service=to_decimal(data.get("service"), default=defaults.service),
        kitchen=to_decimal(data.get("kitchen"), default=defaults.kitchen),
        appliances=to_decimal(data.get("appliances"), default=defaults.appliances),
    )


def parse_adjustment(data: dict[str, Any]) -> AdjustmentAccounts:
    defaults = AdjustmentAccounts()
    department_map = data.get("department_map")
    return AdjustmentAccounts(
        accrued_purchases_account=str(
            data.get("accrued_purchases_account", defaults.accrued_purchases_account)
        ),
        cogs_account=str(data.get("cogs_account", defaults.cogs_account)),
        department_map=(
            {str(k): str(v) for k, v in department_map.items()}
            if department_map is not None
            else dict(defaults.department_map)
        ),
        default_department=str(
            data.get("default_department", defaults.default_department)
        ),
    )


def parse_config(data: dict[str, Any]) -> ReconciliationConfig:
    """
    Parse a ``ReconciliationConfig`` from a dict.

    Postconditions:
        - ``checksum`` identifies the parsed source dict.
    """
    defaults = ReconciliationConfig()
    batch = data.get("batch", {})
    locations = data.get("locations", {})
    costs = dict(DEFAULT_OPERATION_COSTS)
    costs.update({str(k): int(v) for k, v in data.get("operation_costs", {}).items()})

    return ReconciliationConfig(
        config_id=str(data.get("config_id", defaults.config_id)),
        version=int(data.get("version", defaults.version)),
        min_variance=to_decimal(data.get("min_variance"), default=defaults.min_variance),
        thresholds=parse_thresholds(data.get("thresholds", {})),
        service_location_id=str(
            locations.get("service", defaults.service_location_id)
        ),
        kitchen_location_id=str(
            locations.get("kitchen", defaults.kitchen_location_id)
        ),
        bill_date_floor=(
            parse_date(data["bill_date_floor"])
            if data.get("bill_date_floor")
            else defaults.bill_date_floor
        ),
        rate_correction_batch_size=int(
            batch.get("rate_correction_size", defaults.rate_correction_batch_size)
        ),
        review_batch_size=int(batch.get("review_size", defaults.review_batch_size)),
        governance_margin=int(
            batch.get("governance_margin", defaults.governance_margin)
        ),
        adjustment=parse_adjustment(data.get("adjustment", {})),
        invariance_tolerance=to_decimal(
            data.get("invariance_tolerance"), default=defaults.invariance_tolerance
        ),
        continuation_token_version=int(
            data.get("continuation_token_version", defaults.continuation_token_version)
        ),
        operation_costs=costs,
        checksum=compute_checksum(data),
    )


def load_config(path: Path) -> ReconciliationConfig:
    """Load and parse one configuration file."""
    config = parse_config(load_yaml_file(path))
    for name, size in (
        ("rate_correction_size", config.rate_correction_batch_size),
        ("review_size", config.review_batch_size),
    ):
        if size < 1:
            raise ValueError(f"batch.{name} must be at least 1, got {size}")
    return config


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
