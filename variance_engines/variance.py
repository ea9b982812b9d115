"""
variance_engines.variance -- Rate variance arithmetic.

Pure Decimal helpers shared by both pairing policies.  Division by a
zero base yields a zero percent; it is never an error.
"""

from __future__ import annotations

from decimal import Decimal

from variance_kernel.domain.amounts import HUNDRED, ZERO


def rate_variance(earlier_rate: Decimal, later_rate: Decimal) -> Decimal:
    """Signed difference ``later - earlier``."""
    return later_rate - earlier_rate


def variance_percent(variance: Decimal, base_rate: Decimal) -> Decimal:
    """``variance`` as a percentage of ``base_rate``; 0 when the base is 0."""
    if base_rate == ZERO:
        return ZERO
    return variance / base_rate * HUNDRED


def meets_threshold(value: Decimal, threshold: Decimal) -> bool:
    """True if ``abs(value) >= threshold`` (boundary included)."""
    return abs(value) >= threshold
