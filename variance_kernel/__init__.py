"""
Variance Kernel - foundation layer for rate variance reconciliation.

Provides:
- Typed exception hierarchy with machine-readable codes
- Structured JSON logging with request-scoped context
- Document domain model (orders, receipts, bills, journal entries)
- Operation budget metering for host-quota-limited runs
- SQLAlchemy base and engine helpers for the persistent document store
"""

__version__ = "0.1.0"
