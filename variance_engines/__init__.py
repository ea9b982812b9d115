"""
Pure engines for rate variance reconciliation.

Grouping joined query rows by purchase order line, computing rate
variances and pairing competing receipts and bills.  Zero I/O: every
engine takes its configuration as a constructor argument and its data
as call arguments.
"""

from variance_engines.grouping import LineGrouper
from variance_engines.pairing import PairingEngine
from variance_engines.types import (
    JoinedLine,
    LocationBucket,
    OrderBillPair,
    PairingPolicy,
    PoLineGroup,
    PoLineInfo,
    RawJoinRow,
    ReceiptBillPair,
    VarianceDirection,
)

__all__ = [
    "JoinedLine",
    "LineGrouper",
    "LocationBucket",
    "OrderBillPair",
    "PairingEngine",
    "PairingPolicy",
    "PoLineGroup",
    "PoLineInfo",
    "RawJoinRow",
    "ReceiptBillPair",
    "VarianceDirection",
]
