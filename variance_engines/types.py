"""
variance_engines.types -- Value types flowing through grouping and pairing.

Responsibility:
    Immutable row, line and pair records shared by the search adapter,
    the Line Grouper and the Pairing Engine.  PoLineGroup is the one
    mutable type: it is filled by the grouper and discarded after pairing.

Architecture position:
    Engines -- pure data, zero I/O.  May only import variance_kernel.domain.

Invariants enforced:
    - Rates and quantities are Decimal, never float.
    - A PoLineGroup holds each joined line at most once (keyed by the
      joined document's line key), checked against an index set.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

from variance_kernel.domain.amounts import plain_decimal

UNKNOWN_VENDOR = "Unknown Vendor"


def _iso(value: date | None) -> str | None:
    return value.isoformat() if value else None


def vendor_display_name(display_name: str | None, entity_id: str | None) -> str:
    """Display name, else entity id, else a fixed placeholder."""
    return display_name or entity_id or UNKNOWN_VENDOR


class LocationBucket(str, Enum):
    """Threshold bucket a purchase order line's location falls into."""

    SERVICE = "service"
    KITCHEN = "kitchen"
    APPLIANCES = "appliances"


class VarianceDirection(str, Enum):
    """Display classification of an order/bill percent variance."""

    FAVORABLE = "favorable"  # paid less than ordered
    UNFAVORABLE = "unfavorable"  # paid more than ordered
    NEUTRAL = "neutral"


@dataclass(frozen=True)
class JoinedLine:
    """
    A receipt or bill line as seen through the join.

    ``period_id`` / ``period_closed`` are only populated for receipts.
    """

    document_id: str
    number: str
    date: date | None
    line_key: str
    quantity: Decimal
    rate: Decimal
    period_id: str | None = None
    period_closed: bool = False


@dataclass(frozen=True)
class RawJoinRow:
    """
    One row of the joined purchase order / receipt / bill query.

    Either role may be absent; a single join yields the Cartesian
    product of a PO line's receipts and bills, so the same receipt or
    bill line repeats across rows.
    """

    po_id: str
    po_number: str
    po_date: date | None
    po_line_key: str
    po_rate: Decimal
    po_quantity: Decimal
    item_id: str
    item_number: str = ""
    item_name: str = ""
    vendor_id: str | None = None
    vendor_name: str = UNKNOWN_VENDOR
    location_id: str | None = None
    location_name: str = ""
    receipt: JoinedLine | None = None
    bill: JoinedLine | None = None


@dataclass(frozen=True)
class PoLineInfo:
    """Canonical purchase order line data for a group (taken from its first row)."""

    po_id: str
    po_number: str
    po_date: date | None
    po_line_key: str
    po_rate: Decimal
    po_quantity: Decimal
    item_id: str
    item_number: str
    item_name: str
    vendor_id: str | None
    vendor_name: str
    location_id: str | None
    location_name: str

    @classmethod
    def from_row(cls, row: RawJoinRow) -> PoLineInfo:
        return cls(
            po_id=row.po_id,
            po_number=row.po_number,
            po_date=row.po_date,
            po_line_key=row.po_line_key,
            po_rate=row.po_rate,
            po_quantity=row.po_quantity,
            item_id=row.item_id,
            item_number=row.item_number,
            item_name=row.item_name,
            vendor_id=row.vendor_id,
            vendor_name=row.vendor_name,
            location_id=row.location_id,
            location_name=row.location_name,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "po_id": self.po_id,
            "po_number": self.po_number,
            "po_date": _iso(self.po_date),
            "po_line_key": self.po_line_key,
            "item_id": self.item_id,
            "item_number": self.item_number,
            "item_name": self.item_name,
            "vendor_id": self.vendor_id,
            "vendor_name": self.vendor_name,
            "location_id": self.location_id,
            "location_name": self.location_name,
        }


@dataclass
class PoLineGroup:
    """Distinct receipt and bill lines competing for one PO line."""

    info: PoLineInfo
    receipts: list[JoinedLine] = field(default_factory=list)
    bills: list[JoinedLine] = field(default_factory=list)
    _receipt_keys: set[str] = field(default_factory=set, repr=False)
    _bill_keys: set[str] = field(default_factory=set, repr=False)

    def add_receipt(self, line: JoinedLine) -> bool:
        """Append unless a line with the same key is present; True if added."""
        if line.line_key in self._receipt_keys:
            return False
        self._receipt_keys.add(line.line_key)
        self.receipts.append(line)
        return True

    def add_bill(self, line: JoinedLine) -> bool:
        """Append unless a line with the same key is present; True if added."""
        if line.line_key in self._bill_keys:
            return False
        self._bill_keys.add(line.line_key)
        self.bills.append(line)
        return True


@dataclass(frozen=True)
class ReceiptBillPair:
    """
    An item receipt line matched positionally to a vendor bill line.

    ``variance`` is bill rate minus receipt rate; a correction writes the
    bill rate onto the receipt.
    """

    info: PoLineInfo
    receipt: JoinedLine
    bill: JoinedLine
    variance: Decimal

    @property
    def receipt_period_closed(self) -> bool:
        return self.receipt.period_closed

    def to_dict(self) -> dict[str, Any]:
        data = self.info.to_dict()
        data.update({
            "ir_id": self.receipt.document_id,
            "ir_number": self.receipt.number,
            "ir_date": _iso(self.receipt.date),
            "ir_line_key": self.receipt.line_key,
            "ir_quantity": plain_decimal(self.receipt.quantity),
            "ir_rate": plain_decimal(self.receipt.rate),
            "ir_period_closed": self.receipt.period_closed,
            "vb_id": self.bill.document_id,
            "vb_number": self.bill.number,
            "vb_date": _iso(self.bill.date),
            "vb_line_key": self.bill.line_key,
            "vb_quantity": plain_decimal(self.bill.quantity),
            "vb_rate": plain_decimal(self.bill.rate),
            "variance": plain_decimal(self.variance),
        })
        return data


@dataclass(frozen=True)
class OrderBillPair:
    """
    A purchase order line matched to its oldest vendor bill line.

    ``variance`` is bill rate minus PO rate; ``variance_percent`` is
    relative to the PO rate (0 when the PO rate is 0).
    """

    info: PoLineInfo
    bill: JoinedLine
    variance: Decimal
    variance_percent: Decimal
    bucket: LocationBucket
    threshold: Decimal

    @property
    def direction(self) -> VarianceDirection:
        if self.variance_percent < Decimal("-0.1"):
            return VarianceDirection.FAVORABLE
        if self.variance_percent > Decimal("0.1"):
            return VarianceDirection.UNFAVORABLE
        return VarianceDirection.NEUTRAL

    def to_dict(self) -> dict[str, Any]:
        data = self.info.to_dict()
        data.update({
            "po_rate": plain_decimal(self.info.po_rate),
            "po_quantity": plain_decimal(self.info.po_quantity),
            "vb_id": self.bill.document_id,
            "vb_number": self.bill.number,
            "vb_date": _iso(self.bill.date),
            "vb_line_key": self.bill.line_key,
            "vb_quantity": plain_decimal(self.bill.quantity),
            "vb_rate": plain_decimal(self.bill.rate),
            "variance": plain_decimal(self.variance),
            "variance_percent": plain_decimal(self.variance_percent),
            "bucket": self.bucket.value,
            "threshold": plain_decimal(self.threshold),
            "direction": self.direction.value,
        })
        return data


@dataclass(frozen=True)
class PairingPolicy:
    """
    Inclusion thresholds for the Pairing Engine.

    ``min_variance`` is the absolute rate floor applied by both policies;
    the percent thresholds apply to the order/bill policy by location
    bucket.  Two location ids are configured; every other location
    (including none) falls into the appliances bucket.
    """

    min_variance: Decimal = Decimal("0.01")
    service_threshold: Decimal = Decimal("2")
    kitchen_threshold: Decimal = Decimal("2")
    appliances_threshold: Decimal = Decimal("2")
    service_location_id: str = "113"
    kitchen_location_id: str = "17"

    def bucket_for(self, location_id: str | None) -> LocationBucket:
        if location_id == self.service_location_id:
            return LocationBucket.SERVICE
        if location_id == self.kitchen_location_id:
            return LocationBucket.KITCHEN
        return LocationBucket.APPLIANCES

    def threshold_for(self, bucket: LocationBucket) -> Decimal:
        return {
            LocationBucket.SERVICE: self.service_threshold,
            LocationBucket.KITCHEN: self.kitchen_threshold,
            LocationBucket.APPLIANCES: self.appliances_threshold,
        }[bucket]
