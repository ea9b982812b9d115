"""
Documents -- in-memory shape of the externally owned financial records.

Responsibility:
    Models Purchase Orders, Item Receipts, Vendor Bills and Journal
    Entries as mutable line collections addressable by (document id,
    line key, field).  A store hands out a private copy on load; edits
    stay in memory until the copy is saved back.

Architecture position:
    Kernel > Domain -- pure data, zero I/O.  Stores live in
    variance_services.

Invariants enforced:
    - Document total is derived on read (item quantity x rate plus
      expense amounts); it is never stored and cannot drift from lines.
    - ``revision`` is owned by the store and only advances on save.

Non-goals:
    - Tax, currency and landed cost fields: not modelled.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

from variance_kernel.domain.amounts import ZERO, to_decimal


class DocumentType(str, Enum):
    """Record types the reconciliation core reads or writes."""

    PURCHASE_ORDER = "purchase_order"
    ITEM_RECEIPT = "item_receipt"
    VENDOR_BILL = "vendor_bill"
    JOURNAL_ENTRY = "journal_entry"


# Header fields the host insists on unless validation is relaxed.
MANDATORY_HEADER_FIELDS: dict[DocumentType, tuple[str, ...]] = {
    DocumentType.PURCHASE_ORDER: ("entity_id",),
    DocumentType.ITEM_RECEIPT: ("entity_id",),
    DocumentType.VENDOR_BILL: ("entity_id",),
    DocumentType.JOURNAL_ENTRY: ("tran_date",),
}

# Custom column flag marking a PO line's rate variance as reviewed.
REVIEWED_FIELD = "rate_variance_reviewed"


@dataclass
class ItemLine:
    """
    One line on a document's item sublist.

    ``order_line_key`` links a receipt or bill line back to the purchase
    order line it fulfils or bills.
    """

    line_key: str
    item_id: str
    item_name: str = ""
    item_number: str = ""
    quantity: Decimal = ZERO
    rate: Decimal = ZERO
    department: str | None = None
    order_line_key: str | None = None
    custom: dict[str, Any] = field(default_factory=dict)

    _STANDARD_FIELDS = (
        "line_key",
        "item_id",
        "item_name",
        "item_number",
        "quantity",
        "rate",
        "department",
        "order_line_key",
    )

    @property
    def amount(self) -> Decimal:
        return self.quantity * self.rate

    def get_field(self, name: str) -> Any:
        if name in self._STANDARD_FIELDS:
            return getattr(self, name)
        return self.custom.get(name)

    def set_field(self, name: str, value: Any) -> None:
        """Overwrite one field with a full value (never a delta)."""
        if name in ("quantity", "rate"):
            setattr(self, name, to_decimal(value))
        elif name in self._STANDARD_FIELDS:
            setattr(self, name, value)
        else:
            self.custom[name] = value


@dataclass
class ExpenseLine:
    """One line on a vendor bill's expense sublist."""

    account: str
    amount: Decimal
    memo: str = ""
    department: str | None = None


@dataclass
class JournalLine:
    """One line of a journal entry; exactly one of debit / credit is set."""

    account: str
    debit: Decimal | None = None
    credit: Decimal | None = None
    memo: str = ""
    department: str | None = None


@dataclass
class Document:
    """A transaction record as loaded from the document store."""

    document_id: str
    document_type: DocumentType
    number: str = ""
    tran_date: date | None = None
    entity_id: str | None = None
    entity_name: str = ""
    location_id: str | None = None
    location_name: str = ""
    period_id: str | None = None
    memo: str = ""
    revision: int = 0
    item_lines: list[ItemLine] = field(default_factory=list)
    expense_lines: list[ExpenseLine] = field(default_factory=list)
    journal_lines: list[JournalLine] = field(default_factory=list)

    @property
    def total(self) -> Decimal:
        items = sum((line.amount for line in self.item_lines), ZERO)
        expenses = sum((line.amount for line in self.expense_lines), ZERO)
        return items + expenses

    def matching_item_lines(self, match_field: str, match_value: str) -> list[ItemLine]:
        """Item lines whose ``match_field`` equals ``match_value`` (string compare)."""
        target = str(match_value)
        return [
            line
            for line in self.item_lines
            if line.get_field(match_field) is not None
            and str(line.get_field(match_field)) == target
        ]

    def missing_mandatory_fields(self) -> list[str]:
        return [
            name
            for name in MANDATORY_HEADER_FIELDS.get(self.document_type, ())
            if getattr(self, name) in (None, "")
        ]

    def clone(self) -> Document:
        return copy.deepcopy(self)


@dataclass(frozen=True)
class AccountingPeriod:
    """Posting period; either flag locks it against direct edits."""

    period_id: str
    name: str = ""
    closed: bool = False
    all_locked: bool = False

    @property
    def is_locked(self) -> bool:
        return self.closed or self.all_locked


@dataclass(frozen=True)
class SaveOptions:
    """
    Host save flags.

    ``enable_sourcing`` lets the host default dependent fields from the
    ones just set; ``ignore_mandatory_fields`` skips mandatory header
    validation.  A narrow field overwrite saves with sourcing off and
    validation relaxed.
    """

    enable_sourcing: bool = True
    ignore_mandatory_fields: bool = False


NARROW_OVERWRITE = SaveOptions(enable_sourcing=False, ignore_mandatory_fields=True)
