"""
variance_batch.domain.types -- Pure frozen dataclasses for batch reconciliation.

ZERO I/O.  Frozen dataclasses with enum status fields and tuples for
immutable collections.

Invariants enforced:
    - Selection items are tagged variants: each knows its ``kind`` and
      serializes to a JSON object carrying it.
    - BatchProgress is never mutated; ``advance`` returns the next state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar, Union

from variance_kernel.domain.amounts import plain_decimal, to_decimal
from variance_kernel.exceptions import (
    ClosedPeriodError,
    DocumentNotFoundError,
    LineNotFoundError,
    NotFoundError,
    ParseError,
)

UNKNOWN = "Unknown"

NOT_FOUND_CODES = frozenset({
    NotFoundError.code,
    DocumentNotFoundError.code,
    LineNotFoundError.code,
})


# =============================================================================
# Enums
# =============================================================================


class BatchVariant(str, Enum):
    """Which interactive flow a round belongs to."""

    RATE_CORRECTION = "rate_correction"  # receipt rate := bill rate
    REVIEW_MARK = "review_mark"  # PO line flagged reviewed


class ItemStatus(str, Enum):
    """Per-item outcome within a round."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"


# =============================================================================
# Selection items
# =============================================================================


def _require(data: dict[str, Any], key: str, kind: str) -> str:
    value = data.get(key)
    if value is None or str(value) == "":
        raise ParseError("selected_variances", f"{kind} item missing {key!r}")
    return str(value)


@dataclass(frozen=True)
class RateCorrectionItem:
    """Set every line of ``item_id`` on receipt ``ir_id`` to ``new_rate``."""

    kind: ClassVar[str] = BatchVariant.RATE_CORRECTION.value

    ir_id: str
    po_line_key: str
    new_rate: Decimal
    ir_number: str = ""
    item_name: str = ""
    item_id: str = ""

    @property
    def item_key(self) -> str:
        return f"{self.ir_id}:{self.item_id}"

    def to_wire(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "ir_id": self.ir_id,
            "po_line_key": self.po_line_key,
            "new_rate": plain_decimal(self.new_rate),
            "ir_number": self.ir_number,
            "item_name": self.item_name,
            "item_id": self.item_id,
        }

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> RateCorrectionItem:
        raw_rate = _require(data, "new_rate", cls.kind)
        try:
            new_rate = to_decimal(raw_rate)
        except ValueError:
            raise ParseError("selected_variances", f"bad new_rate {raw_rate!r}") from None
        return cls(
            ir_id=_require(data, "ir_id", cls.kind),
            po_line_key=str(data.get("po_line_key") or ""),
            new_rate=new_rate,
            ir_number=str(data.get("ir_number") or ""),
            item_name=str(data.get("item_name") or ""),
            item_id=_require(data, "item_id", cls.kind),
        )

    @classmethod
    def from_legacy(cls, text: str) -> RateCorrectionItem:
        """``irId|poLineId|newRate|irNumber|itemName|itemId``."""
        parts = text.split("|")
        if len(parts) != 6:
            raise ParseError(
                "selected_variances",
                f"rate correction tuple needs 6 fields, got {len(parts)}",
            )
        ir_id, po_line_key, new_rate, ir_number, item_name, item_id = parts
        return cls.from_wire({
            "ir_id": ir_id,
            "po_line_key": po_line_key,
            "new_rate": new_rate,
            "ir_number": ir_number,
            "item_name": item_name,
            "item_id": item_id,
        })


@dataclass(frozen=True)
class ReviewMarkItem:
    """Flag purchase order line ``po_line_key`` on ``po_id`` as reviewed."""

    kind: ClassVar[str] = BatchVariant.REVIEW_MARK.value

    po_id: str
    po_line_key: str
    po_number: str = ""
    item_name: str = ""

    @property
    def item_key(self) -> str:
        return f"{self.po_id}:{self.po_line_key}"

    def to_wire(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "po_id": self.po_id,
            "po_line_key": self.po_line_key,
            "po_number": self.po_number,
            "item_name": self.item_name,
        }

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> ReviewMarkItem:
        return cls(
            po_id=_require(data, "po_id", cls.kind),
            po_line_key=_require(data, "po_line_key", cls.kind),
            po_number=str(data.get("po_number") or ""),
            item_name=str(data.get("item_name") or ""),
        )

    @classmethod
    def from_legacy(cls, text: str) -> ReviewMarkItem:
        """``poId|poLineKey|poNumber|itemName``."""
        parts = text.split("|")
        if len(parts) != 4:
            raise ParseError(
                "selected_variances",
                f"review tuple needs 4 fields, got {len(parts)}",
            )
        po_id, po_line_key, po_number, item_name = parts
        return cls.from_wire({
            "po_id": po_id,
            "po_line_key": po_line_key,
            "po_number": po_number,
            "item_name": item_name,
        })


SelectionItem = Union[RateCorrectionItem, ReviewMarkItem]

ITEM_TYPES: dict[BatchVariant, type[RateCorrectionItem] | type[ReviewMarkItem]] = {
    BatchVariant.RATE_CORRECTION: RateCorrectionItem,
    BatchVariant.REVIEW_MARK: ReviewMarkItem,
}


# =============================================================================
# Results and progress
# =============================================================================


@dataclass(frozen=True)
class ErrorRecord:
    """One failed item, with enough identity to act on without logs."""

    document_id: str
    document_number: str
    item_name: str
    error: str
    code: str

    def to_dict(self) -> dict[str, str]:
        return {
            "document_id": self.document_id,
            "document_number": self.document_number,
            "item_name": self.item_name,
            "error": self.error,
            "code": self.code,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ErrorRecord:
        if not isinstance(data, dict):
            raise ParseError("previous_errors", "entries must be objects")
        return cls(
            document_id=str(data.get("document_id") or ""),
            document_number=str(data.get("document_number") or UNKNOWN),
            item_name=str(data.get("item_name") or UNKNOWN),
            error=str(data.get("error") or ""),
            code=str(data.get("code") or ""),
        )


@dataclass(frozen=True)
class ItemResult:
    """Outcome of one item within a round."""

    item_index: int  # position in the full selection
    item_key: str
    status: ItemStatus
    error_code: str | None = None
    error_message: str | None = None
    result_data: dict[str, Any] | None = None


@dataclass(frozen=True)
class BatchProgress:
    """
    Cumulative state threaded through the continuation token.

    ``batch_index`` is the index of the NEXT window to process.
    """

    batch_index: int = 0
    success_count: int = 0
    error_count: int = 0
    errors: tuple[ErrorRecord, ...] = ()
    updated: tuple[dict[str, Any], ...] = ()

    def advance(
        self,
        updated: list[dict[str, Any]],
        errors: list[ErrorRecord],
    ) -> BatchProgress:
        return BatchProgress(
            batch_index=self.batch_index + 1,
            success_count=self.success_count + len(updated),
            error_count=self.error_count + len(errors),
            errors=self.errors + tuple(errors),
            updated=self.updated + tuple(updated),
        )


def count_errors_by_code(errors: tuple[ErrorRecord, ...] | list[ErrorRecord], code: str) -> int:
    return sum(1 for err in errors if err.code == code)


@dataclass(frozen=True)
class RoundOutcome:
    """
    Result of one driver round.

    ``progress`` already includes this round; ``complete`` is True when
    the window reached the end of the selection.
    """

    variant: BatchVariant
    selection: tuple[SelectionItem, ...]
    window_start: int
    window_end: int
    progress: BatchProgress
    item_results: tuple[ItemResult, ...] = field(default_factory=tuple)

    @property
    def total(self) -> int:
        return len(self.selection)

    @property
    def failed_item_keys(self) -> tuple[str, ...]:
        """Keys of the items that failed in this round only."""
        return tuple(
            result.item_key
            for result in self.item_results
            if result.status is ItemStatus.FAILED
        )

    @property
    def complete(self) -> bool:
        return self.window_end >= self.total

    @property
    def closed_period_count(self) -> int:
        return count_errors_by_code(self.progress.errors, ClosedPeriodError.code)

    @property
    def not_found_count(self) -> int:
        return sum(
            1 for err in self.progress.errors if err.code in NOT_FOUND_CODES
        )

