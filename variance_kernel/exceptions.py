"""
Typed Exception Hierarchy for rate variance reconciliation.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

The reconciliation core has to decide, per item, whether a failure is
expected (a locked accounting period), a sign of data drift (the line the
query saw is gone), a deferral (the host operation quota ran out) or a hard
stop (an adjustment that would change a bill total).  Those decisions are
made by catching exception TYPES, never by matching message text.

Every exception:
  1. Is a subclass of VarianceReconError (catch the family in one place)
  2. Has a class-level CODE (machine-readable, safe to put on a redirect)
  3. Carries structured DATA as attributes (document ids, amounts, ...)

Example - WRONG way to handle errors:
    try:
        mutator.update_receipt_rate(ir_id, item_id, rate)
    except Exception as e:
        if "closed period" in str(e):  # FRAGILE
            route_to_adjustment()

Example - RIGHT way:
    try:
        mutator.update_receipt_rate(ir_id, item_id, rate)
    except ClosedPeriodError as e:
        route_to_adjustment(e.document_id)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    VarianceReconError (base)
    |
    +-- DocumentError
    |   +-- NotFoundError
    |   |   +-- DocumentNotFoundError
    |   |   +-- LineNotFoundError
    |   +-- ConcurrentModificationError
    |   +-- MandatoryFieldError
    |
    +-- PeriodError
    |   +-- ClosedPeriodError
    |
    +-- GovernanceError
    |   +-- BudgetExceededError
    |
    +-- AdjustmentError
    |   +-- InvarianceViolationError
    |   +-- PartialAdjustmentError
    |
    +-- ProtocolError
        +-- ParseError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category    | Code                      | When Raised
------------|---------------------------|-------------------------------------------
Document    | NOT_FOUND                 | Generic not-found (base of the two below)
            | DOCUMENT_NOT_FOUND        | Document id does not exist in the store
            | LINE_NOT_FOUND            | No line matched the item / line key
            | CONCURRENT_MODIFICATION   | Document changed since it was loaded
            | MANDATORY_FIELD_MISSING   | Validated save with an empty header field
------------|---------------------------|-------------------------------------------
Period      | CLOSED_PERIOD             | Save rejected: accounting period locked
------------|---------------------------|-------------------------------------------
Governance  | BUDGET_EXCEEDED           | Host operation quota exhausted mid-call
------------|---------------------------|-------------------------------------------
Adjustment  | INVARIANCE_VIOLATION      | Bill total drifted during adjustment
            | PARTIAL_ADJUSTMENT        | Bill saved, journal entry failed
------------|---------------------------|-------------------------------------------
Protocol    | PARSE_ERROR               | Malformed / stale continuation state

===============================================================================
HANDLING PATTERNS
===============================================================================

1. PER-ITEM ERRORS BECOME RECORDS, NOT CRASHES:

    for item in window:
        try:
            handler.execute(item)
        except VarianceReconError as e:
            errors.append(ErrorRecord.from_exception(item, e))

2. CLOSED PERIODS ARE EXPECTED:

    except ClosedPeriodError:
        closed_period.append(pair)      # reported, not alarmed on

3. PROTOCOL ERRORS FAIL THE WHOLE ROUND:

    token = ContinuationToken.from_params(params)   # may raise ParseError
    # never fall back to an empty state: losing progress silently is worse
"""

from __future__ import annotations


class VarianceReconError(Exception):
    """
    Base exception for all reconciliation errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "VARIANCE_RECON_ERROR"


# Document-related exceptions


class DocumentError(VarianceReconError):
    """Base exception for document store errors."""

    code: str = "DOCUMENT_ERROR"


class NotFoundError(DocumentError):
    """
    Something the pairing query saw is no longer in the store.

    Treated as data drift: reported to the operator, never retried.
    """

    code: str = "NOT_FOUND"


class DocumentNotFoundError(NotFoundError):
    """Document with given id does not exist."""

    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, document_type: str, document_id: str):
        self.document_type = document_type
        self.document_id = document_id
        super().__init__(f"{document_type} not found: {document_id}")


class LineNotFoundError(NotFoundError):
    """No line on the document matched the requested key."""

    code: str = "LINE_NOT_FOUND"

    def __init__(
        self,
        document_type: str,
        document_id: str,
        match_field: str,
        match_value: str,
    ):
        self.document_type = document_type
        self.document_id = document_id
        self.match_field = match_field
        self.match_value = match_value
        super().__init__(
            f"No lines found with {match_field} {match_value} "
            f"on {document_type} {document_id}"
        )


class ConcurrentModificationError(DocumentError):
    """
    Document revision changed between load and save.

    Raised by the optimistic revision check on save.
    """

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(
        self,
        document_id: str,
        expected_revision: int,
        actual_revision: int,
    ):
        self.document_id = document_id
        self.expected_revision = expected_revision
        self.actual_revision = actual_revision
        super().__init__(
            f"Document {document_id} was modified concurrently: "
            f"loaded revision {expected_revision}, store has {actual_revision}"
        )


class MandatoryFieldError(DocumentError):
    """A mandatory header field is empty and validation was not relaxed."""

    code: str = "MANDATORY_FIELD_MISSING"

    def __init__(self, document_id: str, field_name: str):
        self.document_id = document_id
        self.field_name = field_name
        super().__init__(
            f"Document {document_id} is missing mandatory field {field_name}"
        )


# Period-related exceptions


class PeriodError(VarianceReconError):
    """Base exception for accounting period errors."""

    code: str = "PERIOD_ERROR"


class ClosedPeriodError(PeriodError):
    """
    Save rejected because the document's accounting period is locked.

    Expected, not a bug: the item is routed to the closed-period
    adjustment procedure or reported.
    """

    code: str = "CLOSED_PERIOD"

    def __init__(self, document_id: str, period_id: str | None):
        self.document_id = document_id
        self.period_id = period_id
        super().__init__(
            f"Cannot save document {document_id}: "
            f"accounting period {period_id} is a closed period"
        )


# Governance-related exceptions


class GovernanceError(VarianceReconError):
    """Base exception for host operation quota errors."""

    code: str = "GOVERNANCE_ERROR"


class BudgetExceededError(GovernanceError):
    """Operation budget exhausted in the middle of a call."""

    code: str = "BUDGET_EXCEEDED"

    def __init__(self, operation: str, required: int, remaining: int):
        self.operation = operation
        self.required = required
        self.remaining = remaining
        super().__init__(
            f"Usage limit exceeded: {operation} needs {required} units, "
            f"{remaining} remaining"
        )


# Adjustment-related exceptions


class AdjustmentError(VarianceReconError):
    """Base exception for closed-period adjustment errors."""

    code: str = "ADJUSTMENT_ERROR"


class InvarianceViolationError(AdjustmentError):
    """
    Bill total changed while applying a rate edit plus offsetting line.

    The rate edit and the expense line must net to zero.  Any drift means
    the adjustment was miscalculated; nothing is saved.
    """

    code: str = "INVARIANCE_VIOLATION"

    def __init__(
        self,
        document_id: str,
        original_total: str,
        new_total: str,
        tolerance: str,
    ):
        self.document_id = document_id
        self.original_total = original_total
        self.new_total = new_total
        self.tolerance = tolerance
        super().__init__(
            f"VB total changed from ${original_total} to ${new_total} "
            f"(tolerance ${tolerance}) - adjustment cancelled"
        )


class PartialAdjustmentError(AdjustmentError):
    """
    Bill was saved but its offsetting journal entry was not.

    Carries enough state for manual reconciliation.
    """

    code: str = "PARTIAL_ADJUSTMENT"

    def __init__(self, saved_vb_id: str, adjustment_amount: str, reason: str):
        self.saved_vb_id = saved_vb_id
        self.adjustment_amount = adjustment_amount
        self.reason = reason
        super().__init__(
            f"Vendor bill {saved_vb_id} was corrected but the offsetting "
            f"journal entry for {adjustment_amount} was not created: {reason}"
        )


# Protocol-related exceptions


class ProtocolError(VarianceReconError):
    """Base exception for request / continuation protocol errors."""

    code: str = "PROTOCOL_ERROR"


class ParseError(ProtocolError):
    """
    Continuation state or selection payload could not be parsed.

    Fatal for the request: the round fails rather than resetting progress.
    """

    code: str = "PARSE_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Cannot parse {field}: {reason}")
