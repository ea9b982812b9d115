"""
variance_engines.grouping -- Line Grouper.

Responsibility:
    Fold the flat rows of a joined PO / receipt / bill query into one
    PoLineGroup per purchase order line, collapsing the repeats a
    relational join produces.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - The first row seen for a PO line key seeds the group's PO info.
    - Each receipt / bill line key appears at most once per group; the
      membership check is a set lookup, so grouping is O(n) in rows.
    - Input order does not matter for group membership; it only decides
      discovery order, which later breaks date ties.
"""

from __future__ import annotations

from collections.abc import Iterable

from variance_engines.tracer import traced_engine
from variance_engines.types import PoLineGroup, PoLineInfo, RawJoinRow
from variance_kernel.logging_config import get_logger

logger = get_logger("engines.grouping")


class LineGrouper:
    """Groups joined rows by purchase order line key."""

    @traced_engine("line_grouper", "1.0")
    def group(self, rows: Iterable[RawJoinRow]) -> dict[str, PoLineGroup]:
        groups: dict[str, PoLineGroup] = {}
        row_count = 0
        duplicates = 0

        for row in rows:
            row_count += 1
            group = groups.get(row.po_line_key)
            if group is None:
                group = PoLineGroup(info=PoLineInfo.from_row(row))
                groups[row.po_line_key] = group

            if row.receipt is not None and not group.add_receipt(row.receipt):
                duplicates += 1
            if row.bill is not None and not group.add_bill(row.bill):
                duplicates += 1

        logger.debug("rows_grouped", extra={
            "row_count": row_count,
            "group_count": len(groups),
            "duplicate_lines_skipped": duplicates,
        })
        return groups
