"""
Tests for variance_engines.grouping -- LineGrouper.

Validates per-PO-line grouping of joined rows, de-duplication of the
receipt / bill repeats a join produces, and the engine trace record.
"""

from datetime import date
from decimal import Decimal

from variance_engines.grouping import LineGrouper
from variance_engines.types import JoinedLine, RawJoinRow


def _line(doc_id: str, line_key: str, rate: str, day: int) -> JoinedLine:
    return JoinedLine(
        document_id=doc_id,
        number=doc_id,
        date=date(2025, 8, day),
        line_key=line_key,
        quantity=Decimal("1"),
        rate=Decimal(rate),
    )


def _row(po_line_key: str, receipt=None, bill=None, po_id: str = "PO1") -> RawJoinRow:
    return RawJoinRow(
        po_id=po_id,
        po_number=po_id,
        po_date=date(2025, 8, 1),
        po_line_key=po_line_key,
        po_rate=Decimal("100"),
        po_quantity=Decimal("2"),
        item_id="ITEM-1",
        receipt=receipt,
        bill=bill,
    )


class TestLineGrouper:
    """Grouping by PO line key."""

    def test_cartesian_rows_collapse_to_distinct_lines(self):
        ir1, ir2 = _line("IR1", "ir1-1", "100", 2), _line("IR2", "ir2-1", "100", 3)
        vb1, vb2 = _line("VB1", "vb1-1", "102", 5), _line("VB2", "vb2-1", "103", 6)
        rows = [
            _row("L1", ir1, vb1),
            _row("L1", ir1, vb2),
            _row("L1", ir2, vb1),
            _row("L1", ir2, vb2),
        ]

        groups = LineGrouper().group(rows)

        assert list(groups) == ["L1"]
        assert groups["L1"].receipts == [ir1, ir2]
        assert groups["L1"].bills == [vb1, vb2]

    def test_separate_groups_per_line_key(self):
        rows = [
            _row("L1", bill=_line("VB1", "vb1-1", "5", 5)),
            _row("L2", bill=_line("VB2", "vb2-1", "6", 5), po_id="PO2"),
        ]

        groups = LineGrouper().group(rows)

        assert set(groups) == {"L1", "L2"}
        assert groups["L2"].info.po_id == "PO2"
        assert groups["L1"].receipts == []

    def test_first_row_seeds_po_info(self):
        rows = [_row("L1", po_id="PO-A"), _row("L1", po_id="PO-B")]

        groups = LineGrouper().group(rows)

        assert groups["L1"].info.po_id == "PO-A"
        assert groups["L1"].info.vendor_name == "Unknown Vendor"

    def test_empty_input(self):
        assert LineGrouper().group([]) == {}

    def test_emits_engine_trace(self, captured_logs):
        LineGrouper().group([_row("L1")])

        traces = [r for r in captured_logs() if r["message"] == "VARIANCE_ENGINE_TRACE"]
        assert traces
        assert traces[0]["engine_name"] == "line_grouper"
