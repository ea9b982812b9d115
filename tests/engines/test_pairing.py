"""
Tests for variance_engines.pairing -- PairingEngine.

Receipt/bill pairing is positional by date within a PO line; order/bill
pairing takes only the oldest bill and applies per-location percent
thresholds.
"""

from dataclasses import replace
from datetime import date
from decimal import Decimal

from hypothesis import given, settings
from hypothesis import strategies as st

from variance_engines.pairing import PairingEngine
from variance_engines.types import (
    JoinedLine,
    LocationBucket,
    PairingPolicy,
    PoLineGroup,
    PoLineInfo,
    VarianceDirection,
)


def _info(po_rate: str = "100", location_id: str | None = "113", key: str = "L1") -> PoLineInfo:
    return PoLineInfo(
        po_id="PO1",
        po_number="PO-1",
        po_date=date(2025, 8, 1),
        po_line_key=key,
        po_rate=Decimal(po_rate),
        po_quantity=Decimal("1"),
        item_id="ITEM-1",
        item_number="SKU-1",
        item_name="Widget",
        vendor_id="V-1",
        vendor_name="Acme",
        location_id=location_id,
        location_name="",
    )


def _line(doc_id: str, rate: str, day: int) -> JoinedLine:
    return JoinedLine(
        document_id=doc_id,
        number=doc_id,
        date=date(2025, 8, day),
        line_key=f"{doc_id}-1",
        quantity=Decimal("1"),
        rate=Decimal(rate),
    )


def _group(receipts=(), bills=(), **info) -> PoLineGroup:
    group = PoLineGroup(info=_info(**info))
    for line in receipts:
        group.add_receipt(line)
    for line in bills:
        group.add_bill(line)
    return group


class TestReceiptBillPairing:
    """Positional IR/VB pairing."""

    def test_single_pair_with_variance(self):
        group = _group([_line("IR1", "100", 5)], [_line("VB1", "102", 10)])

        pairs = PairingEngine().pair_receipts_to_bills({"L1": group})

        assert len(pairs) == 1
        assert pairs[0].variance == Decimal("2")
        assert pairs[0].to_dict()["variance"] == "2"

    def test_pairs_by_date_not_by_discovery_order(self):
        group = _group(
            [_line("IR2", "100", 9), _line("IR1", "100", 2)],
            [_line("VB2", "105", 20), _line("VB1", "101", 10)],
        )

        pairs = PairingEngine().pair_receipts_to_bills({"L1": group})

        assert [(p.receipt.document_id, p.bill.document_id) for p in pairs] == [
            ("IR1", "VB1"),
            ("IR2", "VB2"),
        ]

    def test_unmatched_surplus_is_dropped(self):
        group = _group(
            [_line("IR1", "100", 2), _line("IR2", "100", 3), _line("IR3", "100", 4)],
            [_line("VB1", "101", 10)],
        )

        pairs = PairingEngine().pair_receipts_to_bills({"L1": group})

        assert [p.receipt.document_id for p in pairs] == ["IR1"]

    def test_variance_floor_boundary(self):
        included = _group([_line("IR1", "10.00", 2)], [_line("VB1", "10.01", 5)], key="L1")
        excluded = _group([_line("IR2", "10.00", 2)], [_line("VB2", "10.0099", 5)], key="L2")

        pairs = PairingEngine().pair_receipts_to_bills({"L1": included, "L2": excluded})

        assert [p.receipt.document_id for p in pairs] == ["IR1"]

    def test_no_receipts_yields_nothing(self):
        group = _group([], [_line("VB1", "101", 10)])
        assert PairingEngine().pair_receipts_to_bills({"L1": group}) == []

    @settings(max_examples=50, deadline=None)
    @given(
        receipt_days=st.lists(st.integers(min_value=1, max_value=28), max_size=6, unique=True),
        bill_days=st.lists(st.integers(min_value=1, max_value=28), max_size=6, unique=True),
        reverse=st.booleans(),
    )
    def test_pair_count_is_min_and_order_independent(self, receipt_days, bill_days, reverse):
        receipts = [_line(f"IR{d}", "100", d) for d in receipt_days]
        bills = [_line(f"VB{d}", "101", d) for d in bill_days]
        engine = PairingEngine()

        forward = engine.pair_receipts_to_bills({"L1": _group(receipts, bills)})
        shuffled = engine.pair_receipts_to_bills({
            "L1": _group(
                list(reversed(receipts)) if reverse else receipts,
                list(reversed(bills)),
            )
        })

        assert len(forward) == min(len(receipts), len(bills))
        assert [(p.receipt, p.bill) for p in forward] == [
            (p.receipt, p.bill) for p in shuffled
        ]


class TestOrderBillPairing:
    """PO line against its oldest bill."""

    def test_below_threshold_excluded(self):
        group = _group(bills=[_line("VB1", "101", 10)])
        assert PairingEngine().pair_order_to_oldest_bill({"L1": group}) == []

    def test_above_threshold_included(self):
        group = _group(bills=[_line("VB1", "103", 10)])

        pairs = PairingEngine().pair_order_to_oldest_bill({"L1": group})

        assert len(pairs) == 1
        assert pairs[0].variance == Decimal("3")
        assert pairs[0].variance_percent == Decimal("3")
        assert pairs[0].bucket is LocationBucket.SERVICE
        assert pairs[0].direction is VarianceDirection.UNFAVORABLE

    def test_only_oldest_bill_is_evaluated(self):
        group = _group(bills=[_line("VB2", "150", 20), _line("VB1", "100.50", 10)])
        assert PairingEngine().pair_order_to_oldest_bill({"L1": group}) == []

    def test_zero_po_rate_gives_zero_percent(self):
        policy = PairingPolicy(service_threshold=Decimal("0"))
        group = _group(bills=[_line("VB1", "5", 10)], po_rate="0")

        pairs = PairingEngine(policy).pair_order_to_oldest_bill({"L1": group})

        assert pairs[0].variance_percent == Decimal("0")
        assert pairs[0].direction is VarianceDirection.NEUTRAL

    def test_location_buckets_use_their_thresholds(self):
        policy = PairingPolicy(
            service_threshold=Decimal("10"),
            kitchen_threshold=Decimal("1"),
            appliances_threshold=Decimal("50"),
        )
        groups = {
            "S": _group(bills=[_line("VB-S", "105", 10)], location_id="113", key="S"),
            "K": _group(bills=[_line("VB-K", "105", 11)], location_id="17", key="K"),
            "A": _group(bills=[_line("VB-A", "105", 12)], location_id=None, key="A"),
        }

        pairs = PairingEngine(policy).pair_order_to_oldest_bill(groups)

        assert [p.bucket for p in pairs] == [LocationBucket.KITCHEN]

    def test_sorted_by_bill_date_descending(self):
        groups = {
            "A": _group(bills=[_line("VB-A", "90", 3)], key="A"),
            "B": _group(bills=[_line("VB-B", "90", 9)], key="B"),
            "C": _group(bills=[_line("VB-C", "90", 6)], key="C"),
        }

        pairs = PairingEngine().pair_order_to_oldest_bill(groups)

        assert [p.bill.document_id for p in pairs] == ["VB-B", "VB-C", "VB-A"]
        assert all(p.direction is VarianceDirection.FAVORABLE for p in pairs)


class TestUndatedDocuments:
    """Receipts or bills with no transaction date."""

    def test_undated_receipt_pairs_first(self):
        undated = replace(_line("IR0", "100", 1), date=None)
        group = _group(
            [_line("IR1", "100", 4), undated],
            [_line("VB1", "102", 10), _line("VB2", "103", 12)],
        )

        pairs = PairingEngine().pair_receipts_to_bills({"L1": group})

        assert [(p.receipt.document_id, p.bill.document_id) for p in pairs] == [
            ("IR0", "VB1"),
            ("IR1", "VB2"),
        ]
        assert pairs[0].to_dict()["ir_date"] is None

    def test_undated_bill_is_oldest_and_sorts_last(self):
        groups = {
            "A": _group(
                bills=[_line("VB-A2", "90", 3), replace(_line("VB-A1", "90", 1), date=None)],
                key="A",
            ),
            "B": _group(bills=[_line("VB-B", "90", 9)], key="B"),
        }

        pairs = PairingEngine().pair_order_to_oldest_bill(groups)

        assert [p.bill.document_id for p in pairs] == ["VB-B", "VB-A1"]
        assert pairs[1].to_dict()["vb_date"] is None
