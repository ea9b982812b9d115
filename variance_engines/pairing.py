"""
variance_engines.pairing -- Pairing Engine.

Responsibility:
    Turn PO-line groups into variance pairs under one of two matching
    policies and the configured inclusion thresholds.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Consumes LineGrouper
    output; its pairs feed the operator views and the batch runners.

Matching policies:
    - Receipt/bill (positional): receipts and bills are each sorted by
      date ascending and paired index for index.  Leftovers on the longer
      side produce no pair, so a group yields min(receipts, bills) pairs
      before thresholds.
    - Order/bill (anchor): the PO line is paired only with its oldest
      bill.  The result list is ordered by bill date, newest first.

Invariants enforced:
    - Every emitted pair has abs(variance) >= policy.min_variance.
    - Order/bill pairs additionally have abs(percent) >= the threshold of
      the PO line's location bucket; percent is 0 when the PO rate is 0.
    - Sorting is stable: identical dates keep discovery order.  Undated
      receipts and bills sort as the oldest.
    - Pure: no clock, no I/O.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date

from variance_engines.tracer import traced_engine
from variance_engines.types import (
    JoinedLine,
    OrderBillPair,
    PairingPolicy,
    PoLineGroup,
    ReceiptBillPair,
)
from variance_engines.variance import meets_threshold, rate_variance, variance_percent
from variance_kernel.logging_config import get_logger

logger = get_logger("engines.pairing")


def _date_key(line: JoinedLine) -> date:
    # Undated documents sort as the oldest.
    return line.date or date.min


def _by_date(lines: list[JoinedLine]) -> list[JoinedLine]:
    return sorted(lines, key=_date_key)


class PairingEngine:
    """
    Pure pairing of receipts / bills against purchase order lines.

    Contract:
        Takes its PairingPolicy at construction; never reads ambient
        configuration.  Groups are not mutated.
    """

    def __init__(self, policy: PairingPolicy | None = None):
        self.policy = policy or PairingPolicy()

    @traced_engine("pairing", "1.0", fingerprint_fields=("groups",))
    def pair_receipts_to_bills(
        self,
        groups: Mapping[str, PoLineGroup],
    ) -> list[ReceiptBillPair]:
        """
        Oldest receipt to oldest bill, second to second, and so on.

        Pairs come out in group order, then chronological within a group.
        """
        pairs: list[ReceiptBillPair] = []
        below_floor = 0

        for group in groups.values():
            receipts = _by_date(group.receipts)
            bills = _by_date(group.bills)
            for receipt, bill in zip(receipts, bills):
                variance = rate_variance(receipt.rate, bill.rate)
                if not meets_threshold(variance, self.policy.min_variance):
                    below_floor += 1
                    continue
                pairs.append(ReceiptBillPair(
                    info=group.info,
                    receipt=receipt,
                    bill=bill,
                    variance=variance,
                ))

        logger.info("receipt_bill_pairs_created", extra={
            "group_count": len(groups),
            "pair_count": len(pairs),
            "below_floor": below_floor,
        })
        return pairs

    @traced_engine("pairing", "1.0", fingerprint_fields=("groups",))
    def pair_order_to_oldest_bill(
        self,
        groups: Mapping[str, PoLineGroup],
    ) -> list[OrderBillPair]:
        """
        Each PO line against its single oldest bill.

        Later bills for the same PO line are not evaluated in this pass.
        """
        pairs: list[OrderBillPair] = []
        excluded = 0

        for group in groups.values():
            if not group.bills:
                continue
            bill = _by_date(group.bills)[0]
            po_rate = group.info.po_rate
            variance = rate_variance(po_rate, bill.rate)
            percent = variance_percent(variance, po_rate)
            bucket = self.policy.bucket_for(group.info.location_id)
            threshold = self.policy.threshold_for(bucket)

            if not (
                meets_threshold(variance, self.policy.min_variance)
                and meets_threshold(percent, threshold)
            ):
                excluded += 1
                continue

            pairs.append(OrderBillPair(
                info=group.info,
                bill=bill,
                variance=variance,
                variance_percent=percent,
                bucket=bucket,
                threshold=threshold,
            ))

        pairs.sort(key=lambda pair: _date_key(pair.bill), reverse=True)

        logger.info("order_bill_pairs_created", extra={
            "group_count": len(groups),
            "pair_count": len(pairs),
            "excluded": excluded,
        })
        return pairs
