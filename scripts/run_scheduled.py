#!/usr/bin/env python3
"""
Run the autonomous receipt rate correction against the document database.

Finds every IR/VB rate variance, sets each receipt line to its bill rate
while the operation budget lasts, and prints the run report.  Pairs left
when the budget margin is reached are reported as skipped, never dropped.

Configuration comes from get_active_config(): --config, then the
VARIANCE_RECON_CONFIG environment variable, then the shipped default set.

Usage:
    python3 scripts/run_scheduled.py --db-url <url> [options]

Examples:
    # Run against a SQLite file with the default budget
    python3 scripts/run_scheduled.py --db-url sqlite:///variance.db

    # Tight budget, machine-readable report
    python3 scripts/run_scheduled.py --db-url sqlite:///variance.db --budget 500 --json
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

DEFAULT_BUDGET = 10_000


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Correct receipt rates to bill rates within an operation budget.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--db-url",
        required=True,
        help="SQLAlchemy database URL of the document tables.",
    )
    parser.add_argument(
        "--budget",
        type=int,
        default=DEFAULT_BUDGET,
        help=f"Operation units available to the run (default: {DEFAULT_BUDGET}).",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a reconciliation config YAML (default: active config).",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the full report as JSON instead of a text summary.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log at DEBUG level.",
    )
    return parser.parse_args()


def _print_summary(report) -> None:
    print()
    print(f"  Variances found:   {report.total_found}")
    print(f"  Processed:         {report.processed}")
    print(f"  Updated:           {report.success_count}")
    print(f"  Closed period:     {report.closed_period_count}")
    print(f"  Errors:            {report.error_count}")
    print(f"  Skipped (budget):  {len(report.skipped)}")
    print(f"  Units used:        {report.units_used}")
    for entry in report.closed_period:
        print(f"    closed  {entry.get('ir_number')}  {entry.get('item_name')}")
    for entry in report.errors:
        print(f"    error   {entry.get('ir_number')}  {entry.get('error')}")
    print()


def main() -> int:
    args = _parse_args()

    from variance_config import get_active_config
    from variance_kernel.domain.budget import OperationBudget
    from variance_kernel.logging_config import configure_logging, get_logger
    from variance_services.reconciliation_service import sql_reconciliation_service

    configure_logging(level=logging.DEBUG if args.verbose else logging.INFO)
    logger = get_logger("scripts.run_scheduled")

    try:
        config = get_active_config(args.config)
    except (FileNotFoundError, ValueError) as exc:
        print(f"  Config error: {exc}", file=sys.stderr)
        return 2

    budget = OperationBudget(args.budget, config.operation_costs)
    service = sql_reconciliation_service(args.db_url, config, budget=budget)

    try:
        report = service.scheduled_runner(budget).run()
    except Exception:
        logger.exception("scheduled_run_failed")
        return 1

    if args.json:
        print(json.dumps(report.to_dict(), indent=2, default=str))
    else:
        _print_summary(report)
    return 1 if report.error_count else 0


if __name__ == "__main__":
    sys.exit(main())
