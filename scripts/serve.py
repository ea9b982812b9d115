#!/usr/bin/env python3
"""
Serve the rate variance operator views over HTTP.

Usage:
    python3 scripts/serve.py --db-url <url> [--host 127.0.0.1] [--port 8000] [--config PATH]
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Serve the rate variance views.")
    parser.add_argument("--db-url", required=True, help="SQLAlchemy database URL.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--config", type=Path, default=None, help="Config YAML path.")
    return parser.parse_args()


def main() -> int:
    args = _parse_args()

    import uvicorn

    from variance_config import get_active_config
    from variance_kernel.logging_config import configure_logging
    from variance_services.reconciliation_service import sql_reconciliation_service
    from variance_web import create_app

    configure_logging()
    config = get_active_config(args.config)
    app = create_app(sql_reconciliation_service(args.db_url, config))
    uvicorn.run(app, host=args.host, port=args.port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
