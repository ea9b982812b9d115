"""
variance_config -- single public entrypoint for reconciliation configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component may read configuration
    files or environment variables directly.

Architecture position:
    Configuration.  Sits above ``variance_kernel`` / ``variance_engines``
    and below ``variance_batch`` / ``variance_services`` / ``variance_web``.

Failure modes:
    - ``FileNotFoundError`` -- configured path does not exist.
    - ``ValueError`` -- a value in the file cannot be parsed.

Every successful ``get_active_config()`` call emits a
``VARIANCE_CONFIG_TRACE`` log entry with the config id, version and
checksum.
"""

from __future__ import annotations

import os
from pathlib import Path

from variance_config.loader import load_config
from variance_config.schema import (
    AdjustmentAccounts,
    ReconciliationConfig,
    VarianceThresholds,
)
from variance_kernel.logging_config import get_logger

_logger = get_logger("config")

CONFIG_PATH_ENV = "VARIANCE_RECON_CONFIG"

# Default configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"
DEFAULT_CONFIG_PATH = _DEFAULT_CONFIG_DIR / "default.yaml"


def get_active_config(path: Path | str | None = None) -> ReconciliationConfig:
    """The ONLY public configuration entrypoint.

    Resolution order: explicit ``path``, then the file named by the
    ``VARIANCE_RECON_CONFIG`` environment variable, then the shipped
    default set.

    Raises:
        FileNotFoundError: If the resolved file does not exist.
        ValueError: If a value cannot be parsed.
    """
    resolved = Path(path or os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)
    config = load_config(resolved)

    _logger.info(
        "VARIANCE_CONFIG_TRACE",
        extra={
            "trace_type": "VARIANCE_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "source": str(resolved),
        },
    )
    return config


__all__ = [
    "AdjustmentAccounts",
    "ReconciliationConfig",
    "VarianceThresholds",
    "get_active_config",
]
