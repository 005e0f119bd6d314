"""
recon_config -- single public entrypoint for runtime settings.

Responsibility:
    ``get_active_config()`` is the only way services, handlers and scripts
    obtain batch limits, ERP client behaviour, job visibility and treasury
    tolerances.  The packaged ``defaults.yaml`` applies unless a path is
    passed or ``RECON_CONFIG_PATH`` names another file.

Failure modes:
    - ``FileNotFoundError`` -- the requested file does not exist.
    - ``ValueError`` -- unknown sections/keys or wrongly typed values.
"""

from __future__ import annotations

import os
from pathlib import Path

from recon_config.loader import load_config_file, parse_config
from recon_config.schema import (
    BatchSettings,
    DatabaseSettings,
    ErpSettings,
    JobSettings,
    ReconConfig,
    TreasurySettings,
)
from recon_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

CONFIG_PATH_ENV = "RECON_CONFIG_PATH"


def get_active_config(path: str | Path | None = None) -> ReconConfig:
    """Load and return the active configuration."""
    if path is None:
        path = os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH
    config = load_config_file(Path(path))

    _logger.info(
        "RECON_CONFIG_TRACE",
        extra={
            "source": config.source,
            "page_size": config.batch.page_size,
            "max_pages": config.batch.max_pages,
            "heuristic_not_found": config.erp.heuristic_not_found,
        },
    )
    return config


__all__ = [
    "CONFIG_PATH_ENV",
    "BatchSettings",
    "DatabaseSettings",
    "ErpSettings",
    "JobSettings",
    "ReconConfig",
    "TreasurySettings",
    "get_active_config",
    "parse_config",
]
