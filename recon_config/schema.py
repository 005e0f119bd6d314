"""
Typed runtime settings (``recon_config.schema``).

Every section is a frozen dataclass; the loader builds them from YAML and
``get_active_config()`` hands the assembled ``ReconConfig`` to callers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class BatchSettings:
    """Walker limits.  ``max_pages`` bounds one invocation's wall-clock time."""

    page_size: int = 500
    max_pages: int = 20
    excluded_transaction_types: tuple[str, ...] = ("point",)

    def __post_init__(self) -> None:
        if self.page_size < 1:
            raise ValueError(f"batch.page_size must be >= 1, got {self.page_size}")
        if self.max_pages < 1:
            raise ValueError(f"batch.max_pages must be >= 1, got {self.max_pages}")


@dataclass(frozen=True)
class ErpSettings:
    """HTTP behaviour of the ERP client and the not-found classifier."""

    request_timeout_seconds: float = 30.0
    heuristic_not_found: bool = True
    not_found_markers: tuple[str, ...] = ("not found", "does not exist")
    not_found_error_codes: tuple[str, ...] = ("NOT_FOUND",)


@dataclass(frozen=True)
class JobSettings:
    visibility_grace_seconds: int = 300


@dataclass(frozen=True)
class TreasurySettings:
    drift_epsilon: Decimal = Decimal("0.001")


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = "sqlite:///recon.db"
    echo: bool = False


@dataclass(frozen=True)
class ReconConfig:
    """The assembled runtime configuration."""

    batch: BatchSettings = field(default_factory=BatchSettings)
    erp: ErpSettings = field(default_factory=ErpSettings)
    jobs: JobSettings = field(default_factory=JobSettings)
    treasury: TreasurySettings = field(default_factory=TreasurySettings)
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    source: str | None = None  # path the config was loaded from
