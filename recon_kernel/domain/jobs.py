"""
recon_kernel.domain.jobs -- Pure frozen dataclasses for sync job state.

ZERO I/O.  The ORM model (``recon_kernel.models.sync_job``) converts to
these DTOs; the tracker and the read model hand them to callers.

Lifecycle:
    PENDING --first progress write--> RUNNING --> COMPLETED | FAILED

A job may also go PENDING -> COMPLETED/FAILED directly (empty work set,
or superseded before it started).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID


class SyncJobStatus(str, Enum):
    """Job-level lifecycle status."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SyncJobStatus.COMPLETED, SyncJobStatus.FAILED)


ACTIVE_STATUSES: frozenset[SyncJobStatus] = frozenset(
    {SyncJobStatus.PENDING, SyncJobStatus.RUNNING}
)

VALID_TRANSITIONS: dict[SyncJobStatus, frozenset[SyncJobStatus]] = {
    SyncJobStatus.PENDING: frozenset(
        {SyncJobStatus.RUNNING, SyncJobStatus.COMPLETED, SyncJobStatus.FAILED}
    ),
    SyncJobStatus.RUNNING: frozenset(
        {SyncJobStatus.COMPLETED, SyncJobStatus.FAILED}
    ),
    SyncJobStatus.COMPLETED: frozenset(),
    SyncJobStatus.FAILED: frozenset(),
}


@dataclass(frozen=True)
class SyncJob:
    """Immutable snapshot of a tracked sync job.

    ``scope_key`` together with ``job_type`` identifies the logical scope
    (e.g. a fee pair, a date range); at most one PENDING/RUNNING job per
    scope is authoritative.
    """

    job_id: UUID
    job_type: str  # e.g. "fees.transactions.pair", "erp.orders"
    scope_key: str  # e.g. "hyperpay:visa", "20250101-20250131"
    status: SyncJobStatus
    parameters: dict[str, Any] = field(default_factory=dict)
    total_items: int = 0
    processed_items: int = 0
    successful_items: int = 0
    failed_items: int = 0
    skipped_items: int = 0
    current_item: str | None = None
    resume_cursor: str | None = None
    error_summary: str | None = None
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_by: UUID | None = None

    def to_read_model(self) -> dict[str, Any]:
        """Observer-facing projection consumed by dashboards."""
        return {
            "id": str(self.job_id),
            "status": self.status.value,
            "processed": self.processed_items,
            "total": self.total_items,
            "successful": self.successful_items,
            "failed": self.failed_items,
            "skipped": self.skipped_items,
            "currentItem": self.current_item,
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "completedAt": (
                self.completed_at.isoformat() if self.completed_at else None
            ),
        }
