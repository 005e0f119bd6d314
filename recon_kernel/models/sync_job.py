"""
ORM model for persisted sync job state.

Contract:
    SyncJobModel persists the progress and outcome of long-running
    reconciliation jobs (fee walks, ERP batch syncs).  ``to_dto()`` /
    ``from_dto()`` convert to and from the frozen ``SyncJob`` DTO.

Architecture: recon_kernel/models.  Imports from recon_kernel.db.base and
    recon_kernel.domain.jobs only.

Invariants enforced:
    - Active-job visibility is a query over these rows, never in-process
      state, so every stateless worker observes the same progress.
    - Counters are only ever increased by ``SyncJobTracker``.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSON
from sqlalchemy.orm import Mapped, mapped_column

from recon_kernel.db.base import TrackedBase
from recon_kernel.domain.jobs import SyncJob, SyncJobStatus


class SyncJobModel(TrackedBase):
    """Persistent sync job record."""

    __tablename__ = "sync_jobs"

    __table_args__ = (
        Index("ix_sync_jobs_status", "status"),
        Index("ix_sync_jobs_scope", "job_type", "scope_key"),
        Index("ix_sync_jobs_completed_at", "completed_at"),
    )

    job_type: Mapped[str] = mapped_column(String(200), nullable=False)
    scope_key: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    parameters: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    total_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    processed_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    successful_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    skipped_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    current_item: Mapped[str | None] = mapped_column(String(200), nullable=True)
    resume_cursor: Mapped[str | None] = mapped_column(String(100), nullable=True)
    error_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    def to_dto(self) -> SyncJob:
        return SyncJob(
            job_id=self.id,
            job_type=self.job_type,
            scope_key=self.scope_key,
            status=SyncJobStatus(self.status),
            parameters=self.parameters or {},
            total_items=self.total_items,
            processed_items=self.processed_items,
            successful_items=self.successful_items,
            failed_items=self.failed_items,
            skipped_items=self.skipped_items,
            current_item=self.current_item,
            resume_cursor=self.resume_cursor,
            error_summary=self.error_summary,
            created_at=self.created_at,
            started_at=self.started_at,
            completed_at=self.completed_at,
            created_by=self.created_by_id,
        )

    @classmethod
    def from_dto(cls, dto: SyncJob, created_by_id: UUID) -> SyncJobModel:
        return cls(
            id=dto.job_id,
            job_type=dto.job_type,
            scope_key=dto.scope_key,
            status=dto.status.value,
            parameters=dto.parameters or None,
            total_items=dto.total_items,
            processed_items=dto.processed_items,
            successful_items=dto.successful_items,
            failed_items=dto.failed_items,
            skipped_items=dto.skipped_items,
            current_item=dto.current_item,
            resume_cursor=dto.resume_cursor,
            error_summary=dto.error_summary,
            started_at=dto.started_at,
            completed_at=dto.completed_at,
            created_by_id=created_by_id,
            updated_by_id=None,
        )
