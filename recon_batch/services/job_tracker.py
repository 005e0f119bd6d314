"""
SyncJobTracker -- persisted progress and lifecycle of long-running jobs.

Contract:
    ``open_job()`` returns the authoritative PENDING/RUNNING job for a
    (job_type, scope_key), creating one when none exists.  With
    ``supersede=True`` the existing job is failed and a fresh one created.
    ``record_progress()`` adds to the counters; the first write moves the
    job to RUNNING and stamps ``started_at``.  ``complete()`` / ``fail()``
    end the job and stamp ``completed_at``.

Architecture: recon_batch/services.  Imports recon_kernel models, selectors
    and domain DTOs.

Invariants enforced:
    - Counters never decrease and never exceed a known (non-zero) total.
    - Progress or completion on a terminal job is rejected.
    - Timestamps come from the injected Clock.
    - The job row is locked (SELECT ... FOR UPDATE) for every write.

Non-goals:
    - Does NOT call ``session.commit()`` -- caller controls boundaries.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from recon_kernel.domain.clock import Clock, SystemClock
from recon_kernel.domain.jobs import VALID_TRANSITIONS, SyncJob, SyncJobStatus
from recon_kernel.exceptions import (
    InvalidJobTransitionError,
    SyncJobNotFoundError,
    SyncJobProgressError,
)
from recon_kernel.logging_config import get_logger
from recon_kernel.models.sync_job import SyncJobModel
from recon_kernel.selectors.sync_job_selector import SyncJobSelector

logger = get_logger("batch.job_tracker")

# Actor recorded on jobs started by schedulers and scripts
SYSTEM_ACTOR_ID = UUID(int=0)


class SyncJobTracker:
    """Write side of sync job state."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        actor_id: UUID | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._actor_id = actor_id or SYSTEM_ACTOR_ID
        self._selector = SyncJobSelector(session, clock=self._clock)

    # -------------------------------------------------------------------------
    # Open
    # -------------------------------------------------------------------------

    def open_job(
        self,
        job_type: str,
        scope_key: str,
        parameters: dict[str, Any] | None = None,
        total_items: int = 0,
        supersede: bool = False,
    ) -> SyncJob:
        """Attach to the authoritative job for the scope, or create one."""
        existing = self._selector.find_authoritative(job_type, scope_key)
        if existing is not None and not supersede:
            logger.info(
                "sync_job_attached",
                extra={
                    "job_id": str(existing.job_id),
                    "job_type": job_type,
                    "scope_key": scope_key,
                },
            )
            return existing

        job_id = uuid4()
        if existing is not None:
            self._finish(
                existing.job_id,
                SyncJobStatus.FAILED,
                error=f"superseded by {job_id}",
            )

        if total_items < 0:
            raise SyncJobProgressError(str(job_id), "total_items must be >= 0")

        now = self._clock.now()
        dto = SyncJob(
            job_id=job_id,
            job_type=job_type,
            scope_key=scope_key,
            status=SyncJobStatus.PENDING,
            parameters=parameters or {},
            total_items=total_items,
            created_at=now,
            created_by=self._actor_id,
        )
        model = SyncJobModel.from_dto(dto, created_by_id=self._actor_id)
        model.created_at = now
        model.updated_at = now
        self._session.add(model)
        self._session.flush()

        logger.info(
            "sync_job_opened",
            extra={
                "job_id": str(job_id),
                "job_type": job_type,
                "scope_key": scope_key,
                "total_items": total_items,
                "superseded_job_id": str(existing.job_id) if existing else None,
            },
        )
        return model.to_dto()

    # -------------------------------------------------------------------------
    # Progress
    # -------------------------------------------------------------------------

    def record_progress(
        self,
        job_id: UUID,
        *,
        succeeded: int = 0,
        failed: int = 0,
        skipped: int = 0,
        current_item: str | None = None,
        resume_cursor: str | None = None,
    ) -> SyncJob:
        """Add one batch of outcomes to the job's counters.

        Raises:
            SyncJobNotFoundError: If job_id does not exist.
            InvalidJobTransitionError: If the job is already terminal.
            SyncJobProgressError: Negative counts, or the total would be
                exceeded.
        """
        if min(succeeded, failed, skipped) < 0:
            raise SyncJobProgressError(str(job_id), "counts must be >= 0")

        model = self._lock(job_id)
        status = SyncJobStatus(model.status)
        if status.is_terminal:
            raise InvalidJobTransitionError(
                str(job_id), status.value, SyncJobStatus.RUNNING.value,
            )

        processed = model.processed_items + succeeded + failed + skipped
        if model.total_items and processed > model.total_items:
            raise SyncJobProgressError(
                str(job_id),
                f"processed {processed} would exceed total {model.total_items}",
            )

        now = self._clock.now()
        if status == SyncJobStatus.PENDING:
            model.status = SyncJobStatus.RUNNING.value
            model.started_at = now

        model.processed_items = processed
        model.successful_items += succeeded
        model.failed_items += failed
        model.skipped_items += skipped
        if current_item is not None:
            model.current_item = current_item
        if resume_cursor is not None:
            model.resume_cursor = resume_cursor
        model.updated_at = now
        model.updated_by_id = self._actor_id
        self._session.flush()

        logger.debug(
            "sync_job_progress",
            extra={
                "job_id": str(job_id),
                "processed": processed,
                "total": model.total_items,
            },
        )
        return model.to_dto()

    def ensure_total(self, job_id: UUID, total_items: int) -> SyncJob:
        """Raise the job's known total to at least ``total_items``.

        The total only grows; a smaller value is a no-op.
        """
        model = self._lock(job_id)
        if SyncJobStatus(model.status).is_terminal:
            raise InvalidJobTransitionError(
                str(job_id), model.status, SyncJobStatus.RUNNING.value,
            )
        if total_items > model.total_items:
            model.total_items = total_items
            model.updated_at = self._clock.now()
            self._session.flush()
        return model.to_dto()

    # -------------------------------------------------------------------------
    # Completion
    # -------------------------------------------------------------------------

    def complete(self, job_id: UUID, error: str | None = None) -> SyncJob:
        """Mark the job COMPLETED, or FAILED when a fatal error is given."""
        status = SyncJobStatus.FAILED if error else SyncJobStatus.COMPLETED
        return self._finish(job_id, status, error=error)

    def fail(self, job_id: UUID, error: str) -> SyncJob:
        return self._finish(job_id, SyncJobStatus.FAILED, error=error)

    def get(self, job_id: UUID) -> SyncJob:
        return self._selector.get(job_id)

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _lock(self, job_id: UUID) -> SyncJobModel:
        model = self._session.execute(
            select(SyncJobModel)
            .where(SyncJobModel.id == job_id)
            .with_for_update()
        ).scalar_one_or_none()
        if model is None:
            raise SyncJobNotFoundError(str(job_id))
        return model

    def _finish(
        self,
        job_id: UUID,
        status: SyncJobStatus,
        error: str | None = None,
    ) -> SyncJob:
        model = self._lock(job_id)
        current = SyncJobStatus(model.status)
        if status not in VALID_TRANSITIONS[current]:
            raise InvalidJobTransitionError(str(job_id), current.value, status.value)

        now = self._clock.now()
        model.status = status.value
        model.completed_at = now
        model.current_item = None
        model.error_summary = error
        model.updated_at = now
        model.updated_by_id = self._actor_id
        self._session.flush()

        log = logger.warning if status == SyncJobStatus.FAILED else logger.info
        log(
            "sync_job_finished",
            extra={
                "job_id": str(job_id),
                "status": status.value,
                "processed": model.processed_items,
                "total": model.total_items,
                "error": error,
            },
        )
        return model.to_dto()
