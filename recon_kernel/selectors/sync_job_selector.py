"""
Module: recon_kernel.selectors.sync_job_selector
Responsibility: Read model over persisted sync jobs for observers (status
    cards, realtime feeds, the job read handler).

"Active" means: PENDING or RUNNING, or terminal with ``completed_at`` inside
the grace window, so a finished job stays on screen briefly before it drops
out of active-job views.
"""

from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import and_, or_, select

from recon_kernel.domain.clock import Clock, SystemClock
from recon_kernel.domain.jobs import ACTIVE_STATUSES, SyncJob
from recon_kernel.exceptions import SyncJobNotFoundError
from recon_kernel.models.sync_job import SyncJobModel
from recon_kernel.selectors.base import BaseSelector

DEFAULT_GRACE_SECONDS = 300

_ACTIVE_VALUES = tuple(status.value for status in ACTIVE_STATUSES)


class SyncJobSelector(BaseSelector):
    """Read-only queries over sync jobs."""

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        grace_seconds: int = DEFAULT_GRACE_SECONDS,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._grace = timedelta(seconds=grace_seconds)

    @property
    def grace_seconds(self) -> int:
        return int(self._grace.total_seconds())

    def get(self, job_id: UUID) -> SyncJob:
        """
        Raises:
            SyncJobNotFoundError: If job_id does not exist.
        """
        model = self.session.get(SyncJobModel, job_id)
        if model is None:
            raise SyncJobNotFoundError(str(job_id))
        return model.to_dto()

    def find_authoritative(self, job_type: str, scope_key: str) -> SyncJob | None:
        """Oldest PENDING/RUNNING job for the scope, if any.

        The oldest one wins when duplicates exist; newer duplicates are the
        ones a tracker supersedes.
        """
        model = self.session.execute(
            select(SyncJobModel)
            .where(
                SyncJobModel.job_type == job_type,
                SyncJobModel.scope_key == scope_key,
                SyncJobModel.status.in_(_ACTIVE_VALUES),
            )
            .order_by(SyncJobModel.created_at, SyncJobModel.id)
            .limit(1)
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def list_active(
        self,
        job_type: str | None = None,
        created_by: UUID | None = None,
        now: datetime | None = None,
    ) -> tuple[SyncJob, ...]:
        """Jobs an observer should currently see, newest first."""
        cutoff = (now or self._clock.now()) - self._grace
        stmt = select(SyncJobModel).where(
            or_(
                SyncJobModel.status.in_(_ACTIVE_VALUES),
                and_(
                    SyncJobModel.completed_at.is_not(None),
                    SyncJobModel.completed_at >= cutoff,
                ),
            )
        )
        if job_type is not None:
            stmt = stmt.where(SyncJobModel.job_type == job_type)
        if created_by is not None:
            stmt = stmt.where(SyncJobModel.created_by_id == created_by)
        stmt = stmt.order_by(SyncJobModel.created_at.desc(), SyncJobModel.id.desc())

        return tuple(m.to_dto() for m in self.session.execute(stmt).scalars().all())

    def is_visible(self, job: SyncJob, now: datetime | None = None) -> bool:
        """Pure check of the visibility rule for an already-loaded job."""
        if not job.status.is_terminal:
            return True
        if job.completed_at is None:
            return False
        return job.completed_at >= (now or self._clock.now()) - self._grace
