"""
BatchOrchestrator -- DI container for the batch reconciliation system.

Contract:
    Wires the fee target registry, the sync job tracker, the fee
    recalculation service, the sync-flag reset and the resumable runner
    with one session, one Clock, one actor and one ``BatchSettings``.

Architecture: recon_batch (top-level).  Nothing in recon_kernel or
    recon_engines imports from recon_batch.

Invariants enforced:
    - Every service receives the same Clock.
    - Settings come from ``recon_config`` unless passed explicitly.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from recon_config import get_active_config
from recon_config.schema import ReconConfig
from recon_kernel.domain.clock import Clock, SystemClock
from recon_kernel.logging_config import get_logger
from recon_kernel.selectors.sync_job_selector import SyncJobSelector

from recon_batch.domain.types import RunnerResult
from recon_batch.services.fee_recalculation import (
    FeeRecalculationService,
    FeeTargetRegistry,
    default_fee_targets,
)
from recon_batch.services.job_tracker import SYSTEM_ACTOR_ID, SyncJobTracker
from recon_batch.services.runner import DEFAULT_MAX_INVOCATIONS, ResumableRunner
from recon_batch.services.sync_flag_reset import SyncFlagResetService

logger = get_logger("batch.orchestrator")


class BatchOrchestrator:
    """DI container for the batch reconciliation system.

    Non-goals:
        - Does NOT manage session lifecycle except through
          ``run_fee_job_to_completion()``, which commits per invocation.
    """

    def __init__(
        self,
        session: Session,
        config: ReconConfig,
        fee_targets: FeeTargetRegistry,
        clock: Clock | None = None,
        actor_id: UUID | None = None,
    ) -> None:
        self._session = session
        self._config = config
        self._fee_targets = fee_targets
        self._clock = clock or SystemClock()
        self._actor_id = actor_id or SYSTEM_ACTOR_ID

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def from_session(
        cls,
        session: Session,
        config: ReconConfig | None = None,
        clock: Clock | None = None,
        actor_id: UUID | None = None,
        fee_targets: FeeTargetRegistry | None = None,
    ) -> BatchOrchestrator:
        """Create a fully wired BatchOrchestrator from a session.

        Args:
            session: SQLAlchemy session for persistence.
            config: Optional settings; defaults to ``get_active_config()``.
            clock: Optional clock for deterministic testing.
            actor_id: Optional actor recorded on tracked jobs.
            fee_targets: Optional registry; defaults to transactions and
                order_totals.
        """
        return cls(
            session=session,
            config=config if config is not None else get_active_config(),
            fee_targets=fee_targets if fee_targets is not None else default_fee_targets(),
            clock=clock,
            actor_id=actor_id,
        )

    # -------------------------------------------------------------------------
    # Services
    # -------------------------------------------------------------------------

    def create_tracker(self) -> SyncJobTracker:
        return SyncJobTracker(self._session, clock=self._clock, actor_id=self._actor_id)

    def create_job_selector(self) -> SyncJobSelector:
        return SyncJobSelector(
            self._session,
            clock=self._clock,
            grace_seconds=self._config.jobs.visibility_grace_seconds,
        )

    def create_fee_service(self) -> FeeRecalculationService:
        return FeeRecalculationService(
            self._session,
            settings=self._config.batch,
            targets=self._fee_targets,
            tracker=self.create_tracker(),
        )

    def create_sync_flag_reset(self) -> SyncFlagResetService:
        return SyncFlagResetService(self._session)

    def create_runner(
        self, max_invocations: int = DEFAULT_MAX_INVOCATIONS,
    ) -> ResumableRunner:
        return ResumableRunner(self._session, max_invocations=max_invocations)

    # -------------------------------------------------------------------------
    # Convenience
    # -------------------------------------------------------------------------

    def run_fee_job_to_completion(
        self,
        target: str,
        scope_key: str | None = None,
        track: bool = True,
        max_invocations: int = DEFAULT_MAX_INVOCATIONS,
    ) -> RunnerResult:
        """Drive a pair recalculation (``scope_key`` given) or a missing-fee
        fill (``scope_key`` None) until nothing remains.  Commits after
        every invocation.
        """
        service = self.create_fee_service()
        job_id = None
        if track:
            job_id = service.open_tracked_job(target, scope_key)
            self._session.commit()

        if scope_key is None:
            def invoke(cursor):
                return service.fill_missing_fees(target, cursor=cursor, job_id=job_id)
        else:
            def invoke(cursor):
                return service.recalculate_for_pair(
                    target, scope_key, cursor=cursor, job_id=job_id,
                )

        result = self.create_runner(max_invocations).run(invoke)
        logger.info(
            "fee_job_run_finished",
            extra={
                "target": target,
                "scope_key": scope_key,
                "job_id": str(job_id) if job_id else None,
                "invocations": result.invocations,
                "updated_count": result.updated_count,
                "completed": result.completed,
            },
        )
        return result

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def session(self) -> Session:
        return self._session

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def config(self) -> ReconConfig:
        return self._config

    @property
    def fee_targets(self) -> FeeTargetRegistry:
        return self._fee_targets

    @property
    def actor_id(self) -> UUID:
        return self._actor_id
