"""
Request handlers -- the dict-in / dict-out surface of the engine.

Each handler opens its own session from the injected factory, runs one
operation, commits on success and returns a ``HandlerResponse`` carrying an
HTTP-like status and a camelCase body.  Typed kernel errors map to
400/404/409 with their ``code``; anything else maps to 500.

A batch page failure still commits: pages written before the failure and
the failed job state are kept, and the body reports the partial counts and
the cursor to resume from.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID, uuid4

import requests
from sqlalchemy.orm import Session

from recon_batch.orchestrator import BatchOrchestrator
from recon_config import get_active_config
from recon_config.schema import ReconConfig
from recon_erp.service import ErpSyncService
from recon_kernel.domain.clock import Clock, SystemClock
from recon_kernel.exceptions import (
    BatchPageError,
    ConfigurationError,
    ErpBatchAbortedError,
    ErpEntityNotFoundError,
    FeeConfigurationNotFoundError,
    InvalidJobTransitionError,
    ReconKernelError,
    RequestValidationError,
    SyncJobNotFoundError,
    SyncJobProgressError,
    TreasuryEntryStateError,
    TreasuryNotFoundError,
)
from recon_kernel.logging_config import LogContext, get_logger
from recon_kernel.models.erp import ENTITY_TYPES

from recon_services.treasury_service import TreasuryReconciliationService

logger = get_logger("services.handlers")

DEFAULT_FEE_TARGET = "transactions"

_NOT_FOUND = (
    FeeConfigurationNotFoundError,
    SyncJobNotFoundError,
    TreasuryNotFoundError,
    ErpEntityNotFoundError,
)
_CONFLICT = (
    InvalidJobTransitionError,
    SyncJobProgressError,
    TreasuryEntryStateError,
)


@dataclass(frozen=True)
class HandlerResponse:
    status: int
    body: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


def status_for(exc: ReconKernelError) -> int:
    if isinstance(exc, _NOT_FOUND):
        return 404
    if isinstance(exc, _CONFLICT):
        return 409
    if isinstance(exc, (RequestValidationError, ConfigurationError)):
        return 400
    if isinstance(exc, (BatchPageError, ErpBatchAbortedError)):
        return 500
    return 400


def error_body(exc: ReconKernelError) -> dict[str, Any]:
    return {"success": False, "code": exc.code, "error": str(exc)}


def _parse_uuid(value: Any, name: str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise RequestValidationError(f"{name} is not a valid id: {value!r}") from None


class ReconHandlers:
    """Entry points called by the HTTP layer, schedulers and the CLI."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        config: ReconConfig | None = None,
        clock: Clock | None = None,
        http: requests.Session | None = None,
        actor_id: UUID | None = None,
    ):
        self._session_factory = session_factory
        self._config = config if config is not None else get_active_config()
        self._clock = clock or SystemClock()
        self._http = http
        self._actor_id = actor_id

    # -------------------------------------------------------------------------
    # Fee triggers
    # -------------------------------------------------------------------------

    def trigger_fee_recalculation(self, request: dict[str, Any]) -> HandlerResponse:
        """``{scopeKey, cursor?, target?, jobId?, track?}``"""
        target = request.get("target") or DEFAULT_FEE_TARGET
        scope_key = request.get("scopeKey")

        def run(session: Session) -> HandlerResponse:
            service = self._orchestrator(session).create_fee_service()
            job_id = self._job_id_for(request, lambda: service.open_tracked_job(target, scope_key))
            result = service.recalculate_for_pair(
                target, scope_key, cursor=request.get("cursor"), job_id=job_id,
            )
            return HandlerResponse(200, {"success": True, **result.to_response()})

        return self._execute("trigger_fee_recalculation", request, run)

    def trigger_missing_fees(self, request: dict[str, Any]) -> HandlerResponse:
        """``{cursor?, target?, jobId?, track?}``"""
        target = request.get("target") or DEFAULT_FEE_TARGET

        def run(session: Session) -> HandlerResponse:
            service = self._orchestrator(session).create_fee_service()
            job_id = self._job_id_for(request, lambda: service.open_tracked_job(target))
            result = service.fill_missing_fees(
                target, cursor=request.get("cursor"), job_id=job_id,
            )
            return HandlerResponse(200, {"success": True, **result.to_response()})

        return self._execute("trigger_missing_fees", request, run)

    # -------------------------------------------------------------------------
    # ERP
    # -------------------------------------------------------------------------

    def reset_sync_flags(self, request: dict[str, Any]) -> HandlerResponse:
        """``{fromDateInt, toDateInt}``"""

        def run(session: Session) -> HandlerResponse:
            result = self._orchestrator(session).create_sync_flag_reset().reset_sync_flags(
                request.get("fromDateInt"), request.get("toDateInt"),
            )
            return HandlerResponse(200, {"success": True, **result.to_response()})

        return self._execute("reset_sync_flags", request, run)

    def sync_erp_entity(self, request: dict[str, Any]) -> HandlerResponse:
        """``{entityType, naturalKey | recordId}``

        A remote rejection is a 400 whose ``error`` is the ERP's text.
        """
        entity_type = request.get("entityType")
        record_id = request.get("recordId")
        natural_key = request.get("naturalKey")
        if record_id is None and natural_key is None:
            return self._validation_failure("naturalKey or recordId is required")

        def run(session: Session) -> HandlerResponse:
            result = self._erp_service(session).sync_entity(
                self._entity_type(entity_type),
                record_id=_parse_uuid(record_id, "recordId") if record_id else None,
                natural_key=natural_key,
            )
            return HandlerResponse(200 if result.success else 400, result.to_response())

        return self._execute("sync_erp_entity", request, run)

    def sync_pending_erp(self, request: dict[str, Any]) -> HandlerResponse:
        """``{entityType, track?}`` -- sync every record without a remote id."""
        entity_type = request.get("entityType")

        def run(session: Session) -> HandlerResponse:
            etype = self._entity_type(entity_type)
            orchestrator = self._orchestrator(session)
            tracker = orchestrator.create_tracker()
            job_id = None
            if request.get("track"):
                job_id = tracker.open_job(f"erp.{etype}", "pending").job_id
            service = self._erp_service(session, tracker=tracker)
            result = service.sync_pending(etype, job_id=job_id)
            body = {"success": result.failed == 0, **result.to_response()}
            if job_id is not None:
                body["jobId"] = str(job_id)
            return HandlerResponse(200, body)

        return self._execute("sync_pending_erp", request, run)

    # -------------------------------------------------------------------------
    # Treasury
    # -------------------------------------------------------------------------

    def recalculate_treasury(self, request: dict[str, Any]) -> HandlerResponse:
        """``{accountId?}``"""
        account_id = request.get("accountId")

        def run(session: Session) -> HandlerResponse:
            service = TreasuryReconciliationService(session, self._config.treasury)
            results = service.recalculate(
                _parse_uuid(account_id, "accountId") if account_id else None,
            )
            return HandlerResponse(200, {
                "success": True,
                "results": [r.to_response() for r in results],
            })

        return self._execute("recalculate_treasury", request, run)

    def post_treasury_entry(self, request: dict[str, Any]) -> HandlerResponse:
        """``{entryId}``"""
        entry_id = request.get("entryId")
        if not entry_id:
            return self._validation_failure("entryId is required")

        def run(session: Session) -> HandlerResponse:
            service = TreasuryReconciliationService(session, self._config.treasury)
            balance = service.post_entry(_parse_uuid(entry_id, "entryId"))
            return HandlerResponse(200, {"success": True, "currentBalance": float(balance)})

        return self._execute("post_treasury_entry", request, run)

    # -------------------------------------------------------------------------
    # Jobs
    # -------------------------------------------------------------------------

    def get_job(self, request: dict[str, Any]) -> HandlerResponse:
        """``{jobId}`` -> the job read model."""
        job_id = request.get("jobId")
        if not job_id:
            return self._validation_failure("jobId is required")

        def run(session: Session) -> HandlerResponse:
            selector = self._orchestrator(session).create_job_selector()
            job = selector.get(_parse_uuid(job_id, "jobId"))
            return HandlerResponse(200, job.to_read_model())

        return self._execute("get_job", request, run)

    def list_active_jobs(self, request: dict[str, Any]) -> HandlerResponse:
        """``{jobType?}`` -> running jobs plus recently finished ones."""

        def run(session: Session) -> HandlerResponse:
            selector = self._orchestrator(session).create_job_selector()
            jobs = selector.list_active(job_type=request.get("jobType"))
            return HandlerResponse(200, {"jobs": [j.to_read_model() for j in jobs]})

        return self._execute("list_active_jobs", request, run)

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _orchestrator(self, session: Session) -> BatchOrchestrator:
        return BatchOrchestrator.from_session(
            session, config=self._config, clock=self._clock, actor_id=self._actor_id,
        )

    def _erp_service(self, session: Session, tracker: Any | None = None) -> ErpSyncService:
        return ErpSyncService(
            session, settings=self._config.erp, http=self._http, tracker=tracker,
        )

    @staticmethod
    def _entity_type(value: Any) -> str:
        if value not in ENTITY_TYPES:
            raise RequestValidationError(
                f"entityType must be one of {list(ENTITY_TYPES)}, got {value!r}"
            )
        return value

    @staticmethod
    def _job_id_for(request: dict[str, Any], open_job: Callable[[], UUID]) -> UUID | None:
        if request.get("jobId"):
            return _parse_uuid(request["jobId"], "jobId")
        if request.get("track"):
            return open_job()
        return None

    @staticmethod
    def _validation_failure(message: str) -> HandlerResponse:
        return HandlerResponse(400, error_body(RequestValidationError(message)))

    def _execute(
        self,
        operation: str,
        request: dict[str, Any],
        run: Callable[[Session], HandlerResponse],
    ) -> HandlerResponse:
        correlation_id = str(request.get("correlationId") or uuid4())
        with LogContext.bind(
            correlation_id=correlation_id,
            actor_id=str(self._actor_id) if self._actor_id else None,
        ):
            session = self._session_factory()
            try:
                response = run(session)
                session.commit()
                return response
            except BatchPageError as exc:
                # Earlier pages and the failed job state are kept
                session.commit()
                logger.error(
                    "handler_batch_aborted",
                    extra={"operation": operation, "error": str(exc)},
                )
                body = error_body(exc)
                body.update({
                    "updatedCount": exc.updated_count,
                    "pagesCompleted": exc.pages_completed,
                    "nextCursor": str(exc.resume_cursor) if exc.resume_cursor else None,
                    "needsMoreRuns": True,
                })
                return HandlerResponse(500, body)
            except ErpBatchAbortedError as exc:
                # Records synced before the failure and the failed job are kept
                session.commit()
                logger.error(
                    "handler_erp_sync_aborted",
                    extra={"operation": operation, "error": str(exc)},
                )
                body = error_body(exc)
                body.update({
                    "entityType": exc.entity_type,
                    "succeeded": exc.succeeded,
                    "failed": exc.failed,
                })
                if exc.job_id is not None:
                    body["jobId"] = str(exc.job_id)
                return HandlerResponse(500, body)
            except ReconKernelError as exc:
                session.rollback()
                status = status_for(exc)
                logger.warning(
                    "handler_rejected",
                    extra={"operation": operation, "status": status, "error_code": exc.code},
                )
                return HandlerResponse(status, error_body(exc))
            except Exception:
                session.rollback()
                logger.exception("handler_failed", extra={"operation": operation})
                return HandlerResponse(500, {
                    "success": False,
                    "code": "INTERNAL_ERROR",
                    "error": "Internal error",
                })
            finally:
                session.close()


__all__ = [
    "DEFAULT_FEE_TARGET",
    "HandlerResponse",
    "ReconHandlers",
    "error_body",
    "status_for",
]
