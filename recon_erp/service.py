"""
ErpSyncService -- pushes local catalog records to the ERP.

Contract:
    ``sync_entity()`` syncs one record, located by id or natural key.
    ``sync_pending()`` syncs every record of a type that has no confirmed
    remote id, one at a time, optionally recording progress on a tracked
    job.

Invariants enforced:
    - Calls are serialized, one record at a time.
    - A failed record never stops the batch; it is counted as failed.
    - Each record is written under its own SAVEPOINT.  A non-item error
      (datastore or otherwise) keeps earlier records, fails the tracked
      job and raises ``ErpBatchAbortedError``.

Non-goals:
    - Does NOT call ``session.commit()`` -- caller controls boundaries.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID

import requests
from sqlalchemy.orm import Session

from recon_config.schema import ErpSettings
from recon_kernel.exceptions import ErpBatchAbortedError, ErpEntityNotFoundError
from recon_kernel.logging_config import LogContext, get_logger

from recon_erp.client import ErpClient
from recon_erp.endpoints import resolve_endpoint
from recon_erp.protocol import ErpSyncResult, ErpUpsertProtocol, NotFoundClassifier
from recon_erp.strategies import ErpStrategyRegistry, default_erp_strategies

logger = get_logger("erp.service")


@dataclass(frozen=True)
class ErpBatchSyncResult:
    entity_type: str
    total: int
    succeeded: int
    failed: int
    results: tuple[ErpSyncResult, ...] = ()

    def to_response(self) -> dict[str, Any]:
        return {
            "entityType": self.entity_type,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "failures": [
                {"naturalKey": r.natural_key, "error": r.error}
                for r in self.results
                if not r.success
            ],
        }


class ErpSyncService:
    """Resolves endpoints and runs records through the upsert protocol."""

    def __init__(
        self,
        session: Session,
        settings: ErpSettings | None = None,
        strategies: ErpStrategyRegistry | None = None,
        http: requests.Session | None = None,
        tracker: Any | None = None,
    ):
        self._session = session
        self._settings = settings or ErpSettings()
        self._strategies = strategies or default_erp_strategies()
        self._http = http
        self._tracker = tracker
        self._classifier = NotFoundClassifier(self._settings)

    def sync_entity(
        self,
        entity_type: str,
        *,
        record_id: UUID | None = None,
        natural_key: str | None = None,
    ) -> ErpSyncResult:
        """Sync one record.

        Raises:
            KeyError: Unknown entity type.
            ErpConfigurationError: Endpoint or key missing.
            ErpEntityNotFoundError: No local record for the id / key.
        """
        strategy = self._strategies.get(entity_type)
        record = None
        if record_id is not None:
            record = self._session.get(strategy.model, record_id)
        elif natural_key is not None:
            record = strategy.lookup(self._session, natural_key)
        if record is None:
            raise ErpEntityNotFoundError(entity_type, str(record_id or natural_key))

        protocol, url = self._protocol_for(entity_type)
        with LogContext.bind(entity_type=entity_type):
            result = protocol.sync(strategy, record, url)
        self._session.flush()
        return result

    def sync_pending(
        self,
        entity_type: str,
        job_id: UUID | None = None,
    ) -> ErpBatchSyncResult:
        """Sync every record of ``entity_type`` without a remote id."""
        strategy = self._strategies.get(entity_type)
        protocol, url = self._protocol_for(entity_type)
        records = strategy.pending_records(self._session)

        if job_id is not None and self._tracker is not None:
            self._tracker.ensure_total(job_id, len(records))

        results: list[ErpSyncResult] = []
        with LogContext.bind(
            entity_type=entity_type, job_id=str(job_id) if job_id else None,
        ):
            for record in records:
                savepoint = self._session.begin_nested()
                try:
                    result = protocol.sync(strategy, record, url)
                    self._session.flush()
                    savepoint.commit()
                except Exception as exc:
                    savepoint.rollback()
                    raise self._abort(entity_type, job_id, results, exc) from exc
                results.append(result)
                if job_id is not None and self._tracker is not None:
                    self._tracker.record_progress(
                        job_id,
                        succeeded=1 if result.success else 0,
                        failed=0 if result.success else 1,
                        current_item=result.natural_key,
                    )

        succeeded = sum(1 for r in results if r.success)
        failed = len(results) - succeeded
        if job_id is not None and self._tracker is not None:
            self._tracker.complete(job_id)

        logger.info(
            "erp_batch_sync_finished",
            extra={
                "entity_type": entity_type,
                "total": len(records),
                "succeeded": succeeded,
                "failed": failed,
            },
        )
        return ErpBatchSyncResult(
            entity_type=entity_type,
            total=len(records),
            succeeded=succeeded,
            failed=failed,
            results=tuple(results),
        )

    def _abort(
        self,
        entity_type: str,
        job_id: UUID | None,
        results: list[ErpSyncResult],
        exc: Exception,
    ) -> ErpBatchAbortedError:
        succeeded = sum(1 for r in results if r.success)
        error = ErpBatchAbortedError(
            entity_type, succeeded, len(results) - succeeded, exc, job_id=job_id,
        )
        logger.error(
            "erp_batch_sync_aborted",
            extra={
                "entity_type": entity_type,
                "succeeded": succeeded,
                "failed": error.failed,
                "error": str(exc),
            },
        )
        if job_id is not None and self._tracker is not None:
            self._tracker.fail(job_id, str(error))
        return error

    def _protocol_for(self, entity_type: str) -> tuple[ErpUpsertProtocol, str]:
        endpoint = resolve_endpoint(self._session, entity_type)
        client = ErpClient(
            endpoint.api_key,
            timeout=self._settings.request_timeout_seconds,
            http=self._http,
        )
        return ErpUpsertProtocol(client, self._classifier), endpoint.url
