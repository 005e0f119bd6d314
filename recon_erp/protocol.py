"""
ERP upsert protocol -- update-first, create-on-not-found.

Contract:
    ``ErpUpsertProtocol.sync(strategy, record, endpoint_url)`` runs one
    record through the state machine:

        PUT {endpoint}/{natural_key}
          success            -> persist remote id (if any)      -> UPDATED
          not found          -> POST {endpoint} with create-only fields
              success        -> persist remote id               -> CREATED
              "exists" + id  -> persist the named id            -> ADOPTED
              other failure                                     -> FAILED
          other failure                                         -> FAILED

Invariants enforced:
    - The local external id is written only after a successful round trip.
    - A terminal failure is reported with the remote error text verbatim
      and is never retried here.
    - The protocol holds no state between calls.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any
from urllib.parse import quote

from recon_config.schema import ErpSettings
from recon_kernel.logging_config import get_logger

from recon_erp.client import ErpClient, ErpResponse
from recon_erp.strategies import ErpEntityStrategy

logger = get_logger("erp.protocol")


class ErpSyncAction(str, Enum):
    UPDATED = "updated"
    CREATED = "created"
    ADOPTED = "adopted"
    FAILED = "failed"


@dataclass(frozen=True)
class ErpSyncResult:
    """Per-record outcome; never persisted."""

    success: bool
    action: ErpSyncAction
    natural_key: str
    external_id: str | None = None
    error: str | None = None
    status_code: int | None = None

    def to_response(self) -> dict[str, Any]:
        response: dict[str, Any] = {
            "success": self.success,
            "action": self.action.value,
        }
        if self.external_id is not None:
            response["externalId"] = self.external_id
        if self.error is not None:
            response["error"] = self.error
        return response


class NotFoundClassifier:
    """Decides whether a failed update means "entity does not exist yet".

    Checked in order: an explicit error code, HTTP 404, then (when enabled)
    the configured substrings in the error text.
    """

    def __init__(self, settings: ErpSettings | None = None):
        settings = settings or ErpSettings()
        self._codes = {c.upper() for c in settings.not_found_error_codes}
        self._markers = tuple(m.lower() for m in settings.not_found_markers)
        self._heuristic = settings.heuristic_not_found

    def is_not_found(self, response: ErpResponse) -> bool:
        if response.success or response.transport_failed:
            return False
        code = response.error_code
        if code is not None and code.upper() in self._codes:
            return True
        if response.status_code == 404:
            return True
        if not self._heuristic:
            return False
        texts = [
            str(response.payload.get(key, "")).lower()
            for key in ("error", "message")
        ]
        return any(marker in text for marker in self._markers for text in texts)


class ErpUpsertProtocol:
    """Shared update/create state machine; entity specifics live in strategies."""

    def __init__(
        self,
        client: ErpClient,
        classifier: NotFoundClassifier | None = None,
    ):
        self._client = client
        self._classifier = classifier or NotFoundClassifier()

    def sync(
        self,
        strategy: ErpEntityStrategy,
        record: Any,
        endpoint_url: str,
    ) -> ErpSyncResult:
        natural_key = strategy.natural_key(record)
        base_url = endpoint_url.rstrip("/")
        update_body = strategy.update_payload(record)

        put = self._client.put(f"{base_url}/{quote(natural_key, safe='')}", update_body)
        if put.success:
            return self._succeed(
                strategy, record, natural_key, ErpSyncAction.UPDATED,
                strategy.extract_external_id(put.payload), put,
            )

        if not self._classifier.is_not_found(put):
            return self._fail(strategy, natural_key, put, stage="update")

        create_body = {**update_body, **strategy.create_payload(record)}
        post = self._client.post(base_url, create_body)
        if post.success:
            return self._succeed(
                strategy, record, natural_key, ErpSyncAction.CREATED,
                strategy.extract_external_id(post.payload), post,
            )

        adopted_id = strategy.extract_adopted_id(post.payload)
        if adopted_id is not None:
            return self._succeed(
                strategy, record, natural_key, ErpSyncAction.ADOPTED, adopted_id, post,
            )

        return self._fail(strategy, natural_key, post, stage="create")

    def _succeed(
        self,
        strategy: ErpEntityStrategy,
        record: Any,
        natural_key: str,
        action: ErpSyncAction,
        external_id: str | None,
        response: ErpResponse,
    ) -> ErpSyncResult:
        if external_id is not None:
            strategy.persist_external_id(record, external_id)
        logger.info(
            "erp_entity_synced",
            extra={
                "entity_type": strategy.entity_type,
                "natural_key": natural_key,
                "action": action.value,
                "external_id": external_id,
            },
        )
        return ErpSyncResult(
            success=True,
            action=action,
            natural_key=natural_key,
            external_id=external_id or strategy.current_external_id(record),
            status_code=response.status_code,
        )

    def _fail(
        self,
        strategy: ErpEntityStrategy,
        natural_key: str,
        response: ErpResponse,
        stage: str,
    ) -> ErpSyncResult:
        logger.warning(
            "erp_entity_sync_failed",
            extra={
                "entity_type": strategy.entity_type,
                "natural_key": natural_key,
                "stage": stage,
                "status_code": response.status_code,
                "error": response.error_text,
            },
        )
        return ErpSyncResult(
            success=False,
            action=ErpSyncAction.FAILED,
            natural_key=natural_key,
            error=response.error_text,
            status_code=response.status_code,
        )
