"""
ErpClient -- thin JSON-over-HTTP client for the external ERP.

Every call returns an ``ErpResponse``; nothing here raises for remote or
transport failures.  The upsert protocol decides what a failure means.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import requests

from recon_kernel.logging_config import get_logger

logger = get_logger("erp.client")

DEFAULT_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True)
class ErpResponse:
    """Parsed outcome of one ERP call.

    ``status_code`` is None when the request never got an HTTP response
    (DNS failure, refused connection, timeout).
    """

    status_code: int | None
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def transport_failed(self) -> bool:
        return self.status_code is None

    @property
    def success(self) -> bool:
        if self.status_code is None or self.status_code >= 400:
            return False
        flag = self.payload.get("success")
        if flag is None:
            return True
        return flag is True

    @property
    def error_text(self) -> str | None:
        """Remote error text as returned, for reporting verbatim."""
        if self.success:
            return None
        for key in ("message", "error"):
            value = self.payload.get(key)
            if value:
                return value if isinstance(value, str) else str(value)
        if self.status_code is not None:
            return f"HTTP {self.status_code}"
        return "ERP request failed"

    @property
    def error_code(self) -> str | None:
        value = self.payload.get("error_code") or self.payload.get("code")
        return str(value) if value is not None else None


class ErpClient:
    """Sends authenticated JSON requests to ERP endpoints."""

    def __init__(
        self,
        api_key: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        http: requests.Session | None = None,
    ):
        self._api_key = api_key
        self._timeout = timeout
        self._http = http or requests.Session()

    def put(self, url: str, body: dict[str, Any]) -> ErpResponse:
        return self._send("PUT", url, body)

    def post(self, url: str, body: dict[str, Any]) -> ErpResponse:
        return self._send("POST", url, body)

    def _send(self, method: str, url: str, body: dict[str, Any]) -> ErpResponse:
        headers = {
            "Authorization": self._api_key,
            "Content-Type": "application/json",
        }
        try:
            response = self._http.request(
                method, url, json=body, headers=headers, timeout=self._timeout,
            )
        except requests.RequestException as exc:
            logger.warning(
                "erp_transport_error",
                extra={"method": method, "url": url, "error": str(exc)},
            )
            return ErpResponse(status_code=None, payload={"success": False, "error": str(exc)})

        text = response.text
        try:
            parsed = response.json()
        except ValueError:
            parsed = {"success": False, "error": text}
        if not isinstance(parsed, dict):
            parsed = {"data": parsed}

        logger.debug(
            "erp_response",
            extra={"method": method, "url": url, "status_code": response.status_code},
        )
        return ErpResponse(status_code=response.status_code, payload=parsed)
