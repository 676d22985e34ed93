"""Async client for the franchise billing API.

Writes need both the shared `x-api-key` and the operator's bearer token;
reads need only the token. Every failure surfaces as PersistenceError so the
workflow can keep the confirmed run and let the operator retry.
"""

import time
from typing import Any

import httpx

from ..core.exceptions import PersistenceError
from ..core.logging import log_external_call
from ..models.invoice import FranchiseeProfile, InvoiceRecord
from .context import SessionContext

SERVICE_NAME = "billing_api"


class BillingApiClient:
    """Async client for the billing API."""

    def __init__(
        self,
        context: SessionContext,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = context.settings
        self.base_url = settings.billing_api_base_url.rstrip("/")
        self.api_key = settings.billing_api_key
        self.token = context.token
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=settings.billing_api_timeout,
            transport=transport,
        )

    def _headers(self, write: bool = False) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {self.token}"}
        if write:
            headers["x-api-key"] = self.api_key
        return headers

    async def _request(self, operation: str, method: str, path: str, **kwargs: Any) -> Any:
        start = time.perf_counter()
        try:
            resp = await self.client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            log_external_call(SERVICE_NAME, operation, False, (time.perf_counter() - start) * 1000)
            raise PersistenceError(f"Network error during {operation}: {e}") from e

        duration_ms = (time.perf_counter() - start) * 1000
        if resp.status_code == 401:
            log_external_call(SERVICE_NAME, operation, False, duration_ms)
            raise PersistenceError(
                "Session expired. Please log in again.", retryable=False, status_code=401
            )
        if resp.is_error:
            log_external_call(SERVICE_NAME, operation, False, duration_ms)
            raise PersistenceError(
                f"{operation} failed: {_error_detail(resp)}",
                retryable=resp.status_code >= 500,
                status_code=resp.status_code,
            )

        log_external_call(SERVICE_NAME, operation, True, duration_ms)
        try:
            return resp.json()
        except ValueError as e:
            raise PersistenceError(
                f"{operation} returned a non-JSON body", status_code=resp.status_code
            ) from e

    async def create_invoice(self, payload: dict) -> InvoiceRecord:
        """Save an invoice. The response carries at least the new `id`."""
        data = await self._request(
            "create_invoice", "POST", "/api/invoices", json=payload, headers=self._headers(write=True)
        )
        if not isinstance(data, dict) or data.get("id") is None:
            raise PersistenceError("create_invoice response has no invoice id")
        return InvoiceRecord.model_validate(data)

    async def get_invoice(self, invoice_id: int) -> InvoiceRecord:
        """Fetch a saved invoice for reprint."""
        data = await self._request(
            "get_invoice", "GET", f"/api/invoices/{invoice_id}", headers=self._headers()
        )
        if not isinstance(data, dict):
            raise PersistenceError("get_invoice response is not an object")
        return InvoiceRecord.model_validate(data)

    async def get_profile(self) -> FranchiseeProfile:
        """The signed-in franchisee's profile."""
        data = await self._request("get_profile", "GET", "/api/profile", headers=self._headers())
        return FranchiseeProfile.model_validate(data or {})

    async def close(self) -> None:
        await self.client.aclose()


def _error_detail(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return f"HTTP {resp.status_code}"
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return f"HTTP {resp.status_code}"
