"""Ledger transport - thin async HTTP client for the subscription ledger.

Endpoints (relative to the configured base URL):
- GET  api/iap/{userId}/Active     active subscription for a partner user
- GET  api/core/app/product        product catalog
- POST api/iap/android/handle      submit a purchase for acknowledgement

Every payload is wrapped in an ``ApiResponse`` envelope. Requests carry the
session's API key in the ``x-api-key`` header.
"""

from typing import Optional, Protocol

import httpx
from pydantic import ValidationError

from iap_sync.logging_config import get_logger
from iap_sync.models import (
    ActiveSubscriptionResponse,
    ApiResponse,
    HandlePurchaseRequest,
    HandlePurchaseResponse,
    ProductDataDto,
    SessionContext,
)

logger = get_logger(__name__)

API_KEY_HEADER = "x-api-key"


class LedgerApiError(Exception):
    """Raised when the ledger cannot be reached or answers with an error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class LedgerApi(Protocol):
    """Ledger operations used by the engine."""

    async def get_active_subscription(self, user_id: str) -> ActiveSubscriptionResponse: ...

    async def get_products(self) -> list[ProductDataDto]: ...

    async def handle_purchase(self, request: HandlePurchaseRequest) -> HandlePurchaseResponse: ...

    async def aclose(self) -> None: ...


class HttpLedgerApi:
    """httpx implementation of :class:`LedgerApi`."""

    def __init__(
        self,
        base_url: str,
        context: SessionContext,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the transport.

        Args:
            base_url: Ledger base URL
            context: Session context; its api_key is read on every request
            timeout: Request timeout in seconds
            client: Pre-built client (tests pass one with a MockTransport)
        """
        self._context = context
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def get_active_subscription(self, user_id: str) -> ActiveSubscriptionResponse:
        envelope = await self._request(
            "GET", f"api/iap/{user_id}/Active", ApiResponse[ActiveSubscriptionResponse]
        )
        return envelope.data

    async def get_products(self) -> list[ProductDataDto]:
        envelope = await self._request("GET", "api/core/app/product", ApiResponse[list[ProductDataDto]])
        return envelope.data

    async def handle_purchase(self, request: HandlePurchaseRequest) -> HandlePurchaseResponse:
        envelope = await self._request(
            "POST",
            "api/iap/android/handle",
            ApiResponse[HandlePurchaseResponse],
            json=request.model_dump(),
        )
        return envelope.data

    async def _request(self, method: str, path: str, envelope_type: type, json: Optional[dict] = None):
        headers = {API_KEY_HEADER: self._context.api_key}
        try:
            response = await self._client.request(method, path, headers=headers, json=json)
        except httpx.TimeoutException as e:
            logger.error("ledger_request_timeout", method=method, path=path)
            raise LedgerApiError(f"Ledger request timed out: {method} {path}") from e
        except httpx.HTTPError as e:
            logger.error("ledger_request_failed", method=method, path=path, error=str(e))
            raise LedgerApiError(f"Ledger request failed: {e}") from e

        if response.status_code >= 400:
            logger.warning(
                "ledger_error_response",
                method=method,
                path=path,
                status_code=response.status_code,
            )
            raise LedgerApiError(
                f"Ledger returned HTTP {response.status_code} for {method} {path}",
                status_code=response.status_code,
            )

        try:
            envelope = envelope_type.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.error("ledger_response_invalid", method=method, path=path, error=str(e))
            raise LedgerApiError(f"Invalid ledger response for {method} {path}: {e}") from e

        if envelope.code >= 400:
            raise LedgerApiError(
                envelope.message or envelope.title or f"Ledger error code {envelope.code}",
                status_code=envelope.code,
            )

        logger.debug("ledger_request_completed", method=method, path=path, status_code=response.status_code)
        return envelope

    async def aclose(self) -> None:
        """Close the underlying client if this transport created it."""
        if self._owns_client:
            await self._client.aclose()
