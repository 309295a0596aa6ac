"""Subscription ledger client - ledger calls behind the cache.

Products are cached against the ledger's product update timestamp; the
active subscription is cached per user and served from cache when offline.
"""

from typing import Optional

from pydantic import TypeAdapter

from iap_sync.logging_config import get_logger
from iap_sync.models import (
    ActiveSubscriptionInfo,
    EngineError,
    Failure,
    HandlePurchaseRequest,
    HandlePurchaseResponse,
    ProductInfo,
    Result,
    Success,
)
from iap_sync.repositories.cache_store import CacheStore
from iap_sync.services.ledger_api import LedgerApi, LedgerApiError

logger = get_logger(__name__)

PRODUCTS_CACHE_KEY = "products_cache"
ACTIVE_SUBSCRIPTION_CACHE_PREFIX = "active_subscription_cache_"

_PRODUCTS_ADAPTER = TypeAdapter(list[ProductInfo])
_ACTIVE_SUBSCRIPTION_ADAPTER = TypeAdapter(ActiveSubscriptionInfo)


def active_subscription_cache_key(user_id: str) -> str:
    return f"{ACTIVE_SUBSCRIPTION_CACHE_PREFIX}{user_id}"


class SubscriptionLedgerClient:
    """Ledger access returning tagged results."""

    def __init__(self, api: LedgerApi, cache: CacheStore):
        """Initialize ledger client.

        Args:
            api: Ledger transport
            cache: Cache store used for the catalog and the active subscription
        """
        self._api = api
        self._cache = cache

    async def get_products(self, timestamp: Optional[int]) -> Result[list[ProductInfo]]:
        """Get the product catalog, reusing the cached copy while ``timestamp`` is unchanged."""

        async def _fetch() -> Result[list[ProductInfo]]:
            try:
                products = await self._api.get_products()
            except LedgerApiError as e:
                return Failure(EngineError.ledger_error(e.message))
            return Success([dto.to_product_info() for dto in products])

        result = await self._cache.fetch(PRODUCTS_CACHE_KEY, timestamp, _fetch, _PRODUCTS_ADAPTER)
        if isinstance(result, Success):
            logger.info("products_loaded", count=len(result.value), timestamp=timestamp)
        return result

    async def get_active_subscription(self, user_id: str) -> Result[ActiveSubscriptionInfo]:
        """Get the user's active subscription, falling back to the cache when offline."""

        async def _fetch() -> Result[ActiveSubscriptionInfo]:
            try:
                response = await self._api.get_active_subscription(user_id)
            except LedgerApiError as e:
                return Failure(EngineError.ledger_error(e.message))
            return Success(response.to_active_subscription_info())

        return await self._cache.fetch_or_cached(
            active_subscription_cache_key(user_id), _fetch, _ACTIVE_SUBSCRIPTION_ADAPTER
        )

    async def handle_purchase(self, request: HandlePurchaseRequest) -> Result[HandlePurchaseResponse]:
        """Submit a purchase to the ledger.

        Returns:
            Success with the ledger response when accepted, LEDGER_ERROR otherwise
        """
        try:
            response = await self._api.handle_purchase(request)
        except LedgerApiError as e:
            logger.warning("handle_purchase_failed", product_id=request.productId, error=e.message)
            return Failure(EngineError.ledger_error(e.message))

        if not response.accepted:
            return Failure(
                EngineError.ledger_error(f"Ledger rejected purchase for product: {request.productId}")
            )
        return Success(response)

    async def aclose(self) -> None:
        await self._api.aclose()
