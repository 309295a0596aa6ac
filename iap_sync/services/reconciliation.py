"""Reconciliation engine - brings platform purchases and the ledger into agreement.

A purchase the platform reports as PURCHASED but not acknowledged was paid for
without the ledger hearing about it (app killed mid-flow, network drop, ...).
Such purchases are submitted to the ledger on the next natural trigger.
Delivery is at-least-once; a rejected purchase stays unacknowledged and is
retried on the next session initialization, never in a loop.
"""

from typing import Callable, Iterable, Optional

from iap_sync.logging_config import get_logger
from iap_sync.models import (
    ActiveSubscriptionInfo,
    EngineError,
    Failure,
    HandlePurchaseRequest,
    HandlePurchaseResponse,
    Platform,
    ProductInfo,
    PurchaseRecord,
    Result,
    SessionContext,
    Success,
)
from iap_sync.repositories.ledger_repository import SubscriptionLedgerClient
from iap_sync.services.platform_connector import PlatformConnector
from iap_sync.state_logger import log_reconciliation

logger = get_logger(__name__)

ErrorCallback = Callable[[EngineError], None]


def find_unacknowledged(records: Iterable[PurchaseRecord]) -> Optional[PurchaseRecord]:
    """First active, unacknowledged record in platform order."""
    for record in records:
        if not record.is_acknowledged and record.is_active:
            return record
    return None


class ReconciliationEngine:
    """Submits unacknowledged purchases and maps cross-platform products."""

    def __init__(
        self,
        connector: PlatformConnector,
        ledger: SubscriptionLedgerClient,
        context: SessionContext,
        local_platform: Platform = Platform.ANDROID,
    ):
        """Initialize reconciliation engine.

        Args:
            connector: Platform connector used to query purchases
            ledger: Ledger client used to submit purchases
            context: Session context (owner_id is the submitted partner user id)
            local_platform: Platform this engine runs on
        """
        self._connector = connector
        self._ledger = ledger
        self._context = context
        self._local_platform = local_platform
        self._reconciled_tokens: set[str] = set()

    @property
    def reconciled_tokens(self) -> frozenset[str]:
        return frozenset(self._reconciled_tokens)

    def find_unacknowledged(self, records: Iterable[PurchaseRecord]) -> Optional[PurchaseRecord]:
        return find_unacknowledged(records)

    async def resolve_unacknowledged(self, on_error: ErrorCallback) -> bool:
        """Submit the first unacknowledged purchase, if any.

        Returns:
            True only if a purchase was submitted and the ledger accepted it
        """
        result = await self._connector.query_purchases()
        if isinstance(result, Failure):
            logger.warning("reconciliation_query_failed", error=result.error.message)
            on_error(result.error)
            return False

        pending = [r for r in result.value if r.purchase_token not in self._reconciled_tokens]
        record = find_unacknowledged(pending)
        if record is None:
            logger.debug("no_unacknowledged_purchases", purchases=len(result.value))
            return False

        logger.info("unacknowledged_purchase_found", product_id=record.product_id)
        submitted = await self.submit_purchase(record)
        if isinstance(submitted, Failure):
            on_error(submitted.error)
            return False
        return True

    async def submit_purchase(self, record: PurchaseRecord) -> Result[HandlePurchaseResponse]:
        """Submit ``record`` to the ledger unless its token was already reconciled."""
        token = record.purchase_token
        if token in self._reconciled_tokens:
            logger.debug("purchase_already_reconciled", product_id=record.product_id)
            return Success(HandlePurchaseResponse(accepted=True))

        request = HandlePurchaseRequest.from_purchase(record, self._context.owner_id)
        result = await self._ledger.handle_purchase(request)
        if isinstance(result, Success):
            self._reconciled_tokens.add(token)
            log_reconciliation(token, record.product_id, accepted=True)
        else:
            log_reconciliation(token, record.product_id, accepted=False, reason=result.error.message)
        return result

    async def check_existing_subscription(self, on_error: ErrorCallback) -> Optional[PurchaseRecord]:
        """Current purchase: first active record, acknowledged or not."""
        result = await self._connector.query_purchases()
        if isinstance(result, Failure):
            on_error(result.error)
            return None
        for record in result.value:
            if record.is_active:
                return record
        return None

    def is_foreign_platform(self, active_info: Optional[ActiveSubscriptionInfo]) -> bool:
        """Whether the active purchase was made on another platform."""
        if active_info is None:
            return False
        platform = Platform.parse(active_info.platform)
        return platform is not None and platform != self._local_platform

    def cross_map_product(
        self,
        active_info: Optional[ActiveSubscriptionInfo],
        catalog: Iterable[ProductInfo],
    ) -> Optional[ProductInfo]:
        """Map the active product onto the local catalog.

        Products bought on another platform are matched by
        (recurring_period_code, service_level).
        """
        active = active_info.product if active_info else None
        if active is None:
            return None
        if not self.is_foreign_platform(active_info):
            return active

        for product in catalog:
            if (
                product.recurring_period_code == active.recurring_period_code
                and product.service_level == active.service_level
            ):
                logger.info(
                    "foreign_product_mapped",
                    foreign_product_id=active.product_id,
                    local_product_id=product.product_id,
                )
                return product

        logger.info(
            "foreign_product_unmapped",
            foreign_product_id=active.product_id,
            period=active.recurring_period_code,
            service_level=active.service_level,
        )
        return None
