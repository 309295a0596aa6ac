"""Purchase orchestrator - builds and launches new and upgrade purchase flows.

The flow result arrives later through the platform's purchases listener
(see :mod:`iap_sync.services.purchase_updates`).
"""

from typing import Any, Callable, Optional, Sequence

from iap_sync.logging_config import get_logger
from iap_sync.models import (
    EngineError,
    Failure,
    OfferSelectionRule,
    PlatformCatalogEntry,
    PurchaseFlowRequest,
    PurchaseRecord,
    ReplacementMode,
    Result,
    SessionContext,
    SubscriptionOffer,
    SubscriptionUpdateParams,
    Success,
)
from iap_sync.services.platform import BillingResponseCode
from iap_sync.services.platform_connector import PlatformConnector

logger = get_logger(__name__)

ErrorCallback = Callable[[EngineError], None]


def select_offer(
    offers: Sequence[SubscriptionOffer],
    rule: OfferSelectionRule = OfferSelectionRule.PENULTIMATE,
) -> Optional[SubscriptionOffer]:
    """Pick the offer to launch.

    A single offer is always used; with several offers ``rule`` decides.
    """
    if not offers:
        return None
    if len(offers) == 1:
        return offers[0]
    if rule == OfferSelectionRule.FIRST:
        return offers[0]
    if rule == OfferSelectionRule.LAST:
        return offers[-1]
    return offers[-2]


def build_flow_request(
    product: PlatformCatalogEntry,
    offer: SubscriptionOffer,
    user_uuid: str,
    current_purchase: Optional[PurchaseRecord] = None,
) -> PurchaseFlowRequest:
    """Build a new-subscription or upgrade/replace flow request."""
    update = None
    if current_purchase is not None:
        update = SubscriptionUpdateParams(
            old_purchase_token=current_purchase.purchase_token,
            replacement_mode=ReplacementMode.CHARGE_FULL_PRICE,
        )
    return PurchaseFlowRequest(
        product_id=product.product_id,
        offer_token=offer.offer_token,
        obfuscated_account_id=user_uuid,
        obfuscated_profile_id=user_uuid,
        subscription_update=update,
    )


class PurchaseOrchestrator:
    """Launches purchase flows through the platform connector."""

    def __init__(
        self,
        connector: PlatformConnector,
        session_context: SessionContext,
        offer_selection: OfferSelectionRule = OfferSelectionRule.PENULTIMATE,
    ):
        self._connector = connector
        self._session_context = session_context
        self._offer_selection = offer_selection

    async def purchase(
        self,
        context: Any,
        product: PlatformCatalogEntry,
        current_purchase: Optional[PurchaseRecord],
        on_error: ErrorCallback,
    ) -> Result[None]:
        """Launch the purchase flow for ``product``.

        Args:
            context: Opaque UI context handed to the platform
            product: Platform catalog entry to buy
            current_purchase: Active purchase to replace, or None for a new subscription
            on_error: Receives every failure; nothing is raised

        Returns:
            Success once the flow is launched, Failure otherwise
        """
        offer = select_offer(product.subscription_offer_details, self._offer_selection)
        if offer is None:
            error = EngineError.no_offer_available(product.product_id)
            logger.warning("no_offer_available", product_id=product.product_id)
            on_error(error)
            return Failure(error)

        try:
            request = build_flow_request(
                product,
                offer,
                self._session_context.user_uuid or "",
                current_purchase,
            )
            logger.info(
                "launching_purchase_flow",
                product_id=product.product_id,
                offer_id=offer.offer_id,
                upgrade=request.is_upgrade,
            )
            result = self._connector.launch_flow(context, request)
        except Exception as e:
            logger.exception("purchase_flow_error", product_id=product.product_id)
            error = EngineError.platform_error(BillingResponseCode.ERROR, str(e))
            on_error(error)
            return Failure(error)

        if isinstance(result, Failure):
            on_error(result.error)
            return result
        return Success(None)
