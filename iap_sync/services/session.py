"""Subscription session - the state machine behind the subscription screen.

Initialization sequence:
1. Start connectivity observation
2. Load the theme and connect the purchase platform concurrently
3. Fetch the active subscription from the ledger
4. Submit any unacknowledged purchase; re-fetch the active subscription if accepted
5. Apply the active subscription, query the current purchase
6. Load the ledger catalog and the platform catalog, cross-map foreign products
7. Pick the default period tab and filter plans

A connection failure or a ledger failure with no cached copy puts the session
into the terminal ``no_connection_and_no_cache`` state.
"""

import asyncio
from typing import Any, Optional, Protocol

from iap_sync.logging_config import bind_context, get_logger, unbind_context
from iap_sync.models import (
    ActiveSubscriptionInfo,
    EngineError,
    Failure,
    PlatformCatalogEntry,
    ProductInfo,
    PurchaseAttempt,
    PurchaseRecord,
    Result,
    SessionContext,
    SessionViewState,
    Success,
)
from iap_sync.repositories.ledger_repository import SubscriptionLedgerClient
from iap_sync.services.connectivity import ConnectivityObserver
from iap_sync.services.notifications import (
    ERROR_PRODUCTS_MESSAGE,
    ERROR_TITLE,
    NO_CONNECTION_MESSAGE,
    NO_CONNECTION_TITLE,
    PURCHASE_COMPLETED_MESSAGE,
    PURCHASE_COMPLETED_TITLE,
    PURCHASE_FAILED_TITLE,
    PURCHASE_PENDING_MESSAGE,
    PURCHASE_PENDING_TITLE,
    SUBSCRIPTION_CANCELLED_MESSAGE,
    SUBSCRIPTION_CANCELLED_TITLE,
    ToastService,
)
from iap_sync.services.platform_connector import PlatformConnector
from iap_sync.services.purchase_orchestrator import PurchaseOrchestrator
from iap_sync.services.purchase_updates import PurchaseUpdateBridge
from iap_sync.services.reconciliation import ErrorCallback, ReconciliationEngine
from iap_sync.state_logger import log_session_flag_change
from iap_sync.utils.billing_period import PeriodTab, available_tabs, default_tab

logger = get_logger(__name__)

EVENT_PURCHASE_ATTEMPT = "subscription_purchase_attempt"
EVENT_PURCHASE_SUCCESS = "subscription_purchase_success"
EVENT_PURCHASE_ERROR = "subscription_purchase_error"


class ThemeLoader(Protocol):
    """Loads theme/config assets for the subscription screen."""

    async def load_theme(self) -> None: ...


class AnalyticsTracker(Protocol):
    """Analytics transport."""

    def track(self, event_name: str, properties: dict[str, Any]) -> None: ...


class SubscriptionSession:
    """Owns the view state of one subscription screen session.

    All methods must be called from the session's event loop.
    """

    def __init__(
        self,
        context: SessionContext,
        connector: PlatformConnector,
        ledger: SubscriptionLedgerClient,
        reconciliation: ReconciliationEngine,
        orchestrator: PurchaseOrchestrator,
        bridge: PurchaseUpdateBridge,
        connectivity: ConnectivityObserver,
        toasts: ToastService,
        theme_loader: ThemeLoader,
        analytics: Optional[AnalyticsTracker] = None,
    ):
        self._context = context
        self._connector = connector
        self._ledger = ledger
        self._reconciliation = reconciliation
        self._orchestrator = orchestrator
        self._bridge = bridge
        self._connectivity = connectivity
        self._toasts = toasts
        self._theme_loader = theme_loader
        self._analytics = analytics

        self._bridge.add_listener(self)
        self._bridge.set_subscription_cancelled_callback(self.on_subscription_cancelled)
        self._reset()

    def _reset(self) -> None:
        self._is_initialized = False
        self._is_loading = True
        self._no_connection_and_no_cache = False
        self._is_connection_started = False
        self._is_foreign_platform = False
        self._is_current_product_being_updated = False
        self._selected_tab: Optional[PeriodTab] = None
        self._selected_plan = -1
        self._active_info: Optional[ActiveSubscriptionInfo] = None
        self._products: Optional[list[ProductInfo]] = None
        self._catalog_entries: Optional[list[PlatformCatalogEntry]] = None
        self._filtered_entries: Optional[list[PlatformCatalogEntry]] = None
        self._active_product: Optional[ProductInfo] = None
        self._current_product: Optional[ProductInfo] = None
        self._current_product_details: Optional[PlatformCatalogEntry] = None
        self._current_purchase: Optional[PurchaseRecord] = None
        self._base_service_level: Optional[str] = None
        self._product_timestamp: Optional[int] = None
        self._theme_timestamp: Optional[int] = None

    # Read-only view state

    @property
    def context(self) -> SessionContext:
        return self._context

    @property
    def is_initialized(self) -> bool:
        return self._is_initialized

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def no_connection_and_no_cache(self) -> bool:
        return self._no_connection_and_no_cache

    @property
    def is_current_product_being_updated(self) -> bool:
        return self._is_current_product_being_updated

    @property
    def selected_tab(self) -> Optional[PeriodTab]:
        return self._selected_tab

    @property
    def selected_plan(self) -> int:
        return self._selected_plan

    @property
    def products(self) -> Optional[list[ProductInfo]]:
        return self._products

    @property
    def catalog_entries(self) -> Optional[list[PlatformCatalogEntry]]:
        return self._catalog_entries

    @property
    def filtered_entries(self) -> Optional[list[PlatformCatalogEntry]]:
        return self._filtered_entries

    @property
    def current_product(self) -> Optional[ProductInfo]:
        return self._current_product

    @property
    def current_product_details(self) -> Optional[PlatformCatalogEntry]:
        return self._current_product_details

    @property
    def current_purchase(self) -> Optional[PurchaseRecord]:
        return self._current_purchase

    @property
    def product_timestamp(self) -> Optional[int]:
        return self._product_timestamp

    @property
    def theme_timestamp(self) -> Optional[int]:
        return self._theme_timestamp

    def snapshot(self) -> SessionViewState:
        """Immutable copy of the current view state."""
        return SessionViewState(
            is_initialized=self._is_initialized,
            is_loading=self._is_loading,
            no_connection_and_no_cache=self._no_connection_and_no_cache,
            is_connection_started=self._is_connection_started,
            is_foreign_platform=self._is_foreign_platform,
            is_current_product_being_updated=self._is_current_product_being_updated,
            selected_tab=self._selected_tab,
            selected_plan=self._selected_plan,
            available_tabs=self.available_tabs(),
            products=self._products,
            catalog_entries=self._catalog_entries,
            filtered_entries=self._filtered_entries,
            active_product=self._active_product,
            current_product=self._current_product,
            current_product_details=self._current_product_details,
            current_purchase=self._current_purchase,
            base_service_level=self._base_service_level,
            toast=self._toasts.state,
        )

    # Initialization

    async def initialize(self, owner_id: str, api_key: str, launched_via_deep_link: bool = False) -> None:
        """Initialize the session for ``owner_id``.

        A repeated call for the same owner is a no-op. Errors end up in the
        view state and the logs, never raised.
        """
        self._context.launched_via_deep_link = launched_via_deep_link
        if self._is_initialized and self._context.owner_id == owner_id:
            logger.debug("session_already_initialized")
            return

        if self._is_initialized:
            self._reset()
        self._is_initialized = True
        self._is_loading = True
        self._context.owner_id = owner_id
        self._context.api_key = api_key
        bind_context(owner_id=owner_id)
        self._bridge.bind(asyncio.get_running_loop())
        logger.info("session_initializing", launched_via_deep_link=launched_via_deep_link)

        try:
            await self._initialize()
        except Exception as e:
            logger.error(
                "session_initialization_failed",
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            self._is_loading = False

    async def _initialize(self) -> None:
        self._connectivity.start()

        _, connected = await asyncio.gather(self._load_theme(), self._start_connection())
        if isinstance(connected, Failure):
            self._enter_no_connection_state(reason=connected.error.message)
            return

        owner_id = self._context.owner_id
        active = await self._ledger.get_active_subscription(owner_id)
        if isinstance(active, Success):
            self._context.user_uuid = active.value.user_uuid

        resolved = await self._reconciliation.resolve_unacknowledged(on_error=self._log_billing_error)
        if resolved:
            logger.info("refetching_active_subscription_after_reconciliation")
            active = await self._ledger.get_active_subscription(owner_id)

        if isinstance(active, Failure):
            self._enter_no_connection_state(reason=active.error.message)
            return

        self._apply_active_subscription(active.value)
        self._current_purchase = await self._reconciliation.check_existing_subscription(
            on_error=self._log_billing_error
        )
        await self._load_catalog()
        logger.info(
            "session_initialized",
            products=len(self._products or []),
            selected_tab=self._selected_tab.value if self._selected_tab else None,
        )

    async def _load_theme(self) -> None:
        try:
            await self._theme_loader.load_theme()
        except Exception as e:
            logger.warning("theme_load_failed", error=str(e), error_type=type(e).__name__)

    async def _start_connection(self) -> Result[None]:
        result = await self._connector.connect()
        if isinstance(result, Success):
            self._set_flag("is_connection_started", True, reason="billing_connected")
        else:
            self._is_loading = False
            logger.warning("billing_connection_failed", error=result.error.message)
        return result

    def _enter_no_connection_state(self, reason: str) -> None:
        self._set_flag("no_connection_and_no_cache", True, reason=reason)
        self._is_loading = False
        self._toasts.show(NO_CONNECTION_TITLE, NO_CONNECTION_MESSAGE)

    def _apply_active_subscription(self, info: ActiveSubscriptionInfo) -> None:
        self._active_info = info
        self._context.user_uuid = info.user_uuid
        self._active_product = info.product
        self._current_product = info.product
        self._base_service_level = info.base_service_level
        self._product_timestamp = info.product_update_timestamp
        self._theme_timestamp = info.theme_config_timestamp
        self._set_flag(
            "is_foreign_platform",
            self._reconciliation.is_foreign_platform(info),
            reason=info.platform,
        )

    async def _load_catalog(self) -> None:
        products = await self._ledger.get_products(self._product_timestamp)
        if isinstance(products, Failure):
            logger.warning("products_fetch_failed", error=products.error.message)
            self._toasts.show(ERROR_TITLE, ERROR_PRODUCTS_MESSAGE)
            self._is_loading = False
            return

        self._products = products.value
        entries = await self._connector.query_catalog([p.product_id for p in self._products])
        if isinstance(entries, Failure):
            logger.warning("catalog_entries_fetch_failed", error=entries.error.message)
            self._catalog_entries = []
        else:
            self._catalog_entries = entries.value

        if self._is_foreign_platform:
            self._current_product = self._reconciliation.cross_map_product(self._active_info, self._products)
        self._current_product_details = self._find_entry(
            self._current_product.product_id if self._current_product else None
        )

        if self._selected_tab is None:
            self._initialize_tab()
        else:
            self._apply_filter()
        self._is_loading = False

    def _find_entry(self, product_id: Optional[str]) -> Optional[PlatformCatalogEntry]:
        if product_id is None:
            return None
        for entry in self._catalog_entries or []:
            if entry.product_id == product_id:
                return entry
        return None

    def _initialize_tab(self) -> None:
        if self._current_product_details is not None:
            tab = PeriodTab.for_period(self._current_product_details.billing_period())
        else:
            tab = default_tab(entry.billing_period() for entry in self._catalog_entries or [])
        self.select_period_tab(tab)

    # Plan selection

    def select_period_tab(self, tab: PeriodTab) -> None:
        """Select a period tab and filter plans to it."""
        self._selected_plan = -1
        self._selected_tab = tab
        self._apply_filter()

    def _apply_filter(self) -> None:
        tab = self._selected_tab
        if self._catalog_entries is None or tab is None:
            self._filtered_entries = None
            return
        self._filtered_entries = [e for e in self._catalog_entries if tab.matches(e.billing_period())]

    def select_plan(self, index: int) -> None:
        self._selected_plan = index

    def available_tabs(self) -> list[PeriodTab]:
        return available_tabs(entry.billing_period() for entry in self._catalog_entries or [])

    # Purchases

    async def purchase(
        self,
        context: Any,
        product_details: PlatformCatalogEntry,
        on_error: ErrorCallback,
    ) -> Result[None]:
        """Start a purchase (new or upgrade) of ``product_details``.

        Errors are reported through a toast, analytics and ``on_error``.
        """
        if not self._connector.is_connected:
            connected = await self._start_connection()
            if isinstance(connected, Failure):
                self._report_purchase_error(product_details, connected.error, ERROR_TITLE, on_error)
                return connected

        self._track(EVENT_PURCHASE_ATTEMPT, self._purchase_properties(product_details))

        current = await self._reconciliation.check_existing_subscription(
            on_error=lambda error: self._report_purchase_error(product_details, error, ERROR_TITLE, on_error)
        )
        self._current_purchase = current

        return await self._orchestrator.purchase(
            context,
            product_details,
            current,
            on_error=lambda error: self._report_purchase_error(
                product_details, error, PURCHASE_FAILED_TITLE, on_error
            ),
        )

    def _report_purchase_error(
        self,
        product_details: PlatformCatalogEntry,
        error: EngineError,
        heading: str,
        on_error: ErrorCallback,
    ) -> None:
        logger.warning(
            "purchase_error",
            product_id=product_details.product_id,
            kind=error.kind.value,
            error=error.message,
        )
        self._track(
            EVENT_PURCHASE_ERROR,
            {
                "product_id": product_details.product_id,
                "user_id": self._context.user_uuid,
                "error": error.message,
            },
        )
        self._toasts.show(heading, error.message)
        on_error(error)

    # Purchase events

    async def on_purchase_started(self, attempt: PurchaseAttempt) -> None:
        self._set_flag("is_current_product_being_updated", True, reason="purchase_started")

    async def on_purchase_updated(self, attempt: PurchaseAttempt) -> None:
        self._selected_plan = -1
        if self._current_product_details is not None:
            self._track(EVENT_PURCHASE_SUCCESS, self._purchase_properties(self._current_product_details))
        await self._reload()
        self._set_flag("is_current_product_being_updated", False, reason="purchase_updated")
        self._toasts.show(
            PURCHASE_COMPLETED_TITLE,
            PURCHASE_COMPLETED_MESSAGE.format(name=self._current_product_name()),
            is_success=True,
        )

    async def on_purchase_failed(self, attempt: PurchaseAttempt, error: EngineError) -> None:
        await self._reload()
        self._set_flag("is_current_product_being_updated", False, reason="purchase_failed")
        self._toasts.show(
            PURCHASE_PENDING_TITLE,
            PURCHASE_PENDING_MESSAGE.format(name=self._current_product_name()),
            is_pending=True,
        )

    async def on_purchase_stopped(self, attempt: PurchaseAttempt) -> None:
        self._set_flag("is_current_product_being_updated", False, reason="purchase_stopped")

    async def on_subscription_cancelled(self) -> None:
        """Reload after a cancellation; notify if the current product went away."""
        initial_product = self._current_product
        self._is_loading = True
        await self._reload()
        if initial_product is not None and self._current_product is None:
            self._toasts.show(SUBSCRIPTION_CANCELLED_TITLE, SUBSCRIPTION_CANCELLED_MESSAGE)

    async def _reload(self) -> None:
        """Re-sync the active subscription, the current purchase and the catalog."""
        active = await self._ledger.get_active_subscription(self._context.owner_id)
        if isinstance(active, Failure):
            logger.warning("reload_active_subscription_failed", error=active.error.message)
            self._is_loading = False
            return

        self._apply_active_subscription(active.value)
        self._current_purchase = await self._reconciliation.check_existing_subscription(
            on_error=self._log_billing_error
        )
        await self._load_catalog()

    # Teardown

    def clear_state(self) -> None:
        """Reset all view state; the session can be initialized again."""
        self._connectivity.stop()
        self._toasts.hide()
        self._reset()
        self._context.user_uuid = None
        unbind_context("owner_id")
        logger.info("session_state_cleared")

    async def teardown(self) -> None:
        """Clear state and release the platform connection and the ledger transport."""
        self.clear_state()
        self._toasts.cancel()
        self._bridge.remove_listener(self)
        self._bridge.set_subscription_cancelled_callback(None)
        self._connector.disconnect()
        await self._ledger.aclose()
        logger.info("session_torn_down")

    # Helpers

    def _set_flag(self, flag: str, value: bool, reason: Optional[str] = None) -> None:
        attr = f"_{flag}"
        old_value = getattr(self, attr)
        setattr(self, attr, value)
        log_session_flag_change(flag, old_value, value, reason=reason)

    def _log_billing_error(self, error: EngineError) -> None:
        logger.info("billing_check_error", kind=error.kind.value, error=error.message)

    def _current_product_name(self) -> str:
        details = self._current_product_details
        if details is not None and details.name:
            return details.name
        if self._current_product is not None:
            return self._current_product.display_name or self._current_product.product_id
        return "your plan"

    def _purchase_properties(self, details: PlatformCatalogEntry) -> dict[str, Any]:
        return {
            "product_id": details.product_id,
            "user_id": self._context.user_uuid,
            "product_name": details.name or "",
            "price": details.display_price(),
        }

    def _track(self, event_name: str, properties: dict[str, Any]) -> None:
        if self._analytics is None:
            return
        try:
            self._analytics.track(event_name, properties)
        except Exception as e:
            logger.warning("analytics_track_failed", event_name=event_name, error=str(e))
