"""Purchase platform connector - owns the platform connection and query calls.

Connection state machine::

    DISCONNECTED -> CONNECTING -> CONNECTED
    CONNECTED    -> DISCONNECTED   (service lost; no automatic reconnect)

Platform listeners run on a thread the engine does not own. Every callback is
funnelled through a :class:`OneShotFuture` so each call completes exactly once.
"""

from typing import Any, Optional

from iap_sync.logging_config import get_logger
from iap_sync.models import (
    EngineError,
    Failure,
    PlatformCatalogEntry,
    PurchaseFlowRequest,
    PurchaseRecord,
    Result,
    Success,
)
from iap_sync.services.platform import (
    BillingClient,
    BillingResponseCode,
    BillingResult,
    ConnectionState,
    PurchasesUpdatedListener,
)
from iap_sync.state_logger import log_connection_state_change
from iap_sync.utils.one_shot import OneShotFuture

logger = get_logger(__name__)


class _SetupListener:
    """State listener bound to one connection attempt."""

    def __init__(self, connector: "PlatformConnector", future: OneShotFuture):
        self._connector = connector
        self._future = future
        self.service_lost = False

    def on_billing_setup_finished(self, result: BillingResult) -> None:
        if result.is_ok:
            self._future.resolve(Success(None))
        else:
            self._future.resolve(
                Failure(
                    EngineError.platform_error(
                        result.response_code, result.debug_message or "Billing setup failed"
                    )
                )
            )

    def on_billing_service_disconnected(self) -> None:
        if not self._future.resolved:
            self._future.resolve(
                Failure(
                    EngineError.platform_error(
                        BillingResponseCode.SERVICE_DISCONNECTED, "Billing service disconnected"
                    )
                )
            )
            return
        self.service_lost = True
        self._connector._notify_service_lost(self)


class PlatformConnector:
    """Single owner of the :class:`BillingClient` connection."""

    def __init__(self, billing_client: BillingClient, product_type: str = "subs"):
        """Initialize connector.

        Args:
            billing_client: Platform client
            product_type: Product type used for purchase and catalog queries
        """
        self._client = billing_client
        self._product_type = product_type
        self._state = ConnectionState.DISCONNECTED
        self._pending: Optional[OneShotFuture] = None
        self._listener: Optional[_SetupListener] = None
        self._loop = None
        self._purchases_listener: Optional[PurchasesUpdatedListener] = None
        self._client.set_purchases_updated_listener(self._on_purchases_updated)

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    def set_purchases_updated_listener(self, listener: Optional[PurchasesUpdatedListener]) -> None:
        """Register the receiver of platform purchase updates."""
        self._purchases_listener = listener

    def _on_purchases_updated(
        self, result: BillingResult, purchases: Optional[list[PurchaseRecord]]
    ) -> None:
        listener = self._purchases_listener
        if listener is None:
            logger.warning(
                "purchases_updated_without_listener",
                response_code=result.response_code.name,
            )
            return
        listener(result, purchases)

    async def connect(self) -> Result[None]:
        """Connect to the platform.

        Returns immediately when already connected; concurrent callers share
        the pending attempt.
        """
        if self._state == ConnectionState.CONNECTED:
            return Success(None)
        if self._state == ConnectionState.CONNECTING and self._pending is not None:
            return await self._pending.wait()

        future: OneShotFuture[Result[None]] = OneShotFuture("billing_setup")
        listener = _SetupListener(self, future)
        self._pending = future
        self._listener = listener
        self._loop = future.loop
        self._set_state(ConnectionState.CONNECTING, reason="connect")

        try:
            self._client.start_connection(listener)
        except Exception as e:
            logger.exception("billing_start_connection_failed", error=str(e))
            future.resolve(Failure(EngineError.platform_error(BillingResponseCode.ERROR, str(e))))

        result = await future.wait()
        if self._pending is future:
            self._pending = None
            if isinstance(result, Success) and listener.service_lost:
                self._listener = None
                self._set_state(ConnectionState.DISCONNECTED, reason="service_disconnected")
                result = Failure(
                    EngineError.platform_error(
                        BillingResponseCode.SERVICE_DISCONNECTED, "Billing service disconnected"
                    )
                )
            elif isinstance(result, Success):
                self._set_state(ConnectionState.CONNECTED, reason="setup_finished")
            else:
                self._listener = None
                self._set_state(
                    ConnectionState.DISCONNECTED,
                    reason="setup_failed",
                    response_code=_code_name(result.error.response_code),
                    debug_message=result.error.message,
                )
        return result

    def _notify_service_lost(self, listener: _SetupListener) -> None:
        """Called from the platform thread after setup has completed."""
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self._handle_service_lost, listener)

    def _handle_service_lost(self, listener: _SetupListener) -> None:
        # Losses seen while CONNECTING are picked up by connect() via listener.service_lost
        if listener is not self._listener or self._state != ConnectionState.CONNECTED:
            logger.debug("stale_service_disconnected_ignored")
            return
        self._listener = None
        self._set_state(ConnectionState.DISCONNECTED, reason="service_disconnected")

    async def query_purchases(self) -> Result[list[PurchaseRecord]]:
        """Query the purchases the platform currently reports for this user."""
        if not self.is_connected:
            return Failure(EngineError.not_connected())

        future: OneShotFuture = OneShotFuture("query_purchases")
        try:
            self._client.query_purchases_async(
                self._product_type, lambda result, purchases: future.resolve((result, purchases))
            )
        except Exception as e:
            logger.exception("query_purchases_failed", error=str(e))
            return Failure(EngineError.platform_error(BillingResponseCode.ERROR, str(e)))
        result, purchases = await future.wait()
        if not result.is_ok:
            logger.warning(
                "query_purchases_failed",
                response_code=result.response_code.name,
                debug_message=result.debug_message,
            )
            return Failure(EngineError.platform_error(result.response_code, result.debug_message))
        return Success(list(purchases or []))

    async def query_catalog(self, product_ids: list[str]) -> Result[list[PlatformCatalogEntry]]:
        """Query platform product details for ``product_ids``."""
        if not self.is_connected:
            return Failure(EngineError.not_connected())
        if not product_ids:
            return Success([])

        future: OneShotFuture = OneShotFuture("query_product_details")
        try:
            self._client.query_product_details_async(
                list(product_ids),
                self._product_type,
                lambda result, details: future.resolve((result, details)),
            )
        except Exception as e:
            logger.exception("query_catalog_failed", error=str(e))
            return Failure(EngineError.platform_error(BillingResponseCode.ERROR, str(e)))
        result, details = await future.wait()
        if not result.is_ok:
            logger.warning(
                "query_catalog_failed",
                response_code=result.response_code.name,
                debug_message=result.debug_message,
            )
            return Failure(EngineError.platform_error(result.response_code, result.debug_message))
        return Success(list(details or []))

    def launch_flow(self, context: Any, request: PurchaseFlowRequest) -> Result[None]:
        """Launch the platform purchase flow; completion arrives via the purchases listener."""
        if not self.is_connected:
            return Failure(EngineError.not_connected())

        result = self._client.launch_billing_flow(context, request)
        if not result.is_ok:
            logger.warning(
                "launch_billing_flow_failed",
                product_id=request.product_id,
                response_code=result.response_code.name,
                debug_message=result.debug_message,
            )
            return Failure(EngineError.platform_error(result.response_code, result.debug_message))
        logger.info("billing_flow_launched", product_id=request.product_id, upgrade=request.is_upgrade)
        return Success(None)

    def disconnect(self) -> None:
        """Release the platform connection."""
        pending = self._pending
        self._pending = None
        self._listener = None
        if pending is not None and not pending.resolved:
            pending.resolve(
                Failure(
                    EngineError.platform_error(
                        BillingResponseCode.SERVICE_DISCONNECTED, "Connection closed"
                    )
                )
            )
        self._client.end_connection()
        self._set_state(ConnectionState.DISCONNECTED, reason="disconnect")

    def _set_state(self, new_state: ConnectionState, reason: str, **extra: Any) -> None:
        old_state = self._state
        if old_state == new_state:
            return
        self._state = new_state
        log_connection_state_change(old_state.value, new_state.value, reason=reason, **extra)

    def __repr__(self) -> str:
        return f"PlatformConnector(state={self._state.value})"


def _code_name(code: Any) -> Optional[str]:
    return code.name if isinstance(code, BillingResponseCode) else None
