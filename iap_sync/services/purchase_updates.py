"""Purchase update delivery - platform purchase results to session listeners.

Responsibilities:
- Re-enter the session event loop from the platform's callback thread
- Drive one PurchaseAttempt per delivered result (STARTED -> UPDATED/FAILED/STOPPED)
- Submit successful purchases to the ledger through the reconciliation engine
- Forward "subscription cancelled" notifications
"""

import asyncio
import concurrent.futures
from typing import Awaitable, Callable, Optional, Protocol

from iap_sync.logging_config import get_logger
from iap_sync.models import EngineError, Failure, PurchaseAttempt, PurchaseEvent, PurchaseRecord
from iap_sync.services.platform import BillingResponseCode, BillingResult
from iap_sync.services.reconciliation import ReconciliationEngine
from iap_sync.state_logger import log_purchase_attempt_transition

logger = get_logger(__name__)

CancelledCallback = Callable[[], Awaitable[None]]


class PurchaseEventListener(Protocol):
    """Receiver of purchase attempt transitions."""

    async def on_purchase_started(self, attempt: PurchaseAttempt) -> None: ...

    async def on_purchase_updated(self, attempt: PurchaseAttempt) -> None: ...

    async def on_purchase_failed(self, attempt: PurchaseAttempt, error: EngineError) -> None: ...

    async def on_purchase_stopped(self, attempt: PurchaseAttempt) -> None: ...


class PurchaseUpdateBridge:
    """Bridges platform purchase callbacks into the session loop."""

    def __init__(
        self,
        reconciliation: ReconciliationEngine,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        """Initialize bridge.

        Args:
            reconciliation: Engine owning the ledger submission path
            loop: Session event loop; can be bound later with :meth:`bind`
        """
        self._reconciliation = reconciliation
        self._loop = loop
        self._listeners: list[PurchaseEventListener] = []
        self._on_cancelled: Optional[CancelledCallback] = None

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        """Bind the event loop that callbacks are delivered to."""
        self._loop = loop

    def add_listener(self, listener: PurchaseEventListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: PurchaseEventListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def set_subscription_cancelled_callback(self, callback: Optional[CancelledCallback]) -> None:
        self._on_cancelled = callback

    def on_purchases_updated(
        self, result: BillingResult, purchases: Optional[list[PurchaseRecord]]
    ) -> Optional[concurrent.futures.Future]:
        """Platform entry point; safe to call from any thread.

        Returns:
            Future of the scheduled handling, or None when no loop is bound
        """
        loop = self._loop
        if loop is None or loop.is_closed():
            logger.error(
                "purchase_update_dropped",
                reason="no_event_loop",
                response_code=result.response_code.name,
            )
            return None
        return asyncio.run_coroutine_threadsafe(self.handle_purchases_updated(result, purchases), loop)

    async def handle_purchases_updated(
        self, result: BillingResult, purchases: Optional[list[PurchaseRecord]]
    ) -> PurchaseAttempt:
        """Run one purchase attempt to its terminal state."""
        first = purchases[0] if purchases else None
        attempt = PurchaseAttempt(
            product_id=first.product_id if first else None,
            purchase_token=first.purchase_token if first else None,
        )
        log_purchase_attempt_transition(
            attempt.attempt_id,
            None,
            attempt.state.value,
            token=attempt.purchase_token,
            product_id=attempt.product_id,
            response_code=result.response_code.name,
        )
        await self._dispatch(PurchaseEvent.STARTED, attempt)

        if not result.is_ok or not purchases:
            if result.response_code == BillingResponseCode.USER_CANCELED:
                detail = "User canceled"
            else:
                detail = result.debug_message or result.response_code.name
            attempt.transition(PurchaseEvent.STOPPED, detail=detail)
            await self._dispatch(PurchaseEvent.STOPPED, attempt)
            return attempt

        for record in purchases:
            submitted = await self._reconciliation.submit_purchase(record)
            if isinstance(submitted, Failure):
                attempt.transition(PurchaseEvent.FAILED, detail=submitted.error.message)
                await self._dispatch(PurchaseEvent.FAILED, attempt, submitted.error)
                return attempt

        attempt.transition(PurchaseEvent.UPDATED)
        await self._dispatch(PurchaseEvent.UPDATED, attempt)
        return attempt

    def on_subscription_cancelled(self) -> Optional[concurrent.futures.Future]:
        """Cancellation notification entry point; safe to call from any thread."""
        loop = self._loop
        if self._on_cancelled is None or loop is None or loop.is_closed():
            logger.warning("subscription_cancelled_dropped")
            return None
        logger.info("subscription_cancelled_received")
        return asyncio.run_coroutine_threadsafe(self._on_cancelled(), loop)

    async def _dispatch(
        self,
        event: PurchaseEvent,
        attempt: PurchaseAttempt,
        error: Optional[EngineError] = None,
    ) -> None:
        for listener in list(self._listeners):
            try:
                if event == PurchaseEvent.STARTED:
                    await listener.on_purchase_started(attempt)
                elif event == PurchaseEvent.UPDATED:
                    await listener.on_purchase_updated(attempt)
                elif event == PurchaseEvent.FAILED:
                    await listener.on_purchase_failed(attempt, error)
                else:
                    await listener.on_purchase_stopped(attempt)
            except Exception as e:
                logger.error(
                    "purchase_listener_failed",
                    purchase_event=event.value,
                    attempt_id=attempt.attempt_id,
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
