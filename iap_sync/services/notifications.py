"""Toast notification state.

Error and informational toasts hide themselves after a delay; success and
pending toasts stay until hidden explicitly.
"""

import asyncio
from typing import Optional

from iap_sync.logging_config import get_logger
from iap_sync.models import ToastState

logger = get_logger(__name__)

DEFAULT_TOAST_DURATION_SECONDS = 3.0

# User-facing strings
NO_CONNECTION_TITLE = "No Connection"
NO_CONNECTION_MESSAGE = "Please check your internet connection and try again."
CONNECTION_RESTORED_TITLE = "Connection Restored"
CONNECTION_RESTORED_MESSAGE = "You are back online."
ERROR_TITLE = "Something went wrong"
ERROR_PRODUCTS_MESSAGE = "We couldn't load the available plans. Please try again later."
PURCHASE_FAILED_TITLE = "Purchase failed"
PURCHASE_COMPLETED_TITLE = "Purchase completed"
PURCHASE_COMPLETED_MESSAGE = "You are now subscribed to {name}."
PURCHASE_PENDING_TITLE = "Purchase pending"
PURCHASE_PENDING_MESSAGE = "Your purchase of {name} is being processed."
SUBSCRIPTION_CANCELLED_TITLE = "Subscription cancelled"
SUBSCRIPTION_CANCELLED_MESSAGE = "Your subscription is no longer active."


class ToastService:
    """Holds the current toast and its auto-dismiss timer."""

    def __init__(self, duration_seconds: float = DEFAULT_TOAST_DURATION_SECONDS):
        self._duration = duration_seconds
        self._state = ToastState()
        self._dismiss_task: Optional[asyncio.Task] = None

    @property
    def state(self) -> ToastState:
        return self._state

    def show(
        self,
        heading: str,
        message: str,
        is_success: bool = False,
        is_pending: bool = False,
    ) -> ToastState:
        """Show a toast, replacing the current one.

        Must be called from the event loop thread.
        """
        self._cancel_timer()
        self._state = ToastState(
            is_visible=True,
            heading=heading,
            message=message,
            is_success=is_success,
            is_pending=is_pending,
        )
        logger.info("toast_shown", heading=heading, success=is_success, pending=is_pending)

        if not self._state.persists:
            self._dismiss_task = asyncio.get_running_loop().create_task(self._dismiss_later())
        return self._state

    def hide(self) -> None:
        self._cancel_timer()
        if self._state.is_visible:
            self._state = self._state.model_copy(update={"is_visible": False})

    def cancel(self) -> None:
        """Cancel the pending auto-dismiss timer without changing the state."""
        self._cancel_timer()

    async def _dismiss_later(self) -> None:
        await asyncio.sleep(self._duration)
        self._dismiss_task = None
        self.hide()

    def _cancel_timer(self) -> None:
        task = self._dismiss_task
        self._dismiss_task = None
        if task is not None and not task.done():
            task.cancel()

