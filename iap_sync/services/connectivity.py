"""Connectivity observation.

The host supplies a :class:`NetworkMonitor`; its callbacks may arrive on any
thread and are re-dispatched onto the session loop.
"""

import asyncio
from typing import Callable, Optional, Protocol

from iap_sync.logging_config import get_logger
from iap_sync.services.notifications import (
    CONNECTION_RESTORED_MESSAGE,
    CONNECTION_RESTORED_TITLE,
    NO_CONNECTION_MESSAGE,
    NO_CONNECTION_TITLE,
    ToastService,
)

logger = get_logger(__name__)


class NetworkMonitor(Protocol):
    """Host network reachability source."""

    def is_network_available(self) -> bool: ...

    def register(self, on_available: Callable[[], None], on_lost: Callable[[], None]) -> bool:
        """Start delivering callbacks; returns current availability."""
        ...

    def unregister(self) -> None: ...


class ConnectivityObserver:
    """Tracks reachability and shows connection toasts."""

    def __init__(self, monitor: NetworkMonitor, toasts: ToastService):
        self._monitor = monitor
        self._toasts = toasts
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._registered = False
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def is_registered(self) -> bool:
        return self._registered

    def start(self) -> bool:
        """Register with the monitor; shows "No Connection" when offline.

        Must be called from the session loop.

        Returns:
            Current reachability
        """
        self._loop = asyncio.get_running_loop()
        if self._registered:
            return self._connected
        try:
            self._connected = self._monitor.register(self._on_available, self._on_lost)
            self._registered = True
        except Exception as e:
            logger.error(
                "network_monitor_register_failed",
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            self._connected = False

        logger.info("connectivity_observer_started", connected=self._connected)
        if not self._connected:
            self._toasts.show(NO_CONNECTION_TITLE, NO_CONNECTION_MESSAGE)
        return self._connected

    def stop(self) -> None:
        if not self._registered:
            return
        self._registered = False
        try:
            self._monitor.unregister()
        except Exception as e:
            logger.warning("network_monitor_unregister_failed", error=str(e))
        logger.info("connectivity_observer_stopped")

    def _on_available(self) -> None:
        self._dispatch(self._handle_available)

    def _on_lost(self) -> None:
        self._dispatch(self._handle_lost)

    def _dispatch(self, handler: Callable[[], None]) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(handler)

    def _handle_available(self) -> None:
        if not self._registered:
            return
        was_connected = self._connected
        self._connected = True
        logger.info("network_available", was_connected=was_connected)
        if not was_connected:
            self._toasts.show(CONNECTION_RESTORED_TITLE, CONNECTION_RESTORED_MESSAGE)

    def _handle_lost(self) -> None:
        if not self._registered:
            return
        self._connected = False
        logger.info("network_lost")
        self._toasts.show(NO_CONNECTION_TITLE, NO_CONNECTION_MESSAGE)
