"""Single-resolution bridge from platform callbacks into the session's event loop.

Purchase platform listeners fire on a thread the engine does not own and may
fire more than once (duplicate "service disconnected" events, for instance).
A :class:`OneShotFuture` is created on the session loop, can be resolved from
any thread, and only ever accepts the first resolution.
"""

import asyncio
import threading
from typing import Generic, Optional, TypeVar

from iap_sync.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class OneShotFuture(Generic[T]):
    """Awaitable that is resolved exactly once, from any thread."""

    def __init__(self, name: str, loop: Optional[asyncio.AbstractEventLoop] = None):
        """Create the future on ``loop`` (defaults to the running loop).

        Args:
            name: Name used in anomaly logs
            loop: Event loop the result is delivered to
        """
        self._name = name
        self._loop = loop or asyncio.get_running_loop()
        self._future: asyncio.Future = self._loop.create_future()
        self._lock = threading.Lock()
        self._resolved = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    @property
    def resolved(self) -> bool:
        """Whether a resolution has been accepted (it may not be delivered yet)."""
        with self._lock:
            return self._resolved

    def resolve(self, value: T) -> bool:
        """Resolve with ``value``.

        Returns:
            True if this call resolved the future, False if it was already resolved
        """
        with self._lock:
            if self._resolved:
                logger.warning("one_shot_duplicate_resolution", name=self._name)
                return False
            self._resolved = True

        if self._loop.is_closed():
            logger.warning("one_shot_loop_closed", name=self._name)
            return False
        self._loop.call_soon_threadsafe(self._deliver, value)
        return True

    def _deliver(self, value: T) -> None:
        if not self._future.done():
            self._future.set_result(value)

    async def wait(self) -> T:
        """Wait for the resolution value.

        Shielded so that cancelling one waiter does not cancel the shared result.
        """
        return await asyncio.shield(self._future)

    def __repr__(self) -> str:
        return f"OneShotFuture(name={self._name!r}, resolved={self._resolved})"
