"""Cache store - file-backed cache-or-fetch primitive.

Each key is stored as two files in the cache directory: ``<key>_data`` holding
the JSON-serialized value and ``<key>_timestamp`` holding the ledger timestamp
the value was fetched for. File I/O runs in worker threads.
"""

import asyncio
import re
import time
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar

from pydantic import TypeAdapter

from iap_sync.logging_config import get_logger
from iap_sync.models.result import EngineError, Failure, Result, Success

logger = get_logger(__name__)

T = TypeVar("T")

NetworkFetch = Callable[[], Awaitable[Result[T]]]

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class CacheStore:
    """Timestamp-keyed and connectivity-keyed cache.

    - ``fetch``: valid while the stored timestamp equals the caller's timestamp.
    - ``fetch_or_cached``: network first when online, cache as fallback.
    """

    def __init__(self, directory: Path, is_network_available: Callable[[], bool]):
        """Initialize cache store.

        Args:
            directory: Cache directory (created on first write)
            is_network_available: Connectivity probe used by fetch_or_cached
        """
        self._directory = Path(directory)
        self._is_network_available = is_network_available

    @property
    def directory(self) -> Path:
        return self._directory

    async def fetch(
        self,
        key: str,
        current_timestamp: Optional[int],
        fetch_from_network: NetworkFetch,
        adapter: TypeAdapter,
    ) -> Result:
        """Return the cached value if its timestamp matches, otherwise fetch and store.

        Args:
            key: Cache key
            current_timestamp: Ledger timestamp for the resource; None never matches
            fetch_from_network: Coroutine function producing a Result
            adapter: TypeAdapter used to (de)serialize the value

        Returns:
            Cached value, fresh network value, or the network error (no stale fallback)
        """
        cached_data = await self._read(self._data_file(key))
        cached_timestamp = await self._read_timestamp(key)

        if (
            cached_data is not None
            and cached_timestamp is not None
            and current_timestamp is not None
            and cached_timestamp == current_timestamp
        ):
            try:
                value = adapter.validate_json(cached_data)
            except ValueError as e:
                logger.warning("cache_deserialization_failed", key=key, error=str(e))
                return Failure(EngineError.cache_deserialization(key, str(e)))
            logger.debug("cache_hit", key=key, timestamp=current_timestamp)
            return Success(value)

        logger.debug(
            "cache_miss",
            key=key,
            cached_timestamp=cached_timestamp,
            current_timestamp=current_timestamp,
        )
        result = await fetch_from_network()
        if isinstance(result, Success):
            timestamp = current_timestamp if current_timestamp is not None else _now_millis()
            try:
                await self._write(self._data_file(key), adapter.dump_json(result.value))
                await self._write(self._timestamp_file(key), str(timestamp).encode("utf-8"))
            except OSError as e:
                logger.error("cache_save_failed", key=key, error=str(e))
                return Failure(EngineError.cache_write(key, str(e)))
        return result

    async def fetch_or_cached(
        self,
        key: str,
        fetch_from_network: NetworkFetch,
        adapter: TypeAdapter,
    ) -> Result:
        """Prefer the network when online; fall back to any cached value.

        Args:
            key: Cache key
            fetch_from_network: Coroutine function producing a Result
            adapter: TypeAdapter used to (de)serialize the value

        Returns:
            Network value, cached value, or NO_CONNECTIVITY_NO_CACHE
        """
        if self._is_network_available():
            result = await fetch_from_network()
            if isinstance(result, Success):
                try:
                    await self._write(self._data_file(key), adapter.dump_json(result.value))
                except OSError as e:
                    logger.error("cache_save_failed", key=key, error=str(e))
                return result

            logger.info("network_fetch_failed_using_cache", key=key, error=result.error.message)
            cached = await self._load(key, adapter)
            if cached is not None:
                return cached
            return Failure(EngineError.no_connectivity_no_cache(key))

        logger.info("network_unavailable_using_cache", key=key)
        cached = await self._load(key, adapter)
        if cached is not None:
            return cached
        return Failure(EngineError.no_connectivity_no_cache(key))

    async def clear(self) -> None:
        """Remove every cached file."""

        def _clear() -> None:
            if not self._directory.exists():
                return
            for path in self._directory.iterdir():
                if path.is_file():
                    path.unlink()

        await asyncio.to_thread(_clear)
        logger.info("cache_cleared", directory=str(self._directory))

    async def _load(self, key: str, adapter: TypeAdapter) -> Optional[Success]:
        """Read and deserialize a cached value; unreadable entries count as absent."""
        data = await self._read(self._data_file(key))
        if data is None:
            return None
        try:
            return Success(adapter.validate_json(data))
        except ValueError as e:
            logger.warning("cache_deserialization_failed", key=key, error=str(e))
            return None

    async def _read_timestamp(self, key: str) -> Optional[int]:
        raw = await self._read(self._timestamp_file(key))
        if raw is None:
            return None
        try:
            return int(raw.decode("utf-8").strip())
        except (UnicodeDecodeError, ValueError):
            return None

    async def _read(self, path: Path) -> Optional[bytes]:
        def _read_file() -> Optional[bytes]:
            try:
                return path.read_bytes()
            except FileNotFoundError:
                return None
            except OSError as e:
                logger.warning("cache_read_failed", path=str(path), error=str(e))
                return None

        return await asyncio.to_thread(_read_file)

    async def _write(self, path: Path, payload: bytes) -> None:
        def _write_file() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(payload)

        await asyncio.to_thread(_write_file)

    def _data_file(self, key: str) -> Path:
        return self._directory / f"{_safe_key(key)}_data"

    def _timestamp_file(self, key: str) -> Path:
        return self._directory / f"{_safe_key(key)}_timestamp"

    def __repr__(self) -> str:
        return f"CacheStore(directory={str(self._directory)!r})"


def _safe_key(key: str) -> str:
    return _UNSAFE_KEY_CHARS.sub("_", key)


def _now_millis() -> int:
    return int(time.time() * 1000)
