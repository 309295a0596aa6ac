"""Tests for the file-backed cache store."""

import pytest
from pydantic import TypeAdapter

from iap_sync.models import EngineError, ErrorKind, Failure, ProductInfo, Success
from iap_sync.repositories.cache_store import CacheStore
from tests.fakes import product_info

PRODUCTS = TypeAdapter(list[ProductInfo])


class NetworkStub:
    """Counts network fetches and returns a scripted result."""

    def __init__(self, result):
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        return self.result


@pytest.fixture
def online():
    return {"available": True}


@pytest.fixture
def cache(tmp_path, online):
    return CacheStore(tmp_path / "cache", lambda: online["available"])


@pytest.fixture
def products():
    return [product_info("gold.monthly", "P1M"), product_info("gold.yearly", "P1Y")]


class TestTimestampFetch:
    """Test fetch (timestamp-keyed)."""

    @pytest.mark.asyncio
    async def test_miss_fetches_and_persists(self, cache, products):
        network = NetworkStub(Success(products))
        result = await cache.fetch("products_cache", 100, network, PRODUCTS)

        assert result == Success(products)
        assert network.calls == 1
        assert (cache.directory / "products_cache_data").exists()
        assert (cache.directory / "products_cache_timestamp").read_text() == "100"

    @pytest.mark.asyncio
    async def test_matching_timestamp_skips_network(self, cache, products):
        await cache.fetch("products_cache", 100, NetworkStub(Success(products)), PRODUCTS)

        network = NetworkStub(Success([]))
        result = await cache.fetch("products_cache", 100, network, PRODUCTS)

        assert network.calls == 0
        assert result.unwrap() == products

    @pytest.mark.asyncio
    async def test_changed_timestamp_refetches(self, cache, products):
        await cache.fetch("products_cache", 100, NetworkStub(Success(products)), PRODUCTS)

        fresh = [product_info("gold.weekly", "P1W")]
        network = NetworkStub(Success(fresh))
        result = await cache.fetch("products_cache", 101, network, PRODUCTS)

        assert network.calls == 1
        assert result.unwrap() == fresh
        assert (cache.directory / "products_cache_timestamp").read_text() == "101"

    @pytest.mark.asyncio
    async def test_none_timestamp_never_matches(self, cache, products):
        await cache.fetch("products_cache", None, NetworkStub(Success(products)), PRODUCTS)

        network = NetworkStub(Success(products))
        await cache.fetch("products_cache", None, network, PRODUCTS)

        assert network.calls == 1

    @pytest.mark.asyncio
    async def test_network_failure_has_no_stale_fallback(self, cache, products):
        await cache.fetch("products_cache", 100, NetworkStub(Success(products)), PRODUCTS)

        error = EngineError.ledger_error("down")
        result = await cache.fetch("products_cache", 200, NetworkStub(Failure(error)), PRODUCTS)

        assert result == Failure(error)

    @pytest.mark.asyncio
    async def test_corrupt_cache_hit_returns_deserialization_error(self, cache, products):
        await cache.fetch("products_cache", 100, NetworkStub(Success(products)), PRODUCTS)
        (cache.directory / "products_cache_data").write_text("{not json")

        result = await cache.fetch("products_cache", 100, NetworkStub(Success(products)), PRODUCTS)

        assert isinstance(result, Failure)
        assert result.error.kind == ErrorKind.CACHE_DESERIALIZATION_ERROR


class TestConnectivityFetch:
    """Test fetch_or_cached (connectivity-keyed)."""

    @pytest.mark.asyncio
    async def test_online_uses_network_and_persists(self, cache, products):
        network = NetworkStub(Success(products))
        result = await cache.fetch_or_cached("active", network, PRODUCTS)

        assert network.calls == 1
        assert result.unwrap() == products
        assert (cache.directory / "active_data").exists()

    @pytest.mark.asyncio
    async def test_online_failure_falls_back_to_cache(self, cache, products):
        await cache.fetch_or_cached("active", NetworkStub(Success(products)), PRODUCTS)

        result = await cache.fetch_or_cached(
            "active", NetworkStub(Failure(EngineError.ledger_error("500"))), PRODUCTS
        )

        assert result.unwrap() == products

    @pytest.mark.asyncio
    async def test_offline_skips_network(self, cache, online, products):
        await cache.fetch_or_cached("active", NetworkStub(Success(products)), PRODUCTS)
        online["available"] = False

        network = NetworkStub(Success([]))
        result = await cache.fetch_or_cached("active", network, PRODUCTS)

        assert network.calls == 0
        assert result.unwrap() == products

    @pytest.mark.asyncio
    async def test_offline_without_cache(self, cache, online):
        online["available"] = False
        result = await cache.fetch_or_cached("active", NetworkStub(Success([])), PRODUCTS)

        assert isinstance(result, Failure)
        assert result.error.kind == ErrorKind.NO_CONNECTIVITY_NO_CACHE

    @pytest.mark.asyncio
    async def test_failure_without_cache(self, cache):
        result = await cache.fetch_or_cached(
            "active", NetworkStub(Failure(EngineError.ledger_error("500"))), PRODUCTS
        )

        assert result.error.kind == ErrorKind.NO_CONNECTIVITY_NO_CACHE

    @pytest.mark.asyncio
    async def test_unreadable_cache_counts_as_absent(self, cache, online, tmp_path):
        (cache.directory).mkdir(parents=True)
        (cache.directory / "active_data").write_text("garbage")
        online["available"] = False

        result = await cache.fetch_or_cached("active", NetworkStub(Success([])), PRODUCTS)

        assert result.error.kind == ErrorKind.NO_CONNECTIVITY_NO_CACHE


class TestCacheHousekeeping:
    """Test key sanitising and clearing."""

    @pytest.mark.asyncio
    async def test_keys_are_sanitised(self, cache, products):
        await cache.fetch_or_cached("active/user 1", NetworkStub(Success(products)), PRODUCTS)

        assert (cache.directory / "active_user_1_data").exists()

    @pytest.mark.asyncio
    async def test_clear_removes_files(self, cache, products):
        await cache.fetch("products_cache", 100, NetworkStub(Success(products)), PRODUCTS)
        await cache.clear()

        assert list(cache.directory.iterdir()) == []

    @pytest.mark.asyncio
    async def test_clear_without_directory(self, cache):
        await cache.clear()
        assert not cache.directory.exists()
