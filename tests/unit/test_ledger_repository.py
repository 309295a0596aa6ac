"""Tests for SubscriptionLedgerClient."""

import pytest

from iap_sync.models import ErrorKind, Failure, HandlePurchaseRequest, HandlePurchaseResponse, Success
from iap_sync.repositories.cache_store import CacheStore
from iap_sync.repositories.ledger_repository import (
    PRODUCTS_CACHE_KEY,
    SubscriptionLedgerClient,
    active_subscription_cache_key,
)
from iap_sync.services.ledger_api import LedgerApiError
from tests.fakes import FakeLedgerApi, FakeNetworkMonitor, active_response, product_dto, purchase_record


@pytest.fixture
def api():
    api = FakeLedgerApi()
    api.products = [product_dto("gold.monthly"), product_dto("gold.yearly", "P1Y")]
    return api


@pytest.fixture
def network():
    return FakeNetworkMonitor(available=True)


@pytest.fixture
def ledger(api, network, tmp_path):
    return SubscriptionLedgerClient(api, CacheStore(tmp_path, network.is_network_available))


class TestGetProducts:
    """Test catalog loading through the timestamp cache."""

    @pytest.mark.asyncio
    async def test_products_mapped_to_domain(self, ledger):
        result = await ledger.get_products(100)

        assert isinstance(result, Success)
        assert [p.product_id for p in result.value] == ["gold.monthly", "gold.yearly"]
        assert result.value[1].recurring_period_code == "P1Y"

    @pytest.mark.asyncio
    async def test_same_timestamp_served_from_cache(self, ledger, api):
        await ledger.get_products(100)
        await ledger.get_products(100)

        assert api.products_calls == 1

    @pytest.mark.asyncio
    async def test_ledger_error(self, ledger, api):
        api.products_error = LedgerApiError("boom", status_code=500)
        result = await ledger.get_products(100)

        assert isinstance(result, Failure)
        assert result.error.kind == ErrorKind.LEDGER_ERROR

    def test_cache_keys(self):
        assert PRODUCTS_CACHE_KEY == "products_cache"
        assert active_subscription_cache_key("partner-42") == "active_subscription_cache_partner-42"


class TestGetActiveSubscription:
    """Test active subscription loading with offline fallback."""

    @pytest.mark.asyncio
    async def test_online(self, ledger, api):
        api.active_responses = [active_response(product=product_dto(), user_uuid="uuid-7")]
        result = await ledger.get_active_subscription("partner-42")

        assert result.value.user_uuid == "uuid-7"
        assert result.value.product.product_id == "gold.monthly"
        assert api.active_calls == ["partner-42"]

    @pytest.mark.asyncio
    async def test_offline_served_from_cache(self, ledger, api, network):
        await ledger.get_active_subscription("partner-42")
        network.available = False

        result = await ledger.get_active_subscription("partner-42")

        assert result.value.user_uuid == "uuid-1"
        assert len(api.active_calls) == 1

    @pytest.mark.asyncio
    async def test_offline_cache_is_per_user(self, ledger, network):
        await ledger.get_active_subscription("partner-42")
        network.available = False

        result = await ledger.get_active_subscription("someone-else")

        assert result.error.kind == ErrorKind.NO_CONNECTIVITY_NO_CACHE

    @pytest.mark.asyncio
    async def test_ledger_down_without_cache(self, ledger, api):
        api.active_error = LedgerApiError("unreachable")
        result = await ledger.get_active_subscription("partner-42")

        assert result.error.kind == ErrorKind.NO_CONNECTIVITY_NO_CACHE


class TestHandlePurchase:
    """Test purchase submission."""

    @pytest.fixture
    def request_body(self):
        return HandlePurchaseRequest.from_purchase(purchase_record(), "partner-42")

    @pytest.mark.asyncio
    async def test_accepted(self, ledger, api, request_body):
        result = await ledger.handle_purchase(request_body)

        assert isinstance(result, Success)
        assert api.submitted == [request_body]

    @pytest.mark.asyncio
    async def test_rejected(self, ledger, api, request_body):
        api.handle_response = HandlePurchaseResponse(accepted=False)
        result = await ledger.handle_purchase(request_body)

        assert result.error.kind == ErrorKind.LEDGER_ERROR
        assert "gold.monthly" in result.error.message

    @pytest.mark.asyncio
    async def test_transport_failure(self, ledger, api, request_body):
        api.handle_error = LedgerApiError("timeout")
        result = await ledger.handle_purchase(request_body)

        assert result.error.kind == ErrorKind.LEDGER_ERROR
        assert result.error.message == "timeout"
