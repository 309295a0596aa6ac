"""Tests for offer selection and purchase flow launch."""

import pytest

from iap_sync.models import (
    ErrorKind,
    Failure,
    OfferSelectionRule,
    ReplacementMode,
    SessionContext,
    Success,
)
from iap_sync.services.platform import BillingResponseCode, BillingResult
from iap_sync.services.platform_connector import PlatformConnector
from iap_sync.services.purchase_orchestrator import (
    PurchaseOrchestrator,
    build_flow_request,
    select_offer,
)
from tests.fakes import FakeBillingClient, catalog_entry, purchase_record


@pytest.fixture
def client():
    return FakeBillingClient()


@pytest.fixture
def connector(client):
    return PlatformConnector(client)


@pytest.fixture
def orchestrator(connector):
    context = SessionContext(owner_id="partner-42", api_key="key", user_uuid="uuid-1")
    return PurchaseOrchestrator(connector, context)


@pytest.fixture
def errors():
    return []


class TestSelectOffer:
    """Test the offer selection rule."""

    def test_no_offers(self):
        assert select_offer([]) is None

    def test_single_offer_always_used(self):
        offers = catalog_entry(offers=1).subscription_offer_details
        for rule in OfferSelectionRule:
            assert select_offer(offers, rule).offer_token == "gold.monthly-offer-0"

    def test_penultimate_by_default(self):
        offers = catalog_entry(offers=3).subscription_offer_details
        assert select_offer(offers).offer_token == "gold.monthly-offer-1"

    def test_first_and_last(self):
        offers = catalog_entry(offers=3).subscription_offer_details
        assert select_offer(offers, OfferSelectionRule.FIRST).offer_token == "gold.monthly-offer-0"
        assert select_offer(offers, OfferSelectionRule.LAST).offer_token == "gold.monthly-offer-2"


class TestBuildFlowRequest:
    def test_new_subscription(self):
        product = catalog_entry()
        request = build_flow_request(product, product.subscription_offer_details[0], "uuid-1")

        assert request.is_upgrade is False
        assert request.obfuscated_account_id == "uuid-1"
        assert request.obfuscated_profile_id == "uuid-1"

    def test_upgrade_carries_old_token(self):
        product = catalog_entry("gold.yearly", "P1Y")
        current = purchase_record(token="old-token", acknowledged=True)

        request = build_flow_request(product, product.subscription_offer_details[0], "uuid-1", current)

        assert request.subscription_update.old_purchase_token == "old-token"
        assert request.subscription_update.replacement_mode == ReplacementMode.CHARGE_FULL_PRICE


class TestPurchase:
    """Test PurchaseOrchestrator.purchase."""

    @pytest.mark.asyncio
    async def test_product_without_offers(self, orchestrator, connector, client, errors):
        await connector.connect()

        result = await orchestrator.purchase("activity", catalog_entry(offers=0), None, errors.append)

        assert isinstance(result, Failure)
        assert [e.kind for e in errors] == [ErrorKind.NO_OFFER_AVAILABLE]
        assert "No offer" in errors[0].message
        assert client.launched == []

    @pytest.mark.asyncio
    async def test_new_purchase_launches_once(self, orchestrator, connector, client, errors):
        await connector.connect()

        result = await orchestrator.purchase("activity", catalog_entry(offers=2), None, errors.append)

        assert result == Success(None)
        assert errors == []
        assert len(client.launched) == 1
        assert client.launched[0].offer_token == "gold.monthly-offer-0"
        assert client.launched[0].subscription_update is None

    @pytest.mark.asyncio
    async def test_upgrade_launch(self, orchestrator, connector, client, errors):
        await connector.connect()
        current = purchase_record("gold.monthly", token="monthly-token", acknowledged=True)

        await orchestrator.purchase("activity", catalog_entry("gold.yearly", "P1Y"), current, errors.append)

        assert len(client.launched) == 1
        update = client.launched[0].subscription_update
        assert update.old_purchase_token == "monthly-token"
        assert update.replacement_mode == ReplacementMode.CHARGE_FULL_PRICE

    @pytest.mark.asyncio
    async def test_configured_offer_rule(self, connector, client, errors):
        context = SessionContext(owner_id="partner-42", api_key="key", user_uuid="uuid-1")
        orchestrator = PurchaseOrchestrator(connector, context, OfferSelectionRule.LAST)
        await connector.connect()

        await orchestrator.purchase("activity", catalog_entry(offers=3), None, errors.append)

        assert client.launched[0].offer_token == "gold.monthly-offer-2"

    @pytest.mark.asyncio
    async def test_launch_failure_reported(self, orchestrator, connector, client, errors):
        client.launch_result = BillingResult(BillingResponseCode.ITEM_ALREADY_OWNED, "owned")
        await connector.connect()

        result = await orchestrator.purchase("activity", catalog_entry(), None, errors.append)

        assert isinstance(result, Failure)
        assert errors[0].response_code == BillingResponseCode.ITEM_ALREADY_OWNED

    @pytest.mark.asyncio
    async def test_platform_exception_reported(self, orchestrator, connector, client, errors):
        client.launch_error = RuntimeError("activity destroyed")
        await connector.connect()

        result = await orchestrator.purchase("activity", catalog_entry(), None, errors.append)

        assert isinstance(result, Failure)
        assert errors[0].kind == ErrorKind.PLATFORM_ERROR
        assert errors[0].response_code == BillingResponseCode.ERROR
        assert errors[0].message == "activity destroyed"

    @pytest.mark.asyncio
    async def test_not_connected(self, orchestrator, client, errors):
        result = await orchestrator.purchase("activity", catalog_entry(), None, errors.append)

        assert result.error.kind == ErrorKind.NOT_CONNECTED
        assert errors[0].kind == ErrorKind.NOT_CONNECTED
        assert client.launched == []
