"""Tests for the reconciliation engine."""

import pytest

from iap_sync.models import (
    ErrorKind,
    HandlePurchaseResponse,
    Platform,
    PurchaseState,
    SessionContext,
    Success,
)
from iap_sync.repositories.cache_store import CacheStore
from iap_sync.repositories.ledger_repository import SubscriptionLedgerClient
from iap_sync.services.ledger_api import LedgerApiError
from iap_sync.services.platform import BillingResponseCode, BillingResult
from iap_sync.services.platform_connector import PlatformConnector
from iap_sync.services.reconciliation import ReconciliationEngine, find_unacknowledged
from tests.fakes import (
    FakeBillingClient,
    FakeLedgerApi,
    active_response,
    product_dto,
    product_info,
    purchase_record,
)


@pytest.fixture
def client():
    return FakeBillingClient()


@pytest.fixture
def api():
    return FakeLedgerApi()


@pytest.fixture
def context():
    return SessionContext(owner_id="partner-42", api_key="key", user_uuid="uuid-1")


@pytest.fixture
def engine(client, api, context, tmp_path):
    connector = PlatformConnector(client)
    ledger = SubscriptionLedgerClient(api, CacheStore(tmp_path, lambda: True))
    return ReconciliationEngine(connector, ledger, context, local_platform=Platform.ANDROID)


@pytest.fixture
def errors():
    return []


async def connect(engine):
    await engine._connector.connect()


class TestFindUnacknowledged:
    """Test candidate selection."""

    def test_first_unacknowledged_in_platform_order(self):
        records = [
            purchase_record(token="acked", acknowledged=True),
            purchase_record(token="first"),
            purchase_record(token="second"),
        ]
        assert find_unacknowledged(records).purchase_token == "first"

    def test_pending_purchases_are_skipped(self):
        records = [
            purchase_record(token="pending", state=PurchaseState.PENDING),
            purchase_record(token="unspecified", state=PurchaseState.UNSPECIFIED_STATE),
        ]
        assert find_unacknowledged(records).purchase_token == "unspecified"

    def test_none_when_everything_acknowledged(self):
        assert find_unacknowledged([purchase_record(acknowledged=True)]) is None
        assert find_unacknowledged([]) is None


class TestResolveUnacknowledged:
    """Test reconciliation of unacknowledged purchases."""

    @pytest.mark.asyncio
    async def test_accepted_purchase_returns_true(self, engine, client, api, errors):
        client.purchases = [purchase_record(token="tok-1")]
        await connect(engine)

        assert await engine.resolve_unacknowledged(errors.append) is True

        assert len(api.submitted) == 1
        submitted = api.submitted[0]
        assert submitted.purchaseToken == "tok-1"
        assert submitted.productId == "gold.monthly"
        assert submitted.purchaseTime == 1_700_000_000_000
        assert submitted.partnerUserId == "partner-42"
        assert errors == []

    @pytest.mark.asyncio
    async def test_second_call_submits_nothing(self, engine, client, api, errors):
        client.purchases = [purchase_record(token="tok-1")]
        await connect(engine)

        await engine.resolve_unacknowledged(errors.append)
        assert await engine.resolve_unacknowledged(errors.append) is False

        assert len(api.submitted) == 1

    @pytest.mark.asyncio
    async def test_no_purchases(self, engine, api, errors):
        await connect(engine)

        assert await engine.resolve_unacknowledged(errors.append) is False
        assert api.submitted == []

    @pytest.mark.asyncio
    async def test_rejection_reports_error_and_keeps_purchase(self, engine, client, api, errors):
        client.purchases = [purchase_record(token="tok-1")]
        api.handle_response = HandlePurchaseResponse(accepted=False)
        await connect(engine)

        assert await engine.resolve_unacknowledged(errors.append) is False
        assert [e.kind for e in errors] == [ErrorKind.LEDGER_ERROR]
        assert "tok-1" not in engine.reconciled_tokens

        api.handle_response = HandlePurchaseResponse(accepted=True)
        assert await engine.resolve_unacknowledged(errors.append) is True
        assert len(api.submitted) == 2

    @pytest.mark.asyncio
    async def test_ledger_unreachable(self, engine, client, api, errors):
        client.purchases = [purchase_record()]
        api.handle_error = LedgerApiError("timeout")
        await connect(engine)

        assert await engine.resolve_unacknowledged(errors.append) is False
        assert errors[0].kind == ErrorKind.LEDGER_ERROR

    @pytest.mark.asyncio
    async def test_query_failure_treated_as_no_purchases(self, engine, client, api, errors):
        client.purchases_result = BillingResult(BillingResponseCode.ERROR, "boom")
        await connect(engine)

        assert await engine.resolve_unacknowledged(errors.append) is False
        assert errors[0].kind == ErrorKind.PLATFORM_ERROR
        assert api.submitted == []

    @pytest.mark.asyncio
    async def test_query_raising_reports_platform_error(self, engine, client, api, errors):
        await connect(engine)
        client.query_error = RuntimeError("remote exception")

        assert await engine.resolve_unacknowledged(errors.append) is False
        assert [e.kind for e in errors] == [ErrorKind.PLATFORM_ERROR]
        assert errors[0].response_code == BillingResponseCode.ERROR
        assert api.submitted == []

    @pytest.mark.asyncio
    async def test_not_connected(self, engine, api, errors):
        assert await engine.resolve_unacknowledged(errors.append) is False
        assert errors[0].kind == ErrorKind.NOT_CONNECTED


class TestSubmitPurchase:
    """Test the shared submission path."""

    @pytest.mark.asyncio
    async def test_already_reconciled_token_not_resubmitted(self, engine, api):
        record = purchase_record(token="tok-1")
        await engine.submit_purchase(record)

        result = await engine.submit_purchase(record)

        assert isinstance(result, Success)
        assert len(api.submitted) == 1


class TestCheckExistingSubscription:
    """Test current purchase lookup."""

    @pytest.mark.asyncio
    async def test_returns_first_active_record(self, engine, client, errors):
        client.purchases = [
            purchase_record(token="pending", state=PurchaseState.PENDING),
            purchase_record(token="current", acknowledged=True),
        ]
        await connect(engine)

        record = await engine.check_existing_subscription(errors.append)

        assert record.purchase_token == "current"

    @pytest.mark.asyncio
    async def test_none_without_purchases(self, engine, errors):
        await connect(engine)
        assert await engine.check_existing_subscription(errors.append) is None

    @pytest.mark.asyncio
    async def test_error_reported(self, engine, errors):
        assert await engine.check_existing_subscription(errors.append) is None
        assert errors[0].kind == ErrorKind.NOT_CONNECTED


class TestCrossMapping:
    """Test cross-platform product mapping."""

    @pytest.fixture
    def catalog(self):
        return [
            product_info("gold.monthly", "P1M", "gold"),
            product_info("gold.yearly", "P1Y", "gold"),
            product_info("silver.yearly", "P1Y", "silver"),
        ]

    def active(self, period, level, platform):
        dto = product_dto(f"ios.{level}.{period}", period, level, platform)
        return active_response(product=dto, platform=platform).to_active_subscription_info()

    def test_foreign_product_maps_by_period_and_level(self, engine, catalog):
        info = self.active("P1Y", "gold", "IOS")

        assert engine.is_foreign_platform(info) is True
        assert engine.cross_map_product(info, catalog).product_id == "gold.yearly"

    def test_foreign_product_without_match(self, engine, catalog):
        info = self.active("P1W", "gold", "IOS")

        assert engine.cross_map_product(info, catalog) is None

    def test_local_product_returned_unchanged(self, engine, catalog):
        info = self.active("P1Y", "gold", "android")

        assert engine.is_foreign_platform(info) is False
        assert engine.cross_map_product(info, catalog) == info.product

    def test_no_active_product(self, engine, catalog):
        info = active_response().to_active_subscription_info()

        assert engine.is_foreign_platform(info) is False
        assert engine.cross_map_product(info, catalog) is None
        assert engine.cross_map_product(None, catalog) is None
