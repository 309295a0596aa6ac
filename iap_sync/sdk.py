"""Engine entry point - wires a SubscriptionSession from configuration."""

from typing import Optional

from iap_sync.config import Config, get_config
from iap_sync.logging_config import configure_logging, get_logger
from iap_sync.models import SessionContext
from iap_sync.repositories.cache_store import CacheStore
from iap_sync.repositories.ledger_repository import SubscriptionLedgerClient
from iap_sync.services.connectivity import ConnectivityObserver, NetworkMonitor
from iap_sync.services.ledger_api import HttpLedgerApi, LedgerApi
from iap_sync.services.notifications import ToastService
from iap_sync.services.platform import BillingClient
from iap_sync.services.platform_connector import PlatformConnector
from iap_sync.services.purchase_orchestrator import PurchaseOrchestrator
from iap_sync.services.purchase_updates import PurchaseUpdateBridge
from iap_sync.services.reconciliation import ReconciliationEngine
from iap_sync.services.session import AnalyticsTracker, SubscriptionSession, ThemeLoader

logger = get_logger(__name__)


def build_session(
    billing_client: BillingClient,
    network_monitor: NetworkMonitor,
    theme_loader: ThemeLoader,
    analytics: Optional[AnalyticsTracker] = None,
    config: Optional[Config] = None,
    ledger_api: Optional[LedgerApi] = None,
    configure_logs: bool = True,
) -> SubscriptionSession:
    """Build a session and all of its collaborators.

    Args:
        billing_client: Device purchase platform client
        network_monitor: Host reachability source
        theme_loader: Theme/config loader
        analytics: Analytics transport (optional)
        config: Configuration. If not provided, uses global config.
        ledger_api: Ledger transport. If not provided, an HttpLedgerApi is built
        configure_logs: Configure structlog from the logging section

    Returns:
        SubscriptionSession ready for initialize()
    """
    config = config or get_config()
    settings = config.settings
    if configure_logs:
        configure_logging(log_level=settings.logging.level, json_format=settings.logging.json_format)

    context = SessionContext(owner_id="", api_key="")
    api = ledger_api or HttpLedgerApi(config.ledger_base_url, context, timeout=config.ledger_timeout)
    cache = CacheStore(config.cache_directory, network_monitor.is_network_available)
    ledger = SubscriptionLedgerClient(api, cache)

    connector = PlatformConnector(billing_client, product_type=config.product_type)
    reconciliation = ReconciliationEngine(connector, ledger, context, local_platform=config.local_platform)
    orchestrator = PurchaseOrchestrator(connector, context, offer_selection=config.offer_selection)
    bridge = PurchaseUpdateBridge(reconciliation)
    connector.set_purchases_updated_listener(bridge.on_purchases_updated)

    toasts = ToastService(duration_seconds=config.notification_duration)
    connectivity = ConnectivityObserver(network_monitor, toasts)

    logger.info(
        "session_built",
        ledger_base_url=config.ledger_base_url,
        local_platform=config.local_platform.value,
        offer_selection=config.offer_selection.value,
        cache_directory=str(config.cache_directory),
    )
    return SubscriptionSession(
        context=context,
        connector=connector,
        ledger=ledger,
        reconciliation=reconciliation,
        orchestrator=orchestrator,
        bridge=bridge,
        connectivity=connectivity,
        toasts=toasts,
        theme_loader=theme_loader,
        analytics=analytics,
    )
