"""Purchase platform boundary.

The engine talks to the device purchase platform through :class:`BillingClient`.
All callbacks may be invoked on a thread the engine does not own.
"""

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any, Callable, Optional, Protocol

from iap_sync.models import PlatformCatalogEntry, PurchaseFlowRequest, PurchaseRecord


class BillingResponseCode(IntEnum):
    """Platform response codes (Play Billing values)."""

    SERVICE_TIMEOUT = -3
    FEATURE_NOT_SUPPORTED = -2
    SERVICE_DISCONNECTED = -1
    OK = 0
    USER_CANCELED = 1
    SERVICE_UNAVAILABLE = 2
    BILLING_UNAVAILABLE = 3
    ITEM_UNAVAILABLE = 4
    DEVELOPER_ERROR = 5
    ERROR = 6
    ITEM_ALREADY_OWNED = 7
    ITEM_NOT_OWNED = 8
    NETWORK_ERROR = 12


@dataclass(frozen=True)
class BillingResult:
    """Outcome of a platform call."""

    response_code: BillingResponseCode
    debug_message: str = ""

    @property
    def is_ok(self) -> bool:
        return self.response_code == BillingResponseCode.OK


class ConnectionState(str, Enum):
    """Platform connection state."""

    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"


class BillingClientStateListener(Protocol):
    def on_billing_setup_finished(self, result: BillingResult) -> None: ...

    def on_billing_service_disconnected(self) -> None: ...


PurchasesUpdatedListener = Callable[[BillingResult, Optional[list[PurchaseRecord]]], None]
PurchasesResponseCallback = Callable[[BillingResult, list[PurchaseRecord]], None]
ProductDetailsResponseCallback = Callable[[BillingResult, list[PlatformCatalogEntry]], None]


class BillingClient(Protocol):
    """Device purchase platform client."""

    def start_connection(self, listener: BillingClientStateListener) -> None: ...

    def end_connection(self) -> None: ...

    def query_purchases_async(self, product_type: str, callback: PurchasesResponseCallback) -> None: ...

    def query_product_details_async(
        self,
        product_ids: list[str],
        product_type: str,
        callback: ProductDetailsResponseCallback,
    ) -> None: ...

    def launch_billing_flow(self, context: Any, request: PurchaseFlowRequest) -> BillingResult: ...

    def set_purchases_updated_listener(self, listener: PurchasesUpdatedListener) -> None: ...
