"""Read-only view state exposed to the presentation layer."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from iap_sync.models.product import PlatformCatalogEntry, ProductInfo
from iap_sync.models.purchase import PurchaseRecord
from iap_sync.utils.billing_period import PeriodTab


class ToastState(BaseModel):
    """Notification currently shown to the user."""

    model_config = ConfigDict(frozen=True)

    is_visible: bool = False
    heading: str = ""
    message: str = ""
    is_success: bool = False
    is_pending: bool = False

    @property
    def persists(self) -> bool:
        """Success and pending notifications stay until dismissed."""
        return self.is_success or self.is_pending


class SessionViewState(BaseModel):
    """Snapshot of the session state machine."""

    model_config = ConfigDict(frozen=True)

    is_initialized: bool = False
    is_loading: bool = True
    no_connection_and_no_cache: bool = False
    is_connection_started: bool = False
    is_foreign_platform: bool = False
    is_current_product_being_updated: bool = False
    selected_tab: Optional[PeriodTab] = None
    selected_plan: int = -1
    available_tabs: list[PeriodTab] = Field(default_factory=list)
    products: Optional[list[ProductInfo]] = None
    catalog_entries: Optional[list[PlatformCatalogEntry]] = None
    filtered_entries: Optional[list[PlatformCatalogEntry]] = None
    active_product: Optional[ProductInfo] = None
    current_product: Optional[ProductInfo] = None
    current_product_details: Optional[PlatformCatalogEntry] = None
    current_purchase: Optional[PurchaseRecord] = None
    base_service_level: Optional[str] = None
    toast: ToastState = Field(default_factory=ToastState)
