"""Ledger subscription models and the per-session context."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from iap_sync.models.product import ProductInfo


class Platform(str, Enum):
    """Platform a purchase was made on."""

    ANDROID = "ANDROID"
    IOS = "IOS"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["Platform"]:
        """Case-insensitive lookup; None for unknown or missing tags."""
        if not value:
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


class SubscriptionResponseInfo(BaseModel):
    """Ledger description of the user's active purchase."""

    product: Optional[ProductInfo] = Field(None, description="Active product")
    vendor_name: str = Field(..., description="Vendor name")
    app_name: str = Field(..., description="Application name")
    app_platform_id: str = Field(..., description="Platform-specific application ID")
    platform: str = Field(..., description="Where the purchase was made")
    partner_user_id: str = Field(..., description="Partner-supplied user id")
    start_date: int = Field(..., description="Start (Unix millis)")
    end_date: int = Field(..., description="End (Unix millis)")
    status: str = Field(..., description="Subscription status")
    type: str = Field(..., description="Subscription type")


class ActiveSubscriptionInfo(BaseModel):
    """Authoritative ledger record for a user."""

    subscription: Optional[SubscriptionResponseInfo] = Field(None, description="Active purchase")
    product_update_timestamp: Optional[int] = Field(None, description="Catalog freshness timestamp")
    theme_config_timestamp: Optional[int] = Field(None, description="Theme config freshness timestamp")
    user_uuid: Optional[str] = Field(None, description="Server-assigned user UUID")
    base_service_level: Optional[str] = Field(None, description="Base entitlement tier")

    @property
    def product(self) -> Optional[ProductInfo]:
        return self.subscription.product if self.subscription else None

    @property
    def platform(self) -> Optional[str]:
        return self.subscription.platform if self.subscription else None


@dataclass
class SessionContext:
    """Per-session identity shared by reference with every component.

    ``owner_id`` is the caller-supplied partner user id; ``user_uuid`` is
    assigned by the ledger and only known after the first ledger fetch.
    """

    owner_id: str
    api_key: str
    user_uuid: Optional[str] = None
    launched_via_deep_link: bool = False
