"""Purchase models - platform-reported purchases and purchase-flow requests."""

from enum import Enum, IntEnum
from typing import Optional

from pydantic import BaseModel, Field


class PurchaseState(IntEnum):
    """Purchase state as reported by the purchase platform."""

    UNSPECIFIED_STATE = 0
    PURCHASED = 1
    PENDING = 2


class ReplacementMode(str, Enum):
    """Replacement policy when an existing subscription is upgraded or replaced."""

    WITH_TIME_PRORATION = "WITH_TIME_PRORATION"
    CHARGE_PRORATED_PRICE = "CHARGE_PRORATED_PRICE"
    WITHOUT_PRORATION = "WITHOUT_PRORATION"
    CHARGE_FULL_PRICE = "CHARGE_FULL_PRICE"
    DEFERRED = "DEFERRED"


class PurchaseRecord(BaseModel):
    """Platform-reported purchase. Re-queried on every reconciliation pass, never persisted."""

    products: list[str] = Field(..., min_length=1, description="Purchased product IDs")
    purchase_token: str = Field(..., description="Opaque token, unique per purchase event")
    purchase_time: int = Field(..., description="Purchase time (Unix millis)")
    is_acknowledged: bool = Field(default=False, description="Acknowledgement flag")
    purchase_state: PurchaseState = Field(default=PurchaseState.PURCHASED, description="Purchase state")
    order_id: Optional[str] = Field(None, description="Platform order ID")

    @property
    def product_id(self) -> str:
        return self.products[0]

    @property
    def is_active(self) -> bool:
        """PURCHASED or UNSPECIFIED_STATE; PENDING purchases do not count."""
        return self.purchase_state in (PurchaseState.PURCHASED, PurchaseState.UNSPECIFIED_STATE)

    class Config:
        json_schema_extra = {
            "example": {
                "products": ["premium.gold.monthly"],
                "purchase_token": "opaque-token-abc123",
                "purchase_time": 1700000000000,
                "is_acknowledged": False,
                "purchase_state": PurchaseState.PURCHASED,
                "order_id": "GPA.1234-5678-9012-34567",
            }
        }


class SubscriptionUpdateParams(BaseModel):
    """Upgrade/replace parameters attached to a purchase flow."""

    old_purchase_token: str = Field(..., description="Token of the purchase being replaced")
    replacement_mode: ReplacementMode = Field(
        default=ReplacementMode.CHARGE_FULL_PRICE, description="Replacement policy"
    )


class PurchaseFlowRequest(BaseModel):
    """Parameters handed to the platform's purchase flow."""

    product_id: str = Field(..., description="Product to purchase")
    offer_token: str = Field(..., description="Selected offer token")
    obfuscated_account_id: str = Field(..., description="Ledger-assigned user UUID")
    obfuscated_profile_id: str = Field(..., description="Ledger-assigned user UUID")
    subscription_update: Optional[SubscriptionUpdateParams] = Field(
        None, description="Present for upgrade/replace flows"
    )

    @property
    def is_upgrade(self) -> bool:
        return self.subscription_update is not None
