"""Product models.

ProductInfo is the ledger's catalog entry (authoritative entitlement data).
PlatformCatalogEntry is the purchase platform's view of a product, used to
render price/period and to launch purchase flows.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from iap_sync.utils.billing_period import BillingPeriod, try_parse_billing_period


class ProductInfo(BaseModel):
    """Backend catalog entry, immutable once fetched."""

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "id": "65f1c2",
                "product_id": "premium.gold.monthly",
                "display_name": "Gold Monthly",
                "description": "Gold tier, billed monthly",
                "vendor_name": "Acme",
                "app_name": "AcmeCloud",
                "price": 4.99,
                "display_price": "$4.99",
                "platform": "ANDROID",
                "service_level": "gold",
                "is_active": True,
                "recurring_period_code": "P1M",
                "product_type": "SUBSCRIPTION",
                "entitlement_id": None,
            }
        },
    )

    id: str = Field(..., description="Ledger identifier")
    product_id: str = Field(..., description="Platform SKU")
    display_name: Optional[str] = Field(None, description="Human-readable name")
    description: Optional[str] = Field(None, description="Product description")
    vendor_name: str = Field(..., description="Vendor owning the product")
    app_name: str = Field(..., description="Application the product belongs to")
    price: float = Field(..., description="Numeric price")
    display_price: Optional[str] = Field(None, description="Formatted price string")
    platform: str = Field(..., description="Platform tag: ANDROID or IOS")
    service_level: str = Field(..., description="Opaque entitlement tier")
    is_active: bool = Field(..., description="Whether the product is on sale")
    recurring_period_code: Optional[str] = Field(None, description="ISO 8601 period, e.g. P1M")
    product_type: str = Field(..., description="Product type")
    entitlement_id: Optional[str] = Field(None, description="Entitlement identifier")

    @property
    def billing_period(self) -> Optional[BillingPeriod]:
        return try_parse_billing_period(self.recurring_period_code)


class PricingPhase(BaseModel):
    """One priced phase of an offer (e.g. introductory or full price)."""

    formatted_price: str = Field(..., description="Localized price string")
    price_amount_micros: int = Field(default=0, description="Price in micros")
    price_currency_code: str = Field(default="USD", description="ISO 4217 currency code")
    billing_period: str = Field(..., description="ISO 8601 billing period")
    billing_cycle_count: int = Field(default=0, description="Cycles in this phase, 0 = infinite")
    recurrence_mode: int = Field(default=1, description="Platform recurrence mode")

    @property
    def period(self) -> Optional[BillingPeriod]:
        return try_parse_billing_period(self.billing_period)


class SubscriptionOffer(BaseModel):
    """A purchasable offer of a subscription product."""

    offer_token: str = Field(..., description="Opaque token identifying the offer at launch")
    offer_id: Optional[str] = Field(None, description="Offer ID, None for the base plan")
    base_plan_id: Optional[str] = Field(None, description="Base plan identifier")
    pricing_phases: list[PricingPhase] = Field(default_factory=list, description="Ordered phases")


class PlatformCatalogEntry(BaseModel):
    """Purchase platform product details."""

    product_id: str = Field(..., description="Platform SKU")
    name: Optional[str] = Field(None, description="Product name")
    title: Optional[str] = Field(None, description="Product title")
    description: Optional[str] = Field(None, description="Product description")
    product_type: str = Field(default="subs", description="Platform product type")
    subscription_offer_details: list[SubscriptionOffer] = Field(
        default_factory=list, description="Offers in platform order"
    )

    def billing_period(self) -> Optional[BillingPeriod]:
        """Period of the last offer's first pricing phase, if parseable."""
        if not self.subscription_offer_details:
            return None
        phases = self.subscription_offer_details[-1].pricing_phases
        if not phases:
            return None
        return phases[0].period

    def display_price(self) -> str:
        """Formatted price of the first offer's first phase."""
        if not self.subscription_offer_details:
            return ""
        phases = self.subscription_offer_details[0].pricing_phases
        return phases[0].formatted_price if phases else ""
