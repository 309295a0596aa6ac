"""Ledger API response models.

Field names match the ledger's JSON schema; ``to_*`` methods map them to
domain models.
"""

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, Field

from iap_sync.models.product import ProductInfo
from iap_sync.models.subscription import ActiveSubscriptionInfo, SubscriptionResponseInfo

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Envelope wrapping every ledger payload."""

    code: int = Field(default=200, description="Ledger status code")
    title: Optional[str] = Field(None, description="Short status title")
    message: Optional[str] = Field(None, description="Status message")
    data: T


class ProductDataDto(BaseModel):
    """Catalog entry as returned by GET api/core/app/product."""

    id: str
    productId: str
    displayName: Optional[str] = None
    description: Optional[str] = None
    vendorName: str
    appName: str
    price: float
    displayPrice: Optional[str] = None
    platform: str
    serviceLevel: str
    isActive: bool
    recurringPeriodCode: Optional[str] = None
    productType: str
    entitlementId: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "id": "65f1c2",
                "productId": "premium.gold.monthly",
                "displayName": "Gold Monthly",
                "vendorName": "Acme",
                "appName": "AcmeCloud",
                "price": 4.99,
                "displayPrice": "$4.99",
                "platform": "ANDROID",
                "serviceLevel": "gold",
                "isActive": True,
                "recurringPeriodCode": "P1M",
                "productType": "SUBSCRIPTION",
            }
        }

    def to_product_info(self) -> ProductInfo:
        return ProductInfo(
            id=self.id,
            product_id=self.productId,
            display_name=self.displayName,
            description=self.description,
            vendor_name=self.vendorName,
            app_name=self.appName,
            price=self.price,
            display_price=self.displayPrice,
            platform=self.platform,
            service_level=self.serviceLevel,
            is_active=self.isActive,
            recurring_period_code=self.recurringPeriodCode,
            product_type=self.productType,
            entitlement_id=self.entitlementId,
        )


class SubscriptionResponseDto(BaseModel):
    """Active purchase description nested in the active-subscription response."""

    product: Optional[ProductDataDto] = None
    vendorName: str
    appName: str
    appPlatformID: str
    platform: str
    partnerUserId: str
    startDate: int
    endDate: int
    status: str
    type: str

    def to_subscription_response_info(self) -> SubscriptionResponseInfo:
        return SubscriptionResponseInfo(
            product=self.product.to_product_info() if self.product else None,
            vendor_name=self.vendorName,
            app_name=self.appName,
            app_platform_id=self.appPlatformID,
            platform=self.platform,
            partner_user_id=self.partnerUserId,
            start_date=self.startDate,
            end_date=self.endDate,
            status=self.status,
            type=self.type,
        )


class ActiveSubscriptionResponse(BaseModel):
    """Response for GET api/iap/{userId}/Active."""

    subscriptionResponseDTO: Optional[SubscriptionResponseDto] = None
    productUpdateTimeStamp: Optional[int] = None
    themConfigTimeStamp: Optional[int] = None  # ledger spells it this way
    userUUID: str
    baseServiceLevel: Optional[str] = None

    def to_active_subscription_info(self) -> ActiveSubscriptionInfo:
        subscription = self.subscriptionResponseDTO
        return ActiveSubscriptionInfo(
            subscription=subscription.to_subscription_response_info() if subscription else None,
            product_update_timestamp=self.productUpdateTimeStamp,
            theme_config_timestamp=self.themConfigTimeStamp,
            user_uuid=self.userUUID,
            base_service_level=self.baseServiceLevel,
        )


class HandlePurchaseResponse(BaseModel):
    """Response for POST api/iap/android/handle.

    ``accepted`` defaults to True for ledgers that signal rejection only through
    the HTTP status.
    """

    accepted: bool = Field(default=True, description="Whether the ledger accepted the purchase")
    product: Optional[ProductDataDto] = None
    vendorName: Optional[str] = None
    appName: Optional[str] = None
    appPlatformID: Optional[str] = None
    platform: Optional[str] = None
    partnerUserId: Optional[str] = None
    startDate: Optional[int] = None
    endDate: Optional[int] = None
    status: Optional[str] = None
    type: Optional[str] = None
