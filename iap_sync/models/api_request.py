"""Ledger API request models."""

from pydantic import BaseModel, Field

from iap_sync.models.purchase import PurchaseRecord


class HandlePurchaseRequest(BaseModel):
    """Body of POST api/iap/android/handle."""

    productId: str = Field(..., description="Purchased product ID")
    purchaseTime: int = Field(..., description="Purchase time (Unix millis)")
    purchaseToken: str = Field(..., description="Platform purchase token")
    partnerUserId: str = Field(..., description="Owner of the purchase")

    class Config:
        json_schema_extra = {
            "example": {
                "productId": "premium.gold.monthly",
                "purchaseTime": 1700000000000,
                "purchaseToken": "opaque-token-abc123",
                "partnerUserId": "partner-42",
            }
        }

    @classmethod
    def from_purchase(cls, record: PurchaseRecord, owner_id: str) -> "HandlePurchaseRequest":
        return cls(
            productId=record.product_id,
            purchaseTime=record.purchase_time,
            purchaseToken=record.purchase_token,
            partnerUserId=owner_id,
        )
