"""Engine configuration models.

Models for config/sdk.yaml.
"""

from enum import Enum

from pydantic import BaseModel, Field

from iap_sync.models.subscription import Platform


class OfferSelectionRule(str, Enum):
    """Which offer to launch when a product has more than one.

    The catalog publisher appends a default/legacy offer as the final entry and
    keeps the current offer in the penultimate slot, hence the default.
    """

    FIRST = "first"
    LAST = "last"
    PENULTIMATE = "penultimate"


class LedgerConfig(BaseModel):
    """Backend ledger connection settings."""

    base_url: str = Field(..., description="Ledger base URL")
    timeout_seconds: float = Field(default=10.0, description="HTTP timeout")


class PlatformConfig(BaseModel):
    """Purchase platform settings."""

    local_platform: Platform = Field(default=Platform.ANDROID, description="Platform this engine runs on")
    product_type: str = Field(default="subs", description="Platform product type queried")
    offer_selection: OfferSelectionRule = Field(
        default=OfferSelectionRule.PENULTIMATE, description="Offer selection rule"
    )


class CacheConfig(BaseModel):
    """On-device cache settings."""

    directory: str = Field(default=".iap_cache", description="Cache directory")


class NotificationConfig(BaseModel):
    """Notification (toast) behavior."""

    duration_seconds: float = Field(default=3.0, description="Auto-dismiss delay for transient notifications")


class LoggingConfig(BaseModel):
    """Logging settings passed to configure_logging."""

    level: str = Field(default="INFO", description="Log level")
    json_format: bool = Field(default=True, description="JSON output if True, console otherwise")


class SdkConfig(BaseModel):
    """Complete sdk.yaml configuration."""

    ledger: LedgerConfig
    platform: PlatformConfig = Field(default_factory=PlatformConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    class Config:
        json_schema_extra = {
            "example": {
                "ledger": {"base_url": "https://ledger.example.com/", "timeout_seconds": 10},
                "platform": {
                    "local_platform": "ANDROID",
                    "product_type": "subs",
                    "offer_selection": "penultimate",
                },
                "cache": {"directory": ".iap_cache"},
                "notifications": {"duration_seconds": 3.0},
                "logging": {"level": "INFO", "json_format": True},
            }
        }
