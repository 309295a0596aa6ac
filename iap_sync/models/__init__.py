"""Pydantic models for the ledger wire format, domain objects and view state."""

# Result type and errors
from .result import (
    EngineError,
    ErrorKind,
    Failure,
    Result,
    Success,
)

# Configuration models
from .config import (
    CacheConfig,
    LedgerConfig,
    LoggingConfig,
    NotificationConfig,
    OfferSelectionRule,
    PlatformConfig,
    SdkConfig,
)

# Product models
from .product import (
    PlatformCatalogEntry,
    PricingPhase,
    ProductInfo,
    SubscriptionOffer,
)

# Purchase models
from .purchase import (
    PurchaseFlowRequest,
    PurchaseRecord,
    PurchaseState,
    ReplacementMode,
    SubscriptionUpdateParams,
)

# Subscription models
from .subscription import (
    ActiveSubscriptionInfo,
    Platform,
    SessionContext,
    SubscriptionResponseInfo,
)

# Purchase events
from .events import (
    InvalidTransitionError,
    PurchaseAttempt,
    PurchaseEvent,
)

# Ledger API models
from .api_request import HandlePurchaseRequest
from .api_response import (
    ActiveSubscriptionResponse,
    ApiResponse,
    HandlePurchaseResponse,
    ProductDataDto,
    SubscriptionResponseDto,
)

# View state
from .session import SessionViewState, ToastState

__all__ = [
    # Result
    "EngineError",
    "ErrorKind",
    "Failure",
    "Result",
    "Success",
    # Configuration
    "CacheConfig",
    "LedgerConfig",
    "LoggingConfig",
    "NotificationConfig",
    "OfferSelectionRule",
    "PlatformConfig",
    "SdkConfig",
    # Product
    "PlatformCatalogEntry",
    "PricingPhase",
    "ProductInfo",
    "SubscriptionOffer",
    # Purchase
    "PurchaseFlowRequest",
    "PurchaseRecord",
    "PurchaseState",
    "ReplacementMode",
    "SubscriptionUpdateParams",
    # Subscription
    "ActiveSubscriptionInfo",
    "Platform",
    "SessionContext",
    "SubscriptionResponseInfo",
    # Events
    "InvalidTransitionError",
    "PurchaseAttempt",
    "PurchaseEvent",
    # Ledger API
    "HandlePurchaseRequest",
    "ActiveSubscriptionResponse",
    "ApiResponse",
    "HandlePurchaseResponse",
    "ProductDataDto",
    "SubscriptionResponseDto",
    # View state
    "SessionViewState",
    "ToastState",
]
