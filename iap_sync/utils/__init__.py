"""Utility functions and helpers for the engine."""

from iap_sync.utils.billing_period import (
    BillingPeriod,
    PeriodTab,
    PeriodUnit,
    available_tabs,
    default_tab,
    parse_billing_period,
    try_parse_billing_period,
)
from iap_sync.utils.one_shot import OneShotFuture

__all__ = [
    # Billing periods
    "BillingPeriod",
    "PeriodUnit",
    "parse_billing_period",
    "try_parse_billing_period",
    # Period tabs
    "PeriodTab",
    "available_tabs",
    "default_tab",
    # Callback bridging
    "OneShotFuture",
]
