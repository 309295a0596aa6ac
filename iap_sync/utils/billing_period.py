"""Billing period parsing utilities.

Parses the ISO 8601 duration strings used by subscription catalogs ("P1W",
"P1M", "P1Y", ...) into a structured ``(count, unit)`` value. The period tab
convention (a plan belongs to the weekly/monthly/yearly tab according to the
unit suffix of its billing period) is applied on the structured value; suffix
matching only happens when parsing strings.
"""

import re
from enum import Enum
from typing import Iterable, NamedTuple, Optional

_PERIOD_PATTERN = re.compile(r"^(\d+)?([DWMY])$")


class PeriodUnit(str, Enum):
    """Unit of a billing period; the value is the ISO 8601 designator."""

    DAY = "D"
    WEEK = "W"
    MONTH = "M"
    YEAR = "Y"


class BillingPeriod(NamedTuple):
    """Structured billing period, e.g. ``BillingPeriod(1, PeriodUnit.MONTH)`` for "P1M"."""

    count: int
    unit: PeriodUnit

    def to_iso(self) -> str:
        return f"P{self.count}{self.unit.value}"

    def __str__(self) -> str:
        return self.to_iso()


class PeriodTab(str, Enum):
    """Period tabs offered to the user, in display priority order."""

    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"

    @property
    def unit(self) -> PeriodUnit:
        return _TAB_UNITS[self]

    def matches(self, period: Optional[BillingPeriod]) -> bool:
        """Check whether a billing period belongs on this tab."""
        return period is not None and period.unit == self.unit

    @classmethod
    def for_period(cls, period: Optional[BillingPeriod]) -> "PeriodTab":
        """Tab for a product's own period; YEARLY when the period is indeterminate."""
        if period is not None:
            if period.unit == PeriodUnit.WEEK:
                return cls.WEEKLY
            if period.unit == PeriodUnit.MONTH:
                return cls.MONTHLY
        return cls.YEARLY


_TAB_UNITS = {
    PeriodTab.WEEKLY: PeriodUnit.WEEK,
    PeriodTab.MONTHLY: PeriodUnit.MONTH,
    PeriodTab.YEARLY: PeriodUnit.YEAR,
}


def parse_billing_period(period: str) -> BillingPeriod:
    """Parse an ISO 8601 duration string into a :class:`BillingPeriod`.

    Supports the billing period formats used by subscription catalogs:
    - P[n]D - days (e.g., P7D = 7 days)
    - P[n]W - weeks (e.g., P1W = 1 week)
    - P[n]M - months (e.g., P1M = 1 month)
    - P[n]Y - years (e.g., P1Y = 1 year)

    Args:
        period: ISO 8601 duration string (e.g., "P1M", "P1Y", "P7D")

    Returns:
        BillingPeriod with count and unit

    Raises:
        ValueError: If the period string is invalid or unsupported

    Examples:
        >>> parse_billing_period("P1M")
        BillingPeriod(count=1, unit=<PeriodUnit.MONTH: 'M'>)

        >>> parse_billing_period("p2w").to_iso()
        'P2W'
    """
    if not period or not isinstance(period, str):
        raise ValueError("Period must be a non-empty string")

    period = period.strip().upper()

    if not period.startswith("P"):
        raise ValueError(f"Invalid period format: '{period}'. Must start with 'P'")

    duration_str = period[1:]
    if not duration_str:
        raise ValueError(f"Invalid period format: '{period}'. No duration specified")

    match = _PERIOD_PATTERN.match(duration_str)
    if not match:
        raise ValueError(
            f"Unsupported period format: '{period}'. "
            "Supported formats: P[n]D, P[n]W, P[n]M, P[n]Y"
        )

    number_str, unit = match.groups()
    number = int(number_str) if number_str else 1
    if number <= 0:
        raise ValueError(f"Period number must be positive, got: {number}")

    return BillingPeriod(number, PeriodUnit(unit))


def try_parse_billing_period(period: Optional[str]) -> Optional[BillingPeriod]:
    """Parse a billing period, returning None for missing or malformed values."""
    if period is None:
        return None
    try:
        return parse_billing_period(period)
    except (ValueError, TypeError):
        return None


def available_tabs(periods: Iterable[Optional[BillingPeriod]]) -> list[PeriodTab]:
    """Tabs that have at least one plan, in WEEKLY, MONTHLY, YEARLY order."""
    periods = list(periods)
    return [tab for tab in PeriodTab if any(tab.matches(p) for p in periods)]


def default_tab(periods: Iterable[Optional[BillingPeriod]]) -> PeriodTab:
    """Default tab when the user has no current plan: weekly > monthly > yearly."""
    tabs = available_tabs(periods)
    return tabs[0] if tabs else PeriodTab.YEARLY
