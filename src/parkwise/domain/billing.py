# File: src/parkwise/domain/billing.py
"""
Billing Calculator

Stateless domain service that turns an entry/exit pair and a billing type
into an amount:

- HOURLY: elapsed time is rounded up to the next whole hour (minimum one
  hour) and matched against the configured rate bands. The matched band's
  rate is the amount; stays longer than the last band are charged the last
  band's rate (daily cap) unless overflow capping is disabled.
- DAY_PASS: flat day pass rate regardless of duration.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from .exceptions import NoRateBandError
from .models import (
    BillingConfig, BillingType, DEFAULT_BILLING_CONFIG,
    Money, RateBand, TimeRange
)


@dataclass(frozen=True)
class BillingResult:
    """Outcome of a billing calculation"""
    amount: Money
    duration: str
    duration_hours: int
    billing_type: BillingType
    applied_band: Optional[RateBand] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "amount": float(self.amount.amount),
            "currency": self.amount.currency,
            "duration": self.duration,
            "duration_hours": self.duration_hours,
            "billing_type": self.billing_type.value,
            "applied_band": self.applied_band.to_dict() if self.applied_band else None,
        }


class BillingCalculator:
    """
    Domain Service: computes parking charges from a BillingConfig
    """

    def __init__(self, config: Optional[BillingConfig] = None, cap_overflow: bool = True):
        self.config = config or DEFAULT_BILLING_CONFIG
        self.cap_overflow = cap_overflow
        self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def currency(self) -> str:
        return self.config.currency

    def calculate(
        self,
        entry_time: datetime,
        exit_time: datetime,
        billing_type: BillingType
    ) -> BillingResult:
        """
        Calculate the charge for a stay
        Raises: InvalidInputError if exit precedes entry,
                NoRateBandError if no band covers an HOURLY stay
        """
        billing_type = BillingType.parse(billing_type)
        time_range = TimeRange(entry_time, exit_time)
        hours = time_range.billable_hours

        if billing_type == BillingType.DAY_PASS:
            return BillingResult(
                amount=Money(self.config.day_pass_rate, self.currency),
                duration=time_range.format_duration(),
                duration_hours=hours,
                billing_type=billing_type,
            )

        band = self.hourly_band(hours)
        self.logger.debug(f"{hours}h billed with band {band.label()} at {band.rate}")
        return BillingResult(
            amount=Money(band.rate, self.currency),
            duration=time_range.format_duration(),
            duration_hours=hours,
            billing_type=billing_type,
            applied_band=band,
        )

    def hourly_band(self, hours: int) -> RateBand:
        band = self.config.find_band(hours)
        if band is not None:
            return band

        if self.cap_overflow and hours > self.config.max_hours:
            return self.config.hourly_rates[-1]

        raise NoRateBandError(hours)

    def estimate(
        self,
        entry_time: datetime,
        billing_type: BillingType,
        now: Optional[datetime] = None
    ) -> BillingResult:
        """Charge an active session would incur if it ended now"""
        now = now or datetime.now()
        return self.calculate(entry_time, max(now, entry_time), billing_type)

    def preview(self) -> Dict[str, Any]:
        """Human-readable rate card"""
        hourly: List[Dict[str, Any]] = []
        last_index = len(self.config.hourly_rates) - 1
        for index, band in enumerate(self.config.hourly_rates):
            is_cap = index == last_index and self.cap_overflow
            span = band.max_hours - band.min_hours
            hourly.append({
                "duration": f"{band.min_hours}+ hours" if is_cap else band.label(),
                "rate": float(band.rate),
                "description": "Maximum daily rate" if is_cap
                else f"Per {span} hour{'s' if span > 1 else ''}",
            })

        return {
            "currency": self.currency,
            "hourly_rates": hourly,
            "day_pass": {
                "rate": float(self.config.day_pass_rate),
                "description": "Unlimited parking for the day",
            },
        }
