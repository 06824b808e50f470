# File: src/parkwise/application/billing_service.py
"""Billing use cases: quotes, the rate card and rate table changes"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
import logging

from ..domain.billing import BillingCalculator
from ..domain.models import BillingConfig, BillingType
from .dtos import BillingPreviewDTO, BillingQuoteDTO, RateLineDTO


class BillingService:

    def __init__(self, calculator: Optional[BillingCalculator] = None):
        self.calculator = calculator or BillingCalculator()
        self.logger = logging.getLogger(self.__class__.__name__)

    def calculate(
        self,
        entry_time: datetime,
        exit_time: datetime,
        billing_type: BillingType = BillingType.HOURLY
    ) -> BillingQuoteDTO:
        return BillingQuoteDTO.from_result(
            self.calculator.calculate(entry_time, exit_time, billing_type)
        )

    def estimate(
        self,
        entry_time: datetime,
        billing_type: BillingType = BillingType.HOURLY,
        now: Optional[datetime] = None
    ) -> BillingQuoteDTO:
        return BillingQuoteDTO.from_result(
            self.calculator.estimate(entry_time, billing_type, now)
        )

    def preview(self) -> BillingPreviewDTO:
        card = self.calculator.preview()
        return BillingPreviewDTO(
            currency=card["currency"],
            hourly_rates=[
                RateLineDTO(
                    duration=line["duration"],
                    rate=Decimal(str(line["rate"])),
                    description=line["description"],
                )
                for line in card["hourly_rates"]
            ],
            day_pass=card["day_pass"],
        )

    def get_config(self) -> Dict[str, Any]:
        config = self.calculator.config.to_dict()
        config["cap_overflow"] = self.calculator.cap_overflow
        return config

    def update_config(
        self,
        hourly_rates: Optional[List[Dict[str, Any]]] = None,
        day_pass_rate: Optional[Decimal] = None,
        currency: Optional[str] = None,
        cap_overflow: Optional[bool] = None
    ) -> Dict[str, Any]:
        """
        Replace parts of the rate table

        The merged table is validated as a whole before it takes effect, so a
        rejected update leaves the current rates in place.
        Raises: InvalidInputError
        """
        current = self.calculator.config.to_dict()
        merged = {
            "hourly_rates": hourly_rates if hourly_rates is not None else current["hourly_rates"],
            "day_pass_rate": day_pass_rate if day_pass_rate is not None else current["day_pass_rate"],
            "currency": currency or current["currency"],
        }
        new_config = BillingConfig.from_dict(merged)

        self.calculator.config = new_config
        if cap_overflow is not None:
            self.calculator.cap_overflow = cap_overflow
        self.logger.info(
            f"Billing config updated: {len(new_config.hourly_rates)} bands, "
            f"day pass {new_config.day_pass_rate} {new_config.currency}"
        )
        return self.get_config()
