#!/usr/bin/env python3
"""
Unit tests for the billing calculator
"""

import unittest
from datetime import datetime, timedelta
from decimal import Decimal

from parkwise.domain.billing import BillingCalculator
from parkwise.domain.exceptions import InvalidInputError, NoRateBandError
from parkwise.domain.models import BillingConfig, BillingType, RateBand


class TestBillingCalculator(unittest.TestCase):

    def setUp(self):
        self.calculator = BillingCalculator()
        self.entry = datetime(2024, 3, 15, 10, 0)

    def bill(self, duration, billing_type=BillingType.HOURLY):
        return self.calculator.calculate(self.entry, self.entry + duration, billing_type)

    def test_forty_five_minutes_hourly(self):
        result = self.bill(timedelta(minutes=45))
        self.assertEqual(result.amount.amount, Decimal('50'))
        self.assertEqual(result.amount.currency, "INR")
        self.assertEqual(result.duration, "0h 45m")
        self.assertEqual(result.duration_hours, 1)
        self.assertEqual((result.applied_band.min_hours, result.applied_band.max_hours), (0, 1))

    def test_day_pass_is_flat(self):
        entry = datetime(2024, 3, 15, 9, 0)
        result = self.calculator.calculate(entry, datetime(2024, 3, 15, 23, 0), BillingType.DAY_PASS)
        self.assertEqual(result.amount.amount, Decimal('150'))
        self.assertIsNone(result.applied_band)
        self.assertEqual(result.duration_hours, 14)

        short = self.bill(timedelta(minutes=5), BillingType.DAY_PASS)
        self.assertEqual(short.amount.amount, Decimal('150'))

    def test_band_edges(self):
        cases = [
            (timedelta(0), Decimal('50')),
            (timedelta(hours=1), Decimal('50')),
            (timedelta(hours=1, minutes=1), Decimal('100')),
            (timedelta(hours=3), Decimal('100')),
            (timedelta(hours=3, seconds=1), Decimal('150')),
            (timedelta(hours=6), Decimal('150')),
            (timedelta(hours=7), Decimal('200')),
            (timedelta(hours=24), Decimal('200')),
        ]
        for duration, expected in cases:
            with self.subTest(duration=duration):
                self.assertEqual(self.bill(duration).amount.amount, expected)

    def test_hourly_amount_never_decreases_with_duration(self):
        previous = Decimal('0')
        for minutes in range(0, 30 * 60, 7):
            amount = self.bill(timedelta(minutes=minutes)).amount.amount
            self.assertGreaterEqual(amount, previous, f"amount dropped at {minutes} minutes")
            previous = amount

    def test_stays_past_last_band_are_capped(self):
        result = self.bill(timedelta(hours=30))
        self.assertEqual(result.amount.amount, Decimal('200'))
        self.assertEqual(result.applied_band.max_hours, 24)

    def test_uncapped_overflow_has_no_band(self):
        calculator = BillingCalculator(cap_overflow=False)
        with self.assertRaises(NoRateBandError) as ctx:
            calculator.calculate(self.entry, self.entry + timedelta(hours=25), BillingType.HOURLY)
        self.assertEqual(ctx.exception.details, {"hours": 25})
        self.assertEqual(ctx.exception.code, "INVALID_INPUT")

    def test_exit_before_entry_is_rejected(self):
        with self.assertRaises(InvalidInputError):
            self.calculator.calculate(self.entry, self.entry - timedelta(minutes=1), BillingType.HOURLY)

    def test_billing_type_accepts_strings(self):
        result = self.calculator.calculate(self.entry, self.entry + timedelta(hours=2), "hourly")
        self.assertEqual(result.billing_type, BillingType.HOURLY)
        self.assertEqual(result.amount.amount, Decimal('100'))

    def test_estimate_uses_now_and_clamps_to_entry(self):
        estimate = self.calculator.estimate(self.entry, BillingType.HOURLY, now=self.entry + timedelta(hours=4))
        self.assertEqual(estimate.amount.amount, Decimal('150'))

        early = self.calculator.estimate(self.entry, BillingType.HOURLY, now=self.entry - timedelta(hours=1))
        self.assertEqual(early.amount.amount, Decimal('50'))

    def test_custom_config(self):
        config = BillingConfig(
            hourly_rates=(RateBand(0, 2, Decimal('3')), RateBand(2, 12, Decimal('8'))),
            day_pass_rate=Decimal('10'),
            currency="USD",
        )
        calculator = BillingCalculator(config)
        result = calculator.calculate(self.entry, self.entry + timedelta(hours=5), BillingType.HOURLY)
        self.assertEqual(result.amount.amount, Decimal('8'))
        self.assertEqual(result.amount.currency, "USD")
        self.assertEqual(result.to_dict()["applied_band"], {"min_hours": 2, "max_hours": 12, "rate": 8.0})

    def test_preview(self):
        card = self.calculator.preview()
        self.assertEqual(card["currency"], "INR")
        self.assertEqual(len(card["hourly_rates"]), 4)
        self.assertEqual(card["hourly_rates"][0], {"duration": "0-1 hour", "rate": 50.0, "description": "Per 1 hour"})
        self.assertEqual(card["hourly_rates"][-1]["duration"], "6+ hours")
        self.assertEqual(card["hourly_rates"][-1]["description"], "Maximum daily rate")
        self.assertEqual(card["day_pass"]["rate"], 150.0)


if __name__ == '__main__':
    unittest.main()
