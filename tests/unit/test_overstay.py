#!/usr/bin/env python3
"""
Unit tests for the overstay detector
"""

import unittest
from datetime import datetime, timedelta
from decimal import Decimal

from parkwise.domain.exceptions import InvalidInputError
from parkwise.domain.models import (
    BillingType, OverstaySeverity, ParkingSession, SessionStatus, Slot, SlotStatus,
    SlotType, Vehicle, VehicleType
)
from parkwise.domain.overstay import DEFAULT_THRESHOLDS, OverstayDetector, OverstayThreshold


NOW = datetime(2024, 3, 15, 22, 0)


def make_session(plate, vehicle_type, hours_ago, billing_type=BillingType.HOURLY, slot_number="B1-09"):
    return ParkingSession(
        Vehicle(plate, vehicle_type),
        Slot(slot_number, SlotType.REGULAR, SlotStatus.OCCUPIED),
        NOW - timedelta(hours=hours_ago),
        billing_type,
    )


class TestOverstayThreshold(unittest.TestCase):

    def test_from_expected_tiers(self):
        threshold = OverstayThreshold.from_expected(VehicleType.CAR, BillingType.HOURLY, 2)
        self.assertEqual(
            (threshold.warning_hours, threshold.alert_hours, threshold.critical_hours),
            (2, 3, 4),
        )

    def test_tiers_must_be_ordered(self):
        with self.assertRaises(InvalidInputError):
            OverstayThreshold(VehicleType.CAR, BillingType.HOURLY, 8, 6, 12)
        with self.assertRaises(InvalidInputError):
            OverstayThreshold(VehicleType.CAR, BillingType.HOURLY, 0, 6, 12)

    def test_defaults_cover_every_combination(self):
        pairs = {(t.vehicle_type, t.billing_type) for t in DEFAULT_THRESHOLDS}
        self.assertEqual(len(pairs), len(VehicleType) * len(BillingType))

    def test_dict_round_trip(self):
        threshold = DEFAULT_THRESHOLDS[0]
        self.assertEqual(OverstayThreshold.from_dict(threshold.to_dict()), threshold)


class TestOverstayDetector(unittest.TestCase):

    def setUp(self):
        self.detector = OverstayDetector()

    def test_five_hours_past_a_two_hour_threshold_is_critical(self):
        detector = OverstayDetector(
            thresholds=[OverstayThreshold.from_expected(VehicleType.CAR, BillingType.HOURLY, 2)]
        )
        alerts = detector.detect([make_session("KA01AB1234", VehicleType.CAR, 5)], NOW)
        self.assertEqual(len(alerts), 1)
        self.assertEqual(alerts[0].severity, OverstaySeverity.CRITICAL)
        self.assertEqual(alerts[0].expected_duration, 4)
        self.assertEqual(alerts[0].overstay_hours, 1.0)

    def test_car_hourly_tiers(self):
        cases = [
            (5, None),
            (6, OverstaySeverity.WARNING),
            (9, OverstaySeverity.ALERT),
            (13, OverstaySeverity.CRITICAL),
        ]
        for hours, expected in cases:
            with self.subTest(hours=hours):
                alerts = self.detector.detect([make_session("KA01AB1234", VehicleType.CAR, hours)], NOW)
                if expected is None:
                    self.assertEqual(alerts, [])
                else:
                    self.assertEqual(alerts[0].severity, expected)

    def test_day_pass_uses_its_own_thresholds(self):
        session = make_session("KA01AB1234", VehicleType.CAR, 13, BillingType.DAY_PASS)
        self.assertEqual(self.detector.detect([session], NOW), [])

    def test_alert_metrics(self):
        alert = self.detector.detect([make_session("KA01AB1234", VehicleType.CAR, 13)], NOW)[0]
        self.assertEqual(alert.duration, "13h 0m")
        self.assertEqual(alert.duration_hours, 13.0)
        self.assertEqual(alert.expected_duration, 12)
        self.assertEqual(alert.lost_revenue, Decimal('50.00'))
        self.assertEqual(alert.estimated_cost, Decimal('200'))
        self.assertEqual(alert.to_dict()["severity"], "critical")

    def test_ordering_by_severity_then_duration(self):
        sessions = [
            make_session("WARN1", VehicleType.CAR, 6.5, slot_number="B1-09"),
            make_session("CRIT1", VehicleType.BIKE, 9, slot_number="B1-10"),
            make_session("ALERT1", VehicleType.CAR, 9, slot_number="B1-11"),
            make_session("CRIT2", VehicleType.CAR, 15, slot_number="B1-12"),
            make_session("WARN2", VehicleType.CAR, 7, slot_number="B1-13"),
        ]
        plates = [a.number_plate for a in self.detector.detect(sessions, NOW)]
        self.assertEqual(plates, ["CRIT2", "CRIT1", "ALERT1", "WARN2", "WARN1"])

    def test_completed_sessions_and_unknown_pairs_are_ignored(self):
        completed = make_session("DONE1", VehicleType.CAR, 20)
        completed.close(NOW, Decimal('200'))
        self.assertEqual(completed.status, SessionStatus.COMPLETED)

        car_only = OverstayDetector(thresholds=[
            OverstayThreshold(VehicleType.CAR, BillingType.HOURLY, 6, 8, 12)
        ])
        bike = make_session("BIKE1", VehicleType.BIKE, 20)
        self.assertEqual(car_only.detect([completed, bike], NOW), [])

    def test_detect_does_not_mutate_sessions(self):
        session = make_session("KA01AB1234", VehicleType.CAR, 13)
        self.detector.detect([session], NOW)
        self.assertTrue(session.is_active)
        self.assertIsNone(session.exit_time)

    def test_summarize_completed_sessions(self):
        overstayed = make_session("LATE1", VehicleType.CAR, 10)
        overstayed.close(NOW, Decimal('200'))
        on_time = make_session("ONTIME1", VehicleType.CAR, 2)
        on_time.close(NOW, Decimal('100'))

        stats = self.detector.summarize([overstayed, on_time])
        self.assertEqual(stats.total_overstays, 1)
        self.assertEqual(stats.by_vehicle_type, {"CAR": 1})
        self.assertEqual(stats.by_severity, {"warning": 0, "alert": 1, "critical": 0})
        self.assertEqual(stats.average_overstay_hours, 2.0)
        self.assertEqual(stats.total_lost_revenue, Decimal('100'))


if __name__ == '__main__':
    unittest.main()
