#!/usr/bin/env python3
"""
Integration tests for overstay monitoring and dashboard figures
"""

import unittest
from datetime import datetime, timedelta
from decimal import Decimal

from parkwise.domain.exceptions import InvalidInputError

from . import IntegrationTestBase


class TestOverstayMonitoring(IntegrationTestBase):

    def setUp(self):
        super().setUp()
        self.seed()
        self.car = self.park("CAR01", "CAR", entry_time=self.NOW - timedelta(hours=13)).session
        self.bike = self.park("BIKE01", "BIKE", entry_time=self.NOW - timedelta(hours=5)).session
        self.park("EV01", "EV", entry_time=self.NOW - timedelta(hours=1))
        self.park("PASS01", "CAR", entry_time=self.NOW - timedelta(hours=13), billing_type="DAY_PASS")

    def test_detect_overstays(self):
        alerts = self.app.overstay_service.detect_overstays(now=self.NOW)

        self.assertEqual([a.number_plate for a in alerts], ["CAR01", "BIKE01"])
        critical, warning = alerts
        self.assertEqual(critical.severity, "critical")
        self.assertEqual(critical.expected_duration, 12)
        self.assertEqual(critical.duration, "13h 0m")
        self.assertEqual(critical.estimated_cost, Decimal('200'))
        self.assertEqual(critical.lost_revenue, Decimal('50.00'))
        self.assertEqual(warning.severity, "warning")
        self.assertEqual(warning.slot_number, "B1-10")

    def test_detection_leaves_sessions_active(self):
        self.app.overstay_service.detect_overstays(now=self.NOW)
        self.assertEqual(self.parking.get_current_sessions().total, 4)

    def test_run_detection_notifies(self):
        run = self.app.overstay_service.run_detection(now=self.NOW)

        self.assertEqual(run.alerts_found, 2)
        self.assertEqual(run.notifications_sent, 2)
        self.assertEqual(run.by_severity, {"warning": 1, "alert": 0, "critical": 1})
        self.assertEqual(run.errors, [])
        self.assertEqual(self.app.notifications.notified, [self.car.id, self.bike.id])

        published = self.messages("overstay.detected")
        self.assertEqual([m.data["number_plate"] for m in published], ["CAR01", "BIKE01"])

    def test_quiet_lot_runs_clean(self):
        run = self.app.overstay_service.run_detection(now=self.NOW - timedelta(hours=8))
        self.assertEqual(run.alerts_found, 0)
        self.assertEqual(self.app.notifications.notified, [])

    def test_overstay_stats(self):
        self.parking.close_session("CAR01", exit_time=self.NOW - timedelta(hours=3))

        stats = self.app.overstay_service.get_overstay_stats(period_days=7, now=self.NOW)
        self.assertEqual(stats.total_overstays, 1)
        self.assertEqual(stats.by_vehicle_type, {"CAR": 1})
        self.assertEqual(stats.by_severity["alert"], 1)
        self.assertEqual(stats.average_overstay_hours, 2.0)
        self.assertEqual(stats.total_lost_revenue, Decimal('100'))
        self.assertEqual(stats.currency, "INR")
        self.assertEqual(stats.active_alerts, {"warning": 1, "alert": 0, "critical": 0})

        with self.assertRaises(InvalidInputError):
            self.app.overstay_service.get_overstay_stats(period_days=0, now=self.NOW)

    def test_overstay_stats_window_is_by_entry_time(self):
        self.park("LONG01", "CAR", entry_time=self.NOW - timedelta(hours=30))
        self.parking.close_session("LONG01", exit_time=self.NOW - timedelta(hours=2))
        self.parking.close_session("CAR01", exit_time=self.NOW - timedelta(hours=3))

        # LONG01 left inside the last day but entered before it
        stats = self.app.overstay_service.get_overstay_stats(period_days=1, now=self.NOW)
        self.assertEqual(stats.total_overstays, 1)
        self.assertEqual(stats.by_severity["critical"], 0)

        stats = self.app.overstay_service.get_overstay_stats(period_days=2, now=self.NOW)
        self.assertEqual(stats.total_overstays, 2)
        self.assertEqual(stats.by_severity["critical"], 1)


class TestDashboard(IntegrationTestBase):

    def setUp(self):
        super().setUp()
        self.seed()
        self.dashboard = self.app.dashboard_service

    def test_occupancy(self):
        self.park("CAR01", "CAR")
        self.park("EV01", "EV")
        self.slots.set_maintenance("B1-15")

        stats = self.dashboard.get_dashboard_stats()
        self.assertEqual(stats.total_slots, 15)
        self.assertEqual(stats.occupied_slots, 2)
        self.assertEqual(stats.maintenance_slots, 1)
        self.assertEqual(stats.available_slots, 12)
        self.assertEqual(stats.occupancy_rate, 13.33)
        self.assertEqual(stats.active_sessions, 2)
        self.assertEqual(stats.active_vehicles, {"CAR": 1, "EV": 1})

        by_type = {row.slot_type: row for row in stats.by_slot_type}
        self.assertEqual(by_type["EV"].occupancy_rate, 50.0)
        self.assertEqual(by_type["REGULAR"].maintenance, 1)
        self.assertEqual(by_type["COMPACT"].occupied, 0)

    def test_empty_lot(self):
        empty = self.dashboard.get_dashboard_stats()
        self.assertEqual(empty.occupancy_rate, 0.0)
        self.assertEqual(empty.active_vehicles, {})

    def visit(self, plate, entry, hours, billing_type="HOURLY"):
        self.park(plate, "CAR", entry_time=entry, billing_type=billing_type)
        self.parking.close_session(plate, exit_time=entry + timedelta(hours=hours))

    def test_revenue_periods(self):
        self.visit("TODAY1", datetime(2024, 3, 15, 10, 0), 2)
        self.visit("WEEK1", datetime(2024, 3, 12, 8, 0), 9, "DAY_PASS")
        self.visit("MONTH1", datetime(2024, 3, 2, 9, 0), 0.75)
        self.visit("FEB1", datetime(2024, 2, 28, 9, 0), 1)

        revenue = self.dashboard.get_revenue_stats(now=self.NOW)
        self.assertEqual(revenue.currency, "INR")
        self.assertEqual((revenue.today.revenue, revenue.today.sessions), (Decimal('100'), 1))
        self.assertEqual((revenue.last_7_days.revenue, revenue.last_7_days.sessions), (Decimal('250'), 2))
        self.assertEqual((revenue.month_to_date.revenue, revenue.month_to_date.sessions), (Decimal('300'), 3))
        self.assertEqual(revenue.by_billing_type["HOURLY"].revenue, Decimal('150'))
        self.assertEqual(revenue.by_billing_type["DAY_PASS"].sessions, 1)

    def busy_day(self):
        self.visit("CAR01", datetime(2024, 3, 15, 10, 0), 2)
        self.visit("CAR02", datetime(2024, 3, 15, 10, 30), 1)
        self.visit("CAR03", datetime(2024, 3, 15, 16, 0), 1.25)
        self.park("CAR04", "CAR", entry_time=datetime(2024, 3, 15, 17, 30))

    def test_occupancy_trends(self):
        self.busy_day()

        today = self.dashboard.get_occupancy_trends("DAY", now=self.NOW)
        self.assertEqual(len(today), 24)
        self.assertEqual(today[10].period, "10:00")
        self.assertEqual(today[10].timestamp, datetime(2024, 3, 15, 10, 0))
        self.assertEqual(
            {p.period: p.occupancy for p in today if p.occupancy},
            {"10:00": 2, "11:00": 2, "16:00": 1, "17:00": 2},
        )

        week = self.dashboard.get_occupancy_trends("week", now=self.NOW)
        self.assertEqual(len(week), 7)
        self.assertEqual([p.occupancy for p in week], [0, 0, 0, 0, 0, 0, 4])
        self.assertEqual(len(self.dashboard.get_occupancy_trends("MONTH", now=self.NOW)), 30)

    def test_activity_stats(self):
        self.busy_day()

        activity = self.dashboard.get_activity_stats(now=self.NOW)
        self.assertEqual((activity.entries_last_hour, activity.exits_last_hour), (1, 1))
        self.assertEqual(activity.average_parking_duration, "1h 25m")
        self.assertEqual(
            [(p.hour, p.entries) for p in activity.peak_hours],
            [(10, 2), (16, 1), (17, 1)],
        )

    def test_activity_of_a_quiet_lot(self):
        activity = self.dashboard.get_activity_stats(now=self.NOW)
        self.assertEqual(activity.average_parking_duration, "0h 0m")
        self.assertEqual(activity.peak_hours, [])


if __name__ == '__main__':
    unittest.main()
