# File: src/parkwise/application/dashboard_service.py
"""Occupancy and revenue figures for the operator dashboard"""

from collections import Counter
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple
import logging

from ..domain.analytics import ParkingAnalytics, average_duration, calendar_window
from ..domain.billing import BillingCalculator
from ..domain.models import BillingType, ReportPeriod, SlotStatus, SlotType, format_duration
from ..infrastructure.repositories import UnitOfWork
from .dtos import (
    ActivityStatsDTO, DashboardStatsDTO, HourlyEntriesDTO, OccupancyPointDTO, RevenuePeriodDTO,
    RevenueStatsDTO, SlotTypeBreakdownDTO
)


def _rate(part: int, whole: int) -> float:
    return round(part * 100.0 / whole, 2) if whole else 0.0


class DashboardService:

    PEAK_HOURS = 5

    def __init__(
        self,
        uow_factory: Callable[[], UnitOfWork],
        calculator: Optional[BillingCalculator] = None,
        analytics: Optional[ParkingAnalytics] = None
    ):
        self.uow_factory = uow_factory
        self.calculator = calculator or BillingCalculator()
        self.analytics = analytics or ParkingAnalytics()
        self.logger = logging.getLogger(self.__class__.__name__)

    def get_dashboard_stats(self) -> DashboardStatsDTO:
        with self.uow_factory() as uow:
            counts = uow.slots.counts_by_type_and_status()
            active_vehicles = uow.sessions.count_active_by_vehicle_type()

        breakdown = []
        totals = {status: 0 for status in SlotStatus}
        for slot_type in SlotType:
            by_status = counts.get(slot_type.value, {})
            row = {status: by_status.get(status.value, 0) for status in SlotStatus}
            total = sum(row.values())
            for status, count in row.items():
                totals[status] += count
            if total:
                breakdown.append(SlotTypeBreakdownDTO(
                    slot_type=slot_type.value,
                    total=total,
                    available=row[SlotStatus.AVAILABLE],
                    occupied=row[SlotStatus.OCCUPIED],
                    maintenance=row[SlotStatus.MAINTENANCE],
                    occupancy_rate=_rate(row[SlotStatus.OCCUPIED], total),
                ))

        total_slots = sum(totals.values())
        return DashboardStatsDTO(
            total_slots=total_slots,
            available_slots=totals[SlotStatus.AVAILABLE],
            occupied_slots=totals[SlotStatus.OCCUPIED],
            maintenance_slots=totals[SlotStatus.MAINTENANCE],
            occupancy_rate=_rate(totals[SlotStatus.OCCUPIED], total_slots),
            by_slot_type=breakdown,
            active_sessions=sum(active_vehicles.values()),
            active_vehicles=active_vehicles,
        )

    def get_revenue_stats(self, now: Optional[datetime] = None) -> RevenueStatsDTO:
        """Revenue of completed sessions by exit time: today, last 7 days, month to date"""
        now = now or datetime.now()
        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
        start_of_month = start_of_day.replace(day=1)

        with self.uow_factory() as uow:
            today = uow.sessions.revenue_by_billing_type(start_of_day, now)
            week = uow.sessions.revenue_by_billing_type(now - timedelta(days=7), now)
            month = uow.sessions.revenue_by_billing_type(start_of_month, now)

        return RevenueStatsDTO(
            currency=self.calculator.currency,
            generated_at=now,
            today=self._period(today),
            last_7_days=self._period(week),
            month_to_date=self._period(month),
            by_billing_type={
                billing_type.value: self._period({k: v for k, v in month.items() if k == billing_type.value})
                for billing_type in BillingType
            },
        )

    @staticmethod
    def _period(rows: Dict[str, Tuple[Decimal, int]]) -> RevenuePeriodDTO:
        revenue = sum((amount for amount, _ in rows.values()), Decimal('0'))
        return RevenuePeriodDTO(
            revenue=revenue.quantize(Decimal('0.01')),
            sessions=sum(count for _, count in rows.values()),
        )

    def get_occupancy_trends(
        self,
        period: ReportPeriod = ReportPeriod.DAY,
        now: Optional[datetime] = None
    ) -> List[OccupancyPointDTO]:
        """Sessions present per hour today (DAY) or per day (WEEK: 7, MONTH: 30 from the 1st)"""
        period = ReportPeriod.parse(period)
        now = now or datetime.now()
        window = calendar_window(period, now)

        with self.uow_factory() as uow:
            sessions = uow.sessions.find_overlapping(window.start, now)

        points = self.analytics.occupancy_trend(sessions, period, now)
        return [OccupancyPointDTO.model_validate(point) for point in points]

    def get_activity_stats(self, now: Optional[datetime] = None) -> ActivityStatsDTO:
        """Gate traffic in the last hour, the week's mean stay and today's busiest entry hours"""
        now = now or datetime.now()
        hour_ago = now - timedelta(hours=1)
        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)

        with self.uow_factory() as uow:
            entries = uow.sessions.find_entered(hour_ago, now)
            exits, _ = uow.sessions.find_completed(hour_ago, now)
            recent, _ = uow.sessions.find_completed(now - timedelta(days=7), now)
            today = uow.sessions.find_entered(start_of_day, now)

        by_hour = Counter(s.entry_time.hour for s in today)
        peak = sorted(by_hour.items(), key=lambda item: (-item[1], item[0]))[:self.PEAK_HOURS]

        return ActivityStatsDTO(
            entries_last_hour=len(entries),
            exits_last_hour=len(exits),
            average_parking_duration=format_duration(average_duration(recent)),
            peak_hours=[HourlyEntriesDTO(hour=hour, entries=count) for hour, count in peak],
        )
