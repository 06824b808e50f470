# File: src/parkwise/application/analytics_service.py
"""
Analytics Application Service

Loads the sessions of a reporting window and hands them to ParkingAnalytics.
DAY covers today by hour, WEEK the last seven days by day and MONTH the
last thirty days by week; revenue reports also accept an explicit range.
"""

from datetime import datetime
from typing import Callable, List, Optional
import logging

from ..domain.analytics import ParkingAnalytics, ReportWindow, analytics_window
from ..domain.billing import BillingCalculator
from ..domain.models import ReportPeriod
from ..infrastructure.repositories import UnitOfWork
from .dtos import (
    HourActivityDTO, OperationalMetricsDTO, RevenueAnalyticsDTO, RevenueBucketDTO,
    SlotUtilizationDTO, VehicleTypeUsageDTO
)


class AnalyticsService:

    def __init__(
        self,
        uow_factory: Callable[[], UnitOfWork],
        analytics: Optional[ParkingAnalytics] = None,
        calculator: Optional[BillingCalculator] = None
    ):
        self.uow_factory = uow_factory
        self.analytics = analytics or ParkingAnalytics()
        self.calculator = calculator or BillingCalculator()
        self.logger = logging.getLogger(self.__class__.__name__)

    def _window(self, period: ReportPeriod, now: Optional[datetime]) -> ReportWindow:
        return analytics_window(ReportPeriod.parse(period), now or datetime.now())

    def revenue_analytics(
        self,
        period: ReportPeriod = ReportPeriod.DAY,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        now: Optional[datetime] = None
    ) -> RevenueAnalyticsDTO:
        """Revenue of sessions that ended in the window, one row per bucket"""
        period = ReportPeriod.parse(period)
        window = analytics_window(period, now or datetime.now(), start, end)

        with self.uow_factory() as uow:
            completed, _ = uow.sessions.find_completed(window.start, window.end)

        buckets = self.analytics.revenue_buckets(completed, window.bucket)
        self.logger.debug(f"Revenue analytics {period.value}: {len(buckets)} buckets")
        return RevenueAnalyticsDTO(
            period=period,
            start=window.start,
            end=window.end,
            currency=self.calculator.currency,
            buckets=[RevenueBucketDTO.model_validate(row) for row in buckets],
        )

    def slot_utilization(
        self,
        period: ReportPeriod = ReportPeriod.DAY,
        now: Optional[datetime] = None
    ) -> List[SlotUtilizationDTO]:
        now = now or datetime.now()
        window = self._window(period, now)

        with self.uow_factory() as uow:
            slots = uow.slots.list_all()
            sessions = uow.sessions.find_overlapping(window.start, window.end)

        rows = self.analytics.slot_utilization(slots, sessions, window, now)
        return [SlotUtilizationDTO.model_validate(row) for row in rows]

    def peak_hours(
        self,
        period: ReportPeriod = ReportPeriod.DAY,
        now: Optional[datetime] = None
    ) -> List[HourActivityDTO]:
        """Entries, exits and revenue by hour of day across the window"""
        window = self._window(period, now)

        with self.uow_factory() as uow:
            entered = uow.sessions.find_entered(window.start, window.end)
            exited, _ = uow.sessions.find_completed(window.start, window.end)
            total_slots = uow.slots.count()

        rows = self.analytics.hourly_activity(entered, exited, total_slots)
        return [HourActivityDTO.model_validate(row) for row in rows]

    def vehicle_type_analytics(
        self,
        period: ReportPeriod = ReportPeriod.DAY,
        now: Optional[datetime] = None
    ) -> List[VehicleTypeUsageDTO]:
        window = self._window(period, now)

        with self.uow_factory() as uow:
            entered = uow.sessions.find_entered(window.start, window.end)

        return [VehicleTypeUsageDTO.model_validate(row) for row in self.analytics.vehicle_mix(entered)]

    def operational_metrics(
        self,
        period: ReportPeriod = ReportPeriod.DAY,
        now: Optional[datetime] = None
    ) -> OperationalMetricsDTO:
        period = ReportPeriod.parse(period)
        now = now or datetime.now()
        window = self._window(period, now)

        with self.uow_factory() as uow:
            entered = uow.sessions.find_entered(window.start, window.end)
            total_slots = uow.slots.count()

        metrics = self.analytics.operational_metrics(entered, total_slots, window, now)
        return OperationalMetricsDTO(period=period, **vars(metrics))
