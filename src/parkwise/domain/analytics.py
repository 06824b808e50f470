# File: src/parkwise/domain/analytics.py
"""
Parking Analytics

Query-only domain service over session snapshots. The application layer
loads the sessions of a reporting window and this module turns them into
revenue buckets, slot utilisation, hour-of-day activity, vehicle mix,
operational metrics and occupancy trends.

Reporting windows:

    analytics_window   DAY   midnight today -> now, bucketed by hour
                       WEEK  midnight 7 days ago -> now, bucketed by day
                       MONTH midnight 30 days ago -> now, bucketed by week
    calendar_window    DAY   midnight today -> now
                       WEEK  now - 7 days -> now
                       MONTH first of the month -> now

Active sessions count as occupying their slot up to ``now``.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
import logging

from .exceptions import InvalidInputError
from .models import BillingType, ParkingSession, ReportPeriod, Slot, SlotType, VehicleType
from .overstay import OverstayDetector


CENTS = Decimal('0.01')


@dataclass(frozen=True)
class ReportWindow:
    start: datetime
    end: datetime
    bucket: str = "day"

    def __post_init__(self):
        if self.end < self.start:
            raise InvalidInputError(
                "Report window ends before it starts",
                {"start": self.start.isoformat(), "end": self.end.isoformat()},
            )

    @property
    def length(self) -> timedelta:
        return self.end - self.start

    @property
    def days(self) -> float:
        return self.length.total_seconds() / 86400


def _midnight(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def analytics_window(
    period: ReportPeriod,
    now: datetime,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None
) -> ReportWindow:
    """Window for the analytics reports; an explicit start always buckets by day"""
    end = end or now
    if start is not None:
        return ReportWindow(start, end, "day")

    period = ReportPeriod.parse(period)
    midnight = _midnight(now)
    if period == ReportPeriod.DAY:
        return ReportWindow(midnight, end, "hour")
    if period == ReportPeriod.WEEK:
        return ReportWindow(midnight - timedelta(days=7), end, "day")
    return ReportWindow(midnight - timedelta(days=30), end, "week")


def calendar_window(period: ReportPeriod, now: datetime) -> ReportWindow:
    """Window for session statistics and occupancy trends"""
    period = ReportPeriod.parse(period)
    if period == ReportPeriod.DAY:
        return ReportWindow(_midnight(now), now, "hour")
    if period == ReportPeriod.WEEK:
        return ReportWindow(now - timedelta(days=7), now, "day")
    return ReportWindow(_midnight(now).replace(day=1), now, "day")


def bucket_key(moment: datetime, bucket: str) -> str:
    """Bucket label: "HH:00" for hours, ISO date for days, ISO date of the Sunday for weeks"""
    if bucket == "hour":
        return f"{moment.hour:02d}:00"
    if bucket == "week":
        week_start = moment.date() - timedelta(days=(moment.weekday() + 1) % 7)
        return week_start.isoformat()
    return moment.date().isoformat()


def occupied_between(session: ParkingSession, start: datetime, end: datetime, now: datetime) -> timedelta:
    """Part of the session's stay that falls inside [start, end]"""
    stay_end = session.exit_time or now
    overlap = min(stay_end, end) - max(session.entry_time, start)
    return max(overlap, timedelta(0))


def peak_concurrency(intervals: Iterable[Tuple[datetime, datetime]]) -> int:
    """Largest number of intervals open at the same instant"""
    edges = []
    for start, end in intervals:
        if end > start:
            edges.append((start, 1))
            edges.append((end, -1))
    # a stay ending at t frees its slot before one starting at t takes it
    edges.sort(key=lambda edge: (edge[0], edge[1]))

    peak = running = 0
    for _, delta in edges:
        running += delta
        peak = max(peak, running)
    return peak


def average_duration(sessions: Iterable[ParkingSession]) -> timedelta:
    """Mean stay of the sessions that have an exit time"""
    stays = [s.exit_time - s.entry_time for s in sessions if s.exit_time is not None]
    if not stays:
        return timedelta(0)
    return sum(stays, timedelta(0)) / len(stays)


def _hours(duration: timedelta) -> float:
    return round(duration.total_seconds() / 3600, 2)


def _percent(part: float, whole: float) -> float:
    return round(part * 100.0 / whole, 2) if whole else 0.0


def _revenue(sessions: Iterable[ParkingSession]) -> Decimal:
    total = sum((s.billing_amount for s in sessions if s.billing_amount is not None), Decimal('0'))
    return total.quantize(CENTS, rounding=ROUND_HALF_UP)


def _per(amount: Decimal, count: int) -> Decimal:
    if not count:
        return Decimal('0.00')
    return (amount / count).quantize(CENTS, rounding=ROUND_HALF_UP)


# ============================================================================
# REPORT ROWS
# ============================================================================

@dataclass(frozen=True)
class RevenueBucket:
    period: str
    total_revenue: Decimal
    hourly_revenue: Decimal
    day_pass_revenue: Decimal
    transaction_count: int
    average_transaction_value: Decimal
    growth_rate: float


@dataclass(frozen=True)
class SlotUtilization:
    slot_type: str
    total_slots: int
    sessions: int
    average_occupancy: float
    peak_occupancy: float
    total_revenue: Decimal
    revenue_per_slot: Decimal


@dataclass(frozen=True)
class HourActivity:
    hour: int
    entries: int
    exits: int
    revenue: Decimal
    occupancy_rate: float
    average_stay_hours: float


@dataclass(frozen=True)
class VehicleTypeUsage:
    vehicle_type: str
    count: int
    percentage: float
    average_duration_hours: float
    total_revenue: Decimal
    revenue_per_vehicle: Decimal


@dataclass(frozen=True)
class OperationalMetrics:
    total_sessions: int
    active_sessions: int
    completed_sessions: int
    average_stay_hours: float
    turnover_rate: float
    peak_capacity_utilization: float
    overstay_rate: float


@dataclass(frozen=True)
class OccupancyPoint:
    period: str
    occupancy: int
    timestamp: datetime


# ============================================================================
# ANALYTICS SERVICE
# ============================================================================

class ParkingAnalytics:
    """
    Domain Service: aggregates over session snapshots
    """

    def __init__(self, detector: Optional[OverstayDetector] = None):
        self.detector = detector or OverstayDetector()
        self.logger = logging.getLogger(self.__class__.__name__)

    def revenue_buckets(self, completed: Iterable[ParkingSession], bucket: str) -> List[RevenueBucket]:
        """Completed sessions grouped by exit time; growth is against the previous bucket"""
        grouped: Dict[str, List[ParkingSession]] = {}
        for session in completed:
            if session.exit_time is None or session.billing_amount is None:
                continue
            grouped.setdefault(bucket_key(session.exit_time, bucket), []).append(session)

        rows: List[RevenueBucket] = []
        previous: Optional[Decimal] = None
        for key in sorted(grouped):
            sessions = grouped[key]
            total = _revenue(sessions)
            growth = 0.0
            if previous:
                growth = round(float((total - previous) / previous) * 100, 2)
            rows.append(RevenueBucket(
                period=key,
                total_revenue=total,
                hourly_revenue=_revenue(s for s in sessions if s.billing_type == BillingType.HOURLY),
                day_pass_revenue=_revenue(s for s in sessions if s.billing_type == BillingType.DAY_PASS),
                transaction_count=len(sessions),
                average_transaction_value=_per(total, len(sessions)),
                growth_rate=growth,
            ))
            previous = total
        return rows

    def slot_utilization(
        self,
        slots: Sequence[Slot],
        sessions: Iterable[ParkingSession],
        window: ReportWindow,
        now: datetime
    ) -> List[SlotUtilization]:
        """Occupied share of slot time per slot type over the window"""
        by_type: Dict[SlotType, List[ParkingSession]] = {}
        for session in sessions:
            if occupied_between(session, window.start, window.end, now):
                by_type.setdefault(session.slot.slot_type, []).append(session)

        window_seconds = window.length.total_seconds()
        rows = []
        for slot_type in SlotType:
            total_slots = sum(1 for slot in slots if slot.slot_type == slot_type)
            if not total_slots:
                continue
            used = by_type.get(slot_type, [])
            occupied = sum(
                occupied_between(s, window.start, window.end, now).total_seconds() for s in used
            )
            peak = peak_concurrency(
                (max(s.entry_time, window.start), min(s.exit_time or now, window.end)) for s in used
            )
            revenue = _revenue(used)
            rows.append(SlotUtilization(
                slot_type=slot_type.value,
                total_slots=total_slots,
                sessions=len(used),
                average_occupancy=_percent(occupied, total_slots * window_seconds),
                peak_occupancy=_percent(peak, total_slots),
                total_revenue=revenue,
                revenue_per_slot=_per(revenue, total_slots),
            ))
        return rows

    def hourly_activity(
        self,
        entered: Iterable[ParkingSession],
        exited: Iterable[ParkingSession],
        total_slots: int
    ) -> List[HourActivity]:
        """24 rows, one per hour of day"""
        entries: Dict[int, List[ParkingSession]] = {hour: [] for hour in range(24)}
        exits = {hour: 0 for hour in range(24)}
        for session in entered:
            entries[session.entry_time.hour].append(session)
        for session in exited:
            if session.exit_time is not None:
                exits[session.exit_time.hour] += 1

        return [
            HourActivity(
                hour=hour,
                entries=len(entries[hour]),
                exits=exits[hour],
                revenue=_revenue(entries[hour]),
                occupancy_rate=min(100.0, _percent(len(entries[hour]), max(total_slots, 1))),
                average_stay_hours=_hours(average_duration(entries[hour])),
            )
            for hour in range(24)
        ]

    def vehicle_mix(self, entered: Sequence[ParkingSession]) -> List[VehicleTypeUsage]:
        """Share, stay and revenue per vehicle type; types with no sessions are left out"""
        rows = []
        for vehicle_type in VehicleType:
            sessions = [s for s in entered if s.vehicle.vehicle_type == vehicle_type]
            if not sessions:
                continue
            revenue = _revenue(sessions)
            rows.append(VehicleTypeUsage(
                vehicle_type=vehicle_type.value,
                count=len(sessions),
                percentage=_percent(len(sessions), len(entered)),
                average_duration_hours=_hours(average_duration(sessions)),
                total_revenue=revenue,
                revenue_per_vehicle=_per(revenue, len(sessions)),
            ))
        return rows

    def operational_metrics(
        self,
        entered: Sequence[ParkingSession],
        total_slots: int,
        window: ReportWindow,
        now: datetime
    ) -> OperationalMetrics:
        """
        Turnover is sessions per slot per day; peak capacity is the most slots
        held at once by the window's sessions; overstay rate uses the
        detector's tiers on completed sessions.
        """
        completed = [s for s in entered if not s.is_active and s.exit_time is not None]
        active = [s for s in entered if s.is_active]

        turnover = 0.0
        if total_slots and window.days > 0:
            turnover = round(len(entered) / (total_slots * window.days), 2)

        peak = peak_concurrency((s.entry_time, s.exit_time or now) for s in entered)
        overstays = self.detector.summarize(completed).total_overstays

        return OperationalMetrics(
            total_sessions=len(entered),
            active_sessions=len(active),
            completed_sessions=len(completed),
            average_stay_hours=_hours(average_duration(completed)),
            turnover_rate=turnover,
            peak_capacity_utilization=min(100.0, _percent(peak, total_slots)),
            overstay_rate=_percent(overstays, len(completed)),
        )

    def occupancy_trend(
        self,
        sessions: Sequence[ParkingSession],
        period: ReportPeriod,
        now: datetime
    ) -> List[OccupancyPoint]:
        """Sessions present in each hour (DAY) or day (WEEK: 7, MONTH: 30) of the window"""
        period = ReportPeriod.parse(period)
        window = calendar_window(period, now)

        if period == ReportPeriod.DAY:
            step, count = timedelta(hours=1), 24
        else:
            step, count = timedelta(days=1), 7 if period == ReportPeriod.WEEK else 30

        points = []
        for index in range(count):
            bucket_start = window.start + index * step
            bucket_end = bucket_start + step
            occupancy = sum(
                1 for s in sessions
                if s.entry_time < bucket_end and (s.exit_time or now) > bucket_start
            )
            points.append(OccupancyPoint(
                period=bucket_key(bucket_start, window.bucket),
                occupancy=occupancy,
                timestamp=bucket_start,
            ))
        return points
