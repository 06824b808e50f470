# File: src/parkwise/domain/overstay.py
"""
Overstay Detector

Query-only domain service. For every ACTIVE session it measures the elapsed
time, looks up the tiered threshold for the session's vehicle and billing
type and classifies the session as warning / alert / critical once it has
passed the corresponding tier. Nothing is mutated; callers re-run it on
demand or on a timer.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
import logging

from .billing import BillingCalculator
from .exceptions import InvalidInputError
from .models import (
    BillingType, OverstaySeverity, ParkingSession, VehicleType, format_duration
)


@dataclass(frozen=True)
class OverstayThreshold:
    """Tier boundaries, in hours, for one vehicle/billing type pair"""
    vehicle_type: VehicleType
    billing_type: BillingType
    warning_hours: float
    alert_hours: float
    critical_hours: float

    def __post_init__(self):
        if not 0 < self.warning_hours <= self.alert_hours <= self.critical_hours:
            raise InvalidInputError(
                "Overstay tiers must satisfy 0 < warning <= alert <= critical",
                {
                    "vehicle_type": self.vehicle_type.value,
                    "billing_type": self.billing_type.value,
                },
            )

    @classmethod
    def from_expected(
        cls,
        vehicle_type: VehicleType,
        billing_type: BillingType,
        expected_hours: float
    ) -> 'OverstayThreshold':
        """Warning once the expected stay is used up, alert at 1.5x, critical at 2x"""
        return cls(
            vehicle_type=VehicleType.parse(vehicle_type),
            billing_type=BillingType.parse(billing_type),
            warning_hours=expected_hours,
            alert_hours=expected_hours * 1.5,
            critical_hours=expected_hours * 2,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OverstayThreshold':
        return cls(
            vehicle_type=VehicleType.parse(data["vehicle_type"]),
            billing_type=BillingType.parse(data["billing_type"]),
            warning_hours=float(data["warning_hours"]),
            alert_hours=float(data["alert_hours"]),
            critical_hours=float(data["critical_hours"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vehicle_type": self.vehicle_type.value,
            "billing_type": self.billing_type.value,
            "warning_hours": self.warning_hours,
            "alert_hours": self.alert_hours,
            "critical_hours": self.critical_hours,
        }


def _tiers(billing_type, rows):
    return [
        OverstayThreshold(vehicle_type, billing_type, *hours)
        for vehicle_type, hours in rows
    ]


DEFAULT_THRESHOLDS: Tuple[OverstayThreshold, ...] = tuple(
    _tiers(BillingType.HOURLY, [
        (VehicleType.CAR, (6, 8, 12)),
        (VehicleType.BIKE, (4, 6, 8)),
        (VehicleType.EV, (8, 10, 14)),
        (VehicleType.HANDICAP_ACCESSIBLE, (8, 12, 16)),
    ]) + _tiers(BillingType.DAY_PASS, [
        (VehicleType.CAR, (24, 30, 48)),
        (VehicleType.BIKE, (24, 30, 48)),
        (VehicleType.EV, (24, 30, 48)),
        (VehicleType.HANDICAP_ACCESSIBLE, (24, 30, 48)),
    ])
)


@dataclass(frozen=True)
class OverstayAlert:
    """One flagged active session"""
    session_id: str
    number_plate: str
    vehicle_type: VehicleType
    slot_number: str
    slot_type: str
    entry_time: datetime
    duration: str
    duration_hours: float
    billing_type: BillingType
    severity: OverstaySeverity
    expected_duration: float
    overstay_hours: float
    estimated_cost: Decimal
    lost_revenue: Decimal
    currency: str = "INR"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "number_plate": self.number_plate,
            "vehicle_type": self.vehicle_type.value,
            "slot_number": self.slot_number,
            "slot_type": self.slot_type,
            "entry_time": self.entry_time.isoformat(),
            "duration": self.duration,
            "duration_hours": self.duration_hours,
            "billing_type": self.billing_type.value,
            "severity": self.severity.value,
            "expected_duration": self.expected_duration,
            "overstay_hours": self.overstay_hours,
            "estimated_cost": float(self.estimated_cost),
            "lost_revenue": float(self.lost_revenue),
            "currency": self.currency,
        }


@dataclass
class OverstayStats:
    """Aggregate over completed sessions"""
    total_overstays: int = 0
    by_vehicle_type: Dict[str, int] = field(default_factory=dict)
    by_severity: Dict[str, int] = field(
        default_factory=lambda: {s.value: 0 for s in OverstaySeverity}
    )
    average_overstay_hours: float = 0.0
    total_lost_revenue: Decimal = Decimal('0')


class OverstayDetector:
    """
    Domain Service: flags sessions running past their expected duration
    """

    def __init__(
        self,
        thresholds: Optional[Sequence[OverstayThreshold]] = None,
        calculator: Optional[BillingCalculator] = None,
        lost_revenue_per_hour: Decimal = Decimal('50')
    ):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.calculator = calculator or BillingCalculator()
        self.lost_revenue_per_hour = Decimal(str(lost_revenue_per_hour))
        self._thresholds: Dict[Tuple[VehicleType, BillingType], OverstayThreshold] = {}
        for threshold in thresholds if thresholds is not None else DEFAULT_THRESHOLDS:
            self._thresholds[(threshold.vehicle_type, threshold.billing_type)] = threshold

    @property
    def thresholds(self) -> List[OverstayThreshold]:
        return list(self._thresholds.values())

    def get_threshold(
        self,
        vehicle_type: VehicleType,
        billing_type: BillingType
    ) -> Optional[OverstayThreshold]:
        return self._thresholds.get((vehicle_type, billing_type))

    @staticmethod
    def classify(
        elapsed_hours: float,
        threshold: OverstayThreshold
    ) -> Optional[Tuple[OverstaySeverity, float]]:
        """Returns (severity, tier boundary passed) or None when within limits"""
        if elapsed_hours >= threshold.critical_hours:
            return OverstaySeverity.CRITICAL, threshold.critical_hours
        if elapsed_hours >= threshold.alert_hours:
            return OverstaySeverity.ALERT, threshold.alert_hours
        if elapsed_hours >= threshold.warning_hours:
            return OverstaySeverity.WARNING, threshold.warning_hours
        return None

    def detect(self, sessions: Iterable[ParkingSession], now: datetime) -> List[OverstayAlert]:
        """
        Build the ordered alert list: most severe first, then longest stay first
        """
        alerts = []
        for session in sessions:
            if not session.is_active:
                continue

            threshold = self.get_threshold(session.vehicle.vehicle_type, session.billing_type)
            if threshold is None:
                continue

            elapsed = session.elapsed(now)
            elapsed_hours = elapsed.total_seconds() / 3600
            classified = self.classify(elapsed_hours, threshold)
            if classified is None:
                continue

            severity, expected = classified
            overstay_hours = elapsed_hours - expected
            estimate = self.calculator.estimate(session.entry_time, session.billing_type, now)

            alerts.append(OverstayAlert(
                session_id=session.id,
                number_plate=session.vehicle.number_plate,
                vehicle_type=session.vehicle.vehicle_type,
                slot_number=session.slot.slot_number,
                slot_type=session.slot.slot_type.value,
                entry_time=session.entry_time,
                duration=format_duration(elapsed),
                duration_hours=round(elapsed_hours, 2),
                billing_type=session.billing_type,
                severity=severity,
                expected_duration=expected,
                overstay_hours=round(overstay_hours, 2),
                estimated_cost=estimate.amount.amount,
                lost_revenue=self._lost_revenue(overstay_hours),
                currency=self.calculator.currency,
            ))

        alerts.sort(key=lambda a: (-a.severity.rank, -a.duration_hours))
        if alerts:
            self.logger.info(f"Detected {len(alerts)} overstaying sessions")
        return alerts

    def summarize(self, completed_sessions: Iterable[ParkingSession]) -> OverstayStats:
        """Overstay statistics for sessions that already ended"""
        stats = OverstayStats()
        total_overstay_hours = 0.0

        for session in completed_sessions:
            if session.exit_time is None:
                continue
            threshold = self.get_threshold(session.vehicle.vehicle_type, session.billing_type)
            if threshold is None:
                continue

            elapsed_hours = session.elapsed(session.exit_time).total_seconds() / 3600
            classified = self.classify(elapsed_hours, threshold)
            if classified is None:
                continue

            severity, expected = classified
            vehicle_type = session.vehicle.vehicle_type.value
            stats.total_overstays += 1
            stats.by_vehicle_type[vehicle_type] = stats.by_vehicle_type.get(vehicle_type, 0) + 1
            stats.by_severity[severity.value] += 1
            total_overstay_hours += elapsed_hours - expected
            stats.total_lost_revenue += self._lost_revenue(elapsed_hours - expected)

        if stats.total_overstays:
            stats.average_overstay_hours = round(total_overstay_hours / stats.total_overstays, 2)
        stats.total_lost_revenue = stats.total_lost_revenue.quantize(Decimal('1'), rounding=ROUND_HALF_UP)
        return stats

    def _lost_revenue(self, overstay_hours: float) -> Decimal:
        value = Decimal(str(max(overstay_hours, 0.0))) * self.lost_revenue_per_hour
        return value.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
