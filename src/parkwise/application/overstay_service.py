# File: src/parkwise/application/overstay_service.py
"""
Overstay Monitoring Service

Wraps the OverstayDetector with data access: live alert listings, period
statistics over completed sessions by entry time, and detection runs that publish one
OverstayDetectedEvent per alert for the notification handlers.
"""

from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional
import logging

from ..domain.exceptions import InvalidInputError
from ..domain.models import OverstayDetectedEvent, OverstaySeverity, SessionStatus
from ..domain.overstay import OverstayAlert, OverstayDetector
from ..infrastructure.messaging import EventBus
from ..infrastructure.repositories import UnitOfWork
from .dtos import DetectionRunDTO, OverstayAlertDTO, OverstayStatsDTO


class OverstayService:

    def __init__(
        self,
        uow_factory: Callable[[], UnitOfWork],
        detector: Optional[OverstayDetector] = None,
        event_bus: Optional[EventBus] = None
    ):
        self.uow_factory = uow_factory
        self.detector = detector or OverstayDetector()
        self.event_bus = event_bus
        self.logger = logging.getLogger(self.__class__.__name__)

    def _active_alerts(self, now: datetime) -> List[OverstayAlert]:
        with self.uow_factory() as uow:
            sessions, _ = uow.sessions.find_active()
        return self.detector.detect(sessions, now)

    def detect_overstays(self, now: Optional[datetime] = None) -> List[OverstayAlertDTO]:
        """Current overstays, most severe first then longest stay first"""
        alerts = self._active_alerts(now or datetime.now())
        return [OverstayAlertDTO.from_domain(alert) for alert in alerts]

    def get_overstay_stats(self, period_days: int = 7, now: Optional[datetime] = None) -> OverstayStatsDTO:
        """Overstays among completed sessions that entered in the last ``period_days`` days"""
        if period_days < 1:
            raise InvalidInputError(f"Period must be at least one day, got {period_days}")
        now = now or datetime.now()

        with self.uow_factory() as uow:
            completed = uow.sessions.find_entered(
                now - timedelta(days=period_days), now, SessionStatus.COMPLETED
            )
        stats = self.detector.summarize(completed)

        active_alerts = {severity.value: 0 for severity in OverstaySeverity}
        for alert in self._active_alerts(now):
            active_alerts[alert.severity.value] += 1

        return OverstayStatsDTO(
            period_days=period_days,
            total_overstays=stats.total_overstays,
            by_vehicle_type=stats.by_vehicle_type,
            by_severity=stats.by_severity,
            average_overstay_hours=stats.average_overstay_hours,
            total_lost_revenue=stats.total_lost_revenue,
            currency=self.detector.calculator.currency,
            active_alerts=active_alerts,
        )

    def run_detection(self, now: Optional[datetime] = None) -> DetectionRunDTO:
        """
        Detect overstays and publish one event per alert

        A failure for one alert is recorded and the run carries on with the rest.
        """
        now = now or datetime.now()
        alerts = self._active_alerts(now)

        by_severity: Dict[str, int] = {severity.value: 0 for severity in OverstaySeverity}
        notifications = 0
        errors: List[str] = []

        for alert in alerts:
            by_severity[alert.severity.value] += 1
            if self.event_bus is None:
                continue
            try:
                delivered = self.event_bus.publish(OverstayDetectedEvent(alert.to_dict(), now))
                if delivered:
                    notifications += 1
            except Exception as e:
                self.logger.error(f"Failed to publish overstay alert for {alert.number_plate}: {e}")
                errors.append(f"{alert.number_plate}: {e}")

        self.logger.info(
            f"Overstay run at {now.isoformat()}: {len(alerts)} alerts, "
            f"{notifications} notified, {len(errors)} errors"
        )
        return DetectionRunDTO(
            checked_at=now,
            alerts_found=len(alerts),
            notifications_sent=notifications,
            by_severity=by_severity,
            errors=errors,
        )
