# File: src/parkwise/infrastructure/factories.py
"""
Service Factory

Wires the parking core together from an AppConfig:

1. Persistence - unit of work factory over the configured database
2. Domain services - one shared BillingCalculator, the OverstayDetector
   and ParkingAnalytics on top of it
3. Messaging - event bus forwarding every event to the message queue,
   plus the overstay notification handler
4. Application services and the command handler on top
"""

from dataclasses import dataclass
from typing import Callable, Optional
import logging

from ..application.analytics_service import AnalyticsService
from ..application.billing_service import BillingService
from ..application.commands import ParkingCommandHandler
from ..application.dashboard_service import DashboardService
from ..application.overstay_service import OverstayService
from ..application.parking_service import ParkingService
from ..application.slot_service import SlotService
from ..domain.analytics import ParkingAnalytics
from ..domain.billing import BillingCalculator
from ..domain.models import OverstayDetectedEvent
from ..domain.overstay import OverstayDetector
from ..domain.strategies import ParkingStrategyFactory
from .config import AppConfig
from .messaging import (
    EventBus, MessageBrokerFactory, MessageQueue,
    OverstayNotificationHandler, QueueForwardingHandler
)
from .repositories import RepositoryFactory, UnitOfWork


@dataclass
class ParkingApplication:
    """Everything a front end needs, built once per process"""
    config: AppConfig
    uow_factory: Callable[[], UnitOfWork]
    calculator: BillingCalculator
    detector: OverstayDetector
    event_bus: EventBus
    message_queue: MessageQueue
    notifications: OverstayNotificationHandler
    parking_service: ParkingService
    slot_service: SlotService
    billing_service: BillingService
    overstay_service: OverstayService
    dashboard_service: DashboardService
    analytics_service: AnalyticsService
    command_handler: ParkingCommandHandler

    def close(self) -> None:
        self.event_bus.clear_subscribers()
        self.message_queue.close()


class ServiceFactory:
    """Factory for creating application services"""

    def __init__(self, config: Optional[AppConfig] = None):
        self.config = config or AppConfig()
        self.logger = logging.getLogger(self.__class__.__name__)

    def create_calculator(self) -> BillingCalculator:
        return BillingCalculator(
            self.config.billing_config(),
            cap_overflow=self.config.billing.cap_overflow,
        )

    def create_detector(self, calculator: BillingCalculator) -> OverstayDetector:
        return OverstayDetector(
            thresholds=self.config.overstay_thresholds(),
            calculator=calculator,
            lost_revenue_per_hour=self.config.overstay.lost_revenue_per_hour,
        )

    def create_event_bus(self, queue: MessageQueue, notifications: OverstayNotificationHandler) -> EventBus:
        event_bus = EventBus()
        event_bus.subscribe(
            EventBus.WILDCARD,
            QueueForwardingHandler(queue, self.config.messaging.channel_prefix),
        )
        event_bus.subscribe(OverstayDetectedEvent.event_type, notifications)
        return event_bus

    def create_application(self, uow_factory: Optional[Callable[[], UnitOfWork]] = None) -> ParkingApplication:
        config = self.config
        uow_factory = uow_factory or RepositoryFactory.create_uow_factory(
            config.database_url, echo=config.echo_sql
        )

        # shared by every service
        calculator = self.create_calculator()
        detector = self.create_detector(calculator)

        queue = MessageBrokerFactory.create(config.messaging.broker, config.messaging.redis_url)
        notifications = OverstayNotificationHandler()
        event_bus = self.create_event_bus(queue, notifications)

        parking_service = ParkingService(
            uow_factory,
            calculator=calculator,
            strategies=ParkingStrategyFactory.create_registry(),
            event_bus=event_bus,
        )
        slot_service = SlotService(uow_factory, event_bus=event_bus)
        billing_service = BillingService(calculator)
        overstay_service = OverstayService(uow_factory, detector=detector, event_bus=event_bus)
        analytics = ParkingAnalytics(detector)
        dashboard_service = DashboardService(uow_factory, calculator=calculator, analytics=analytics)
        analytics_service = AnalyticsService(uow_factory, analytics=analytics, calculator=calculator)

        command_handler = ParkingCommandHandler(
            parking_service,
            slot_service,
            billing_service,
            overstay_service,
            dashboard_service,
            analytics_service,
        )

        self.logger.info(
            f"Parking application ready (broker: {config.messaging.broker}, "
            f"currency: {calculator.currency})"
        )
        return ParkingApplication(
            config=config,
            uow_factory=uow_factory,
            calculator=calculator,
            detector=detector,
            event_bus=event_bus,
            message_queue=queue,
            notifications=notifications,
            parking_service=parking_service,
            slot_service=slot_service,
            billing_service=billing_service,
            overstay_service=overstay_service,
            dashboard_service=dashboard_service,
            analytics_service=analytics_service,
            command_handler=command_handler,
        )
