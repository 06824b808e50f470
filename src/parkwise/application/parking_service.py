# File: src/parkwise/application/parking_service.py
"""
Parking Application Service

Orchestrates the gate use cases (entry, exit), vehicle lookup and session
queries. Each use case runs inside one unit of work; domain events are
published only after the transaction committed.
"""

from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, Optional
import logging

from ..domain.analytics import average_duration, calendar_window
from ..domain.billing import BillingCalculator, BillingResult
from ..domain.exceptions import (
    ConflictError, DuplicateEntryError, InvalidInputError, NoSlotAvailableError,
    SessionNotFoundError, SlotNotFoundError, SlotOccupiedError, VehicleNotFoundError
)
from ..domain.models import (
    BillingType, DomainEvent, Money, NumberPlate, ParkingSession, ReportPeriod, SessionStatus,
    Vehicle, VehicleType, VehicleExitedEvent, VehicleParkedEvent, format_duration
)
from ..domain.strategies import ParkingStrategy, ParkingStrategyFactory
from ..infrastructure.messaging import EventBus
from ..infrastructure.repositories import UnitOfWork
from .dtos import (
    BillingQuoteDTO, CostEstimateDTO, PaginatedResponse, QuickSearchResultDTO,
    SessionDTO, SessionStatsDTO, SlotDTO, VehicleDTO, VehicleEntryResultDTO, VehicleExitResultDTO,
    VehicleSearchResultDTO, page_window
)


class ParkingService:
    """
    Main application service for parking operations

    Responsibilities:
    1. Slot assignment on entry (automatic or explicit)
    2. Session close and billing on exit
    3. Vehicle search and session listings
    """

    HISTORY_LIMIT = 10

    def __init__(
        self,
        uow_factory: Callable[[], UnitOfWork],
        calculator: Optional[BillingCalculator] = None,
        strategies: Optional[Dict[VehicleType, ParkingStrategy]] = None,
        event_bus: Optional[EventBus] = None
    ):
        self.uow_factory = uow_factory
        self.calculator = calculator or BillingCalculator()
        self.strategies = strategies or ParkingStrategyFactory.create_registry()
        self.event_bus = event_bus
        self.logger = logging.getLogger(self.__class__.__name__)

    # ------------------------------------------------------------------
    # Gate operations
    # ------------------------------------------------------------------

    def assign_slot(
        self,
        number_plate: str,
        vehicle_type: VehicleType,
        billing_type: BillingType = BillingType.HOURLY,
        slot_id: Optional[str] = None,
        entry_time: Optional[datetime] = None
    ) -> VehicleEntryResultDTO:
        """
        Open a parking session for a vehicle

        With ``slot_id`` (slot id or slot number) the slot must exist, be
        AVAILABLE and be eligible for the vehicle type; otherwise the
        vehicle's strategy picks one.

        Raises: DuplicateEntryError, SlotNotFoundError, SlotOccupiedError,
                InvalidInputError, NoSlotAvailableError
        """
        plate = NumberPlate(number_plate).value
        vehicle_type = VehicleType.parse(vehicle_type)
        billing_type = BillingType.parse(billing_type)
        entry_time = entry_time or datetime.now()
        strategy = self._get_parking_strategy(vehicle_type)

        with self.uow_factory() as uow:
            active = uow.sessions.find_active_by_plate(plate)
            if active is not None:
                raise DuplicateEntryError(plate, active.slot.slot_number)

            if slot_id:
                slot = uow.slots.get(slot_id) or uow.slots.find_by_number(slot_id)
                if slot is None:
                    raise SlotNotFoundError(slot_id)
                strategy.validate_explicit_slot(vehicle_type, slot)
            else:
                candidates = uow.slots.find_available(strategy.eligible_types())
                slot = strategy.allocate_slot(vehicle_type, candidates)
                if slot is None:
                    raise NoSlotAvailableError(vehicle_type.value)

            # Another transaction may have taken the slot since we read it
            if not uow.slots.occupy_slot(slot.id):
                raise SlotOccupiedError(slot.slot_number)
            slot.occupy()

            vehicle = uow.vehicles.find_by_plate(plate)
            if vehicle is None:
                vehicle = uow.vehicles.add(Vehicle(plate, vehicle_type))
            elif vehicle.vehicle_type != vehicle_type:
                vehicle.vehicle_type = vehicle_type
                uow.vehicles.update_type(vehicle)

            session = uow.sessions.add(ParkingSession(vehicle, slot, entry_time, billing_type))

        self.logger.info(
            f"{plate} ({vehicle_type.value}) parked in {slot.slot_number} "
            f"[{billing_type.value}] session {session.id}"
        )
        self._publish(VehicleParkedEvent(session))

        return VehicleEntryResultDTO(
            message=f"Vehicle {plate} assigned to slot {slot.slot_number}",
            session=SessionDTO.from_domain(session, entry_time),
            slot=SlotDTO.from_domain(slot),
        )

    def close_session(
        self,
        number_plate: str,
        exit_time: Optional[datetime] = None
    ) -> VehicleExitResultDTO:
        """
        Close the ACTIVE session of a vehicle, bill it and free its slot

        Raises: SessionNotFoundError when the vehicle has no active session
                (so a repeated exit never bills twice), InvalidInputError
                when exit precedes entry
        """
        plate = NumberPlate(number_plate).value

        with self.uow_factory() as uow:
            session = uow.sessions.find_active_by_plate(plate)
            if session is None:
                raise SessionNotFoundError(
                    f"No active session for vehicle {plate}", {"number_plate": plate}
                )
            result = self._close(uow, session, exit_time or datetime.now())

        return self._after_close(session, result)

    def force_end_session(
        self,
        session_id: str,
        exit_time: Optional[datetime] = None
    ) -> VehicleExitResultDTO:
        """Operator override: close a session by id"""
        with self.uow_factory() as uow:
            session = uow.sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(f"Session {session_id} not found", {"session_id": session_id})
            if not session.is_active:
                raise ConflictError(
                    f"Session {session_id} is already completed", {"session_id": session_id}
                )
            result = self._close(uow, session, exit_time or datetime.now())

        self.logger.warning(f"Session {session_id} force-ended by operator")
        return self._after_close(session, result)

    def change_billing_type(
        self,
        session_id: str,
        billing_type: BillingType,
        now: Optional[datetime] = None
    ) -> SessionDTO:
        """
        Switch an ACTIVE session between HOURLY and DAY_PASS

        The new type bills the whole stay at exit. Asking for the current type
        is a no-op.

        Raises: SessionNotFoundError, ConflictError when the session is not active
        """
        billing_type = BillingType.parse(billing_type)

        with self.uow_factory() as uow:
            session = uow.sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(f"Session {session_id} not found", {"session_id": session_id})
            previous = session.billing_type
            changed = session.change_billing_type(billing_type)
            if changed and not uow.sessions.change_billing_type(session.id, billing_type):
                raise ConflictError(
                    f"Session {session_id} was closed concurrently", {"session_id": session_id}
                )

        if changed:
            self.logger.info(
                f"Session {session_id} billing changed {previous.value} -> {billing_type.value}"
            )
        return self._session_dto(session, now or datetime.now())

    def _close(self, uow: UnitOfWork, session: ParkingSession, exit_time: datetime) -> BillingResult:
        result = self.calculator.calculate(session.entry_time, exit_time, session.billing_type)
        session.close(exit_time, result.amount.amount)

        if not uow.sessions.complete(session):
            raise ConflictError(
                f"Session {session.id} was closed concurrently", {"session_id": session.id}
            )

        if uow.slots.release_slot(session.slot.id):
            session.slot.release()
        else:
            self.logger.warning(f"Slot {session.slot.slot_number} was not occupied at exit")
        return result

    def _after_close(self, session: ParkingSession, result: BillingResult) -> VehicleExitResultDTO:
        self.logger.info(
            f"{session.vehicle.number_plate} left {session.slot.slot_number} after "
            f"{result.duration}, billed {result.amount.format()}"
        )
        self._publish(VehicleExitedEvent(session, self.calculator.currency))

        return VehicleExitResultDTO(
            message=f"Vehicle {session.vehicle.number_plate} exited from slot {session.slot.slot_number}",
            session=SessionDTO.from_domain(session),
            bill=BillingQuoteDTO.from_result(result),
        )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def search_vehicle(self, number_plate: str, now: Optional[datetime] = None) -> VehicleSearchResultDTO:
        """Vehicle with its current session and recent history"""
        plate = NumberPlate(number_plate).value
        now = now or datetime.now()

        with self.uow_factory() as uow:
            vehicle = uow.vehicles.find_by_plate(plate)
            if vehicle is None:
                raise VehicleNotFoundError(plate)
            current = uow.sessions.find_active_by_plate(plate)
            history = uow.sessions.history_for_vehicle(vehicle.id, self.HISTORY_LIMIT)

        return VehicleSearchResultDTO(
            vehicle=VehicleDTO.from_domain(vehicle),
            current_session=self._session_dto(current, now) if current else None,
            history=[SessionDTO.from_domain(s) for s in history],
        )

    def quick_search(self, query: str, limit: int = 10, now: Optional[datetime] = None) -> QuickSearchResultDTO:
        """Case-insensitive substring search over plates and occupied slot numbers"""
        fragment = (query or "").strip()
        if len(fragment) < 2:
            raise InvalidInputError("Search query must be at least 2 characters")
        _, limit = page_window(1, limit)
        now = now or datetime.now()

        with self.uow_factory() as uow:
            sessions = uow.sessions.search_plates(fragment, limit)
            vehicles = uow.vehicles.search(fragment, limit)

        return QuickSearchResultDTO(
            query=fragment,
            active_sessions=[self._session_dto(s, now) for s in sessions],
            vehicles=[VehicleDTO.from_domain(v) for v in vehicles],
        )

    def get_session(self, session_id: str, now: Optional[datetime] = None) -> SessionDTO:
        with self.uow_factory() as uow:
            session = uow.sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session {session_id} not found", {"session_id": session_id})
        return self._session_dto(session, now or datetime.now())

    def estimate_session_cost(self, session_id: str, now: Optional[datetime] = None) -> CostEstimateDTO:
        """Live estimate for active sessions, the billed amount for completed ones"""
        with self.uow_factory() as uow:
            session = uow.sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session {session_id} not found", {"session_id": session_id})

        if session.is_active:
            result = self.calculator.estimate(session.entry_time, session.billing_type, now)
        else:
            result = self.calculator.calculate(session.entry_time, session.exit_time, session.billing_type)
            if session.billing_amount is not None:
                result = BillingResult(
                    amount=Money(session.billing_amount, result.amount.currency),
                    duration=result.duration,
                    duration_hours=result.duration_hours,
                    billing_type=result.billing_type,
                    applied_band=result.applied_band,
                )

        return CostEstimateDTO(
            session_id=session.id,
            is_final=not session.is_active,
            quote=BillingQuoteDTO.from_result(result),
        )

    def get_current_sessions(
        self,
        vehicle_type: Optional[VehicleType] = None,
        page: int = 1,
        limit: int = 20,
        now: Optional[datetime] = None
    ) -> PaginatedResponse:
        """Active sessions, newest entry first, with running cost estimates"""
        offset, limit = page_window(page, limit)
        vehicle_type = VehicleType.parse(vehicle_type) if vehicle_type else None
        now = now or datetime.now()

        with self.uow_factory() as uow:
            sessions, total = uow.sessions.find_active(vehicle_type, offset, limit)

        return PaginatedResponse.build(
            [self._session_dto(s, now) for s in sessions], total, page, limit
        )

    def get_history(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        vehicle_type: Optional[VehicleType] = None,
        page: int = 1,
        limit: int = 20
    ) -> PaginatedResponse:
        """Completed sessions whose exit falls within [start, end]"""
        if start and end and end < start:
            raise InvalidInputError("History end date precedes start date")
        offset, limit = page_window(page, limit)
        vehicle_type = VehicleType.parse(vehicle_type) if vehicle_type else None

        with self.uow_factory() as uow:
            sessions, total = uow.sessions.find_completed(start, end, vehicle_type, offset, limit)

        return PaginatedResponse.build(
            [SessionDTO.from_domain(s) for s in sessions], total, page, limit
        )

    def get_session_stats(
        self,
        period: ReportPeriod = ReportPeriod.DAY,
        now: Optional[datetime] = None
    ) -> SessionStatsDTO:
        """
        Totals for sessions entered since the start of the period

        DAY starts at midnight, WEEK seven days back, MONTH on the first of
        the month. The active count covers every session still parked.
        """
        period = ReportPeriod.parse(period)
        now = now or datetime.now()
        window = calendar_window(period, now)

        with self.uow_factory() as uow:
            entered = uow.sessions.find_entered(window.start, now)
            active = sum(uow.sessions.count_active_by_vehicle_type().values())

        completed = [s for s in entered if s.status == SessionStatus.COMPLETED]
        revenue = sum(
            (s.billing_amount for s in completed if s.billing_amount is not None), Decimal('0')
        )
        rate = round(len(completed) * 100.0 / len(entered), 2) if entered else 0.0

        return SessionStatsDTO(
            period=period,
            since=window.start,
            total_sessions=len(entered),
            completed_sessions=len(completed),
            active_sessions=active,
            average_duration=format_duration(average_duration(completed)),
            total_revenue=revenue.quantize(Decimal('0.01')),
            completion_rate=rate,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _session_dto(self, session: ParkingSession, now: datetime) -> SessionDTO:
        estimate = None
        if session.is_active:
            estimate = self.calculator.estimate(session.entry_time, session.billing_type, now).amount.amount
        return SessionDTO.from_domain(session, now, estimate)

    def _get_parking_strategy(self, vehicle_type: VehicleType) -> ParkingStrategy:
        strategy = self.strategies.get(vehicle_type)
        if strategy is None:
            raise InvalidInputError(f"No parking strategy for vehicle type {vehicle_type.value}")
        return strategy

    def _publish(self, event: DomainEvent) -> None:
        if self.event_bus is not None:
            self.event_bus.publish(event)
