# File: src/parkwise/application/slot_service.py
"""
Slot Inventory Service

Slot CRUD, maintenance transitions, availability views and floor seeding.
OCCUPIED is owned by parking sessions: it can neither be set nor cleared
from here.
"""

from collections import OrderedDict
from typing import Callable, Dict, Iterable, List, Optional, Sequence
import logging

from ..domain.exceptions import ConflictError, InvalidInputError, SlotNotFoundError
from ..domain.models import (
    Slot, SlotStatus, SlotStatusChangedEvent, SlotType, VehicleType,
    generate_floor_slots, slot_sort_key
)
from ..domain.strategies import eligible_slot_types
from ..infrastructure.messaging import EventBus
from ..infrastructure.repositories import UnitOfWork
from .dtos import (
    AreaAvailabilityDTO, AvailabilityMapDTO, AvailableSlotsDTO, PaginatedResponse,
    SeedResultDTO, SlotCreateDTO, SlotDTO, SlotQueryDTO, SlotUpdateDTO, page_window
)


DEFAULT_FLOORS = ("B1", "B2", "B3", "B4", "B5")


class SlotService:
    """Application service for the slot inventory"""

    def __init__(self, uow_factory: Callable[[], UnitOfWork], event_bus: Optional[EventBus] = None):
        self.uow_factory = uow_factory
        self.event_bus = event_bus
        self.logger = logging.getLogger(self.__class__.__name__)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_slots(self, query: Optional[SlotQueryDTO] = None) -> PaginatedResponse:
        query = query or SlotQueryDTO()
        offset, limit = page_window(query.page, query.page_size)

        with self.uow_factory() as uow:
            slots, total = uow.slots.search(
                slot_type=SlotType.parse(query.slot_type) if query.slot_type else None,
                status=SlotStatus.parse(query.status) if query.status else None,
                floor=query.floor,
                text_filter=query.search,
                offset=offset,
                limit=limit,
            )

        return PaginatedResponse.build(
            [SlotDTO.from_domain(s) for s in slots], total, query.page, limit
        )

    def get_slot(self, slot_ref: str) -> SlotDTO:
        """Look a slot up by id or slot number"""
        with self.uow_factory() as uow:
            slot = self._load(uow, slot_ref)
        return SlotDTO.from_domain(slot)

    def get_available_slots(self, vehicle_type: Optional[VehicleType] = None) -> AvailableSlotsDTO:
        """Free slots grouped by type, restricted to eligible types when a vehicle type is given"""
        slot_types = None
        if vehicle_type:
            vehicle_type = VehicleType.parse(vehicle_type)
            slot_types = eligible_slot_types(vehicle_type)

        with self.uow_factory() as uow:
            slots = uow.slots.find_available(slot_types)

        by_type: Dict[str, List[SlotDTO]] = OrderedDict()
        for slot_type in slot_types or list(SlotType):
            by_type[slot_type.value] = []
        for slot in slots:
            by_type[slot.slot_type.value].append(SlotDTO.from_domain(slot))

        return AvailableSlotsDTO(vehicle_type=vehicle_type, total=len(slots), by_type=by_type)

    def get_availability_map(self) -> AvailabilityMapDTO:
        """Per-area (floor prefix) counts by status and type"""
        with self.uow_factory() as uow:
            slots = uow.slots.list_all()

        areas: Dict[str, Dict[str, object]] = OrderedDict()
        for slot in slots:
            area = areas.setdefault(slot.floor, {
                "total": 0,
                SlotStatus.AVAILABLE.value: 0,
                SlotStatus.OCCUPIED.value: 0,
                SlotStatus.MAINTENANCE.value: 0,
                "by_type": OrderedDict(),
            })
            area["total"] += 1
            area[slot.status.value] += 1
            type_counts = area["by_type"].setdefault(slot.slot_type.value, {"total": 0, "available": 0})
            type_counts["total"] += 1
            if slot.is_available:
                type_counts["available"] += 1

        area_dtos = [
            AreaAvailabilityDTO(
                area=name,
                total=data["total"],
                available=data[SlotStatus.AVAILABLE.value],
                occupied=data[SlotStatus.OCCUPIED.value],
                maintenance=data[SlotStatus.MAINTENANCE.value],
                by_type=dict(data["by_type"]),
            )
            for name, data in sorted(areas.items(), key=lambda item: slot_sort_key(item[0]))
        ]
        return AvailabilityMapDTO(
            total=len(slots),
            available=sum(a.available for a in area_dtos),
            areas=area_dtos,
        )

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_slot(self, request: SlotCreateDTO) -> SlotDTO:
        slot = Slot(request.slot_number, request.slot_type)
        with self.uow_factory() as uow:
            if uow.slots.find_by_number(slot.slot_number) is not None:
                raise ConflictError(
                    f"Slot number {slot.slot_number} already exists",
                    {"slot_number": slot.slot_number},
                )
            uow.slots.add(slot)

        self.logger.info(f"Created slot {slot.slot_number} ({slot.slot_type.value})")
        return SlotDTO.from_domain(slot)

    def bulk_create(self, requests: Sequence[SlotCreateDTO]) -> List[SlotDTO]:
        """All-or-nothing creation of several slots"""
        if not requests:
            raise InvalidInputError("No slots to create")

        slots = [Slot(r.slot_number, r.slot_type) for r in requests]
        seen = set()
        duplicates = set()
        for slot in slots:
            if slot.slot_number in seen:
                duplicates.add(slot.slot_number)
            seen.add(slot.slot_number)
        if duplicates:
            raise ConflictError(
                "Duplicate slot numbers in request",
                {"slot_numbers": sorted(duplicates, key=slot_sort_key)},
            )

        with self.uow_factory() as uow:
            existing = uow.slots.existing_numbers(seen)
            if existing:
                raise ConflictError(
                    "Slot numbers already exist",
                    {"slot_numbers": sorted(existing, key=slot_sort_key)},
                )
            for slot in slots:
                uow.slots.add(slot)

        self.logger.info(f"Created {len(slots)} slots")
        return [SlotDTO.from_domain(s) for s in slots]

    def update_slot(self, slot_ref: str, request: SlotUpdateDTO) -> SlotDTO:
        """
        Change number, type or maintenance status

        Raises: ConflictError for changes to an occupied slot or a taken
                number, InvalidInputError when asked to set OCCUPIED
        """
        status = SlotStatus.parse(request.status) if request.status else None
        if status == SlotStatus.OCCUPIED:
            raise InvalidInputError("Slots become OCCUPIED only through a parking session")

        events = []
        with self.uow_factory() as uow:
            slot = self._load(uow, slot_ref)
            changes_layout = request.slot_number is not None or request.slot_type is not None
            if slot.status == SlotStatus.OCCUPIED and (changes_layout or status is not None):
                raise ConflictError(
                    f"Slot {slot.slot_number} is occupied and cannot be modified",
                    {"slot_number": slot.slot_number},
                )

            if changes_layout:
                if request.slot_number is not None:
                    new_number = request.slot_number.strip().upper()
                    if new_number != slot.slot_number:
                        if uow.slots.find_by_number(new_number) is not None:
                            raise ConflictError(
                                f"Slot number {new_number} already exists", {"slot_number": new_number}
                            )
                        slot = Slot(new_number, slot.slot_type, slot.status, id=slot.id)
                if request.slot_type is not None:
                    slot.slot_type = SlotType.parse(request.slot_type)
                uow.slots.update(slot)

            if status is not None and status != slot.status:
                event = self._transition(uow, slot, status)
                events.append(event)

        for event in events:
            self._publish(event)
        return SlotDTO.from_domain(slot)

    def set_maintenance(self, slot_ref: str) -> SlotDTO:
        """AVAILABLE -> MAINTENANCE; rejected while occupied"""
        with self.uow_factory() as uow:
            slot = self._load(uow, slot_ref)
            event = None
            if slot.status != SlotStatus.MAINTENANCE:
                event = self._transition(uow, slot, SlotStatus.MAINTENANCE)
        if event:
            self._publish(event)
        return SlotDTO.from_domain(slot)

    def release_maintenance(self, slot_ref: str) -> SlotDTO:
        """MAINTENANCE -> AVAILABLE"""
        with self.uow_factory() as uow:
            slot = self._load(uow, slot_ref)
            if slot.status != SlotStatus.MAINTENANCE:
                raise ConflictError(
                    f"Slot {slot.slot_number} is not under maintenance",
                    {"slot_number": slot.slot_number, "status": slot.status.value},
                )
            event = self._transition(uow, slot, SlotStatus.AVAILABLE)
        self._publish(event)
        return SlotDTO.from_domain(slot)

    def seed_floors(
        self,
        floors: Optional[Iterable[str]] = None,
        slots_per_floor: int = 15
    ) -> SeedResultDTO:
        """Create the standard layout; slot numbers that already exist are skipped"""
        floors = [f.strip().upper() for f in (floors or DEFAULT_FLOORS)]
        slots = generate_floor_slots(floors, slots_per_floor)

        with self.uow_factory() as uow:
            existing = uow.slots.existing_numbers(s.slot_number for s in slots)
            created = 0
            for slot in slots:
                if slot.slot_number not in existing:
                    uow.slots.add(slot)
                    created += 1

        self.logger.info(f"Seeded {created} slots on {', '.join(floors)} ({len(existing)} existed)")
        return SeedResultDTO(created=created, skipped=len(existing), floors=floors)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load(self, uow: UnitOfWork, slot_ref: str) -> Slot:
        slot = uow.slots.get(slot_ref) or uow.slots.find_by_number(slot_ref)
        if slot is None:
            raise SlotNotFoundError(slot_ref)
        return slot

    def _transition(self, uow: UnitOfWork, slot: Slot, target: SlotStatus) -> SlotStatusChangedEvent:
        previous = slot.status
        if target == SlotStatus.MAINTENANCE:
            slot.start_maintenance()
            applied = uow.slots.start_maintenance(slot.id)
        else:
            slot.end_maintenance()
            applied = uow.slots.end_maintenance(slot.id)

        if not applied:
            raise ConflictError(
                f"Slot {slot.slot_number} changed concurrently", {"slot_number": slot.slot_number}
            )
        self.logger.info(f"Slot {slot.slot_number}: {previous.value} -> {slot.status.value}")
        return SlotStatusChangedEvent(slot, previous)

    def _publish(self, event) -> None:
        if self.event_bus is not None:
            self.event_bus.publish(event)
