# File: src/parkwise/domain/strategies.py
"""
Slot Assignment Strategies

Each vehicle family gets a ParkingStrategy that knows which slot types it
may use and in which order of preference. Given an inventory snapshot the
strategy walks its preference tiers and picks the lowest-numbered AVAILABLE
slot of the first tier that has one.

Eligibility matrix (tiers are tried in order):

    CAR                  REGULAR -> COMPACT
    BIKE                 REGULAR
    EV                   EV -> REGULAR, COMPACT
    HANDICAP_ACCESSIBLE  HANDICAP_ACCESSIBLE -> REGULAR, COMPACT

A strategy never returns a slot whose type is outside its matrix row.
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Tuple
import logging

from .exceptions import InvalidInputError, SlotOccupiedError
from .models import Slot, SlotStatus, SlotType, VehicleType, slot_sort_key


Tiers = Tuple[Tuple[SlotType, ...], ...]


# ============================================================================
# STRATEGY INTERFACE
# ============================================================================

class ParkingStrategy(ABC):
    """
    Base class for slot assignment strategies
    Subclasses declare the vehicle types they serve and their preference tiers.
    """

    vehicle_types: Tuple[VehicleType, ...] = ()

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    @abstractmethod
    def preference_tiers(self) -> Tiers:
        """Slot type tiers in the order they are tried"""
        pass

    def tiers_for(self, vehicle_type: VehicleType) -> Tiers:
        vehicle_type = VehicleType.parse(vehicle_type)
        if vehicle_type not in self.vehicle_types:
            raise InvalidInputError(
                f"{self.get_strategy_name()} does not handle {vehicle_type.value} vehicles"
            )
        return self.preference_tiers()

    def eligible_types(self) -> List[SlotType]:
        ordered: List[SlotType] = []
        for tier in self.preference_tiers():
            for slot_type in tier:
                if slot_type not in ordered:
                    ordered.append(slot_type)
        return ordered

    def is_eligible(self, vehicle_type: VehicleType, slot_type: SlotType) -> bool:
        return any(slot_type in tier for tier in self.tiers_for(vehicle_type))

    def can_park(self, vehicle_type: VehicleType, slot: Slot) -> bool:
        """Slot type is eligible and the slot is free"""
        return slot.status == SlotStatus.AVAILABLE and self.is_eligible(vehicle_type, slot.slot_type)

    def allocate_slot(self, vehicle_type: VehicleType, slots: Iterable[Slot]) -> Optional[Slot]:
        """
        Pick a slot from the inventory snapshot
        Returns: the lowest-numbered AVAILABLE slot of the first tier that
        has one, or None if nothing eligible is free
        """
        vehicle_type = VehicleType.parse(vehicle_type)
        available = [slot for slot in slots if slot.status == SlotStatus.AVAILABLE]

        for tier in self.tiers_for(vehicle_type):
            candidates = [slot for slot in available if slot.slot_type in tier]
            if candidates:
                chosen = min(candidates, key=lambda s: slot_sort_key(s.slot_number))
                self.logger.debug(
                    f"Allocated {chosen.slot_number} ({chosen.slot_type.value}) "
                    f"for {vehicle_type.value} from tier {[t.value for t in tier]}"
                )
                return chosen

        self.logger.debug(f"No eligible slot for {vehicle_type.value}")
        return None

    def validate_explicit_slot(self, vehicle_type: VehicleType, slot: Slot) -> Slot:
        """Manual override: the requested slot must be free and type-eligible"""
        vehicle_type = VehicleType.parse(vehicle_type)
        if slot.status != SlotStatus.AVAILABLE:
            raise SlotOccupiedError(slot.slot_number, slot.status.value)
        if not self.is_eligible(vehicle_type, slot.slot_type):
            raise InvalidInputError(
                f"Slot {slot.slot_number} ({slot.slot_type.value}) is not eligible "
                f"for {vehicle_type.value} vehicles",
                {"slot_number": slot.slot_number, "vehicle_type": vehicle_type.value},
            )
        return slot

    def get_strategy_name(self) -> str:
        return self.__class__.__name__.replace("Strategy", "")

    def __str__(self) -> str:
        return f"{self.get_strategy_name()} Strategy"


# ============================================================================
# PARKING ALLOCATION STRATEGIES
# ============================================================================

class StandardCarStrategy(ParkingStrategy):
    """Cars: regular slots first, compact as fallback, never EV/accessible"""
    vehicle_types = (VehicleType.CAR,)

    def preference_tiers(self) -> Tiers:
        return ((SlotType.REGULAR,), (SlotType.COMPACT,))


class BikeStrategy(ParkingStrategy):
    """Bikes share regular slots only"""
    vehicle_types = (VehicleType.BIKE,)

    def preference_tiers(self) -> Tiers:
        return ((SlotType.REGULAR,),)


class ElectricVehicleStrategy(ParkingStrategy):
    """EVs prefer charging bays, then any regular or compact slot"""
    vehicle_types = (VehicleType.EV,)

    def preference_tiers(self) -> Tiers:
        return ((SlotType.EV,), (SlotType.REGULAR, SlotType.COMPACT))


class AccessibleVehicleStrategy(ParkingStrategy):
    """Accessible vehicles prefer accessible bays, then regular or compact"""
    vehicle_types = (VehicleType.HANDICAP_ACCESSIBLE,)

    def preference_tiers(self) -> Tiers:
        return ((SlotType.HANDICAP_ACCESSIBLE,), (SlotType.REGULAR, SlotType.COMPACT))


class ParkingStrategyFactory:
    """Registry of strategies keyed by vehicle type"""

    _strategy_classes = (
        StandardCarStrategy,
        BikeStrategy,
        ElectricVehicleStrategy,
        AccessibleVehicleStrategy,
    )

    @classmethod
    def create_registry(cls) -> Dict[VehicleType, ParkingStrategy]:
        registry: Dict[VehicleType, ParkingStrategy] = {}
        for strategy_class in cls._strategy_classes:
            strategy = strategy_class()
            for vehicle_type in strategy_class.vehicle_types:
                registry[vehicle_type] = strategy
        return registry

    @classmethod
    def for_vehicle(cls, vehicle_type: VehicleType) -> ParkingStrategy:
        vehicle_type = VehicleType.parse(vehicle_type)
        for strategy_class in cls._strategy_classes:
            if vehicle_type in strategy_class.vehicle_types:
                return strategy_class()
        raise InvalidInputError(f"No parking strategy for vehicle type {vehicle_type.value}")


def eligible_slot_types(vehicle_type: VehicleType) -> List[SlotType]:
    """All slot types a vehicle type may be assigned to, in preference order"""
    return ParkingStrategyFactory.for_vehicle(vehicle_type).eligible_types()
