# File: src/parkwise/domain/models.py
"""
Domain Models for the Parking Management Core
Following Domain-Driven Design (DDD) principles with rich domain models

This module contains:
1. Enums: Vehicle, slot, billing and session types
2. Value Objects: Immutable objects with no identity, only values
3. Entities: Slot, Vehicle and ParkingSession with identity and lifecycle
4. Domain Events: Events representing business occurrences

All models include validation and the state transitions they own.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any, Tuple, Iterable
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
import math
import re
import uuid

from .exceptions import ConflictError, InvalidInputError


# ============================================================================
# ENUMS FOR DOMAIN TYPES
# ============================================================================

class VehicleType(str, Enum):
    """Vehicle categories accepted at the gate"""
    CAR = "CAR"
    BIKE = "BIKE"
    EV = "EV"
    HANDICAP_ACCESSIBLE = "HANDICAP_ACCESSIBLE"

    @classmethod
    def parse(cls, value: Any) -> 'VehicleType':
        return _parse_enum(cls, value, "vehicle type")

    def __str__(self) -> str:
        return self.value


class SlotType(str, Enum):
    """Physical slot categories"""
    REGULAR = "REGULAR"
    COMPACT = "COMPACT"
    EV = "EV"
    HANDICAP_ACCESSIBLE = "HANDICAP_ACCESSIBLE"

    @classmethod
    def parse(cls, value: Any) -> 'SlotType':
        return _parse_enum(cls, value, "slot type")

    def __str__(self) -> str:
        return self.value


class SlotStatus(str, Enum):
    """A slot has exactly one status at a time"""
    AVAILABLE = "AVAILABLE"
    OCCUPIED = "OCCUPIED"
    MAINTENANCE = "MAINTENANCE"

    @classmethod
    def parse(cls, value: Any) -> 'SlotStatus':
        return _parse_enum(cls, value, "slot status")

    def __str__(self) -> str:
        return self.value


class BillingType(str, Enum):
    """HOURLY uses the tiered rate bands, DAY_PASS is a flat fee"""
    HOURLY = "HOURLY"
    DAY_PASS = "DAY_PASS"

    @classmethod
    def parse(cls, value: Any) -> 'BillingType':
        return _parse_enum(cls, value, "billing type")

    def __str__(self) -> str:
        return self.value


class SessionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"

    def __str__(self) -> str:
        return self.value


class ReportPeriod(str, Enum):
    """Reporting windows for statistics and analytics"""
    DAY = "DAY"
    WEEK = "WEEK"
    MONTH = "MONTH"

    @classmethod
    def parse(cls, value: Any) -> 'ReportPeriod':
        return _parse_enum(cls, value, "report period")

    def __str__(self) -> str:
        return self.value


class OverstaySeverity(str, Enum):
    """Overstay tiers, ordered by rank"""
    WARNING = "warning"
    ALERT = "alert"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return {
            OverstaySeverity.WARNING: 1,
            OverstaySeverity.ALERT: 2,
            OverstaySeverity.CRITICAL: 3,
        }[self]

    def __str__(self) -> str:
        return self.value


def _parse_enum(enum_cls, value: Any, label: str):
    """Accept enum members or case-insensitive names"""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().upper())
    except ValueError:
        valid = ", ".join(member.value for member in enum_cls)
        raise InvalidInputError(
            f"Unknown {label}: {value!r}. Valid values: {valid}",
            {"field": label, "value": str(value)},
        )


# ============================================================================
# DOMAIN PRIMITIVES / VALUE OBJECTS
# ============================================================================

@dataclass(frozen=True)
class NumberPlate:
    """
    Value Object: vehicle number plate
    Unique identifier of a vehicle at the gate
    """
    value: str

    def __post_init__(self):
        if not self.value or not str(self.value).strip():
            raise InvalidInputError("Number plate cannot be empty")

        object.__setattr__(self, 'value', str(self.value).strip().upper())

        if len(self.value) < 2 or len(self.value) > 15:
            raise InvalidInputError(f"Number plate must be 2-15 characters, got: {self.value}")

        if not re.match(r'^[A-Z0-9\s\-]+$', self.value):
            raise InvalidInputError(
                f"Number plate can only contain letters, numbers, spaces, and hyphens: {self.value}"
            )

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Money:
    """
    Value Object: Monetary amount with currency
    """
    amount: Decimal
    currency: str = "INR"

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, 'amount', Decimal(str(self.amount)))

        if self.amount < Decimal('0'):
            raise InvalidInputError("Money amount cannot be negative")

        if len(self.currency) != 3:
            raise InvalidInputError(f"Currency must be 3-letter code: {self.currency}")

    def __add__(self, other: 'Money') -> 'Money':
        if self.currency != other.currency:
            raise InvalidInputError(f"Cannot add {self.currency} to {other.currency}")
        return Money(self.amount + other.amount, self.currency)

    def __mul__(self, multiplier: Decimal) -> 'Money':
        if multiplier < 0:
            raise InvalidInputError("Multiplier cannot be negative")
        return Money(self.amount * Decimal(str(multiplier)), self.currency)

    def format(self) -> str:
        return f"{self.amount:.2f} {self.currency}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "amount": float(self.amount),
            "currency": self.currency
        }


@dataclass(frozen=True)
class TimeRange:
    """
    Value Object: Time range with start and end times
    A zero-length range is valid; an end before the start is not.
    """
    start_time: datetime
    end_time: datetime

    def __post_init__(self):
        if self.end_time < self.start_time:
            raise InvalidInputError(
                "Exit time cannot precede entry time",
                {
                    "entry_time": self.start_time.isoformat(),
                    "exit_time": self.end_time.isoformat(),
                },
            )

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time

    @property
    def duration_hours(self) -> float:
        return self.duration.total_seconds() / 3600

    @property
    def billable_hours(self) -> int:
        """Elapsed hours rounded up to the next whole hour, minimum 1"""
        return max(1, math.ceil(self.duration.total_seconds() / 3600))

    def format_duration(self) -> str:
        return format_duration(self.duration)

    def __str__(self) -> str:
        start_str = self.start_time.strftime("%Y-%m-%d %H:%M")
        end_str = self.end_time.strftime("%Y-%m-%d %H:%M")
        return f"{start_str} to {end_str} ({self.format_duration()})"


@dataclass(frozen=True)
class RateBand:
    """
    Value Object: one HOURLY billing band
    Covers billable durations where min_hours < hours <= max_hours.
    """
    min_hours: int
    max_hours: int
    rate: Decimal

    def __post_init__(self):
        if not isinstance(self.rate, Decimal):
            object.__setattr__(self, 'rate', Decimal(str(self.rate)))
        if self.min_hours < 0:
            raise InvalidInputError(f"Band minimum cannot be negative: {self.min_hours}")
        if self.max_hours <= self.min_hours:
            raise InvalidInputError(
                f"Band maximum ({self.max_hours}) must exceed minimum ({self.min_hours})"
            )
        if self.rate < 0:
            raise InvalidInputError(f"Band rate cannot be negative: {self.rate}")

    def covers(self, hours: float) -> bool:
        return self.min_hours < hours <= self.max_hours

    def label(self) -> str:
        plural = "s" if self.max_hours > 1 else ""
        return f"{self.min_hours}-{self.max_hours} hour{plural}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "min_hours": self.min_hours,
            "max_hours": self.max_hours,
            "rate": float(self.rate),
        }


@dataclass(frozen=True)
class BillingConfig:
    """
    Value Object: rate table for HOURLY billing plus the flat day pass rate

    Bands must start at 0, be sorted, contiguous and non-overlapping, and
    carry non-decreasing rates so the hourly amount never drops as the
    stay gets longer.
    """
    hourly_rates: Tuple[RateBand, ...]
    day_pass_rate: Decimal
    currency: str = "INR"

    def __post_init__(self):
        object.__setattr__(self, 'hourly_rates', tuple(self.hourly_rates))
        if not isinstance(self.day_pass_rate, Decimal):
            object.__setattr__(self, 'day_pass_rate', Decimal(str(self.day_pass_rate)))
        self._validate()

    def _validate(self) -> None:
        if not self.hourly_rates:
            raise InvalidInputError("Billing config needs at least one hourly rate band")

        if self.day_pass_rate < 0:
            raise InvalidInputError("Day pass rate cannot be negative")

        if len(self.currency) != 3:
            raise InvalidInputError(f"Currency must be 3-letter code: {self.currency}")

        first = self.hourly_rates[0]
        if first.min_hours != 0:
            raise InvalidInputError(f"First rate band must start at 0 hours, got {first.min_hours}")

        for previous, current in zip(self.hourly_rates, self.hourly_rates[1:]):
            if current.min_hours < previous.max_hours:
                raise InvalidInputError(
                    f"Rate bands overlap: {previous.label()} and {current.label()}"
                )
            if current.min_hours > previous.max_hours:
                raise InvalidInputError(
                    f"Rate bands leave a gap between {previous.max_hours} and {current.min_hours} hours"
                )
            if current.rate < previous.rate:
                raise InvalidInputError(
                    f"Rate for {current.label()} is lower than for {previous.label()}"
                )

    @property
    def max_hours(self) -> int:
        return self.hourly_rates[-1].max_hours

    def find_band(self, hours: float) -> Optional[RateBand]:
        for band in self.hourly_rates:
            if band.covers(hours):
                return band
        return None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BillingConfig':
        try:
            bands = [
                RateBand(int(b["min_hours"]), int(b["max_hours"]), Decimal(str(b["rate"])))
                for b in data["hourly_rates"]
            ]
            return cls(
                hourly_rates=tuple(bands),
                day_pass_rate=Decimal(str(data["day_pass_rate"])),
                currency=data.get("currency", "INR"),
            )
        except KeyError as e:
            raise InvalidInputError(f"Billing config missing field: {e.args[0]}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hourly_rates": [band.to_dict() for band in self.hourly_rates],
            "day_pass_rate": float(self.day_pass_rate),
            "currency": self.currency,
        }


DEFAULT_BILLING_CONFIG = BillingConfig(
    hourly_rates=(
        RateBand(0, 1, Decimal('50')),
        RateBand(1, 3, Decimal('100')),
        RateBand(3, 6, Decimal('150')),
        RateBand(6, 24, Decimal('200')),   # daily cap
    ),
    day_pass_rate=Decimal('150'),
    currency="INR",
)


# ============================================================================
# DOMAIN ENTITIES
# ============================================================================

class Entity:
    """
    Base class for all domain entities
    Provides common functionality for entities with identity
    """

    def __init__(self, id: Optional[str] = None):
        self._id = id or str(uuid.uuid4())

    @property
    def id(self) -> str:
        return self._id

    def __eq__(self, other: object) -> bool:
        """Entities are equal if they have the same ID and type"""
        if not isinstance(other, Entity):
            return False
        return self.id == other.id and type(self) == type(other)

    def __hash__(self) -> int:
        return hash((self.id, type(self).__name__))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id})"


class Slot(Entity):
    """
    Entity: a parking space with a floor-prefixed number ("B1-01"),
    a slot type and exactly one status.
    """

    def __init__(
        self,
        slot_number: str,
        slot_type: SlotType,
        status: SlotStatus = SlotStatus.AVAILABLE,
        id: Optional[str] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None
    ):
        super().__init__(id)
        self.slot_number = (slot_number or "").strip().upper()
        self.slot_type = SlotType.parse(slot_type)
        self.status = SlotStatus.parse(status)
        self.created_at = created_at
        self.updated_at = updated_at
        self._validate()

    def _validate(self) -> None:
        if not self.slot_number:
            raise InvalidInputError("Slot number cannot be empty")
        if not re.match(r'^[A-Z0-9\-]{1,20}$', self.slot_number):
            raise InvalidInputError(f"Invalid slot number: {self.slot_number}")

    @property
    def floor(self) -> str:
        """Floor / area prefix of the slot number"""
        if "-" not in self.slot_number:
            return "MAIN"
        return self.slot_number.split("-", 1)[0] or "MAIN"

    @property
    def is_available(self) -> bool:
        return self.status == SlotStatus.AVAILABLE

    def occupy(self) -> None:
        """AVAILABLE -> OCCUPIED"""
        if self.status != SlotStatus.AVAILABLE:
            raise ConflictError(
                f"Slot {self.slot_number} cannot be occupied while {self.status.value}",
                {"slot_number": self.slot_number, "status": self.status.value},
            )
        self.status = SlotStatus.OCCUPIED

    def release(self) -> None:
        """OCCUPIED -> AVAILABLE"""
        if self.status != SlotStatus.OCCUPIED:
            raise ConflictError(
                f"Slot {self.slot_number} is not occupied",
                {"slot_number": self.slot_number, "status": self.status.value},
            )
        self.status = SlotStatus.AVAILABLE

    def start_maintenance(self) -> None:
        if self.status == SlotStatus.OCCUPIED:
            raise ConflictError(
                "Cannot set slot to maintenance while it is occupied",
                {"slot_number": self.slot_number},
            )
        self.status = SlotStatus.MAINTENANCE

    def end_maintenance(self) -> None:
        if self.status == SlotStatus.OCCUPIED:
            raise ConflictError(
                f"Slot {self.slot_number} is occupied, not under maintenance",
                {"slot_number": self.slot_number},
            )
        self.status = SlotStatus.AVAILABLE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "slot_number": self.slot_number,
            "slot_type": self.slot_type.value,
            "status": self.status.value,
            "floor": self.floor,
        }

    def __str__(self) -> str:
        return f"Slot {self.slot_number} ({self.slot_type.value}) - {self.status.value}"


class Vehicle(Entity):
    """
    Entity: a vehicle identified by its unique number plate
    """

    def __init__(
        self,
        number_plate: str,
        vehicle_type: VehicleType,
        id: Optional[str] = None,
        created_at: Optional[datetime] = None
    ):
        super().__init__(id)
        self.number_plate = NumberPlate(number_plate).value
        self.vehicle_type = VehicleType.parse(vehicle_type)
        self.created_at = created_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "number_plate": self.number_plate,
            "vehicle_type": self.vehicle_type.value,
        }

    def __str__(self) -> str:
        return f"{self.vehicle_type.value} [{self.number_plate}]"


class ParkingSession(Entity):
    """
    Entity: one vehicle's occupancy of one slot from entry to exit

    Created ACTIVE on entry (slot goes OCCUPIED), closed COMPLETED on exit
    with the billing amount set (slot goes back to AVAILABLE).
    """

    def __init__(
        self,
        vehicle: Vehicle,
        slot: Slot,
        entry_time: datetime,
        billing_type: BillingType = BillingType.HOURLY,
        status: SessionStatus = SessionStatus.ACTIVE,
        exit_time: Optional[datetime] = None,
        billing_amount: Optional[Decimal] = None,
        id: Optional[str] = None
    ):
        super().__init__(id)
        self.vehicle = vehicle
        self.slot = slot
        self.entry_time = entry_time
        self.billing_type = BillingType.parse(billing_type)
        self.status = status
        self.exit_time = exit_time
        self.billing_amount = billing_amount

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    def elapsed(self, now: datetime) -> timedelta:
        end = self.exit_time or now
        return max(end - self.entry_time, timedelta(0))

    def time_range(self, exit_time: Optional[datetime] = None) -> TimeRange:
        return TimeRange(self.entry_time, exit_time or self.exit_time or datetime.now())

    def close(self, exit_time: datetime, amount: Decimal) -> None:
        """ACTIVE -> COMPLETED; a session is billed exactly once"""
        if not self.is_active:
            raise ConflictError(
                f"Session {self.id} is already completed",
                {"session_id": self.id},
            )
        TimeRange(self.entry_time, exit_time)
        self.exit_time = exit_time
        self.billing_amount = amount
        self.status = SessionStatus.COMPLETED

    def change_billing_type(self, billing_type: BillingType) -> bool:
        """Switch HOURLY <-> DAY_PASS while ACTIVE; False when nothing changes"""
        billing_type = BillingType.parse(billing_type)
        if not self.is_active:
            raise ConflictError(
                f"Session {self.id} is not active",
                {"session_id": self.id, "status": self.status.value},
            )
        if billing_type == self.billing_type:
            return False
        self.billing_type = billing_type
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "number_plate": self.vehicle.number_plate,
            "vehicle_type": self.vehicle.vehicle_type.value,
            "slot_number": self.slot.slot_number,
            "slot_type": self.slot.slot_type.value,
            "entry_time": self.entry_time.isoformat(),
            "exit_time": self.exit_time.isoformat() if self.exit_time else None,
            "billing_type": self.billing_type.value,
            "status": self.status.value,
            "billing_amount": float(self.billing_amount) if self.billing_amount is not None else None,
        }

    def __str__(self) -> str:
        return f"Session {self.id} {self.vehicle.number_plate} @ {self.slot.slot_number} ({self.status.value})"


# ============================================================================
# DOMAIN EVENTS
# ============================================================================

class DomainEvent(ABC):
    """
    Base class for all domain events
    Events represent something that happened in the domain
    """

    event_type = "domain.event"

    def __init__(self, timestamp: Optional[datetime] = None):
        self.event_id = str(uuid.uuid4())
        self.timestamp = timestamp or datetime.now()
        self.version = "1.0"

    @abstractmethod
    def payload(self) -> Dict[str, Any]:
        """Event specific data"""
        pass

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type,
            "event_id": self.event_id,
            "timestamp": self.timestamp.isoformat(),
            "version": self.version,
            "data": self.payload(),
        }

    def __str__(self) -> str:
        return f"{self.__class__.__name__} at {self.timestamp}"


class VehicleParkedEvent(DomainEvent):
    """Raised when a session is opened"""

    event_type = "vehicle.parked"

    def __init__(self, session: ParkingSession, timestamp: Optional[datetime] = None):
        super().__init__(timestamp or session.entry_time)
        self.session_id = session.id
        self.slot_id = session.slot.id
        self.slot_number = session.slot.slot_number
        self.number_plate = session.vehicle.number_plate
        self.vehicle_type = session.vehicle.vehicle_type
        self.billing_type = session.billing_type

    def payload(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "slot_id": self.slot_id,
            "slot_number": self.slot_number,
            "number_plate": self.number_plate,
            "vehicle_type": self.vehicle_type.value,
            "billing_type": self.billing_type.value,
        }


class VehicleExitedEvent(DomainEvent):
    """Raised when a session is closed and billed"""

    event_type = "vehicle.exited"

    def __init__(self, session: ParkingSession, currency: str = "INR"):
        super().__init__(session.exit_time)
        self.session_id = session.id
        self.slot_id = session.slot.id
        self.slot_number = session.slot.slot_number
        self.number_plate = session.vehicle.number_plate
        self.entry_time = session.entry_time
        self.exit_time = session.exit_time
        self.billing_amount = session.billing_amount
        self.currency = currency

    def payload(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "slot_id": self.slot_id,
            "slot_number": self.slot_number,
            "number_plate": self.number_plate,
            "entry_time": self.entry_time.isoformat(),
            "exit_time": self.exit_time.isoformat() if self.exit_time else None,
            "billing_amount": float(self.billing_amount) if self.billing_amount is not None else None,
            "currency": self.currency,
        }


class SlotStatusChangedEvent(DomainEvent):
    """Raised on maintenance transitions"""

    event_type = "slot.status_changed"

    def __init__(self, slot: Slot, previous_status: SlotStatus):
        super().__init__()
        self.slot_id = slot.id
        self.slot_number = slot.slot_number
        self.previous_status = previous_status
        self.status = slot.status

    def payload(self) -> Dict[str, Any]:
        return {
            "slot_id": self.slot_id,
            "slot_number": self.slot_number,
            "previous_status": self.previous_status.value,
            "status": self.status.value,
        }


class OverstayDetectedEvent(DomainEvent):
    """Raised once per alert by a detection run"""

    event_type = "overstay.detected"

    def __init__(self, alert_data: Dict[str, Any], timestamp: Optional[datetime] = None):
        super().__init__(timestamp)
        self.alert_data = alert_data

    @property
    def severity(self) -> str:
        return self.alert_data.get("severity", "")

    def payload(self) -> Dict[str, Any]:
        return dict(self.alert_data)


# ============================================================================
# UTILITY FUNCTIONS
# ============================================================================

def format_duration(duration: timedelta) -> str:
    """Format a duration as "Xh Ym" (floored)"""
    total_minutes = int(max(duration.total_seconds(), 0) // 60)
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours}h {minutes}m"


def slot_sort_key(slot_number: str) -> List[Any]:
    """Natural ordering for slot numbers so B1-02 sorts before B1-10"""
    parts = re.split(r'(\d+)', slot_number)
    return [int(part) if part.isdigit() else part for part in parts]


def slot_type_for_position(position: int) -> SlotType:
    """Seed layout of a floor: 01-02 accessible, 03-04 EV, 05-08 compact, rest regular"""
    if position <= 2:
        return SlotType.HANDICAP_ACCESSIBLE
    if position <= 4:
        return SlotType.EV
    if position <= 8:
        return SlotType.COMPACT
    return SlotType.REGULAR


def generate_floor_slots(
    floors: Iterable[str] = ("B1", "B2", "B3", "B4", "B5"),
    slots_per_floor: int = 15
) -> List[Slot]:
    """
    Generate the standard slot inventory, floor by floor
    """
    if slots_per_floor <= 0:
        raise InvalidInputError("Slots per floor must be positive")

    slots = []
    for floor in floors:
        for position in range(1, slots_per_floor + 1):
            slots.append(Slot(
                slot_number=f"{floor}-{position:02d}",
                slot_type=slot_type_for_position(position),
            ))
    return slots
