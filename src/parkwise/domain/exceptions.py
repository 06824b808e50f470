# File: src/parkwise/domain/exceptions.py
"""
Domain exceptions for the parking core

Every error carries a stable ``code`` so the application boundary can turn it
into a structured result:

1. NOT_FOUND      - vehicle / session / slot does not exist
2. CONFLICT       - slot already occupied, duplicate entry, invalid transition
3. INVALID_INPUT  - malformed time range, unknown type, bad configuration
4. UNAVAILABLE    - no eligible slot for the vehicle
"""

from typing import Any, Dict, Optional


class ParkingError(Exception):
    """Base exception for all parking domain errors"""

    code = "PARKING_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "error_code": self.code,
            "details": self.details or None,
        }


class NotFoundError(ParkingError):
    code = "NOT_FOUND"


class ConflictError(ParkingError):
    code = "CONFLICT"


class InvalidInputError(ParkingError, ValueError):
    code = "INVALID_INPUT"


class UnavailableError(ParkingError):
    code = "UNAVAILABLE"


# ----------------------------------------------------------------------------
# Specialisations
# ----------------------------------------------------------------------------

class SlotNotFoundError(NotFoundError):
    """Raised when a slot id or number is unknown"""

    def __init__(self, slot_ref: str):
        super().__init__(f"Slot {slot_ref} not found", {"slot": slot_ref})


class VehicleNotFoundError(NotFoundError):
    """Raised when a number plate has never been seen"""

    def __init__(self, number_plate: str):
        super().__init__(f"Vehicle {number_plate} not found", {"number_plate": number_plate})


class SessionNotFoundError(NotFoundError):
    """Raised when there is no (active) session for a lookup"""
    pass


class SlotOccupiedError(ConflictError):
    """Raised when a slot is not AVAILABLE for assignment"""

    def __init__(self, slot_number: str, status: Optional[str] = None):
        message = f"Slot {slot_number} is not available"
        if status:
            message = f"{message} (status: {status})"
        super().__init__(message, {"slot_number": slot_number, "status": status})


class DuplicateEntryError(ConflictError):
    """Raised when a vehicle already has an active session"""

    def __init__(self, number_plate: str, slot_number: str):
        super().__init__(
            f"Vehicle {number_plate} is already parked in slot {slot_number}",
            {"number_plate": number_plate, "slot_number": slot_number},
        )


class NoSlotAvailableError(UnavailableError):
    """Raised when no eligible slot is free for a vehicle type"""

    def __init__(self, vehicle_type: str):
        super().__init__(
            f"No available slots for {vehicle_type} vehicles "
            f"(checked all compatible slot types)",
            {"vehicle_type": vehicle_type},
        )


class NoRateBandError(InvalidInputError):
    """Raised when no hourly band covers the billable duration"""

    def __init__(self, hours: int):
        super().__init__(f"No hourly rate band covers {hours} hours", {"hours": hours})
