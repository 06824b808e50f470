# File: src/parkwise/application/commands.py
"""
Command boundary

ParkingCommandHandler takes plain ``{"type": ..., "data": {...}}`` commands,
dispatches them to the application services and always answers with a
structured result: SuccessResponseDTO, or ErrorResponseDTO whose
``error_code`` is one of NOT_FOUND, CONFLICT, INVALID_INPUT, UNAVAILABLE.
Only unexpected failures propagate.
"""

from datetime import datetime
from typing import Any, Callable, Dict, Optional, Union
import logging

from pydantic import ValidationError

from ..domain.exceptions import InvalidInputError, ParkingError
from .analytics_service import AnalyticsService
from .billing_service import BillingService
from .dashboard_service import DashboardService
from .dtos import (
    AnalyticsQueryDTO, ErrorResponseDTO, SlotCreateDTO, SlotQueryDTO, SlotUpdateDTO,
    SuccessResponseDTO, VehicleEntryRequestDTO, VehicleExitRequestDTO
)
from .overstay_service import OverstayService
from .parking_service import ParkingService
from .slot_service import SlotService


ResponseDTO = Union[SuccessResponseDTO, ErrorResponseDTO]


def _parse_time(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        raise InvalidInputError(f"Invalid timestamp: {value!r}", {"value": str(value)})


def _require(data: Dict[str, Any], key: str) -> Any:
    if data.get(key) in (None, ""):
        raise InvalidInputError(f"Missing required field: {key}", {"field": key})
    return data[key]


class ParkingCommandHandler:
    """
    Handler for parking commands

    Implements command pattern for parking operations
    """

    def __init__(
        self,
        parking: ParkingService,
        slots: SlotService,
        billing: BillingService,
        overstay: OverstayService,
        dashboard: DashboardService,
        analytics: AnalyticsService
    ):
        self.parking = parking
        self.slots = slots
        self.billing = billing
        self.overstay = overstay
        self.dashboard = dashboard
        self.analytics = analytics
        self.logger = logging.getLogger(self.__class__.__name__)

        self._handlers: Dict[str, Callable[[Dict[str, Any]], Any]] = {
            # gate
            "park_vehicle": self._park_vehicle,
            "exit_vehicle": self._exit_vehicle,
            "force_exit": lambda d: self.parking.force_end_session(
                _require(d, "session_id"), _parse_time(d.get("exit_time"))),
            "change_billing_type": lambda d: self.parking.change_billing_type(
                _require(d, "session_id"), _require(d, "billing_type"), _parse_time(d.get("now"))),
            # lookups
            "search_vehicle": lambda d: self.parking.search_vehicle(_require(d, "number_plate")),
            "quick_search": lambda d: self.parking.quick_search(
                _require(d, "query"), int(d.get("limit", 10))),
            "current_sessions": lambda d: self.parking.get_current_sessions(
                d.get("vehicle_type"), int(d.get("page", 1)), int(d.get("limit", 20))),
            "history": lambda d: self.parking.get_history(
                _parse_time(d.get("start")), _parse_time(d.get("end")), d.get("vehicle_type"),
                int(d.get("page", 1)), int(d.get("limit", 20))),
            "get_session": lambda d: self.parking.get_session(_require(d, "session_id")),
            "session_cost": lambda d: self.parking.estimate_session_cost(
                _require(d, "session_id"), _parse_time(d.get("now"))),
            "session_stats": lambda d: self.parking.get_session_stats(
                d.get("period", "DAY"), _parse_time(d.get("now"))),
            # slots
            "list_slots": lambda d: self.slots.list_slots(SlotQueryDTO(**d)),
            "get_slot": lambda d: self.slots.get_slot(_require(d, "slot_id")),
            "create_slot": lambda d: self.slots.create_slot(SlotCreateDTO(**d)),
            "bulk_create_slots": lambda d: self.slots.bulk_create(
                [SlotCreateDTO(**s) for s in _require(d, "slots")]),
            "update_slot": self._update_slot,
            "set_maintenance": lambda d: self.slots.set_maintenance(_require(d, "slot_id")),
            "release_maintenance": lambda d: self.slots.release_maintenance(_require(d, "slot_id")),
            "available_slots": lambda d: self.slots.get_available_slots(d.get("vehicle_type")),
            "availability_map": lambda d: self.slots.get_availability_map(),
            "seed_slots": lambda d: self.slots.seed_floors(
                d.get("floors"), int(d.get("slots_per_floor", 15))),
            # billing
            "calculate_bill": lambda d: self.billing.calculate(
                _parse_time(_require(d, "entry_time")), _parse_time(_require(d, "exit_time")),
                d.get("billing_type", "HOURLY")),
            "billing_preview": lambda d: self.billing.preview(),
            "billing_config": lambda d: self.billing.get_config(),
            "update_billing_config": lambda d: self.billing.update_config(**d),
            # overstay and dashboard
            "detect_overstays": lambda d: self.overstay.detect_overstays(_parse_time(d.get("now"))),
            "overstay_stats": lambda d: self.overstay.get_overstay_stats(
                int(d.get("period_days", 7)), _parse_time(d.get("now"))),
            "run_overstay_detection": lambda d: self.overstay.run_detection(_parse_time(d.get("now"))),
            "dashboard_stats": lambda d: self.dashboard.get_dashboard_stats(),
            "revenue_stats": lambda d: self.dashboard.get_revenue_stats(_parse_time(d.get("now"))),
            "occupancy_trends": lambda d: self.dashboard.get_occupancy_trends(
                d.get("period", "DAY"), _parse_time(d.get("now"))),
            "activity_stats": lambda d: self.dashboard.get_activity_stats(_parse_time(d.get("now"))),
            # analytics
            "revenue_analytics": self._revenue_analytics,
            "slot_utilization": lambda d: self.analytics.slot_utilization(*self._period_args(d)),
            "peak_hours": lambda d: self.analytics.peak_hours(*self._period_args(d)),
            "vehicle_type_analytics": lambda d: self.analytics.vehicle_type_analytics(*self._period_args(d)),
            "operational_metrics": lambda d: self.analytics.operational_metrics(*self._period_args(d)),
        }

    @property
    def command_types(self):
        return sorted(self._handlers)

    def handle(self, command: Dict[str, Any]) -> ResponseDTO:
        """Handle a parking command"""
        command_type = command.get("type")
        data = command.get("data") or {}

        handler = self._handlers.get(command_type)
        if handler is None:
            return ErrorResponseDTO(
                error=f"Unknown command type: {command_type}",
                error_code=InvalidInputError.code,
                details={"known_commands": self.command_types},
            )

        try:
            result = handler(data)
        except ParkingError as e:
            self.logger.info(f"Command {command_type} rejected: {e.code} {e.message}")
            return ErrorResponseDTO(error=e.message, error_code=e.code, details=e.details or None)
        except ValidationError as e:
            self.logger.info(f"Command {command_type} has invalid data: {e.error_count()} errors")
            return ErrorResponseDTO(
                error="Validation failed",
                error_code=InvalidInputError.code,
                details={"errors": [
                    {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                    for err in e.errors()
                ]},
            )
        except (TypeError, ValueError) as e:
            # bad argument types coming from loosely typed command data
            return ErrorResponseDTO(error=str(e), error_code=InvalidInputError.code)
        except Exception as e:
            self.logger.error(f"Error handling command {command_type}: {e}", exc_info=True)
            raise

        return SuccessResponseDTO(message=f"{command_type} completed", data=result)

    def _park_vehicle(self, data: Dict[str, Any]):
        request = VehicleEntryRequestDTO(**data)
        return self.parking.assign_slot(
            request.number_plate,
            request.vehicle_type,
            request.billing_type,
            request.slot_id,
            request.entry_time,
        )

    def _exit_vehicle(self, data: Dict[str, Any]):
        request = VehicleExitRequestDTO(**data)
        return self.parking.close_session(request.number_plate, request.exit_time)

    def _update_slot(self, data: Dict[str, Any]):
        data = dict(data)
        slot_id = _require(data, "slot_id")
        data.pop("slot_id")
        return self.slots.update_slot(slot_id, SlotUpdateDTO(**data))

    @staticmethod
    def _period_args(data: Dict[str, Any]):
        query = AnalyticsQueryDTO(period=data.get("period", "DAY"), now=_parse_time(data.get("now")))
        return query.period, query.now

    def _revenue_analytics(self, data: Dict[str, Any]):
        query = AnalyticsQueryDTO(
            period=data.get("period", "DAY"),
            start=_parse_time(data.get("start")),
            end=_parse_time(data.get("end")),
            now=_parse_time(data.get("now")),
        )
        return self.analytics.revenue_analytics(query.period, query.start, query.end, query.now)
