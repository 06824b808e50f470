# File: src/parkwise/application/dtos.py
"""
Data Transfer Objects (DTOs) for the Parking Core

1. Input DTOs - requests coming in through the command boundary
2. Output DTOs - results returned by the application services
3. Query DTOs - filter and pagination parameters

DTOs carry data only; domain objects are converted with ``from_domain``.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
import json

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..domain.billing import BillingResult
from ..domain.exceptions import InvalidInputError
from ..domain.models import (
    BillingType, NumberPlate, ParkingSession, ReportPeriod, Slot, SlotStatus, SlotType,
    Vehicle, VehicleType, format_duration
)
from ..domain.overstay import OverstayAlert


MAX_PAGE_SIZE = 100


# ============================================================================
# BASE DTO CLASSES
# ============================================================================

class BaseDTO(BaseModel):
    """Base DTO with common functionality"""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        use_enum_values=True,
    )

    def to_dict(self, exclude_none: bool = False, **kwargs) -> Dict[str, Any]:
        data = self.model_dump(**kwargs)
        if exclude_none:
            data = {k: v for k, v in data.items() if v is not None}
        return data

    def to_json(self, **kwargs) -> str:
        return self.model_dump_json(**kwargs)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BaseDTO':
        return cls(**data)

    @classmethod
    def from_json(cls, json_str: str) -> 'BaseDTO':
        return cls(**json.loads(json_str))


def page_window(page: int, limit: int) -> Tuple[int, int]:
    """(offset, limit) for a 1-based page; rejects out-of-range values"""
    if page < 1:
        raise InvalidInputError(f"Page must be >= 1, got {page}")
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise InvalidInputError(f"Limit must be between 1 and {MAX_PAGE_SIZE}, got {limit}")
    return (page - 1) * limit, limit


class PaginatedRequest(BaseDTO):
    page: int = Field(default=1, ge=1, description="Page number (1-based)")
    page_size: int = Field(default=50, ge=1, le=MAX_PAGE_SIZE, description="Items per page")


class PaginatedResponse(BaseDTO):
    items: List[Any]
    total: int
    page: int
    page_size: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, items: List[Any], total: int, page: int, page_size: int) -> 'PaginatedResponse':
        total_pages = (total + page_size - 1) // page_size
        return cls(
            items=items,
            total=total,
            page=page,
            page_size=page_size,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        )


# ============================================================================
# SLOT DTOs
# ============================================================================

class SlotDTO(BaseDTO):
    id: str
    slot_number: str
    slot_type: SlotType
    status: SlotStatus
    floor: str

    @classmethod
    def from_domain(cls, slot: Slot) -> 'SlotDTO':
        return cls(
            id=slot.id,
            slot_number=slot.slot_number,
            slot_type=slot.slot_type,
            status=slot.status,
            floor=slot.floor,
        )


class SlotCreateDTO(BaseDTO):
    slot_number: str = Field(min_length=1, max_length=20)
    slot_type: SlotType = SlotType.REGULAR

    @field_validator('slot_number')
    @classmethod
    def normalize_number(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator('slot_type', mode='before')
    @classmethod
    def parse_type(cls, v: Any) -> SlotType:
        return SlotType.parse(v)


class SlotUpdateDTO(BaseDTO):
    slot_number: Optional[str] = Field(default=None, min_length=1, max_length=20)
    slot_type: Optional[SlotType] = None
    status: Optional[SlotStatus] = None

    @field_validator('slot_type', mode='before')
    @classmethod
    def parse_type(cls, v: Any) -> Optional[SlotType]:
        return None if v is None else SlotType.parse(v)

    @field_validator('status', mode='before')
    @classmethod
    def parse_status(cls, v: Any) -> Optional[SlotStatus]:
        return None if v is None else SlotStatus.parse(v)


class SlotQueryDTO(PaginatedRequest):
    slot_type: Optional[SlotType] = None
    status: Optional[SlotStatus] = None
    floor: Optional[str] = None
    search: Optional[str] = None

    @field_validator('slot_type', mode='before')
    @classmethod
    def parse_type(cls, v: Any) -> Optional[SlotType]:
        return None if v in (None, "") else SlotType.parse(v)

    @field_validator('status', mode='before')
    @classmethod
    def parse_status(cls, v: Any) -> Optional[SlotStatus]:
        return None if v in (None, "") else SlotStatus.parse(v)


class AvailableSlotsDTO(BaseDTO):
    """Free slots grouped by slot type"""
    vehicle_type: Optional[VehicleType] = None
    total: int
    by_type: Dict[str, List[SlotDTO]]


class AreaAvailabilityDTO(BaseDTO):
    area: str
    total: int
    available: int
    occupied: int
    maintenance: int
    by_type: Dict[str, Dict[str, int]]


class AvailabilityMapDTO(BaseDTO):
    total: int
    available: int
    areas: List[AreaAvailabilityDTO]


class SeedResultDTO(BaseDTO):
    created: int
    skipped: int
    floors: List[str]


# ============================================================================
# SESSION DTOs
# ============================================================================

class VehicleDTO(BaseDTO):
    id: str
    number_plate: str
    vehicle_type: VehicleType

    @classmethod
    def from_domain(cls, vehicle: Vehicle) -> 'VehicleDTO':
        return cls(id=vehicle.id, number_plate=vehicle.number_plate, vehicle_type=vehicle.vehicle_type)


class VehicleEntryRequestDTO(BaseDTO):
    """Gate entry request"""
    number_plate: str
    vehicle_type: VehicleType
    billing_type: BillingType = BillingType.HOURLY
    slot_id: Optional[str] = Field(default=None, description="Explicit slot id or number")
    entry_time: Optional[datetime] = None

    @field_validator('number_plate')
    @classmethod
    def validate_plate(cls, v: str) -> str:
        return NumberPlate(v).value

    @field_validator('vehicle_type', mode='before')
    @classmethod
    def parse_vehicle_type(cls, v: Any) -> VehicleType:
        return VehicleType.parse(v)

    @field_validator('billing_type', mode='before')
    @classmethod
    def parse_billing_type(cls, v: Any) -> BillingType:
        return BillingType.parse(v)


class VehicleExitRequestDTO(BaseDTO):
    number_plate: str
    exit_time: Optional[datetime] = None

    @field_validator('number_plate')
    @classmethod
    def validate_plate(cls, v: str) -> str:
        return NumberPlate(v).value


class SessionDTO(BaseDTO):
    id: str
    number_plate: str
    vehicle_type: VehicleType
    slot_id: str
    slot_number: str
    slot_type: SlotType
    entry_time: datetime
    exit_time: Optional[datetime] = None
    billing_type: BillingType
    status: str
    duration: Optional[str] = None
    billing_amount: Optional[Decimal] = None
    estimated_cost: Optional[Decimal] = None

    @classmethod
    def from_domain(
        cls,
        session: ParkingSession,
        now: Optional[datetime] = None,
        estimated_cost: Optional[Decimal] = None
    ) -> 'SessionDTO':
        return cls(
            id=session.id,
            number_plate=session.vehicle.number_plate,
            vehicle_type=session.vehicle.vehicle_type,
            slot_id=session.slot.id,
            slot_number=session.slot.slot_number,
            slot_type=session.slot.slot_type,
            entry_time=session.entry_time,
            exit_time=session.exit_time,
            billing_type=session.billing_type,
            status=session.status.value,
            duration=format_duration(session.elapsed(now or datetime.now())),
            billing_amount=session.billing_amount,
            estimated_cost=estimated_cost,
        )


class VehicleEntryResultDTO(BaseDTO):
    message: str
    session: SessionDTO
    slot: SlotDTO


class BillingQuoteDTO(BaseDTO):
    amount: Decimal
    currency: str
    duration: str
    duration_hours: int
    billing_type: BillingType
    applied_band: Optional[str] = None

    @classmethod
    def from_result(cls, result: BillingResult) -> 'BillingQuoteDTO':
        return cls(
            amount=result.amount.amount,
            currency=result.amount.currency,
            duration=result.duration,
            duration_hours=result.duration_hours,
            billing_type=result.billing_type,
            applied_band=result.applied_band.label() if result.applied_band else None,
        )


class VehicleExitResultDTO(BaseDTO):
    message: str
    session: SessionDTO
    bill: BillingQuoteDTO


class CostEstimateDTO(BaseDTO):
    session_id: str
    is_final: bool = Field(description="True once the session is completed and billed")
    quote: BillingQuoteDTO


class VehicleSearchResultDTO(BaseDTO):
    vehicle: VehicleDTO
    current_session: Optional[SessionDTO] = None
    history: List[SessionDTO] = Field(default_factory=list)


class QuickSearchResultDTO(BaseDTO):
    query: str
    active_sessions: List[SessionDTO]
    vehicles: List[VehicleDTO]


# ============================================================================
# BILLING DTOs
# ============================================================================

class RateLineDTO(BaseDTO):
    duration: str
    rate: Decimal
    description: str


class BillingPreviewDTO(BaseDTO):
    currency: str
    hourly_rates: List[RateLineDTO]
    day_pass: Dict[str, Any]


# ============================================================================
# OVERSTAY DTOs
# ============================================================================

class OverstayAlertDTO(BaseDTO):
    session_id: str
    number_plate: str
    vehicle_type: VehicleType
    slot_number: str
    slot_type: str
    entry_time: datetime
    duration: str
    duration_hours: float
    billing_type: BillingType
    severity: str
    expected_duration: float
    overstay_hours: float
    estimated_cost: Decimal
    lost_revenue: Decimal
    currency: str

    @classmethod
    def from_domain(cls, alert: OverstayAlert) -> 'OverstayAlertDTO':
        return cls(
            session_id=alert.session_id,
            number_plate=alert.number_plate,
            vehicle_type=alert.vehicle_type,
            slot_number=alert.slot_number,
            slot_type=alert.slot_type,
            entry_time=alert.entry_time,
            duration=alert.duration,
            duration_hours=alert.duration_hours,
            billing_type=alert.billing_type,
            severity=alert.severity.value,
            expected_duration=alert.expected_duration,
            overstay_hours=alert.overstay_hours,
            estimated_cost=alert.estimated_cost,
            lost_revenue=alert.lost_revenue,
            currency=alert.currency,
        )


class OverstayStatsDTO(BaseDTO):
    period_days: int
    total_overstays: int
    by_vehicle_type: Dict[str, int]
    by_severity: Dict[str, int]
    average_overstay_hours: float
    total_lost_revenue: Decimal
    currency: str
    active_alerts: Dict[str, int]


class DetectionRunDTO(BaseDTO):
    checked_at: datetime
    alerts_found: int
    notifications_sent: int
    by_severity: Dict[str, int]
    errors: List[str] = Field(default_factory=list)


# ============================================================================
# DASHBOARD DTOs
# ============================================================================

class SlotTypeBreakdownDTO(BaseDTO):
    slot_type: str
    total: int
    available: int
    occupied: int
    maintenance: int
    occupancy_rate: float


class DashboardStatsDTO(BaseDTO):
    total_slots: int
    available_slots: int
    occupied_slots: int
    maintenance_slots: int
    occupancy_rate: float = Field(description="Occupied share of all slots, percent")
    by_slot_type: List[SlotTypeBreakdownDTO]
    active_sessions: int
    active_vehicles: Dict[str, int]


class RevenuePeriodDTO(BaseDTO):
    revenue: Decimal = Decimal('0')
    sessions: int = 0


class RevenueStatsDTO(BaseDTO):
    currency: str
    generated_at: datetime
    today: RevenuePeriodDTO
    last_7_days: RevenuePeriodDTO
    month_to_date: RevenuePeriodDTO
    by_billing_type: Dict[str, RevenuePeriodDTO]


class SessionStatsDTO(BaseDTO):
    """Sessions entered since the start of the period"""
    period: ReportPeriod
    since: datetime
    total_sessions: int
    completed_sessions: int
    active_sessions: int = Field(description="Active right now, whenever they entered")
    average_duration: str
    total_revenue: Decimal
    completion_rate: float = Field(description="Completed share of the period's sessions, percent")


class OccupancyPointDTO(BaseDTO):
    period: str
    occupancy: int
    timestamp: datetime


class HourlyEntriesDTO(BaseDTO):
    hour: int
    entries: int


class ActivityStatsDTO(BaseDTO):
    entries_last_hour: int
    exits_last_hour: int
    average_parking_duration: str = Field(description="Mean stay of sessions that ended in the last 7 days")
    peak_hours: List[HourlyEntriesDTO] = Field(description="Busiest entry hours today")


# ============================================================================
# ANALYTICS DTOs
# ============================================================================

class AnalyticsQueryDTO(BaseDTO):
    period: ReportPeriod = ReportPeriod.DAY
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    now: Optional[datetime] = None

    @field_validator('period', mode='before')
    @classmethod
    def parse_period(cls, v: Any) -> ReportPeriod:
        return ReportPeriod.parse(v)


class RevenueBucketDTO(BaseDTO):
    period: str
    total_revenue: Decimal
    hourly_revenue: Decimal
    day_pass_revenue: Decimal
    transaction_count: int
    average_transaction_value: Decimal
    growth_rate: float = Field(description="Change against the previous bucket, percent")


class RevenueAnalyticsDTO(BaseDTO):
    period: ReportPeriod
    start: datetime
    end: datetime
    currency: str
    buckets: List[RevenueBucketDTO]


class SlotUtilizationDTO(BaseDTO):
    slot_type: str
    total_slots: int
    sessions: int
    average_occupancy: float
    peak_occupancy: float
    total_revenue: Decimal
    revenue_per_slot: Decimal


class HourActivityDTO(BaseDTO):
    hour: int
    entries: int
    exits: int
    revenue: Decimal
    occupancy_rate: float
    average_stay_hours: float


class VehicleTypeUsageDTO(BaseDTO):
    vehicle_type: str
    count: int
    percentage: float
    average_duration_hours: float
    total_revenue: Decimal
    revenue_per_vehicle: Decimal


class OperationalMetricsDTO(BaseDTO):
    period: ReportPeriod
    total_sessions: int
    active_sessions: int
    completed_sessions: int
    average_stay_hours: float
    turnover_rate: float = Field(description="Sessions per slot per day")
    peak_capacity_utilization: float
    overstay_rate: float


# ============================================================================
# RESPONSE DTOs
# ============================================================================

class SuccessResponseDTO(BaseDTO):
    """Standard success response DTO"""
    success: bool = Field(default=True, description="Success flag")
    message: str = Field(description="Success message")
    data: Optional[Any] = Field(default=None, description="Response data")
    timestamp: datetime = Field(default_factory=datetime.now, description="Response timestamp")


class ErrorResponseDTO(BaseDTO):
    """Standard error response DTO"""
    success: bool = Field(default=False, description="Success flag")
    error: str = Field(description="Error message")
    error_code: Optional[str] = Field(default=None, description="Error code")
    details: Optional[Dict[str, Any]] = Field(default=None, description="Error details")
    timestamp: datetime = Field(default_factory=datetime.now, description="Error timestamp")
