# File: src/parkinglot/application/dtos.py
"""
Data Transfer Objects (DTOs) for the parking service

1. Input DTOs - requests handed to ParkingService
2. Output DTOs - results returned by ParkingService

DTO Principles:
- Validation at creation (pydantic)
- Plain values only: enums travel as their names, money as Decimal
- No business logic
"""

from typing import Dict, List, Optional, Any
from datetime import datetime
from decimal import Decimal
import json

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..domain.models import VehicleType, PaymentMethod


# ============================================================================
# BASE DTO
# ============================================================================

class BaseDTO(BaseModel):
    """Base DTO with common functionality"""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        frozen=True,
    )

    def to_dict(self, exclude_none: bool = False) -> Dict[str, Any]:
        return self.model_dump(exclude_none=exclude_none)

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, json_str: str) -> "BaseDTO":
        return cls(**json.loads(json_str))


def _normalize_plate(value: str) -> str:
    value = value.strip().upper()
    if not value:
        raise ValueError("License plate cannot be empty")
    return value


# ============================================================================
# INPUT DTOs
# ============================================================================

class ParkingRequestDTO(BaseDTO):
    """DTO for a parking request"""
    license_plate: str = Field(description="License plate number")
    vehicle_type: str = Field(description="Vehicle type name, e.g. CAR or ELECTRIC_VEHICLE")
    owner_id: Optional[str] = Field(default=None, description="Owning user id")
    preferred_zone_id: Optional[str] = Field(default=None, description="Zone to try first")

    @field_validator("license_plate")
    @classmethod
    def validate_plate(cls, v: str) -> str:
        return _normalize_plate(v)

    @field_validator("vehicle_type")
    @classmethod
    def validate_vehicle_type(cls, v: str) -> str:
        name = v.strip().upper()
        if name not in VehicleType.__members__:
            raise ValueError(f"Unknown vehicle type: {v}. Valid types: {', '.join(VehicleType.__members__)}")
        return name

    @property
    def kind(self) -> VehicleType:
        return VehicleType[self.vehicle_type]


class ExitRequestDTO(BaseDTO):
    """DTO for an exit request"""
    license_plate: str = Field(description="License plate number")
    collect_payment: bool = Field(default=True, description="Charge the fee on exit")
    payment_method: Optional[str] = Field(default=None, description="Override the configured payment method")

    @field_validator("license_plate")
    @classmethod
    def validate_plate(cls, v: str) -> str:
        return _normalize_plate(v)

    @field_validator("payment_method")
    @classmethod
    def validate_payment_method(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().lower()
        if v not in {method.value for method in PaymentMethod}:
            raise ValueError(f"Unsupported payment method: {v}")
        return v


class ReservationRequestDTO(BaseDTO):
    """DTO for a reservation request"""
    user_id: str = Field(min_length=1, description="Requesting user id")
    license_plate: str = Field(description="Vehicle to hold the spot for")
    zone_id: str = Field(min_length=1, description="Zone to reserve in")
    start_time: datetime = Field(description="Reservation start")
    end_time: datetime = Field(description="Reservation end; the hold expires after it")

    @field_validator("license_plate")
    @classmethod
    def validate_plate(cls, v: str) -> str:
        return _normalize_plate(v)

    @model_validator(mode="after")
    def validate_window(self) -> "ReservationRequestDTO":
        if self.end_time <= self.start_time:
            raise ValueError("Reservation end time must be after start time")
        return self


# ============================================================================
# OUTPUT DTOs
# ============================================================================

class ParkingAllocationDTO(BaseDTO):
    """DTO for a parking allocation result"""
    success: bool
    license_plate: str
    spot_id: Optional[str] = None
    zone_id: Optional[str] = None
    spot_type: Optional[str] = None
    message: Optional[str] = None
    timestamp: Optional[datetime] = None


class ParkingExitDTO(BaseDTO):
    """DTO for a parking exit result"""
    success: bool
    license_plate: str
    ticket_id: Optional[str] = None
    spot_id: Optional[str] = None
    zone_id: Optional[str] = None
    entry_time: Optional[datetime] = None
    exit_time: Optional[datetime] = None
    duration: Optional[str] = None
    fee: Optional[Decimal] = Field(default=None, ge=0)
    paid: bool = False
    payment_method: Optional[str] = None
    message: Optional[str] = None


class ReservationDTO(BaseDTO):
    """DTO for a reservation result"""
    success: bool
    reservation_id: Optional[str] = None
    spot_id: Optional[str] = None
    zone_id: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    waitlisted: bool = False
    message: Optional[str] = None


class ZoneAvailabilityDTO(BaseDTO):
    """DTO for one zone's availability"""
    zone_id: str
    name: str
    total: int = Field(ge=0)
    available: int = Field(ge=0)
    occupied: int = Field(ge=0)
    reserved: int = Field(ge=0)
    available_by_type: Dict[str, int] = Field(default_factory=dict)


class ViolationDTO(BaseDTO):
    violation_id: str
    license_plate: str
    spot_id: str
    zone_id: str
    violation_type: str
    timestamp: datetime
    penalty: Decimal
    is_paid: bool


class ViolationReportDTO(BaseDTO):
    new_violations: List[ViolationDTO] = Field(default_factory=list)
    total_unpaid: Decimal = Decimal("0")
