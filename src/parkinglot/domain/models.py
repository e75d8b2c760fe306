# File: src/parkinglot/domain/models.py
"""
Domain Models for the Parking Allocation Engine

This module contains:
1. Enums: vehicle kinds, spot kinds, spot states, violation kinds, roles
2. Value Objects: Money
3. Entities: User, Vehicle, ParkingSpot, Reservation, ParkingTicket, Violation
4. Compatibility rules between vehicle kinds and spot kinds
5. Domain exceptions raised by the allocator and its collaborators

ParkingSpot is the only entity with concurrent mutable state. Each spot
guards its state with its own lock, so that check-and-claim is atomic even
when two allocators race for the same spot.
"""

from dataclasses import dataclass, field
from typing import Optional, Dict, Any, Callable, FrozenSet, Mapping
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
import logging
import re
import threading
import uuid


logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


# ============================================================================
# ENUMERATIONS
# ============================================================================

class VehicleType(Enum):
    """Kinds of vehicle the facility accepts"""
    CAR = "car"
    BIKE = "bike"
    TRUCK = "truck"
    ELECTRIC_VEHICLE = "electric_vehicle"

    def __str__(self) -> str:
        return self.name


class SpotType(Enum):
    """Physical kinds of parking spot"""
    COMPACT = "compact"
    REGULAR = "regular"
    LARGE = "large"
    MOTORBIKE = "motorbike"
    ELECTRIC_CHARGING = "electric_charging"

    def __str__(self) -> str:
        return self.name


class SpotState(Enum):
    """Lifecycle states of a spot"""
    FREE = "free"
    OCCUPIED = "occupied"
    RESERVED = "reserved"


class ViolationType(Enum):
    OVERSTAY = "overstay"
    UNAUTHORIZED_ZONE = "unauthorized_zone"
    INVALID_SPOT_TYPE = "invalid_spot_type"


class UserRole(Enum):
    ADMIN = "admin"
    STAFF = "staff"
    REGULAR_USER = "regular_user"
    TENANT_MANAGER = "tenant_manager"


class PaymentMethod(Enum):
    CREDIT_CARD = "credit_card"
    UPI = "upi"
    WALLET = "wallet"


# Which vehicle kinds each spot kind can physically hold
SPOT_COMPATIBILITY: Mapping[SpotType, FrozenSet[VehicleType]] = {
    SpotType.COMPACT: frozenset({VehicleType.CAR, VehicleType.BIKE}),
    SpotType.REGULAR: frozenset({VehicleType.CAR, VehicleType.ELECTRIC_VEHICLE}),
    SpotType.LARGE: frozenset({VehicleType.TRUCK, VehicleType.CAR}),
    SpotType.MOTORBIKE: frozenset({VehicleType.BIKE}),
    SpotType.ELECTRIC_CHARGING: frozenset({VehicleType.ELECTRIC_VEHICLE, VehicleType.CAR}),
}

_PREFERRED_SPOT_TYPES: Mapping[VehicleType, SpotType] = {
    VehicleType.CAR: SpotType.REGULAR,
    VehicleType.BIKE: SpotType.MOTORBIKE,
    VehicleType.TRUCK: SpotType.LARGE,
    VehicleType.ELECTRIC_VEHICLE: SpotType.ELECTRIC_CHARGING,
}


def is_compatible(spot_type: SpotType, vehicle_type: VehicleType) -> bool:
    """Check whether a spot kind can hold a vehicle kind"""
    return vehicle_type in SPOT_COMPATIBILITY.get(spot_type, frozenset())


def preferred_spot_type(vehicle_type: VehicleType) -> SpotType:
    """Spot kind a vehicle kind should be steered towards first"""
    return _PREFERRED_SPOT_TYPES[vehicle_type]


# ============================================================================
# EXCEPTIONS
# ============================================================================

class ParkingError(Exception):
    """Base exception for parking domain errors"""
    pass


class SlotUnavailableError(ParkingError):
    """No compatible spot could be claimed"""

    def __init__(self, message: str, zone_id: Optional[str] = None, waitlisted: bool = False):
        super().__init__(message)
        self.zone_id = zone_id
        self.waitlisted = waitlisted


class InvalidZoneError(ParkingError):
    """Referenced zone does not exist"""

    def __init__(self, zone_id: Optional[str]):
        super().__init__(f"Zone not found: {zone_id}")
        self.zone_id = zone_id


class InvalidVehicleError(ParkingError):
    """Vehicle reference is missing or malformed"""
    pass


class NotParkedError(ParkingError):
    """Vehicle is not currently parked"""

    def __init__(self, license_plate: str):
        super().__init__(f"Vehicle {license_plate} is not parked")
        self.license_plate = license_plate


class PaymentError(ParkingError):
    """Payment could not be completed"""
    pass


class ParkingInvariantError(AssertionError):
    """
    Raised when the allocator finds its own bookkeeping inconsistent.
    Not a ParkingError: callers must not treat it as a recoverable outcome.
    """
    pass


# ============================================================================
# VALUE OBJECTS
# ============================================================================

CENTS = Decimal("0.01")


@dataclass(frozen=True)
class Money:
    """
    Value Object: Monetary amount with currency
    Amounts are kept rounded half-up to cents
    """
    amount: Decimal
    currency: str = "USD"

    def __post_init__(self):
        """Normalize and validate the amount"""
        amount = Decimal(str(self.amount)).quantize(CENTS, rounding=ROUND_HALF_UP)
        if amount < Decimal("0"):
            raise ValueError("Money amount cannot be negative")
        if len(self.currency) != 3:
            raise ValueError(f"Currency must be 3-letter code: {self.currency}")
        object.__setattr__(self, "amount", amount)

    @classmethod
    def zero(cls, currency: str = "USD") -> "Money":
        return cls(Decimal("0"), currency)

    def __add__(self, other: "Money") -> "Money":
        """Add two money amounts (same currency only)"""
        if self.currency != other.currency:
            raise ValueError(f"Cannot add {self.currency} to {other.currency}")
        return Money(self.amount + other.amount, self.currency)

    def __mul__(self, multiplier: Decimal) -> "Money":
        if Decimal(str(multiplier)) < Decimal("0"):
            raise ValueError("Multiplier cannot be negative")
        return Money(self.amount * Decimal(str(multiplier)), self.currency)

    @property
    def is_zero(self) -> bool:
        return self.amount == Decimal("0")

    def format(self) -> str:
        """Format money for display"""
        return f"${self.amount:.2f}"

    def __str__(self) -> str:
        return self.format()

    def to_dict(self) -> Dict[str, Any]:
        return {"amount": str(self.amount), "currency": self.currency}


# ============================================================================
# ENTITIES
# ============================================================================

class Entity:
    """
    Base class for all domain entities
    Entities are equal when they share a type and an identity
    """

    def __init__(self, id: Optional[str] = None):
        self._id = id or str(uuid.uuid4())

    @property
    def id(self) -> str:
        return self._id

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Entity):
            return False
        return self.id == other.id and type(self) == type(other)

    def __hash__(self) -> int:
        return hash((self.id, type(self).__name__))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id})"


class User(Entity):
    """Entity: a facility user, identified by user id"""

    def __init__(self, user_id: str, name: str, role: UserRole = UserRole.REGULAR_USER):
        if not user_id or not str(user_id).strip():
            raise ValueError("User id cannot be empty")
        super().__init__(str(user_id).strip())
        self.name = name
        self.role = role

    @property
    def user_id(self) -> str:
        return self.id

    def __str__(self) -> str:
        return f"User[{self.user_id}, {self.name}, {self.role.name}]"


_PLATE_PATTERN = re.compile(r"^[A-Z0-9\s\-]+$")


class Vehicle(Entity):
    """
    Entity: a vehicle identified by its license plate.
    The owner is referenced by id only; the vehicle does not own the user.
    """

    def __init__(self, license_plate: str, vehicle_type: VehicleType, owner_id: Optional[str] = None):
        if not isinstance(license_plate, str) or not license_plate.strip():
            raise InvalidVehicleError("License plate cannot be empty")
        plate = license_plate.strip().upper()
        if len(plate) < 2 or len(plate) > 10:
            raise InvalidVehicleError(f"License plate must be 2-10 characters, got: {plate}")
        if not _PLATE_PATTERN.match(plate):
            raise InvalidVehicleError(
                f"License plate can only contain letters, numbers, spaces, and hyphens: {plate}"
            )
        if not isinstance(vehicle_type, VehicleType):
            raise InvalidVehicleError(f"Unknown vehicle type: {vehicle_type!r}")

        super().__init__(plate)
        self.vehicle_type = vehicle_type
        self.owner_id = owner_id

    @property
    def license_plate(self) -> str:
        return self.id

    @property
    def preferred_spot_type(self) -> SpotType:
        return preferred_spot_type(self.vehicle_type)

    def __str__(self) -> str:
        return f"{self.vehicle_type.name} [{self.license_plate}]"


class ParkingSpot(Entity):
    """
    Entity: a single parking space

    States:
        FREE      - claimable by any compatible vehicle
        OCCUPIED  - holds exactly one vehicle
        RESERVED  - held until an expiry instant, optionally for one plate

    A reservation that has passed its expiry is treated as FREE the next
    time the spot is read (lazy expiry). All reads and transitions run
    under the spot's own lock.
    """

    def __init__(
        self,
        spot_id: str,
        spot_type: SpotType,
        charging_available: Optional[bool] = None,
        clock: Optional[Clock] = None,
    ):
        if not spot_id or not str(spot_id).strip():
            raise ValueError("Spot id cannot be empty")
        if not isinstance(spot_type, SpotType):
            raise ValueError(f"Unknown spot type: {spot_type!r}")

        super().__init__(str(spot_id).strip())
        self.spot_type = spot_type
        if charging_available is None:
            charging_available = spot_type is SpotType.ELECTRIC_CHARGING
        self.charging_available = charging_available
        self.zone_id: Optional[str] = None

        self._clock: Clock = clock or datetime.now
        self._lock = threading.RLock()
        self._state = SpotState.FREE
        self._vehicle: Optional[Vehicle] = None
        self._reserved_until: Optional[datetime] = None
        self._reserved_for: Optional[str] = None

    @property
    def spot_id(self) -> str:
        return self.id

    # ------------------------------------------------------------------
    # State queries
    # ------------------------------------------------------------------

    def _expire_if_due(self) -> None:
        if (
            self._state is SpotState.RESERVED
            and self._reserved_until is not None
            and self._clock() > self._reserved_until
        ):
            logger.debug(f"Reservation on spot {self.spot_id} expired at {self._reserved_until}")
            self._clear_reservation()

    def _clear_reservation(self) -> None:
        self._state = SpotState.FREE
        self._reserved_until = None
        self._reserved_for = None

    @property
    def state(self) -> SpotState:
        with self._lock:
            self._expire_if_due()
            return self._state

    def is_available(self) -> bool:
        """True when the spot is free (after applying lazy expiry)"""
        return self.state is SpotState.FREE

    def is_occupied(self) -> bool:
        return self.state is SpotState.OCCUPIED

    def is_reserved(self) -> bool:
        return self.state is SpotState.RESERVED

    def is_reserved_for(self, license_plate: str) -> bool:
        with self._lock:
            self._expire_if_due()
            return self._state is SpotState.RESERVED and self._reserved_for == license_plate

    @property
    def parked_vehicle(self) -> Optional[Vehicle]:
        with self._lock:
            return self._vehicle

    @property
    def reserved_until(self) -> Optional[datetime]:
        with self._lock:
            self._expire_if_due()
            return self._reserved_until

    def can_fit(self, vehicle_type: VehicleType) -> bool:
        return is_compatible(self.spot_type, vehicle_type)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def occupy(self, vehicle: Vehicle) -> bool:
        """
        Atomically claim the spot for a vehicle.

        Succeeds when the vehicle fits and the spot is FREE, or RESERVED
        either without a holder or for this vehicle's plate. Claiming a
        reserved spot consumes the reservation.
        """
        if vehicle is None or not self.can_fit(vehicle.vehicle_type):
            return False

        with self._lock:
            self._expire_if_due()
            if self._state is SpotState.OCCUPIED:
                return False
            if self._state is SpotState.RESERVED and self._reserved_for not in (None, vehicle.license_plate):
                logger.debug(f"Spot {self.spot_id} is reserved for another vehicle")
                return False

            self._clear_reservation()
            self._state = SpotState.OCCUPIED
            self._vehicle = vehicle
            return True

    def vacate(self) -> Optional[Vehicle]:
        """Release the occupant; returns it, or None if the spot was not occupied"""
        with self._lock:
            if self._state is not SpotState.OCCUPIED:
                return None
            vehicle = self._vehicle
            self._vehicle = None
            self._state = SpotState.FREE
            return vehicle

    def reserve(self, until: datetime, license_plate: Optional[str] = None) -> bool:
        """Hold a FREE spot until the given instant"""
        if until is None:
            raise ValueError("Reservation expiry is required")

        with self._lock:
            self._expire_if_due()
            if self._state is not SpotState.FREE:
                return False
            self._state = SpotState.RESERVED
            self._reserved_until = until
            self._reserved_for = license_plate
            return True

    def cancel_reservation(self, license_plate: Optional[str] = None) -> bool:
        """
        Release a held reservation; no effect on FREE or OCCUPIED spots.
        When a plate is given, only that holder's reservation is released.
        """
        with self._lock:
            self._expire_if_due()
            if self._state is not SpotState.RESERVED:
                return False
            if license_plate is not None and self._reserved_for != license_plate:
                return False
            self._clear_reservation()
            return True

    def __str__(self) -> str:
        state = self.state
        charging = " (EV charging)" if self.charging_available else ""
        return f"{self.spot_id} [{self.spot_type.name}]{charging} - {state.name}"


@dataclass(frozen=True)
class Reservation:
    """A time-boxed hold on a spot, made on behalf of a user's vehicle"""
    user_id: str
    license_plate: str
    spot_id: str
    zone_id: str
    start_time: datetime
    end_time: datetime
    reservation_id: str = field(default_factory=lambda: f"RES-{uuid.uuid4().hex[:12].upper()}")

    def __post_init__(self):
        if self.end_time <= self.start_time:
            raise ValueError("Reservation end time must be after start time")

    def is_expired(self, now: datetime) -> bool:
        return now > self.end_time

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reservation_id": self.reservation_id,
            "user_id": self.user_id,
            "license_plate": self.license_plate,
            "spot_id": self.spot_id,
            "zone_id": self.zone_id,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
        }


@dataclass(frozen=True)
class ParkingTicket:
    """Record of a completed stay, issued when a vehicle leaves"""
    license_plate: str
    spot_id: str
    zone_id: str
    entry_time: datetime
    exit_time: datetime
    fee: Money
    ticket_id: str = field(default_factory=lambda: f"TKT-{uuid.uuid4().hex[:12].upper()}")

    @property
    def duration(self) -> timedelta:
        return self.exit_time - self.entry_time

    def format_duration(self) -> str:
        minutes = int(self.duration.total_seconds() // 60)
        return f"{minutes // 60}h {minutes % 60}m"

    def __str__(self) -> str:
        return (
            f"Ticket {self.ticket_id}: {self.license_plate} at {self.spot_id} "
            f"(zone {self.zone_id}), {self.format_duration()}, fee {self.fee}"
        )


@dataclass
class Violation:
    """A parking rule violation and its penalty"""
    license_plate: str
    spot_id: str
    zone_id: str
    violation_type: ViolationType
    timestamp: datetime
    penalty: Money = field(default_factory=lambda: Money(Decimal("50.00")))
    violation_id: str = field(default_factory=lambda: f"VIO-{uuid.uuid4().hex[:12].upper()}")
    is_paid: bool = False

    def mark_as_paid(self) -> None:
        self.is_paid = True

    @staticmethod
    def mark_all_as_paid(*violations: "Violation") -> None:
        for violation in violations:
            violation.mark_as_paid()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "violation_id": self.violation_id,
            "license_plate": self.license_plate,
            "spot_id": self.spot_id,
            "zone_id": self.zone_id,
            "violation_type": self.violation_type.name,
            "timestamp": self.timestamp.isoformat(),
            "penalty": str(self.penalty.amount),
            "is_paid": self.is_paid,
        }

    def __str__(self) -> str:
        status = "PAID" if self.is_paid else "UNPAID"
        return (
            f"Violation {self.violation_id}: {self.violation_type.name} by {self.license_plate} "
            f"at {self.spot_id} (zone {self.zone_id}), penalty {self.penalty} [{status}]"
        )
