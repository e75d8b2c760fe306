# File: src/parkinglot/application/parking_service.py
"""
Application service for the parking facility

This service orchestrates the use cases of the system:
1. Vehicle parking and exit (with payment)
2. Reservation management and waitlists
3. Violation checks and penalty payment
4. Availability, reports and loyalty balances

It translates between DTOs and the domain, and turns expected domain
failures into unsuccessful results. Allocator invariant failures are not
caught here.
"""

from typing import Dict, List, Mapping, Optional
from datetime import datetime
from decimal import Decimal
import logging
import threading

from ..domain.models import (
    User, Vehicle, VehicleType, UserRole, PaymentMethod, Money, Violation,
    ParkingError, PaymentError, SlotUnavailableError,
)
from ..domain.aggregates import ParkingLot
from ..domain.bounded_contexts import EventCategory
from ..domain.strategies import PaymentProcessor
from .dtos import (
    ParkingRequestDTO, ParkingAllocationDTO, ExitRequestDTO, ParkingExitDTO,
    ReservationRequestDTO, ReservationDTO, ZoneAvailabilityDTO,
    ViolationDTO, ViolationReportDTO,
)
from .reporting import generate_parking_report, format_availability


# ============================================================================
# SERVICE EXCEPTIONS
# ============================================================================

class ParkingServiceError(Exception):
    """Base exception for parking service errors"""
    pass


class RegistrationError(ParkingServiceError):
    """User or vehicle registration is inconsistent"""
    pass


class UnknownUserError(ParkingServiceError):
    pass


# ============================================================================
# MAIN PARKING SERVICE
# ============================================================================

class ParkingService:
    """
    Main application service for parking management

    Keeps the registry of users and vehicles that requests refer to by id,
    and delegates every state change to the ParkingLot allocator.
    """

    def __init__(
        self,
        lot: ParkingLot,
        processors: Optional[Mapping[PaymentMethod, PaymentProcessor]] = None,
    ):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.lot = lot
        self.processors: Dict[PaymentMethod, PaymentProcessor] = dict(processors or {})
        self._users: Dict[str, User] = {}
        self._vehicles: Dict[str, Vehicle] = {}
        self._registry_lock = threading.Lock()

        self.logger.info(f"ParkingService initialized for {lot.name}")

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def register_user(self, user_id: str, name: str, role: UserRole = UserRole.REGULAR_USER) -> User:
        user = User(user_id, name, role)
        with self._registry_lock:
            existing = self._users.get(user.user_id)
            if existing is not None:
                return existing
            self._users[user.user_id] = user
        self.logger.info(f"Registered {user}")
        return user

    def get_user(self, user_id: str) -> User:
        with self._registry_lock:
            user = self._users.get(user_id)
        if user is None:
            raise UnknownUserError(f"Unknown user: {user_id}")
        return user

    def register_vehicle(self, license_plate: str, vehicle_type: VehicleType, owner_id: Optional[str] = None) -> Vehicle:
        vehicle = Vehicle(license_plate, vehicle_type, owner_id)
        with self._registry_lock:
            if owner_id is not None and owner_id not in self._users:
                raise UnknownUserError(f"Unknown owner: {owner_id}")
            existing = self._vehicles.get(vehicle.license_plate)
            if existing is not None:
                if existing.vehicle_type is not vehicle.vehicle_type:
                    raise RegistrationError(
                        f"{vehicle.license_plate} is registered as {existing.vehicle_type.name}"
                    )
                if owner_id is not None and existing.owner_id not in (None, owner_id):
                    raise RegistrationError(f"{vehicle.license_plate} belongs to {existing.owner_id}")
                if owner_id is None or existing.owner_id == owner_id:
                    return existing
            self._vehicles[vehicle.license_plate] = vehicle
        return vehicle

    def get_vehicle(self, license_plate: str) -> Optional[Vehicle]:
        with self._registry_lock:
            return self._vehicles.get(license_plate.strip().upper())

    # ------------------------------------------------------------------
    # Parking
    # ------------------------------------------------------------------

    def park_vehicle(self, request: ParkingRequestDTO) -> ParkingAllocationDTO:
        """
        Use Case: Vehicle Entry
        1. Register the vehicle if it is new
        2. Ask the allocator for a spot
        """
        try:
            vehicle = self.register_vehicle(request.license_plate, request.kind, request.owner_id)
            spot = self.lot.assign_spot(vehicle, request.preferred_zone_id)
        except (ParkingError, ParkingServiceError) as e:
            self.logger.warning(f"Could not park {request.license_plate}: {e}")
            return ParkingAllocationDTO(success=False, license_plate=request.license_plate, message=str(e))

        return ParkingAllocationDTO(
            success=True,
            license_plate=vehicle.license_plate,
            spot_id=spot.spot_id,
            zone_id=spot.zone_id,
            spot_type=spot.spot_type.name,
            message=f"Vehicle parked at spot {spot.spot_id}",
            timestamp=self.lot.entry_time_of(vehicle.license_plate),
        )

    def exit_vehicle(self, request: ExitRequestDTO) -> ParkingExitDTO:
        """
        Use Case: Vehicle Exit
        1. Release the spot and obtain the ticket
        2. Collect the fee with the requested or configured payment method

        A declined payment does not undo the exit; the result reports it unpaid.
        """
        try:
            ticket = self.lot.release_spot(request.license_plate)
        except ParkingError as e:
            self.logger.warning(f"Could not release {request.license_plate}: {e}")
            return ParkingExitDTO(success=False, license_plate=request.license_plate, message=str(e))

        paid = ticket.fee.is_zero
        method_name = None
        message = f"Vehicle left spot {ticket.spot_id}. Fee {ticket.fee}"

        if request.collect_payment and not ticket.fee.is_zero:
            processor = self._processor_for(request.payment_method)
            method_name = processor.name if processor else None
            try:
                paid = self._collect(ticket.fee, processor)
            except PaymentError as e:
                message = f"{message}. Payment failed: {e}"
            self._record_payment(ticket.ticket_id, ticket.license_plate, ticket.fee, paid, method_name)

        return ParkingExitDTO(
            success=True,
            license_plate=ticket.license_plate,
            ticket_id=ticket.ticket_id,
            spot_id=ticket.spot_id,
            zone_id=ticket.zone_id,
            entry_time=ticket.entry_time,
            exit_time=ticket.exit_time,
            duration=ticket.format_duration(),
            fee=ticket.fee.amount,
            paid=paid,
            payment_method=method_name,
            message=message,
        )

    # ------------------------------------------------------------------
    # Reservations and waitlists
    # ------------------------------------------------------------------

    def make_reservation(self, request: ReservationRequestDTO) -> ReservationDTO:
        try:
            user = self.get_user(request.user_id)
            vehicle = self.get_vehicle(request.license_plate)
            if vehicle is None:
                raise RegistrationError(f"Vehicle {request.license_plate} is not registered")
            reservation = self.lot.make_reservation(
                user, vehicle, request.zone_id, request.start_time, request.end_time
            )
        except SlotUnavailableError as e:
            return ReservationDTO(success=False, zone_id=request.zone_id, waitlisted=e.waitlisted, message=str(e))
        except (ParkingError, ParkingServiceError) as e:
            return ReservationDTO(success=False, zone_id=request.zone_id, message=str(e))

        return ReservationDTO(
            success=True,
            reservation_id=reservation.reservation_id,
            spot_id=reservation.spot_id,
            zone_id=reservation.zone_id,
            start_time=reservation.start_time,
            end_time=reservation.end_time,
            message=f"Reservation confirmed for spot {reservation.spot_id}",
        )

    def cancel_reservation(self, reservation_id: str) -> bool:
        return self.lot.cancel_reservation(reservation_id)

    def join_waitlist(self, user_id: str, zone_id: str) -> bool:
        return self.lot.add_to_waitlist(self.get_user(user_id), zone_id)

    # ------------------------------------------------------------------
    # Violations
    # ------------------------------------------------------------------

    def check_violations(self) -> ViolationReportDTO:
        found = self.lot.check_violations()
        unpaid = sum((v.penalty.amount for v in self.lot.violations if not v.is_paid), Decimal("0"))
        return ViolationReportDTO(
            new_violations=[self._violation_dto(v) for v in found],
            total_unpaid=unpaid,
        )

    def pay_violations(self, license_plate: str, payment_method: Optional[str] = None) -> Money:
        """Pay every open penalty of a vehicle at once. Raises PaymentError on decline."""
        violations = self.lot.unpaid_violations(license_plate)
        if not violations:
            return Money.zero()

        total = Money.zero()
        for violation in violations:
            total = total + violation.penalty

        processor = self._processor_for(payment_method)
        self._collect(total, processor)
        Violation.mark_all_as_paid(*violations)
        self._record_payment(None, license_plate.strip().upper(), total, True, processor.name if processor else None)
        return total

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def check_availability(self) -> List[ZoneAvailabilityDTO]:
        snapshot = self.lot.snapshot()
        return [
            ZoneAvailabilityDTO(
                zone_id=zone.zone_id,
                name=zone.name,
                total=zone.total,
                available=zone.available,
                occupied=zone.occupied,
                reserved=zone.reserved,
                available_by_type={entry.spot_type.name: entry.available for entry in zone.by_type},
            )
            for zone in snapshot.zones
        ]

    def availability_text(self) -> str:
        return format_availability(self.lot.snapshot())

    def generate_report(self) -> str:
        return generate_parking_report(self.lot.snapshot())

    def get_loyalty_points(self, user_id: str) -> int:
        get_points = getattr(self.lot.loyalty, "get_points", None)
        return get_points(user_id) if get_points else 0

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _processor_for(self, payment_method: Optional[str]) -> Optional[PaymentProcessor]:
        if payment_method is None:
            return None
        return self.processors.get(PaymentMethod(payment_method))

    def _collect(self, amount: Money, processor: Optional[PaymentProcessor]) -> bool:
        return self.lot.billing.process_payment(amount, processor)

    def _record_payment(
        self,
        ticket_id: Optional[str],
        license_plate: str,
        amount: Money,
        paid: bool,
        method: Optional[str],
    ) -> None:
        try:
            self.lot.event_log.record_event(EventCategory.PAYMENT, {
                "ticket_id": ticket_id,
                "license_plate": license_plate,
                "amount": str(amount.amount),
                "paid": paid,
                "method": method,
                "timestamp": datetime.now().isoformat(),
            })
        except Exception as e:
            self.logger.error(f"Failed to record payment for {license_plate}: {e}")

    @staticmethod
    def _violation_dto(violation: Violation) -> ViolationDTO:
        return ViolationDTO(
            violation_id=violation.violation_id,
            license_plate=violation.license_plate,
            spot_id=violation.spot_id,
            zone_id=violation.zone_id,
            violation_type=violation.violation_type.name,
            timestamp=violation.timestamp,
            penalty=violation.penalty.amount,
            is_paid=violation.is_paid,
        )
