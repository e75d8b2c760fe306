# File: src/parkinglot/domain/aggregates.py
"""
Aggregate Roots for the Parking Allocation Engine

Aggregates:
1. ParkingZone - ordered collection of spots sharing a pricing rule
2. ParkingLot - the allocator: owns zones and the vehicle-to-spot index,
   and drives the billing, loyalty, notification, log and waitlist
   collaborators

Concurrency:
- every spot serializes its own transitions
- ParkingLot serializes its compound operations (assign, release, reserve,
  cancel, violation checks) with one re-entrant lock
- collaborators are called after that lock is released, except billing,
  which must succeed before a spot is vacated
"""

from dataclasses import dataclass, replace
from typing import Dict, Iterator, List, Mapping, Optional, Set, Tuple, Any
from datetime import datetime, timedelta
from decimal import Decimal
import logging
import threading

from .models import (
    Entity, ParkingSpot, Vehicle, User, Reservation, ParkingTicket, Violation,
    VehicleType, SpotType, SpotState, ViolationType, Money, Clock,
    preferred_spot_type,
    SlotUnavailableError, InvalidZoneError, InvalidVehicleError, NotParkedError,
    ParkingInvariantError,
)
from .strategies import PricingStrategy
from .bounded_contexts import (
    EventCategory, BillingCollaborator, LoyaltyCollaborator,
    NotificationCollaborator, LogCollaborator,
    BillingSystem, LoyaltyProgram, LoggingNotifier, InMemoryEventLog,
)
from .waitlist import WaitlistManager


# ============================================================================
# BASE AGGREGATE ROOT
# ============================================================================

class AggregateRoot(Entity):
    """
    Base class for aggregate roots
    Tracks a version that increases with every state change
    """

    def __init__(self, id: Optional[str] = None):
        super().__init__(id)
        self._version: int = 1
        self._logger = logging.getLogger(self.__class__.__name__)

    @property
    def version(self) -> int:
        return self._version

    def _increment_version(self) -> None:
        self._version += 1

    def _validate_invariants(self) -> None:
        """Validate aggregate invariants - to be overridden by subclasses"""
        pass


# ============================================================================
# SNAPSHOTS
# ============================================================================

@dataclass(frozen=True)
class SpotTypeAvailability:
    spot_type: SpotType
    total: int
    available: int


@dataclass(frozen=True)
class ZoneSnapshot:
    """Point-in-time counts for one zone"""
    zone_id: str
    name: str
    total: int
    occupied: int
    reserved: int
    available: int
    by_type: Tuple[SpotTypeAvailability, ...]
    pricing: str


@dataclass(frozen=True)
class ParkedVehicle:
    license_plate: str
    vehicle_type: VehicleType
    spot_id: str
    zone_id: str
    entry_time: datetime


@dataclass(frozen=True)
class LotSnapshot:
    """Immutable view of the whole facility, safe to render without locks"""
    lot_name: str
    generated_at: datetime
    version: int
    zones: Tuple[ZoneSnapshot, ...]
    parked: Tuple[ParkedVehicle, ...]
    reservations: Tuple[Reservation, ...]
    waitlists: Tuple[Tuple[str, Tuple[str, ...]], ...]
    violations: Tuple[Violation, ...]

    @property
    def total_spots(self) -> int:
        return sum(zone.total for zone in self.zones)

    @property
    def available_spots(self) -> int:
        return sum(zone.available for zone in self.zones)

    def zone(self, zone_id: str) -> Optional[ZoneSnapshot]:
        for zone in self.zones:
            if zone.zone_id == zone_id:
                return zone
        return None


# ============================================================================
# PARKING ZONE
# ============================================================================

class ParkingZone(Entity):
    """
    A named area of the facility. Spots keep their insertion order, which is
    the order first-fit allocation scans them in.

    Once the zone belongs to a lot, add spots through ParkingLot.add_spot so
    spot ids stay unique across zones.
    """

    def __init__(self, zone_id: str, name: Optional[str] = None, pricing_rule: Optional[PricingStrategy] = None):
        if not zone_id or not str(zone_id).strip():
            raise ValueError("Zone id cannot be empty")
        super().__init__(str(zone_id).strip())
        self.name = name or self.id
        self.pricing_rule = pricing_rule
        self._spots: List[ParkingSpot] = []
        self._spot_index: Dict[str, ParkingSpot] = {}
        self._lock = threading.RLock()

    @property
    def zone_id(self) -> str:
        return self.id

    # ------------------------------------------------------------------
    # Composition
    # ------------------------------------------------------------------

    def add_spot(self, spot: ParkingSpot) -> ParkingSpot:
        if spot is None:
            raise ValueError("Cannot add an empty spot to a zone")
        with self._lock:
            if spot.spot_id in self._spot_index:
                raise ValueError(f"Spot {spot.spot_id} already exists in zone {self.zone_id}")
            if spot.zone_id is not None and spot.zone_id != self.zone_id:
                raise ValueError(f"Spot {spot.spot_id} already belongs to zone {spot.zone_id}")
            spot.zone_id = self.zone_id
            self._spots.append(spot)
            self._spot_index[spot.spot_id] = spot
        return spot

    def add_spots(self, *spots: ParkingSpot) -> None:
        for spot in spots:
            self.add_spot(spot)

    def add_spots_of_type(self, quantity: int, spot_type: SpotType, clock: Optional[Clock] = None) -> List[ParkingSpot]:
        """Create spots named '<zone>-<type initial><n>', n following the current count"""
        if quantity <= 0:
            raise ValueError("Quantity must be positive")
        created = []
        with self._lock:
            number = len(self._spots)
            for _ in range(quantity):
                number += 1
                spot_id = f"{self.zone_id}-{spot_type.name[0]}{number}"
                while spot_id in self._spot_index:
                    number += 1
                    spot_id = f"{self.zone_id}-{spot_type.name[0]}{number}"
                created.append(self.add_spot(ParkingSpot(spot_id, spot_type, clock=clock)))
        return created

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def spots(self) -> Tuple[ParkingSpot, ...]:
        with self._lock:
            return tuple(self._spots)

    def get_spot(self, spot_id: str) -> Optional[ParkingSpot]:
        with self._lock:
            return self._spot_index.get(spot_id)

    def iter_available_spots(self, vehicle_type: VehicleType) -> Iterator[ParkingSpot]:
        """Free spots that can hold the vehicle kind, in insertion order"""
        for spot in self.spots:
            if spot.can_fit(vehicle_type) and spot.is_available():
                yield spot

    def find_available_spot(self, vehicle_type: VehicleType) -> Optional[ParkingSpot]:
        return next(self.iter_available_spots(vehicle_type), None)

    def find_reservable_spot(self, vehicle_type: VehicleType) -> Optional[ParkingSpot]:
        """First free spot of the preferred kind, else first compatible free spot"""
        preferred = preferred_spot_type(vehicle_type)
        fallback = None
        for spot in self.iter_available_spots(vehicle_type):
            if spot.spot_type is preferred:
                return spot
            if fallback is None:
                fallback = spot
        return fallback

    def has_available_spot(self) -> bool:
        return any(spot.is_available() for spot in self.spots)

    def total_count(self, spot_type: Optional[SpotType] = None) -> int:
        return sum(1 for spot in self.spots if spot_type is None or spot.spot_type is spot_type)

    def available_count(self, spot_type: Optional[SpotType] = None) -> int:
        return sum(
            1 for spot in self.spots
            if (spot_type is None or spot.spot_type is spot_type) and spot.is_available()
        )

    def available_compatible_count(self, vehicle_type: VehicleType) -> int:
        """Free spots of any kind that can hold the vehicle kind"""
        return sum(1 for _ in self.iter_available_spots(vehicle_type))

    def summarize(self) -> ZoneSnapshot:
        counts = {state: 0 for state in SpotState}
        by_type: Dict[SpotType, List[int]] = {}
        for spot in self.spots:
            state = spot.state
            counts[state] += 1
            totals = by_type.setdefault(spot.spot_type, [0, 0])
            totals[0] += 1
            if state is SpotState.FREE:
                totals[1] += 1

        return ZoneSnapshot(
            zone_id=self.zone_id,
            name=self.name,
            total=sum(counts.values()),
            occupied=counts[SpotState.OCCUPIED],
            reserved=counts[SpotState.RESERVED],
            available=counts[SpotState.FREE],
            by_type=tuple(
                SpotTypeAvailability(spot_type, total, available)
                for spot_type, (total, available) in by_type.items()
            ),
            pricing=str(self.pricing_rule) if self.pricing_rule is not None else "default",
        )

    def __str__(self) -> str:
        return f"Zone {self.zone_id} ({self.name}) - Total: {self.total_count()}, Available: {self.available_count()}"


# ============================================================================
# PARKING LOT (ALLOCATOR)
# ============================================================================

class ParkingLot(AggregateRoot):
    """
    Aggregate Root: the facility allocator

    Maintained invariants:
    - a vehicle is indexed as parked iff exactly one spot holds it
    - no vehicle is ever assigned a spot kind it cannot fit
    - every reservation record refers to a spot still reserved for its holder
    """

    def __init__(
        self,
        name: str,
        billing: Optional[BillingCollaborator] = None,
        loyalty: Optional[LoyaltyCollaborator] = None,
        notifier: Optional[NotificationCollaborator] = None,
        event_log: Optional[LogCollaborator] = None,
        waitlist: Optional[WaitlistManager] = None,
        clock: Optional[Clock] = None,
        max_stay: timedelta = timedelta(hours=24),
        violation_penalty: Money = Money(Decimal("50.00")),
        id: Optional[str] = None,
    ):
        super().__init__(id)
        self.name = name
        self.billing = billing or BillingSystem()
        self.loyalty = loyalty or LoyaltyProgram()
        self.notifier = notifier or LoggingNotifier()
        self.event_log = event_log or InMemoryEventLog()
        self.waitlist = waitlist or WaitlistManager(notifier=self.notifier)
        self.max_stay = max_stay
        self.violation_penalty = violation_penalty
        self._clock: Clock = clock or datetime.now

        self._zones: Dict[str, ParkingZone] = {}
        self._parked: Dict[str, ParkingSpot] = {}
        self._entry_times: Dict[str, datetime] = {}
        self._reservations: Dict[str, Reservation] = {}
        self._violations: List[Violation] = []
        self._violation_keys: Set[Tuple[str, str, ViolationType, datetime]] = set()
        self._lock = threading.RLock()

        self._logger.info(f"Created parking lot '{name}'")

    # ------------------------------------------------------------------
    # Zones
    # ------------------------------------------------------------------

    def add_zone(self, zone: ParkingZone) -> None:
        if zone is None:
            raise ValueError("Cannot add an empty zone")
        with self._lock:
            if zone.zone_id in self._zones:
                raise ValueError(f"Zone {zone.zone_id} already exists")
            known = {spot.spot_id for existing in self._zones.values() for spot in existing.spots}
            clashes = sorted(known.intersection(spot.spot_id for spot in zone.spots))
            if clashes:
                raise ValueError(f"Spot ids already used in another zone: {', '.join(clashes)}")
            self._zones[zone.zone_id] = zone
            self.waitlist.register_zone(zone.zone_id)
            self._increment_version()
        self._logger.info(f"Added {zone}")

    def add_spot(self, zone_id: str, spot: ParkingSpot) -> ParkingSpot:
        """Add a spot to a zone already in the lot, keeping spot ids unique lot-wide"""
        if spot is None:
            raise ValueError("Cannot add an empty spot to a zone")
        with self._lock:
            zone = self.get_zone(zone_id)
            owner = self._zone_of_spot_id(spot.spot_id)
            if owner is not None and owner is not zone:
                raise ValueError(f"Spot id {spot.spot_id} already used in zone {owner.zone_id}")
            zone.add_spot(spot)
            self._increment_version()
        self._logger.info(f"Added spot {spot.spot_id} to zone {zone_id}")
        return spot

    def _zone_of_spot_id(self, spot_id: str) -> Optional[ParkingZone]:
        for zone in self._zones.values():
            if zone.get_spot(spot_id) is not None:
                return zone
        return None

    def get_zone(self, zone_id: str) -> ParkingZone:
        zone = self._zones.get(zone_id)
        if zone is None:
            raise InvalidZoneError(zone_id)
        return zone

    @property
    def zones(self) -> Tuple[ParkingZone, ...]:
        with self._lock:
            return tuple(self._zones.values())

    # ------------------------------------------------------------------
    # Assignment
    # ------------------------------------------------------------------

    def assign_spot(self, vehicle: Vehicle, preferred_zone_id: Optional[str] = None) -> ParkingSpot:
        """
        Park a vehicle and return its spot.

        Repeated calls for a parked vehicle return the spot it already holds.
        A vehicle's own reservation is claimed first; otherwise the preferred
        zone is scanned before the others, first fit in spot order.
        Raises SlotUnavailableError when nothing compatible can be claimed.
        """
        self._validate_vehicle(vehicle)
        plate = vehicle.license_plate

        with self._lock:
            current = self._parked.get(plate)
            if current is not None:
                self._logger.debug(f"{vehicle} already parked at {current.spot_id}")
                return current

            if preferred_zone_id is not None and preferred_zone_id not in self._zones:
                raise InvalidZoneError(preferred_zone_id)

            self._purge_lapsed_reservations()
            spot = self._claim_reserved_spot(vehicle) or self._claim_first_fit(vehicle, preferred_zone_id)
            if spot is None:
                raise SlotUnavailableError(f"No available spot for {vehicle}", zone_id=preferred_zone_id)

            entry_time = self._clock()
            self._parked[plate] = spot
            self._entry_times[plate] = entry_time
            self._increment_version()

        self._logger.info(f"Vehicle {plate} parked at {spot.spot_id} in zone {spot.zone_id}")
        self._record_event(EventCategory.ENTRY_EXIT, {
            "event": "entry",
            "license_plate": plate,
            "vehicle_type": vehicle.vehicle_type.name,
            "spot_id": spot.spot_id,
            "zone_id": spot.zone_id,
            "entry_time": entry_time.isoformat(),
        })
        return spot

    def _claim_reserved_spot(self, vehicle: Vehicle) -> Optional[ParkingSpot]:
        for reservation in list(self._reservations.values()):
            if reservation.license_plate != vehicle.license_plate:
                continue
            spot = self._find_spot(reservation.zone_id, reservation.spot_id)
            if spot is not None and spot.occupy(vehicle):
                del self._reservations[reservation.reservation_id]
                self._logger.info(f"Reservation {reservation.reservation_id} claimed by {vehicle.license_plate}")
                return spot
        return None

    def _claim_first_fit(self, vehicle: Vehicle, preferred_zone_id: Optional[str]) -> Optional[ParkingSpot]:
        for zone in self._search_order(preferred_zone_id):
            for spot in zone.iter_available_spots(vehicle.vehicle_type):
                if spot.occupy(vehicle):
                    return spot
                self._logger.debug(f"Spot {spot.spot_id} was taken before {vehicle.license_plate} could claim it")
        return None

    def _search_order(self, preferred_zone_id: Optional[str]) -> List[ParkingZone]:
        zones = list(self._zones.values())
        if preferred_zone_id is None:
            return zones
        preferred = self._zones[preferred_zone_id]
        return [preferred] + [zone for zone in zones if zone is not preferred]

    # ------------------------------------------------------------------
    # Release
    # ------------------------------------------------------------------

    def release_spot(self, license_plate: str) -> ParkingTicket:
        """
        Vacate a parked vehicle's spot and return its ticket.

        The fee is computed before the spot is vacated, so a billing failure
        leaves the vehicle parked. Loyalty points, notifications and the
        waitlist hint follow once the allocator lock is released.
        """
        plate = self._normalize_plate(license_plate)

        with self._lock:
            spot = self._parked.get(plate)
            if spot is None:
                raise NotParkedError(plate)

            zone = self._zone_holding(spot)
            vehicle = spot.parked_vehicle
            if vehicle is None or vehicle.license_plate != plate:
                raise ParkingInvariantError(
                    f"Vehicle {plate} is indexed at {spot.spot_id} but the spot holds {vehicle}"
                )

            entry_time = self._entry_times[plate]
            exit_time = self._clock()
            fee = self.billing.calculate_fee(vehicle.vehicle_type, spot, entry_time, exit_time, zone)

            spot.vacate()
            del self._parked[plate]
            del self._entry_times[plate]
            self._increment_version()

        ticket = ParkingTicket(
            license_plate=plate,
            spot_id=spot.spot_id,
            zone_id=zone.zone_id,
            entry_time=entry_time,
            exit_time=exit_time,
            fee=fee,
        )
        self._logger.info(f"Vehicle {plate} left {spot.spot_id}, fee {fee}")
        self._record_event(EventCategory.ENTRY_EXIT, {
            "event": "exit",
            "ticket_id": ticket.ticket_id,
            "license_plate": plate,
            "vehicle_type": vehicle.vehicle_type.name,
            "spot_id": spot.spot_id,
            "zone_id": zone.zone_id,
            "entry_time": entry_time.isoformat(),
            "exit_time": exit_time.isoformat(),
            "fee": str(fee.amount),
        })

        if vehicle.owner_id:
            points = max(1, int(ticket.duration.total_seconds() // 3600))
            self._award_points(vehicle.owner_id, points)

        self.process_waitlist(zone.zone_id)
        return ticket

    def _award_points(self, user_id: str, points: int) -> None:
        try:
            self.loyalty.add_points(user_id, points)
        except Exception as e:
            self._logger.error(f"Failed to add loyalty points for {user_id}: {e}")
            return
        self._notify(user_id, f"You earned {points} loyalty points!")

    # ------------------------------------------------------------------
    # Reservations
    # ------------------------------------------------------------------

    def make_reservation(
        self,
        user: User,
        vehicle: Vehicle,
        zone_id: str,
        start_time: datetime,
        end_time: datetime,
    ) -> Reservation:
        """
        Hold a spot in a zone until end_time for the user's vehicle.

        When the zone has nothing suitable the user joins the zone's
        waitlist and SlotUnavailableError is raised with waitlisted=True.
        A spot claimed by someone else between the search and the hold
        raises with waitlisted=False and leaves the waitlist alone.
        """
        self._validate_vehicle(vehicle)
        if user is None:
            raise ValueError("A reservation needs a user")
        if start_time is None or end_time is None or end_time <= start_time:
            raise ValueError("Reservation end time must be after start time")
        if end_time <= self._clock():
            raise ValueError("Reservation end time is already in the past")

        reservation = None
        lost_race = False
        newly_added = False
        with self._lock:
            zone = self._zones.get(zone_id)
            if zone is None:
                raise InvalidZoneError(zone_id)

            self._purge_lapsed_reservations()
            spot = zone.find_reservable_spot(vehicle.vehicle_type)
            if spot is None:
                newly_added = self.waitlist.add_to_waitlist(user.user_id, zone.zone_id, notify=False)
            elif not spot.reserve(end_time, vehicle.license_plate):
                lost_race = True
            else:
                reservation = Reservation(
                    user_id=user.user_id,
                    license_plate=vehicle.license_plate,
                    spot_id=spot.spot_id,
                    zone_id=zone.zone_id,
                    start_time=start_time,
                    end_time=end_time,
                )
                self._reservations[reservation.reservation_id] = reservation
                self._increment_version()

        if lost_race:
            self._logger.info(f"Spot {spot.spot_id} was taken before {vehicle.license_plate} could reserve it")
            raise SlotUnavailableError(f"Spot {spot.spot_id} in zone {zone_id} is no longer available", zone_id=zone_id)

        if reservation is None:
            if newly_added:
                self.waitlist.send_added_notice(user.user_id, zone_id)
            self._record_event(EventCategory.WAITLIST, {
                "event": "waitlisted",
                "user_id": user.user_id,
                "zone_id": zone_id,
                "license_plate": vehicle.license_plate,
            })
            raise SlotUnavailableError(
                f"No spot available in zone {zone_id}; user {user.user_id} is on the waitlist",
                zone_id=zone_id,
                waitlisted=True,
            )

        self._logger.info(f"Reservation {reservation.reservation_id} made for {vehicle.license_plate} at {reservation.spot_id}")
        self._record_event(EventCategory.RESERVATION, {"event": "created", **reservation.to_dict()})
        self._notify(
            user.user_id,
            f"Reservation confirmed for spot {reservation.spot_id} "
            f"from {start_time:%Y-%m-%d %H:%M} to {end_time:%Y-%m-%d %H:%M}",
        )
        return reservation

    def cancel_reservation(self, reservation_id: str) -> bool:
        """
        Cancel a reservation and free its spot. Unknown ids are a logged no-op.
        Returns True when a spot was released.
        """
        with self._lock:
            reservation = self._reservations.pop(reservation_id, None)
            if reservation is None:
                self._logger.warning(f"Reservation {reservation_id} not found; nothing to cancel")
                return False

            spot = self._find_spot(reservation.zone_id, reservation.spot_id)
            released = spot is not None and spot.cancel_reservation(reservation.license_plate)
            self._increment_version()

        self._logger.info(f"Reservation {reservation_id} cancelled")
        self._record_event(EventCategory.RESERVATION, {
            "event": "cancelled",
            "released": released,
            **reservation.to_dict(),
        })
        if released:
            self.process_waitlist(reservation.zone_id)
        return released

    def get_reservation(self, reservation_id: str) -> Optional[Reservation]:
        with self._lock:
            self._purge_lapsed_reservations()
            return self._reservations.get(reservation_id)

    @property
    def reservations(self) -> Tuple[Reservation, ...]:
        with self._lock:
            self._purge_lapsed_reservations()
            return tuple(self._reservations.values())

    def _purge_lapsed_reservations(self) -> None:
        for reservation_id, reservation in list(self._reservations.items()):
            spot = self._find_spot(reservation.zone_id, reservation.spot_id)
            if spot is None or not spot.is_reserved_for(reservation.license_plate):
                del self._reservations[reservation_id]
                self._logger.debug(f"Reservation {reservation_id} lapsed")

    # ------------------------------------------------------------------
    # Waitlist
    # ------------------------------------------------------------------

    def add_to_waitlist(self, user: User, zone_id: str) -> bool:
        if user is None:
            raise ValueError("A waitlist entry needs a user")
        if zone_id not in self._zones:
            raise InvalidZoneError(zone_id)
        added = self.waitlist.add_to_waitlist(user.user_id, zone_id)
        if added:
            self._record_event(EventCategory.WAITLIST, {"event": "joined", "user_id": user.user_id, "zone_id": zone_id})
        return added

    def process_waitlist(self, zone_id: str) -> Optional[str]:
        """Hint the next waiting user of a zone if the zone has a free spot"""
        zone = self.get_zone(zone_id)
        user_id = self.waitlist.process_waitlist(zone_id, zone.has_available_spot)
        if user_id is not None:
            self._record_event(EventCategory.WAITLIST, {"event": "hinted", "user_id": user_id, "zone_id": zone_id})
        return user_id

    # ------------------------------------------------------------------
    # Violations
    # ------------------------------------------------------------------

    def check_violations(self) -> List[Violation]:
        """
        Scan parked vehicles for incompatible spots and overstays.
        Each kind is reported once per parking session.
        """
        found = []
        owners: Dict[str, Optional[str]] = {}
        with self._lock:
            now = self._clock()
            for plate, spot in self._parked.items():
                vehicle = spot.parked_vehicle
                if vehicle is None:
                    continue
                entry_time = self._entry_times[plate]
                kinds = []
                if not spot.can_fit(vehicle.vehicle_type):
                    kinds.append(ViolationType.INVALID_SPOT_TYPE)
                if now - entry_time > self.max_stay:
                    kinds.append(ViolationType.OVERSTAY)

                for kind in kinds:
                    key = (plate, spot.spot_id, kind, entry_time)
                    if key in self._violation_keys:
                        continue
                    self._violation_keys.add(key)
                    violation = Violation(
                        license_plate=plate,
                        spot_id=spot.spot_id,
                        zone_id=spot.zone_id,
                        violation_type=kind,
                        timestamp=now,
                        penalty=self.violation_penalty,
                    )
                    self._violations.append(violation)
                    owners[violation.violation_id] = vehicle.owner_id
                    found.append(violation)
            if found:
                self._increment_version()

        for violation in found:
            self._publish_violation(violation, owners.get(violation.violation_id))
        return found

    def record_violation(self, violation: Violation, owner_id: Optional[str] = None) -> None:
        """Register a violation detected outside the allocator"""
        with self._lock:
            self._violations.append(violation)
            self._increment_version()
        self._publish_violation(violation, owner_id)

    def _publish_violation(self, violation: Violation, owner_id: Optional[str]) -> None:
        self._logger.warning(f"Violation detected: {violation}")
        self._record_event(EventCategory.VIOLATION, violation.to_dict())
        if owner_id:
            self._notify(
                owner_id,
                f"Parking Violation Detected: {violation.violation_type.name} for vehicle "
                f"{violation.license_plate} at spot {violation.spot_id}. Penalty: {violation.penalty}",
            )

    @property
    def violations(self) -> Tuple[Violation, ...]:
        with self._lock:
            return tuple(self._violations)

    def unpaid_violations(self, license_plate: str) -> List[Violation]:
        plate = self._normalize_plate(license_plate)
        return [v for v in self.violations if v.license_plate == plate and not v.is_paid]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_vehicle(self, license_plate: str) -> Optional[ParkingSpot]:
        with self._lock:
            return self._parked.get(self._normalize_plate(license_plate))

    def is_parked(self, license_plate: str) -> bool:
        return self.find_vehicle(license_plate) is not None

    def entry_time_of(self, license_plate: str) -> Optional[datetime]:
        with self._lock:
            return self._entry_times.get(self._normalize_plate(license_plate))

    def total_spots(self) -> int:
        return sum(zone.total_count() for zone in self.zones)

    def available_spots(self) -> int:
        return sum(zone.available_count() for zone in self.zones)

    def snapshot(self) -> LotSnapshot:
        """Copy the allocator state for reporting"""
        with self._lock:
            self._purge_lapsed_reservations()
            zones = tuple(self._zones.values())
            parked = []
            for plate, spot in self._parked.items():
                vehicle = spot.parked_vehicle
                if vehicle is None:
                    continue
                parked.append(ParkedVehicle(
                    license_plate=plate,
                    vehicle_type=vehicle.vehicle_type,
                    spot_id=spot.spot_id,
                    zone_id=spot.zone_id,
                    entry_time=self._entry_times[plate],
                ))
            reservations = tuple(self._reservations.values())
            violations = tuple(replace(violation) for violation in self._violations)
            version = self.version
            generated_at = self._clock()

        return LotSnapshot(
            lot_name=self.name,
            generated_at=generated_at,
            version=version,
            zones=tuple(zone.summarize() for zone in zones),
            parked=tuple(parked),
            reservations=reservations,
            waitlists=tuple((zone.zone_id, self.waitlist.waiting_users(zone.zone_id)) for zone in zones),
            violations=violations,
        )

    # ------------------------------------------------------------------
    # Invariants and helpers
    # ------------------------------------------------------------------

    def _validate_invariants(self) -> None:
        with self._lock:
            for plate, spot in self._parked.items():
                self._zone_holding(spot)
                vehicle = spot.parked_vehicle
                if vehicle is None or vehicle.license_plate != plate:
                    raise ParkingInvariantError(f"Vehicle {plate} is indexed at {spot.spot_id} but the spot holds {vehicle}")
            for zone in self._zones.values():
                for spot in zone.spots:
                    vehicle = spot.parked_vehicle
                    if vehicle is not None and self._parked.get(vehicle.license_plate) is not spot:
                        raise ParkingInvariantError(f"Spot {spot.spot_id} holds {vehicle} which is not indexed")
                    if vehicle is not None and not spot.can_fit(vehicle.vehicle_type):
                        raise ParkingInvariantError(f"Spot {spot.spot_id} holds incompatible {vehicle}")

    def verify_invariants(self) -> None:
        """Raise ParkingInvariantError if the index and spot states disagree"""
        self._validate_invariants()

    def _zone_holding(self, spot: ParkingSpot) -> ParkingZone:
        zone = self._zones.get(spot.zone_id)
        if zone is None or zone.get_spot(spot.spot_id) is not spot:
            raise ParkingInvariantError(f"Spot {spot.spot_id} is not part of any zone of {self.name}")
        return zone

    def _find_spot(self, zone_id: str, spot_id: str) -> Optional[ParkingSpot]:
        zone = self._zones.get(zone_id)
        return zone.get_spot(spot_id) if zone is not None else None

    @staticmethod
    def _validate_vehicle(vehicle: Any) -> None:
        if not isinstance(vehicle, Vehicle):
            raise InvalidVehicleError(f"Expected a Vehicle, got {vehicle!r}")

    @staticmethod
    def _normalize_plate(license_plate: Any) -> str:
        if not isinstance(license_plate, str) or not license_plate.strip():
            raise InvalidVehicleError(f"Invalid license plate: {license_plate!r}")
        return license_plate.strip().upper()

    def _record_event(self, category: EventCategory, fields: Mapping[str, Any]) -> None:
        try:
            self.event_log.record_event(category, fields)
        except Exception as e:
            self._logger.error(f"Failed to record {category.value} event: {e}")

    def _notify(self, user_id: str, message: str) -> None:
        try:
            self.notifier.notify(user_id, message)
        except Exception as e:
            self._logger.error(f"Failed to notify {user_id}: {e}")

    def __str__(self) -> str:
        return f"{self.name}: {self.available_spots()}/{self.total_spots()} spots available in {len(self._zones)} zones"
