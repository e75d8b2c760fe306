# File: src/parkinglot/domain/bounded_contexts.py
"""
Bounded Contexts around the Parking Allocator

The allocator owns spot state. Everything else it needs is reached through a
narrow collaborator interface, one per context:

1. Billing & Pricing Context - fee calculation and payment
2. Loyalty Context - points ledger per user
3. Notification Context - user-facing messages
4. Logging Context - structured domain events by category

Interfaces are Protocols so that infrastructure adapters (Redis, MongoDB)
satisfy them structurally without importing the domain. The in-process
implementations below are the defaults wired by the allocator.
"""

from typing import Dict, List, Optional, Any, Mapping, Protocol, Tuple, runtime_checkable
from datetime import datetime
from decimal import Decimal
from enum import Enum
import logging
import threading

from .models import (
    ParkingSpot, VehicleType, Money, PaymentError
)
from .strategies import PricingStrategy, DynamicPricingRule, PaymentProcessor


class EventCategory(str, Enum):
    """Categories of structured events sent to the log collaborator"""
    ENTRY_EXIT = "entry_exit"
    RESERVATION = "reservation"
    WAITLIST = "waitlist"
    VIOLATION = "violation"
    PAYMENT = "payment"
    SYSTEM = "system"


# ============================================================================
# COLLABORATOR INTERFACES
# ============================================================================

@runtime_checkable
class BillingCollaborator(Protocol):
    """Computes the fee for a completed stay and collects it"""

    def calculate_fee(
        self,
        vehicle_type: VehicleType,
        spot: ParkingSpot,
        entry_time: datetime,
        exit_time: datetime,
        zone: Any = None,
    ) -> Money:
        ...

    def process_payment(self, amount: Money, processor: Optional[PaymentProcessor] = None) -> bool:
        ...


@runtime_checkable
class LoyaltyCollaborator(Protocol):
    def add_points(self, user_id: str, points: int) -> None:
        ...


@runtime_checkable
class NotificationCollaborator(Protocol):
    def notify(self, user_id: str, message: str) -> None:
        ...


@runtime_checkable
class LogCollaborator(Protocol):
    def record_event(self, category: EventCategory, fields: Mapping[str, Any]) -> None:
        ...


# ============================================================================
# BILLING & PRICING CONTEXT
# ============================================================================

class BillingSystem:
    """
    Billing context: fee calculation and payment collection

    Fee rules:
    - stays shorter than the grace period are free
    - base fee comes from the zone's pricing rule, else a rule registered
      here for the zone id, else the default rule
    - trucks pay 20% more, bikes 30% less
    - an electric vehicle on a charging-capable spot pays a flat charging fee
    """

    VEHICLE_MULTIPLIERS: Mapping[VehicleType, Decimal] = {
        VehicleType.TRUCK: Decimal("1.2"),
        VehicleType.BIKE: Decimal("0.7"),
    }

    def __init__(
        self,
        default_rule: Optional[PricingStrategy] = None,
        grace_period_minutes: int = 5,
        ev_charging_fee: Decimal = Decimal("5.00"),
        payment_processor: Optional[PaymentProcessor] = None,
    ):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.default_rule = default_rule or DynamicPricingRule()
        self.grace_period_minutes = grace_period_minutes
        self.ev_charging_fee = Decimal(str(ev_charging_fee))
        self._zone_rules: Dict[str, PricingStrategy] = {}
        self._payment_processor = payment_processor

    # ------------------------------------------------------------------
    # Pricing
    # ------------------------------------------------------------------

    def add_zone_pricing_rule(self, zone_id: str, rule: PricingStrategy) -> None:
        self._zone_rules[zone_id] = rule
        self.logger.info(f"Pricing rule for zone {zone_id} set to {rule}")

    def resolve_rule(self, zone: Any = None) -> PricingStrategy:
        if zone is not None:
            if getattr(zone, "pricing_rule", None) is not None:
                return zone.pricing_rule
            rule = self._zone_rules.get(getattr(zone, "zone_id", None))
            if rule is not None:
                return rule
        return self.default_rule

    def calculate_fee(
        self,
        vehicle_type: VehicleType,
        spot: ParkingSpot,
        entry_time: datetime,
        exit_time: datetime,
        zone: Any = None,
    ) -> Money:
        if exit_time < entry_time:
            self.logger.error(f"Exit time {exit_time} is before entry time {entry_time}; charging nothing")
            return Money.zero()

        duration = exit_time - entry_time
        if duration.total_seconds() < self.grace_period_minutes * 60:
            return Money.zero()

        fee = self.resolve_rule(zone).calculate(duration, entry_time)
        fee = fee * self.VEHICLE_MULTIPLIERS.get(vehicle_type, Decimal("1"))

        if (
            vehicle_type is VehicleType.ELECTRIC_VEHICLE
            and spot is not None
            and spot.charging_available
        ):
            fee += self.ev_charging_fee

        return Money(fee)

    # ------------------------------------------------------------------
    # Payment
    # ------------------------------------------------------------------

    @property
    def payment_processor(self) -> Optional[PaymentProcessor]:
        return self._payment_processor

    def set_payment_processor(self, processor: PaymentProcessor) -> None:
        self._payment_processor = processor
        self.logger.info(f"Payment processor set to {processor.name}")

    def process_payment(self, amount: Money, processor: Optional[PaymentProcessor] = None) -> bool:
        """
        Collect a fee. Non-positive amounts need no payment.
        Raises PaymentError when no processor is configured or the charge is declined.
        """
        if amount.amount <= Decimal("0"):
            self.logger.warning("No payment required for zero amount")
            return True

        processor = processor or self._payment_processor
        if processor is None:
            raise PaymentError("No payment processor configured")

        if not processor.process_payment(amount):
            raise PaymentError(f"{processor.name} payment of {amount} failed")
        return True


# ============================================================================
# LOYALTY CONTEXT
# ============================================================================

class LoyaltyProgram:
    """Points ledger keyed by user id"""

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)
        self._points: Dict[str, int] = {}
        self._lock = threading.Lock()

    def add_points(self, user_id: str, points: int) -> None:
        if points <= 0:
            return
        with self._lock:
            self._points[user_id] = self._points.get(user_id, 0) + points
            total = self._points[user_id]
        self.logger.info(f"User {user_id} earned {points} points (balance {total})")

    def redeem_points(self, user_id: str, points: int) -> bool:
        if points <= 0:
            return False
        with self._lock:
            balance = self._points.get(user_id, 0)
            if balance < points:
                return False
            self._points[user_id] = balance - points
        self.logger.info(f"User {user_id} redeemed {points} points")
        return True

    def get_points(self, user_id: str) -> int:
        with self._lock:
            return self._points.get(user_id, 0)


# ============================================================================
# NOTIFICATION CONTEXT
# ============================================================================

class LoggingNotifier:
    """Default notifier: writes user messages to the application log"""

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    def notify(self, user_id: str, message: str) -> None:
        self.logger.info(f"Notification to {user_id}: {message}")


# ============================================================================
# LOGGING CONTEXT
# ============================================================================

class InMemoryEventLog:
    """Append-only event log kept in process, one list per category"""

    def __init__(self):
        self._events: Dict[EventCategory, List[Dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def record_event(self, category: EventCategory, fields: Mapping[str, Any]) -> None:
        with self._lock:
            self._events.setdefault(EventCategory(category), []).append(dict(fields))

    def get_events(self, category: EventCategory) -> Tuple[Dict[str, Any], ...]:
        with self._lock:
            return tuple(dict(event) for event in self._events.get(EventCategory(category), []))

    def count(self, category: Optional[EventCategory] = None) -> int:
        with self._lock:
            if category is not None:
                return len(self._events.get(EventCategory(category), []))
            return sum(len(events) for events in self._events.values())
