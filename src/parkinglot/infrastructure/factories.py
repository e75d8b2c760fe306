# File: src/parkinglot/infrastructure/factories.py
"""
Factory and Builder implementations for the Parking Allocation Engine

- ParkingLotBuilder: fluent construction of a facility (zones, spots,
  collaborators, clock)
- PaymentProcessorFactory: payment strategy selection by method
- ParkingSystemFactory: wires a complete ParkingService from configuration,
  choosing in-memory or Redis/MongoDB adapters
"""

from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union
import logging
import random

import pymongo
import redis

from ..config import ParkingSystemConfig
from ..domain.models import Clock, Money, ParkingSpot, PaymentMethod, SpotType
from ..domain.aggregates import ParkingLot, ParkingZone
from ..domain.strategies import (
    CreditCardProcessor, DynamicPricingRule, PaymentProcessor, PricingStrategy,
    UPIProcessor, WalletProcessor,
)
from ..domain.bounded_contexts import (
    BillingSystem, InMemoryEventLog, LoyaltyProgram,
    LogCollaborator, NotificationCollaborator,
)
from ..domain.waitlist import InMemoryWaitlistStore, WaitlistManager, WaitlistStore
from ..application.parking_service import ParkingService
from .messaging import MessageBrokerFactory, MongoEventLog, QueueNotificationService, RedisMessageQueue
from .repositories import RedisWaitlistStore


def pricing_rule_from_config(data: Optional[Mapping[str, Any]]) -> Optional[DynamicPricingRule]:
    if not data:
        return None
    return DynamicPricingRule(
        hourly_rate=Decimal(str(data.get("hourly_rate", "2.50"))),
        peak_multiplier=Decimal(str(data.get("peak_multiplier", "1.5"))),
        daily_rate=Decimal(str(data.get("daily_rate", "20.00"))),
    )


# ============================================================================
# PARKING LOT BUILDER
# ============================================================================

@dataclass
class _ZonePlan:
    zone_id: str
    name: Optional[str]
    pricing_rule: Optional[PricingStrategy]
    spots: List[Tuple[str, Any, Optional[bool]]] = field(default_factory=list)


class ParkingLotBuilder:
    """Builder pattern for constructing a ParkingLot with its zones"""

    def __init__(self, name: str = "Parking Lot"):
        self.reset(name)

    def reset(self, name: str = "Parking Lot") -> "ParkingLotBuilder":
        self.name = name
        self._zones: List[_ZonePlan] = []
        self._collaborators: Dict[str, Any] = {}
        self._clock: Optional[Clock] = None
        self._max_stay = timedelta(hours=24)
        self._penalty = Money(Decimal("50.00"))
        return self

    def with_clock(self, clock: Clock) -> "ParkingLotBuilder":
        self._clock = clock
        return self

    def with_billing(self, billing) -> "ParkingLotBuilder":
        self._collaborators["billing"] = billing
        return self

    def with_loyalty(self, loyalty) -> "ParkingLotBuilder":
        self._collaborators["loyalty"] = loyalty
        return self

    def with_notifier(self, notifier: NotificationCollaborator) -> "ParkingLotBuilder":
        self._collaborators["notifier"] = notifier
        return self

    def with_event_log(self, event_log: LogCollaborator) -> "ParkingLotBuilder":
        self._collaborators["event_log"] = event_log
        return self

    def with_waitlist(self, waitlist: WaitlistManager) -> "ParkingLotBuilder":
        self._collaborators["waitlist"] = waitlist
        return self

    def with_violation_rules(self, max_stay: timedelta, penalty: Money) -> "ParkingLotBuilder":
        self._max_stay = max_stay
        self._penalty = penalty
        return self

    def add_zone(self, zone_id: str, name: Optional[str] = None, pricing_rule: Optional[PricingStrategy] = None) -> "ParkingLotBuilder":
        self._zones.append(_ZonePlan(zone_id, name, pricing_rule))
        return self

    def _current_zone(self) -> _ZonePlan:
        if not self._zones:
            raise ValueError("Add a zone before adding spots")
        return self._zones[-1]

    def add_spots(self, quantity: int, spot_type: SpotType) -> "ParkingLotBuilder":
        """Add generated spots of one kind to the most recently added zone"""
        self._current_zone().spots.append(("generated", (quantity, spot_type), None))
        return self

    def add_spot(self, spot_id: str, spot_type: SpotType, charging_available: Optional[bool] = None) -> "ParkingLotBuilder":
        self._current_zone().spots.append(("explicit", (spot_id, spot_type), charging_available))
        return self

    def build(self) -> ParkingLot:
        lot = ParkingLot(
            self.name,
            clock=self._clock,
            max_stay=self._max_stay,
            violation_penalty=self._penalty,
            **self._collaborators,
        )
        for plan in self._zones:
            zone = ParkingZone(plan.zone_id, plan.name, plan.pricing_rule)
            for kind, args, charging in plan.spots:
                if kind == "generated":
                    quantity, spot_type = args
                    zone.add_spots_of_type(quantity, spot_type, clock=self._clock)
                else:
                    spot_id, spot_type = args
                    zone.add_spot(ParkingSpot(spot_id, spot_type, charging_available=charging, clock=self._clock))
            lot.add_zone(zone)
        return lot


# ============================================================================
# PAYMENT PROCESSOR FACTORY
# ============================================================================

class PaymentProcessorFactory:
    """Factory for payment strategies"""

    _processors = {
        PaymentMethod.CREDIT_CARD: CreditCardProcessor,
        PaymentMethod.UPI: UPIProcessor,
        PaymentMethod.WALLET: WalletProcessor,
    }

    @classmethod
    def create(cls, method: Union[str, PaymentMethod], rng: Optional[random.Random] = None, **kwargs) -> PaymentProcessor:
        if isinstance(method, str):
            try:
                method = PaymentMethod(method.lower())
            except ValueError:
                raise ValueError(f"Unsupported payment method: {method}") from None
        return cls._processors[method](rng=rng, **kwargs)

    @classmethod
    def supported_methods(cls) -> List[PaymentMethod]:
        return list(cls._processors)


# ============================================================================
# SYSTEM FACTORY
# ============================================================================

class ParkingSystemFactory:
    """Creates a fully wired parking system from configuration"""

    def __init__(
        self,
        config: Optional[ParkingSystemConfig] = None,
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None,
        redis_client: Optional[redis.Redis] = None,
        mongo_client: Optional[pymongo.MongoClient] = None,
    ):
        self.config = config or ParkingSystemConfig()
        self.clock = clock
        self.rng = rng
        self.redis_client = redis_client
        self.mongo_client = mongo_client
        self.logger = logging.getLogger(self.__class__.__name__)

    def create_billing(self) -> BillingSystem:
        config = self.config
        billing = BillingSystem(
            default_rule=pricing_rule_from_config(config.default_pricing) or DynamicPricingRule(),
            grace_period_minutes=config.grace_period_minutes,
            payment_processor=PaymentProcessorFactory.create(config.payment_method, rng=self.rng),
        )
        return billing

    def create_notifier(self) -> NotificationCollaborator:
        if self.config.notification_backend == "redis":
            queue = RedisMessageQueue(self.config.redis_url, client=self.redis_client)
        else:
            queue = MessageBrokerFactory.create_in_memory_broker()
        return QueueNotificationService(queue)

    def create_event_log(self) -> LogCollaborator:
        if self.config.event_log_backend == "mongo":
            return MongoEventLog(self.config.mongo_url, client=self.mongo_client)
        return InMemoryEventLog()

    def create_waitlist_store(self) -> WaitlistStore:
        if self.config.waitlist_backend == "redis":
            return RedisWaitlistStore(self.config.redis_url, client=self.redis_client)
        return InMemoryWaitlistStore()

    def create_lot(self) -> ParkingLot:
        config = self.config
        notifier = self.create_notifier()
        builder = (
            ParkingLotBuilder(config.lot_name)
            .with_billing(self.create_billing())
            .with_loyalty(LoyaltyProgram())
            .with_notifier(notifier)
            .with_event_log(self.create_event_log())
            .with_waitlist(WaitlistManager(self.create_waitlist_store(), notifier))
            .with_violation_rules(timedelta(hours=config.max_stay_hours), Money(config.violation_penalty))
        )
        if self.clock is not None:
            builder.with_clock(self.clock)

        for zone in config.zones:
            builder.add_zone(zone["id"], zone.get("name"), pricing_rule_from_config(zone.get("pricing")))
            for spot in zone.get("spots", []):
                spot_type = SpotType[str(spot["type"]).upper()]
                if spot.get("id"):
                    builder.add_spot(spot["id"], spot_type, spot.get("charging"))
                else:
                    builder.add_spots(int(spot.get("count", 1)), spot_type)

        lot = builder.build()
        self.logger.info(f"Built {lot}")
        return lot

    def create_service(self) -> ParkingService:
        lot = self.create_lot()
        processors = {
            method: PaymentProcessorFactory.create(method, rng=self.rng)
            for method in PaymentProcessorFactory.supported_methods()
        }
        return ParkingService(lot, processors=processors)
