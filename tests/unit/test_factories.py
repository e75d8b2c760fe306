#!/usr/bin/env python3
"""
Unit Tests for the builder and factories

Redis and MongoDB clients are MagicMocks; no live services are contacted.
"""

import unittest
from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock

from parkinglot.config import ParkingSystemConfig
from parkinglot.domain.models import Money, PaymentMethod, SpotType
from parkinglot.domain.strategies import CreditCardProcessor, DynamicPricingRule, UPIProcessor, WalletProcessor
from parkinglot.domain.bounded_contexts import InMemoryEventLog
from parkinglot.domain.waitlist import InMemoryWaitlistStore
from parkinglot.infrastructure.factories import (
    ParkingLotBuilder, ParkingSystemFactory, PaymentProcessorFactory, pricing_rule_from_config,
)
from parkinglot.infrastructure.messaging import InMemoryMessageQueue, MongoEventLog, RedisMessageQueue
from parkinglot.infrastructure.repositories import RedisWaitlistStore
from tests import ManualClock


class TestParkingLotBuilder(unittest.TestCase):

    def test_spots_need_a_zone(self):
        with self.assertRaises(ValueError):
            ParkingLotBuilder().add_spots(2, SpotType.REGULAR)

    def test_build_zones_and_spots(self):
        clock = ManualClock()
        rule = DynamicPricingRule(hourly_rate=Decimal("4.00"))
        lot = (
            ParkingLotBuilder("Station")
            .with_clock(clock)
            .with_violation_rules(timedelta(hours=6), Money(Decimal("75.00")))
            .add_zone("A", "Alpha", rule)
            .add_spots(2, SpotType.REGULAR)
            .add_spot("A-E1", SpotType.ELECTRIC_CHARGING, charging_available=False)
            .add_zone("B")
            .add_spot("B-1", SpotType.LARGE)
            .build()
        )

        zone_a = lot.get_zone("A")
        self.assertEqual(lot.name, "Station")
        self.assertEqual([s.spot_id for s in zone_a.spots], ["A-R1", "A-R2", "A-E1"])
        self.assertFalse(zone_a.get_spot("A-E1").charging_available)
        self.assertIs(zone_a.pricing_rule, rule)
        self.assertEqual(lot.get_zone("B").name, "B")
        self.assertEqual(lot.max_stay, timedelta(hours=6))
        self.assertEqual(lot.violation_penalty, Money(Decimal("75.00")))
        self.assertEqual(lot.snapshot().generated_at, clock())

    def test_collaborators_passed_through(self):
        event_log = InMemoryEventLog()
        lot = ParkingLotBuilder().with_event_log(event_log).add_zone("A").add_spot("A-1", SpotType.REGULAR).build()
        self.assertIs(lot.event_log, event_log)


class TestPaymentProcessorFactory(unittest.TestCase):

    def test_create_by_name_or_enum(self):
        self.assertIsInstance(PaymentProcessorFactory.create("credit_card"), CreditCardProcessor)
        self.assertIsInstance(PaymentProcessorFactory.create("UPI"), UPIProcessor)
        wallet = PaymentProcessorFactory.create(PaymentMethod.WALLET, balance=Decimal("20"))
        self.assertIsInstance(wallet, WalletProcessor)
        self.assertEqual(wallet.balance, Money(Decimal("20")))

    def test_unknown_method(self):
        with self.assertRaises(ValueError):
            PaymentProcessorFactory.create("cash")

    def test_supported_methods(self):
        self.assertEqual(set(PaymentProcessorFactory.supported_methods()), set(PaymentMethod))


class TestPricingRuleFromConfig(unittest.TestCase):

    def test_missing_rule(self):
        self.assertIsNone(pricing_rule_from_config(None))
        self.assertIsNone(pricing_rule_from_config({}))

    def test_rule_values(self):
        rule = pricing_rule_from_config({"hourly_rate": 3, "peak_multiplier": "1.8"})
        self.assertEqual(rule.hourly_rate, Decimal("3"))
        self.assertEqual(rule.peak_multiplier, Decimal("1.8"))
        self.assertEqual(rule.daily_rate, Decimal("20.00"))


class TestParkingSystemFactory(unittest.TestCase):

    def test_default_facility_layout(self):
        lot = ParkingSystemFactory().create_lot()

        self.assertEqual([zone.zone_id for zone in lot.zones], ["G", "EV"])
        self.assertEqual(
            [spot.spot_id for spot in lot.get_zone("G").spots],
            ["G-R1", "G-R2", "G-R3", "G-R4", "G-R5", "G-C6", "G-C7", "G-C8", "G-L1", "G-M1", "G-M2"],
        )
        self.assertEqual([spot.spot_id for spot in lot.get_zone("EV").spots], ["EV-C1", "EV-C2", "EV-R1"])
        self.assertEqual(lot.total_spots(), 14)
        self.assertEqual(lot.get_zone("EV").pricing_rule.hourly_rate, Decimal("3.00"))
        self.assertIsNone(lot.get_zone("G").pricing_rule)

    def test_in_memory_backends_by_default(self):
        factory = ParkingSystemFactory()
        self.assertIsInstance(factory.create_notifier().queue, InMemoryMessageQueue)
        self.assertIsInstance(factory.create_event_log(), InMemoryEventLog)
        self.assertIsInstance(factory.create_waitlist_store(), InMemoryWaitlistStore)

    def test_redis_and_mongo_backends(self):
        config = ParkingSystemConfig(
            waitlist_backend="redis", event_log_backend="mongo", notification_backend="redis"
        )
        redis_client = MagicMock()
        mongo_client = MagicMock()
        factory = ParkingSystemFactory(config, redis_client=redis_client, mongo_client=mongo_client)

        notifier = factory.create_notifier()
        self.assertIsInstance(notifier.queue, RedisMessageQueue)
        self.assertIs(notifier.queue.redis_client, redis_client)

        event_log = factory.create_event_log()
        self.assertIsInstance(event_log, MongoEventLog)
        self.assertIs(event_log.client, mongo_client)

        store = factory.create_waitlist_store()
        self.assertIsInstance(store, RedisWaitlistStore)
        self.assertIs(store.client, redis_client)

    def test_billing_uses_configured_payment_method(self):
        factory = ParkingSystemFactory(ParkingSystemConfig(payment_method="wallet", grace_period_minutes=10))
        billing = factory.create_billing()
        self.assertIsInstance(billing.payment_processor, WalletProcessor)
        self.assertEqual(billing.grace_period_minutes, 10)

    def test_create_service(self):
        service = ParkingSystemFactory(clock=ManualClock()).create_service()

        self.assertEqual(set(service.processors), set(PaymentMethod))
        self.assertIsInstance(service.lot.billing.payment_processor, CreditCardProcessor)
        self.assertEqual(service.lot.total_spots(), 14)


if __name__ == '__main__':
    unittest.main()
