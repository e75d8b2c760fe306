#!/usr/bin/env python3
"""
Unit Tests for the collaborator contexts: loyalty, notifications, event log
"""

import unittest

from parkinglot.domain.bounded_contexts import (
    EventCategory, BillingCollaborator, LoyaltyCollaborator, NotificationCollaborator, LogCollaborator,
    BillingSystem, LoyaltyProgram, LoggingNotifier, InMemoryEventLog,
)
from parkinglot.domain.models import Money


class TestLoyaltyProgram(unittest.TestCase):

    def setUp(self):
        self.loyalty = LoyaltyProgram()

    def test_points_accumulate(self):
        self.loyalty.add_points("U1", 2)
        self.loyalty.add_points("U1", 3)
        self.assertEqual(self.loyalty.get_points("U1"), 5)
        self.assertEqual(self.loyalty.get_points("U2"), 0)

    def test_non_positive_points_ignored(self):
        self.loyalty.add_points("U1", 0)
        self.loyalty.add_points("U1", -4)
        self.assertEqual(self.loyalty.get_points("U1"), 0)

    def test_redeem(self):
        self.loyalty.add_points("U1", 10)
        self.assertTrue(self.loyalty.redeem_points("U1", 4))
        self.assertFalse(self.loyalty.redeem_points("U1", 7))
        self.assertFalse(self.loyalty.redeem_points("U1", 0))
        self.assertEqual(self.loyalty.get_points("U1"), 6)


class TestEventLog(unittest.TestCase):

    def test_events_kept_per_category(self):
        log = InMemoryEventLog()
        log.record_event(EventCategory.ENTRY_EXIT, {"event": "entry", "license_plate": "CAR001"})
        log.record_event("payment", {"amount": "5.00"})

        self.assertEqual(log.count(EventCategory.ENTRY_EXIT), 1)
        self.assertEqual(log.count(EventCategory.PAYMENT), 1)
        self.assertEqual(log.count(), 2)
        self.assertEqual(log.get_events(EventCategory.RESERVATION), ())

    def test_returned_events_are_copies(self):
        log = InMemoryEventLog()
        fields = {"event": "entry"}
        log.record_event(EventCategory.ENTRY_EXIT, fields)
        fields["event"] = "changed"

        event = log.get_events(EventCategory.ENTRY_EXIT)[0]
        event["event"] = "mutated"

        self.assertEqual(log.get_events(EventCategory.ENTRY_EXIT)[0]["event"], "entry")


class TestCollaboratorProtocols(unittest.TestCase):

    def test_default_implementations_satisfy_protocols(self):
        self.assertIsInstance(BillingSystem(), BillingCollaborator)
        self.assertIsInstance(LoyaltyProgram(), LoyaltyCollaborator)
        self.assertIsInstance(LoggingNotifier(), NotificationCollaborator)
        self.assertIsInstance(InMemoryEventLog(), LogCollaborator)

    def test_billing_must_collect_payments(self):
        class FeeOnly:
            def calculate_fee(self, vehicle_type, spot, entry_time, exit_time, zone=None):
                return Money.zero()

        self.assertNotIsInstance(FeeOnly(), BillingCollaborator)

    def test_logging_notifier_writes_log(self):
        with self.assertLogs("LoggingNotifier", level="INFO") as logs:
            LoggingNotifier().notify("U1", "hello")
        self.assertIn("Notification to U1: hello", logs.output[0])


if __name__ == '__main__':
    unittest.main()
