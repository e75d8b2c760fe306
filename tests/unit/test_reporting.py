#!/usr/bin/env python3
"""
Unit Tests for the text reports rendered from a LotSnapshot
"""

import random
import unittest
from datetime import timedelta

from parkinglot.domain.models import User, Vehicle, VehicleType, Violation, ViolationType
from parkinglot.application.reporting import format_availability, generate_parking_report
from parkinglot.infrastructure.factories import ParkingSystemFactory
from tests import ManualClock, START


class ReportingTestBase(unittest.TestCase):

    def setUp(self):
        self.clock = ManualClock()
        self.lot = ParkingSystemFactory(clock=self.clock, rng=random.Random(7)).create_lot()


class TestParkingReport(ReportingTestBase):

    def test_empty_lot(self):
        report = generate_parking_report(self.lot.snapshot())

        self.assertIn("PARKING REPORT - Downtown Central Parking", report)
        self.assertIn("Generated: 2024-01-15 07:00:00", report)
        self.assertIn("Zone G (General Parking): total 11, occupied 0, reserved 0, available 11", report)
        self.assertIn("Overall: 14/14 spots available", report)
        self.assertIn("No vehicles parked", report)
        self.assertIn("WAITLISTS\n  Empty", report)
        self.assertIn("RECENT VIOLATIONS\n  None", report)

    def test_occupancy_reservations_and_waitlists(self):
        self.lot.assign_spot(Vehicle("ABC123", VehicleType.CAR))
        user = User("U1", "Alice")
        self.lot.make_reservation(user, Vehicle("EV001", VehicleType.ELECTRIC_VEHICLE), "EV", START, START + timedelta(hours=2))
        self.lot.add_to_waitlist(User("U2", "Bob"), "EV")

        report = generate_parking_report(self.lot.snapshot())

        self.assertIn("ABC123 (CAR) at G-R1, zone G, since 2024-01-15 07:00", report)
        self.assertIn("EV001 holds EV-C1 until 2024-01-15 09:00", report)
        self.assertIn("Zone EV: U2", report)
        self.assertIn("Overall: 12/14 spots available", report)

    def test_only_recent_violations_listed(self):
        violations = [
            Violation(f"CAR00{n}", "G-R1", "G", ViolationType.UNAUTHORIZED_ZONE, START) for n in range(7)
        ]
        for violation in violations:
            self.lot.record_violation(violation)

        report = generate_parking_report(self.lot.snapshot())

        for violation in violations[:2]:
            self.assertNotIn(violation.violation_id, report)
        for violation in violations[2:]:
            self.assertIn(violation.violation_id, report)

    def test_snapshot_is_detached_from_lot(self):
        snapshot = self.lot.snapshot()
        self.lot.assign_spot(Vehicle("ABC123", VehicleType.CAR))
        self.assertIn("No vehicles parked", generate_parking_report(snapshot))


class TestAvailabilityText(ReportingTestBase):

    def test_zone_and_type_lines(self):
        self.lot.assign_spot(Vehicle("EV001", VehicleType.ELECTRIC_VEHICLE), "EV")

        text = format_availability(self.lot.snapshot())

        self.assertIn("Zone EV (Electric Vehicle Zone): 2/3 available", text)
        self.assertIn("  ELECTRIC_CHARGING: 1/2", text)
        self.assertIn("  Pricing: $3.00/hr, peak x1.8 (08:00-18:00), $25.00/day max", text)
        self.assertIn("Zone G (General Parking): 11/11 available", text)
        self.assertIn("  Pricing: default", text)


if __name__ == '__main__':
    unittest.main()
