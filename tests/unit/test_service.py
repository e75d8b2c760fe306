#!/usr/bin/env python3
"""
Unit Tests for the ParkingService facade
"""

import unittest
from datetime import timedelta
from decimal import Decimal
from unittest.mock import Mock

from parkinglot.domain.models import (
    Money, PaymentMethod, PaymentError, ParkingInvariantError, SpotType, VehicleType,
)
from parkinglot.domain.bounded_contexts import BillingSystem, EventCategory, InMemoryEventLog
from parkinglot.domain.strategies import WalletProcessor
from parkinglot.application.dtos import ExitRequestDTO, ParkingRequestDTO, ReservationRequestDTO
from parkinglot.application.parking_service import ParkingService, RegistrationError, UnknownUserError
from tests import ManualClock, START, make_lot


class ServiceTestBase(unittest.TestCase):

    layout = None

    def setUp(self):
        self.clock = ManualClock()
        self.gateway = Mock()
        self.gateway.name = "Gateway"
        self.gateway.process_payment.return_value = True
        self.event_log = InMemoryEventLog()
        self.lot = make_lot(
            self.clock,
            self.layout,
            billing=BillingSystem(payment_processor=self.gateway),
            event_log=self.event_log,
            notifier=Mock(),
        )
        self.wallet = WalletProcessor(balance=Decimal("100.00"))
        self.service = ParkingService(self.lot, processors={PaymentMethod.WALLET: self.wallet})
        self.service.register_user("U1", "Alice")
        self.service.register_user("U2", "Bob")

    def park(self, plate="CAR001", owner_id="U1", vehicle_type="CAR"):
        return self.service.park_vehicle(
            ParkingRequestDTO(license_plate=plate, vehicle_type=vehicle_type, owner_id=owner_id)
        )

    def reservation_request(self, user_id="U1", plate="CAR001", zone_id="G", hours=1):
        now = self.clock()
        return ReservationRequestDTO(
            user_id=user_id, license_plate=plate, zone_id=zone_id,
            start_time=now, end_time=now + timedelta(hours=hours),
        )


class TestRegistry(ServiceTestBase):

    def test_register_user_is_idempotent(self):
        self.assertIs(self.service.register_user("U1", "Someone else"), self.service.get_user("U1"))
        with self.assertRaises(UnknownUserError):
            self.service.get_user("U9")

    def test_register_vehicle(self):
        vehicle = self.service.register_vehicle("abc123", VehicleType.CAR, "U1")
        self.assertIs(self.service.get_vehicle("ABC123"), vehicle)
        self.assertIs(self.service.register_vehicle("ABC123", VehicleType.CAR, "U1"), vehicle)
        self.assertIsNone(self.service.get_vehicle("NOPE01"))

    def test_register_vehicle_conflicts(self):
        self.service.register_vehicle("ABC123", VehicleType.CAR, "U1")
        with self.assertRaises(UnknownUserError):
            self.service.register_vehicle("XYZ999", VehicleType.CAR, "U9")
        with self.assertRaises(RegistrationError):
            self.service.register_vehicle("ABC123", VehicleType.TRUCK, "U1")
        with self.assertRaises(RegistrationError):
            self.service.register_vehicle("ABC123", VehicleType.CAR, "U2")

    def test_owner_can_be_added_later(self):
        self.service.register_vehicle("ABC123", VehicleType.CAR)
        vehicle = self.service.register_vehicle("ABC123", VehicleType.CAR, "U2")
        self.assertEqual(vehicle.owner_id, "U2")


class TestParkAndExit(ServiceTestBase):

    def test_park_success(self):
        result = self.park()

        self.assertTrue(result.success)
        self.assertEqual((result.spot_id, result.zone_id, result.spot_type), ("G-1", "G", "REGULAR"))
        self.assertEqual(result.message, "Vehicle parked at spot G-1")
        self.assertEqual(result.timestamp, START)

    def test_park_failures_become_results(self):
        self.park()
        full = self.park(plate="CAR002", owner_id="U2")
        self.assertFalse(full.success)
        self.assertIn("No available spot", full.message)

        unknown_owner = self.park(plate="CAR003", owner_id="U9")
        self.assertFalse(unknown_owner.success)

    def test_exit_with_wallet(self):
        self.park()
        self.clock.advance(hours=2)

        result = self.service.exit_vehicle(ExitRequestDTO(license_plate="car001", payment_method="wallet"))

        self.assertTrue(result.success)
        self.assertEqual(result.fee, Decimal("5.00"))
        self.assertTrue(result.paid)
        self.assertEqual(result.payment_method, "Wallet")
        self.assertEqual(result.duration, "2h 0m")
        self.assertEqual(self.wallet.balance, Money(Decimal("95.00")))
        payment = self.event_log.get_events(EventCategory.PAYMENT)[0]
        self.assertEqual((payment["amount"], payment["paid"]), ("5.00", True))

    def test_exit_uses_configured_processor(self):
        self.park()
        self.clock.advance(hours=1)

        result = self.service.exit_vehicle(ExitRequestDTO(license_plate="CAR001"))

        self.assertTrue(result.paid)
        self.gateway.process_payment.assert_called_once_with(Money(Decimal("2.50")))

    def test_exit_collects_through_billing_collaborator(self):
        billing = Mock()
        billing.calculate_fee.return_value = Money(Decimal("4.00"))
        billing.process_payment.return_value = True
        service = ParkingService(make_lot(self.clock, billing=billing, notifier=Mock()))
        service.park_vehicle(ParkingRequestDTO(license_plate="CAR001", vehicle_type="CAR"))

        result = service.exit_vehicle(ExitRequestDTO(license_plate="CAR001"))

        self.assertTrue(result.paid)
        billing.process_payment.assert_called_once_with(Money(Decimal("4.00")), None)

    def test_declined_payment_does_not_undo_exit(self):
        self.gateway.process_payment.return_value = False
        self.park()
        self.clock.advance(hours=1)

        result = self.service.exit_vehicle(ExitRequestDTO(license_plate="CAR001"))

        self.assertTrue(result.success)
        self.assertFalse(result.paid)
        self.assertIn("Payment failed", result.message)
        self.assertFalse(self.lot.is_parked("CAR001"))
        self.assertFalse(self.event_log.get_events(EventCategory.PAYMENT)[0]["paid"])

    def test_free_stay_is_paid(self):
        self.park()
        self.clock.advance(minutes=3)

        result = self.service.exit_vehicle(ExitRequestDTO(license_plate="CAR001"))

        self.assertTrue(result.paid)
        self.assertEqual(result.fee, Decimal("0.00"))
        self.gateway.process_payment.assert_not_called()
        self.assertEqual(self.event_log.count(EventCategory.PAYMENT), 0)

    def test_exit_without_collecting(self):
        self.park()
        self.clock.advance(hours=1)

        result = self.service.exit_vehicle(ExitRequestDTO(license_plate="CAR001", collect_payment=False))

        self.assertFalse(result.paid)
        self.gateway.process_payment.assert_not_called()

    def test_exit_not_parked(self):
        result = self.service.exit_vehicle(ExitRequestDTO(license_plate="CAR001"))
        self.assertFalse(result.success)
        self.assertIn("is not parked", result.message)

    def test_invariant_errors_propagate(self):
        self.park()
        self.lot.find_vehicle("CAR001").vacate()

        with self.assertRaises(ParkingInvariantError):
            self.service.exit_vehicle(ExitRequestDTO(license_plate="CAR001"))

    def test_loyalty_points(self):
        self.park()
        self.clock.advance(hours=2, minutes=10)
        self.service.exit_vehicle(ExitRequestDTO(license_plate="CAR001"))
        self.assertEqual(self.service.get_loyalty_points("U1"), 2)


class TestReservationsAndWaitlist(ServiceTestBase):

    def test_reservation_requires_registered_vehicle(self):
        result = self.service.make_reservation(self.reservation_request())
        self.assertFalse(result.success)
        self.assertIn("not registered", result.message)

    def test_reservation_lifecycle(self):
        self.service.register_vehicle("CAR001", VehicleType.CAR, "U1")

        result = self.service.make_reservation(self.reservation_request())

        self.assertTrue(result.success)
        self.assertEqual(result.spot_id, "G-1")
        self.assertTrue(self.service.cancel_reservation(result.reservation_id))
        self.assertFalse(self.service.cancel_reservation(result.reservation_id))

    def test_full_zone_reports_waitlisting(self):
        self.service.register_vehicle("CAR001", VehicleType.CAR, "U1")
        self.service.register_vehicle("CAR002", VehicleType.CAR, "U2")
        self.service.make_reservation(self.reservation_request())

        result = self.service.make_reservation(self.reservation_request(user_id="U2", plate="CAR002"))

        self.assertFalse(result.success)
        self.assertTrue(result.waitlisted)
        self.assertEqual(self.lot.waitlist.waiting_users("G"), ("U2",))

    def test_unknown_zone(self):
        self.service.register_vehicle("CAR001", VehicleType.CAR, "U1")
        result = self.service.make_reservation(self.reservation_request(zone_id="ZZZ"))
        self.assertFalse(result.success)
        self.assertFalse(result.waitlisted)

    def test_join_waitlist(self):
        self.assertTrue(self.service.join_waitlist("U1", "G"))
        self.assertFalse(self.service.join_waitlist("U1", "G"))
        with self.assertRaises(UnknownUserError):
            self.service.join_waitlist("U9", "G")


class TestViolationsAndQueries(ServiceTestBase):

    layout = [("G", [("G-1", SpotType.REGULAR), ("G-C1", SpotType.COMPACT)])]

    def setUp(self):
        super().setUp()
        self.lot.max_stay = timedelta(hours=1)

    def overstay(self):
        self.park()
        self.clock.advance(hours=2)
        return self.service.check_violations()

    def test_check_violations_report(self):
        report = self.overstay()

        self.assertEqual(len(report.new_violations), 1)
        self.assertEqual(report.new_violations[0].violation_type, "OVERSTAY")
        self.assertEqual(report.total_unpaid, Decimal("50.00"))
        self.assertEqual(self.service.check_violations().new_violations, [])

    def test_pay_violations(self):
        self.overstay()

        paid = self.service.pay_violations("car001", "wallet")

        self.assertEqual(paid, Money(Decimal("50.00")))
        self.assertEqual(self.wallet.balance, Money(Decimal("50.00")))
        self.assertEqual(self.lot.unpaid_violations("CAR001"), [])
        self.assertTrue(self.service.pay_violations("CAR001").is_zero)

    def test_declined_violation_payment(self):
        self.overstay()
        self.gateway.process_payment.return_value = False

        with self.assertRaises(PaymentError):
            self.service.pay_violations("CAR001")
        self.assertEqual(len(self.lot.unpaid_violations("CAR001")), 1)

    def test_availability(self):
        self.park()

        availability = self.service.check_availability()

        self.assertEqual(len(availability), 1)
        self.assertEqual((availability[0].total, availability[0].available, availability[0].occupied), (2, 1, 1))
        self.assertEqual(availability[0].available_by_type, {"REGULAR": 0, "COMPACT": 1})
        self.assertIn("Zone G (G): 1/2 available", self.service.availability_text())
        self.assertIn("PARKING REPORT - Test Lot", self.service.generate_report())


if __name__ == '__main__':
    unittest.main()
