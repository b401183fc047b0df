# File: tests/unit/test_models.py
#!/usr/bin/env python3
"""
Unit Tests for Domain Models

Tests value object validation, rate mapping and the session lifecycle.
"""

import unittest
import sys
from pathlib import Path
from datetime import datetime, timedelta
from decimal import Decimal

# Add the project root to the Python path
sys.path.append(str(Path(__file__).parent.parent.parent))

from parking_billing.domain.models import (
    RateSchedule, ParkingInterval, FeeBreakdown, FeeResult, ParkingSession, SessionStatus,
    MalformedRateError, InvalidIntervalError, SessionAlreadyClosedError, FeeCalculationError,
    normalize_category, to_amount
)


class TestRateSchedule(unittest.TestCase):
    """Test RateSchedule value object"""

    def test_values_are_normalized(self):
        rate = RateSchedule(vehicle_category=" car ", base_rate=5000, hourly_rate=2.5, grace_minutes=10.0)

        self.assertEqual(rate.vehicle_category, "CAR")
        self.assertEqual(rate.base_rate, Decimal('5000'))
        self.assertEqual(rate.hourly_rate, Decimal('2.5'))
        self.assertEqual(rate.grace_minutes, 10)
        self.assertIsInstance(rate.grace_minutes, int)
        self.assertFalse(rate.is_capped)

    def test_negative_amount_rejected(self):
        with self.assertRaises(MalformedRateError):
            RateSchedule(vehicle_category="CAR", base_rate=-1, hourly_rate=3000)

    def test_missing_amount_rejected(self):
        with self.assertRaises(MalformedRateError):
            RateSchedule(vehicle_category="CAR", base_rate=None, hourly_rate=3000)

    def test_fractional_grace_rejected(self):
        with self.assertRaises(MalformedRateError):
            RateSchedule(vehicle_category="CAR", base_rate=0, hourly_rate=0, grace_minutes=2.5)

    def test_negative_grace_rejected(self):
        with self.assertRaises(MalformedRateError):
            RateSchedule(vehicle_category="CAR", base_rate=0, hourly_rate=0, grace_minutes=-1)

    def test_bad_currency_rejected(self):
        with self.assertRaises(MalformedRateError):
            RateSchedule(vehicle_category="CAR", base_rate=0, hourly_rate=0, currency="RP")

    def test_is_immutable(self):
        rate = RateSchedule(vehicle_category="CAR", base_rate=0, hourly_rate=0)
        with self.assertRaises(Exception):
            rate.base_rate = Decimal('1')

    def test_from_mapping_accepts_legacy_keys(self):
        rate = RateSchedule.from_mapping({
            "vehicleType": "motorcycle",
            "baseRate": "2000",
            "hourlyRate": 1000,
            "dailyMaxRate": 20000,
            "gracePeriodMinutes": 10,
            "overnightFee": 5000
        })

        self.assertEqual(rate.vehicle_category, "MOTORCYCLE")
        self.assertEqual(rate.daily_maximum, Decimal('20000'))
        self.assertEqual(rate.overnight_surcharge, Decimal('5000'))
        self.assertEqual(rate.lost_ticket_fee, Decimal('0'))
        self.assertTrue(rate.is_capped)

    def test_from_mapping_requires_hourly_rate(self):
        with self.assertRaises(MalformedRateError) as ctx:
            RateSchedule.from_mapping({"vehicle_category": "CAR", "base_rate": 5000})
        self.assertIn("hourly_rate", str(ctx.exception))

    def test_to_dict_round_trips_through_from_mapping(self):
        rate = RateSchedule(
            vehicle_category="TRUCK", base_rate=10000, hourly_rate=5000,
            daily_maximum=80000, grace_minutes=10, overnight_surcharge=20000, lost_ticket_fee=50000
        )
        self.assertEqual(RateSchedule.from_mapping(rate.to_dict()), rate)


class TestHelpers(unittest.TestCase):
    """Test module helpers"""

    def test_normalize_category(self):
        self.assertEqual(normalize_category("bus"), "BUS")
        with self.assertRaises(MalformedRateError):
            normalize_category("  ")

    def test_to_amount_rejects_non_numbers(self):
        for value in ("abc", True, float('nan'), float('inf')):
            with self.subTest(value=value):
                with self.assertRaises(MalformedRateError):
                    to_amount(value, "base_rate")

    def test_errors_share_a_base(self):
        self.assertTrue(issubclass(MalformedRateError, FeeCalculationError))
        self.assertTrue(issubclass(InvalidIntervalError, ValueError))


class TestParkingInterval(unittest.TestCase):
    """Test ParkingInterval value object"""

    def test_duration(self):
        entry = datetime(2024, 3, 12, 8, 0)
        parked = ParkingInterval(entry, entry + timedelta(hours=2), "car")
        self.assertEqual(parked.duration, timedelta(hours=2))
        self.assertEqual(parked.vehicle_category, "CAR")
        self.assertFalse(parked.lost_ticket)

    def test_missing_exit_rejected(self):
        with self.assertRaises(InvalidIntervalError):
            ParkingInterval(datetime(2024, 3, 12, 8, 0), None, "CAR")


class TestParkingSession(unittest.TestCase):
    """Test ParkingSession entity"""

    def setUp(self):
        self.entry = datetime(2024, 3, 12, 8, 0)
        self.session = ParkingSession("b 1234 cd ", "car", self.entry)
        self.result = FeeResult(
            total_fee=Decimal('14000'),
            breakdown=FeeBreakdown(base_charge=Decimal('5000'), hourly_charge=Decimal('9000')),
            duration_label="2h 30m",
            is_overnight=False,
            within_grace_period=False,
            elapsed_minutes=150,
            billable_hours=3
        )

    def test_new_session_is_active(self):
        self.assertEqual(self.session.license_plate, "B 1234 CD")
        self.assertEqual(self.session.vehicle_category, "CAR")
        self.assertTrue(self.session.ticket_id.startswith("TKT-"))
        self.assertEqual(self.session.status, SessionStatus.ACTIVE)
        self.assertIsNone(self.session.total_fee)

    def test_complete_writes_fee_back(self):
        exit_time = self.entry + timedelta(hours=2, minutes=30)
        self.session.complete(exit_time, self.result, "RCP-20240312-ABC123")

        self.assertFalse(self.session.is_active)
        self.assertEqual(self.session.exit_time, exit_time)
        self.assertEqual(self.session.total_fee, Decimal('14000'))
        self.assertEqual(self.session.hourly_charge, Decimal('9000'))
        self.assertEqual(self.session.duration_label, "2h 30m")
        self.assertEqual(self.session.receipt_number, "RCP-20240312-ABC123")

        data = self.session.to_dict()
        self.assertEqual(data["status"], "completed")
        self.assertEqual(data["total_fee"], "14000")

    def test_complete_twice_raises(self):
        exit_time = self.entry + timedelta(hours=2, minutes=30)
        self.session.complete(exit_time, self.result)
        with self.assertRaises(SessionAlreadyClosedError):
            self.session.complete(exit_time, self.result)

    def test_complete_before_entry_raises(self):
        with self.assertRaises(InvalidIntervalError):
            self.session.complete(self.entry - timedelta(minutes=1), self.result)
        self.assertTrue(self.session.is_active)

    def test_to_interval_carries_lost_ticket(self):
        self.session.lost_ticket = True
        parked = self.session.to_interval(self.entry + timedelta(hours=1))
        self.assertTrue(parked.lost_ticket)
        self.assertEqual(parked.vehicle_category, "CAR")

    def test_empty_plate_rejected(self):
        with self.assertRaises(ValueError):
            ParkingSession("  ", "CAR", self.entry)

    def test_equality_by_id(self):
        same = ParkingSession("X 1", "CAR", self.entry, id=self.session.id)
        self.assertEqual(self.session, same)
        self.assertEqual(hash(self.session), hash(same))


if __name__ == '__main__':
    unittest.main()
