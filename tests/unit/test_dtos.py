# File: tests/unit/test_dtos.py
#!/usr/bin/env python3
"""
Unit Tests for Data Transfer Objects
"""

import unittest
import sys
from pathlib import Path
from datetime import datetime
from decimal import Decimal

from pydantic import ValidationError

# Add the project root to the Python path
sys.path.append(str(Path(__file__).parent.parent.parent))

from parking_billing.domain.models import RateSchedule, ParkingInterval
from parking_billing.domain.fee_calculator import calculate_fee
from parking_billing.application.dtos import (
    RateScheduleDTO, FeeResultDTO, EntryRequestDTO, ExitRequestDTO,
    FeeQuoteRequestDTO, RevenueSummaryDTO
)


class TestRateScheduleDTO(unittest.TestCase):
    """Test rate schedule DTO"""

    def test_to_domain(self):
        dto = RateScheduleDTO(
            vehicle_category="bus", base_rate="8000", hourly_rate=4000,
            daily_maximum=70000, grace_minutes=10
        )
        rate = dto.to_domain()

        self.assertEqual(rate.vehicle_category, "BUS")
        self.assertEqual(rate.base_rate, Decimal('8000'))
        self.assertEqual(rate.daily_maximum, Decimal('70000'))

    def test_from_domain(self):
        rate = RateSchedule(vehicle_category="CAR", base_rate=5000, hourly_rate=3000)
        dto = RateScheduleDTO.from_domain(rate)

        self.assertEqual(dto.base_rate, Decimal('5000'))
        self.assertIsNone(dto.daily_maximum)
        self.assertEqual(dto.to_domain(), rate)

    def test_negative_rate_rejected(self):
        with self.assertRaises(ValidationError):
            RateScheduleDTO(vehicle_category="CAR", base_rate=-1, hourly_rate=0)


class TestFeeResultDTO(unittest.TestCase):
    """Test fee result DTO"""

    def test_from_domain(self):
        rate = RateSchedule(vehicle_category="CAR", base_rate=5000, hourly_rate=3000, grace_minutes=10)
        result = calculate_fee(
            ParkingInterval(datetime(2024, 3, 12, 8, 0), datetime(2024, 3, 12, 10, 30), "CAR"), rate
        )
        dto = FeeResultDTO.from_domain(result, currency="IDR")

        self.assertEqual(dto.total_fee, Decimal('14000'))
        self.assertEqual(dto.breakdown.hourly_charge, Decimal('9000'))
        self.assertEqual(dto.duration_label, "2h 30m")
        self.assertEqual(dto.currency, "IDR")

        restored = FeeResultDTO.from_json(dto.to_json())
        self.assertEqual(restored.total_fee, Decimal('14000'))


class TestRequestDTOs(unittest.TestCase):
    """Test request DTO validation"""

    def test_entry_plate_normalized(self):
        dto = EntryRequestDTO(license_plate=" b 1234 cd ", vehicle_category="CAR")
        self.assertEqual(dto.license_plate, "B 1234 CD")
        self.assertIsNone(dto.entry_time)

    def test_entry_plate_too_long(self):
        with self.assertRaises(ValidationError):
            EntryRequestDTO(license_plate="X" * 21, vehicle_category="CAR")

    def test_exit_requires_identifier(self):
        with self.assertRaises(ValidationError):
            ExitRequestDTO()

    def test_exit_by_ticket(self):
        dto = ExitRequestDTO(ticket_id="TKT-1", lost_ticket=True)
        self.assertEqual(dto.ticket_id, "TKT-1")
        self.assertTrue(dto.lost_ticket)
        self.assertIsNone(dto.exit_time)

    def test_quote_by_plate(self):
        dto = FeeQuoteRequestDTO(license_plate="b 1")
        self.assertEqual(dto.license_plate, "B 1")
        self.assertEqual(dto.to_dict(exclude_none=True), {"license_plate": "B 1"})


class TestRevenueSummaryDTO(unittest.TestCase):
    """Test revenue summary DTO"""

    def test_period_must_be_ordered(self):
        with self.assertRaises(ValidationError):
            RevenueSummaryDTO(
                start=datetime(2024, 3, 13), end=datetime(2024, 3, 12),
                session_count=0, overnight_sessions=0, lost_ticket_sessions=0,
                total_revenue=Decimal('0')
            )


if __name__ == '__main__':
    unittest.main()
