# File: parking_billing/infrastructure/seed.py
"""
Default rate schedules (IDR) for a fresh installation

These are seed data for a rate store only. The fee calculator never reads
them directly; an unknown category raises RateNotFoundError instead of
falling back to a default row.
"""

from decimal import Decimal
from typing import List, Optional
import logging

from ..domain.models import RateSchedule
from .repositories import RateRepository


logger = logging.getLogger(__name__)


DEFAULT_RATE_SCHEDULES: List[RateSchedule] = [
    RateSchedule(
        vehicle_category="CAR",
        base_rate=Decimal('5000'),
        hourly_rate=Decimal('3000'),
        daily_maximum=Decimal('50000'),
        grace_minutes=10,
        overnight_surcharge=Decimal('10000'),
        lost_ticket_fee=Decimal('25000')
    ),
    RateSchedule(
        vehicle_category="MOTORCYCLE",
        base_rate=Decimal('2000'),
        hourly_rate=Decimal('1000'),
        daily_maximum=Decimal('20000'),
        grace_minutes=10,
        overnight_surcharge=Decimal('5000'),
        lost_ticket_fee=Decimal('10000')
    ),
    RateSchedule(
        vehicle_category="TRUCK",
        base_rate=Decimal('10000'),
        hourly_rate=Decimal('5000'),
        daily_maximum=Decimal('80000'),
        grace_minutes=10,
        overnight_surcharge=Decimal('20000'),
        lost_ticket_fee=Decimal('50000')
    ),
    RateSchedule(
        vehicle_category="BUS",
        base_rate=Decimal('8000'),
        hourly_rate=Decimal('4000'),
        daily_maximum=Decimal('70000'),
        grace_minutes=10,
        overnight_surcharge=Decimal('15000'),
        lost_ticket_fee=Decimal('40000')
    ),
]


def seed_rates(
    repository: RateRepository,
    rates: Optional[List[RateSchedule]] = None,
    overwrite: bool = False
) -> int:
    """
    Add default rate schedules to a rate store

    Categories that already have an active schedule are skipped unless
    overwrite is set. Returns the number of schedules written.
    """
    written = 0
    for rate in rates if rates is not None else DEFAULT_RATE_SCHEDULES:
        if not overwrite and repository.find_active_rate(rate.vehicle_category):
            logger.info(f"Rate for {rate.vehicle_category} already exists, skipping")
            continue
        repository.add(rate)
        written += 1

    logger.info(f"Seeded {written} rate schedule(s)")
    return written
