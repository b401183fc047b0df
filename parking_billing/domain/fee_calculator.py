# File: parking_billing/domain/fee_calculator.py
"""
Parking Fee Calculator

Domain service that turns a ParkingInterval and a RateSchedule into a FeeResult.
It is the single fee entry point: exit processing, live fee quotes and receipts
all delegate here.

Billing rules:
1. Elapsed minutes are rounded up (a started minute is billed)
2. Sessions within the grace period are free (sharp threshold, inclusive)
3. Base rate is charged once, hours are rounded up
4. Every full 24h block and the leftover hours are each capped at the daily maximum
5. Crossing a calendar-day boundary adds the overnight surcharge, at least once

The overnight rule is a Strategy (OvernightPolicy) so it can be replaced
without touching the accumulation logic.

The calculator is pure: no I/O, no clock, no global rate tables.
"""

from abc import ABC, abstractmethod
from typing import Optional, Tuple
from datetime import datetime, timedelta, tzinfo
from decimal import Decimal
import logging
import re

from .models import (
    RateSchedule, ParkingInterval, FeeBreakdown, FeeResult,
    InvalidIntervalError, MalformedRateError, RateNotFoundError, ZERO
)


logger = logging.getLogger(__name__)

MINUTES_PER_HOUR = 60
HOURS_PER_DAY = 24
_MICROSECONDS_PER_MINUTE = 60 * 1_000_000


# ============================================================================
# DURATION HELPERS
# ============================================================================

def _validate_pair(entry_time: datetime, exit_time: datetime) -> timedelta:
    if entry_time is None or exit_time is None:
        raise InvalidIntervalError("Entry and exit times are required")
    try:
        elapsed = exit_time - entry_time
    except TypeError:
        raise InvalidIntervalError("Cannot compare naive and timezone-aware datetimes")
    if elapsed < timedelta(0):
        raise InvalidIntervalError(
            f"Exit time {exit_time.isoformat()} precedes entry time {entry_time.isoformat()}"
        )
    return elapsed


def billable_minutes(elapsed: timedelta) -> int:
    """Whole minutes started, i.e. ceil of the elapsed minutes"""
    microseconds = elapsed // timedelta(microseconds=1)
    return -(-microseconds // _MICROSECONDS_PER_MINUTE)


def duration_components(entry_time: datetime, exit_time: datetime) -> Tuple[int, int, int]:
    """
    Split the elapsed time into truncated (days, hours, minutes)

    Raises: InvalidIntervalError if exit precedes entry
    """
    elapsed = _validate_pair(entry_time, exit_time)
    total_minutes = elapsed // timedelta(minutes=1)
    days, remainder = divmod(total_minutes, HOURS_PER_DAY * MINUTES_PER_HOUR)
    hours, minutes = divmod(remainder, MINUTES_PER_HOUR)
    return days, hours, minutes


def format_duration(entry_time: datetime, exit_time: datetime) -> str:
    """
    Human-readable duration, e.g. "1d 3h 5m", "2h 15m", "45m"

    Leading zero components are omitted; inner zeros are kept ("1d 0h 5m").
    Usable on its own for a live "current duration" display.
    """
    days, hours, minutes = duration_components(entry_time, exit_time)
    if days:
        return f"{days}d {hours}h {minutes}m"
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


_LABEL_PATTERN = re.compile(r'^(?:(\d+)d )?(?:(\d+)h )?(\d+)m$')


def parse_duration_label(label: str) -> Tuple[int, int, int]:
    """Inverse of format_duration: "2h 15m" -> (0, 2, 15)"""
    match = _LABEL_PATTERN.match(label.strip()) if label else None
    if not match:
        raise ValueError(f"Not a duration label: {label!r}")
    days, hours, minutes = match.groups()
    return int(days or 0), int(hours or 0), int(minutes)


# ============================================================================
# OVERNIGHT POLICIES (Strategy Pattern)
# ============================================================================

def _local_date(moment: datetime, tz: Optional[tzinfo]):
    # Naive datetimes are already local wall time
    if moment.tzinfo is None:
        return moment.date()
    return moment.astimezone(tz).date()


def crosses_calendar_day_boundary(
    entry_time: datetime,
    exit_time: datetime,
    tz: Optional[tzinfo] = None
) -> bool:
    """
    Check if entry and exit fall on different calendar dates

    Aware datetimes are compared in `tz` (system local zone when None).
    """
    return _local_date(entry_time, tz) != _local_date(exit_time, tz)


class OvernightPolicy(ABC):
    """
    Abstract base class for overnight surcharge policies
    Decides when a session is overnight and how many surcharges it owes
    """

    @abstractmethod
    def is_overnight(self, interval: ParkingInterval, tz: Optional[tzinfo] = None) -> bool:
        pass

    def surcharge_units(self, elapsed_days: int) -> int:
        """Number of surcharges owed by an overnight session"""
        return max(elapsed_days, 1)

    def __str__(self) -> str:
        return self.__class__.__name__.replace("OvernightPolicy", "")


class CalendarDayOvernightPolicy(OvernightPolicy):
    """
    Overnight when the session crosses a local calendar-day boundary
    (entered 23:30, left 00:15 -> one surcharge)
    """

    def is_overnight(self, interval: ParkingInterval, tz: Optional[tzinfo] = None) -> bool:
        return crosses_calendar_day_boundary(interval.entry_time, interval.exit_time, tz)


class ElapsedHoursOvernightPolicy(OvernightPolicy):
    """
    Overnight when the session lasts at least `threshold_hours`
    (exit-handler variant used 24h, the overnight gate screen used 8h)
    """

    def __init__(self, threshold_hours: int = HOURS_PER_DAY):
        if threshold_hours <= 0:
            raise ValueError("Overnight threshold must be positive")
        self.threshold_hours = threshold_hours

    def is_overnight(self, interval: ParkingInterval, tz: Optional[tzinfo] = None) -> bool:
        return interval.duration >= timedelta(hours=self.threshold_hours)


DEFAULT_OVERNIGHT_POLICY = CalendarDayOvernightPolicy()


# ============================================================================
# FEE CALCULATION
# ============================================================================

def _capped(amount: Decimal, cap: Optional[Decimal]) -> Decimal:
    if cap is None:
        return amount
    return min(amount, cap)


def calculate_fee(
    interval: ParkingInterval,
    rate: Optional[RateSchedule],
    tz: Optional[tzinfo] = None,
    overnight_policy: Optional[OvernightPolicy] = None
) -> FeeResult:
    """
    Calculate the parking fee for an interval under a rate schedule

    Args:
        interval: Entry/exit pair and vehicle category
        rate: Rate schedule resolved by the caller for interval.vehicle_category
        tz: Deployment timezone for the calendar-day check
        overnight_policy: Overnight rule, CalendarDayOvernightPolicy by default

    Returns:
        FeeResult with total, breakdown and duration label

    Raises:
        RateNotFoundError: rate is None
        MalformedRateError: rate is not a valid RateSchedule
        InvalidIntervalError: exit precedes entry
    """
    if rate is None:
        raise RateNotFoundError(getattr(interval, 'vehicle_category', None))
    if not isinstance(rate, RateSchedule):
        raise MalformedRateError(f"Expected RateSchedule, got {type(rate).__name__}")
    if not isinstance(interval, ParkingInterval):
        raise InvalidIntervalError(f"Expected ParkingInterval, got {type(interval).__name__}")

    policy = overnight_policy or DEFAULT_OVERNIGHT_POLICY
    elapsed = _validate_pair(interval.entry_time, interval.exit_time)

    minutes = billable_minutes(elapsed)
    label = format_duration(interval.entry_time, interval.exit_time)
    overnight = policy.is_overnight(interval, tz)
    penalty = rate.lost_ticket_fee if interval.lost_ticket else ZERO

    if minutes <= rate.grace_minutes:
        logger.debug(
            f"{interval.vehicle_category}: {minutes}min within {rate.grace_minutes}min grace period"
        )
        return FeeResult(
            total_fee=penalty,
            breakdown=FeeBreakdown(lost_ticket_penalty=penalty),
            duration_label=label,
            is_overnight=overnight,
            within_grace_period=True,
            elapsed_minutes=minutes
        )

    hours = -(-minutes // MINUTES_PER_HOUR)
    days = hours // HOURS_PER_DAY
    remaining_hours = hours - days * HOURS_PER_DAY

    base_charge = rate.base_rate

    day_charge = _capped(HOURS_PER_DAY * rate.hourly_rate, rate.daily_maximum)
    remaining_charge = _capped(remaining_hours * rate.hourly_rate, rate.daily_maximum)
    hourly_charge = days * day_charge + remaining_charge
    daily_capped_amount = hours * rate.hourly_rate - hourly_charge

    surcharge = ZERO
    if overnight:
        surcharge = rate.overnight_surcharge * policy.surcharge_units(days)

    total = base_charge + hourly_charge + surcharge + penalty

    logger.debug(
        f"{interval.vehicle_category}: {minutes}min -> {hours}h ({days}d + {remaining_hours}h), "
        f"base={base_charge} hourly={hourly_charge} overnight={surcharge} "
        f"penalty={penalty} total={total}"
    )

    return FeeResult(
        total_fee=total,
        breakdown=FeeBreakdown(
            base_charge=base_charge,
            hourly_charge=hourly_charge,
            overnight_surcharge=surcharge,
            daily_capped_amount=daily_capped_amount,
            lost_ticket_penalty=penalty
        ),
        duration_label=label,
        is_overnight=overnight,
        within_grace_period=False,
        elapsed_minutes=minutes,
        billable_hours=hours,
        elapsed_days=days
    )
