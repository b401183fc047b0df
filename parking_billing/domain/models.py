# File: parking_billing/domain/models.py
"""
Domain Models for Parking Billing
Following Domain-Driven Design (DDD) principles with rich domain models

This module contains:
1. Exceptions: Typed failures of fee calculation
2. Value Objects: RateSchedule, ParkingInterval, FeeBreakdown, FeeResult
3. Entities: ParkingSession (identity and lifecycle)
4. Enums: Session status

Value objects are immutable snapshots and validate themselves on creation.
"""

from dataclasses import dataclass
from typing import Optional, Dict, Any, Mapping
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from enum import Enum
import logging
import uuid


ZERO = Decimal('0')


# ============================================================================
# EXCEPTIONS
# ============================================================================

class FeeCalculationError(Exception):
    """Base exception for fee calculation errors"""
    pass


class InvalidIntervalError(FeeCalculationError, ValueError):
    """Exit time precedes entry time (caller bug or clock skew)"""
    pass


class MalformedRateError(FeeCalculationError, ValueError):
    """Rate schedule is missing required fields or holds negative values"""
    pass


class RateNotFoundError(FeeCalculationError, LookupError):
    """No active rate schedule exists for a vehicle category"""

    def __init__(self, vehicle_category: Optional[str]):
        self.vehicle_category = vehicle_category
        super().__init__(f"No active rate schedule for vehicle category: {vehicle_category!r}")


class SessionAlreadyClosedError(ValueError):
    """A completed parking session cannot be completed again"""
    pass


# ============================================================================
# HELPERS
# ============================================================================

def normalize_category(value: Any) -> str:
    """Normalize a vehicle category key ("car " -> "CAR")"""
    if value is None or not str(value).strip():
        raise MalformedRateError("Vehicle category cannot be empty")
    return str(value).strip().upper()


def to_amount(value: Any, field_name: str) -> Decimal:
    """
    Coerce a monetary value to a non-negative Decimal

    Floats go through str() so 2.5 becomes Decimal('2.5'), not its binary expansion.
    Raises MalformedRateError for missing, non-numeric or negative values.
    """
    if value is None:
        raise MalformedRateError(f"Missing required field: {field_name}")
    if isinstance(value, bool):
        raise MalformedRateError(f"{field_name} must be a number, got: {value!r}")

    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise MalformedRateError(f"{field_name} must be a number, got: {value!r}")

    if not amount.is_finite():
        raise MalformedRateError(f"{field_name} must be finite, got: {value!r}")
    if amount < ZERO:
        raise MalformedRateError(f"{field_name} cannot be negative: {amount}")
    return amount


# ============================================================================
# VALUE OBJECTS
# ============================================================================

@dataclass(frozen=True)
class RateSchedule:
    """
    Value Object: Pricing rules for one vehicle category
    Read-only snapshot supplied by the rate store for a single calculation
    """
    vehicle_category: str
    base_rate: Decimal
    hourly_rate: Decimal
    daily_maximum: Optional[Decimal] = None
    grace_minutes: int = 0
    overnight_surcharge: Decimal = ZERO
    lost_ticket_fee: Decimal = ZERO
    currency: str = "IDR"

    def __post_init__(self):
        """Validate and normalize rate values"""
        object.__setattr__(self, 'vehicle_category', normalize_category(self.vehicle_category))
        object.__setattr__(self, 'base_rate', to_amount(self.base_rate, 'base_rate'))
        object.__setattr__(self, 'hourly_rate', to_amount(self.hourly_rate, 'hourly_rate'))
        object.__setattr__(self, 'overnight_surcharge',
                           to_amount(self.overnight_surcharge, 'overnight_surcharge'))
        object.__setattr__(self, 'lost_ticket_fee', to_amount(self.lost_ticket_fee, 'lost_ticket_fee'))

        if self.daily_maximum is not None:
            object.__setattr__(self, 'daily_maximum', to_amount(self.daily_maximum, 'daily_maximum'))

        grace = self.grace_minutes
        if grace is None or isinstance(grace, bool):
            raise MalformedRateError("Missing required field: grace_minutes")
        try:
            grace_decimal = Decimal(str(grace))
        except InvalidOperation:
            raise MalformedRateError(f"grace_minutes must be an integer, got: {grace!r}")
        if not grace_decimal.is_finite() or grace_decimal != grace_decimal.to_integral_value():
            raise MalformedRateError(f"grace_minutes must be an integer, got: {grace!r}")
        if grace_decimal < 0:
            raise MalformedRateError(f"grace_minutes cannot be negative: {grace}")
        object.__setattr__(self, 'grace_minutes', int(grace_decimal))

        if not self.currency or len(self.currency) != 3:
            raise MalformedRateError(f"Currency must be 3-letter code: {self.currency}")

    @property
    def is_capped(self) -> bool:
        """Check if a daily maximum applies"""
        return self.daily_maximum is not None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], currency: Optional[str] = None) -> 'RateSchedule':
        """
        Create a RateSchedule from a raw store row or JSON payload

        Accepts snake_case or camelCase keys, plus the legacy column names
        (gracePeriodMinutes, overnightFee, dailyMaxRate).
        """
        if data is None:
            raise MalformedRateError("Rate schedule data cannot be empty")

        def pick(*names: str, required: bool = True) -> Any:
            for name in names:
                if name in data and data[name] is not None:
                    return data[name]
            if required:
                raise MalformedRateError(f"Missing required field: {names[0]}")
            return None

        grace = pick('grace_minutes', 'graceMinutes', 'gracePeriodMinutes', required=False)
        overnight = pick('overnight_surcharge', 'overnightSurcharge', 'overnightFee', required=False)
        lost_ticket = pick('lost_ticket_fee', 'lostTicketFee', required=False)

        return cls(
            vehicle_category=pick('vehicle_category', 'vehicleCategory', 'vehicleType', 'vehicle_type'),
            base_rate=pick('base_rate', 'baseRate'),
            hourly_rate=pick('hourly_rate', 'hourlyRate'),
            daily_maximum=pick('daily_maximum', 'dailyMaximum', 'dailyMaxRate', required=False),
            grace_minutes=0 if grace is None else grace,
            overnight_surcharge=ZERO if overnight is None else overnight,
            lost_ticket_fee=ZERO if lost_ticket is None else lost_ticket,
            currency=pick('currency', required=False) or currency or "IDR"
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            "vehicle_category": self.vehicle_category,
            "base_rate": str(self.base_rate),
            "hourly_rate": str(self.hourly_rate),
            "daily_maximum": str(self.daily_maximum) if self.daily_maximum is not None else None,
            "grace_minutes": self.grace_minutes,
            "overnight_surcharge": str(self.overnight_surcharge),
            "lost_ticket_fee": str(self.lost_ticket_fee),
            "currency": self.currency
        }


@dataclass(frozen=True)
class ParkingInterval:
    """
    Value Object: The billed span of one parking session
    Constructed by the caller at exit-processing time
    """
    entry_time: datetime
    exit_time: datetime
    vehicle_category: str
    lost_ticket: bool = False

    def __post_init__(self):
        """Validate interval"""
        if self.entry_time is None or self.exit_time is None:
            raise InvalidIntervalError("Entry and exit times are required")

        try:
            reversed_interval = self.exit_time < self.entry_time
        except TypeError:
            raise InvalidIntervalError("Cannot compare naive and timezone-aware datetimes")

        if reversed_interval:
            raise InvalidIntervalError(
                f"Exit time {self.exit_time.isoformat()} precedes entry time {self.entry_time.isoformat()}"
            )

        object.__setattr__(self, 'vehicle_category', normalize_category(self.vehicle_category))

    @property
    def duration(self) -> timedelta:
        """Elapsed duration of the interval"""
        return self.exit_time - self.entry_time


@dataclass(frozen=True)
class FeeBreakdown:
    """Value Object: Components of a computed fee"""
    base_charge: Decimal = ZERO
    hourly_charge: Decimal = ZERO
    overnight_surcharge: Decimal = ZERO
    daily_capped_amount: Decimal = ZERO
    lost_ticket_penalty: Decimal = ZERO

    def to_dict(self) -> Dict[str, str]:
        return {
            "base_charge": str(self.base_charge),
            "hourly_charge": str(self.hourly_charge),
            "overnight_surcharge": str(self.overnight_surcharge),
            "daily_capped_amount": str(self.daily_capped_amount),
            "lost_ticket_penalty": str(self.lost_ticket_penalty)
        }


@dataclass(frozen=True)
class FeeResult:
    """
    Value Object: Outcome of one fee calculation
    Created fresh per call, never mutated
    """
    total_fee: Decimal
    breakdown: FeeBreakdown
    duration_label: str
    is_overnight: bool
    within_grace_period: bool
    elapsed_minutes: int = 0
    billable_hours: int = 0
    elapsed_days: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            "total_fee": str(self.total_fee),
            "breakdown": self.breakdown.to_dict(),
            "duration_label": self.duration_label,
            "is_overnight": self.is_overnight,
            "within_grace_period": self.within_grace_period,
            "elapsed_minutes": self.elapsed_minutes,
            "billable_hours": self.billable_hours,
            "elapsed_days": self.elapsed_days
        }


# ============================================================================
# ENUMS FOR DOMAIN TYPES
# ============================================================================

class SessionStatus(Enum):
    """Enumeration of parking session statuses"""
    ACTIVE = "active"          # Vehicle still inside
    COMPLETED = "completed"    # Exit processed and fee written back

    def __str__(self) -> str:
        return self.value.title()


# ============================================================================
# DOMAIN ENTITIES
# ============================================================================

class Entity:
    """
    Base class for all domain entities
    Provides common functionality for entities with identity
    """

    def __init__(self, id: Optional[str] = None):
        self._id = id or str(uuid.uuid4())

    @property
    def id(self) -> str:
        """Get entity ID"""
        return self._id

    def __eq__(self, other: object) -> bool:
        """Entities are equal if they have the same ID and type"""
        if not isinstance(other, Entity):
            return False
        return self.id == other.id and type(self) == type(other)

    def __hash__(self) -> int:
        return hash((self.id, type(self).__name__))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id})"


class ParkingSession(Entity):
    """
    Entity: Parking Session
    Tracks one vehicle from entry to exit and holds the fee written back at exit
    """

    def __init__(
        self,
        license_plate: str,
        vehicle_category: str,
        entry_time: datetime,
        ticket_id: Optional[str] = None,
        lost_ticket: bool = False,
        id: Optional[str] = None
    ):
        super().__init__(id)
        if not license_plate or not license_plate.strip():
            raise ValueError("License plate cannot be empty")
        if entry_time is None:
            raise ValueError("Entry time is required")

        self.license_plate = license_plate.strip().upper()
        self.vehicle_category = normalize_category(vehicle_category)
        self.entry_time = entry_time
        self.ticket_id = ticket_id or self.generate_ticket_id()
        self.lost_ticket = lost_ticket

        self.exit_time: Optional[datetime] = None
        self.status: SessionStatus = SessionStatus.ACTIVE

        # Billing (written back at exit)
        self.total_fee: Optional[Decimal] = None
        self.base_charge: Optional[Decimal] = None
        self.hourly_charge: Optional[Decimal] = None
        self.overnight_surcharge: Optional[Decimal] = None
        self.daily_capped_amount: Optional[Decimal] = None
        self.lost_ticket_penalty: Optional[Decimal] = None
        self.is_overnight: bool = False
        self.duration_label: Optional[str] = None
        self.receipt_number: Optional[str] = None

        self._logger = logging.getLogger(self.__class__.__name__)

    @staticmethod
    def generate_ticket_id() -> str:
        """Generate a printable ticket ID"""
        return f"TKT-{uuid.uuid4().hex[:10].upper()}"

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    def to_interval(self, exit_time: datetime) -> ParkingInterval:
        """Build the billable interval for this session ending at exit_time"""
        return ParkingInterval(
            entry_time=self.entry_time,
            exit_time=exit_time,
            vehicle_category=self.vehicle_category,
            lost_ticket=self.lost_ticket
        )

    def complete(self, exit_time: datetime, result: FeeResult, receipt_number: Optional[str] = None) -> None:
        """
        Close the session and record the computed fee
        Raises: SessionAlreadyClosedError if the session was already completed
        """
        if self.status != SessionStatus.ACTIVE:
            raise SessionAlreadyClosedError(
                f"Session {self.id} ({self.license_plate}) is already {self.status.value}"
            )
        if exit_time < self.entry_time:
            raise InvalidIntervalError("Exit time must not precede entry time")

        self.exit_time = exit_time
        self.total_fee = result.total_fee
        self.base_charge = result.breakdown.base_charge
        self.hourly_charge = result.breakdown.hourly_charge
        self.overnight_surcharge = result.breakdown.overnight_surcharge
        self.daily_capped_amount = result.breakdown.daily_capped_amount
        self.lost_ticket_penalty = result.breakdown.lost_ticket_penalty
        self.is_overnight = result.is_overnight
        self.duration_label = result.duration_label
        self.receipt_number = receipt_number
        self.status = SessionStatus.COMPLETED

        self._logger.info(
            f"Completed session for {self.license_plate}. Total fee: {self.total_fee}"
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        def amount(value: Optional[Decimal]) -> Optional[str]:
            return str(value) if value is not None else None

        return {
            "id": self.id,
            "ticket_id": self.ticket_id,
            "license_plate": self.license_plate,
            "vehicle_category": self.vehicle_category,
            "entry_time": self.entry_time.isoformat(),
            "exit_time": self.exit_time.isoformat() if self.exit_time else None,
            "status": self.status.value,
            "lost_ticket": self.lost_ticket,
            "total_fee": amount(self.total_fee),
            "base_charge": amount(self.base_charge),
            "hourly_charge": amount(self.hourly_charge),
            "overnight_surcharge": amount(self.overnight_surcharge),
            "daily_capped_amount": amount(self.daily_capped_amount),
            "lost_ticket_penalty": amount(self.lost_ticket_penalty),
            "is_overnight": self.is_overnight,
            "duration_label": self.duration_label,
            "receipt_number": self.receipt_number
        }
