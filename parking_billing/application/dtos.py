# File: parking_billing/application/dtos.py
"""
Data Transfer Objects (DTOs) for Parking Billing

This module defines DTOs for data transfer between layers:
1. Input DTOs - Rate definitions, entry/exit requests, fee quote requests
2. Output DTOs - Fee results, exit results, quotes, revenue summaries

DTO Principles:
- Validation at creation (pydantic)
- Clear separation between internal (domain) and external representations
- No business logic, only data and mapping to/from domain objects
"""

from typing import Dict, Optional, Any, Type, TypeVar
from datetime import datetime
from decimal import Decimal
import json
from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator

from ..domain.models import RateSchedule, FeeBreakdown, FeeResult, ParkingSession

# Type variable for DTO generics
T = TypeVar('T', bound='BaseDTO')


# ============================================================================
# BASE DTO CLASSES
# ============================================================================

class BaseDTO(BaseModel):
    """Base DTO with common functionality"""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        use_enum_values=True
    )

    def to_dict(self, exclude_none: bool = False, **kwargs) -> Dict[str, Any]:
        """Convert DTO to dictionary"""
        data = self.model_dump(**kwargs)
        if exclude_none:
            data = {k: v for k, v in data.items() if v is not None}
        return data

    def to_json(self, **kwargs) -> str:
        """Convert DTO to JSON string"""
        return self.model_dump_json(**kwargs)

    @classmethod
    def from_dict(cls: Type[T], data: Dict[str, Any]) -> T:
        """Create DTO from dictionary"""
        return cls(**data)

    @classmethod
    def from_json(cls: Type[T], json_str: str) -> T:
        """Create DTO from JSON string"""
        data = json.loads(json_str)
        return cls(**data)


def _clean_license_plate(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    plate = value.strip().upper()
    if not plate:
        raise ValueError("License plate cannot be empty")
    if len(plate) > 20:
        raise ValueError(f"License plate must be at most 20 characters, got: {plate}")
    return plate


# ============================================================================
# RATE DTOs
# ============================================================================

class RateScheduleDTO(BaseDTO):
    """Rate schedule as received from the admin API or the rate store"""
    vehicle_category: str = Field(min_length=1, max_length=30, description="Vehicle category key")
    base_rate: Decimal = Field(ge=0, description="Charged once after the grace period")
    hourly_rate: Decimal = Field(ge=0, description="Charged per started hour")
    daily_maximum: Optional[Decimal] = Field(default=None, ge=0, description="Cap per 24h block")
    grace_minutes: int = Field(default=0, ge=0, description="Free minutes")
    overnight_surcharge: Decimal = Field(default=Decimal('0'), ge=0, description="Day-boundary surcharge")
    lost_ticket_fee: Decimal = Field(default=Decimal('0'), ge=0, description="Lost ticket penalty")
    currency: str = Field(default="IDR", min_length=3, max_length=3, description="Currency code (ISO 4217)")

    @field_validator('vehicle_category')
    @classmethod
    def normalize_category(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("Vehicle category cannot be empty")
        return v

    def to_domain(self) -> RateSchedule:
        return RateSchedule(
            vehicle_category=self.vehicle_category,
            base_rate=self.base_rate,
            hourly_rate=self.hourly_rate,
            daily_maximum=self.daily_maximum,
            grace_minutes=self.grace_minutes,
            overnight_surcharge=self.overnight_surcharge,
            lost_ticket_fee=self.lost_ticket_fee,
            currency=self.currency
        )

    @classmethod
    def from_domain(cls, rate: RateSchedule) -> 'RateScheduleDTO':
        return cls(**rate.to_dict())


# ============================================================================
# FEE DTOs
# ============================================================================

class FeeBreakdownDTO(BaseDTO):
    """Fee breakdown"""
    base_charge: Decimal = Field(ge=0)
    hourly_charge: Decimal = Field(ge=0)
    overnight_surcharge: Decimal = Field(ge=0)
    daily_capped_amount: Decimal = Field(ge=0)
    lost_ticket_penalty: Decimal = Field(ge=0)

    @classmethod
    def from_domain(cls, breakdown: FeeBreakdown) -> 'FeeBreakdownDTO':
        return cls(
            base_charge=breakdown.base_charge,
            hourly_charge=breakdown.hourly_charge,
            overnight_surcharge=breakdown.overnight_surcharge,
            daily_capped_amount=breakdown.daily_capped_amount,
            lost_ticket_penalty=breakdown.lost_ticket_penalty
        )


class FeeResultDTO(BaseDTO):
    """Computed fee"""
    total_fee: Decimal = Field(ge=0, description="Total fee")
    breakdown: FeeBreakdownDTO
    duration_label: str = Field(description="Human-readable duration, e.g. 2h 15m")
    is_overnight: bool
    within_grace_period: bool
    elapsed_minutes: int = Field(ge=0)
    billable_hours: int = Field(ge=0)
    currency: str = Field(default="IDR", min_length=3, max_length=3)

    @classmethod
    def from_domain(cls, result: FeeResult, currency: str = "IDR") -> 'FeeResultDTO':
        return cls(
            total_fee=result.total_fee,
            breakdown=FeeBreakdownDTO.from_domain(result.breakdown),
            duration_label=result.duration_label,
            is_overnight=result.is_overnight,
            within_grace_period=result.within_grace_period,
            elapsed_minutes=result.elapsed_minutes,
            billable_hours=result.billable_hours,
            currency=currency
        )


# ============================================================================
# SESSION OPERATION DTOs
# ============================================================================

class EntryRequestDTO(BaseDTO):
    """DTO for vehicle entry"""
    license_plate: str = Field(description="License plate number")
    vehicle_category: str = Field(min_length=1, description="Vehicle category key")
    entry_time: Optional[datetime] = Field(default=None, description="Entry time (defaults to now)")
    ticket_id: Optional[str] = Field(default=None, description="Printed ticket ID (generated when absent)")

    @field_validator('license_plate')
    @classmethod
    def validate_license_plate(cls, v: str) -> str:
        return _clean_license_plate(v)


class ParkingSessionDTO(BaseDTO):
    """DTO for a parking session"""
    id: str
    ticket_id: str
    license_plate: str
    vehicle_category: str
    entry_time: datetime
    exit_time: Optional[datetime] = None
    status: str
    lost_ticket: bool = False
    total_fee: Optional[Decimal] = None
    duration_label: Optional[str] = None
    receipt_number: Optional[str] = None

    @classmethod
    def from_domain(cls, session: ParkingSession) -> 'ParkingSessionDTO':
        return cls(
            id=session.id,
            ticket_id=session.ticket_id,
            license_plate=session.license_plate,
            vehicle_category=session.vehicle_category,
            entry_time=session.entry_time,
            exit_time=session.exit_time,
            status=session.status.value,
            lost_ticket=session.lost_ticket,
            total_fee=session.total_fee,
            duration_label=session.duration_label,
            receipt_number=session.receipt_number
        )


class SessionLookupDTO(BaseDTO):
    """Identifies an active session by ticket or license plate"""
    ticket_id: Optional[str] = Field(default=None, description="Parking ticket ID")
    license_plate: Optional[str] = Field(default=None, description="License plate number")

    @field_validator('license_plate')
    @classmethod
    def validate_license_plate(cls, v: Optional[str]) -> Optional[str]:
        return _clean_license_plate(v)

    @model_validator(mode='after')
    def validate_identifier(self):
        """Validate that either ticket_id or license_plate is provided"""
        if not self.ticket_id and not self.license_plate:
            raise ValueError("Either ticket_id or license_plate must be provided")
        return self


class ExitRequestDTO(SessionLookupDTO):
    """DTO for exit request"""
    exit_time: Optional[datetime] = Field(default=None, description="Exit time (defaults to now)")
    lost_ticket: bool = Field(default=False, description="Ticket lost, apply penalty")


class FeeQuoteRequestDTO(SessionLookupDTO):
    """DTO for a live fee estimate of a parked vehicle"""
    at: Optional[datetime] = Field(default=None, description="Quote time (defaults to now)")


class ParkingExitDTO(BaseDTO):
    """DTO for parking exit result"""
    session_id: str
    ticket_id: str
    license_plate: str
    vehicle_category: str
    entry_time: datetime
    exit_time: datetime
    fee: FeeResultDTO
    receipt_number: str
    message: Optional[str] = None


class FeeQuoteDTO(BaseDTO):
    """DTO for a live fee estimate"""
    session_id: str
    license_plate: str
    vehicle_category: str
    entry_time: datetime
    as_of: datetime
    current_duration: str
    estimated_fee: FeeResultDTO


class RevenueSummaryDTO(BaseDTO):
    """DTO for completed-session revenue over a period"""
    start: datetime
    end: datetime
    session_count: int = Field(ge=0)
    overnight_sessions: int = Field(ge=0)
    lost_ticket_sessions: int = Field(ge=0)
    total_revenue: Decimal = Field(ge=0)
    currency: str = Field(default="IDR", min_length=3, max_length=3)

    @model_validator(mode='after')
    def validate_period(self):
        if self.end < self.start:
            raise ValueError("Period end must not precede start")
        return self
