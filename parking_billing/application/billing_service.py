# File: parking_billing/application/billing_service.py
"""
Parking Billing Application Service

This module implements the application service layer for parking billing.
It wires the Rate Store, the Session Store and the Clock to the fee
calculator, which stays pure and never touches any of them itself.

Use Cases:
1. Vehicle entry - open a parking session
2. Fee quote - live estimate for a vehicle that is still parked
3. Vehicle exit - compute the fee, close the session, write the fee back
4. Revenue summary - totals over completed sessions

Transactions belong to the caller: when the repositories are SQLAlchemy
backed, run the use case inside a SQLAlchemyUnitOfWork.
"""

from typing import Callable, Optional
from datetime import datetime
from decimal import Decimal
import logging
import uuid

from ..config import BillingSettings
from ..domain.models import (
    ParkingSession, ParkingInterval, RateSchedule, FeeResult,
    FeeCalculationError, RateNotFoundError, SessionAlreadyClosedError
)
from ..domain.fee_calculator import calculate_fee, OvernightPolicy
from ..infrastructure.repositories import RateRepository, SessionRepository
from .dtos import (
    EntryRequestDTO, ExitRequestDTO, FeeQuoteRequestDTO, SessionLookupDTO,
    ParkingSessionDTO, ParkingExitDTO, FeeQuoteDTO, FeeResultDTO, RevenueSummaryDTO
)


# ============================================================================
# EXCEPTIONS
# ============================================================================

class BillingServiceError(Exception):
    """Base exception for billing service errors"""
    pass


class SessionNotFoundError(BillingServiceError, LookupError):
    """Exception when no active session matches a ticket or plate"""
    pass


class DuplicateActiveSessionError(BillingServiceError):
    """Exception when a vehicle or ticket already has an active session"""
    pass


__all__ = [
    "ParkingBillingService", "BillingServiceError", "SessionNotFoundError",
    "DuplicateActiveSessionError", "SessionAlreadyClosedError"
]


# ============================================================================
# MAIN BILLING SERVICE
# ============================================================================

class ParkingBillingService:
    """
    Application service for parking billing

    Every fee this service reports, estimated or final, comes from
    calculate_fee(); there is no other fee formula in the system.
    """

    def __init__(
        self,
        rate_repository: RateRepository,
        session_repository: SessionRepository,
        clock: Optional[Callable[[], datetime]] = None,
        settings: Optional[BillingSettings] = None,
        overnight_policy: Optional[OvernightPolicy] = None
    ):
        """
        Initialize the billing service

        Args:
            rate_repository: Rate Store
            session_repository: Session Store
            clock: Zero-argument callable returning the current time
            settings: Application settings (timezone, currency)
            overnight_policy: Overnight surcharge rule for calculate_fee
        """
        self.logger = logging.getLogger(self.__class__.__name__)
        self.rate_repository = rate_repository
        self.session_repository = session_repository
        self.clock = clock or datetime.now
        self.settings = settings or BillingSettings()
        self.timezone = self.settings.get_timezone()
        self.overnight_policy = overnight_policy

        self.logger.info("ParkingBillingService initialized")

    # ========================================================================
    # USE CASES
    # ========================================================================

    def register_entry(self, request: EntryRequestDTO) -> ParkingSessionDTO:
        """
        Open a parking session for an entering vehicle

        Raises: DuplicateActiveSessionError if the plate or ticket is already inside
        """
        self.logger.info(f"Processing entry for {request.license_plate}")

        if self.session_repository.find_active_by_license_plate(request.license_plate):
            raise DuplicateActiveSessionError(
                f"Vehicle {request.license_plate} already has an active session"
            )
        if request.ticket_id and self.session_repository.find_active_by_ticket(request.ticket_id):
            raise DuplicateActiveSessionError(f"Ticket {request.ticket_id} is already in use")

        session = ParkingSession(
            license_plate=request.license_plate,
            vehicle_category=request.vehicle_category,
            entry_time=request.entry_time or self.clock(),
            ticket_id=request.ticket_id
        )
        self.session_repository.add(session)

        self.logger.info(
            f"Vehicle {session.license_plate} entered as {session.vehicle_category}, "
            f"ticket {session.ticket_id}"
        )
        return ParkingSessionDTO.from_domain(session)

    def quote_fee(self, request: FeeQuoteRequestDTO) -> FeeQuoteDTO:
        """
        Estimate the fee of a vehicle that is still parked; nothing is persisted
        """
        session = self._find_active_session(request)
        as_of = request.at or self.clock()
        result = self._calculate(session, as_of)

        return FeeQuoteDTO(
            session_id=session.id,
            license_plate=session.license_plate,
            vehicle_category=session.vehicle_category,
            entry_time=session.entry_time,
            as_of=as_of,
            current_duration=result.duration_label,
            estimated_fee=FeeResultDTO.from_domain(result, self.settings.currency)
        )

    def process_exit(self, request: ExitRequestDTO) -> ParkingExitDTO:
        """
        Close a parking session and write the computed fee back

        Use Case: Vehicle Exit
        1. Find and lock the active session
        2. Resolve the active rate for its vehicle category
        3. Calculate the fee for entry..exit
        4. Complete the session with the fee and a receipt number

        Raises:
            SessionNotFoundError: no active session for the ticket/plate
            SessionAlreadyClosedError: the session was closed concurrently
            RateNotFoundError, MalformedRateError, InvalidIntervalError
        """
        found = self._find_active_session(request)
        session = self.session_repository.get_for_update(found.id) or found
        if not session.is_active:
            self.logger.warning(f"Session {session.id} was closed by another exit")
            raise SessionAlreadyClosedError(f"Session {session.id} is already {session.status.value}")

        exit_time = request.exit_time or self.clock()
        result = self._calculate(session, exit_time, lost_ticket=request.lost_ticket)
        if request.lost_ticket:
            session.lost_ticket = True
        receipt_number = self.generate_receipt_number(exit_time)

        session.complete(exit_time, result, receipt_number)
        self.session_repository.update(session)

        self.logger.info(
            f"Vehicle exited: {session.license_plate}, fee {result.total_fee} "
            f"{self.settings.currency}, receipt {receipt_number}"
        )

        return ParkingExitDTO(
            session_id=session.id,
            ticket_id=session.ticket_id,
            license_plate=session.license_plate,
            vehicle_category=session.vehicle_category,
            entry_time=session.entry_time,
            exit_time=exit_time,
            fee=FeeResultDTO.from_domain(result, self.settings.currency),
            receipt_number=receipt_number,
            message="Within grace period, no charge" if result.total_fee == 0 else None
        )

    def revenue_summary(self, start: datetime, end: datetime) -> RevenueSummaryDTO:
        """Totals over sessions completed in [start, end)"""
        sessions = self.session_repository.find_completed_between(start, end)
        total = sum((s.total_fee or Decimal('0') for s in sessions), Decimal('0'))

        return RevenueSummaryDTO(
            start=start,
            end=end,
            session_count=len(sessions),
            overnight_sessions=sum(1 for s in sessions if s.is_overnight),
            lost_ticket_sessions=sum(1 for s in sessions if s.lost_ticket),
            total_revenue=total,
            currency=self.settings.currency
        )

    # ========================================================================
    # HELPERS
    # ========================================================================

    @staticmethod
    def generate_receipt_number(moment: datetime) -> str:
        """Receipt number RCP-YYYYMMDD-XXXXXX"""
        return f"RCP-{moment.strftime('%Y%m%d')}-{uuid.uuid4().hex[:6].upper()}"

    def _find_active_session(self, lookup: SessionLookupDTO) -> ParkingSession:
        if lookup.ticket_id:
            session = self.session_repository.find_active_by_ticket(lookup.ticket_id)
            identifier = f"ticket {lookup.ticket_id}"
        else:
            session = self.session_repository.find_active_by_license_plate(lookup.license_plate)
            identifier = f"plate {lookup.license_plate}"

        if session is None:
            self.logger.warning(f"No active session for {identifier}")
            raise SessionNotFoundError(f"No active parking session for {identifier}")
        return session

    def _resolve_rate(self, vehicle_category: str) -> RateSchedule:
        rate = self.rate_repository.find_active_rate(vehicle_category)
        if rate is None:
            self.logger.error(f"Parking rate not found for {vehicle_category}")
            raise RateNotFoundError(vehicle_category)
        return rate

    def _calculate(self, session: ParkingSession, until: datetime, lost_ticket: bool = False) -> FeeResult:
        try:
            rate = self._resolve_rate(session.vehicle_category)
            interval = ParkingInterval(
                entry_time=session.entry_time,
                exit_time=until,
                vehicle_category=session.vehicle_category,
                lost_ticket=session.lost_ticket or lost_ticket
            )
            return calculate_fee(
                interval, rate,
                tz=self.timezone,
                overnight_policy=self.overnight_policy
            )
        except FeeCalculationError as e:
            self.logger.error(f"Fee calculation failed for {session.license_plate}: {e}")
            raise
