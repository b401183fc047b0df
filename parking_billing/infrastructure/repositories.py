# File: parking_billing/infrastructure/repositories.py
"""
Repository Pattern Implementation for Parking Billing

Repositories give the application layer collection-like access to the two
stores the fee engine depends on, while hiding the storage technology.

Repository Types:
1. RateRepository - Rate Store: active RateSchedule per vehicle category
2. SessionRepository - Session Store: parking sessions and written-back fees

Storage Implementations:
- InMemory*Repository - For testing and development
- SQLAlchemy*Repository - For relational databases
- CachingRateRepository - Redis decorator for rate lookups
"""

from abc import ABC, abstractmethod
from typing import Optional, List, Dict, Any, Callable
from datetime import datetime, timezone
from uuid import uuid4
import json
import logging
import threading

from sqlalchemy import (
    create_engine, Column, Integer, String, Boolean, DateTime,
    DECIMAL, select
)
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool
from sqlalchemy.exc import SQLAlchemyError, IntegrityError
import redis

from ..config import BillingSettings
from ..domain.models import (
    RateSchedule, ParkingSession, SessionStatus,
    MalformedRateError, normalize_category
)


# ============================================================================
# REPOSITORY INTERFACES
# ============================================================================

class RateRepository(ABC):
    """Rate Store interface"""

    @abstractmethod
    def add(self, rate: RateSchedule) -> RateSchedule:
        """Store a rate schedule, replacing the active one for its category"""
        pass

    @abstractmethod
    def find_active_rate(self, vehicle_category: str) -> Optional[RateSchedule]:
        """Get the active rate schedule for a category, None if there is none"""
        pass

    @abstractmethod
    def get_all(self) -> List[RateSchedule]:
        """Get all active rate schedules"""
        pass

    @abstractmethod
    def deactivate(self, vehicle_category: str) -> bool:
        """Deactivate the schedule for a category"""
        pass


class SessionRepository(ABC):
    """Session Store interface"""

    @abstractmethod
    def add(self, session: ParkingSession) -> ParkingSession:
        pass

    @abstractmethod
    def get(self, id: str) -> Optional[ParkingSession]:
        pass

    @abstractmethod
    def update(self, session: ParkingSession) -> ParkingSession:
        pass

    @abstractmethod
    def find_active_by_ticket(self, ticket_id: str) -> Optional[ParkingSession]:
        pass

    @abstractmethod
    def find_active_by_license_plate(self, license_plate: str) -> Optional[ParkingSession]:
        pass

    @abstractmethod
    def find_completed_between(self, start: datetime, end: datetime) -> List[ParkingSession]:
        """Completed sessions with start <= exit_time < end"""
        pass

    def get_for_update(self, id: str) -> Optional[ParkingSession]:
        """Get a session and lock it until the transaction ends"""
        return self.get(id)


# ============================================================================
# UNIT OF WORK PATTERN
# ============================================================================

class UnitOfWork(ABC):
    """Unit of Work pattern for transaction management"""

    @abstractmethod
    def __enter__(self):
        pass

    @abstractmethod
    def __exit__(self, exc_type, exc_val, exc_tb):
        pass

    @abstractmethod
    def commit(self):
        """Commit the transaction"""
        pass

    @abstractmethod
    def rollback(self):
        """Rollback the transaction"""
        pass

    @property
    @abstractmethod
    def rates(self) -> RateRepository:
        pass

    @property
    @abstractmethod
    def sessions(self) -> SessionRepository:
        pass


# ============================================================================
# SQLALCHEMY ORM MODELS
# ============================================================================

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_column(value: Optional[datetime]) -> Optional[datetime]:
    """Aware datetimes are stored as naive UTC; naive ones as-is"""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _from_column(value: Optional[datetime], stored_as_utc: bool) -> Optional[datetime]:
    if value is not None and stored_as_utc:
        return value.replace(tzinfo=timezone.utc)
    return value


class ParkingRateModel(Base):
    """SQLAlchemy model for RateSchedule"""
    __tablename__ = 'parking_rates'

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    vehicle_type = Column(String(30), nullable=False, index=True)
    base_rate = Column(DECIMAL(10, 2), nullable=False)
    hourly_rate = Column(DECIMAL(10, 2), nullable=False)
    daily_maximum = Column(DECIMAL(10, 2), nullable=True)
    grace_period_minutes = Column(Integer, nullable=False, default=0)
    overnight_surcharge = Column(DECIMAL(10, 2), nullable=False, default=0)
    lost_ticket_fee = Column(DECIMAL(10, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default='IDR')
    is_active = Column(Boolean, nullable=False, default=True)

    # Timestamps
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)


class ParkingSessionModel(Base):
    """SQLAlchemy model for ParkingSession"""
    __tablename__ = 'parking_sessions'

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    ticket_id = Column(String(40), nullable=False, unique=True, index=True)
    license_plate = Column(String(20), nullable=False, index=True)
    vehicle_category = Column(String(30), nullable=False)
    entry_time = Column(DateTime, nullable=False)
    exit_time = Column(DateTime, nullable=True, index=True)
    stored_as_utc = Column(Boolean, nullable=False, default=False)   # times were timezone-aware
    status = Column(String(20), nullable=False, default=SessionStatus.ACTIVE.value, index=True)
    lost_ticket = Column(Boolean, nullable=False, default=False)

    # Billing
    total_fee = Column(DECIMAL(12, 2))
    base_charge = Column(DECIMAL(12, 2))
    hourly_charge = Column(DECIMAL(12, 2))
    overnight_surcharge = Column(DECIMAL(12, 2))
    daily_capped_amount = Column(DECIMAL(12, 2))
    lost_ticket_penalty = Column(DECIMAL(12, 2))
    is_overnight = Column(Boolean, nullable=False, default=False)
    duration_label = Column(String(40))
    receipt_number = Column(String(40), unique=True)

    # Timestamps
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)


_SESSION_BILLING_FIELDS = (
    'lost_ticket', 'total_fee', 'base_charge', 'hourly_charge',
    'overnight_surcharge', 'daily_capped_amount', 'lost_ticket_penalty',
    'is_overnight', 'duration_label', 'receipt_number'
)


# ============================================================================
# DOMAIN <-> ORM MAPPING
# ============================================================================

class Mapper:
    """Maps between domain models and ORM models"""

    @staticmethod
    def rate_to_orm(rate: RateSchedule) -> ParkingRateModel:
        return ParkingRateModel(
            vehicle_type=rate.vehicle_category,
            base_rate=rate.base_rate,
            hourly_rate=rate.hourly_rate,
            daily_maximum=rate.daily_maximum,
            grace_period_minutes=rate.grace_minutes,
            overnight_surcharge=rate.overnight_surcharge,
            lost_ticket_fee=rate.lost_ticket_fee,
            currency=rate.currency,
            is_active=True
        )

    @staticmethod
    def rate_to_domain(model: ParkingRateModel) -> RateSchedule:
        """Map ORM row to RateSchedule; bad rows surface as MalformedRateError"""
        return RateSchedule(
            vehicle_category=model.vehicle_type,
            base_rate=model.base_rate,
            hourly_rate=model.hourly_rate,
            daily_maximum=model.daily_maximum,
            grace_minutes=model.grace_period_minutes,
            overnight_surcharge=model.overnight_surcharge,
            lost_ticket_fee=model.lost_ticket_fee,
            currency=model.currency or 'IDR'
        )

    @staticmethod
    def session_to_orm(session: ParkingSession) -> ParkingSessionModel:
        model = ParkingSessionModel(
            id=session.id,
            ticket_id=session.ticket_id,
            license_plate=session.license_plate,
            vehicle_category=session.vehicle_category,
            entry_time=_to_column(session.entry_time),
            stored_as_utc=session.entry_time.tzinfo is not None,
            status=session.status.value
        )
        Mapper.copy_session_state(session, model)
        return model

    @staticmethod
    def copy_session_state(session: ParkingSession, model: ParkingSessionModel) -> None:
        """Copy the mutable session state onto an ORM row"""
        model.status = session.status.value
        model.exit_time = _to_column(session.exit_time)
        for name in _SESSION_BILLING_FIELDS:
            setattr(model, name, getattr(session, name))

    @staticmethod
    def session_to_domain(model: ParkingSessionModel) -> ParkingSession:
        session = ParkingSession(
            license_plate=model.license_plate,
            vehicle_category=model.vehicle_category,
            entry_time=_from_column(model.entry_time, bool(model.stored_as_utc)),
            ticket_id=model.ticket_id,
            lost_ticket=bool(model.lost_ticket),
            id=model.id
        )
        session.exit_time = _from_column(model.exit_time, bool(model.stored_as_utc))
        for name in _SESSION_BILLING_FIELDS:
            setattr(session, name, getattr(model, name))
        session.lost_ticket = bool(model.lost_ticket)
        session.is_overnight = bool(model.is_overnight)
        session.status = SessionStatus(model.status)
        return session


# ============================================================================
# IN-MEMORY REPOSITORIES (For Testing)
# ============================================================================

class InMemoryRateRepository(RateRepository):
    """In-memory rate store"""

    def __init__(self, rates: Optional[List[RateSchedule]] = None):
        self._storage: Dict[str, RateSchedule] = {}
        self._lock = threading.Lock()
        self._logger = logging.getLogger(self.__class__.__name__)
        for rate in rates or []:
            self.add(rate)

    def add(self, rate: RateSchedule) -> RateSchedule:
        with self._lock:
            self._storage[rate.vehicle_category] = rate
        self._logger.debug(f"Stored rate for {rate.vehicle_category}")
        return rate

    def find_active_rate(self, vehicle_category: str) -> Optional[RateSchedule]:
        with self._lock:
            return self._storage.get(normalize_category(vehicle_category))

    def get_all(self) -> List[RateSchedule]:
        with self._lock:
            return sorted(self._storage.values(), key=lambda r: r.vehicle_category)

    def deactivate(self, vehicle_category: str) -> bool:
        with self._lock:
            return self._storage.pop(normalize_category(vehicle_category), None) is not None

    def clear(self):
        """Clear all data (for testing)"""
        with self._lock:
            self._storage.clear()


class InMemorySessionRepository(SessionRepository):
    """In-memory session store"""

    def __init__(self):
        self._storage: Dict[str, ParkingSession] = {}
        self._lock = threading.Lock()
        self._logger = logging.getLogger(self.__class__.__name__)

    def add(self, session: ParkingSession) -> ParkingSession:
        with self._lock:
            if session.id in self._storage:
                raise KeyError(f"Session {session.id} already exists")
            self._storage[session.id] = session
        self._logger.debug(f"Added session {session.id}")
        return session

    def get(self, id: str) -> Optional[ParkingSession]:
        with self._lock:
            return self._storage.get(id)

    def update(self, session: ParkingSession) -> ParkingSession:
        with self._lock:
            if session.id not in self._storage:
                raise KeyError(f"Session {session.id} not found")
            self._storage[session.id] = session
        self._logger.debug(f"Updated session {session.id}")
        return session

    def find_active_by_ticket(self, ticket_id: str) -> Optional[ParkingSession]:
        with self._lock:
            for session in self._storage.values():
                if session.is_active and session.ticket_id == ticket_id:
                    return session
        return None

    def find_active_by_license_plate(self, license_plate: str) -> Optional[ParkingSession]:
        plate = license_plate.strip().upper()
        with self._lock:
            for session in self._storage.values():
                if session.is_active and session.license_plate == plate:
                    return session
        return None

    def find_completed_between(self, start: datetime, end: datetime) -> List[ParkingSession]:
        with self._lock:
            sessions = [
                s for s in self._storage.values()
                if s.status == SessionStatus.COMPLETED and start <= s.exit_time < end
            ]
        return sorted(sessions, key=lambda s: s.exit_time)

    def count(self) -> int:
        with self._lock:
            return len(self._storage)


# ============================================================================
# SQLALCHEMY REPOSITORIES
# ============================================================================

class SQLAlchemyRateRepository(RateRepository):
    """Rate store backed by the parking_rates table"""

    def __init__(self, session: Session):
        self.session = session
        self._logger = logging.getLogger(self.__class__.__name__)

    def _active_rows(self, vehicle_category: str):
        return self.session.scalars(
            select(ParkingRateModel)
            .where(ParkingRateModel.vehicle_type == vehicle_category)
            .where(ParkingRateModel.is_active.is_(True))
            .order_by(ParkingRateModel.created_at.desc())
        ).all()

    def add(self, rate: RateSchedule) -> RateSchedule:
        try:
            # Older schedules stay in the table for receipts/audits
            for row in self._active_rows(rate.vehicle_category):
                row.is_active = False
            self.session.add(Mapper.rate_to_orm(rate))
            self.session.flush()
            self._logger.debug(f"Added rate for {rate.vehicle_category}")
            return rate
        except IntegrityError as e:
            self.session.rollback()
            self._logger.error(f"Integrity error adding rate: {e}")
            raise
        except SQLAlchemyError as e:
            self.session.rollback()
            self._logger.error(f"Database error adding rate: {e}")
            raise

    def find_active_rate(self, vehicle_category: str) -> Optional[RateSchedule]:
        category = normalize_category(vehicle_category)
        try:
            rows = self._active_rows(category)
        except SQLAlchemyError as e:
            self._logger.error(f"Database error loading rate for {category}: {e}")
            raise

        if not rows:
            return None
        if len(rows) > 1:
            self._logger.warning(f"{len(rows)} active rates for {category}, using newest")

        try:
            return Mapper.rate_to_domain(rows[0])
        except MalformedRateError as e:
            self._logger.error(f"Corrupt rate row {rows[0].id} for {category}: {e}")
            raise

    def get_all(self) -> List[RateSchedule]:
        try:
            rows = self.session.scalars(
                select(ParkingRateModel)
                .where(ParkingRateModel.is_active.is_(True))
                .order_by(ParkingRateModel.vehicle_type)
            ).all()
            return [Mapper.rate_to_domain(row) for row in rows]
        except SQLAlchemyError as e:
            self._logger.error(f"Database error listing rates: {e}")
            raise

    def deactivate(self, vehicle_category: str) -> bool:
        try:
            rows = self._active_rows(normalize_category(vehicle_category))
            for row in rows:
                row.is_active = False
            self.session.flush()
            return bool(rows)
        except SQLAlchemyError as e:
            self.session.rollback()
            self._logger.error(f"Database error deactivating rate: {e}")
            raise


class SQLAlchemySessionRepository(SessionRepository):
    """Session store backed by the parking_sessions table"""

    def __init__(self, session: Session):
        self.session = session
        self._logger = logging.getLogger(self.__class__.__name__)

    def add(self, parking_session: ParkingSession) -> ParkingSession:
        try:
            self.session.add(Mapper.session_to_orm(parking_session))
            self.session.flush()
            self._logger.debug(f"Added session: {parking_session.id}")
            return parking_session
        except IntegrityError as e:
            self.session.rollback()
            self._logger.error(f"Integrity error adding session: {e}")
            raise
        except SQLAlchemyError as e:
            self.session.rollback()
            self._logger.error(f"Database error adding session: {e}")
            raise

    def get(self, id: str) -> Optional[ParkingSession]:
        try:
            model = self.session.get(ParkingSessionModel, id)
            return Mapper.session_to_domain(model) if model else None
        except SQLAlchemyError as e:
            self._logger.error(f"Database error getting session {id}: {e}")
            raise

    def get_for_update(self, id: str) -> Optional[ParkingSession]:
        try:
            model = self.session.scalars(
                select(ParkingSessionModel)
                .where(ParkingSessionModel.id == id)
                .with_for_update()
            ).first()
            return Mapper.session_to_domain(model) if model else None
        except SQLAlchemyError as e:
            self._logger.error(f"Database error locking session {id}: {e}")
            raise

    def update(self, parking_session: ParkingSession) -> ParkingSession:
        try:
            model = self.session.get(ParkingSessionModel, parking_session.id)
            if not model:
                raise KeyError(f"Session {parking_session.id} not found")
            Mapper.copy_session_state(parking_session, model)
            self.session.flush()
            self._logger.debug(f"Updated session: {parking_session.id}")
            return parking_session
        except IntegrityError as e:
            self.session.rollback()
            self._logger.error(f"Integrity error updating session: {e}")
            raise
        except SQLAlchemyError as e:
            self.session.rollback()
            self._logger.error(f"Database error updating session: {e}")
            raise

    def _find_active(self, *criteria) -> Optional[ParkingSession]:
        try:
            model = self.session.scalars(
                select(ParkingSessionModel)
                .where(ParkingSessionModel.status == SessionStatus.ACTIVE.value, *criteria)
                .order_by(ParkingSessionModel.entry_time.desc())
            ).first()
            return Mapper.session_to_domain(model) if model else None
        except SQLAlchemyError as e:
            self._logger.error(f"Database error finding active session: {e}")
            raise

    def find_active_by_ticket(self, ticket_id: str) -> Optional[ParkingSession]:
        return self._find_active(ParkingSessionModel.ticket_id == ticket_id)

    def find_active_by_license_plate(self, license_plate: str) -> Optional[ParkingSession]:
        return self._find_active(ParkingSessionModel.license_plate == license_plate.strip().upper())

    def find_completed_between(self, start: datetime, end: datetime) -> List[ParkingSession]:
        try:
            models = self.session.scalars(
                select(ParkingSessionModel)
                .where(ParkingSessionModel.status == SessionStatus.COMPLETED.value)
                .where(ParkingSessionModel.exit_time >= _to_column(start))
                .where(ParkingSessionModel.exit_time < _to_column(end))
                .order_by(ParkingSessionModel.exit_time)
            ).all()
            return [Mapper.session_to_domain(model) for model in models]
        except SQLAlchemyError as e:
            self._logger.error(f"Database error listing completed sessions: {e}")
            raise


class SQLAlchemyUnitOfWork(UnitOfWork):
    """Unit of Work implementation with SQLAlchemy"""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory
        self._logger = logging.getLogger(self.__class__.__name__)

    def __enter__(self):
        self.session = self.session_factory()
        self._rates = SQLAlchemyRateRepository(self.session)
        self._sessions = SQLAlchemySessionRepository(self.session)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            if exc_type is not None:
                self._logger.error(f"Exception in unit of work: {exc_val}")
                self.rollback()
            else:
                self.commit()
        finally:
            self.session.close()

    def commit(self):
        """Commit the transaction"""
        try:
            self.session.commit()
            self._logger.debug("Transaction committed")
        except SQLAlchemyError as e:
            self._logger.error(f"Error committing transaction: {e}")
            self.session.rollback()
            raise

    def rollback(self):
        """Rollback the transaction"""
        self.session.rollback()
        self._logger.debug("Transaction rolled back")

    @property
    def rates(self) -> SQLAlchemyRateRepository:
        return self._rates

    @property
    def sessions(self) -> SQLAlchemySessionRepository:
        return self._sessions


# ============================================================================
# REPOSITORY FACTORY
# ============================================================================

class RepositoryFactory:
    """Factory for creating repositories"""

    @staticmethod
    def create_engine(database_url: str):
        """Create an engine; in-memory SQLite shares one connection"""
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            return create_engine(
                database_url,
                echo=False,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool
            )
        return create_engine(database_url, echo=False)

    @staticmethod
    def create_sqlalchemy_uow(database_url: str) -> SQLAlchemyUnitOfWork:
        """Create SQLAlchemy Unit of Work"""
        engine = RepositoryFactory.create_engine(database_url)
        SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

        # Create tables if they don't exist
        Base.metadata.create_all(bind=engine)

        return SQLAlchemyUnitOfWork(SessionLocal)

    @staticmethod
    def create_rate_cache(redis_url: Optional[str]) -> Optional[redis.Redis]:
        """Create a Redis client for rate caching, None when caching is off"""
        if not redis_url:
            return None
        return redis.Redis.from_url(redis_url, decode_responses=True)

    @staticmethod
    def create_rate_repository(repository: RateRepository, settings: BillingSettings) -> RateRepository:
        """Wrap a rate store with the Redis cache when settings.redis_url is set"""
        cache = RepositoryFactory.create_rate_cache(settings.redis_url)
        if cache is None:
            return repository
        return CachingRateRepository(repository, cache, ttl_seconds=settings.rate_cache_ttl_seconds)


# ============================================================================
# CACHING REPOSITORY (Decorator Pattern)
# ============================================================================

class CachingRateRepository(RateRepository):
    """
    Rate store decorator that caches active schedules in Redis

    Only hits are cached; a missing category always goes to the store so a
    newly added rate is visible immediately. Redis failures and unreadable
    cached entries fall back to the wrapped store.
    """

    def __init__(self, repository: RateRepository, cache_client: Any, ttl_seconds: int = 300):
        self.repository = repository
        self.cache = cache_client
        self.ttl_seconds = ttl_seconds
        self._logger = logging.getLogger(self.__class__.__name__)
        self.cache_prefix = "parking_rate:"

    def _cache_key(self, vehicle_category: str) -> str:
        return f"{self.cache_prefix}{normalize_category(vehicle_category)}"

    def _invalidate(self, vehicle_category: str) -> None:
        try:
            self.cache.delete(self._cache_key(vehicle_category))
        except redis.RedisError as e:
            self._logger.warning(f"Could not invalidate cached rate for {vehicle_category}: {e}")

    def add(self, rate: RateSchedule) -> RateSchedule:
        result = self.repository.add(rate)
        self._invalidate(rate.vehicle_category)
        return result

    def find_active_rate(self, vehicle_category: str) -> Optional[RateSchedule]:
        cache_key = self._cache_key(vehicle_category)

        try:
            cached = self.cache.get(cache_key)
        except redis.RedisError as e:
            self._logger.warning(f"Rate cache unavailable, reading store: {e}")
            cached = None

        if cached:
            self._logger.debug(f"Cache hit for {cache_key}")
            try:
                if isinstance(cached, bytes):
                    cached = cached.decode("utf-8")
                return RateSchedule.from_mapping(json.loads(cached))
            except (ValueError, TypeError) as e:
                # JSONDecodeError, UnicodeDecodeError and MalformedRateError are ValueErrors
                self._logger.warning(f"Discarding unreadable cached rate {cache_key}: {e}")
                self._invalidate(vehicle_category)

        rate = self.repository.find_active_rate(vehicle_category)
        if rate:
            try:
                self.cache.set(cache_key, json.dumps(rate.to_dict()), ex=self.ttl_seconds)
                self._logger.debug(f"Cached rate {cache_key}")
            except redis.RedisError as e:
                self._logger.warning(f"Could not cache rate {cache_key}: {e}")
        return rate

    def get_all(self) -> List[RateSchedule]:
        return self.repository.get_all()

    def deactivate(self, vehicle_category: str) -> bool:
        result = self.repository.deactivate(vehicle_category)
        self._invalidate(vehicle_category)
        return result
