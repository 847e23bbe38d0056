# File: src/campus_parking/infrastructure/repositories.py
"""
Repository Pattern Implementation for the booking core

Repositories give the services a collection-like interface over the store
collaborator and hide which storage is in use.

Repository Types:
1. ParkingLotRepository - lots with their spot lists
2. BookingRepository - bookings, with compare-and-swap updates on status
3. UserRepository - user records and their bookings lists

Storage Implementations:
- InMemory*Repository - For testing and development
- SQLAlchemy*Repository - For relational databases (any SQLAlchemy URL)
- Mongo*Repository - For MongoDB document storage (pymongo)
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from copy import deepcopy
from dataclasses import dataclass
from datetime import datetime, date, time
from decimal import Decimal
from typing import Optional, List, Dict, Any, Iterable, Iterator, Callable, Type
import logging
import threading

from sqlalchemy import (
    create_engine, Column, Integer, String, Boolean, Float, Date,
    DateTime, Text, JSON, TypeDecorator
)
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.exc import SQLAlchemyError
import pymongo
from pymongo.database import Database
from pymongo.errors import PyMongoError

from ..domain.models import (
    ParkingLot, Spot, Booking, BookingStatus, User, UserRole, PaymentDetails
)


# ============================================================================
# QUERY OBJECTS
# ============================================================================

@dataclass(frozen=True)
class BookingFilter:
    """
    Filter for booking queries. Every field is optional; set fields are
    combined with AND. start_date/end_date bound the booking date,
    created_from/created_to bound the creation instant.
    """
    status: Optional[BookingStatus] = None
    user_id: Optional[str] = None
    lot_id: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None
    limit: Optional[int] = None

    def matches(self, booking: Booking) -> bool:
        if self.status is not None and booking.status != self.status:
            return False
        if self.user_id is not None and booking.user_id != self.user_id:
            return False
        if self.lot_id is not None and booking.lot_id != self.lot_id:
            return False
        if self.start_date is not None and booking.booking_date < self.start_date:
            return False
        if self.end_date is not None and booking.booking_date > self.end_date:
            return False
        if self.created_from is not None and (booking.created_at is None or booking.created_at < self.created_from):
            return False
        if self.created_to is not None and (booking.created_at is None or booking.created_at > self.created_to):
            return False
        return True


def _newest_first(bookings: Iterable[Booking]) -> List[Booking]:
    return sorted(bookings, key=lambda b: b.created_at or datetime.min, reverse=True)


# ============================================================================
# REPOSITORY INTERFACES
# ============================================================================

class ParkingLotRepository(ABC):
    """Repository interface for parking lots"""

    @abstractmethod
    def add(self, lot: ParkingLot) -> ParkingLot:
        pass

    @abstractmethod
    def get(self, lot_id: str) -> Optional[ParkingLot]:
        pass

    @abstractmethod
    def get_all(self, active_only: bool = False) -> List[ParkingLot]:
        pass

    @abstractmethod
    def update(self, lot: ParkingLot) -> bool:
        """Replace a stored lot; False if it does not exist"""
        pass

    @abstractmethod
    def delete(self, lot_id: str) -> bool:
        pass


class BookingRepository(ABC):
    """Repository interface for bookings"""

    @abstractmethod
    def add(self, booking: Booking) -> Booking:
        pass

    @abstractmethod
    def get(self, booking_id: str) -> Optional[Booking]:
        pass

    @abstractmethod
    def update(self, booking: Booking, expected_status: Optional[BookingStatus] = None) -> bool:
        """
        Replace a stored booking.
        With expected_status the write only happens if the stored status
        still equals it (compare-and-swap). Returns whether a row was written.
        """
        pass

    @abstractmethod
    def delete(self, booking_id: str, expected_status: Optional[BookingStatus] = None) -> bool:
        pass

    @abstractmethod
    def find_by_lot_and_date(self, lot_id: str, booking_date: date) -> List[Booking]:
        pass

    @abstractmethod
    def find_by_user(self, user_id: str, status: Optional[BookingStatus] = None) -> List[Booking]:
        """Bookings of a user, newest first"""
        pass

    @abstractmethod
    def find(self, criteria: BookingFilter) -> List[Booking]:
        """Bookings matching the filter, newest first"""
        pass

    def exists_for_lot(self, lot_id: str, status: BookingStatus) -> bool:
        return bool(self.find(BookingFilter(lot_id=lot_id, status=status, limit=1)))


class UserRepository(ABC):
    """Repository interface for users"""

    @abstractmethod
    def add(self, user: User) -> User:
        pass

    @abstractmethod
    def get(self, user_id: str) -> Optional[User]:
        pass

    @abstractmethod
    def get_all(self) -> List[User]:
        pass

    @abstractmethod
    def update(self, user: User) -> bool:
        pass

    @abstractmethod
    def append_booking(self, user_id: str, booking_id: str) -> bool:
        """Add booking_id to the user's bookings unless already present"""
        pass

    def get_many(self, user_ids: Iterable[str]) -> Dict[str, User]:
        users = {}
        for user_id in set(user_ids):
            user = self.get(user_id)
            if user is not None:
                users[user_id] = user
        return users


class Repositories:
    """The three repositories of one store, plus a way to release it"""

    def __init__(
        self,
        parking_lots: ParkingLotRepository,
        bookings: BookingRepository,
        users: UserRepository,
        closer: Optional[Callable[[], None]] = None
    ):
        self.parking_lots = parking_lots
        self.bookings = bookings
        self.users = users
        self._closer = closer

    def close(self) -> None:
        if self._closer is not None:
            self._closer()

    def __enter__(self) -> 'Repositories':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


# ============================================================================
# RECORD MAPPING (shared by the SQL and document backends)
# ============================================================================

def _dec_str(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


def booking_to_record(booking: Booking) -> Dict[str, Any]:
    """Flat primitive record of a booking; decimals are kept as strings"""
    return {
        "id": booking.id,
        "user_id": booking.user_id,
        "lot_id": booking.lot_id,
        "spot_id": booking.spot_id,
        "booking_date": booking.booking_date,
        "start_time": booking.start_time,
        "end_time": booking.end_time,
        "status": booking.status.value,
        "created_at": booking.created_at,
        "expires_at": booking.expires_at,
        "duration": _dec_str(booking.duration),
        "hourly_rate": _dec_str(booking.hourly_rate),
        "total_cost": _dec_str(booking.total_cost),
        "payment_details": booking.payment_details.to_dict() if booking.payment_details else None,
        "actual_end_time": booking.actual_end_time,
        "actual_duration": _dec_str(booking.actual_duration),
        "additional_cost": _dec_str(booking.additional_cost),
        "final_cost": _dec_str(booking.final_cost),
        "updated_at": booking.updated_at,
    }


def booking_from_record(record: Dict[str, Any]) -> Booking:
    booking_date = record["booking_date"]
    if isinstance(booking_date, datetime):
        booking_date = booking_date.date()
    payment = record.get("payment_details")
    return Booking(
        id=record["id"],
        user_id=record["user_id"],
        lot_id=record["lot_id"],
        spot_id=record["spot_id"],
        booking_date=booking_date,
        start_time=record["start_time"],
        end_time=record["end_time"],
        status=BookingStatus(record["status"]),
        created_at=record.get("created_at"),
        expires_at=record.get("expires_at"),
        duration=record.get("duration"),
        hourly_rate=record.get("hourly_rate"),
        total_cost=record["total_cost"],
        payment_details=PaymentDetails.from_dict(payment) if payment else None,
        actual_end_time=record.get("actual_end_time"),
        actual_duration=record.get("actual_duration"),
        additional_cost=record.get("additional_cost"),
        final_cost=record.get("final_cost"),
        updated_at=record.get("updated_at"),
    )


def lot_to_record(lot: ParkingLot) -> Dict[str, Any]:
    return {
        "id": lot.id,
        "name": lot.name,
        "location": lot.location,
        "latitude": lot.latitude,
        "longitude": lot.longitude,
        "hourly_rate": str(lot.hourly_rate),
        "total_spots": lot.total_spots,
        "spots": [spot.to_dict() for spot in lot.spots],
        "is_active": lot.is_active,
        "created_at": lot.created_at,
        "updated_at": lot.updated_at,
    }


def lot_from_record(record: Dict[str, Any]) -> ParkingLot:
    return ParkingLot(
        id=record["id"],
        name=record["name"],
        location=record.get("location") or "",
        latitude=record.get("latitude") or 0.0,
        longitude=record.get("longitude") or 0.0,
        hourly_rate=record["hourly_rate"],
        total_spots=record.get("total_spots"),
        spots=[Spot.from_dict(s) for s in record.get("spots") or []],
        is_active=record.get("is_active", True),
        created_at=record.get("created_at"),
        updated_at=record.get("updated_at"),
    )


def user_to_record(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role.value,
        "bookings": list(user.bookings),
    }


def user_from_record(record: Dict[str, Any]) -> User:
    return User(
        id=record["id"],
        name=record.get("name") or "",
        email=record.get("email") or "",
        role=UserRole(record.get("role") or UserRole.USER.value),
        bookings=list(record.get("bookings") or []),
    )


# ============================================================================
# IN-MEMORY REPOSITORIES (For Testing)
# ============================================================================

class InMemoryRepository:
    """Dictionary-backed storage; entities are copied in and out"""

    def __init__(self):
        self._storage: Dict[str, Any] = {}
        self._lock = threading.RLock()
        self._logger = logging.getLogger(self.__class__.__name__)

    def add(self, entity):
        with self._lock:
            self._storage[entity.id] = deepcopy(entity)
        self._logger.debug(f"Added entity {entity.id}")
        return entity

    def get(self, entity_id: str):
        with self._lock:
            entity = self._storage.get(entity_id)
            return deepcopy(entity) if entity is not None else None

    def _values(self) -> List[Any]:
        with self._lock:
            return [deepcopy(entity) for entity in self._storage.values()]

    def _replace(self, entity) -> bool:
        with self._lock:
            if entity.id not in self._storage:
                return False
            self._storage[entity.id] = deepcopy(entity)
        self._logger.debug(f"Updated entity {entity.id}")
        return True

    def delete(self, entity_id: str) -> bool:
        with self._lock:
            if entity_id in self._storage:
                del self._storage[entity_id]
                self._logger.debug(f"Deleted entity {entity_id}")
                return True
            return False


class InMemoryParkingLotRepository(InMemoryRepository, ParkingLotRepository):

    def get_all(self, active_only: bool = False) -> List[ParkingLot]:
        lots = self._values()
        if active_only:
            lots = [lot for lot in lots if lot.is_active]
        return lots

    def update(self, lot: ParkingLot) -> bool:
        return self._replace(lot)


class InMemoryBookingRepository(InMemoryRepository, BookingRepository):

    def update(self, booking: Booking, expected_status: Optional[BookingStatus] = None) -> bool:
        with self._lock:
            stored = self._storage.get(booking.id)
            if stored is None:
                return False
            if expected_status is not None and stored.status != expected_status:
                self._logger.debug(
                    f"Status check failed for {booking.id}: expected {expected_status.value}, found {stored.status.value}"
                )
                return False
            self._storage[booking.id] = deepcopy(booking)
        return True

    def delete(self, booking_id: str, expected_status: Optional[BookingStatus] = None) -> bool:
        with self._lock:
            stored = self._storage.get(booking_id)
            if stored is None:
                return False
            if expected_status is not None and stored.status != expected_status:
                return False
            del self._storage[booking_id]
        return True

    def find_by_lot_and_date(self, lot_id: str, booking_date: date) -> List[Booking]:
        return [
            b for b in self._values()
            if b.lot_id == lot_id and b.booking_date == booking_date
        ]

    def find_by_user(self, user_id: str, status: Optional[BookingStatus] = None) -> List[Booking]:
        return self.find(BookingFilter(user_id=user_id, status=status))

    def find(self, criteria: BookingFilter) -> List[Booking]:
        bookings = _newest_first(b for b in self._values() if criteria.matches(b))
        if criteria.limit is not None:
            bookings = bookings[:criteria.limit]
        return bookings


class InMemoryUserRepository(InMemoryRepository, UserRepository):

    def get_all(self) -> List[User]:
        return self._values()

    def update(self, user: User) -> bool:
        return self._replace(user)

    def append_booking(self, user_id: str, booking_id: str) -> bool:
        with self._lock:
            user = self._storage.get(user_id)
            if user is None:
                return False
            return user.add_booking(booking_id)


# ============================================================================
# SQLALCHEMY ORM MODELS
# ============================================================================

Base = declarative_base()


class DecimalString(TypeDecorator):
    """Stores Decimal values as text so that no backend rounds them"""
    impl = String(64)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return str(value) if value is not None else None

    def process_result_value(self, value, dialect):
        return Decimal(value) if value is not None else None


class ParkingLotModel(Base):
    """SQLAlchemy model for ParkingLot"""
    __tablename__ = 'parking_lots'

    id = Column(String(36), primary_key=True)
    name = Column(String(200), nullable=False)
    location = Column(Text, default="")
    latitude = Column(Float, default=0.0)
    longitude = Column(Float, default=0.0)
    hourly_rate = Column(DecimalString, nullable=False)
    total_spots = Column(Integer, nullable=False, default=0)
    spots = Column(JSON, default=list)
    is_active = Column(Boolean, default=True, index=True)

    # Timestamps
    created_at = Column(DateTime)
    updated_at = Column(DateTime)


class BookingModel(Base):
    """SQLAlchemy model for Booking"""
    __tablename__ = 'bookings'

    id = Column(String(36), primary_key=True)
    user_id = Column(String(128), nullable=False, index=True)
    lot_id = Column(String(36), nullable=False, index=True)
    spot_id = Column(String(64), nullable=False)
    booking_date = Column(Date, nullable=False, index=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    status = Column(String(20), nullable=False, index=True)

    duration = Column(DecimalString)
    hourly_rate = Column(DecimalString)
    total_cost = Column(DecimalString, nullable=False)
    payment_details = Column(JSON)

    # Checkout
    actual_end_time = Column(DateTime)
    actual_duration = Column(DecimalString)
    additional_cost = Column(DecimalString)
    final_cost = Column(DecimalString)

    # Timestamps
    created_at = Column(DateTime, index=True)
    expires_at = Column(DateTime)
    updated_at = Column(DateTime)


class UserModel(Base):
    """SQLAlchemy model for User"""
    __tablename__ = 'users'

    id = Column(String(128), primary_key=True)
    name = Column(String(200), default="")
    email = Column(String(320), default="", index=True)
    role = Column(String(20), nullable=False, default=UserRole.USER.value)
    bookings = Column(JSON, default=list)


class Mapper:
    """Mapper between domain models and ORM models"""

    @staticmethod
    def to_record(model: Base) -> Dict[str, Any]:
        return {column.name: getattr(model, column.name) for column in model.__table__.columns}

    @staticmethod
    def parking_lot_to_domain(model: ParkingLotModel) -> ParkingLot:
        return lot_from_record(Mapper.to_record(model))

    @staticmethod
    def booking_to_domain(model: BookingModel) -> Booking:
        return booking_from_record(Mapper.to_record(model))

    @staticmethod
    def user_to_domain(model: UserModel) -> User:
        return user_from_record(Mapper.to_record(model))


# ============================================================================
# SQLALCHEMY REPOSITORIES
# ============================================================================

class SQLAlchemyRepository(ABC):
    """
    Base SQLAlchemy repository

    Each call runs in its own session and commits on success, so a write
    is visible to other callers as soon as it returns.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory
        self._logger = logging.getLogger(self.__class__.__name__)

    @property
    @abstractmethod
    def model_class(self) -> Type[Base]:
        """Return SQLAlchemy model class"""
        pass

    @abstractmethod
    def to_domain(self, model: Base):
        pass

    @abstractmethod
    def to_record(self, entity) -> Dict[str, Any]:
        pass

    @contextmanager
    def _session_scope(self, action: str) -> Iterator[Session]:
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            self._logger.error(f"Database error while {action}: {e}", exc_info=True)
            raise
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def add(self, entity):
        with self._session_scope(f"adding {entity.id}") as session:
            session.add(self.model_class(**self.to_record(entity)))
        self._logger.debug(f"Added entity: {entity.id}")
        return entity

    def get(self, entity_id: str):
        with self._session_scope(f"getting {entity_id}") as session:
            model = session.get(self.model_class, entity_id)
            return self.to_domain(model) if model is not None else None

    def _replace(self, entity, *conditions) -> bool:
        values = self.to_record(entity)
        values.pop("id")
        with self._session_scope(f"updating {entity.id}") as session:
            rowcount = session.query(self.model_class).filter(
                self.model_class.id == entity.id, *conditions
            ).update(values, synchronize_session=False)
        return rowcount > 0

    def delete(self, entity_id: str) -> bool:
        with self._session_scope(f"deleting {entity_id}") as session:
            rowcount = session.query(self.model_class).filter(
                self.model_class.id == entity_id
            ).delete(synchronize_session=False)
        if rowcount:
            self._logger.debug(f"Deleted entity: {entity_id}")
        return rowcount > 0


class SQLAlchemyParkingLotRepository(SQLAlchemyRepository, ParkingLotRepository):

    @property
    def model_class(self) -> Type[Base]:
        return ParkingLotModel

    def to_domain(self, model: ParkingLotModel) -> ParkingLot:
        return Mapper.parking_lot_to_domain(model)

    def to_record(self, entity: ParkingLot) -> Dict[str, Any]:
        return lot_to_record(entity)

    def get_all(self, active_only: bool = False) -> List[ParkingLot]:
        with self._session_scope("listing parking lots") as session:
            query = session.query(ParkingLotModel)
            if active_only:
                query = query.filter(ParkingLotModel.is_active.is_(True))
            return [self.to_domain(model) for model in query.order_by(ParkingLotModel.name).all()]

    def update(self, lot: ParkingLot) -> bool:
        return self._replace(lot)


class SQLAlchemyBookingRepository(SQLAlchemyRepository, BookingRepository):

    @property
    def model_class(self) -> Type[Base]:
        return BookingModel

    def to_domain(self, model: BookingModel) -> Booking:
        return Mapper.booking_to_domain(model)

    def to_record(self, entity: Booking) -> Dict[str, Any]:
        return booking_to_record(entity)

    def update(self, booking: Booking, expected_status: Optional[BookingStatus] = None) -> bool:
        conditions = []
        if expected_status is not None:
            conditions.append(BookingModel.status == expected_status.value)
        return self._replace(booking, *conditions)

    def delete(self, booking_id: str, expected_status: Optional[BookingStatus] = None) -> bool:
        with self._session_scope(f"deleting {booking_id}") as session:
            query = session.query(BookingModel).filter(BookingModel.id == booking_id)
            if expected_status is not None:
                query = query.filter(BookingModel.status == expected_status.value)
            rowcount = query.delete(synchronize_session=False)
        return rowcount > 0

    def find_by_lot_and_date(self, lot_id: str, booking_date: date) -> List[Booking]:
        with self._session_scope(f"reading bookings of lot {lot_id}") as session:
            models = session.query(BookingModel).filter(
                BookingModel.lot_id == lot_id,
                BookingModel.booking_date == booking_date
            ).all()
            return [self.to_domain(model) for model in models]

    def find_by_user(self, user_id: str, status: Optional[BookingStatus] = None) -> List[Booking]:
        return self.find(BookingFilter(user_id=user_id, status=status))

    def find(self, criteria: BookingFilter) -> List[Booking]:
        with self._session_scope("finding bookings") as session:
            query = session.query(BookingModel)
            if criteria.status is not None:
                query = query.filter(BookingModel.status == criteria.status.value)
            if criteria.user_id is not None:
                query = query.filter(BookingModel.user_id == criteria.user_id)
            if criteria.lot_id is not None:
                query = query.filter(BookingModel.lot_id == criteria.lot_id)
            if criteria.start_date is not None:
                query = query.filter(BookingModel.booking_date >= criteria.start_date)
            if criteria.end_date is not None:
                query = query.filter(BookingModel.booking_date <= criteria.end_date)
            if criteria.created_from is not None:
                query = query.filter(BookingModel.created_at >= criteria.created_from)
            if criteria.created_to is not None:
                query = query.filter(BookingModel.created_at <= criteria.created_to)

            query = query.order_by(BookingModel.created_at.desc())
            if criteria.limit is not None:
                query = query.limit(criteria.limit)
            return [self.to_domain(model) for model in query.all()]


class SQLAlchemyUserRepository(SQLAlchemyRepository, UserRepository):

    @property
    def model_class(self) -> Type[Base]:
        return UserModel

    def to_domain(self, model: UserModel) -> User:
        return Mapper.user_to_domain(model)

    def to_record(self, entity: User) -> Dict[str, Any]:
        return user_to_record(entity)

    def get_all(self) -> List[User]:
        with self._session_scope("listing users") as session:
            return [self.to_domain(model) for model in session.query(UserModel).order_by(UserModel.name).all()]

    def get_many(self, user_ids: Iterable[str]) -> Dict[str, User]:
        ids = list(set(user_ids))
        if not ids:
            return {}
        with self._session_scope("reading users") as session:
            models = session.query(UserModel).filter(UserModel.id.in_(ids)).all()
            return {model.id: self.to_domain(model) for model in models}

    def update(self, user: User) -> bool:
        return self._replace(user)

    def append_booking(self, user_id: str, booking_id: str) -> bool:
        with self._session_scope(f"appending booking to user {user_id}") as session:
            model = session.query(UserModel).filter(UserModel.id == user_id).with_for_update().one_or_none()
            if model is None:
                return False
            bookings = list(model.bookings or [])
            if booking_id in bookings:
                return False
            # JSON columns only notice reassignment, not in-place mutation
            model.bookings = bookings + [booking_id]
        return True


def create_sqlalchemy_repositories(database_url: str, echo: bool = False) -> Repositories:
    """Create engine, tables and the three SQLAlchemy repositories"""
    engine = create_engine(database_url, echo=echo)
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    return Repositories(
        parking_lots=SQLAlchemyParkingLotRepository(SessionLocal),
        bookings=SQLAlchemyBookingRepository(SessionLocal),
        users=SQLAlchemyUserRepository(SessionLocal),
        closer=engine.dispose
    )


# ============================================================================
# MONGODB REPOSITORIES
# ============================================================================

def _mongo_safe(value):
    """BSON has no bare date type"""
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime.combine(value, time())
    return value


class MongoRepository:
    """Base pymongo repository; the entity id is stored as _id"""

    collection_name = ""

    def __init__(self, database: Database):
        self.collection = database[self.collection_name]
        self._logger = logging.getLogger(self.__class__.__name__)

    def to_record(self, entity) -> Dict[str, Any]:
        raise NotImplementedError

    def from_record(self, record: Dict[str, Any]):
        raise NotImplementedError

    def to_document(self, entity) -> Dict[str, Any]:
        record = self.to_record(entity)
        document = {key: _mongo_safe(value) for key, value in record.items() if key != "id"}
        document["_id"] = record["id"]
        return document

    def to_domain(self, document: Dict[str, Any]):
        record = dict(document)
        record["id"] = record.pop("_id")
        return self.from_record(record)

    @contextmanager
    def _driver_errors(self, action: str) -> Iterator[None]:
        try:
            yield
        except PyMongoError as e:
            self._logger.error(f"MongoDB error while {action}: {e}", exc_info=True)
            raise

    def add(self, entity):
        with self._driver_errors(f"adding {entity.id}"):
            self.collection.insert_one(self.to_document(entity))
        self._logger.debug(f"Added entity: {entity.id}")
        return entity

    def get(self, entity_id: str):
        with self._driver_errors(f"getting {entity_id}"):
            document = self.collection.find_one({"_id": entity_id})
        return self.to_domain(document) if document else None

    def _replace(self, entity, extra_filter: Optional[Dict[str, Any]] = None) -> bool:
        selector = {"_id": entity.id}
        selector.update(extra_filter or {})
        with self._driver_errors(f"updating {entity.id}"):
            result = self.collection.replace_one(selector, self.to_document(entity))
        return result.matched_count > 0

    def delete(self, entity_id: str) -> bool:
        with self._driver_errors(f"deleting {entity_id}"):
            result = self.collection.delete_one({"_id": entity_id})
        return result.deleted_count > 0


class MongoParkingLotRepository(MongoRepository, ParkingLotRepository):
    collection_name = "parking_lots"

    def to_record(self, entity: ParkingLot) -> Dict[str, Any]:
        return lot_to_record(entity)

    def from_record(self, record: Dict[str, Any]) -> ParkingLot:
        return lot_from_record(record)

    def get_all(self, active_only: bool = False) -> List[ParkingLot]:
        selector = {"is_active": True} if active_only else {}
        with self._driver_errors("listing parking lots"):
            documents = list(self.collection.find(selector).sort("name", pymongo.ASCENDING))
        return [self.to_domain(d) for d in documents]

    def update(self, lot: ParkingLot) -> bool:
        return self._replace(lot)


class MongoBookingRepository(MongoRepository, BookingRepository):
    collection_name = "bookings"

    def to_record(self, entity: Booking) -> Dict[str, Any]:
        return booking_to_record(entity)

    def from_record(self, record: Dict[str, Any]) -> Booking:
        return booking_from_record(record)

    def update(self, booking: Booking, expected_status: Optional[BookingStatus] = None) -> bool:
        extra = {"status": expected_status.value} if expected_status is not None else None
        return self._replace(booking, extra)

    def delete(self, booking_id: str, expected_status: Optional[BookingStatus] = None) -> bool:
        selector: Dict[str, Any] = {"_id": booking_id}
        if expected_status is not None:
            selector["status"] = expected_status.value
        with self._driver_errors(f"deleting {booking_id}"):
            result = self.collection.delete_one(selector)
        return result.deleted_count > 0

    def find_by_lot_and_date(self, lot_id: str, booking_date: date) -> List[Booking]:
        return self._find({"lot_id": lot_id, "booking_date": _mongo_safe(booking_date)})

    def find_by_user(self, user_id: str, status: Optional[BookingStatus] = None) -> List[Booking]:
        return self.find(BookingFilter(user_id=user_id, status=status))

    def find(self, criteria: BookingFilter) -> List[Booking]:
        selector: Dict[str, Any] = {}
        if criteria.status is not None:
            selector["status"] = criteria.status.value
        if criteria.user_id is not None:
            selector["user_id"] = criteria.user_id
        if criteria.lot_id is not None:
            selector["lot_id"] = criteria.lot_id

        date_range = {}
        if criteria.start_date is not None:
            date_range["$gte"] = _mongo_safe(criteria.start_date)
        if criteria.end_date is not None:
            date_range["$lte"] = _mongo_safe(criteria.end_date)
        if date_range:
            selector["booking_date"] = date_range

        created_range = {}
        if criteria.created_from is not None:
            created_range["$gte"] = criteria.created_from
        if criteria.created_to is not None:
            created_range["$lte"] = criteria.created_to
        if created_range:
            selector["created_at"] = created_range

        return self._find(selector, newest_first=True, limit=criteria.limit)

    def _find(self, selector: Dict[str, Any], newest_first: bool = False, limit: Optional[int] = None) -> List[Booking]:
        with self._driver_errors("finding bookings"):
            cursor = self.collection.find(selector)
            if newest_first:
                cursor = cursor.sort("created_at", pymongo.DESCENDING)
            if limit is not None:
                cursor = cursor.limit(limit)
            documents = list(cursor)
        return [self.to_domain(d) for d in documents]


class MongoUserRepository(MongoRepository, UserRepository):
    collection_name = "users"

    def to_record(self, entity: User) -> Dict[str, Any]:
        return user_to_record(entity)

    def from_record(self, record: Dict[str, Any]) -> User:
        return user_from_record(record)

    def get_all(self) -> List[User]:
        with self._driver_errors("listing users"):
            documents = list(self.collection.find({}))
        return [self.to_domain(d) for d in documents]

    def update(self, user: User) -> bool:
        return self._replace(user)

    def append_booking(self, user_id: str, booking_id: str) -> bool:
        with self._driver_errors(f"appending booking to user {user_id}"):
            result = self.collection.update_one(
                {"_id": user_id},
                {"$addToSet": {"bookings": booking_id}}
            )
        return result.modified_count > 0


def create_mongo_repositories(
    mongo_url: str,
    database_name: str,
    client: Optional[pymongo.MongoClient] = None
) -> Repositories:
    """Connect to MongoDB and create the three document repositories"""
    client = client or pymongo.MongoClient(mongo_url)
    database = client[database_name]

    bookings = MongoBookingRepository(database)
    bookings.collection.create_index([("lot_id", pymongo.ASCENDING), ("booking_date", pymongo.ASCENDING)])
    bookings.collection.create_index([("user_id", pymongo.ASCENDING), ("created_at", pymongo.DESCENDING)])
    bookings.collection.create_index([("status", pymongo.ASCENDING)])

    return Repositories(
        parking_lots=MongoParkingLotRepository(database),
        bookings=bookings,
        users=MongoUserRepository(database),
        closer=client.close
    )


def create_in_memory_repositories() -> Repositories:
    return Repositories(
        parking_lots=InMemoryParkingLotRepository(),
        bookings=InMemoryBookingRepository(),
        users=InMemoryUserRepository()
    )
