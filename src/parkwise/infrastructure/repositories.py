# File: src/parkwise/infrastructure/repositories.py
"""
Repository Pattern Implementation for the Parking Core

Repositories give the application services a collection-like interface over
slots, vehicles and parking sessions while hiding SQLAlchemy.

Concurrency rules live in the store, not in process locks:
- A slot flips AVAILABLE -> OCCUPIED through a conditional UPDATE guarded on
  the current status; a rowcount of zero means another transaction won.
- Partial unique indexes forbid two ACTIVE sessions for one slot and two
  ACTIVE sessions for one vehicle.
- Integrity violations surface as ConflictError from the unit of work.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import (
    Any, Callable, Dict, Generic, Iterable, List, Optional, Sequence, Set, Tuple, Type, TypeVar
)
from uuid import uuid4
import logging

from sqlalchemy import (
    Column, DateTime, ForeignKey, Index, Integer, Numeric, String,
    create_engine, func, or_, text
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, joinedload, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from ..domain.exceptions import ConflictError, SlotNotFoundError
from ..domain.models import (
    BillingType, ParkingSession, SessionStatus, Slot, SlotStatus,
    SlotType, Vehicle, VehicleType, slot_sort_key
)


T = TypeVar('T')

ACTIVE_ONLY = text("status = 'ACTIVE'")


# ============================================================================
# SQLALCHEMY ORM MODELS
# ============================================================================

Base = declarative_base()


class SlotModel(Base):
    """SQLAlchemy model for Slot"""
    __tablename__ = 'slots'

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    slot_number = Column(String(20), nullable=False, unique=True, index=True)
    slot_type = Column(String(30), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=SlotStatus.AVAILABLE.value, index=True)

    # Bumped on every status change
    version_id = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)


class VehicleModel(Base):
    """SQLAlchemy model for Vehicle"""
    __tablename__ = 'vehicles'

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    number_plate = Column(String(15), nullable=False, unique=True, index=True)
    vehicle_type = Column(String(30), nullable=False)
    created_at = Column(DateTime, default=datetime.now)


class ParkingSessionModel(Base):
    """SQLAlchemy model for ParkingSession"""
    __tablename__ = 'parking_sessions'

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    vehicle_id = Column(String(36), ForeignKey('vehicles.id'), nullable=False, index=True)
    slot_id = Column(String(36), ForeignKey('slots.id'), nullable=False, index=True)
    entry_time = Column(DateTime, nullable=False, index=True)
    exit_time = Column(DateTime, index=True)
    billing_type = Column(String(20), nullable=False, default=BillingType.HOURLY.value)
    status = Column(String(20), nullable=False, default=SessionStatus.ACTIVE.value, index=True)
    billing_amount = Column(Numeric(10, 2))
    created_at = Column(DateTime, default=datetime.now)

    vehicle = relationship('VehicleModel', lazy='joined')
    slot = relationship('SlotModel', lazy='joined')

    __table_args__ = (
        Index(
            'uq_active_session_per_slot', 'slot_id', unique=True,
            sqlite_where=ACTIVE_ONLY, postgresql_where=ACTIVE_ONLY,
        ),
        Index(
            'uq_active_session_per_vehicle', 'vehicle_id', unique=True,
            sqlite_where=ACTIVE_ONLY, postgresql_where=ACTIVE_ONLY,
        ),
    )


# ============================================================================
# DOMAIN <-> ORM MAPPERS
# ============================================================================

class Mapper:
    """Maps between domain models and ORM models"""

    @staticmethod
    def slot_to_orm(slot: Slot) -> SlotModel:
        return SlotModel(
            id=slot.id,
            slot_number=slot.slot_number,
            slot_type=slot.slot_type.value,
            status=slot.status.value,
        )

    @staticmethod
    def slot_to_domain(model: SlotModel) -> Slot:
        return Slot(
            id=model.id,
            slot_number=model.slot_number,
            slot_type=SlotType(model.slot_type),
            status=SlotStatus(model.status),
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    @staticmethod
    def vehicle_to_orm(vehicle: Vehicle) -> VehicleModel:
        return VehicleModel(
            id=vehicle.id,
            number_plate=vehicle.number_plate,
            vehicle_type=vehicle.vehicle_type.value,
        )

    @staticmethod
    def vehicle_to_domain(model: VehicleModel) -> Vehicle:
        return Vehicle(
            id=model.id,
            number_plate=model.number_plate,
            vehicle_type=VehicleType(model.vehicle_type),
            created_at=model.created_at,
        )

    @staticmethod
    def session_to_orm(session: ParkingSession) -> ParkingSessionModel:
        return ParkingSessionModel(
            id=session.id,
            vehicle_id=session.vehicle.id,
            slot_id=session.slot.id,
            entry_time=session.entry_time,
            exit_time=session.exit_time,
            billing_type=session.billing_type.value,
            status=session.status.value,
            billing_amount=session.billing_amount,
        )

    @staticmethod
    def session_to_domain(model: ParkingSessionModel) -> ParkingSession:
        amount = model.billing_amount
        return ParkingSession(
            id=model.id,
            vehicle=Mapper.vehicle_to_domain(model.vehicle),
            slot=Mapper.slot_to_domain(model.slot),
            entry_time=model.entry_time,
            exit_time=model.exit_time,
            billing_type=BillingType(model.billing_type),
            status=SessionStatus(model.status),
            billing_amount=Decimal(str(amount)) if amount is not None else None,
        )


# ============================================================================
# SQLALCHEMY REPOSITORIES
# ============================================================================

class SQLAlchemyRepository(ABC, Generic[T]):
    """Base SQLAlchemy repository"""

    def __init__(self, session: Session):
        self.session = session
        self._logger = logging.getLogger(self.__class__.__name__)

    @property
    @abstractmethod
    def model_class(self) -> Type[Base]:
        """Return SQLAlchemy model class"""
        pass

    @abstractmethod
    def to_domain(self, model: Base) -> T:
        pass

    @abstractmethod
    def to_orm(self, entity: T) -> Base:
        pass

    def add(self, entity: T) -> T:
        try:
            model = self.to_orm(entity)
            self.session.add(model)
            self.session.flush()
            self._logger.debug(f"Added entity: {model.id}")
            return entity
        except IntegrityError as e:
            self.session.rollback()
            self._logger.error(f"Integrity error adding entity: {e.orig}")
            raise ConflictError(
                f"{self.model_class.__name__.replace('Model', '')} violates a uniqueness rule",
                {"reason": str(e.orig)},
            ) from e
        except SQLAlchemyError as e:
            self.session.rollback()
            self._logger.error(f"Database error adding entity: {e}")
            raise

    def get(self, id: str) -> Optional[T]:
        try:
            model = self.session.get(self.model_class, str(id))
            if model:
                return self.to_domain(model)
            return None
        except SQLAlchemyError as e:
            self._logger.error(f"Database error getting entity {id}: {e}")
            raise

    def exists(self, id: str) -> bool:
        return self.count_by(id=str(id)) > 0

    def count(self) -> int:
        try:
            return self.session.query(self.model_class).count()
        except SQLAlchemyError as e:
            self._logger.error(f"Database error counting entities: {e}")
            raise

    def count_by(self, **criteria: Any) -> int:
        try:
            query = self.session.query(self.model_class)
            for key, value in criteria.items():
                query = query.filter(getattr(self.model_class, key) == value)
            return query.count()
        except SQLAlchemyError as e:
            self._logger.error(f"Database error counting by criteria: {e}")
            raise

    def find_by_criteria(self, criteria: Dict[str, Any]) -> List[T]:
        """Equality filters; list values become IN filters"""
        try:
            query = self.session.query(self.model_class)
            for key, value in criteria.items():
                if hasattr(self.model_class, key):
                    if isinstance(value, (list, tuple, set)):
                        query = query.filter(getattr(self.model_class, key).in_(list(value)))
                    else:
                        query = query.filter(getattr(self.model_class, key) == value)
            return [self.to_domain(model) for model in query.all()]
        except SQLAlchemyError as e:
            self._logger.error(f"Database error finding by criteria: {e}")
            raise


class SlotRepository(SQLAlchemyRepository[Slot]):
    """Repository for slots"""

    @property
    def model_class(self) -> Type[Base]:
        return SlotModel

    def to_domain(self, model: SlotModel) -> Slot:
        return Mapper.slot_to_domain(model)

    def to_orm(self, entity: Slot) -> SlotModel:
        return Mapper.slot_to_orm(entity)

    def find_by_number(self, slot_number: str) -> Optional[Slot]:
        try:
            model = self.session.query(SlotModel).filter(
                SlotModel.slot_number == slot_number.strip().upper()
            ).first()
            return self.to_domain(model) if model else None
        except SQLAlchemyError as e:
            self._logger.error(f"Database error finding slot by number: {e}")
            raise

    def existing_numbers(self, slot_numbers: Iterable[str]) -> Set[str]:
        numbers = [n.strip().upper() for n in slot_numbers]
        if not numbers:
            return set()
        rows = self.session.query(SlotModel.slot_number).filter(
            SlotModel.slot_number.in_(numbers)
        ).all()
        return {row[0] for row in rows}

    def list_all(self) -> List[Slot]:
        """Whole inventory in natural slot-number order"""
        try:
            models = self.session.query(SlotModel).all()
            slots = [self.to_domain(model) for model in models]
            return sorted(slots, key=lambda s: slot_sort_key(s.slot_number))
        except SQLAlchemyError as e:
            self._logger.error(f"Database error listing slots: {e}")
            raise

    def search(
        self,
        slot_type: Optional[SlotType] = None,
        status: Optional[SlotStatus] = None,
        floor: Optional[str] = None,
        text_filter: Optional[str] = None,
        offset: int = 0,
        limit: int = 50
    ) -> Tuple[List[Slot], int]:
        """Filtered, paginated slot listing; returns (page, total)"""
        try:
            query = self.session.query(SlotModel)
            if slot_type:
                query = query.filter(SlotModel.slot_type == slot_type.value)
            if status:
                query = query.filter(SlotModel.status == status.value)
            if floor:
                query = query.filter(SlotModel.slot_number.like(f"{floor.upper()}-%"))
            if text_filter:
                query = query.filter(SlotModel.slot_number.ilike(f"%{text_filter}%"))

            slots = sorted(
                (self.to_domain(model) for model in query.all()),
                key=lambda s: slot_sort_key(s.slot_number),
            )
            return slots[offset:offset + limit], len(slots)
        except SQLAlchemyError as e:
            self._logger.error(f"Database error searching slots: {e}")
            raise

    def find_available(self, slot_types: Optional[Sequence[SlotType]] = None) -> List[Slot]:
        try:
            query = self.session.query(SlotModel).filter(
                SlotModel.status == SlotStatus.AVAILABLE.value
            )
            if slot_types:
                query = query.filter(SlotModel.slot_type.in_([t.value for t in slot_types]))
            slots = [self.to_domain(model) for model in query.all()]
            return sorted(slots, key=lambda s: slot_sort_key(s.slot_number))
        except SQLAlchemyError as e:
            self._logger.error(f"Database error finding available slots: {e}")
            raise

    def _transition(self, slot_id: str, from_statuses: Sequence[SlotStatus], to_status: SlotStatus) -> bool:
        """Conditional status flip; False when the slot was not in an expected status"""
        try:
            result = self.session.query(SlotModel).filter(
                SlotModel.id == str(slot_id),
                SlotModel.status.in_([s.value for s in from_statuses])
            ).update({
                'status': to_status.value,
                'version_id': SlotModel.version_id + 1,
                'updated_at': datetime.now(),
            }, synchronize_session='fetch')

            self.session.flush()
            return result > 0
        except SQLAlchemyError as e:
            self.session.rollback()
            self._logger.error(f"Database error moving slot {slot_id} to {to_status.value}: {e}")
            raise

    def occupy_slot(self, slot_id: str) -> bool:
        """AVAILABLE -> OCCUPIED"""
        return self._transition(slot_id, (SlotStatus.AVAILABLE,), SlotStatus.OCCUPIED)

    def release_slot(self, slot_id: str) -> bool:
        """OCCUPIED -> AVAILABLE"""
        return self._transition(slot_id, (SlotStatus.OCCUPIED,), SlotStatus.AVAILABLE)

    def start_maintenance(self, slot_id: str) -> bool:
        return self._transition(
            slot_id, (SlotStatus.AVAILABLE, SlotStatus.MAINTENANCE), SlotStatus.MAINTENANCE
        )

    def end_maintenance(self, slot_id: str) -> bool:
        return self._transition(
            slot_id, (SlotStatus.MAINTENANCE, SlotStatus.AVAILABLE), SlotStatus.AVAILABLE
        )

    def update(self, slot: Slot) -> Slot:
        """Persist slot number and type changes (status goes through transitions)"""
        try:
            model = self.session.get(SlotModel, slot.id)
            if model is None:
                raise SlotNotFoundError(slot.id)
            model.slot_number = slot.slot_number
            model.slot_type = slot.slot_type.value
            model.version_id = model.version_id + 1
            self.session.flush()
            self._logger.debug(f"Updated slot: {slot.slot_number}")
            return slot
        except IntegrityError as e:
            self.session.rollback()
            raise ConflictError(
                f"Slot number {slot.slot_number} already exists",
                {"slot_number": slot.slot_number},
            ) from e
        except SQLAlchemyError as e:
            self.session.rollback()
            self._logger.error(f"Database error updating slot: {e}")
            raise

    def counts_by_type_and_status(self) -> Dict[str, Dict[str, int]]:
        """{slot_type: {status: count}}"""
        try:
            rows = self.session.query(
                SlotModel.slot_type, SlotModel.status, func.count(SlotModel.id)
            ).group_by(SlotModel.slot_type, SlotModel.status).all()

            counts: Dict[str, Dict[str, int]] = {}
            for slot_type, status, count in rows:
                counts.setdefault(slot_type, {})[status] = count
            return counts
        except SQLAlchemyError as e:
            self._logger.error(f"Database error counting slots: {e}")
            raise


class VehicleRepository(SQLAlchemyRepository[Vehicle]):
    """Repository for vehicles"""

    @property
    def model_class(self) -> Type[Base]:
        return VehicleModel

    def to_domain(self, model: VehicleModel) -> Vehicle:
        return Mapper.vehicle_to_domain(model)

    def to_orm(self, entity: Vehicle) -> VehicleModel:
        return Mapper.vehicle_to_orm(entity)

    def find_by_plate(self, number_plate: str) -> Optional[Vehicle]:
        try:
            model = self.session.query(VehicleModel).filter(
                VehicleModel.number_plate == number_plate
            ).first()
            return self.to_domain(model) if model else None
        except SQLAlchemyError as e:
            self._logger.error(f"Database error finding vehicle by plate: {e}")
            raise

    def update_type(self, vehicle: Vehicle) -> None:
        model = self.session.get(VehicleModel, vehicle.id)
        if model is not None and model.vehicle_type != vehicle.vehicle_type.value:
            model.vehicle_type = vehicle.vehicle_type.value
            self.session.flush()

    def search(self, fragment: str, limit: int = 10) -> List[Vehicle]:
        """Case-insensitive substring match on the plate"""
        try:
            models = self.session.query(VehicleModel).filter(
                VehicleModel.number_plate.ilike(f"%{fragment.strip()}%")
            ).order_by(VehicleModel.number_plate).limit(limit).all()
            return [self.to_domain(model) for model in models]
        except SQLAlchemyError as e:
            self._logger.error(f"Database error searching vehicles: {e}")
            raise


class SessionRepository(SQLAlchemyRepository[ParkingSession]):
    """Repository for parking sessions"""

    @property
    def model_class(self) -> Type[Base]:
        return ParkingSessionModel

    def to_domain(self, model: ParkingSessionModel) -> ParkingSession:
        return Mapper.session_to_domain(model)

    def to_orm(self, entity: ParkingSession) -> ParkingSessionModel:
        return Mapper.session_to_orm(entity)

    def _query(self):
        return self.session.query(ParkingSessionModel).options(
            joinedload(ParkingSessionModel.vehicle),
            joinedload(ParkingSessionModel.slot),
        )

    def find_active_by_plate(self, number_plate: str) -> Optional[ParkingSession]:
        try:
            model = self._query().join(
                VehicleModel, ParkingSessionModel.vehicle_id == VehicleModel.id
            ).filter(
                VehicleModel.number_plate == number_plate,
                ParkingSessionModel.status == SessionStatus.ACTIVE.value
            ).first()
            return self.to_domain(model) if model else None
        except SQLAlchemyError as e:
            self._logger.error(f"Database error finding active session: {e}")
            raise

    def find_active(
        self,
        vehicle_type: Optional[VehicleType] = None,
        offset: int = 0,
        limit: Optional[int] = None
    ) -> Tuple[List[ParkingSession], int]:
        """Active sessions, most recent entry first; returns (page, total)"""
        try:
            query = self._query().filter(
                ParkingSessionModel.status == SessionStatus.ACTIVE.value
            )
            if vehicle_type:
                query = query.join(
                    VehicleModel, ParkingSessionModel.vehicle_id == VehicleModel.id
                ).filter(VehicleModel.vehicle_type == vehicle_type.value)

            total = query.count()
            query = query.order_by(ParkingSessionModel.entry_time.desc()).offset(offset)
            if limit is not None:
                query = query.limit(limit)
            return [self.to_domain(model) for model in query.all()], total
        except SQLAlchemyError as e:
            self._logger.error(f"Database error finding active sessions: {e}")
            raise

    def find_completed(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        vehicle_type: Optional[VehicleType] = None,
        offset: int = 0,
        limit: Optional[int] = None
    ) -> Tuple[List[ParkingSession], int]:
        """Completed sessions whose exit falls in [start, end], latest exit first"""
        try:
            query = self._query().filter(
                ParkingSessionModel.status == SessionStatus.COMPLETED.value
            )
            if start:
                query = query.filter(ParkingSessionModel.exit_time >= start)
            if end:
                query = query.filter(ParkingSessionModel.exit_time <= end)
            if vehicle_type:
                query = query.join(
                    VehicleModel, ParkingSessionModel.vehicle_id == VehicleModel.id
                ).filter(VehicleModel.vehicle_type == vehicle_type.value)

            total = query.count()
            query = query.order_by(ParkingSessionModel.exit_time.desc()).offset(offset)
            if limit is not None:
                query = query.limit(limit)
            return [self.to_domain(model) for model in query.all()], total
        except SQLAlchemyError as e:
            self._logger.error(f"Database error finding completed sessions: {e}")
            raise

    def find_entered(
        self,
        start: datetime,
        end: Optional[datetime] = None,
        status: Optional[SessionStatus] = None
    ) -> List[ParkingSession]:
        """Sessions whose entry falls in [start, end], oldest entry first"""
        try:
            query = self._query().filter(ParkingSessionModel.entry_time >= start)
            if end:
                query = query.filter(ParkingSessionModel.entry_time <= end)
            if status:
                query = query.filter(ParkingSessionModel.status == status.value)
            models = query.order_by(ParkingSessionModel.entry_time).all()
            return [self.to_domain(model) for model in models]
        except SQLAlchemyError as e:
            self._logger.error(f"Database error finding sessions by entry time: {e}")
            raise

    def find_overlapping(self, start: datetime, end: datetime) -> List[ParkingSession]:
        """Sessions present at some point of [start, end); active ones are still present"""
        try:
            models = self._query().filter(
                ParkingSessionModel.entry_time < end,
                or_(ParkingSessionModel.exit_time.is_(None), ParkingSessionModel.exit_time > start)
            ).order_by(ParkingSessionModel.entry_time).all()
            return [self.to_domain(model) for model in models]
        except SQLAlchemyError as e:
            self._logger.error(f"Database error finding overlapping sessions: {e}")
            raise

    def change_billing_type(self, session_id: str, billing_type: BillingType) -> bool:
        """Conditional on the session still being ACTIVE"""
        try:
            result = self.session.query(ParkingSessionModel).filter(
                ParkingSessionModel.id == session_id,
                ParkingSessionModel.status == SessionStatus.ACTIVE.value
            ).update({'billing_type': billing_type.value}, synchronize_session='fetch')

            self.session.flush()
            return result > 0
        except SQLAlchemyError as e:
            self.session.rollback()
            self._logger.error(f"Database error changing billing type of {session_id}: {e}")
            raise

    def history_for_vehicle(self, vehicle_id: str, limit: int = 10) -> List[ParkingSession]:
        models = self._query().filter(
            ParkingSessionModel.vehicle_id == vehicle_id,
            ParkingSessionModel.status == SessionStatus.COMPLETED.value
        ).order_by(ParkingSessionModel.exit_time.desc()).limit(limit).all()
        return [self.to_domain(model) for model in models]

    def complete(self, session: ParkingSession) -> bool:
        """Write the closed session back; False if it was no longer ACTIVE"""
        try:
            result = self.session.query(ParkingSessionModel).filter(
                ParkingSessionModel.id == session.id,
                ParkingSessionModel.status == SessionStatus.ACTIVE.value
            ).update({
                'status': SessionStatus.COMPLETED.value,
                'exit_time': session.exit_time,
                'billing_amount': session.billing_amount,
            }, synchronize_session='fetch')

            self.session.flush()
            return result > 0
        except SQLAlchemyError as e:
            self.session.rollback()
            self._logger.error(f"Database error completing session {session.id}: {e}")
            raise

    def count_active_by_vehicle_type(self) -> Dict[str, int]:
        rows = self.session.query(
            VehicleModel.vehicle_type, func.count(ParkingSessionModel.id)
        ).join(
            VehicleModel, ParkingSessionModel.vehicle_id == VehicleModel.id
        ).filter(
            ParkingSessionModel.status == SessionStatus.ACTIVE.value
        ).group_by(VehicleModel.vehicle_type).all()
        return {vehicle_type: count for vehicle_type, count in rows}

    def revenue_by_billing_type(self, start: datetime, end: datetime) -> Dict[str, Tuple[Decimal, int]]:
        """{billing_type: (revenue, sessions)} for exits in [start, end]"""
        try:
            rows = self.session.query(
                ParkingSessionModel.billing_type,
                func.coalesce(func.sum(ParkingSessionModel.billing_amount), 0),
                func.count(ParkingSessionModel.id)
            ).filter(
                ParkingSessionModel.status == SessionStatus.COMPLETED.value,
                ParkingSessionModel.exit_time >= start,
                ParkingSessionModel.exit_time <= end
            ).group_by(ParkingSessionModel.billing_type).all()

            return {
                billing_type: (Decimal(str(revenue)), count)
                for billing_type, revenue, count in rows
            }
        except SQLAlchemyError as e:
            self._logger.error(f"Database error summing revenue: {e}")
            raise

    def search_plates(self, fragment: str, limit: int = 10) -> List[ParkingSession]:
        """Active sessions whose plate or slot number contains the fragment"""
        pattern = f"%{fragment.strip()}%"
        models = self._query().join(
            VehicleModel, ParkingSessionModel.vehicle_id == VehicleModel.id
        ).join(
            SlotModel, ParkingSessionModel.slot_id == SlotModel.id
        ).filter(
            ParkingSessionModel.status == SessionStatus.ACTIVE.value,
            or_(VehicleModel.number_plate.ilike(pattern), SlotModel.slot_number.ilike(pattern))
        ).limit(limit).all()
        return [self.to_domain(model) for model in models]


# ============================================================================
# UNIT OF WORK PATTERN
# ============================================================================

class UnitOfWork(ABC):
    """Unit of Work pattern for transaction management"""

    slots: SlotRepository
    vehicles: VehicleRepository
    sessions: SessionRepository

    @abstractmethod
    def __enter__(self) -> 'UnitOfWork':
        pass

    @abstractmethod
    def __exit__(self, exc_type, exc_val, exc_tb):
        pass

    @abstractmethod
    def commit(self):
        pass

    @abstractmethod
    def rollback(self):
        pass


class SQLAlchemyUnitOfWork(UnitOfWork):
    """
    Unit of Work implementation with SQLAlchemy
    Commits on a clean exit, rolls back when the block raises.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory
        self._logger = logging.getLogger(self.__class__.__name__)

    def __enter__(self) -> 'SQLAlchemyUnitOfWork':
        self.session = self.session_factory()
        self.slots = SlotRepository(self.session)
        self.vehicles = VehicleRepository(self.session)
        self.sessions = SessionRepository(self.session)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            if exc_type is not None:
                self._logger.debug(f"Rolling back unit of work: {exc_val}")
                self.rollback()
            else:
                self.commit()
        finally:
            self.session.close()

    def commit(self):
        try:
            self.session.commit()
            self._logger.debug("Transaction committed")
        except IntegrityError as e:
            self.session.rollback()
            self._logger.warning(f"Commit rejected by constraint: {e.orig}")
            raise ConflictError("Concurrent update rejected by the store", {"reason": str(e.orig)}) from e
        except SQLAlchemyError as e:
            self._logger.error(f"Error committing transaction: {e}")
            self.session.rollback()
            raise

    def rollback(self):
        self.session.rollback()
        self._logger.debug("Transaction rolled back")


# ============================================================================
# REPOSITORY FACTORY
# ============================================================================

class RepositoryFactory:
    """Builds engines, session factories and unit-of-work factories"""

    @staticmethod
    def create_engine(database_url: str, echo: bool = False) -> Engine:
        """In-memory SQLite shares one connection so every session sees the same data"""
        if database_url.startswith("sqlite") and (":memory:" in database_url or database_url == "sqlite://"):
            return create_engine(
                database_url,
                echo=echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        return create_engine(database_url, echo=echo, pool_pre_ping=True)

    @staticmethod
    def create_session_factory(engine: Engine) -> Callable[[], Session]:
        # Create tables if they don't exist
        Base.metadata.create_all(bind=engine)
        return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    @classmethod
    def create_uow_factory(
        cls,
        database_url: str,
        echo: bool = False
    ) -> Callable[[], SQLAlchemyUnitOfWork]:
        engine = cls.create_engine(database_url, echo=echo)
        session_factory = cls.create_session_factory(engine)
        logging.getLogger(cls.__name__).info(f"Database ready: {engine.url.render_as_string(hide_password=True)}")
        return lambda: SQLAlchemyUnitOfWork(session_factory)
