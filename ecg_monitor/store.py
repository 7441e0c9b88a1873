"""
Persistence.

:class:`Store` is the interface the pipeline writes through.  Every call is
an independent short operation; callers treat failures as non-fatal.

:class:`SqlStore` implements it on SQLAlchemy.  The schema holds patients,
monitoring sessions, readings, the event-type catalog, detected events, BPM
calculations and the actuator command history.
"""

from __future__ import annotations

import abc
import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional, Tuple

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from .event_classifier import EVENT_CATALOG, EventType, Severity
from .exceptions import PersistenceError
from .models import HistoryEntry, Patient, Reading, Session, SessionStatus

logger = logging.getLogger(__name__)


class Store(abc.ABC):
    """Durable storage used by the session manager."""

    @abc.abstractmethod
    def create_session(self, patient_id: int, notes: str = "") -> int:
        """Create an ACTIVE session and return its id."""

    @abc.abstractmethod
    def finalize_session(self, session_id: int) -> None:
        """Set end time and FINALIZED status.  No-op if already finalized."""

    @abc.abstractmethod
    def insert_reading(self, session_id: int, value: float) -> int:
        """Persist one sample and return the reading id."""

    @abc.abstractmethod
    def insert_bpm(self, session_id: int, bpm: int, complex_count: int) -> None:
        ...

    @abc.abstractmethod
    def insert_event(self, reading_id: int, event_type_id: int, description: str) -> None:
        ...

    @abc.abstractmethod
    def list_event_types(self) -> List[EventType]:
        ...

    @abc.abstractmethod
    def insert_command(self, session_id: Optional[int], command: str) -> None:
        ...

    # Patient records are optional; stores that keep them override these.

    def add_patient(self, name: str, age: int, height_cm: float) -> int:
        raise PersistenceError(f"{type(self).__name__} does not keep patient records")

    def update_patient(self, patient_id: int, name: str, age: int, height_cm: float) -> bool:
        raise PersistenceError(f"{type(self).__name__} does not keep patient records")

    def patient_history(self, patient_id: int) -> List[HistoryEntry]:
        return []


# ---------------------------------------------------------------------------
# ORM schema
# ---------------------------------------------------------------------------

Base = declarative_base()


class PatientRow(Base):
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    age = Column(Integer, nullable=False)
    height_cm = Column(Float, nullable=False)
    registered_at = Column(DateTime, default=datetime.now, nullable=False)

    sessions = relationship("SessionRow", back_populates="patient", cascade="all, delete-orphan")


class SessionRow(Base):
    __tablename__ = "monitoring_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    patient_id = Column(Integer, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    started_at = Column(DateTime, default=datetime.now, nullable=False)
    ended_at = Column(DateTime, nullable=True)
    status = Column(String(20), default=SessionStatus.ACTIVE.value, nullable=False)
    notes = Column(Text, nullable=True)

    patient = relationship("PatientRow", back_populates="sessions")
    readings = relationship("ReadingRow", back_populates="session", cascade="all, delete-orphan")
    bpm_calculations = relationship("BPMCalculationRow", cascade="all, delete-orphan")
    # No delete cascade: commands outlive their session with a null reference.
    commands = relationship("MotorCommandRow", back_populates="session")


class ReadingRow(Base):
    __tablename__ = "readings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(
        Integer, ForeignKey("monitoring_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    value = Column(Float, nullable=False)
    recorded_at = Column(DateTime, default=datetime.now, nullable=False)

    session = relationship("SessionRow", back_populates="readings")
    events = relationship("DetectedEventRow", cascade="all, delete-orphan")


class EventTypeRow(Base):
    __tablename__ = "event_types"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(50), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    severity = Column(String(20), nullable=False)


class DetectedEventRow(Base):
    __tablename__ = "detected_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    reading_id = Column(Integer, ForeignKey("readings.id", ondelete="CASCADE"), nullable=False)
    event_type_id = Column(Integer, ForeignKey("event_types.id"), nullable=False)
    description = Column(Text, nullable=True)
    detected_at = Column(DateTime, default=datetime.now, nullable=False)

    event_type = relationship("EventTypeRow")


class BPMCalculationRow(Base):
    __tablename__ = "bpm_calculations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(
        Integer, ForeignKey("monitoring_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    bpm = Column(Integer, nullable=False)
    beat_count = Column(Integer, nullable=True)
    interval_seconds = Column(Integer, default=10, nullable=False)
    computed_at = Column(DateTime, default=datetime.now, nullable=False)


class MotorCommandRow(Base):
    __tablename__ = "motor_commands"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(
        Integer, ForeignKey("monitoring_sessions.id", ondelete="SET NULL"), nullable=True
    )
    command = Column(String(32), nullable=False)
    sent_at = Column(DateTime, default=datetime.now, nullable=False)

    session = relationship("SessionRow", back_populates="commands")


# ---------------------------------------------------------------------------
# SQLAlchemy store
# ---------------------------------------------------------------------------

class SqlStore(Store):
    """
    SQLAlchemy-backed :class:`Store`.

    Parameters
    ----------
    url:
        Database URL.  Defaults to a private in-memory SQLite database.
    echo:
        Log emitted SQL (passed through to the engine).
    """

    def __init__(self, url: str = "sqlite://", echo: bool = False) -> None:
        self.url = url
        kwargs = {"echo": echo}
        if url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if url in ("sqlite://", "sqlite:///:memory:"):
                # One shared connection, otherwise each thread sees its own empty DB.
                kwargs["poolclass"] = StaticPool
        try:
            self._engine = create_engine(url, **kwargs)
            if url.startswith("sqlite"):
                event.listen(self._engine, "connect", _enable_sqlite_foreign_keys)
            Base.metadata.create_all(self._engine)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"cannot open store {url!r}: {exc}") from exc

        self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)
        self._lock = threading.RLock()
        self._seed_event_types()
        logger.info("Store ready – url=%s", url)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(self, patient_id: int, notes: str = "") -> int:
        with self._unit() as db:
            row = SessionRow(patient_id=patient_id, notes=notes)
            db.add(row)
            db.flush()
            return row.id

    def finalize_session(self, session_id: int) -> None:
        with self._unit() as db:
            row = db.get(SessionRow, session_id)
            if row is None:
                raise PersistenceError(f"unknown session {session_id}")
            if row.status == SessionStatus.FINALIZED.value:
                return
            row.status = SessionStatus.FINALIZED.value
            row.ended_at = datetime.now()

    def session_info(self, session_id: int) -> Optional[Session]:
        with self._unit() as db:
            row = db.get(SessionRow, session_id)
            if row is None:
                return None
            return Session(
                session_id=row.id,
                patient_id=row.patient_id,
                started_at=row.started_at,
                status=SessionStatus(row.status),
                notes=row.notes or "",
                ended_at=row.ended_at,
            )

    def delete_session(self, session_id: int) -> bool:
        with self._unit() as db:
            row = db.get(SessionRow, session_id)
            if row is None:
                return False
            db.delete(row)
            return True

    # ------------------------------------------------------------------
    # Pipeline writes
    # ------------------------------------------------------------------

    def insert_reading(self, session_id: int, value: float) -> int:
        with self._unit() as db:
            row = ReadingRow(session_id=session_id, value=float(value))
            db.add(row)
            db.flush()
            return row.id

    def insert_bpm(self, session_id: int, bpm: int, complex_count: int) -> None:
        with self._unit() as db:
            db.add(BPMCalculationRow(session_id=session_id, bpm=bpm, beat_count=complex_count))

    def insert_event(self, reading_id: int, event_type_id: int, description: str) -> None:
        with self._unit() as db:
            db.add(
                DetectedEventRow(
                    reading_id=reading_id,
                    event_type_id=event_type_id,
                    description=description,
                )
            )

    def list_event_types(self) -> List[EventType]:
        with self._unit() as db:
            rows = db.scalars(select(EventTypeRow).order_by(EventTypeRow.id)).all()
            return [
                EventType(r.name, r.description or "", Severity(r.severity), type_id=r.id)
                for r in rows
            ]

    def insert_command(self, session_id: Optional[int], command: str) -> None:
        with self._unit() as db:
            db.add(MotorCommandRow(session_id=session_id, command=command))

    # ------------------------------------------------------------------
    # Patients
    # ------------------------------------------------------------------

    def add_patient(self, name: str, age: int, height_cm: float) -> int:
        with self._unit() as db:
            row = PatientRow(name=name, age=age, height_cm=height_cm)
            db.add(row)
            db.flush()
            logger.info("Patient registered – id=%d name=%s", row.id, name)
            return row.id

    def get_patient(self, patient_id: int) -> Optional[Patient]:
        with self._unit() as db:
            row = db.get(PatientRow, patient_id)
            return _patient(row) if row is not None else None

    def list_patients(self) -> List[Patient]:
        with self._unit() as db:
            rows = db.scalars(select(PatientRow).order_by(PatientRow.id)).all()
            return [_patient(r) for r in rows]

    def update_patient(self, patient_id: int, name: str, age: int, height_cm: float) -> bool:
        """Overwrite the demographics of *patient_id*.  Returns False if unknown."""
        with self._unit() as db:
            row = db.get(PatientRow, patient_id)
            if row is None:
                return False
            row.name = name
            row.age = age
            row.height_cm = height_cm
            logger.info("Patient updated – id=%d name=%s", patient_id, name)
            return True

    def delete_patient(self, patient_id: int) -> bool:
        with self._unit() as db:
            row = db.get(PatientRow, patient_id)
            if row is None:
                return False
            db.delete(row)
            return True

    def patient_history(self, patient_id: int) -> List[HistoryEntry]:
        """Every reading recorded for *patient_id*, oldest first."""
        stmt = (
            select(ReadingRow, EventTypeRow.name)
            .join(SessionRow, ReadingRow.session_id == SessionRow.id)
            .outerjoin(DetectedEventRow, DetectedEventRow.reading_id == ReadingRow.id)
            .outerjoin(EventTypeRow, DetectedEventRow.event_type_id == EventTypeRow.id)
            .where(SessionRow.patient_id == patient_id)
            .order_by(ReadingRow.recorded_at, ReadingRow.id)
        )
        entries: dict[int, HistoryEntry] = {}
        with self._unit() as db:
            for reading, event_name in db.execute(stmt):
                if reading.id in entries:
                    continue
                entries[reading.id] = HistoryEntry(
                    reading_id=reading.id,
                    session_id=reading.session_id,
                    value=reading.value,
                    timestamp=reading.recorded_at,
                    event_name=event_name,
                )
        return list(entries.values())

    # ------------------------------------------------------------------
    # Session queries
    # ------------------------------------------------------------------

    def readings(self, session_id: int) -> List[Reading]:
        with self._unit() as db:
            rows = db.scalars(
                select(ReadingRow)
                .where(ReadingRow.session_id == session_id)
                .order_by(ReadingRow.id)
            ).all()
            return [Reading(r.id, r.session_id, r.value, r.recorded_at) for r in rows]

    def bpm_history(self, session_id: int) -> List[Tuple[int, int]]:
        """``(bpm, complex_count)`` pairs in the order they were computed."""
        with self._unit() as db:
            rows = db.execute(
                select(BPMCalculationRow.bpm, BPMCalculationRow.beat_count)
                .where(BPMCalculationRow.session_id == session_id)
                .order_by(BPMCalculationRow.id)
            ).all()
            return [(bpm, count) for bpm, count in rows]

    def events(self, session_id: int) -> List[Tuple[int, str, str]]:
        """``(reading_id, event_name, description)`` for a session."""
        with self._unit() as db:
            rows = db.execute(
                select(DetectedEventRow.reading_id, EventTypeRow.name, DetectedEventRow.description)
                .join(EventTypeRow, DetectedEventRow.event_type_id == EventTypeRow.id)
                .join(ReadingRow, DetectedEventRow.reading_id == ReadingRow.id)
                .where(ReadingRow.session_id == session_id)
                .order_by(DetectedEventRow.id)
            ).all()
            return [(rid, name, desc or "") for rid, name, desc in rows]

    def commands(self) -> List[Tuple[Optional[int], str]]:
        """``(session_id, command)`` for every recorded command."""
        with self._unit() as db:
            rows = db.execute(
                select(MotorCommandRow.session_id, MotorCommandRow.command).order_by(MotorCommandRow.id)
            ).all()
            return [(sid, cmd) for sid, cmd in rows]

    def count_sessions(self, patient_id: int) -> int:
        with self._unit() as db:
            return db.scalar(
                select(func.count(SessionRow.id)).where(SessionRow.patient_id == patient_id)
            )

    def close(self) -> None:
        self._engine.dispose()
        logger.info("Store closed.")

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _unit(self) -> Iterator:
        """One short transaction; SQLAlchemy failures become PersistenceError."""
        with self._lock:
            db = self._session_factory()
            try:
                yield db
                db.commit()
            except SQLAlchemyError as exc:
                db.rollback()
                raise PersistenceError(str(exc)) from exc
            finally:
                db.close()

    def _seed_event_types(self) -> None:
        with self._unit() as db:
            existing = set(db.scalars(select(EventTypeRow.name)).all())
            for et in EVENT_CATALOG:
                if et.name not in existing:
                    db.add(
                        EventTypeRow(
                            name=et.name,
                            description=et.description,
                            severity=et.severity.value,
                        )
                    )


def _enable_sqlite_foreign_keys(dbapi_connection, _record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _patient(row: PatientRow) -> Patient:
    return Patient(
        patient_id=row.id,
        name=row.name,
        age=row.age,
        height_cm=row.height_cm,
        registered_at=row.registered_at,
    )
