"""Domain records shared by the session manager and the store."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class SessionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    FINALIZED = "FINALIZED"


@dataclass
class Session:
    """
    One continuous monitoring period for one patient.

    Only :class:`~ecg_monitor.session.SessionManager` changes ``status`` and
    ``ended_at``.
    """

    session_id: int
    patient_id: int
    started_at: datetime = field(default_factory=datetime.now)
    status: SessionStatus = SessionStatus.ACTIVE
    notes: str = ""
    ended_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status is SessionStatus.ACTIVE


@dataclass(frozen=True)
class Patient:
    patient_id: int
    name: str
    age: int
    height_cm: float
    registered_at: Optional[datetime] = None


@dataclass(frozen=True)
class Reading:
    reading_id: int
    session_id: int
    value: float
    timestamp: datetime


@dataclass(frozen=True)
class HistoryEntry:
    """A persisted reading with the event detected on it, if any."""

    reading_id: int
    session_id: int
    value: float
    timestamp: datetime
    event_name: Optional[str] = None

    @property
    def event_detected(self) -> bool:
        return self.event_name is not None
