"""
Monitoring session lifecycle.

    NoSession ──open_session──▶ Active ──end_session──▶ Finalized

A patient has at most one ACTIVE session.  Opening again while one is
active returns the existing session.  A finalized session never becomes
active again.

Sessions are explicit handles: every record call names the session it
writes to, so nothing depends on an ambient "current session".  Store
failures are logged and swallowed here, except in :meth:`open_session`,
which cannot produce a handle without a stored id.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Dict, List, Optional

from .event_classifier import EventRecord
from .exceptions import PersistenceError
from .models import Session, SessionStatus
from .signal_processor import BPMResult
from .store import Store

logger = logging.getLogger(__name__)

DEFAULT_NOTES = "Monitoring session"


class SessionManager:
    """
    Owns every session transition and every write made on a session's
    behalf.

    Parameters
    ----------
    store:
        Persistence backend.
    """

    def __init__(self, store: Store) -> None:
        self.store = store
        self._lock = threading.Lock()
        self._active: Dict[int, Session] = {}
        self._event_type_ids: Optional[Dict[str, int]] = None

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def open_session(self, patient_id: int, notes: str = DEFAULT_NOTES) -> Session:
        """
        Return the ACTIVE session for *patient_id*, creating one if needed.

        Raises
        ------
        PersistenceError
            The store could not create the session.
        """
        with self._lock:
            existing = self._active.get(patient_id)
            if existing is not None and existing.is_active:
                return existing
            try:
                session_id = self.store.create_session(patient_id, notes)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Could not open session for patient %d: %s", patient_id, exc)
                if isinstance(exc, PersistenceError):
                    raise
                raise PersistenceError(str(exc)) from exc
            session = Session(session_id=session_id, patient_id=patient_id, notes=notes)
            self._active[patient_id] = session
        logger.info("Session opened – id=%d patient=%d", session_id, patient_id)
        return session

    def end_session(self, session: Optional[Session]) -> None:
        """Finalize *session*.  Does nothing if it is already finalized."""
        if session is None:
            return
        with self._lock:
            if session.status is SessionStatus.FINALIZED:
                return
            session.status = SessionStatus.FINALIZED
            session.ended_at = datetime.now()
            if self._active.get(session.patient_id) is session:
                del self._active[session.patient_id]
        try:
            self.store.finalize_session(session.session_id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Could not persist end of session %d: %s", session.session_id, exc)
        logger.info("Session finalized – id=%d", session.session_id)

    def end_all(self) -> None:
        for session in self.active_sessions():
            self.end_session(session)

    def active_session(self, patient_id: int) -> Optional[Session]:
        with self._lock:
            return self._active.get(patient_id)

    def active_sessions(self) -> List[Session]:
        with self._lock:
            return list(self._active.values())

    # ------------------------------------------------------------------
    # Writes (only while ACTIVE)
    #
    # The ACTIVE check and the store write happen under one lock hold, so
    # end_session cannot finalize a session between the two.
    # ------------------------------------------------------------------

    def record_reading(self, session: Optional[Session], value: float) -> Optional[int]:
        """Persist *value*; return the reading id, or *None* if nothing was written."""
        if session is None:
            return None
        with self._lock:
            if not session.is_active:
                return None
            try:
                return self.store.insert_reading(session.session_id, value)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Reading not persisted (session %d): %s", session.session_id, exc)
                return None

    def record_bpm(self, session: Optional[Session], result: BPMResult) -> bool:
        if session is None:
            return False
        with self._lock:
            if not session.is_active:
                return False
            try:
                self.store.insert_bpm(session.session_id, result.bpm, result.complex_count)
            except Exception as exc:  # noqa: BLE001
                logger.warning("BPM not persisted (session %d): %s", session.session_id, exc)
                return False
        return True

    def record_event(self, session: Optional[Session], record: EventRecord) -> bool:
        """Persist *record*.  Needs the id of the reading that triggered it."""
        if session is None or record.reading_id is None:
            return False
        type_id = self._event_type_id(record.event_type.name)
        if type_id is None:
            return False
        with self._lock:
            if not session.is_active:
                return False
            try:
                self.store.insert_event(record.reading_id, type_id, record.description)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Event not persisted (reading %d): %s", record.reading_id, exc)
                return False
        logger.info(
            "%s detected – session=%d reading=%d",
            record.event_type.name, session.session_id, record.reading_id,
        )
        return True

    def record_command(self, session: Optional[Session], command: str) -> bool:
        if session is None:
            return False
        with self._lock:
            if not session.is_active:
                return False
            try:
                self.store.insert_command(session.session_id, command)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Command not persisted (session %d): %s", session.session_id, exc)
                return False
        return True

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _event_type_id(self, name: str) -> Optional[int]:
        if self._event_type_ids is None:
            try:
                types = self.store.list_event_types()
            except Exception as exc:  # noqa: BLE001
                logger.warning("Event types unavailable: %s", exc)
                return None
            self._event_type_ids = {
                et.name: et.type_id for et in types if et.type_id is not None
            }
        type_id = self._event_type_ids.get(name)
        if type_id is None:
            logger.warning("Unknown event type %r", name)
        return type_id
