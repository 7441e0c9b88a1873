"""
Application controller.

Ties a store, a sample source, a command sink and an observer together:
patient selection opens (or reuses) a session, connecting starts the
ingestion worker, and motor commands are recorded against the session
before they are sent.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from .config import MonitorConfig, SourceConfig
from .exceptions import PersistenceError
from .ingestion import ConnectivityState, IngestionLoop, Observer
from .models import HistoryEntry, Session
from .session import DEFAULT_NOTES, SessionManager
from .signal_buffer import SignalBuffer
from .store import Store
from .transport import CommandSink, LoggingCommandSink, SampleSource

logger = logging.getLogger(__name__)


class MonitorController:
    """
    Parameters
    ----------
    store:
        Persistence backend.
    config:
        Pipeline configuration.
    observer:
        View-side observer.
    command_sink:
        Where motor commands go.  Defaults to a :class:`LoggingCommandSink`
        bound to the source configuration given to :meth:`connect`.
    """

    def __init__(
        self,
        store: Store,
        config: MonitorConfig | None = None,
        observer: Optional[Observer] = None,
        command_sink: Optional[CommandSink] = None,
    ) -> None:
        self.store = store
        self.config = config or MonitorConfig()
        self.manager = SessionManager(store)
        self.observer = observer or Observer()
        self.command_sink = command_sink
        self.buffer = SignalBuffer(self.config.capacity)

        self.patient_id: Optional[int] = None
        self.session: Optional[Session] = None
        self._source: Optional[SampleSource] = None
        self._loop: Optional[IngestionLoop] = None

    # ------------------------------------------------------------------
    # Patients and sessions
    # ------------------------------------------------------------------

    def register_patient(self, name: str, age: int, height_cm: float) -> Optional[int]:
        try:
            return self.store.add_patient(name, age, height_cm)
        except PersistenceError as exc:
            logger.warning("Patient %r not registered: %s", name, exc)
            return None

    def select_patient(self, patient_id: int, notes: str = DEFAULT_NOTES) -> Optional[Session]:
        """
        Make *patient_id* the monitored patient, opening a session if none is
        active.  Switching to another patient finalizes the previous patient's
        session once the new one is open.
        """
        try:
            session = self.manager.open_session(patient_id, notes)
        except PersistenceError as exc:
            logger.warning("Monitoring not started for patient %d: %s", patient_id, exc)
            return None
        previous = self.session
        self.patient_id = patient_id
        self.session = session
        if self._loop is not None:
            self._loop.attach_session(session)
        if previous is not None and previous is not session:
            self.manager.end_session(previous)
        return session

    def update_patient(self, patient_id: int, name: str, age: int, height_cm: float) -> bool:
        try:
            return self.store.update_patient(patient_id, name, age, height_cm)
        except PersistenceError as exc:
            logger.warning("Patient %d not updated: %s", patient_id, exc)
            return False

    def end_session(self) -> None:
        if self._loop is not None:
            self._loop.detach_session()
        self.manager.end_session(self.session)
        self.session = None

    def patient_history(self, patient_id: Optional[int] = None) -> List[HistoryEntry]:
        pid = self.patient_id if patient_id is None else patient_id
        if pid is None:
            return []
        try:
            return self.store.patient_history(pid)
        except PersistenceError as exc:
            logger.warning("History unavailable for patient %d: %s", pid, exc)
            return []

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    def connect(self, source: SampleSource, source_config: SourceConfig | None = None) -> bool:
        """Connect *source* and start ingesting from it."""
        if self._loop is not None:
            self.disconnect()
        source_config = source_config or SourceConfig()
        try:
            ok = source.connect(source_config)
        except Exception as exc:  # noqa: BLE001
            logger.error("Could not connect to %s: %s", source_config.broker_url, exc)
            ok = False
        if not ok:
            logger.error("Connection to %s failed.", source_config.broker_url)
            try:
                self.observer.on_connectivity_changed(ConnectivityState.DISCONNECTED)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Observer on_connectivity_changed failed: %s", exc)
            return False

        if self.command_sink is None:
            self.command_sink = LoggingCommandSink(source_config)
        self.buffer.clear()
        self._source = source
        self._loop = IngestionLoop(
            source,
            self.manager,
            observer=self.observer,
            config=self.config,
            buffer=self.buffer,
            session=self.session,
        )
        self._loop.start()
        logger.info("Connected to %s.", source_config.broker_url)
        return True

    def disconnect(self) -> None:
        """Stop ingestion.  The session stays open."""
        if self._loop is not None:
            self._loop.stop()
            self._loop = None
        if self._source is not None:
            self._source.disconnect()
            self._source = None

    @property
    def is_connected(self) -> bool:
        return (
            self._loop is not None
            and self._loop.is_running
            and self._source is not None
            and self._source.liveness()
        )

    @property
    def loop(self) -> Optional[IngestionLoop]:
        return self._loop

    # ------------------------------------------------------------------
    # Actuator
    # ------------------------------------------------------------------

    def control_motor(self, command: str) -> bool:
        """Record *command* on the session and send it.  Needs a live connection."""
        if not self.is_connected or self.command_sink is None:
            logger.error("Command %r refused: no active connection.", command)
            return False
        self.manager.record_command(self.session, command)
        try:
            sent = self.command_sink.send(command)
        except Exception as exc:  # noqa: BLE001
            logger.error("Command %r failed: %s", command, exc)
            return False
        if sent:
            logger.info("Command sent: MOTOR %s", command.upper())
        return sent

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def shutdown(self) -> None:
        self.disconnect()
        self.manager.end_all()
        self.session = None

    def __enter__(self) -> "MonitorController":
        return self

    def __exit__(self, *_) -> None:
        self.shutdown()
