"""Shared fixtures: an in-memory store and scripted sample sources."""

from __future__ import annotations

import threading
import time
from dataclasses import replace
from typing import Callable, Iterable, List, Optional

import pytest

from ecg_monitor.config import SourceConfig
from ecg_monitor.event_classifier import EVENT_CATALOG
from ecg_monitor.exceptions import PersistenceError
from ecg_monitor.store import SqlStore, Store
from ecg_monitor.transport import SampleSource



class FakeStore(Store):
    """Records every call.  Operations named in ``failing`` raise PersistenceError."""

    def __init__(self) -> None:
        self.failing: set[str] = set()
        self.sessions: dict[int, dict] = {}
        self.readings: List[tuple] = []
        self.bpms: List[tuple] = []
        self.events: List[tuple] = []
        self.commands: List[tuple] = []
        self.finalize_calls: List[int] = []
        self._lock = threading.Lock()

    def _check(self, op: str) -> None:
        if op in self.failing:
            raise PersistenceError(f"{op} unavailable")

    def create_session(self, patient_id, notes=""):
        self._check("create_session")
        with self._lock:
            sid = len(self.sessions) + 1
            self.sessions[sid] = {"patient_id": patient_id, "notes": notes, "status": "ACTIVE"}
            return sid

    def finalize_session(self, session_id):
        self._check("finalize_session")
        self.finalize_calls.append(session_id)
        self.sessions[session_id]["status"] = "FINALIZED"

    def insert_reading(self, session_id, value):
        self._check("insert_reading")
        with self._lock:
            self.readings.append((session_id, value))
            return len(self.readings)

    def insert_bpm(self, session_id, bpm, complex_count):
        self._check("insert_bpm")
        self.bpms.append((session_id, bpm, complex_count))

    def insert_event(self, reading_id, event_type_id, description):
        self._check("insert_event")
        self.events.append((reading_id, event_type_id, description))

    def list_event_types(self):
        self._check("list_event_types")
        return [replace(et, type_id=i) for i, et in enumerate(EVENT_CATALOG, start=1)]

    def insert_command(self, session_id, command):
        self._check("insert_command")
        self.commands.append((session_id, command))


class ScriptedSource(SampleSource):
    """
    Replays *values*.  ``None`` entries are empty polls.  Once the script is
    exhausted (or ``drop_after`` samples were served) the source reports
    itself as disconnected.  An ``Exception`` entry is raised when reached.
    """

    def __init__(
        self,
        values: Iterable,
        drop_after: Optional[int] = None,
        connect_ok: bool = True,
    ) -> None:
        self.values = list(values)
        self.drop_after = drop_after
        self.connect_ok = connect_ok
        self.connected = False
        self.served = 0
        self._pos = 0
        self.disconnect_calls = 0

    def connect(self, config: SourceConfig) -> bool:
        self.connected = self.connect_ok
        return self.connect_ok

    def liveness(self) -> bool:
        if not self.connected or self._pos >= len(self.values):
            return False
        return self.drop_after is None or self.served < self.drop_after

    def next_sample(self):
        item = self.values[self._pos]
        self._pos += 1
        if isinstance(item, Exception):
            raise item
        if item is not None:
            self.served += 1
        return item

    def disconnect(self) -> None:
        self.disconnect_calls += 1
        self.connected = False


def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def sql_store():
    store = SqlStore("sqlite://")
    yield store
    store.close()


@pytest.fixture
def scripted_source() -> Callable[..., ScriptedSource]:
    """Factory: ``scripted_source(values, drop_after=None, connect_ok=True)``."""
    def _make(values, **kwargs) -> ScriptedSource:
        source = ScriptedSource(values, **kwargs)
        source.connect(SourceConfig())
        return source
    return _make


@pytest.fixture
def waiter() -> Callable[..., bool]:
    return wait_until
