"""
Ingestion worker.

One background thread per connected source.  For every sample it:

1. pushes the sample into the :class:`SignalBuffer` (oldest evicted),
2. persists it as a reading of the attached session, if any,
3. hands a snapshot of the whole window to the observer,
4. once the window holds ``min_samples`` samples, recomputes BPM,
   classifies it, persists the results and notifies the observer.

The worker is the only writer of the buffer.  It stops when the source
reports it is no longer live or when :meth:`IngestionLoop.stop` sets the
cancellation event.  Stopping never finalizes the session.
"""

from __future__ import annotations

import logging
import queue
import threading
from enum import Enum
from typing import Any, Optional, Sequence, Tuple

from .config import MonitorConfig
from .event_classifier import EventClassifier, EventRecord
from .models import Session
from .session import SessionManager
from .signal_buffer import Sample, SignalBuffer
from .signal_processor import BPMResult, SignalProcessor
from .transport import SampleSource

logger = logging.getLogger(__name__)


class ConnectivityState(str, Enum):
    CONNECTED = "CONNECTED"
    DISCONNECTED = "DISCONNECTED"


class Observer:
    """
    Receives pipeline output.  All callbacks run on the ingestion thread;
    implementations hop to their own thread before touching UI state.
    """

    def on_window_updated(self, snapshot: Sequence[float]) -> None:
        pass

    def on_bpm_updated(self, bpm: int) -> None:
        pass

    def on_connectivity_changed(self, state: ConnectivityState) -> None:
        pass

    def on_event_detected(self, record: EventRecord) -> None:
        pass


class QueueObserver(Observer):
    """Forwards every callback as a ``(kind, payload)`` message on a queue."""

    def __init__(self, maxsize: int = 0) -> None:
        self.messages: "queue.Queue[Tuple[str, Any]]" = queue.Queue(maxsize=maxsize)

    def on_window_updated(self, snapshot: Sequence[float]) -> None:
        self._put("window", tuple(snapshot))

    def on_bpm_updated(self, bpm: int) -> None:
        self._put("bpm", bpm)

    def on_connectivity_changed(self, state: ConnectivityState) -> None:
        self._put("connectivity", state)

    def on_event_detected(self, record: EventRecord) -> None:
        self._put("event", record)

    def drain(self) -> list[Tuple[str, Any]]:
        """Return all pending messages without blocking."""
        out = []
        while True:
            try:
                out.append(self.messages.get_nowait())
            except queue.Empty:
                return out

    def _put(self, kind: str, payload: Any) -> None:
        try:
            self.messages.put_nowait((kind, payload))
        except queue.Full:
            logger.debug("Observer queue full – dropping %s message", kind)


class IngestionLoop:
    """
    Parameters
    ----------
    source:
        Connected sample source to poll.
    manager:
        Session manager used for every write.
    observer:
        Receives window, BPM, event and connectivity updates.
    config:
        Pipeline configuration.
    buffer:
        Window to fill.  A new one of ``config.capacity`` is created if
        omitted.
    session:
        Session that readings are recorded against.  May be attached later
        with :meth:`attach_session`.
    """

    def __init__(
        self,
        source: SampleSource,
        manager: SessionManager,
        observer: Optional[Observer] = None,
        config: MonitorConfig | None = None,
        buffer: Optional[SignalBuffer] = None,
        session: Optional[Session] = None,
    ) -> None:
        self.config = config or MonitorConfig()
        self.source = source
        self.manager = manager
        self.observer = observer or Observer()
        self.buffer = buffer if buffer is not None else SignalBuffer(self.config.capacity)
        self.processor = SignalProcessor(self.config)
        self.classifier = EventClassifier(
            tachycardia_above=self.config.tachycardia_above,
            bradycardia_below=self.config.bradycardia_below,
        )

        self._session = session
        self._session_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.samples_processed = 0

    # ------------------------------------------------------------------
    # Session handle
    # ------------------------------------------------------------------

    @property
    def session(self) -> Optional[Session]:
        with self._session_lock:
            return self._session

    def attach_session(self, session: Optional[Session]) -> None:
        with self._session_lock:
            self._session = session

    def detach_session(self) -> None:
        self.attach_session(None)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self._run,
            args=(self._stop_event,),
            name="ecg-ingestion",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> bool:
        """
        Signal the worker to exit and wait up to *timeout* seconds
        (``config.join_timeout`` by default).  Safe to call repeatedly.

        Returns *True* if the worker has exited.
        """
        self._stop_event.set()
        thread = self._thread
        if thread is None or thread is threading.current_thread():
            return True
        thread.join(self.config.join_timeout if timeout is None else timeout)
        if thread.is_alive():
            logger.warning("Ingestion worker did not stop in time – abandoning it.")
            return False
        self._thread = None
        return True

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the worker exits on its own.  Returns *True* if it did."""
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # ------------------------------------------------------------------
    # Per-sample step
    # ------------------------------------------------------------------

    def process_sample(self, value: float) -> Optional[BPMResult]:
        """Run one sample through the pipeline.  Returns the BPM result, if computed."""
        session = self.session
        self.buffer.push(Sample(float(value)))
        self.samples_processed += 1
        reading_id = self.manager.record_reading(session, value)

        window = self.buffer.values()
        self._notify("on_window_updated", window)

        result = self.processor.compute_bpm(window)
        if result is None:
            return None

        self.manager.record_bpm(session, result)
        record = self.classifier.evaluate(result.bpm, reading_id)
        if record is not None:
            self.manager.record_event(session, record)
        self._notify("on_bpm_updated", result.bpm)
        if record is not None:
            self._notify("on_event_detected", record)
        return result

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _run(self, stop: threading.Event) -> None:
        logger.info("Ingestion started.")
        self._notify("on_connectivity_changed", ConnectivityState.CONNECTED)
        try:
            while not stop.is_set():
                try:
                    if not self.source.liveness():
                        logger.info("Source no longer live, stopping ingestion.")
                        break
                    value = self.source.next_sample()
                except Exception as exc:  # noqa: BLE001
                    logger.error("Source failed: %s", exc)
                    break
                if value is None:
                    stop.wait(self.config.poll_interval)
                    continue
                try:
                    self.process_sample(value)
                except Exception as exc:  # noqa: BLE001
                    logger.warning("Skipping sample %r: %s", value, exc)
        finally:
            logger.info("Ingestion stopped after %d samples.", self.samples_processed)
            self._notify("on_connectivity_changed", ConnectivityState.DISCONNECTED)

    def _notify(self, callback: str, payload: Any) -> None:
        try:
            getattr(self.observer, callback)(payload)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Observer %s failed: %s", callback, exc)
