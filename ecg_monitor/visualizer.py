"""
Oscilloscope-style monitor view.

:class:`WaveformView` is an :class:`~ecg_monitor.ingestion.Observer`.  The
callbacks run on the ingestion thread and only store the latest values
under a lock.  :meth:`WaveformView.render` runs on the display thread and
draws them onto a fresh canvas:

  • the waveform strip of the current window,
  • the BPM readout, colour-coded by classification,
  • a buffer fill bar,
  • a connectivity badge and the most recent event.
"""

from __future__ import annotations

import threading
import time
from typing import Optional, Sequence, Tuple

import cv2
import numpy as np

from .event_classifier import EventRecord, classify, NORMAL, TACHYCARDIA
from .ingestion import ConnectivityState, Observer


# ---------------------------------------------------------------------------
# Colour palette (BGR)
# ---------------------------------------------------------------------------
_GREEN  = (100, 200,   0)
_RED    = (100, 100, 255)
_YELLOW = (0,   210, 210)
_WHITE  = (255, 255, 255)
_CYAN   = (220, 200,   0)
_GRID   = (40,   60,  40)
_DARK   = (20,   20,  20)


class WaveformView(Observer):
    """
    Parameters
    ----------
    resolution:
        (width, height) of the rendered canvas.
    capacity:
        Window capacity, used to draw the fill bar.
    waveform_height:
        Pixel height of the waveform panel.
    """

    def __init__(
        self,
        resolution: Tuple[int, int] = (800, 400),
        capacity: int = 600,
        waveform_height: int = 260,
    ) -> None:
        self.w, self.h = resolution
        self.capacity = capacity
        self.waveform_height = min(waveform_height, self.h - 60)

        self._lock = threading.Lock()
        self._window: np.ndarray = np.array([], dtype=np.float64)
        self._bpm: Optional[int] = None
        self._state = ConnectivityState.DISCONNECTED
        self._last_event: Optional[EventRecord] = None

    # ------------------------------------------------------------------
    # Observer callbacks (ingestion thread)
    # ------------------------------------------------------------------

    def on_window_updated(self, snapshot: Sequence[float]) -> None:
        arr = np.asarray(snapshot, dtype=np.float64)
        with self._lock:
            self._window = arr

    def on_bpm_updated(self, bpm: int) -> None:
        with self._lock:
            self._bpm = bpm

    def on_connectivity_changed(self, state: ConnectivityState) -> None:
        with self._lock:
            self._state = state
            if state is ConnectivityState.DISCONNECTED:
                self._bpm = None

    def on_event_detected(self, record: EventRecord) -> None:
        with self._lock:
            self._last_event = record

    # ------------------------------------------------------------------
    # Rendering (display thread)
    # ------------------------------------------------------------------

    @property
    def bpm(self) -> Optional[int]:
        with self._lock:
            return self._bpm

    @property
    def state(self) -> ConnectivityState:
        with self._lock:
            return self._state

    def render(self) -> np.ndarray:
        """Return a BGR canvas (H × W × 3, uint8) showing the current state."""
        with self._lock:
            window = self._window
            bpm = self._bpm
            state = self._state
            event = self._last_event

        frame = np.zeros((self.h, self.w, 3), dtype=np.uint8)
        frame[:] = _DARK

        self._draw_grid(frame)
        if len(window) > 1:
            self._draw_waveform(frame, window)
        self._draw_bpm(frame, bpm)
        self._draw_status(frame, state)
        self._draw_fill_bar(frame, len(window) / self.capacity)
        if event is not None:
            self._draw_event(frame, event)
        return frame

    # ------------------------------------------------------------------
    # Private drawing helpers
    # ------------------------------------------------------------------

    def _panel_top(self) -> int:
        return self.h - self.waveform_height

    def _draw_grid(self, frame: np.ndarray) -> None:
        top = self._panel_top()
        for x in range(0, self.w, 40):
            cv2.line(frame, (x, top), (x, self.h), _GRID, 1)
        for y in range(top, self.h, 40):
            cv2.line(frame, (0, y), (self.w, y), _GRID, 1)

    def _draw_waveform(self, frame: np.ndarray, signal: np.ndarray) -> None:
        top = self._panel_top()
        mn, mx = float(signal.min()), float(signal.max())
        rng = mx - mn if mx != mn else 1.0
        norm = (signal - mn) / rng

        margin = 8
        plot_h = self.waveform_height - 2 * margin
        # x spans the full capacity so the trace fills from the left.
        xs = (np.arange(len(norm)) * (self.w - 1) / max(self.capacity - 1, 1)).astype(np.int32)
        ys = (top + margin + (1.0 - norm) * plot_h).astype(np.int32)
        pts = np.column_stack([xs, ys])
        cv2.polylines(frame, [pts[:, None, :]], False, _GREEN, 1, cv2.LINE_AA)

        cv2.putText(
            frame, "ECG",
            (4, top + 14), cv2.FONT_HERSHEY_SIMPLEX, 0.4, _WHITE, 1, cv2.LINE_AA,
        )

    def _draw_bpm(self, frame: np.ndarray, bpm: Optional[int]) -> None:
        if bpm is None:
            cv2.putText(
                frame, "BPM: --",
                (16, 40), cv2.FONT_HERSHEY_SIMPLEX, 1.0, _YELLOW, 2, cv2.LINE_AA,
            )
            return
        kind = classify(bpm)
        if kind is NORMAL:
            col = _GREEN
        elif kind is TACHYCARDIA:
            col = _RED
        else:
            col = _YELLOW
        cv2.putText(
            frame, f"BPM: {bpm}",
            (16, 40), cv2.FONT_HERSHEY_SIMPLEX, 1.0, col, 2, cv2.LINE_AA,
        )

    def _draw_status(self, frame: np.ndarray, state: ConnectivityState) -> None:
        col = _GREEN if state is ConnectivityState.CONNECTED else _RED
        cv2.circle(frame, (self.w - 150, 32), 6, col, -1, cv2.LINE_AA)
        cv2.putText(
            frame, state.value,
            (self.w - 138, 37), cv2.FONT_HERSHEY_SIMPLEX, 0.45, col, 1, cv2.LINE_AA,
        )

    def _draw_fill_bar(self, frame: np.ndarray, fill: float) -> None:
        y0 = self._panel_top() - 12
        bar_w = int((self.w - 32) * min(fill, 1.0))
        cv2.rectangle(frame, (16, y0), (self.w - 16, y0 + 6), _GRID, -1)
        cv2.rectangle(frame, (16, y0), (16 + bar_w, y0 + 6), _CYAN, -1)

    def _draw_event(self, frame: np.ndarray, event: EventRecord) -> None:
        stamp = time.strftime("%H:%M:%S", time.localtime(event.timestamp))
        cv2.putText(
            frame, f"{stamp}  {event.description}",
            (16, 64), cv2.FONT_HERSHEY_SIMPLEX, 0.45, _YELLOW, 1, cv2.LINE_AA,
        )
