"""
Heart-rate analysis over the rolling window.

Algorithm
---------
1. Count every sample whose amplitude is strictly above a fixed threshold.
   Each such sample is treated as one complex.  This is an amplitude
   heuristic, not QRS morphology detection.
2. Treat the window as a fixed 10-second interval, whatever the real sample
   timing was, and scale the count to beats per minute
   (``count * 60 / 10``, i.e. ``count * 6``).
3. Saturate the result to the physiological range 40 – 200 BPM.

The estimate is only produced once the window holds ``min_samples``
samples (100 by default).  Below that, nothing is computed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from .config import MonitorConfig

logger = logging.getLogger(__name__)

# Every window is taken to be 10 seconds long: 100 samples ~ 10 s.
WINDOW_SECONDS = 10.0
BPM_PER_COMPLEX = 6          # 60 s / WINDOW_SECONDS


@dataclass(frozen=True)
class BPMResult:
    """A single heart-rate estimate and the inputs it was derived from."""

    bpm: int
    complex_count: int
    sample_count: int


class ComplexDetector:
    """
    Amplitude-threshold complex counter.

    Parameters
    ----------
    threshold:
        Samples strictly greater than this value are counted.
    """

    def __init__(self, threshold: float = 150.0) -> None:
        self.threshold = threshold

    def count_complexes(
        self, window: Sequence[float], threshold: Optional[float] = None
    ) -> int:
        """Return the number of samples in *window* above *threshold*."""
        if threshold is None:
            threshold = self.threshold
        if len(window) == 0:
            return 0
        signal = np.asarray(window, dtype=np.float64)
        return int(np.count_nonzero(signal > threshold))


class BPMEstimator:
    """
    Convert a complex count into a clamped BPM value.

    Every window counts as ``WINDOW_SECONDS`` of signal, so the raw value
    is always ``complex_count * BPM_PER_COMPLEX`` whatever the real elapsed
    time was.

    Parameters
    ----------
    bpm_min, bpm_max:
        Saturation bounds.  Out-of-range values are clamped, never rejected.
    """

    def __init__(
        self,
        bpm_min: int = 40,
        bpm_max: int = 200,
    ) -> None:
        self.bpm_min = bpm_min
        self.bpm_max = bpm_max

    def estimate(self, complex_count: int, window_seconds: float = WINDOW_SECONDS) -> int:
        # window_seconds is accepted for interface parity only; the mapping is fixed.
        bpm = int(complex_count) * BPM_PER_COMPLEX
        return min(max(bpm, self.bpm_min), self.bpm_max)


class SignalProcessor:
    """
    Runs detection and estimation over a window once it is large enough.

    Parameters
    ----------
    config:
        Pipeline configuration; supplies threshold, window length, BPM range
        and the minimum sample count.
    """

    def __init__(self, config: MonitorConfig | None = None) -> None:
        self.config = config or MonitorConfig()
        self.detector = ComplexDetector(self.config.threshold)
        self.estimator = BPMEstimator(
            bpm_min=self.config.bpm_min,
            bpm_max=self.config.bpm_max,
        )
        self._last_result: Optional[BPMResult] = None

    def ready(self, sample_count: int) -> bool:
        return sample_count >= self.config.min_samples

    def compute_bpm(self, window: Sequence[float]) -> Optional[BPMResult]:
        """
        Return a :class:`BPMResult` for *window*, or *None* when the window
        holds fewer than ``min_samples`` samples.
        """
        if not self.ready(len(window)):
            return None
        count = self.detector.count_complexes(window)
        bpm = self.estimator.estimate(count)
        result = BPMResult(bpm=bpm, complex_count=count, sample_count=len(window))
        self._last_result = result
        logger.debug("BPM %d from %d complexes over %d samples", bpm, count, len(window))
        return result

    @property
    def last_result(self) -> Optional[BPMResult]:
        return self._last_result

    def reset(self) -> None:
        self._last_result = None
