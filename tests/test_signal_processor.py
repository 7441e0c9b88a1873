"""
Unit tests for ComplexDetector, BPMEstimator and SignalProcessor.
Run with:  pytest tests/
"""

from __future__ import annotations

import numpy as np
import pytest

from ecg_monitor.config import MonitorConfig
from ecg_monitor.signal_processor import (
    BPMEstimator,
    BPMResult,
    ComplexDetector,
    SignalProcessor,
)


def _window(n: int, spikes: int, low: float = 100.0, high: float = 200.0) -> list[float]:
    """*n* samples at *low* with the first *spikes* of every 10th set to *high*."""
    values = [low] * n
    for i in range(spikes):
        values[i * 10] = high
    return values


# ---------------------------------------------------------------------------
# ComplexDetector
# ---------------------------------------------------------------------------

class TestComplexDetector:

    def test_all_zero_window(self):
        det = ComplexDetector()
        assert det.count_complexes([0.0] * 100, 150.0) == 0
        assert det.count_complexes(np.zeros(50), 0.5) == 0

    def test_empty_window(self):
        assert ComplexDetector().count_complexes([]) == 0

    def test_strictly_greater_than_threshold(self):
        det = ComplexDetector()
        assert det.count_complexes([150.0, 150.0001, 149.9, 300.0], 150.0) == 2

    def test_default_threshold_is_150(self):
        det = ComplexDetector()
        assert det.threshold == 150.0
        assert det.count_complexes([151.0, 150.0]) == 1

    def test_explicit_threshold_overrides_default(self):
        det = ComplexDetector(threshold=150.0)
        assert det.count_complexes([100.0, 120.0], threshold=90.0) == 2

    def test_monotonic_in_exceeding_samples(self):
        det = ComplexDetector()
        window = [0.0] * 50
        previous = det.count_complexes(window)
        for i in range(50):
            window[i] = 200.0
            current = det.count_complexes(window)
            assert current >= previous
            previous = current
        assert previous == 50


# ---------------------------------------------------------------------------
# BPMEstimator
# ---------------------------------------------------------------------------

class TestBPMEstimator:

    @pytest.mark.parametrize(
        "count, expected",
        [(0, 40), (6, 40), (7, 42), (10, 60), (12, 72), (20, 120), (33, 198), (34, 200), (40, 200)],
    )
    def test_count_times_six_clamped(self, count, expected):
        assert BPMEstimator().estimate(count) == expected

    def test_result_always_in_range(self):
        est = BPMEstimator()
        for count in range(0, 500):
            assert 40 <= est.estimate(count) <= 200

    def test_window_length_does_not_change_result(self):
        est = BPMEstimator()
        assert est.estimate(10, 20.0) == est.estimate(10, 0.0) == 60
        assert est.estimate(10, 5.0) == est.estimate(10) == 60
        assert est.estimate(5, 5.0) == 40   # raw 30 saturates

    def test_custom_bounds(self):
        est = BPMEstimator(bpm_min=30, bpm_max=250)
        assert est.estimate(0) == 30
        assert est.estimate(40) == 240


# ---------------------------------------------------------------------------
# SignalProcessor
# ---------------------------------------------------------------------------

class TestSignalProcessor:

    def test_below_min_samples_returns_none(self):
        sp = SignalProcessor()
        assert sp.compute_bpm(_window(99, 9)) is None
        assert sp.last_result is None

    def test_at_min_samples(self):
        sp = SignalProcessor()
        result = sp.compute_bpm(_window(100, 10))
        assert result == BPMResult(bpm=60, complex_count=10, sample_count=100)
        assert sp.last_result == result

    def test_whole_window_is_counted(self):
        sp = SignalProcessor()
        result = sp.compute_bpm(_window(600, 30))
        assert result.complex_count == 30
        assert result.bpm == 180
        assert result.sample_count == 600

    def test_uses_configured_threshold(self):
        sp = SignalProcessor(MonitorConfig(threshold=50.0))
        result = sp.compute_bpm([60.0] * 100)
        assert result.complex_count == 100
        assert result.bpm == 200

    def test_custom_min_samples(self):
        sp = SignalProcessor(MonitorConfig(min_samples=10, capacity=20))
        assert sp.ready(10)
        assert not sp.ready(9)
        assert sp.compute_bpm([0.0] * 10).bpm == 40

    def test_reset_clears_last_result(self):
        sp = SignalProcessor()
        sp.compute_bpm(_window(100, 10))
        sp.reset()
        assert sp.last_result is None
