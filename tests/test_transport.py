"""
Tests for the bundled sample sources and command sink.
Run with:  pytest tests/
"""

from __future__ import annotations

import pytest

from ecg_monitor.config import SourceConfig
from ecg_monitor.signal_processor import SignalProcessor
from ecg_monitor.transport import LoggingCommandSink, QueueSampleSource, SyntheticSignalSource


class TestQueueSampleSource:

    def test_not_live_until_connected(self):
        src = QueueSampleSource()
        assert not src.liveness()
        assert src.connect(SourceConfig())
        assert src.liveness()

    def test_fifo_and_empty_poll(self):
        src = QueueSampleSource()
        src.feed_many([1.0, 2.0])
        assert src.next_sample() == 1.0
        assert src.next_sample() == 2.0
        assert src.next_sample() is None

    def test_negative_values_ignored(self):
        src = QueueSampleSource()
        assert src.feed(-1.0) is False
        assert src.feed_many([-1.0, 5.0, -3.0]) == 1
        assert src.pending() == 1

    def test_full_queue_drops_oldest(self):
        src = QueueSampleSource(maxsize=2)
        src.feed_many([1.0, 2.0, 3.0])
        assert [src.next_sample(), src.next_sample()] == [2.0, 3.0]

    def test_drop_clears_liveness(self):
        src = QueueSampleSource()
        src.connect(SourceConfig())
        src.drop()
        assert not src.liveness()

    def test_context_manager_disconnects(self):
        with QueueSampleSource() as src:
            src.connect(SourceConfig())
        assert not src.liveness()


class TestSyntheticSignalSource:

    def _samples(self, src, n):
        src.connect(SourceConfig())
        return [src.next_sample() for _ in range(n)]

    @pytest.mark.parametrize("heart_rate", [48.0, 72.0, 90.0, 120.0])
    def test_reference_rate_matches_estimator(self, heart_rate):
        """At 10 Hz a 100-sample window is ten seconds of signal."""
        src = SyntheticSignalSource(heart_rate=heart_rate, paced=False, seed=1)
        result = SignalProcessor().compute_bpm(self._samples(src, 100))
        assert abs(result.bpm - heart_rate) <= 6

    def test_values_non_negative(self):
        src = SyntheticSignalSource(baseline=0.0, noise=5.0, paced=False, seed=3)
        assert min(self._samples(src, 200)) >= 0.0

    def test_sample_limit(self):
        src = SyntheticSignalSource(sample_limit=5, paced=False)
        values = self._samples(src, 5)
        assert None not in values
        assert not src.liveness()
        assert src.next_sample() is None

    def test_paced_source_waits(self):
        src = SyntheticSignalSource(sample_rate=0.5)
        src.connect(SourceConfig())
        assert src.next_sample() is not None    # sample 0 is due immediately
        assert src.next_sample() is None        # sample 1 is two seconds away

    def test_invalid_rate(self):
        with pytest.raises(ValueError):
            SyntheticSignalSource(sample_rate=0)


class TestLoggingCommandSink:

    def test_send_logs_to_command_topic(self, caplog):
        sink = LoggingCommandSink(SourceConfig(command_topic="motor/x"))
        with caplog.at_level("INFO", logger="ecg_monitor.transport"):
            assert sink.send("on")
        assert "motor/x" in caplog.text
        assert sink.sent == ["on"]

    def test_empty_command_rejected(self):
        assert LoggingCommandSink().send("") is False
