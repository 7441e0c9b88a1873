"""
Sample sources and command sinks.

The pipeline only sees the :class:`SampleSource` and :class:`CommandSink`
interfaces.  How samples actually reach a source (a message broker, a
serial link, a file) is the source's own business.

Two sources are provided:

* :class:`QueueSampleSource`: samples are pushed in by another thread
  (a transport callback, or a test).
* :class:`SyntheticSignalSource`: an ECG-like waveform generated on the
  fly, paced to a fixed sample rate.  Handy for development without
  hardware.
"""

from __future__ import annotations

import abc
import logging
import math
import queue
import threading
import time
from typing import Iterable, Optional

import numpy as np

from .config import SourceConfig

logger = logging.getLogger(__name__)


class SampleSource(abc.ABC):
    """A non-blocking supplier of signal samples."""

    @abc.abstractmethod
    def connect(self, config: SourceConfig) -> bool:
        """Open the source.  Returns *False* if it could not be reached."""

    @abc.abstractmethod
    def liveness(self) -> bool:
        """*True* while the source is connected."""

    @abc.abstractmethod
    def next_sample(self) -> Optional[float]:
        """Return the next sample, or *None* when none is pending."""

    @abc.abstractmethod
    def disconnect(self) -> None:
        ...

    # Context-manager support
    def __enter__(self) -> "SampleSource":
        return self

    def __exit__(self, *_) -> None:
        self.disconnect()


class CommandSink(abc.ABC):
    """Destination for actuator commands."""

    @abc.abstractmethod
    def send(self, command: str) -> bool:
        """Deliver *command*.  Returns *False* on failure."""


# ---------------------------------------------------------------------------
# Push-fed source
# ---------------------------------------------------------------------------

class QueueSampleSource(SampleSource):
    """
    Thread-safe source fed through :meth:`feed`.

    Parameters
    ----------
    maxsize:
        Bound on pending samples; 0 means unbounded.  When full, the oldest
        pending sample is dropped.
    """

    def __init__(self, maxsize: int = 0) -> None:
        self._queue: "queue.Queue[float]" = queue.Queue(maxsize=maxsize)
        self._live = threading.Event()
        self.config: Optional[SourceConfig] = None

    def connect(self, config: SourceConfig) -> bool:
        self.config = config
        self._live.set()
        logger.info("Connected – broker=%s topic=%s", config.broker_url, config.data_topic)
        return True

    def liveness(self) -> bool:
        return self._live.is_set()

    def feed(self, value: float) -> bool:
        """
        Deliver one sample.  Negative values are ignored (-1 is the
        transport's "no data" marker).
        """
        if value < 0:
            return False
        try:
            self._queue.put_nowait(float(value))
        except queue.Full:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                pass
            self._queue.put_nowait(float(value))
        return True

    def feed_many(self, values: Iterable[float]) -> int:
        return sum(1 for v in values if self.feed(v))

    def next_sample(self) -> Optional[float]:
        try:
            return self._queue.get_nowait()
        except queue.Empty:
            return None

    def pending(self) -> int:
        return self._queue.qsize()

    def drop(self) -> None:
        """Simulate the transport going away."""
        if self._live.is_set():
            logger.warning("Source dropped.")
        self._live.clear()

    def disconnect(self) -> None:
        if self._live.is_set():
            logger.info("Source disconnected.")
        self._live.clear()


# ---------------------------------------------------------------------------
# Synthetic ECG-like source
# ---------------------------------------------------------------------------

class SyntheticSignalSource(SampleSource):
    """
    Generates a baseline wave with one sharp spike per heartbeat.

    Parameters
    ----------
    heart_rate:
        Simulated heart rate in BPM.
    sample_rate:
        Samples per second.  At the default 10 Hz a 100-sample window spans
        exactly 10 seconds.
    baseline:
        Mean signal level between beats.
    spike_height:
        Height of the beat spike above the baseline.
    noise:
        Standard deviation of additive Gaussian noise.
    sample_limit:
        Stop (report not live) after this many samples.  *None* = endless.
    paced:
        When *False*, samples are produced as fast as they are requested.
    seed:
        Seed for the noise generator.
    """

    def __init__(
        self,
        heart_rate: float = 72.0,
        sample_rate: float = 10.0,
        baseline: float = 100.0,
        spike_height: float = 100.0,
        noise: float = 2.0,
        sample_limit: Optional[int] = None,
        paced: bool = True,
        seed: Optional[int] = None,
    ) -> None:
        if sample_rate <= 0:
            raise ValueError("sample_rate must be positive")
        self.heart_rate = heart_rate
        self.sample_rate = sample_rate
        self.baseline = baseline
        self.spike_height = spike_height
        self.noise = noise
        self.sample_limit = sample_limit
        self.paced = paced

        self._rng = np.random.default_rng(seed)
        self._live = False
        self._index = 0
        self._t0 = 0.0

    def connect(self, config: SourceConfig) -> bool:
        self._live = True
        self._index = 0
        self._t0 = time.monotonic()
        logger.info(
            "Synthetic source started – %.0f BPM at %.1f Hz (broker=%s)",
            self.heart_rate, self.sample_rate, config.broker_url,
        )
        return True

    def liveness(self) -> bool:
        if self.sample_limit is not None and self._index >= self.sample_limit:
            return False
        return self._live

    def next_sample(self) -> Optional[float]:
        if not self.liveness():
            return None
        if self.paced and time.monotonic() - self._t0 < self._index / self.sample_rate:
            return None
        value = self.sample_at(self._index)
        self._index += 1
        return value

    def sample_at(self, n: int) -> float:
        """Signal value of sample *n*."""
        beats_per_sample = self.heart_rate / 60.0 / self.sample_rate
        phase = (n * beats_per_sample) % 1.0
        value = self.baseline + 0.1 * self.spike_height * math.sin(2.0 * math.pi * phase)
        # A beat starts inside this sample period.
        if math.floor(n * beats_per_sample) != math.floor((n - 1) * beats_per_sample):
            value += self.spike_height
        if self.noise > 0:
            value += float(self._rng.normal(0.0, self.noise))
        return max(0.0, value)

    def disconnect(self) -> None:
        if self._live:
            logger.info("Synthetic source stopped after %d samples.", self._index)
        self._live = False


# ---------------------------------------------------------------------------
# Command sink
# ---------------------------------------------------------------------------

class LoggingCommandSink(CommandSink):
    """Publishes commands by logging them to the command topic."""

    def __init__(self, config: SourceConfig | None = None) -> None:
        self.config = config or SourceConfig()
        self.sent: list[str] = []

    def send(self, command: str) -> bool:
        if not command:
            return False
        logger.info("[publish] topic=%s payload=%s", self.config.command_topic, command)
        self.sent.append(command)
        return True
