"""
Pipeline configuration.

All tunables of the pipeline live in :class:`MonitorConfig`.  The defaults
reproduce the reference behaviour: a 600-sample window, a 150.0 amplitude
threshold, and a BPM estimate once 100 samples (taken to be 10 seconds of
signal) are available.
"""

from __future__ import annotations

from dataclasses import dataclass

from .exceptions import ConfigurationError


@dataclass(frozen=True)
class MonitorConfig:
    """
    Parameters
    ----------
    capacity:
        Maximum number of samples kept in the rolling window.
    threshold:
        Samples strictly above this amplitude count as a complex.
    min_samples:
        Number of buffered samples required before BPM is computed.
    bpm_min, bpm_max:
        Saturation range of the BPM estimate.
    tachycardia_above, bradycardia_below:
        Event classification boundaries (exclusive).
    poll_interval:
        Seconds the ingestion worker sleeps when the source has no sample.
    join_timeout:
        Seconds to wait for the worker when stopping.
    """

    capacity: int = 600
    threshold: float = 150.0
    min_samples: int = 100
    bpm_min: int = 40
    bpm_max: int = 200
    tachycardia_above: int = 100
    bradycardia_below: int = 60
    poll_interval: float = 0.01
    join_timeout: float = 1.0

    def __post_init__(self) -> None:
        if self.capacity <= 0:
            raise ConfigurationError(f"capacity must be positive, got {self.capacity}")
        if self.min_samples <= 0:
            raise ConfigurationError(f"min_samples must be positive, got {self.min_samples}")
        if self.min_samples > self.capacity:
            raise ConfigurationError(
                f"min_samples ({self.min_samples}) cannot exceed capacity ({self.capacity})"
            )
        if self.bpm_min > self.bpm_max:
            raise ConfigurationError(
                f"invalid BPM range [{self.bpm_min}, {self.bpm_max}]"
            )
        if self.bradycardia_below > self.tachycardia_above:
            raise ConfigurationError("bradycardia boundary is above the tachycardia boundary")
        if self.poll_interval <= 0 or self.join_timeout <= 0:
            raise ConfigurationError("poll_interval and join_timeout must be positive")


@dataclass(frozen=True)
class SourceConfig:
    """Where samples come from and where actuator commands go."""

    url: str = "localhost:1883"
    data_topic: str = "ecg/data"
    command_topic: str = "motor/command"

    @property
    def broker_url(self) -> str:
        """``url`` with a ``tcp://`` scheme added when none is given."""
        if self.url.startswith(("tcp://", "mqtt://")):
            return self.url
        return "tcp://" + self.url
