"""
Rolling sample window.

The buffer is written by a single producer (the ingestion worker).  Readers
never iterate the live structure; they take an immutable snapshot instead.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Tuple

from .exceptions import ConfigurationError

DEFAULT_CAPACITY = 600


@dataclass(frozen=True)
class Sample:
    """A single signal value and the wall-clock time it was received."""

    value: float
    timestamp: float = field(default_factory=time.time)


class SignalBuffer:
    """
    Fixed-capacity FIFO window over incoming samples.

    Parameters
    ----------
    capacity:
        Maximum number of samples retained.  Pushing onto a full buffer
        evicts the oldest sample.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity <= 0:
            raise ConfigurationError(f"capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._samples: Deque[Sample] = deque(maxlen=capacity)
        # Guards the copy in snapshot() against a concurrent append.
        self._lock = threading.Lock()

    def push(self, sample: Sample | float) -> None:
        """Append *sample*, evicting the oldest entry when full."""
        if not isinstance(sample, Sample):
            sample = Sample(float(sample))
        with self._lock:
            self._samples.append(sample)

    def snapshot(self) -> Tuple[Sample, ...]:
        """Return the current contents, oldest first."""
        with self._lock:
            return tuple(self._samples)

    def values(self) -> Tuple[float, ...]:
        """Return the current signal values, oldest first."""
        return tuple(s.value for s in self.snapshot())

    def clear(self) -> None:
        with self._lock:
            self._samples.clear()

    @property
    def fill_ratio(self) -> float:
        """How full the window is (0 – 1)."""
        return len(self) / self.capacity

    def __len__(self) -> int:
        return len(self._samples)
