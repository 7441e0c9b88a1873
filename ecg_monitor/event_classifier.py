"""
Clinical event catalog and the BPM threshold classifier.

Only Tachycardia, Bradycardia and Normal are derived automatically.
Arrhythmia and Fibrillation exist in the catalog for events raised by other
means (e.g. recorded manually) and are never produced by :func:`classify`.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple


class Severity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


@dataclass(frozen=True)
class EventType:
    """
    A catalog entry.  ``type_id`` is the store's identifier and is only set
    on entries read back from a store.
    """

    name: str
    description: str
    severity: Severity
    type_id: Optional[int] = field(default=None, compare=False)


TACHYCARDIA = EventType("Tachycardia", "Heart rate above 100 BPM", Severity.MEDIUM)
BRADYCARDIA = EventType("Bradycardia", "Heart rate below 60 BPM", Severity.MEDIUM)
ARRHYTHMIA = EventType("Arrhythmia", "Irregular heart rhythm", Severity.HIGH)
FIBRILLATION = EventType("Fibrillation", "Atrial or ventricular fibrillation", Severity.CRITICAL)
NORMAL = EventType("Normal", "Reading within normal parameters", Severity.LOW)

EVENT_CATALOG: Tuple[EventType, ...] = (
    TACHYCARDIA,
    BRADYCARDIA,
    ARRHYTHMIA,
    FIBRILLATION,
    NORMAL,
)

_BY_NAME: Dict[str, EventType] = {et.name: et for et in EVENT_CATALOG}


def event_type(name: str) -> EventType:
    """Look up a catalog entry by name; raises ``KeyError`` if unknown."""
    return _BY_NAME[name]


@dataclass(frozen=True)
class EventRecord:
    """A non-normal classification attached to the reading that triggered it."""

    reading_id: Optional[int]
    event_type: EventType
    description: str
    bpm: int
    timestamp: float = field(default_factory=time.time)


class EventClassifier:
    """
    Threshold classifier.  First match wins:

    1. ``bpm > tachycardia_above``  → Tachycardia
    2. ``bpm < bradycardia_below``  → Bradycardia
    3. otherwise                    → Normal
    """

    def __init__(self, tachycardia_above: int = 100, bradycardia_below: int = 60) -> None:
        self.tachycardia_above = tachycardia_above
        self.bradycardia_below = bradycardia_below

    def classify(self, bpm: int) -> EventType:
        if bpm > self.tachycardia_above:
            return TACHYCARDIA
        if bpm < self.bradycardia_below:
            return BRADYCARDIA
        return NORMAL

    def evaluate(self, bpm: int, reading_id: Optional[int] = None) -> Optional[EventRecord]:
        """Return an :class:`EventRecord` for a non-normal *bpm*, else *None*."""
        kind = self.classify(bpm)
        if kind is NORMAL:
            return None
        return EventRecord(
            reading_id=reading_id,
            event_type=kind,
            description=f"{kind.name}: {bpm} BPM",
            bpm=bpm,
        )


_default = EventClassifier()


def classify(bpm: int) -> EventType:
    """Classify *bpm* with the default boundaries (60 / 100)."""
    return _default.classify(bpm)
