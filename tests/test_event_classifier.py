"""
Unit tests for the event catalog and classifier.
Run with:  pytest tests/
"""

from __future__ import annotations

import pytest

from ecg_monitor.event_classifier import (
    ARRHYTHMIA,
    BRADYCARDIA,
    EVENT_CATALOG,
    FIBRILLATION,
    NORMAL,
    TACHYCARDIA,
    EventClassifier,
    Severity,
    classify,
    event_type,
)


class TestClassify:

    @pytest.mark.parametrize(
        "bpm, expected",
        [(40, BRADYCARDIA), (59, BRADYCARDIA), (60, NORMAL), (80, NORMAL),
         (100, NORMAL), (101, TACHYCARDIA), (200, TACHYCARDIA)],
    )
    def test_boundaries(self, bpm, expected):
        assert classify(bpm) is expected

    def test_rhythm_events_never_derived(self):
        produced = {classify(bpm) for bpm in range(0, 300)}
        assert produced == {BRADYCARDIA, NORMAL, TACHYCARDIA}
        assert ARRHYTHMIA not in produced
        assert FIBRILLATION not in produced

    def test_custom_boundaries(self):
        clf = EventClassifier(tachycardia_above=120, bradycardia_below=50)
        assert clf.classify(110) is NORMAL
        assert clf.classify(121) is TACHYCARDIA
        assert clf.classify(49) is BRADYCARDIA


class TestEvaluate:

    def test_normal_produces_no_record(self):
        assert EventClassifier().evaluate(72, reading_id=5) is None

    def test_tachycardia_record_references_reading(self):
        record = EventClassifier().evaluate(120, reading_id=7)
        assert record.event_type is TACHYCARDIA
        assert record.reading_id == 7
        assert record.bpm == 120
        assert "120" in record.description

    def test_bradycardia_without_reading(self):
        record = EventClassifier().evaluate(40)
        assert record.event_type is BRADYCARDIA
        assert record.reading_id is None


class TestCatalog:

    def test_catalog_contents(self):
        names = [et.name for et in EVENT_CATALOG]
        assert names == ["Tachycardia", "Bradycardia", "Arrhythmia", "Fibrillation", "Normal"]

    def test_severities(self):
        assert TACHYCARDIA.severity is Severity.MEDIUM
        assert BRADYCARDIA.severity is Severity.MEDIUM
        assert ARRHYTHMIA.severity is Severity.HIGH
        assert FIBRILLATION.severity is Severity.CRITICAL
        assert NORMAL.severity is Severity.LOW

    def test_lookup_by_name(self):
        assert event_type("Fibrillation") is FIBRILLATION
        with pytest.raises(KeyError):
            event_type("Asystole")
