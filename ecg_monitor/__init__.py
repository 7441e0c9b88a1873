"""
ECG Monitor: streaming heart-rate monitoring pipeline.

Samples arrive from a sample source, are kept in a bounded rolling window,
and are turned into a BPM estimate and clinical event classifications that
are persisted against a per-patient monitoring session.
"""

__version__ = "0.1.0"
__author__ = "ecg_monitor"
