"""Exception hierarchy for the monitoring pipeline."""

from __future__ import annotations


class MonitorError(Exception):
    """Base class for all errors raised by :mod:`ecg_monitor`."""


class ConfigurationError(MonitorError, ValueError):
    """A component was constructed with invalid parameters."""


class SourceError(MonitorError):
    """The sample source is unreachable or dropped mid-stream."""


class PersistenceError(MonitorError):
    """A store operation failed."""
