"""
Abstract interfaces for the monitoring system.

This module defines the ports that storage and notification
implementations must follow, so the detection engine, alert manager and
load generator stay independent of any backend.

Example:
    >>> from meterwatch.interfaces import ReadingStore
    >>> class SqlReadingStore(ReadingStore):
    ...     # ... implement the abstract methods
    ...     pass

Modules:
    stores: ReadingStore, AlertStore, MeterRegistry ABCs and AlertObserver
"""

from meterwatch.interfaces.stores import (
    AlertObserver,
    AlertStore,
    FlowPredicate,
    MeterRegistry,
    ReadingStore,
)

__all__: list[str] = [
    "ReadingStore",
    "AlertStore",
    "MeterRegistry",
    "AlertObserver",
    "FlowPredicate",
]
