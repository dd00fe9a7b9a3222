"""Shared fixtures: in-memory stores, a registered meter, and a wired manager."""

import pytest

from meterwatch.detection import AlertManager, DetectionEngine, NotificationDispatcher
from meterwatch.storage import InMemoryAlertStore, InMemoryMeterRegistry, InMemoryReadingStore

from tests.factories import make_meter


class RecordingObserver:
    """Observer that remembers every alert it receives."""

    def __init__(self, result: bool = True) -> None:
        self.result = result
        self.received = []

    async def on_alert_created(self, alert, meter) -> bool:
        self.received.append((alert, meter))
        return self.result


class FailingObserver:
    async def on_alert_created(self, alert, meter) -> bool:
        raise RuntimeError("channel down")


@pytest.fixture
def meter():
    return make_meter()


@pytest.fixture
def reading_store():
    return InMemoryReadingStore()


@pytest.fixture
def alert_store():
    return InMemoryAlertStore()


@pytest.fixture
def registry(meter):
    return InMemoryMeterRegistry([meter, make_meter("SM-002", owner_id="member-002")])


@pytest.fixture
def dispatcher():
    return NotificationDispatcher()


@pytest.fixture
def manager(alert_store, registry, dispatcher):
    return AlertManager(alert_store, registry, dispatcher)


@pytest.fixture
def engine(reading_store, manager):
    return DetectionEngine(reading_store, manager)
