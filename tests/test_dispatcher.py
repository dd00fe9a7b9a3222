"""Tests for NotificationDispatcher and the notification channels."""

import io

import pytest

from meterwatch.detection import NotificationDispatcher, create_dispatcher
from meterwatch.detection.channels import ConsoleChannel, OutputFormat

from tests.conftest import FailingObserver, RecordingObserver
from tests.factories import make_alert, make_meter


@pytest.mark.asyncio
async def test_deliver_isolates_failures():
    ok = RecordingObserver()
    dispatcher = NotificationDispatcher({"bad": FailingObserver(), "ok": ok})

    sent = await dispatcher.deliver(make_alert(), make_meter().summary())

    assert sent == {"bad": False, "ok": True}
    assert len(ok.received) == 1


@pytest.mark.asyncio
async def test_notify_runs_in_background_and_reports():
    results = []

    async def on_complete(alert, sent):
        results.append((alert.alert_id, sent))

    alert = make_alert()
    dispatcher = NotificationDispatcher({"ok": RecordingObserver()})
    dispatcher.notify(alert, make_meter().summary(), on_complete=on_complete)

    assert dispatcher.pending_count == 1
    await dispatcher.drain()

    assert dispatcher.pending_count == 0
    assert results == [(alert.alert_id, {"ok": True})]


@pytest.mark.asyncio
async def test_failing_callback_is_contained():
    async def on_complete(alert, sent):
        raise RuntimeError("store down")

    dispatcher = NotificationDispatcher({"ok": RecordingObserver()})
    task = dispatcher.notify(make_alert(), make_meter().summary(), on_complete=on_complete)
    await dispatcher.drain()

    assert task.exception() is None


def test_observer_registry():
    dispatcher = NotificationDispatcher()
    dispatcher.add_observer("console", RecordingObserver())

    assert dispatcher.get_observer_names() == ["console"]
    assert dispatcher.remove_observer("console")
    assert not dispatcher.remove_observer("console")


def test_create_dispatcher_channels():
    assert create_dispatcher().get_observer_names() == ["console"]
    assert create_dispatcher(console_enabled=False).get_observer_names() == []
    # redis requires a client
    assert create_dispatcher(redis_enabled=True).get_observer_names() == ["console"]


@pytest.mark.asyncio
async def test_console_simple_line():
    stream = io.StringIO()
    channel = ConsoleChannel(format=OutputFormat.SIMPLE, use_colors=False, stream=stream)

    delivered = await channel.on_alert_created(make_alert(), make_meter().summary())

    assert delivered is True
    assert stream.getvalue() == (
        "[HIGH] SM-001 (Kitchen) Possible leak detected: test\n"
    )


@pytest.mark.asyncio
async def test_console_structured_logs():
    channel = ConsoleChannel()

    assert await channel.on_alert_created(make_alert(), make_meter().summary()) is True
