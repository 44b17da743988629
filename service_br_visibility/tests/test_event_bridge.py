"""
Unit tests for the host event bus and event bridge.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_br_visibility.app.context import EngineContext
from service_br_visibility.app.document import LiveDocument
from service_br_visibility.app.events import EventBridge, EventSource, HostEvent
from service_br_visibility.app.rules.models import PolicySet
from shared.config import _default_signal_delays
from shared.errors import HostUnavailableError
from shared.test_helpers import TestDataFactory


class TestEventSource:
    """Test cases for EventSource."""

    @pytest.mark.asyncio
    async def test_sync_and_async_handlers(self):
        bus = EventSource()
        received = []

        async def async_handler(payload):
            received.append(("async", payload))

        bus.on("message_sent", lambda payload: received.append(("sync", payload)))
        bus.on("message_sent", async_handler)

        await bus.emit("message_sent", 3)

        assert received == [("sync", 3), ("async", 3)]

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_others(self):
        bus = EventSource()
        called = []

        def broken(payload):
            raise RuntimeError("boom")

        bus.on("message_sent", broken)
        bus.on("message_sent", called.append)

        await bus.emit("message_sent", 1)

        assert called == [1]

    def test_off(self):
        bus = EventSource()
        handler = MagicMock()

        bus.on(HostEvent.MESSAGE_SENT, handler)
        assert bus.listener_count("message_sent") == 1

        bus.off("message_sent", handler)
        assert bus.listener_count(HostEvent.MESSAGE_SENT) == 0


class TestEventBridge:
    """Test cases for EventBridge."""

    @pytest.fixture
    def document(self):
        return LiveDocument(TestDataFactory.chat("<br>zero", "<br>one"))

    @pytest.fixture
    def context(self):
        return EngineContext()

    @pytest.fixture
    def scheduler(self):
        return MagicMock()

    @pytest.fixture
    def store(self):
        store = MagicMock()
        store.load = AsyncMock(return_value=PolicySet(hide_leading=True))
        return store

    @pytest.fixture
    def bridge(self, scheduler, document, context, store):
        return EventBridge(scheduler, document, context, store, _default_signal_delays())

    @pytest.fixture
    def bus(self, bridge):
        bus = EventSource()
        bridge.attach(bus)
        return bus

    def test_attach_subscribes_every_event(self, bridge, bus):
        assert bridge.attached
        for event in HostEvent:
            assert bus.listener_count(event.value) == 1

    @pytest.mark.parametrize("bus", [None, object()])
    def test_attach_without_bus_raises(self, scheduler, document, context, store, bus):
        bridge = EventBridge(scheduler, document, context, store, {})

        with pytest.raises(HostUnavailableError):
            bridge.attach(bus)

        assert not bridge.attached

    def test_detach(self, bridge, bus):
        bridge.detach()

        assert not bridge.attached
        assert all(bus.listener_count(event.value) == 0 for event in HostEvent)

    @pytest.mark.asyncio
    async def test_message_received_targets_scope(self, bridge, bus, scheduler, document):
        await bus.emit("message_received", 1)

        source, delay, scope = scheduler.schedule.call_args[0]
        assert source == "message_received"
        assert delay == 0.1
        assert scope is document.find_scopes()[1]

    @pytest.mark.asyncio
    async def test_payload_dict_with_string_id(self, bridge, bus, scheduler, document):
        await bus.emit("message_edited", {"mesid": "0"})

        source, delay, scope = scheduler.schedule.call_args[0]
        assert (source, delay) == ("message_edited", 0.2)
        assert scope is document.find_scopes()[0]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", ["latest", None, 42, {"other": 1}, True])
    async def test_unresolvable_payload_runs_globally(self, bridge, bus, scheduler, payload):
        await bus.emit("message_swiped", payload)

        assert scheduler.schedule.call_args[0][2] is None

    @pytest.mark.asyncio
    async def test_chat_changed_reloads_policy(self, bridge, bus, scheduler, context, store):
        await bus.emit("chat_id_changed")

        store.load.assert_awaited_once()
        assert context.policy.hide_leading is True
        scheduler.schedule.assert_called_once_with("chat_id_changed", 0.5, None)

    @pytest.mark.asyncio
    async def test_message_event_does_not_reload_policy(self, bridge, bus, store):
        await bus.emit("message_sent", 0)

        store.load.assert_not_awaited()

    def test_unknown_signal_uses_default_delay(self, bridge):
        assert bridge.delay_for("something_else") == 0.2
        assert bridge.delay_for("settings_updated") == 0.05
