"""
Tests for the event channel
"""

import pytest

from venuesync.config.settings import SyncSettings, reload_settings
from venuesync.core.events import Event, EventChannel, EventType


@pytest.mark.asyncio
class TestEventChannel:
    """Test queue and handler delivery"""

    async def test_queue_receives_events_in_order(self):
        """Test subscribers see events in publish order"""
        channel = EventChannel()
        queue = channel.subscribe()

        channel.emit(EventType.STARTED, source='s')
        channel.emit(EventType.ORDER, {'id': 'o1'}, source='s')

        first = queue.get_nowait()
        second = queue.get_nowait()
        assert (first.type, second.type) == (EventType.STARTED, EventType.ORDER)
        assert second.payload == {'id': 'o1'}

    async def test_full_queue_drops_newest(self):
        """Test overflow drops the new event without blocking"""
        channel = EventChannel(maxsize=2)
        queue = channel.subscribe()

        for n in range(4):
            channel.emit(EventType.ORDER, n)

        assert queue.qsize() == 2
        assert [queue.get_nowait().payload for _ in range(2)] == [0, 1]
        assert channel.dropped == 2

    async def test_slow_subscriber_does_not_affect_others(self):
        """Test drops are per subscriber"""
        channel = EventChannel(maxsize=1)
        small = channel.subscribe()
        large = channel.subscribe(maxsize=10)

        channel.emit(EventType.ORDER, 1)
        channel.emit(EventType.ORDER, 2)

        assert small.qsize() == 1
        assert large.qsize() == 2

    async def test_unsubscribe(self):
        """Test an unsubscribed queue stops receiving"""
        channel = EventChannel()
        queue = channel.subscribe()
        channel.unsubscribe(queue)

        channel.emit(EventType.ERROR, RuntimeError("x"))

        assert queue.empty()


class TestEventHandlers:
    """Test named synchronous handlers"""

    def test_handlers_called_in_registration_order(self):
        """Test handler order and type filtering"""
        channel = EventChannel()
        calls = []
        channel.register_handler('a', lambda e: calls.append(('a', e.type)))
        channel.register_handler('b', lambda e: calls.append(('b', e.type)), types=[EventType.ERROR])

        channel.emit(EventType.ORDER)
        channel.emit(EventType.ERROR)

        assert calls == [('a', EventType.ORDER), ('a', EventType.ERROR), ('b', EventType.ERROR)]

    def test_failing_handler_is_isolated(self):
        """Test one handler's exception does not stop delivery"""
        channel = EventChannel()
        calls = []

        def broken(event):
            raise RuntimeError("handler bug")

        channel.register_handler('broken', broken)
        channel.register_handler('ok', calls.append)

        event = channel.emit(EventType.STOPPED)

        assert calls == [event]
        assert isinstance(event, Event)

    def test_unregister_and_replace(self):
        """Test re-registering a name replaces the handler"""
        channel = EventChannel()
        calls = []
        channel.register_handler('h', lambda e: calls.append('old'))
        channel.register_handler('h', lambda e: calls.append('new'))
        channel.emit(EventType.ORDER)

        channel.unregister_handler('h')
        channel.emit(EventType.ORDER)

        assert calls == ['new']


class TestEventChannelSettings:
    """Test the queue bound comes from settings"""

    def test_from_settings(self):
        """Test an explicit settings instance sets the bound"""
        channel = EventChannel.from_settings(SyncSettings(_env_file=None, event_queue_size=7))

        assert channel.maxsize == 7

    def test_default_bound_follows_environment(self, monkeypatch):
        """Test VENUESYNC_EVENT_QUEUE_SIZE applies to channels built without a bound"""
        monkeypatch.setenv('VENUESYNC_EVENT_QUEUE_SIZE', '10')
        reload_settings()
        try:
            channel = EventChannel()
        finally:
            monkeypatch.delenv('VENUESYNC_EVENT_QUEUE_SIZE')
            reload_settings()

        assert channel.maxsize == 10
        assert EventChannel(maxsize=3).maxsize == 3
