"""Unit tests for the event types and MessageHub."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from mqtt_google_home.events import CommandReceived, ConfigChanged, MessageHub, SyncRequested
from mqtt_google_home.exceptions import ConfigurationError
from mqtt_google_home.mqtt.commands import Command


class TestConfigChanged:
    """Tests for ConfigChanged"""

    def test_overlap_rejected(self):
        """Test that a topic cannot be both added and removed"""
        with pytest.raises(ConfigurationError, match="home/a"):
            _ = ConfigChanged.from_topics(added=["home/a", "home/b"], removed=["home/a"])

    def test_deduplicated(self):
        """Test that sides are sets"""
        change = ConfigChanged.from_topics(added=["home/a", "home/a"])

        assert change.added == frozenset({"home/a"})
        assert not change.is_empty
        assert ConfigChanged().is_empty


class TestMessageHub:
    """Tests for MessageHub delivery"""

    @pytest.mark.asyncio
    async def test_fan_out(self):
        """Test that every subscriber of a type receives the event"""
        hub = MessageHub()
        first = AsyncMock()
        second = AsyncMock()
        other = AsyncMock()
        _ = hub.subscribe(SyncRequested, first)
        _ = hub.subscribe(SyncRequested, second)
        _ = hub.subscribe(ConfigChanged, other)
        await hub.start()

        event = SyncRequested()
        hub.publish(event)
        await hub.join()

        first.assert_awaited_once_with(event)
        second.assert_awaited_once_with(event)
        other.assert_not_awaited()
        await hub.stop()

    @pytest.mark.asyncio
    async def test_published_before_start_delivered(self):
        """Test that events queued before start are delivered once the hub runs"""
        hub = MessageHub()
        handler = AsyncMock()
        _ = hub.subscribe(CommandReceived, handler)

        hub.publish(CommandReceived(Command()))
        handler.assert_not_awaited()
        await hub.start()
        await hub.join()

        handler.assert_awaited_once()
        await hub.stop()

    @pytest.mark.asyncio
    async def test_failing_handler_isolated(self):
        """Test that one handler raising does not affect the others or later events"""
        hub = MessageHub()
        failing = AsyncMock(side_effect=RuntimeError("boom"))
        healthy = AsyncMock()
        _ = hub.subscribe(SyncRequested, failing)
        _ = hub.subscribe(SyncRequested, healthy)
        await hub.start()

        hub.publish(SyncRequested())
        hub.publish(SyncRequested())
        await hub.join()

        assert failing.await_count == 2
        assert healthy.await_count == 2
        assert hub.running
        await hub.stop()

    @pytest.mark.asyncio
    async def test_slow_handler_does_not_block(self):
        """Test that handlers run concurrently"""
        hub = MessageHub()
        release = asyncio.Event()
        fast = AsyncMock()

        async def slow(_event):
            _ = await release.wait()

        _ = hub.subscribe(SyncRequested, slow)
        _ = hub.subscribe(SyncRequested, fast)
        await hub.start()

        hub.publish(SyncRequested())
        for _ in range(5):
            await asyncio.sleep(0)

        fast.assert_awaited_once()
        release.set()
        await hub.join()
        await hub.stop()

    @pytest.mark.asyncio
    async def test_unsubscribe_idempotent(self):
        """Test that unsubscribing stops delivery and a second call is a no-op"""
        hub = MessageHub()
        handler = AsyncMock()
        token = hub.subscribe(SyncRequested, handler)

        assert hub.unsubscribe(token) is True
        assert hub.unsubscribe(token) is False
        assert hub.unsubscribe("never-issued") is False

        await hub.start()
        hub.publish(SyncRequested())
        await hub.join()

        handler.assert_not_awaited()
        await hub.stop()

    @pytest.mark.asyncio
    async def test_stop_drops_pending(self):
        """Test that stop cancels delivery of queued events"""
        hub = MessageHub()
        handler = AsyncMock()
        _ = hub.subscribe(SyncRequested, handler)
        hub.publish(SyncRequested())

        await hub.start()
        await hub.stop()

        assert not hub.running
        await hub.join()
