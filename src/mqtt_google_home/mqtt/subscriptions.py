"""Keeps MQTT subscriptions and the state cache in line with the device configuration."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from typing import TYPE_CHECKING

import aiomqtt

from mqtt_google_home.logging_abstraction import get_logger
from mqtt_google_home.metrics import set_subscribed_topics

if TYPE_CHECKING:
    from mqtt_google_home.events import ConfigChanged
    from mqtt_google_home.state_cache import StateCache
    from mqtt_google_home.structs import BusClientProtocol

__all__ = ["SubscriptionManager"]

logger = get_logger(__name__)


class SubscriptionManager:
    """Owner of the subscribed-topic set.

    A topic enters or leaves ``subscribed_topics`` only after the broker call for it
    succeeded. A removed topic always leaves the state cache; if its unsubscribe
    fails it is kept as pending and retried on the next config change. A reconnect
    starts a fresh session, so ``resubscribe`` drops the pending set. The control
    topic is never unsubscribed.
    """

    lp: str = "subscriptions:"

    def __init__(self, bus: BusClientProtocol, state_cache: StateCache, control_topic: str) -> None:
        self.bus: BusClientProtocol = bus
        self.state_cache: StateCache = state_cache
        self.control_topic: str = control_topic
        self._subscribed: set[str] = set()
        self._pending_unsubscribe: set[str] = set()
        self._lock = asyncio.Lock()

    @property
    def subscribed_topics(self) -> frozenset[str]:
        return frozenset(self._subscribed)

    @property
    def pending_unsubscribe(self) -> frozenset[str]:
        return frozenset(self._pending_unsubscribe)

    async def start(self, initial_topics: Iterable[str] | None = None) -> None:
        """Seed the cache with ``initial_topics`` and subscribe to every cached topic plus the control topic."""
        lp = f"{self.lp}start:"
        async with self._lock:
            for topic in initial_topics or ():
                _ = self.state_cache.try_add(topic, "")
            _ = self.state_cache.try_add(self.control_topic, "")
            for topic in self._tracked_topics():
                _ = await self._subscribe(topic)
            set_subscribed_topics(len(self._subscribed))
        logger.info("%s subscribed to %d topics", lp, len(self._subscribed))

    def _tracked_topics(self) -> list[str]:
        return [self.control_topic, *sorted(self.state_cache.keys() - {self.control_topic})]

    async def resubscribe(self) -> None:
        """Subscribe again to everything tracked, after the broker connection was re-established."""
        lp = f"{self.lp}resubscribe:"
        async with self._lock:
            self._subscribed.clear()
            self._pending_unsubscribe.clear()
            for topic in self._tracked_topics():
                _ = await self._subscribe(topic)
            set_subscribed_topics(len(self._subscribed))
        logger.info("%s re-subscribed to %d topics", lp, len(self._subscribed))

    async def handle_config_change(self, event: ConfigChanged) -> None:
        """Apply a topic diff. Removals run before additions; applying a diff twice is a no-op."""
        lp = f"{self.lp}config_change:"
        async with self._lock:
            await self._retry_pending(lp)

            for topic in sorted(event.removed):
                if topic == self.control_topic:
                    logger.warning("%s refusing to drop control topic %s", lp, topic)
                    continue
                _ = self.state_cache.try_remove(topic)
                if topic in self._pending_unsubscribe or topic not in self._subscribed:
                    continue
                if not await self._unsubscribe(topic):
                    self._pending_unsubscribe.add(topic)

            for topic in sorted(event.added):
                self._pending_unsubscribe.discard(topic)
                _ = self.state_cache.try_add(topic, "")
                if topic not in self._subscribed:
                    _ = await self._subscribe(topic)
            set_subscribed_topics(len(self._subscribed))
        logger.info(
            "%s applied +%d / -%d topics, %d subscribed, %d pending unsubscribe",
            lp,
            len(event.added),
            len(event.removed),
            len(self._subscribed),
            len(self._pending_unsubscribe),
        )

    async def _retry_pending(self, lp: str) -> None:
        for topic in sorted(self._pending_unsubscribe):
            if topic in self.state_cache or topic not in self._subscribed:
                self._pending_unsubscribe.discard(topic)
                continue
            if await self._unsubscribe(topic):
                self._pending_unsubscribe.discard(topic)
                logger.info("%s dropped stale subscription %s", lp, topic)

    async def _subscribe(self, topic: str) -> bool:
        try:
            await self.bus.subscribe(topic, qos=1)
        except aiomqtt.MqttError as e:
            logger.warning("%s subscribe to %s failed: %s", self.lp, topic, e)
            return False
        self._subscribed.add(topic)
        logger.debug("%s subscribed to %s", self.lp, topic)
        return True

    async def _unsubscribe(self, topic: str) -> bool:
        try:
            await self.bus.unsubscribe(topic)
        except aiomqtt.MqttError as e:
            logger.warning("%s unsubscribe from %s failed: %s", self.lp, topic, e)
            return False
        self._subscribed.discard(topic)
        logger.debug("%s unsubscribed from %s", self.lp, topic)
        return True
