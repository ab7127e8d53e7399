"""Routing of inbound MQTT messages.

The control topic raises a sync request; a tracked state topic updates the cache and
triggers a state report; anything else is ignored.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, cast

from mqtt_google_home.events import SyncRequested
from mqtt_google_home.logging_abstraction import get_logger

if TYPE_CHECKING:
    import aiomqtt

    from mqtt_google_home.events import MessageHub
    from mqtt_google_home.mqtt.state_updates import StateUpdateHelper
    from mqtt_google_home.state_cache import StateCache

__all__ = ["MessageRouter", "decode_payload"]

logger = get_logger(__name__)


def decode_payload(payload: Any) -> str:
    """MQTT payload as text. ``None`` is the empty string."""
    if payload is None:
        return ""
    if isinstance(payload, bytes | bytearray):
        return bytes(payload).decode("utf-8", errors="replace")
    return str(payload)


class MessageRouter:
    lp: str = "router:"

    def __init__(
        self,
        control_topic: str,
        state_cache: StateCache,
        hub: MessageHub,
        state_updates: StateUpdateHelper,
    ) -> None:
        self.control_topic: str = control_topic
        self.state_cache: StateCache = state_cache
        self.hub: MessageHub = hub
        self.state_updates: StateUpdateHelper = state_updates

    async def handle_message(self, topic: str, payload: str) -> None:
        lp = f"{self.lp}handle:"
        if topic == self.control_topic:
            logger.info("%s sync requested via %s", lp, topic)
            self.hub.publish(SyncRequested())
            return
        if topic not in self.state_cache:
            logger.debug("%s ignoring untracked topic %s", lp, topic)
            return
        self.state_cache.set(topic, payload)
        logger.debug("%s %s = %r", lp, topic, payload)
        _ = await self.state_updates.report_topic_change(topic)

    async def start_receiver_task(self, client: aiomqtt.Client) -> None:
        """Consume messages from ``client`` until the connection drops."""
        lp = f"{self.lp}rcv:"
        async for message in client.messages:
            msg: Any = cast("Any", message)
            topic: str = msg.topic.value
            await self.handle_message(topic, decode_payload(msg.payload))
        logger.debug("%s message stream ended", lp)
