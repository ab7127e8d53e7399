"""MQTT connection lifecycle for the bridge.

``MQTTClient`` owns the ``aiomqtt`` connection: it connects with retry, restores
subscriptions after a reconnect and feeds received messages to the router.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import aiomqtt

from mqtt_google_home.logging_abstraction import get_logger
from mqtt_google_home.utils import send_sigterm

if TYPE_CHECKING:
    from mqtt_google_home.mqtt.command_routing import MessageRouter
    from mqtt_google_home.mqtt.subscriptions import SubscriptionManager
    from mqtt_google_home.structs import BridgeEnv

__all__ = ["MQTTClient"]

logger = get_logger(__name__)


class MQTTClient:
    """Bus client used by the bridge components.

    ``router`` and ``subscriptions`` are attached after construction since both
    depend on this client.
    """

    lp: str = "mqtt:"

    def __init__(self, env: BridgeEnv) -> None:
        self.env: BridgeEnv = env
        self.client: aiomqtt.Client | None = None
        self.router: MessageRouter | None = None
        self.subscriptions: SubscriptionManager | None = None
        self.start_task: asyncio.Task[None] | None = None
        self._connected: bool = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    def _get_connection_delay(self, lp: str) -> int:
        """Connection retry delay, 5 seconds if misconfigured."""
        delay = self.env.mqtt_conn_delay
        if delay <= 0:
            logger.debug(
                "%s MQTT connection delay is less than or equal to 0, which is probably a typo, setting to 5...",
                lp,
            )
            return 5
        return delay

    async def connect(self) -> bool:
        lp = f"{self.lp}connect:"
        self._connected = False
        logger.debug("%s Connecting to MQTT broker...", lp)
        self.client = aiomqtt.Client(
            hostname=self.env.mqtt_host,
            port=self.env.mqtt_port,
            username=self.env.mqtt_user,
            password=self.env.mqtt_pass,
            identifier=self.env.mqtt_client_id,
        )
        try:
            _ = await self.client.__aenter__()
        except aiomqtt.MqttError as mqtt_err_exc:
            logger.error("%s Connection failed [MqttError]: %s", lp, mqtt_err_exc)
            if "code:134" in str(mqtt_err_exc):
                logger.error(
                    "%s Bad username or password, check your MQTT credentials (username: %s)",
                    lp,
                    self.env.mqtt_user,
                )
                send_sigterm()
            return False
        self._connected = True
        logger.info("%s Connected to MQTT broker: %s port: %s", lp, self.env.mqtt_host, self.env.mqtt_port)
        return True

    async def start(self) -> None:
        """Connect, subscribe and receive until cancelled, reconnecting on broker errors."""
        itr = 0
        lp = f"{self.lp}start:"
        assert self.router is not None, "router must be attached"
        assert self.subscriptions is not None, "subscriptions must be attached"
        while True:
            if await self.connect():
                itr += 1
                assert self.client is not None
                try:
                    if itr == 1:
                        await self.subscriptions.start()
                    else:
                        await self.subscriptions.resubscribe()
                    logger.info("%s Starting MQTT receiver...", lp)
                    await self.router.start_receiver_task(self.client)
                except aiomqtt.MqttError as msg_err:
                    logger.warning("%s MQTT error: %s", lp, msg_err)
                    self._connected = False
                    continue
            delay = self._get_connection_delay(lp)
            logger.info(
                "%s connecting to MQTT broker failed, sleeping for %s seconds before re-trying...",
                lp,
                delay,
            )
            await asyncio.sleep(delay)

    async def stop(self) -> None:
        lp = f"{self.lp}stop:"
        try:
            if self.client is not None and self._connected:
                logger.debug("%s Disconnecting from broker...", lp)
                await self.client.__aexit__(None, None, None)
        except aiomqtt.MqttError as ce:
            logger.warning("%s MQTT disconnect failed: %s", lp, ce)
        else:
            logger.info("%s Disconnected from MQTT broker", lp)
        finally:
            self._connected = False
            if self.start_task and not self.start_task.done():
                logger.debug("%s FINISHING: Cancelling start task", lp)
                _ = self.start_task.cancel()

    def _require_client(self) -> aiomqtt.Client:
        if not self._connected or self.client is None:
            msg = "not connected to the MQTT broker"
            raise aiomqtt.MqttError(msg)
        return self.client

    async def publish(self, topic: str, payload: str, qos: int = 1) -> None:
        """Publish ``payload``. Raises aiomqtt.MqttError when not connected or the publish fails."""
        client = self._require_client()
        await client.publish(topic, payload.encode(), qos=qos, retain=False)

    async def subscribe(self, topic: str, qos: int = 1) -> None:
        client = self._require_client()
        _ = await client.subscribe(topic, qos=qos)

    async def unsubscribe(self, topic: str) -> None:
        client = self._require_client()
        await client.unsubscribe(topic)
