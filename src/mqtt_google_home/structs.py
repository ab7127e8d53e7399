"""Environment settings model and the typing protocols between bridge components."""

from __future__ import annotations

import os
from collections.abc import Iterable
from typing import TYPE_CHECKING, Protocol

from pydantic import BaseModel

from mqtt_google_home import const
from mqtt_google_home.const import YES_ANSWER

if TYPE_CHECKING:
    from mqtt_google_home.devices.models import Device
    from mqtt_google_home.state_cache import StateCache


class BusClientProtocol(Protocol):
    """Publish/subscribe transport the bridge talks to."""

    async def subscribe(self, topic: str, qos: int = 1) -> None:
        """Subscribe to ``topic``. Raises on transport failure."""
        ...

    async def unsubscribe(self, topic: str) -> None:
        """Unsubscribe from ``topic``. Raises on transport failure."""
        ...

    async def publish(self, topic: str, payload: str, qos: int = 1) -> None:
        """Publish ``payload`` to ``topic``. Raises on transport failure."""
        ...


class CloudClientProtocol(Protocol):
    """Assistant cloud API used for sync requests and state reports."""

    async def request_sync(self) -> None:
        """Ask the assistant to re-run SYNC for this agent user."""
        ...

    async def send_state_updates(self, devices: Iterable[Device], state_cache: StateCache) -> None:
        """Report the current state of ``devices``."""
        ...


class AccessTokenProvider(Protocol):
    """Source of OAuth access tokens for the Home Graph API."""

    async def get_token(self) -> str | None:
        """Current bearer token, or None if none is available."""
        ...


def _bool_env(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    return default if raw is None else raw.casefold() in YES_ANSWER


class BridgeEnv(BaseModel):
    """Environment variables used to build the bridge components.

    Defaults are the values ``const`` read at import time; ``BridgeEnv.from_env()``
    re-evaluates the environment after ``--env`` loads a dotenv file.
    """

    mqtt_host: str = const.GH_MQTT_HOST
    mqtt_port: int = const.GH_MQTT_PORT
    mqtt_user: str | None = const.GH_MQTT_USER
    mqtt_pass: str | None = const.GH_MQTT_PASS
    mqtt_client_id: str = const.GH_MQTT_CLIENT_ID
    mqtt_conn_delay: int = const.GH_MQTT_CONN_DELAY
    topic_root: str = const.GH_TOPIC_ROOT
    config_file: str = const.GH_CONFIG_FILE_PATH
    config_poll_interval: float = const.GH_CONFIG_POLL_INTERVAL
    agent_user_id: str = const.GH_AGENT_USER_ID
    homegraph_api_base: str = const.GH_HOMEGRAPH_API_BASE
    homegraph_token: str | None = const.GH_HOMEGRAPH_TOKEN
    homegraph_token_file: str | None = const.GH_HOMEGRAPH_TOKEN_FILE
    cloud_timeout: int = const.GH_CLOUD_TIMEOUT
    cloud_max_retries: int = const.GH_CLOUD_MAX_RETRIES
    srv_host: str = const.GH_SRV_HOST
    srv_port: int = const.GH_SRV_PORT
    fulfillment_token: str | None = const.GH_FULFILLMENT_TOKEN
    enable_metrics: bool = const.GH_ENABLE_METRICS
    metrics_port: int = const.GH_METRICS_PORT

    @property
    def control_topic(self) -> str:
        return f"{self.topic_root.rstrip('/')}/{const.REQUEST_SYNC_SUFFIX}"

    @classmethod
    def from_env(cls) -> BridgeEnv:
        """Re-evaluate environment variables, keeping import-time values for unset ones."""
        env = os.environ
        defaults = cls()
        return cls(
            mqtt_host=env.get("GH_MQTT_HOST", defaults.mqtt_host),
            mqtt_port=int(env.get("GH_MQTT_PORT") or defaults.mqtt_port),
            mqtt_user=env.get("GH_MQTT_USER") or defaults.mqtt_user,
            mqtt_pass=env.get("GH_MQTT_PASS") or defaults.mqtt_pass,
            mqtt_client_id=env.get("GH_MQTT_CLIENT_ID", defaults.mqtt_client_id),
            mqtt_conn_delay=int(env.get("GH_MQTT_CONN_DELAY") or defaults.mqtt_conn_delay),
            topic_root=env.get("GH_TOPIC_ROOT", defaults.topic_root).rstrip("/"),
            config_file=env.get("GH_CONFIG_FILE_PATH", defaults.config_file),
            config_poll_interval=float(env.get("GH_CONFIG_POLL_INTERVAL") or defaults.config_poll_interval),
            agent_user_id=env.get("GH_AGENT_USER_ID", defaults.agent_user_id),
            homegraph_api_base=env.get("GH_HOMEGRAPH_API_BASE", defaults.homegraph_api_base),
            homegraph_token=env.get("GH_HOMEGRAPH_TOKEN") or defaults.homegraph_token,
            homegraph_token_file=env.get("GH_HOMEGRAPH_TOKEN_FILE") or defaults.homegraph_token_file,
            cloud_timeout=int(env.get("GH_CLOUD_TIMEOUT") or defaults.cloud_timeout),
            cloud_max_retries=int(env.get("GH_CLOUD_MAX_RETRIES") or defaults.cloud_max_retries),
            srv_host=env.get("GH_SRV_HOST", defaults.srv_host),
            srv_port=int(env.get("GH_SRV_PORT") or defaults.srv_port),
            fulfillment_token=env.get("GH_FULFILLMENT_TOKEN") or defaults.fulfillment_token,
            enable_metrics=_bool_env("GH_ENABLE_METRICS", defaults.enable_metrics),
            metrics_port=int(env.get("GH_METRICS_PORT") or defaults.metrics_port),
        )
