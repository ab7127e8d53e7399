from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

import dotenv
import uvloop

from mqtt_google_home.cloud_api import FileTokenProvider, HomeGraphClient, StaticTokenProvider
from mqtt_google_home.const import (
    FULFILLMENT_SRV_START_TASK_NAME,
    GH_DEBUG,
    GH_VERSION,
    MQTT_CLIENT_START_TASK_NAME,
    WATCHER_START_TASK_NAME,
)
from mqtt_google_home.correlation import correlation_context, ensure_correlation_id
from mqtt_google_home.devices.repository import ConfigWatcher, DeviceRepository
from mqtt_google_home.events import CommandReceived, ConfigChanged, MessageHub, SyncRequested
from mqtt_google_home.exceptions import ConfigurationError
from mqtt_google_home.fulfillment import FulfillmentServer, create_app
from mqtt_google_home.logging_abstraction import get_logger
from mqtt_google_home.metrics import start_metrics_server
from mqtt_google_home.mqtt.client import MQTTClient
from mqtt_google_home.mqtt.command_routing import MessageRouter
from mqtt_google_home.mqtt.commands import CommandHandler
from mqtt_google_home.mqtt.state_updates import StateUpdateHelper, SyncRequestHandler
from mqtt_google_home.mqtt.subscriptions import SubscriptionManager
from mqtt_google_home.retry_policy import RetryPolicy
from mqtt_google_home.state_cache import StateCache
from mqtt_google_home.structs import AccessTokenProvider, BridgeEnv

logger = get_logger(__name__)

# Configure third-party loggers (uvicorn, mqtt) to reduce noise
uv_handler = logging.StreamHandler(sys.stdout)
uv_handler.setLevel(logging.INFO)
uv_handler.setFormatter(
    logging.Formatter(
        "%(asctime)s.%(msecs)d %(levelname)s (%(name)s) > %(message)s",
        "%m/%d/%y %H:%M:%S",
    ),
)
uvi_logger = logging.getLogger("uvicorn")
uvi_error_logger = logging.getLogger("uvicorn.error")
uvi_access_logger = logging.getLogger("uvicorn.access")
for _ul in (uvi_logger, uvi_error_logger, uvi_access_logger):
    _ul.setLevel(logging.INFO)
    _ul.propagate = False
    _ul.addHandler(uv_handler)

mqtt_logger = logging.getLogger("mqtt")
mqtt_logger.setLevel(logging.ERROR)
mqtt_logger.propagate = False


def build_token_provider(env: BridgeEnv) -> AccessTokenProvider:
    if env.homegraph_token_file:
        return FileTokenProvider(env.homegraph_token_file)
    if not env.homegraph_token:
        logger.warning("No Home Graph token configured, state reports and sync requests will fail")
    return StaticTokenProvider(env.homegraph_token)


class Bridge:
    """Owns every bridge component and their tasks."""

    lp: str = "Bridge:"

    def __init__(self, env: BridgeEnv, config_file: Path) -> None:
        self.env: BridgeEnv = env
        self.config_file: Path = config_file
        self.state_cache = StateCache()
        self.repository = DeviceRepository()
        self.hub = MessageHub()
        self.cloud = HomeGraphClient(
            env.agent_user_id,
            build_token_provider(env),
            api_base=env.homegraph_api_base,
            api_timeout=env.cloud_timeout,
            retry_policy=RetryPolicy(max_attempts=env.cloud_max_retries),
        )
        self.mqtt_client = MQTTClient(env)
        self.subscriptions = SubscriptionManager(self.mqtt_client, self.state_cache, env.control_topic)
        self.state_updates = StateUpdateHelper(self.repository, self.state_cache, self.cloud)
        self.mqtt_client.subscriptions = self.subscriptions
        self.mqtt_client.router = MessageRouter(env.control_topic, self.state_cache, self.hub, self.state_updates)
        self.command_handler = CommandHandler(self.repository, self.mqtt_client)
        self.sync_handler = SyncRequestHandler(self.cloud)
        self.watcher = ConfigWatcher(config_file, self.repository, self.hub, env.config_poll_interval)
        self.server = FulfillmentServer(
            create_app(self.repository, self.state_cache, self.hub, env.agent_user_id, env.fulfillment_token),
            env.srv_host,
            env.srv_port,
        )
        self.tasks: list[asyncio.Task[None]] = []

        _ = self.hub.subscribe(SyncRequested, self.sync_handler.handle_sync_requested)
        _ = self.hub.subscribe(CommandReceived, self.command_handler.handle_command)
        _ = self.hub.subscribe(ConfigChanged, self.subscriptions.handle_config_change)

    async def start(self) -> None:
        """Load the device config, then run the MQTT client, watcher and fulfillment server."""
        lp = f"{self.lp}start:"
        _ = ensure_correlation_id()
        if self.config_file.exists():
            try:
                _ = await self.repository.reload_from_file(self.config_file)
            except ConfigurationError:
                logger.exception("%s Invalid device configuration, starting with no devices", lp)
        else:
            logger.error("%s Configuration file not found", lp, extra={"config_path": str(self.config_file)})

        for topic in self.repository.state_topics():
            _ = self.state_cache.try_add(topic, "")
        logger.info(
            "%s Configuration loaded",
            lp,
            extra={"device_count": len(self.repository), "topic_count": len(self.state_cache)},
        )

        if self.env.enable_metrics:
            start_metrics_server(self.env.metrics_port)
            logger.info("%s Prometheus metrics on port %s", lp, self.env.metrics_port)

        await self.hub.start()
        self.mqtt_client.start_task = m_start = asyncio.Task(self.mqtt_client.start(), name=MQTT_CLIENT_START_TASK_NAME)
        self.watcher.start_task = w_start = asyncio.Task(self.watcher.start(), name=WATCHER_START_TASK_NAME)
        self.server.start_task = s_start = asyncio.Task(self.server.start(), name=FULFILLMENT_SRV_START_TASK_NAME)
        self.tasks.extend([m_start, w_start, s_start])

        results = await asyncio.gather(*self.tasks, return_exceptions=True)
        for task, result in zip(self.tasks, results, strict=True):
            if isinstance(result, BaseException) and not isinstance(result, asyncio.CancelledError):
                logger.error("%s task %s ended with %r", lp, task.get_name(), result)

    async def stop(self) -> None:
        lp = f"{self.lp}stop:"
        logger.info("%s Shutting down...", lp)
        await self.watcher.stop()
        await self.server.stop()
        await self.mqtt_client.stop()
        await self.hub.stop()
        await self.cloud.close()
        for task in self.tasks:
            if not task.done():
                logger.debug("%s Cancelling task: %s", lp, task.get_name())
                _ = task.cancel()
        logger.info("%s shutdown complete", lp)


def parse_cli(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="MQTT to Google Home bridge")
    _ = parser.add_argument("-D", "--debug", action="store_true", help="Enable debug mode")
    _ = parser.add_argument("--env", help="Path to the environment file", default=None, type=Path)
    _ = parser.add_argument("--config", help="Path to the device configuration file", default=None, type=Path)
    args = parser.parse_args(argv)

    if args.debug:
        logger.set_level(logging.DEBUG)
        logger.info("Debug mode enabled via CLI argument")

    if args.env:
        env_path = args.env.expanduser().resolve()
        if not env_path.exists():
            logger.error("Environment file not found", extra={"path": str(env_path)})
        elif dotenv.load_dotenv(env_path, override=True):
            logger.info("Environment variables loaded", extra={"source": str(env_path)})
        else:
            logger.warning("No environment variables loaded from file", extra={"path": str(env_path)})
    return args


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the bridge."""
    with correlation_context():
        logger.info("Starting MQTT Google Home bridge", extra={"version": GH_VERSION})
        args = parse_cli(argv)
        if GH_DEBUG:
            logger.info("Debug logging enabled via configuration")
            logger.set_level(logging.DEBUG)

        env = BridgeEnv.from_env()
        config_file = (args.config or Path(env.config_file)).expanduser().resolve()

        asyncio.set_event_loop_policy(uvloop.EventLoopPolicy())
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        bridge = Bridge(env, config_file)

        def _signal_handler(signum: int) -> None:
            logger.info("Intercepted signal: %s (%s)", signal.Signals(signum).name, signum)
            _ = loop.create_task(bridge.stop())

        loop.add_signal_handler(signal.SIGINT, _signal_handler, signal.SIGINT)
        loop.add_signal_handler(signal.SIGTERM, _signal_handler, signal.SIGTERM)

        try:
            loop.run_until_complete(bridge.start())
        except asyncio.CancelledError:
            logger.info("Bridge cancelled, shutting down...")
        except KeyboardInterrupt:
            logger.info("Keyboard interrupt received, shutting down...")
        else:
            logger.info("Bridge stopped gracefully")
        finally:
            if not loop.is_closed():
                loop.close()
            logger.info("Bridge shutdown complete")


if __name__ == "__main__":
    main()
