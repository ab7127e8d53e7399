"""Device configuration loading, the live device snapshot and the file watcher that reloads it."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml
from pydantic import ValidationError

from mqtt_google_home.devices.models import Device
from mqtt_google_home.events import ConfigChanged
from mqtt_google_home.exceptions import ConfigurationError, DeviceNotFoundError
from mqtt_google_home.logging_abstraction import get_logger
from mqtt_google_home.metrics import record_config_reload

if TYPE_CHECKING:
    from mqtt_google_home.events import MessageHub

__all__ = [
    "ConfigWatcher",
    "DeviceRepository",
    "diff_topics",
    "load_devices",
    "parse_devices",
    "topics_of",
]

logger = get_logger(__name__)


def parse_devices(config_data: Any) -> dict[str, Device]:
    """Validate a decoded configuration document.

    The document maps device id to device definition; the id is taken from the key.

    Raises:
        ConfigurationError: The document is not a mapping or a device fails validation

    """
    if config_data is None:
        return {}
    if not isinstance(config_data, Mapping):
        msg = f"device configuration must be a mapping of device id to device, got {type(config_data).__name__}"
        raise ConfigurationError(msg)

    devices: dict[str, Device] = {}
    for device_id, device_data in config_data.items():
        if not isinstance(device_data, Mapping):
            msg = f"device '{device_id}' must be a mapping"
            raise ConfigurationError(msg)
        try:
            devices[str(device_id)] = Device.model_validate({**device_data, "id": str(device_id)})
        except ValidationError as e:
            msg = f"device '{device_id}' is invalid: {e}"
            raise ConfigurationError(msg) from e
    return devices


def load_devices(config_file: Path | str) -> dict[str, Device]:
    """Load devices from a YAML (or JSON, which YAML accepts) file.

    Raises:
        ConfigurationError: The file cannot be read, parsed or validated

    """
    path = Path(config_file).expanduser()
    logger.debug("Parsing device config file: %s", path)
    try:
        with path.open() as f:
            config_data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        msg = f"failed to read device config {path}: {e}"
        raise ConfigurationError(msg) from e
    devices = parse_devices(config_data)
    logger.info("Parsed device config: %d devices", len(devices), extra={"config_path": str(path)})
    return devices


def topics_of(devices: Iterable[Device]) -> set[str]:
    """Union of the state topics of ``devices``, enabled or not."""
    topics: set[str] = set()
    for device in devices:
        topics |= device.state_topics()
    return topics


def diff_topics(old: Mapping[str, Device], new: Mapping[str, Device]) -> ConfigChanged:
    """Topics to start and stop tracking when ``old`` is replaced by ``new``.

    A topic moving between devices, or shared by several devices, stays tracked as
    long as anything in ``new`` still reads it.
    """
    old_topics = topics_of(old.values())
    new_topics = topics_of(new.values())
    return ConfigChanged(added=frozenset(new_topics - old_topics), removed=frozenset(old_topics - new_topics))


class DeviceRepository:
    """Holds the current device snapshot.

    The snapshot is a plain dict replaced by a single assignment on reload, so readers
    always see either the old or the new generation.
    """

    lp: str = "devices:"

    def __init__(self, devices: Mapping[str, Device] | None = None) -> None:
        self._devices: dict[str, Device] = dict(devices or {})

    def get(self, device_id: str) -> Device:
        """Raises DeviceNotFoundError when ``device_id`` is not configured."""
        try:
            return self._devices[device_id]
        except KeyError:
            raise DeviceNotFoundError(device_id) from None

    def find(self, device_id: str) -> Device | None:
        return self._devices.get(device_id)

    def get_all(self) -> list[Device]:
        return list(self._devices.values())

    def contains(self, device_id: str) -> bool:
        return device_id in self._devices

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._devices

    def __len__(self) -> int:
        return len(self._devices)

    def state_topics(self) -> set[str]:
        return topics_of(self._devices.values())

    def find_by_state_topic(self, topic: str) -> list[Device]:
        return [device for device in self._devices.values() if device.references_topic(topic)]

    def reload(self, devices: Mapping[str, Device]) -> ConfigChanged:
        """Swap in a new snapshot and return the topic diff against the previous one."""
        lp = f"{self.lp}reload:"
        new_devices = dict(devices)
        change = diff_topics(self._devices, new_devices)
        self._devices = new_devices
        logger.info(
            "%s loaded %d devices (+%d / -%d topics)",
            lp,
            len(new_devices),
            len(change.added),
            len(change.removed),
        )
        return change

    async def reload_from_file(self, config_file: Path | str) -> ConfigChanged:
        """Load ``config_file`` off the event loop and swap it in.

        A failing load leaves the current snapshot active.

        Raises:
            ConfigurationError: The file is invalid

        """
        try:
            devices = await asyncio.to_thread(load_devices, config_file)
        except ConfigurationError:
            record_config_reload("error")
            raise
        change = self.reload(devices)
        record_config_reload("ok")
        return change


class ConfigWatcher:
    """Polls the device config file and reloads the repository when it changes."""

    lp: str = "config_watcher:"

    def __init__(
        self,
        config_file: Path | str,
        repository: DeviceRepository,
        hub: MessageHub,
        poll_interval: float = 5.0,
    ) -> None:
        self.config_file: Path = Path(config_file).expanduser()
        self.repository: DeviceRepository = repository
        self.hub: MessageHub = hub
        self.poll_interval: float = poll_interval
        self._last_mtime: float | None = self._current_mtime()
        self.start_task: asyncio.Task[None] | None = None

    def _current_mtime(self) -> float | None:
        try:
            return self.config_file.stat().st_mtime
        except OSError:
            return None

    async def check_once(self) -> ConfigChanged | None:
        """Reload if the file changed since the last check and publish the topic diff.

        Returns the diff, or None when nothing changed or the new file was rejected.
        """
        lp = f"{self.lp}check:"
        mtime = self._current_mtime()
        if mtime is None or mtime == self._last_mtime:
            return None
        self._last_mtime = mtime
        logger.info("%s %s changed, reloading", lp, self.config_file)
        try:
            change = await self.repository.reload_from_file(self.config_file)
        except ConfigurationError as e:
            logger.error("%s keeping previous configuration: %s", lp, e)
            return None
        if not change.is_empty:
            self.hub.publish(change)
        return change

    async def start(self) -> None:
        lp = f"{self.lp}start:"
        logger.info("%s watching %s every %ss", lp, self.config_file, self.poll_interval)
        while True:
            await asyncio.sleep(self.poll_interval)
            _ = await self.check_once()

    async def stop(self) -> None:
        if self.start_task and not self.start_task.done():
            _ = self.start_task.cancel()
