"""Assistant command to MQTT publication translation.

An EXECUTE command names target devices and a list of executions; each execution
carries a command name and nested parameters. The parameters are flattened to
dotted keys, matched against the topics the device declares for that command, and
each value is translated through the DeviceState stored under the matching state key.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import aiomqtt
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from mqtt_google_home.exceptions import DeviceNotFoundError, ParameterFlattenError, ValueMapError
from mqtt_google_home.instrumentation import timed_async
from mqtt_google_home.logging_abstraction import get_logger
from mqtt_google_home.metrics import record_command_publish, record_value_map_error

if TYPE_CHECKING:
    from mqtt_google_home.devices.models import Device
    from mqtt_google_home.devices.repository import DeviceRepository
    from mqtt_google_home.events import CommandReceived
    from mqtt_google_home.structs import BusClientProtocol

__all__ = [
    "Command",
    "CommandDevice",
    "CommandHandler",
    "Execution",
    "Publication",
    "flatten_params",
    "map_command_to_state_key",
    "resolve_publications",
]

logger = get_logger(__name__)

_SCALAR_TYPES = (str, bool, int, float, type(None))

# (command parameter prefix, state key prefix)
_PREFIX_RENAMES: tuple[tuple[str, str], ...] = (
    ("updateModeSettings.", "currentModeSettings."),
    ("updateToggleSettings.", "currentToggleSettings."),
)
_KEY_RENAMES: dict[str, str] = {
    "fanSpeed": "currentFanSpeedSetting",
    "color.spectrumRGB": "color.spectrumRgb",
    "color.temperature": "color.temperatureK",
}


class _CommandModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class CommandDevice(_CommandModel):
    id: str
    custom_data: dict[str, Any] | None = None


class Execution(_CommandModel):
    command: str
    params: dict[str, Any] = Field(default_factory=dict)


class Command(_CommandModel):
    devices: list[CommandDevice] = Field(default_factory=list)
    execution: list[Execution] = Field(default_factory=list)


@dataclass(frozen=True)
class Publication:
    """One MQTT message produced by an execution."""

    device_id: str
    command: str
    topic: str
    payload: str


def flatten_params(params: Mapping[str, Any], prefix: str = "") -> dict[str, Any]:
    """Flatten nested command parameters.

    Mapping keys are joined with ``.`` and list items get ``[i]``::

        {"updateModeSettings": {"temperature": "high"}} -> {"updateModeSettings.temperature": "high"}
        {"foo": [1, 2]} -> {"foo[0]": 1, "foo[1]": 2}

    Raises:
        ParameterFlattenError: A key is not a string or a leaf is not a JSON scalar

    """
    flat: dict[str, Any] = {}
    _flatten_into(flat, params, prefix)
    return flat


def _flatten_into(flat: dict[str, Any], value: Any, key: str) -> None:
    if isinstance(value, Mapping):
        for child_key, child in value.items():
            if not isinstance(child_key, str):
                raise ParameterFlattenError(f"{key}.{child_key!r}" if key else repr(child_key), "key is not a string")
            _flatten_into(flat, child, f"{key}.{child_key}" if key else child_key)
    elif isinstance(value, list | tuple):
        if not key:
            raise ParameterFlattenError("<root>", "parameters must be a mapping")
        for index, child in enumerate(value):
            _flatten_into(flat, child, f"{key}[{index}]")
    elif isinstance(value, _SCALAR_TYPES):
        if not key:
            raise ParameterFlattenError("<root>", "parameters must be a mapping")
        flat[key] = value
    else:
        raise ParameterFlattenError(key, f"unsupported value type {type(value).__name__}")


def map_command_to_state_key(key: str) -> str:
    """State key a command parameter is stored under.

    Mode and toggle parameters are named per mode id by the assistant
    (``updateModeSettings.<mode>``) and reported as ``currentModeSettings.<mode>``.
    """
    for command_prefix, state_prefix in _PREFIX_RENAMES:
        if key.startswith(command_prefix):
            return state_prefix + key.removeprefix(command_prefix)
    return _KEY_RENAMES.get(key, key)


def _fallback_payload(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def resolve_publications(device: Device, execution: Execution) -> list[Publication]:
    """MQTT messages for one execution against one device.

    Unsupported commands and parameters without a configured topic produce nothing.
    A parameter whose value the value map rejects is dropped; the others still publish.

    Raises:
        ParameterFlattenError: The execution parameters cannot be flattened

    """
    lp = f"commands:{device.id}:"
    supported = device.supported_commands()
    param_topics = supported.get(execution.command)
    if param_topics is None:
        logger.debug("%s command %s not supported, ignoring", lp, execution.command)
        return []

    publications: list[Publication] = []
    for key, value in flatten_params(execution.params).items():
        topic = param_topics.get(key)
        if topic is None:
            logger.debug("%s no topic for parameter %s of %s", lp, key, execution.command)
            continue
        state_key = map_command_to_state_key(key)
        state = device.find_state_for_command(execution.command, state_key)
        if state is None:
            payload = _fallback_payload(value)
            logger.warning(
                "%s no state '%s' for %s, publishing raw value",
                lp,
                state_key,
                execution.command,
                extra={"topic": topic, "payload": payload},
            )
        else:
            try:
                payload = state.map_value_to_mqtt(value)
            except ValueMapError as e:
                record_value_map_error("mqtt")
                record_command_publish(execution.command, "rejected")
                logger.error("%s rejected parameter %s: %s", lp, key, e, extra={"device_id": device.id})
                continue
        publications.append(Publication(device.id, execution.command, topic, payload))
    return publications


class CommandHandler:
    """Handles CommandReceived events by publishing the resolved messages."""

    lp: str = "CommandHandler:"

    def __init__(self, repository: DeviceRepository, bus: BusClientProtocol) -> None:
        self.repository: DeviceRepository = repository
        self.bus: BusClientProtocol = bus

    @timed_async("handle_command")
    async def handle_command(self, event: CommandReceived) -> list[Publication]:
        """Publish every message the command resolves to and return the ones that were sent."""
        lp = f"{self.lp}handle:"
        sent: list[Publication] = []
        command = event.command
        for target in command.devices:
            try:
                device = self.repository.get(target.id)
            except DeviceNotFoundError:
                logger.warning("%s device %s not found, skipping", lp, target.id)
                continue
            if device.disabled:
                logger.info("%s device %s is disabled, skipping", lp, device.id)
                continue
            for execution in command.execution:
                try:
                    publications = resolve_publications(device, execution)
                except ParameterFlattenError:
                    record_command_publish(execution.command, "rejected")
                    logger.exception("%s malformed parameters for %s on %s", lp, execution.command, device.id)
                    continue
                for publication in publications:
                    if await self._publish(publication):
                        sent.append(publication)
        return sent

    async def _publish(self, publication: Publication) -> bool:
        lp = f"{self.lp}publish:"
        try:
            await self.bus.publish(publication.topic, publication.payload, qos=1)
        except aiomqtt.MqttError as e:
            record_command_publish(publication.command, "error")
            logger.warning(
                "%s publishing to %s failed: %s",
                lp,
                publication.topic,
                e,
                extra={"device_id": publication.device_id},
            )
            return False
        record_command_publish(publication.command, "ok")
        logger.debug(
            "%s %s -> %s",
            lp,
            publication.payload,
            publication.topic,
            extra={"device_id": publication.device_id, "command": publication.command},
        )
        return True
