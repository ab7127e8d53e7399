"""Device, trait and state models loaded from the device configuration file.

A configuration snapshot is a mapping of device id to :class:`Device`. Snapshots are
immutable; a reload builds a new one and swaps it in.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from mqtt_google_home.devices.traits import GoogleType, TraitType
from mqtt_google_home.devices.value_maps import (
    ValueMap,
    ValueMapRule,
    coerce_google_type,
    payload_string,
)
from mqtt_google_home.exceptions import ValueMapError
from mqtt_google_home.logging_abstraction import get_logger
from mqtt_google_home.metrics import record_value_map_error
from mqtt_google_home.utils import unflatten

if TYPE_CHECKING:
    from mqtt_google_home.state_cache import StateCache

__all__ = [
    "Device",
    "DeviceInfo",
    "DeviceName",
    "DeviceState",
    "DeviceTrait",
]

logger = get_logger(__name__)


class _ConfigModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class DeviceState(_ConfigModel):
    """One reportable state value: the topic it is read from and how it is translated."""

    topic: str | None = None
    google_type: GoogleType = GoogleType.UNKNOWN
    value_map: list[ValueMapRule] = Field(default_factory=list)

    @model_validator(mode="after")
    def _enumerated_rows_are_unique(self) -> Self:
        # duplicate rows would make the two directions disagree
        rows = [rule for rule in self.value_map if isinstance(rule, ValueMap)]
        mqtt_values = [row.mqtt for row in rows]
        google_values = [payload_string(row.google) for row in rows]
        if len(set(mqtt_values)) != len(mqtt_values):
            msg = f"duplicate mqtt values in value map: {mqtt_values}"
            raise ValueError(msg)
        if len(set(google_values)) != len(google_values):
            msg = f"duplicate google values in value map: {google_values}"
            raise ValueError(msg)
        return self

    @property
    def is_strict(self) -> bool:
        return any(rule.strict for rule in self.value_map)

    def map_value_to_mqtt(self, value: Any) -> str:
        """Translate an assistant command value to the payload published on ``topic``.

        Raises:
            ValueMapError: An enumerated table exists and has no row for ``value``

        """
        for rule in self.value_map:
            if rule.matches_google(value):
                try:
                    return rule.to_mqtt(value)
                except ValueError as e:
                    raise ValueMapError(value, "mqtt", self.topic) from e
        if self.is_strict:
            raise ValueMapError(value, "mqtt", self.topic)
        return payload_string(value)

    def map_value_to_google(self, value: str | None) -> Any:
        """Translate a cached payload to the typed value reported to the assistant.

        Raises:
            ValueMapError: No rule accepts the payload, or it cannot be typed as ``google_type``

        """
        if value is None:
            return None
        mapped: Any = value
        for rule in self.value_map:
            if rule.matches_mqtt(value):
                try:
                    mapped = rule.to_google(value)
                except ValueError as e:
                    raise ValueMapError(value, "google", self.topic) from e
                break
        else:
            if self.is_strict:
                raise ValueMapError(value, "google", self.topic)
        try:
            return coerce_google_type(mapped, self.google_type)
        except ValueError as e:
            raise ValueMapError(value, "google", self.topic) from e


class DeviceTrait(_ConfigModel):
    trait: TraitType
    attributes: dict[str, Any] = Field(default_factory=dict)
    # command name -> parameter name -> topic
    commands: dict[str, dict[str, str]] = Field(default_factory=dict)
    state: dict[str, DeviceState] = Field(default_factory=dict)


class DeviceName(_ConfigModel):
    default_names: list[str] = Field(default_factory=list)
    name: str
    nicknames: list[str] = Field(default_factory=list)


class DeviceInfo(_ConfigModel):
    manufacturer: str | None = None
    model: str | None = None
    hw_version: str | None = None
    sw_version: str | None = None


class Device(_ConfigModel):
    """A device exposed to the assistant.

    Disabled devices keep their topics tracked but are left out of SYNC, command
    handling and state reporting.
    """

    id: str
    type: str
    name: DeviceName
    will_report_state: bool = False
    room_hint: str | None = None
    device_info: DeviceInfo | None = None
    custom_data: dict[str, Any] | None = None
    disabled: bool = False
    traits: list[DeviceTrait] = Field(default_factory=list)

    def supported_commands(self) -> dict[str, dict[str, str]]:
        """Commands across all traits; a later trait wins on a duplicate command name."""
        merged: dict[str, dict[str, str]] = {}
        for trait in self.traits:
            merged.update(trait.commands)
        return merged

    def command_params(self) -> list[tuple[TraitType, str, dict[str, str]]]:
        return [(trait.trait, command, params) for trait in self.traits for command, params in trait.commands.items()]

    def state_fields(self) -> list[tuple[TraitType, str, DeviceState]]:
        return [(trait.trait, key, state) for trait in self.traits for key, state in trait.state.items()]

    def state_topics(self) -> set[str]:
        return {state.topic for _, _, state in self.state_fields() if state.topic}

    def references_topic(self, topic: str) -> bool:
        return any(state.topic == topic for _, _, state in self.state_fields())

    def find_state_for_command(self, command: str, state_key: str) -> DeviceState | None:
        """First DeviceState stored under ``state_key`` in a trait that carries ``command``."""
        for trait in self.traits:
            if command in trait.commands and state_key in trait.state:
                return trait.state[state_key]
        return None

    def to_sync_payload(self) -> dict[str, Any]:
        """Device entry for a SYNC response."""
        attributes: dict[str, Any] = {}
        for trait in self.traits:
            attributes.update(trait.attributes)
        payload: dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "traits": [str(trait.trait) for trait in self.traits],
            "name": self.name.model_dump(by_alias=True),
            "willReportState": self.will_report_state,
        }
        if attributes:
            payload["attributes"] = attributes
        if self.room_hint:
            payload["roomHint"] = self.room_hint
        if self.device_info:
            payload["deviceInfo"] = self.device_info.model_dump(by_alias=True, exclude_none=True)
        if self.custom_data:
            payload["customData"] = self.custom_data
        return payload

    def get_google_state(self, state_cache: StateCache) -> dict[str, Any]:
        """Current assistant state built from cached payloads.

        Unset topics are left out. A payload the value map rejects is logged and
        left out; the rest of the state is still reported.
        """
        lp = f"device:{self.id}:google_state:"
        flat: dict[str, Any] = {}
        for _, key, state in self.state_fields():
            if not state.topic:
                continue
            raw = state_cache.get(state.topic)
            if raw is None or raw == "":
                continue
            try:
                flat[key] = state.map_value_to_google(raw)
            except ValueMapError as e:
                record_value_map_error("google")
                logger.error(
                    "%s %s",
                    lp,
                    e,
                    extra={"device_id": self.id, "state_key": key, "topic": state.topic},
                )
        google_state = unflatten(flat)
        google_state["online"] = True
        return google_state
