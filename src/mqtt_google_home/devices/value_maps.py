"""Value-mapping rules between MQTT payloads and Google state/command values.

Every rule is a tagged pydantic model selected by its ``type`` field:

- ``value``: one row of an enumerated table, ``{"mqtt": "ON", "google": true}``
- ``range``: numeric payloads inside ``[min, max]`` report as ``google``
- ``scale``: linear conversion between an MQTT and a Google numeric range
- ``boolean``: booleans to a pair of payload strings
- ``regex``: ``re.sub(search, replace, value)`` on the string form

Each rule answers four questions: does it match a Google value, how is that value
published, does it match an MQTT payload, and how is that payload reported.
"""

from __future__ import annotations

import math
import re
from typing import Annotated, Any, Literal, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from mqtt_google_home.devices.traits import GoogleType

__all__ = [
    "BooleanMap",
    "RangeMap",
    "RegexMap",
    "ScaleMap",
    "ValueMap",
    "ValueMapRule",
    "coerce_google_type",
    "payload_string",
]

_TRUE_STRINGS = ("true", "on", "1", "yes")
_FALSE_STRINGS = ("false", "off", "0", "no")


def payload_string(value: Any) -> str:
    """String form used for MQTT payloads and for comparing mapped values.

    Booleans become ``true``/``false`` and integral floats lose their ``.0``,
    so ``True``, ``"true"`` and ``1.0``/``1`` compare the way the assistant means them.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _parse_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value)
    try:
        number = float(str(value).strip())
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def _int_if_integral(value: float) -> int | float:
    return int(value) if float(value).is_integer() else value


def coerce_google_type(value: Any, google_type: GoogleType) -> Any:
    """Convert a mapped value to the JSON type Google expects.

    Raises:
        ValueError: The value cannot be represented as ``google_type``

    """
    match google_type:
        case GoogleType.BOOL:
            if isinstance(value, bool):
                return value
            text = payload_string(value).strip().casefold()
            if text in _TRUE_STRINGS:
                return True
            if text in _FALSE_STRINGS:
                return False
            msg = f"{value!r} is not a boolean"
            raise ValueError(msg)
        case GoogleType.NUMERIC:
            number = _parse_number(value)
            if number is None:
                msg = f"{value!r} is not numeric"
                raise ValueError(msg)
            return _int_if_integral(number)
        case GoogleType.STRING:
            return payload_string(value)
        case GoogleType.UNKNOWN:
            return value


class _MapBase(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    @property
    def strict(self) -> bool:
        """Strict rules make an unmatched value an error instead of a passthrough."""
        return False


class ValueMap(_MapBase):
    """One row of an enumerated table."""

    type: Literal["value"] = "value"
    mqtt: str
    google: bool | int | float | str

    @field_validator("mqtt", mode="before")
    @classmethod
    def _mqtt_as_string(cls, v: Any) -> str:
        return payload_string(v)

    @property
    def strict(self) -> bool:
        return True

    def matches_google(self, value: Any) -> bool:
        return payload_string(value) == payload_string(self.google)

    def to_mqtt(self, _value: Any) -> str:
        return self.mqtt

    def matches_mqtt(self, value: str) -> bool:
        return value == self.mqtt

    def to_google(self, _value: str) -> Any:
        return self.google


class RangeMap(_MapBase):
    """Bucket of numeric payloads reported as a single Google value.

    In the command direction a matching Google value publishes ``min``.
    """

    type: Literal["range"] = "range"
    min: float
    max: float
    google: bool | int | float | str

    def matches_google(self, value: Any) -> bool:
        return payload_string(value) == payload_string(self.google)

    def to_mqtt(self, _value: Any) -> str:
        return payload_string(_int_if_integral(self.min))

    def matches_mqtt(self, value: str) -> bool:
        number = _parse_number(value)
        return number is not None and self.min <= number <= self.max

    def to_google(self, _value: str) -> Any:
        return self.google


class ScaleMap(_MapBase):
    """Linear conversion, e.g. an MQTT brightness of 0-255 to a Google percentage."""

    type: Literal["scale"] = "scale"
    mqtt_min: float
    mqtt_max: float
    google_min: float = 0
    google_max: float = 100

    @staticmethod
    def _convert(number: float, src_min: float, src_max: float, dst_min: float, dst_max: float) -> int | float:
        number = min(max(number, min(src_min, src_max)), max(src_min, src_max))
        if src_max == src_min:
            return _int_if_integral(dst_min)
        scaled = dst_min + (number - src_min) * (dst_max - dst_min) / (src_max - src_min)
        if float(dst_min).is_integer() and float(dst_max).is_integer():
            return round(scaled)
        return scaled

    def matches_google(self, value: Any) -> bool:
        return _parse_number(value) is not None

    def to_mqtt(self, value: Any) -> str:
        number = _parse_number(value)
        assert number is not None
        return payload_string(self._convert(number, self.google_min, self.google_max, self.mqtt_min, self.mqtt_max))

    def matches_mqtt(self, value: str) -> bool:
        return _parse_number(value) is not None

    def to_google(self, value: str) -> Any:
        number = _parse_number(value)
        assert number is not None
        return self._convert(number, self.mqtt_min, self.mqtt_max, self.google_min, self.google_max)


class BooleanMap(_MapBase):
    """Boolean Google values to a pair of payload strings, ``{"true": "ON", "false": "OFF"}``."""

    type: Literal["boolean"] = "boolean"
    true_value: str = Field(default="true", alias="true")
    false_value: str = Field(default="false", alias="false")

    @property
    def strict(self) -> bool:
        return True

    def matches_google(self, value: Any) -> bool:
        return isinstance(value, bool) or payload_string(value).casefold() in ("true", "false")

    def to_mqtt(self, value: Any) -> str:
        truthy = value if isinstance(value, bool) else payload_string(value).casefold() == "true"
        return self.true_value if truthy else self.false_value

    def matches_mqtt(self, value: str) -> bool:
        return value.casefold() in (self.true_value.casefold(), self.false_value.casefold())

    def to_google(self, value: str) -> Any:
        return value.casefold() == self.true_value.casefold()


class RegexMap(_MapBase):
    """Regular expression substitution applied in both directions."""

    type: Literal["regex"] = "regex"
    search: str
    replace: str

    @field_validator("search")
    @classmethod
    def _valid_pattern(cls, v: str) -> str:
        try:
            _ = re.compile(v)
        except re.error as e:
            msg = f"invalid regular expression {v!r}: {e}"
            raise ValueError(msg) from e
        return v

    @model_validator(mode="after")
    def _valid_replacement(self) -> Self:
        # the template is compiled before any matching, so group references are checked on ""
        try:
            _ = re.compile(self.search).sub(self.replace, "")
        except re.error as e:
            msg = f"invalid replacement {self.replace!r} for {self.search!r}: {e}"
            raise ValueError(msg) from e
        return self

    def _substitute(self, value: str) -> str:
        try:
            return re.sub(self.search, self.replace, value)
        except re.error as e:
            msg = f"regex substitution failed for {value!r}: {e}"
            raise ValueError(msg) from e

    def matches_google(self, value: Any) -> bool:
        return re.search(self.search, payload_string(value)) is not None

    def to_mqtt(self, value: Any) -> str:
        return self._substitute(payload_string(value))

    def matches_mqtt(self, value: str) -> bool:
        return re.search(self.search, value) is not None

    def to_google(self, value: str) -> Any:
        return self._substitute(value)


ValueMapRule = Annotated[
    ValueMap | RangeMap | ScaleMap | BooleanMap | RegexMap,
    Field(discriminator="type"),
]
