"""
Shared fixtures for unit tests.

Devices are built from the same dictionaries a device configuration file decodes to.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from mqtt_google_home.devices.repository import DeviceRepository, parse_devices
from mqtt_google_home.state_cache import StateCache

CONTROL_TOPIC = "google/home/REQUEST_SYNC"

ON_OFF = "action.devices.commands.OnOff"
BRIGHTNESS_ABSOLUTE = "action.devices.commands.BrightnessAbsolute"
SET_MODES = "action.devices.commands.SetModes"


def light_config(*, disabled: bool = False, will_report_state: bool = True, prefix: str = "home/light1") -> dict:
    """Config for a dimmable light with an ON/OFF switch topic."""
    return {
        "type": "action.devices.types.LIGHT",
        "name": {"name": "Light"},
        "willReportState": will_report_state,
        "disabled": disabled,
        "traits": [
            {
                "trait": "action.devices.traits.OnOff",
                "commands": {ON_OFF: {"on": f"{prefix}/set"}},
                "state": {
                    "on": {
                        "topic": f"{prefix}/state",
                        "googleType": "bool",
                        "valueMap": [{"type": "boolean", "true": "ON", "false": "OFF"}],
                    },
                },
            },
            {
                "trait": "action.devices.traits.Brightness",
                "commands": {BRIGHTNESS_ABSOLUTE: {"brightness": f"{prefix}/brightness/set"}},
                "state": {
                    "brightness": {
                        "topic": f"{prefix}/brightness",
                        "googleType": "numeric",
                        "valueMap": [{"type": "scale", "mqttMin": 0, "mqttMax": 255}],
                    },
                },
            },
        ],
    }


def fan_config() -> dict:
    """Config for a fan with a speed mode, reported under currentModeSettings."""
    return {
        "type": "action.devices.types.FAN",
        "name": {"name": "Fan"},
        "willReportState": False,
        "traits": [
            {
                "trait": "action.devices.traits.Modes",
                "attributes": {"availableModes": [{"name": "speed"}]},
                "commands": {SET_MODES: {"updateModeSettings.speed": "home/fan/speed/set"}},
                "state": {
                    "currentModeSettings.speed": {
                        "topic": "home/fan/speed",
                        "googleType": "string",
                        "valueMap": [
                            {"type": "value", "mqtt": "1", "google": "low"},
                            {"type": "value", "mqtt": "2", "google": "high"},
                        ],
                    },
                },
            },
        ],
    }


@pytest.fixture
def device_config() -> dict:
    return {
        "light1": light_config(),
        "light2": light_config(disabled=True, prefix="home/light2"),
        "fan": fan_config(),
    }


@pytest.fixture
def devices(device_config):
    return parse_devices(device_config)


@pytest.fixture
def repository(devices):
    return DeviceRepository(devices)


@pytest.fixture
def state_cache(repository):
    cache = StateCache()
    for topic in repository.state_topics():
        _ = cache.try_add(topic, "")
    _ = cache.try_add(CONTROL_TOPIC, "")
    return cache


@pytest.fixture
def mock_bus():
    """
    Mock bus client.

    Returns an AsyncMock with the publish/subscribe/unsubscribe contract.
    """
    bus = AsyncMock()
    bus.publish = AsyncMock()
    bus.subscribe = AsyncMock()
    bus.unsubscribe = AsyncMock()
    return bus


@pytest.fixture
def mock_cloud():
    cloud = MagicMock()
    cloud.request_sync = AsyncMock()
    cloud.send_state_updates = AsyncMock()
    return cloud


@pytest.fixture
def mock_hub():
    hub = MagicMock()
    hub.publish = MagicMock()
    return hub


@pytest.fixture
def make_light_config():
    return light_config
