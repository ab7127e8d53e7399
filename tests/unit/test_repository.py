"""Unit tests for device config loading, the repository and the config watcher."""

import asyncio
import json
import os
from unittest.mock import patch

import pytest
import yaml

from mqtt_google_home.devices.repository import (
    ConfigWatcher,
    diff_topics,
    load_devices,
    parse_devices,
)
from mqtt_google_home.events import ConfigChanged
from mqtt_google_home.exceptions import ConfigurationError, DeviceNotFoundError

SWITCH_YAML = """
porch:
  type: action.devices.types.SWITCH
  name:
    name: Porch
  willReportState: true
  traits:
    - trait: action.devices.traits.OnOff
      commands:
        action.devices.commands.OnOff:
          "on": home/porch/set
      state:
        "on":
          topic: home/porch/state
          googleType: bool
          valueMap:
            - type: boolean
              "true": "ON"
              "false": "OFF"
"""


def _switch(topic: str) -> dict:
    return {
        "type": "action.devices.types.SWITCH",
        "name": {"name": "Switch"},
        "traits": [{"trait": "action.devices.traits.OnOff", "state": {"on": {"topic": topic}}}],
    }


class TestParseDevices:
    """Tests for parse_devices"""

    def test_id_taken_from_key(self, device_config):
        """Test that devices are keyed and identified by their mapping key"""
        devices = parse_devices(device_config)

        assert set(devices) == {"light1", "light2", "fan"}
        assert devices["light2"].id == "light2"
        assert devices["light2"].disabled is True

    def test_empty_document(self):
        """Test that an empty file means no devices"""
        assert parse_devices(None) == {}

    def test_non_mapping_rejected(self):
        """Test that a list document is rejected"""
        with pytest.raises(ConfigurationError, match="mapping"):
            _ = parse_devices([{"type": "x"}])

    def test_invalid_device_rejected(self):
        """Test that a validation failure names the device"""
        with pytest.raises(ConfigurationError, match="broken"):
            _ = parse_devices({"broken": {"type": "action.devices.types.LIGHT"}})

    def test_regex_missing_group_rejected(self):
        """Test that a regex replacement naming a missing group fails the load"""
        config = _switch("home/porch/state")
        config["traits"][0]["state"]["on"]["valueMap"] = [{"type": "regex", "search": "(a)", "replace": "\\2"}]

        with pytest.raises(ConfigurationError, match="porch"):
            _ = parse_devices({"porch": config})


class TestLoadDevices:
    """Tests for load_devices"""

    def test_load_yaml(self, tmp_path):
        """Test loading a hand-written YAML file"""
        config_file = tmp_path / "devices.yaml"
        _ = config_file.write_text(SWITCH_YAML)

        devices = load_devices(config_file)

        porch = devices["porch"]
        assert porch.will_report_state is True
        assert porch.supported_commands() == {"action.devices.commands.OnOff": {"on": "home/porch/set"}}
        assert porch.find_state_for_command("action.devices.commands.OnOff", "on").map_value_to_mqtt(True) == "ON"

    def test_load_json(self, tmp_path, device_config):
        """Test that JSON files load through the same parser"""
        config_file = tmp_path / "devices.json"
        _ = config_file.write_text(json.dumps(device_config))

        assert set(load_devices(config_file)) == {"light1", "light2", "fan"}

    def test_missing_file(self, tmp_path):
        """Test that a missing file is a configuration error"""
        with pytest.raises(ConfigurationError):
            _ = load_devices(tmp_path / "nope.yaml")

    def test_malformed_yaml(self, tmp_path):
        """Test that unparseable YAML is a configuration error"""
        config_file = tmp_path / "devices.yaml"
        _ = config_file.write_text("light: [unterminated\n")

        with pytest.raises(ConfigurationError):
            _ = load_devices(config_file)


class TestDiffTopics:
    """Tests for diff_topics"""

    def test_added_and_removed(self):
        """Test a plain topic swap"""
        old = parse_devices({"a": _switch("home/a")})
        new = parse_devices({"b": _switch("home/b")})

        change = diff_topics(old, new)

        assert change.added == frozenset({"home/b"})
        assert change.removed == frozenset({"home/a"})

    def test_shared_topic_survives(self):
        """Test that a topic still read by a remaining device is not removed"""
        old = parse_devices({"a": _switch("home/shared"), "b": _switch("home/shared")})
        new = parse_devices({"b": _switch("home/shared")})

        assert diff_topics(old, new).is_empty

    def test_disabled_device_topics_stay_tracked(self, device_config):
        """Test that disabling a device does not drop its topics"""
        old = parse_devices(device_config)
        device_config["light1"]["disabled"] = True
        new = parse_devices(device_config)

        assert diff_topics(old, new).is_empty


class TestDeviceRepository:
    """Tests for DeviceRepository"""

    def test_get_unknown_raises(self, repository):
        """Test that a missing id raises DeviceNotFoundError"""
        with pytest.raises(DeviceNotFoundError) as exc_info:
            _ = repository.get("ghost")

        assert exc_info.value.device_id == "ghost"
        assert repository.find("ghost") is None
        assert "ghost" not in repository

    def test_state_topics_include_disabled(self, repository):
        """Test that disabled devices contribute topics"""
        assert "home/light2/state" in repository.state_topics()
        assert len(repository) == 3

    def test_find_by_state_topic(self, repository):
        """Test reverse lookup by topic"""
        assert [d.id for d in repository.find_by_state_topic("home/fan/speed")] == ["fan"]
        assert repository.find_by_state_topic("home/none") == []

    def test_reload_returns_diff(self, repository, make_light_config):
        """Test that reload swaps the snapshot and reports the topic diff"""
        change = repository.reload(parse_devices({"light3": make_light_config(prefix="home/light3")}))

        assert "home/light3/state" in change.added
        assert "home/fan/speed" in change.removed
        assert [d.id for d in repository.get_all()] == ["light3"]

    @pytest.mark.asyncio
    async def test_reload_from_bad_file_keeps_snapshot(self, repository, tmp_path):
        """Test that a rejected file leaves the previous generation active"""
        config_file = tmp_path / "devices.yaml"
        _ = config_file.write_text("- not a mapping\n")

        with pytest.raises(ConfigurationError):
            _ = await repository.reload_from_file(config_file)

        assert repository.contains("light1")
        assert len(repository) == 3


class TestConfigWatcher:
    """Tests for ConfigWatcher.check_once"""

    @pytest.fixture
    def config_file(self, tmp_path, device_config):
        path = tmp_path / "devices.yaml"
        _ = path.write_text(yaml.safe_dump(device_config))
        return path

    def _touch_later(self, path):
        stat = path.stat()
        os.utime(path, (stat.st_atime + 10, stat.st_mtime + 10))

    @pytest.mark.asyncio
    async def test_unchanged_file(self, config_file, repository, mock_hub):
        """Test that an unchanged file does nothing"""
        watcher = ConfigWatcher(config_file, repository, mock_hub)

        assert await watcher.check_once() is None
        mock_hub.publish.assert_not_called()

    @pytest.mark.asyncio
    async def test_changed_file_publishes_diff(self, config_file, repository, mock_hub, device_config, make_light_config):
        """Test that a changed file reloads and publishes ConfigChanged"""
        watcher = ConfigWatcher(config_file, repository, mock_hub)
        device_config["light3"] = make_light_config(prefix="home/light3")
        _ = config_file.write_text(yaml.safe_dump(device_config))
        self._touch_later(config_file)

        change = await watcher.check_once()

        assert change == ConfigChanged.from_topics(added=["home/light3/state", "home/light3/brightness"])
        mock_hub.publish.assert_called_once_with(change)
        assert repository.contains("light3")

    @pytest.mark.asyncio
    async def test_same_topics_publish_nothing(self, config_file, repository, mock_hub, device_config):
        """Test that a reload without topic changes publishes nothing"""
        watcher = ConfigWatcher(config_file, repository, mock_hub)
        device_config["fan"]["name"]["name"] = "Ceiling fan"
        _ = config_file.write_text(yaml.safe_dump(device_config))
        self._touch_later(config_file)

        change = await watcher.check_once()

        assert change is not None
        assert change.is_empty
        mock_hub.publish.assert_not_called()
        assert repository.get("fan").name.name == "Ceiling fan"

    @pytest.mark.asyncio
    async def test_invalid_file_keeps_previous(self, config_file, repository, mock_hub):
        """Test that an invalid edit is logged and ignored"""
        watcher = ConfigWatcher(config_file, repository, mock_hub)
        _ = config_file.write_text("light1: {type: 5}\n")
        self._touch_later(config_file)

        assert await watcher.check_once() is None
        mock_hub.publish.assert_not_called()
        assert len(repository) == 3

    @pytest.mark.asyncio
    async def test_file_read_runs_in_thread(self, config_file, repository, mock_hub):
        """Test that the config file is loaded through asyncio.to_thread"""
        watcher = ConfigWatcher(config_file, repository, mock_hub)
        self._touch_later(config_file)

        with patch(
            "mqtt_google_home.devices.repository.asyncio.to_thread",
            wraps=asyncio.to_thread,
        ) as mock_to_thread:
            change = await watcher.check_once()

        assert change is not None
        mock_to_thread.assert_awaited_once_with(load_devices, config_file)
