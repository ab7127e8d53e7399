"""Closed enumerations of Google smart home identifiers."""

from __future__ import annotations

from enum import StrEnum


class TraitType(StrEnum):
    """Google smart home traits a device can expose."""

    APP_SELECTOR = "action.devices.traits.AppSelector"
    ARM_DISARM = "action.devices.traits.ArmDisarm"
    BRIGHTNESS = "action.devices.traits.Brightness"
    CAMERA_STREAM = "action.devices.traits.CameraStream"
    CHANNEL = "action.devices.traits.Channel"
    COLOR_SETTING = "action.devices.traits.ColorSetting"
    COOK = "action.devices.traits.Cook"
    DISPENSE = "action.devices.traits.Dispense"
    DOCK = "action.devices.traits.Dock"
    ENERGY_STORAGE = "action.devices.traits.EnergyStorage"
    FAN_SPEED = "action.devices.traits.FanSpeed"
    FILL = "action.devices.traits.Fill"
    HUMIDITY_SETTING = "action.devices.traits.HumiditySetting"
    INPUT_SELECTOR = "action.devices.traits.InputSelector"
    LIGHT_EFFECTS = "action.devices.traits.LightEffects"
    LOCATOR = "action.devices.traits.Locator"
    LOCK_UNLOCK = "action.devices.traits.LockUnlock"
    MEDIA_STATE = "action.devices.traits.MediaState"
    MODES = "action.devices.traits.Modes"
    NETWORK_CONTROL = "action.devices.traits.NetworkControl"
    OBJECT_DETECTION = "action.devices.traits.ObjectDetection"
    ON_OFF = "action.devices.traits.OnOff"
    OPEN_CLOSE = "action.devices.traits.OpenClose"
    REBOOT = "action.devices.traits.Reboot"
    ROTATION = "action.devices.traits.Rotation"
    RUN_CYCLE = "action.devices.traits.RunCycle"
    SCENE = "action.devices.traits.Scene"
    SENSOR_STATE = "action.devices.traits.SensorState"
    SOFTWARE_UPDATE = "action.devices.traits.SoftwareUpdate"
    START_STOP = "action.devices.traits.StartStop"
    STATUS_REPORT = "action.devices.traits.StatusReport"
    TEMPERATURE_CONTROL = "action.devices.traits.TemperatureControl"
    TEMPERATURE_SETTING = "action.devices.traits.TemperatureSetting"
    TIMER = "action.devices.traits.Timer"
    TOGGLES = "action.devices.traits.Toggles"
    TRANSPORT_CONTROL = "action.devices.traits.TransportControl"
    VOLUME = "action.devices.traits.Volume"


class GoogleType(StrEnum):
    """Type a state value is reported to Google as."""

    UNKNOWN = "unknown"
    BOOL = "bool"
    NUMERIC = "numeric"
    STRING = "string"


class IntentType(StrEnum):
    """Fulfillment intents."""

    SYNC = "action.devices.SYNC"
    QUERY = "action.devices.QUERY"
    EXECUTE = "action.devices.EXECUTE"
    DISCONNECT = "action.devices.DISCONNECT"
