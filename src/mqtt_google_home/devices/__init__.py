"""Device configuration model, value maps and the device repository."""

from .models import Device, DeviceInfo, DeviceName, DeviceState, DeviceTrait
from .repository import ConfigWatcher, DeviceRepository, diff_topics, load_devices
from .traits import GoogleType, IntentType, TraitType

__all__ = [
    "ConfigWatcher",
    "Device",
    "DeviceInfo",
    "DeviceName",
    "DeviceRepository",
    "DeviceState",
    "DeviceTrait",
    "GoogleType",
    "IntentType",
    "TraitType",
    "diff_topics",
    "load_devices",
]
