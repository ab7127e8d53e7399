"""MQTT bridge for the Google smart home platform."""

__version__ = "0.1.0"
