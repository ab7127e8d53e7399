"""Exception hierarchy for the bridge.

Lookup errors (``DeviceNotFoundError``) degrade to warnings at the call site,
``ValueMapError`` marks a configuration table that cannot represent a value the
assistant is allowed to send, and ``ConfigurationError`` is raised while a new
configuration generation is being built so the previous one stays active.
"""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for all bridge errors."""


class DeviceNotFoundError(BridgeError, KeyError):
    """Device id is not present in the current configuration snapshot.

    Attributes:
        device_id: The id that was looked up

    """

    def __init__(self, device_id: str) -> None:
        """Initialize with the missing device id."""
        self.device_id: str = device_id
        super().__init__(f"Device not found: {device_id}")

    def __str__(self) -> str:
        # KeyError quotes its argument, keep the plain message
        return f"Device not found: {self.device_id}"


class ValueMapError(BridgeError, ValueError):
    """A value could not be translated by a value-mapping table.

    Attributes:
        value: The value that failed to map
        direction: "mqtt" (command) or "google" (reporting)

    """

    def __init__(self, value: object, direction: str, topic: str | None = None) -> None:
        """Initialize with the unmapped value and translation direction."""
        self.value: object = value
        self.direction: str = direction
        self.topic: str | None = topic
        super().__init__(f"No {direction} value mapping for {value!r} (topic: {topic})")


class ParameterFlattenError(BridgeError, TypeError):
    """Command parameters contain a structure that cannot be flattened."""

    def __init__(self, key: str, reason: str) -> None:
        """Initialize with the offending key path and a reason."""
        self.key: str = key
        self.reason: str = reason
        super().__init__(f"Cannot flatten parameter '{key}': {reason}")


class ConfigurationError(BridgeError):
    """Device configuration is malformed or a config diff is contradictory."""


class HomeGraphError(BridgeError):
    """Home Graph API call failed.

    Attributes:
        status: HTTP status if a response was received
        attempts: Number of attempts made before giving up

    """

    def __init__(self, reason: str, status: int | None = None, attempts: int = 0) -> None:
        """Initialize with failure reason, HTTP status and attempt count."""
        self.reason: str = reason
        self.status: int | None = status
        self.attempts: int = attempts
        super().__init__(f"Home Graph request failed: {reason} (status: {status}, attempts: {attempts})")


class HomeGraphAuthError(HomeGraphError):
    """Home Graph rejected the access token (401/403) or no token is available."""
