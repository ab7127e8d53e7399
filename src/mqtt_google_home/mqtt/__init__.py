"""MQTT side of the bridge.

- client.py: MQTTClient connection lifecycle
- commands.py: assistant command to MQTT publication translation
- subscriptions.py: subscription/state-cache reconciliation on config changes
- command_routing.py: inbound message routing
- state_updates.py: state reports and sync requests to the assistant
"""

from .client import MQTTClient
from .command_routing import MessageRouter
from .commands import CommandHandler, flatten_params, map_command_to_state_key, resolve_publications
from .state_updates import StateUpdateHelper, SyncRequestHandler
from .subscriptions import SubscriptionManager

__all__ = [
    "CommandHandler",
    "MQTTClient",
    "MessageRouter",
    "StateUpdateHelper",
    "SubscriptionManager",
    "SyncRequestHandler",
    "flatten_params",
    "map_command_to_state_key",
    "resolve_publications",
]
