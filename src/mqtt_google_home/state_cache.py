"""Last known payload per tracked MQTT topic."""

from __future__ import annotations

import threading
from typing import override

__all__ = ["StateCache"]


class StateCache:
    """Topic -> last payload string.

    Each method is atomic on its own; callers needing check-then-act across several
    calls use ``try_add`` / ``try_remove`` instead of ``contains`` + ``set``.
    Newly tracked topics hold ``""`` until the first message arrives.
    """

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._lock = threading.Lock()
        self._values: dict[str, str] = dict(initial or {})

    def get(self, topic: str) -> str | None:
        with self._lock:
            return self._values.get(topic)

    def set(self, topic: str, value: str) -> None:
        with self._lock:
            self._values[topic] = value

    def contains(self, topic: str) -> bool:
        with self._lock:
            return topic in self._values

    def __contains__(self, topic: object) -> bool:
        return isinstance(topic, str) and self.contains(topic)

    def try_add(self, topic: str, default: str = "") -> bool:
        """Track ``topic`` if it is not tracked yet. An existing value is never overwritten."""
        with self._lock:
            if topic in self._values:
                return False
            self._values[topic] = default
            return True

    def try_remove(self, topic: str) -> bool:
        with self._lock:
            return self._values.pop(topic, None) is not None

    def keys(self) -> frozenset[str]:
        """Snapshot of the tracked topics."""
        with self._lock:
            return frozenset(self._values)

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)

    @override
    def __repr__(self) -> str:
        return f"<StateCache: {len(self)} topics>"
