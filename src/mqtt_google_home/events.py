"""In-process event hub connecting the bus, fulfillment and configuration producers to their handlers.

Each event type gets its own queue and dispatcher task; every handler invocation runs
in its own task, so a slow or failing handler never holds up the others.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, override

from mqtt_google_home.const import HUB_DISPATCH_TASK_PREFIX
from mqtt_google_home.exceptions import ConfigurationError
from mqtt_google_home.logging_abstraction import get_logger
from mqtt_google_home.metrics import record_hub_handler_error

if TYPE_CHECKING:
    from mqtt_google_home.mqtt.commands import Command

__all__ = [
    "CommandReceived",
    "ConfigChanged",
    "Event",
    "EventHandler",
    "MessageHub",
    "SyncRequested",
]

logger = get_logger(__name__)


@dataclass(frozen=True)
class SyncRequested:
    """A REQUEST_SYNC message arrived on the control topic."""


@dataclass(frozen=True)
class CommandReceived:
    """The assistant sent an EXECUTE command."""

    command: Command


@dataclass(frozen=True)
class ConfigChanged:
    """Topics gained and lost by a configuration reload.

    Both sides are de-duplicated; a topic on both sides is a contradiction.
    """

    added: frozenset[str] = field(default_factory=frozenset)
    removed: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        added = frozenset(self.added)
        removed = frozenset(self.removed)
        if overlap := added & removed:
            msg = f"topics both added and removed: {sorted(overlap)}"
            raise ConfigurationError(msg)
        object.__setattr__(self, "added", added)
        object.__setattr__(self, "removed", removed)

    @classmethod
    def from_topics(cls, added: Iterable[str] = (), removed: Iterable[str] = ()) -> ConfigChanged:
        return cls(added=frozenset(added), removed=frozenset(removed))

    @property
    def is_empty(self) -> bool:
        return not self.added and not self.removed


type Event = SyncRequested | CommandReceived | ConfigChanged
type EventHandler = Callable[[Any], Awaitable[None]]


class MessageHub:
    """Typed publish/subscribe hub.

    ``publish`` only enqueues. Events published before ``start`` are delivered once
    the hub starts; events still queued at ``stop`` are dropped.
    """

    lp: str = "hub:"

    def __init__(self) -> None:
        self._handlers: dict[type, dict[str, EventHandler]] = {}
        self._token_types: dict[str, type] = {}
        self._queues: dict[type, asyncio.Queue[Any]] = {}
        self._dispatchers: dict[type, asyncio.Task[None]] = {}
        self._handler_tasks: set[asyncio.Task[None]] = set()
        self._running: bool = False

    @property
    def running(self) -> bool:
        return self._running

    def subscribe(self, event_type: type, handler: EventHandler) -> str:
        """Register ``handler`` for ``event_type`` and return its subscription token."""
        token = str(uuid.uuid4())
        self._handlers.setdefault(event_type, {})[token] = handler
        self._token_types[token] = event_type
        logger.debug(
            "%s subscribed %s to %s",
            self.lp,
            getattr(handler, "__qualname__", handler),
            event_type.__name__,
            extra={"token": token},
        )
        return token

    def unsubscribe(self, token: str) -> bool:
        """Remove a subscription. Unknown or already removed tokens are ignored."""
        event_type = self._token_types.pop(token, None)
        if event_type is None:
            return False
        _ = self._handlers.get(event_type, {}).pop(token, None)
        return True

    def publish(self, event: Any) -> None:
        event_type = type(event)
        queue = self._queues.get(event_type)
        if queue is None:
            queue = asyncio.Queue()
            self._queues[event_type] = queue
        queue.put_nowait(event)
        if self._running:
            self._ensure_dispatcher(event_type)

    async def start(self) -> None:
        lp = f"{self.lp}start:"
        if self._running:
            return
        self._running = True
        for event_type in list(self._queues):
            self._ensure_dispatcher(event_type)
        logger.info("%s message hub started", lp)

    async def stop(self) -> None:
        lp = f"{self.lp}stop:"
        if not self._running:
            return
        self._running = False
        tasks = [*self._dispatchers.values(), *self._handler_tasks]
        for task in tasks:
            _ = task.cancel()
        if tasks:
            _ = await asyncio.gather(*tasks, return_exceptions=True)
        self._dispatchers.clear()
        self._handler_tasks.clear()
        dropped = sum(queue.qsize() for queue in self._queues.values())
        self._queues.clear()
        if dropped:
            logger.warning("%s dropped %d undelivered event(s)", lp, dropped)
        logger.info("%s message hub stopped", lp)

    async def join(self) -> None:
        """Wait until every queued event has been dispatched and every handler has finished."""
        if not self._running:
            return
        while True:
            for queue in list(self._queues.values()):
                await queue.join()
            if not self._handler_tasks:
                break
            _ = await asyncio.gather(*list(self._handler_tasks), return_exceptions=True)

    def _ensure_dispatcher(self, event_type: type) -> None:
        task = self._dispatchers.get(event_type)
        if task is None or task.done():
            self._dispatchers[event_type] = asyncio.create_task(
                self._dispatch(event_type),
                name=f"{HUB_DISPATCH_TASK_PREFIX}_{event_type.__name__}",
            )

    async def _dispatch(self, event_type: type) -> None:
        queue = self._queues[event_type]
        while True:
            event = await queue.get()
            try:
                handlers = list(self._handlers.get(event_type, {}).values())
                if not handlers:
                    logger.debug("%s no handlers for %s, dropping", self.lp, event_type.__name__)
                for handler in handlers:
                    task = asyncio.create_task(self._invoke(handler, event))
                    self._handler_tasks.add(task)
                    task.add_done_callback(self._handler_tasks.discard)
            finally:
                queue.task_done()

    async def _invoke(self, handler: EventHandler, event: Any) -> None:
        lp = f"{self.lp}invoke:"
        try:
            await handler(event)
        except asyncio.CancelledError:
            raise
        except Exception:
            record_hub_handler_error(type(event).__name__)
            logger.exception(
                "%s handler %s failed for %s",
                lp,
                getattr(handler, "__qualname__", handler),
                type(event).__name__,
            )

    @override
    def __repr__(self) -> str:
        return f"<MessageHub: running={self._running} subscriptions={len(self._token_types)}>"
