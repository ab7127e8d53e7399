"""
Correlation ID tracking across the bridge's async hops.

A fulfillment request id (or a generated id for bus-originated work) is kept in
a context variable so that log lines emitted by the hub handlers, the command
mapper and the Home Graph client can be tied back to the event that caused them.
Tasks created with ``asyncio.create_task`` inherit the current value.
"""

from __future__ import annotations

import contextvars
import uuid
from collections.abc import Generator
from contextlib import contextmanager

__all__ = [
    "correlation_context",
    "ensure_correlation_id",
    "generate_correlation_id",
    "get_correlation_id",
    "set_correlation_id",
]

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "gh_correlation_id",
    default=None,
)


def generate_correlation_id() -> str:
    """Return a new 32 character hex id."""
    return uuid.uuid4().hex


def get_correlation_id() -> str | None:
    """Return the id bound to the current context, if any."""
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None) -> None:
    """Bind ``correlation_id`` to the current context (None clears it)."""
    _correlation_id.set(correlation_id)


@contextmanager
def correlation_context(
    correlation_id: str | None = None,
    auto_generate: bool = True,
) -> Generator[str | None]:
    """
    Scope a correlation id, restoring the previous one on exit.

    Args:
        correlation_id: Id to bind, e.g. a fulfillment ``requestId``
        auto_generate: Generate an id when ``correlation_id`` is None

    Yields:
        The id bound inside the block

    Example:
        with correlation_context(request.request_id):
            hub.publish(CommandReceived(command=cmd))
    """
    token = _correlation_id.set(
        correlation_id if correlation_id is not None or not auto_generate else generate_correlation_id()
    )
    try:
        yield _correlation_id.get()
    finally:
        _correlation_id.reset(token)


def ensure_correlation_id() -> str:
    """Return the current id, generating and binding one when unset."""
    current_id = get_correlation_id()
    if current_id is None:
        current_id = generate_correlation_id()
        set_correlation_id(current_id)
    return current_id
