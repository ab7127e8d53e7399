"""
Timing of awaited bus and Home Graph operations.

``timed_async`` logs how long a coroutine took and warns once it crosses
``GH_PERF_THRESHOLD_MS``. Disabled entirely with ``GH_PERF_TRACKING=false``.
"""

from __future__ import annotations

import functools
import time
from collections.abc import Callable, Coroutine
from typing import Any, ParamSpec, TypeVar

from mqtt_google_home.logging_abstraction import BridgeLogger, get_logger

__all__ = [
    "measure_time",
    "timed_async",
]

P = ParamSpec("P")
T = TypeVar("T")

logger = get_logger(__name__)


def measure_time(start_time: float) -> float:
    """Milliseconds elapsed since ``start_time`` (a ``time.perf_counter()`` value)."""
    return (time.perf_counter() - start_time) * 1000


def timed_async(
    operation_name: str | None = None,
) -> Callable[[Callable[P, Coroutine[Any, Any, T]]], Callable[P, Coroutine[Any, Any, T]]]:
    """
    Decorator for timing async functions.

    Args:
        operation_name: Name for the operation (defaults to function name)

    Example:
        @timed_async("homegraph_report_state")
        async def send_state_updates(self, devices, cache):
            ...
    """

    def decorator(func: Callable[P, Coroutine[Any, Any, T]]) -> Callable[P, Coroutine[Any, Any, T]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            from mqtt_google_home import const

            if not const.GH_PERF_TRACKING:
                return await func(*args, **kwargs)

            op_name = operation_name or func.__name__
            start_time = time.perf_counter()
            try:
                return await func(*args, **kwargs)
            finally:
                _log_timing(logger, op_name, measure_time(start_time), const.GH_PERF_THRESHOLD_MS)

        return wrapper

    return decorator


def _log_timing(log: BridgeLogger, operation_name: str, elapsed_ms: float, threshold_ms: int) -> None:
    context = {
        "operation": operation_name,
        "duration_ms": round(elapsed_ms, 2),
        "threshold_ms": threshold_ms,
        "exceeded_threshold": elapsed_ms > threshold_ms,
    }
    if elapsed_ms > threshold_ms:
        log.warning("[%s] completed in %.1fms (threshold: %dms)", operation_name, elapsed_ms, threshold_ms, extra=context)
    else:
        log.debug("[%s] completed in %.1fms", operation_name, elapsed_ms, extra=context)
