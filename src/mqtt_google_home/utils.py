from __future__ import annotations

import os
import signal
from collections.abc import Mapping
from typing import Any

from mqtt_google_home.logging_abstraction import get_logger

logger = get_logger(__name__)


def send_signal(signal_num: int):
    """Send a signal to the current process.

    Args:
        signal_num (int): The signal number to send.

    """
    try:
        logger.debug("Sending signal %s to process %s", signal_num, os.getpid())
        os.kill(os.getpid(), signal_num)
    except OSError:
        logger.exception("Failed to send signal %s to process", signal_num)
        raise


def send_sigterm():
    """Send a SIGTERM signal to the current process.
    Used when the broker rejects our credentials and retrying is pointless.
    """
    send_signal(signal.SIGTERM)


def unflatten(flat: Mapping[str, Any]) -> dict[str, Any]:
    """Expand dotted keys into nested dictionaries.

    ``{"color.spectrumRgb": 255, "on": True}`` -> ``{"color": {"spectrumRgb": 255}, "on": True}``.
    A plain key and a dotted key sharing the same prefix cannot both be expanded;
    the nested form wins and the plain value is dropped with a warning.
    """
    nested: dict[str, Any] = {}
    for key, value in flat.items():
        parts = key.split(".")
        node = nested
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                if child is not None:
                    logger.warning("unflatten: '%s' is both a value and a parent, keeping the nested form", part)
                child = {}
                node[part] = child
            node = child
        leaf = parts[-1]
        if isinstance(node.get(leaf), dict):
            logger.warning("unflatten: '%s' is both a value and a parent, keeping the nested form", key)
            continue
        node[leaf] = value
    return nested
