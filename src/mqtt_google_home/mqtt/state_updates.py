"""Pushes state changes and sync requests up to the assistant."""

from __future__ import annotations

from typing import TYPE_CHECKING

from mqtt_google_home.exceptions import HomeGraphError
from mqtt_google_home.logging_abstraction import get_logger
from mqtt_google_home.metrics import record_request_sync, record_state_report

if TYPE_CHECKING:
    from mqtt_google_home.devices.models import Device
    from mqtt_google_home.devices.repository import DeviceRepository
    from mqtt_google_home.events import SyncRequested
    from mqtt_google_home.state_cache import StateCache
    from mqtt_google_home.structs import CloudClientProtocol

__all__ = ["StateUpdateHelper", "SyncRequestHandler"]

logger = get_logger(__name__)


class StateUpdateHelper:
    """Reports the devices affected by a topic update."""

    lp: str = "state_updates:"

    def __init__(self, repository: DeviceRepository, state_cache: StateCache, cloud: CloudClientProtocol) -> None:
        self.repository: DeviceRepository = repository
        self.state_cache: StateCache = state_cache
        self.cloud: CloudClientProtocol = cloud

    def devices_to_report(self, topic: str) -> list[Device]:
        """Enabled devices with ``will_report_state`` whose state reads ``topic``."""
        return [
            device
            for device in self.repository.find_by_state_topic(topic)
            if not device.disabled and device.will_report_state
        ]

    async def report_topic_change(self, topic: str) -> bool:
        """Report state for the devices reading ``topic``. Failures are logged, never raised.

        Returns True if a report was sent.
        """
        lp = f"{self.lp}report:"
        devices = self.devices_to_report(topic)
        if not devices:
            return False
        try:
            await self.cloud.send_state_updates(devices, self.state_cache)
        except HomeGraphError as e:
            record_state_report("error")
            logger.warning(
                "%s state report for %s failed: %s",
                lp,
                [device.id for device in devices],
                e,
                extra={"topic": topic},
            )
            return False
        record_state_report("ok")
        logger.debug("%s reported %d device(s) for %s", lp, len(devices), topic)
        return True


class SyncRequestHandler:
    """Handles SyncRequested events by asking the assistant to re-run SYNC."""

    lp: str = "sync:"

    def __init__(self, cloud: CloudClientProtocol) -> None:
        self.cloud: CloudClientProtocol = cloud

    async def handle_sync_requested(self, _event: SyncRequested) -> None:
        lp = f"{self.lp}request:"
        try:
            await self.cloud.request_sync()
        except HomeGraphError as e:
            record_request_sync("error")
            logger.warning("%s request sync failed: %s", lp, e)
            return
        record_request_sync("ok")
        logger.info("%s request sync sent", lp)
