"""Unit tests for state reporting and sync requests."""

import pytest

from mqtt_google_home.events import SyncRequested
from mqtt_google_home.exceptions import HomeGraphAuthError, HomeGraphError
from mqtt_google_home.mqtt.state_updates import StateUpdateHelper, SyncRequestHandler


class TestStateUpdateHelper:
    """Tests for StateUpdateHelper"""

    def test_devices_to_report(self, repository, state_cache, mock_cloud):
        """Test that only enabled devices with will_report_state are reported"""
        helper = StateUpdateHelper(repository, state_cache, mock_cloud)

        assert [d.id for d in helper.devices_to_report("home/light1/state")] == ["light1"]
        assert helper.devices_to_report("home/light2/state") == []
        assert helper.devices_to_report("home/fan/speed") == []

    @pytest.mark.asyncio
    async def test_report_sent(self, repository, state_cache, mock_cloud):
        """Test that a change to a reporting device pushes its state"""
        helper = StateUpdateHelper(repository, state_cache, mock_cloud)

        assert await helper.report_topic_change("home/light1/state") is True

        mock_cloud.send_state_updates.assert_awaited_once()
        devices, cache = mock_cloud.send_state_updates.await_args.args
        assert [d.id for d in devices] == ["light1"]
        assert cache is state_cache

    @pytest.mark.asyncio
    async def test_will_report_state_false(self, repository, state_cache, mock_cloud):
        """Test that devices not reporting state are never pushed"""
        helper = StateUpdateHelper(repository, state_cache, mock_cloud)

        assert await helper.report_topic_change("home/fan/speed") is False
        mock_cloud.send_state_updates.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_disabled_device(self, repository, state_cache, mock_cloud):
        """Test that disabled devices are never pushed"""
        helper = StateUpdateHelper(repository, state_cache, mock_cloud)

        assert await helper.report_topic_change("home/light2/state") is False
        mock_cloud.send_state_updates.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cloud_error_swallowed(self, repository, state_cache, mock_cloud):
        """Test that a Home Graph failure is logged, not raised"""
        mock_cloud.send_state_updates.side_effect = HomeGraphError("unavailable", status=503, attempts=3)
        helper = StateUpdateHelper(repository, state_cache, mock_cloud)

        assert await helper.report_topic_change("home/light1/state") is False


class TestSyncRequestHandler:
    """Tests for SyncRequestHandler"""

    @pytest.mark.asyncio
    async def test_request_sync(self, mock_cloud):
        """Test that a sync request reaches the cloud client"""
        await SyncRequestHandler(mock_cloud).handle_sync_requested(SyncRequested())

        mock_cloud.request_sync.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_request_sync_failure_swallowed(self, mock_cloud):
        """Test that an auth failure does not propagate into the hub"""
        mock_cloud.request_sync.side_effect = HomeGraphAuthError("no token")

        await SyncRequestHandler(mock_cloud).handle_sync_requested(SyncRequested())

        mock_cloud.request_sync.assert_awaited_once()
