"""Unit tests for utils."""

import signal
from unittest.mock import patch

from mqtt_google_home.utils import send_sigterm, unflatten


class TestUnflatten:
    """Tests for unflatten"""

    def test_plain_keys(self):
        """Test that undotted keys are unchanged"""
        assert unflatten({"on": True, "brightness": 40}) == {"on": True, "brightness": 40}

    def test_dotted_keys_nest(self):
        """Test that dotted keys share parents"""
        assert unflatten(
            {"color.spectrumRgb": 255, "color.name": "blue", "currentModeSettings.speed": "low"},
        ) == {
            "color": {"spectrumRgb": 255, "name": "blue"},
            "currentModeSettings": {"speed": "low"},
        }

    def test_conflict_keeps_nested(self):
        """Test that a value colliding with a parent loses to the nested form"""
        assert unflatten({"color": "red", "color.name": "blue"}) == {"color": {"name": "blue"}}
        assert unflatten({"color.name": "blue", "color": "red"}) == {"color": {"name": "blue"}}


class TestSendSigterm:
    """Tests for send_sigterm"""

    def test_sends_sigterm_to_self(self):
        """Test that SIGTERM is sent to the current process"""
        with patch("mqtt_google_home.utils.os.kill") as mock_kill, patch(
            "mqtt_google_home.utils.os.getpid",
            return_value=4242,
        ):
            send_sigterm()

        mock_kill.assert_called_once_with(4242, signal.SIGTERM)
