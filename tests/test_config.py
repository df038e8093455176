"""Tests for settings loading."""

from unittest import TestCase
from unittest.mock import patch

from pydantic import ValidationError

from bus_relay.config import Settings, get_settings


class TestSettings(TestCase):
    """Tests for Settings and get_settings."""

    def test_defaults(self):
        settings = Settings(_env_file=None)
        self.assertEqual(settings.messages_to_handle_at_once, 10)
        self.assertEqual(settings.service_sleep_time_seconds, 10)
        self.assertFalse(settings.log_messages)
        self.assertEqual(settings.log_dir, "Logs")

    def test_values_come_from_prefixed_environment(self):
        env = {
            "BUS_RELAY_IGNORE_TOPICS": "internal,debug",
            "BUS_RELAY_LOG_MESSAGES": "true",
            "BUS_RELAY_SERVER_WAIT_TIME": "0.2",
        }
        with patch.dict("os.environ", env, clear=False):
            settings = get_settings()
        self.assertEqual(settings.ignore_patterns().topics, ("internal", "debug"))
        self.assertTrue(settings.log_messages)
        self.assertEqual(settings.server_wait_time, 0.2)

    def test_none_overrides_are_ignored(self):
        settings = get_settings(messages_to_handle_at_once=None, log_dir="/tmp/relay")
        self.assertEqual(settings.messages_to_handle_at_once, 10)
        self.assertEqual(settings.log_dir, "/tmp/relay")

    def test_batch_size_must_be_positive(self):
        with self.assertRaises(ValidationError):
            Settings(messages_to_handle_at_once=0)
