import os
import unittest

from pydantic import ValidationError

from markaba.config import Settings


class _EnvSwap:
    """Set MARKABA_* variables for one test and restore them afterwards."""

    def __init__(self, **values):
        self.values = values
        self.previous = {}

    def __enter__(self):
        for key, value in self.values.items():
            self.previous[key] = os.environ.get(key)
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value
        return self

    def __exit__(self, *exc):
        for key, value in self.previous.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value


class TestConfig(unittest.TestCase):
    def test_settings_defaults(self):
        with _EnvSwap(MARKABA_WEATHER_UPDATE_SCHEDULE=None, MARKABA_SCHEDULER_TIMEZONE=None,
                      MARKABA_PRAYER_METHOD=None, MARKABA_DOCUMENT_STORE=None):
            s = Settings()
        self.assertEqual(s.weather_update_schedule, "0 6 * * *")
        self.assertEqual(s.prayer_update_schedule, "0 5 * * *")
        self.assertEqual(s.scheduler_timezone, "Asia/Beirut")
        self.assertEqual(s.prayer_method, "2")
        self.assertEqual(s.prayer_juristic, "0")
        self.assertEqual(s.weather_stale_after_hours, 24)
        self.assertEqual(s.document_store, "file")
        self.assertEqual(s.location["city"], "Beirut")
        self.assertEqual(s.location["latitude"], "33.8547")

    def test_settings_env_override(self):
        with _EnvSwap(MARKABA_WEATHER_UPDATE_SCHEDULE="30 7 * * 1-5",
                      MARKABA_PRAYER_STALE_AFTER_HOURS="12",
                      MARKABA_SCHEDULER_ENABLED="false"):
            s = Settings()
        self.assertEqual(s.weather_update_schedule, "30 7 * * 1-5")
        self.assertEqual(s.prayer_stale_after_hours, 12)
        self.assertFalse(s.scheduler_enabled)

    def test_invalid_cron_rejected(self):
        with self.assertRaises(ValidationError):
            Settings(weather_update_schedule="every morning")
        with self.assertRaises(ValidationError):
            Settings(prayer_update_schedule="0 25 * * *")

    def test_invalid_timezone_rejected(self):
        with self.assertRaises(ValidationError):
            Settings(scheduler_timezone="Mars/Olympus_Mons")

    def test_weather_host_scheme_stripped(self):
        s = Settings(weather_api_host="https://weather.example.com/")
        self.assertEqual(s.weather_api_host, "weather.example.com")

    def test_document_store_normalized(self):
        self.assertEqual(Settings(document_store="Memory").document_store, "memory")
        with self.assertRaises(ValidationError):
            Settings(document_store="sqlite")


if __name__ == "__main__":
    unittest.main()
