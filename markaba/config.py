"""Service configuration pulled from environment variables via pydantic."""
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from apscheduler.triggers.cron import CronTrigger
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from utils.logging_utils import get_tagged_logger, mask_secret
logger = get_tagged_logger(__name__, tag="config")

DEFAULT_TIMEZONE = "Asia/Beirut"


class Settings(BaseSettings):
    """Environment-driven configuration for the Markaba refresh service."""
    model_config = SettingsConfigDict(env_prefix="MARKABA_", extra="ignore")

    # Fixed location shared by both domains (Beirut).
    latitude: str = "33.8547"
    longitude: str = "35.8623"
    location_country: str = "Lebanon"
    location_city: str = "Beirut"

    weather_api_key: str | None = None
    weather_api_host: str | None = None
    weather_language: str = "AR"
    weather_data_file: str = "data/weather.json"
    weather_update_schedule: str = "0 6 * * *"  # 06:00 daily
    weather_stale_after_hours: float = 24

    prayer_api_url: str = "https://www.islamicfinder.us/index.php/api/prayer_times"
    prayer_timezone: str = DEFAULT_TIMEZONE
    prayer_method: str = "2"  # Islamic Society of North America
    prayer_juristic: str = "0"  # Shafi
    prayer_data_file: str = "data/prayer.json"
    prayer_update_schedule: str = "0 5 * * *"  # 05:00 daily
    prayer_stale_after_hours: float = 24

    scheduler_timezone: str = DEFAULT_TIMEZONE
    scheduler_enabled: bool = True
    misfire_grace_seconds: int = 3600
    request_timeout_seconds: float = 10

    document_store: str = "file"  # options: file, memory, redis
    document_redis_url: str | None = None
    document_redis_prefix: str = "markaba:document:"

    api_key: str | None = None
    api_key_redis_url: str | None = None
    api_key_redis_set: str = "api_keys"

    log_level: str = "INFO"

    @field_validator("weather_update_schedule", "prayer_update_schedule", mode="after")
    @classmethod
    def validate_cron(cls, v: str) -> str:
        """Reject cron strings at load time instead of on the first tick."""
        try:
            CronTrigger.from_crontab(v)
        except ValueError as exc:
            raise ValueError(f"invalid cron expression '{v}': {exc}") from exc
        return v

    @field_validator("scheduler_timezone", "prayer_timezone", mode="after")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Timezones must be IANA names, never host-local time."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown timezone '{v}'") from exc
        return v

    @field_validator("weather_api_host", mode="after")
    @classmethod
    def strip_scheme(cls, v: str | None) -> str | None:
        """Accept the RapidAPI host with or without a scheme."""
        if v is None:
            return v
        host = v.strip().removeprefix("https://").removeprefix("http://")
        return host.rstrip("/") or None

    @field_validator("document_store", mode="after")
    @classmethod
    def normalize_store(cls, v: str) -> str:
        """Lower-case the store name and check it is known."""
        v = v.lower()
        if v not in ("file", "memory", "redis"):
            raise ValueError(f"unknown document store '{v}'")
        return v

    @property
    def location(self) -> dict:
        """Static location metadata echoed into every cached document."""
        return {
            "country": self.location_country,
            "city": self.location_city,
            "latitude": self.latitude,
            "longitude": self.longitude,
        }


settings = Settings()


if __name__ == "__main__":
    logger.logger.setLevel("DEBUG")
    dump = settings.model_dump()
    dump["weather_api_key"] = mask_secret(settings.weather_api_key)
    dump["api_key"] = mask_secret(settings.api_key)
    logger.debug(f"Loaded settings: {dump}")
