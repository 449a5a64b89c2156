"""Weather and prayer-time refresh services and the builders that wire them to settings."""

from __future__ import annotations

import datetime as dt
import re
from functools import partial
from typing import Any, Dict, Optional

from markaba import config
from markaba.document_store import DocumentStore, build_document_store
from markaba.refresh_service import DataRefreshService, DomainConfig
from markaba.sources import prayer_client, weather_client
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="services")

WEATHER = "weather"
PRAYER = "prayer"

# Daily entries of an IslamicFinder `results` block, in order.
PRAYER_NAMES = ("Fajr", "Duha", "Dhuhr", "Asr", "Maghrib", "Isha")

_PRAYER_TIME = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*(%am%|%pm%)?\s*$")


def parse_prayer_time(value: str) -> Optional[int]:
    """
    Minutes since midnight for an IslamicFinder time such as "4:58 %am%".

    Returns None for anything that does not parse.
    """
    match = _PRAYER_TIME.match(value)
    if match is None:
        return None
    hours, minutes, marker = int(match.group(1)), int(match.group(2)), match.group(3)
    if marker == "%pm%" and hours != 12:
        hours += 12
    elif marker == "%am%" and hours == 12:
        hours = 0
    if hours > 23 or minutes > 59:
        return None
    return hours * 60 + minutes


class WeatherService(DataRefreshService):
    """Current weather for the configured location."""

    def get_forecast(self) -> Optional[Dict[str, Any]]:
        """Return the forecast block of the current payload, or None when the API sent none."""
        document = self.get_current()
        payload = document.payload if isinstance(document.payload, dict) else {}
        forecast = payload.get("forecast") or payload.get("daily")
        if not forecast:
            return None
        return {"forecast": forecast, "lastUpdated": document.last_updated, "location": document.location}


class PrayerService(DataRefreshService):
    """Daily prayer times; the monthly table is fetched on demand and not cached."""

    def get_monthly(self, date: Optional[str] = None) -> Dict[str, Any]:
        """Fetch the whole month containing `date` (default: this month)."""
        return self.fetch(date=date, show_entire_month=True)

    def get_next_prayer(self, now: dt.datetime) -> Optional[Dict[str, Any]]:
        """
        The first prayer of the current document later than `now`.

        `now` must already be in the prayer timezone. When every prayer of
        the day has passed, the first one is returned flagged `tomorrow`.
        Returns None when the document holds no usable times.
        """
        document = self.get_current()
        payload = document.payload if isinstance(document.payload, dict) else {}
        results = payload.get("results")
        if not isinstance(results, dict):
            return None

        prayers = []
        for name in PRAYER_NAMES:
            value = results.get(name)
            if not isinstance(value, str) or not value.strip():
                continue
            minutes = parse_prayer_time(value)
            if minutes is None:
                logger.warning(f"Skipping unparseable {name} time {value!r}")
                continue
            prayers.append(({"name": name, "time": value}, minutes))
        if not prayers:
            return None

        current = now.hour * 60 + now.minute
        upcoming = next((prayer for prayer, minutes in prayers if minutes > current), None)
        if upcoming is None:
            upcoming = {**prayers[0][0], "tomorrow": True}
        return {
            "nextPrayer": upcoming,
            "allPrayers": [prayer for prayer, _ in prayers],
            "date": now.date().isoformat(),
            "location": document.location,
        }


def build_weather_service(
    settings: config.Settings | None = None,
    store: DocumentStore | None = None,
) -> WeatherService:
    """Weather service bound to the RapidAPI client and the configured store."""
    settings = settings or config.settings
    store = store or build_document_store(settings)
    if not settings.weather_api_host:
        logger.warning("MARKABA_WEATHER_API_HOST is not set; weather refreshes will fail until it is")
    fetcher = partial(
        weather_client.fetch_weather,
        settings.latitude,
        settings.longitude,
        host=settings.weather_api_host,
        api_key=settings.weather_api_key,
        language=settings.weather_language,
        timeout=settings.request_timeout_seconds,
    )
    domain = DomainConfig(
        name=WEATHER,
        stale_after=dt.timedelta(hours=settings.weather_stale_after_hours),
        metadata={"location": settings.location},
    )
    return WeatherService(domain, fetcher, store)


def build_prayer_service(
    settings: config.Settings | None = None,
    store: DocumentStore | None = None,
) -> PrayerService:
    """Prayer-times service bound to the IslamicFinder client and the configured store."""
    settings = settings or config.settings
    store = store or build_document_store(settings)
    fetcher = partial(
        prayer_client.fetch_prayer_times,
        settings.latitude,
        settings.longitude,
        timezone=settings.prayer_timezone,
        method=settings.prayer_method,
        juristic=settings.prayer_juristic,
        url=settings.prayer_api_url,
        timeout=settings.request_timeout_seconds,
    )
    domain = DomainConfig(
        name=PRAYER,
        stale_after=dt.timedelta(hours=settings.prayer_stale_after_hours),
        metadata={
            "location": {**settings.location, "timezone": settings.prayer_timezone},
            "settings": {"method": settings.prayer_method, "juristic": settings.prayer_juristic},
        },
    )
    return PrayerService(domain, fetcher, store)


def build_services(
    settings: config.Settings | None = None,
    store: DocumentStore | None = None,
) -> Dict[str, DataRefreshService]:
    """Both domain services sharing one document store, keyed by domain name."""
    settings = settings or config.settings
    store = store or build_document_store(settings)
    return {
        WEATHER: build_weather_service(settings, store),
        PRAYER: build_prayer_service(settings, store),
    }
