"""Client for the RapidAPI lat/lon weather endpoint."""
from __future__ import annotations

from markaba.errors import SourceUnavailable
from markaba.sources import http
from utils.logging_utils import get_tagged_logger, mask_secret

logger = get_tagged_logger(__name__, tag="weather_client")

WEATHER_PATH = "/latlon"


def fetch_weather(
    latitude: str | float,
    longitude: str | float,
    *,
    host: str | None,
    api_key: str | None,
    language: str = "AR",
    timeout: float = http.DEFAULT_TIMEOUT_SECONDS,
) -> dict:
    """Fetch the current weather for the coordinates; returns the response body untouched."""
    if not host:
        raise SourceUnavailable("weather API host is not configured", domain="weather")

    params = {"latitude": latitude, "longitude": longitude, "lang": language}
    headers = {"x-rapidapi-host": host}
    if api_key:
        headers["x-rapidapi-key"] = api_key

    logger.info("Fetching weather data",
                extra={"host": host, "api_key": mask_secret(api_key), "latitude": latitude, "longitude": longitude})
    return http.get_json(f"https://{host}{WEATHER_PATH}", domain="weather", params=params,
                         headers=headers, timeout=timeout)
