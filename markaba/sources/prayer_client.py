"""Client for the IslamicFinder prayer-times API."""
from __future__ import annotations

from typing import Optional

from markaba.errors import MalformedResponse
from markaba.sources import http
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="prayer_client")

ISLAMIC_FINDER_URL = "https://www.islamicfinder.us/index.php/api/prayer_times"


def fetch_prayer_times(
    latitude: str | float,
    longitude: str | float,
    *,
    timezone: str = "Asia/Beirut",
    method: str = "2",
    juristic: str = "0",
    date: Optional[str] = None,
    show_entire_month: bool = False,
    url: str = ISLAMIC_FINDER_URL,
    timeout: float = http.DEFAULT_TIMEOUT_SECONDS,
) -> dict:
    """
    Fetch prayer times for one day (or the whole month of `date`).

    `date` is YYYY-MM-DD; the API defaults to today in `timezone`. The API
    reports failures in-band with `success: false`, which is raised as
    MalformedResponse carrying the API's message.
    """
    params = {
        "latitude": latitude,
        "longitude": longitude,
        "timezone": timezone,
        "method": method,
        "juristic": juristic,
    }
    if date:
        params["date"] = date
    if show_entire_month:
        params["show_entire_month"] = "1"

    logger.info("Fetching prayer times", extra={"date": date, "month": show_entire_month})
    data = http.get_json(url, domain="prayer", params=params, timeout=timeout)

    if not data.get("success"):
        message = data.get("message") or "Failed to fetch prayer times"
        raise MalformedResponse(f"Failed to parse prayer response: {message}", domain="prayer")
    return data
