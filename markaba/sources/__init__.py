"""Clients for the external data sources behind each refreshed domain."""

from .prayer_client import fetch_prayer_times
from .weather_client import fetch_weather

__all__ = ["fetch_prayer_times", "fetch_weather"]
