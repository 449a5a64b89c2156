"""HTTP API over the weather/prayer refresh services and the scheduler."""

import datetime as dt
import hmac
from typing import Any, Optional
from zoneinfo import ZoneInfo

import redis
from fastapi import APIRouter, Body, Depends, Header, HTTPException, Request, status
from pydantic import BaseModel

from .errors import RefreshError, UnknownJob
from .runtime import Runtime
from .services import PRAYER, WEATHER
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="app/api")


class Envelope(BaseModel):
    """Response wrapper shared by every endpoint."""
    success: bool = True
    data: Any = None
    message: str


class PrayerUpdateRequest(BaseModel):
    """Optional body for a manual prayer-times update."""
    date: Optional[str] = None
    show_entire_month: bool = False


def get_runtime(request: Request) -> Runtime:
    """The Runtime created by the app factory."""
    return request.app.state.runtime


def require_api_key(
    runtime: Runtime = Depends(get_runtime),
    x_api_key: str | None = Header(default=None),
):
    """
    Guard operator endpoints with the X-API-Key header, checked against the
    Redis key set (if configured) and then the static `api_key` setting.
    """
    settings = runtime.settings
    redis_client = runtime.api_key_client

    # No key configured anywhere: dev mode, allow.
    if not settings.api_key and redis_client is None:
        logger.debug("No API key configured; allowing operator request")
        return

    if not x_api_key:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing API key")

    if redis_client is not None:
        try:
            if redis_client.sismember(settings.api_key_redis_set, x_api_key):
                return
        except redis.RedisError as exc:
            logger.warning("Redis API key lookup error; falling back to static key", extra={"error": str(exc)})

    if settings.api_key and hmac.compare_digest(str(x_api_key), str(settings.api_key)):
        return

    logger.debug("Invalid API key provided")
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")


def _unavailable(what: str, exc: Exception) -> HTTPException:
    """Map a refresh failure to a 503 without leaking stack traces."""
    logger.error(f"{what}: {exc}")
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=f"{what}: {exc}")


router = APIRouter()


# ---------------------------------------------------------------------------
# Weather
# ---------------------------------------------------------------------------

@router.get("/weather", response_model=Envelope)
def get_weather(runtime: Runtime = Depends(get_runtime)):
    """Current weather, refreshed first if the cache is stale."""
    try:
        document = runtime.service(WEATHER).get_current()
    except RefreshError as exc:
        raise _unavailable("Failed to retrieve weather data", exc)
    return Envelope(data=document.to_dict(), message="Weather data retrieved successfully")


@router.get("/weather/status", response_model=Envelope)
def get_weather_status(runtime: Runtime = Depends(get_runtime)):
    """Freshness of the cached weather document."""
    info = runtime.service(WEATHER).status()
    return Envelope(data=info, message=_status_message("Weather", info))


@router.get("/weather/forecast", response_model=Envelope)
def get_weather_forecast(runtime: Runtime = Depends(get_runtime)):
    """Forecast block of the cached weather payload, if the provider sent one."""
    try:
        forecast = runtime.service(WEATHER).get_forecast()
    except RefreshError as exc:
        raise _unavailable("Failed to retrieve forecast data", exc)
    if forecast is None:
        return Envelope(data=None, message="No forecast data available")
    return Envelope(data=forecast, message="Forecast data retrieved successfully")


@router.post("/weather/update", response_model=Envelope, dependencies=[Depends(require_api_key)])
def update_weather(runtime: Runtime = Depends(get_runtime)):
    """Operator refresh of the weather cache."""
    try:
        document = runtime.trigger_domain(WEATHER)
    except RefreshError as exc:
        raise _unavailable("Failed to update weather data", exc)
    return Envelope(data=document.to_dict(), message="Weather data updated successfully")


# ---------------------------------------------------------------------------
# Prayer times
# ---------------------------------------------------------------------------

@router.get("/prayer", response_model=Envelope)
def get_prayer(date: Optional[str] = None, force_update: bool = False,
               runtime: Runtime = Depends(get_runtime)):
    """Current prayer times; `force_update=true` bypasses the cache."""
    try:
        document = runtime.service(PRAYER).get_current(force_refresh=force_update, date=date)
    except RefreshError as exc:
        raise _unavailable("Failed to retrieve prayer times", exc)
    return Envelope(data=document.to_dict(), message="Prayer times retrieved successfully")


@router.get("/prayer/current", response_model=Envelope)
@router.get("/prayer/today", response_model=Envelope)
def get_prayer_today(runtime: Runtime = Depends(get_runtime)):
    """Today's prayer times, with "today" taken in the prayer timezone."""
    today = dt.datetime.now(ZoneInfo(runtime.settings.prayer_timezone)).date().isoformat()
    try:
        document = runtime.service(PRAYER).get_current(date=today)
    except RefreshError as exc:
        raise _unavailable("Failed to retrieve today's prayer times", exc)
    return Envelope(data=document.to_dict(), message="Today's prayer times retrieved successfully")


@router.get("/prayer/next", response_model=Envelope)
def get_next_prayer(runtime: Runtime = Depends(get_runtime)):
    """The next prayer after the current time in the prayer timezone."""
    now = dt.datetime.now(ZoneInfo(runtime.settings.prayer_timezone))
    try:
        data = runtime.service(PRAYER).get_next_prayer(now)
    except RefreshError as exc:
        raise _unavailable("Failed to retrieve next prayer time", exc)
    if data is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No valid prayer times found")
    return Envelope(data=data, message="Next prayer time retrieved successfully")


@router.get("/prayer/monthly", response_model=Envelope)
def get_prayer_monthly(date: Optional[str] = None, runtime: Runtime = Depends(get_runtime)):
    """Whole-month table, fetched live and not cached."""
    try:
        data = runtime.service(PRAYER).get_monthly(date)
    except RefreshError as exc:
        raise _unavailable("Failed to retrieve monthly prayer times", exc)
    return Envelope(data=data, message="Monthly prayer times retrieved successfully")


@router.get("/prayer/status", response_model=Envelope)
def get_prayer_status(runtime: Runtime = Depends(get_runtime)):
    """Freshness of the cached prayer-times document."""
    info = runtime.service(PRAYER).status()
    return Envelope(data=info, message=_status_message("Prayer times", info))


@router.post("/prayer/update", response_model=Envelope, dependencies=[Depends(require_api_key)])
def update_prayer(body: Optional[PrayerUpdateRequest] = Body(default=None),
                  runtime: Runtime = Depends(get_runtime)):
    """Operator refresh of the prayer cache, optionally for a given date or month."""
    try:
        if body is None or (body.date is None and not body.show_entire_month):
            document = runtime.trigger_domain(PRAYER)
        else:
            document = runtime.service(PRAYER).refresh(date=body.date,
                                                       show_entire_month=body.show_entire_month)
    except RefreshError as exc:
        raise _unavailable("Failed to update prayer times", exc)
    return Envelope(data=document.to_dict(), message="Prayer times updated successfully")


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------

@router.get("/scheduler/status", response_model=Envelope)
def get_scheduler_status(runtime: Runtime = Depends(get_runtime)):
    """Active jobs and their cron schedules."""
    return Envelope(data=runtime.scheduler.status(), message="Scheduler status retrieved successfully")


@router.post("/scheduler/jobs/{name}/trigger", response_model=Envelope,
             dependencies=[Depends(require_api_key)])
def trigger_job(name: str, runtime: Runtime = Depends(get_runtime)):
    """Run a registered job now, outside its schedule."""
    try:
        result = runtime.scheduler.trigger(name)
    except UnknownJob as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except Exception as exc:
        raise _unavailable(f"Job {name} failed", exc)
    data = result.to_dict() if hasattr(result, "to_dict") else None
    return Envelope(data=data, message=f"Job {name} completed successfully")


def _status_message(label: str, info: dict) -> str:
    if info["status"] == "no_data":
        return f"No {label.lower()} data available"
    if info["isStale"]:
        return f"{label} data is stale"
    return f"{label} data is up to date"
