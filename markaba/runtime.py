"""Process-lifetime owner of the refresh services and their scheduler."""

from __future__ import annotations

from typing import Dict, Optional

import redis

from markaba import config
from markaba.document_store import DocumentStore
from markaba.refresh_service import DataRefreshService
from markaba.scheduler import Scheduler
from markaba.services import PRAYER, WEATHER, build_services
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="runtime")

# Scheduler job name for each domain's refresh.
JOB_NAMES = {
    WEATHER: "weatherUpdate",
    PRAYER: "prayerUpdate",
}


class Runtime:
    """
    Services plus scheduler, created once by the entrypoint and handed to
    whatever needs them (FastAPI lifespan, request handlers, the CLI).
    """

    def __init__(self, settings: config.Settings, services: Dict[str, DataRefreshService],
                 scheduler: Scheduler, *, api_key_client=None) -> None:
        self.settings = settings
        self.services = services
        self.scheduler = scheduler
        # Redis client holding the operator API key set, when configured
        self.api_key_client = api_key_client
        self.started = False

    @classmethod
    def from_settings(
        cls,
        settings: config.Settings | None = None,
        *,
        store: Optional[DocumentStore] = None,
        backend=None,
    ) -> "Runtime":
        """Build services and register one refresh job per domain (not started)."""
        settings = settings or config.settings
        services = build_services(settings, store)
        scheduler = Scheduler(backend, misfire_grace_seconds=settings.misfire_grace_seconds)
        schedules = {
            WEATHER: settings.weather_update_schedule,
            PRAYER: settings.prayer_update_schedule,
        }
        for domain, service in services.items():
            scheduler.register_job(JOB_NAMES[domain], schedules[domain], settings.scheduler_timezone,
                                   service.refresh)
        api_key_client = None
        if settings.api_key_redis_url:
            api_key_client = redis.Redis.from_url(settings.api_key_redis_url)
            logger.info("Operator API key checks will use Redis", extra={"key_set": settings.api_key_redis_set})
        return cls(settings, services, scheduler, api_key_client=api_key_client)

    def service(self, domain: str) -> DataRefreshService:
        """Return the service for `domain`; KeyError if there is none."""
        return self.services[domain]

    def startup(self, *, initialize: bool = True) -> None:
        """Warm every cache, then start the cron jobs (when enabled)."""
        if initialize:
            logger.info("Initializing cached data...")
            self.scheduler.initialize_all(self.services.values())
        if self.settings.scheduler_enabled:
            self.scheduler.start()
            logger.info("Scheduler service started", extra={"jobs": list(JOB_NAMES.values())})
        else:
            logger.info("Scheduler disabled (MARKABA_SCHEDULER_ENABLED=false); manual triggers only")
        self.started = True

    def shutdown(self) -> None:
        """Release the scheduler's timers; safe to call more than once."""
        if not self.started:
            return
        logger.info("Shutting down scheduler...")
        self.scheduler.shutdown()
        self.started = False

    def trigger_domain(self, domain: str):
        """Run `domain`'s refresh job immediately and return the new document."""
        if domain not in JOB_NAMES:
            raise KeyError(domain)
        return self.scheduler.trigger(JOB_NAMES[domain])
