"""
Cron-driven refresh jobs.

`Scheduler` keeps a registry of named jobs, each bound to a five-field cron
expression evaluated in a fixed IANA timezone. The timing itself is delegated
to an APScheduler `BackgroundScheduler`; this class owns the registry, the
live job handles, and the error boundary around each firing.

Job lifecycle: registered -> active <-> inactive. `trigger()` works in every
state and does not change it.
"""
from __future__ import annotations

import datetime as dt
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from markaba.documents import CachedDocument, format_timestamp, utc_now
from markaba.errors import DuplicateJobName, UnknownJob
from markaba.refresh_service import DataRefreshService
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="scheduler")

REGISTERED = "registered"
ACTIVE = "active"
INACTIVE = "inactive"


def build_cron_trigger(cron_expression: str, timezone: str) -> CronTrigger:
    """Parse a crontab string in `timezone`; raise ValueError on bad input."""
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"unknown timezone '{timezone}'") from exc
    return CronTrigger.from_crontab(cron_expression, timezone=timezone)


@dataclass
class ScheduledJob:
    """One named job. `handle` is the live APScheduler job while active."""
    name: str
    cron_expression: str
    timezone: str
    action: Callable[[], Any]
    trigger: CronTrigger
    handle: Any = None
    was_started: bool = False
    last_run_at: Optional[str] = None
    last_error: Optional[str] = None
    scheduled_runs: int = 0

    @property
    def state(self) -> str:
        if self.handle is not None:
            return ACTIVE
        return INACTIVE if self.was_started else REGISTERED


class Scheduler:
    """Registry of cron jobs plus start/stop/trigger over an APScheduler backend."""

    def __init__(self, backend=None, *, misfire_grace_seconds: int = 3600) -> None:
        self._backend = backend if backend is not None else BackgroundScheduler(daemon=True)
        self.misfire_grace_seconds = misfire_grace_seconds
        self._jobs: Dict[str, ScheduledJob] = {}
        self._lock = threading.RLock()

    @property
    def jobs(self) -> Dict[str, ScheduledJob]:
        return dict(self._jobs)

    def register_job(
        self,
        name: str,
        cron_expression: str,
        timezone: str,
        action: Callable[[], Any],
    ) -> ScheduledJob:
        """Add a job to the registry without starting it."""
        with self._lock:
            existing = self._jobs.get(name)
            if existing is not None and existing.handle is not None:
                raise DuplicateJobName(f"job '{name}' is already registered and active")
            job = ScheduledJob(
                name=name,
                cron_expression=cron_expression,
                timezone=timezone,
                action=action,
                trigger=build_cron_trigger(cron_expression, timezone),
            )
            self._jobs[name] = job
        logger.info(f"Registered job {name} with cron '{cron_expression}' ({timezone})")
        return job

    def start(self) -> None:
        """Activate every inactive job. Already-active jobs are left alone."""
        with self._lock:
            if not self._backend.running:
                self._backend.start()
            for job in self._jobs.values():
                if job.handle is not None:
                    continue
                job.handle = self._backend.add_job(
                    self._run_scheduled,
                    trigger=job.trigger,
                    args=[job.name],
                    id=job.name,
                    name=job.name,
                    replace_existing=True,
                    coalesce=True,
                    max_instances=1,
                    misfire_grace_time=self.misfire_grace_seconds,
                )
                job.was_started = True
                logger.info(f"Started job {job.name}")

    def stop(self) -> None:
        """Remove every live trigger. In-flight actions run to completion."""
        with self._lock:
            for job in self._jobs.values():
                if job.handle is None:
                    continue
                try:
                    job.handle.remove()
                except JobLookupError:
                    logger.debug(f"Job {job.name} was already gone from the backend")
                job.handle = None
                logger.info(f"Stopped job {job.name}")

    def shutdown(self) -> None:
        """Stop all jobs and the backend's worker thread; for process exit."""
        self.stop()
        with self._lock:
            if self._backend.running:
                self._backend.shutdown(wait=False)
        logger.info("Scheduler shut down")

    def trigger(self, name: str) -> Any:
        """Run a job's action now, outside the schedule, and surface any error."""
        job = self._get(name)
        logger.info(f"Manually triggering {name}")
        try:
            result = job.action()
        except Exception as exc:
            with self._lock:
                job.last_error = str(exc)
            logger.error(f"Manual run of {name} failed: {exc}")
            raise
        with self._lock:
            job.last_run_at = format_timestamp(utc_now())
            job.last_error = None
        logger.info(f"Manual run of {name} completed")
        return result

    def initialize(self, service: DataRefreshService) -> Optional[CachedDocument]:
        """
        Make sure `service` has a usable cache before requests are served.

        Refreshes when the cache is missing or stale. Failures are logged and
        swallowed; returns whatever document is available afterwards.
        """
        existing = service.load()
        try:
            if existing is None:
                logger.info(f"No {service.name} data found. Fetching initial data...")
                return service.refresh()
            if service.is_stale(existing.last_updated):
                logger.info(f"{service.name} data is stale (last updated {existing.last_updated}). Updating...")
                return service.refresh()
        except Exception as exc:
            logger.error(f"Failed to initialize {service.name} data: {exc}")
            return existing
        logger.info(f"{service.name} data already exists. Last updated: {existing.last_updated}")
        return existing

    def initialize_all(self, services: Iterable[DataRefreshService]) -> Dict[str, Optional[CachedDocument]]:
        return {service.name: self.initialize(service) for service in services}

    def status(self) -> Dict[str, Any]:
        """Active job names and each job's schedule, for health checks."""
        with self._lock:
            jobs = {}
            for job in self._jobs.values():
                next_run = getattr(job.handle, "next_run_time", None) if job.handle is not None else None
                jobs[job.name] = {
                    "cronExpression": job.cron_expression,
                    "timezone": job.timezone,
                    "state": job.state,
                    "nextRun": next_run.isoformat() if isinstance(next_run, dt.datetime) else None,
                    "lastRun": job.last_run_at,
                    "lastError": job.last_error,
                    "scheduledRuns": job.scheduled_runs,
                }
            active = [name for name, info in jobs.items() if info["state"] == ACTIVE]
        return {"isRunning": bool(active), "activeJobs": active, "jobs": jobs}

    def _get(self, name: str) -> ScheduledJob:
        with self._lock:
            job = self._jobs.get(name)
        if job is None:
            raise UnknownJob(f"no job registered as '{name}'")
        return job

    def _run_scheduled(self, name: str) -> None:
        """Backend entry point for a timed firing; never raises."""
        with self._lock:
            job = self._jobs.get(name)
            if job is None:
                return
            job.scheduled_runs += 1
            job.last_run_at = format_timestamp(utc_now())
            started_at = job.last_run_at
        logger.info(f"Running scheduled {name}...")
        try:
            job.action()
        except Exception as exc:
            with self._lock:
                job.last_error = str(exc)
            logger.exception(f"Scheduled {name} failed: {exc}", extra={"job": name, "at": started_at})
            return
        with self._lock:
            job.last_error = None
        logger.info(f"Scheduled {name} completed successfully")
