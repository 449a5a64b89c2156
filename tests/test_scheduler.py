import datetime as dt
import threading
import unittest
from zoneinfo import ZoneInfo

from apscheduler.jobstores.base import JobLookupError

from markaba.document_store.memory import InMemoryDocumentStore
from markaba.documents import CachedDocument, format_timestamp
from markaba.errors import DuplicateJobName, SourceUnavailable, UnknownJob
from markaba.refresh_service import DataRefreshService, DomainConfig
from markaba.scheduler import ACTIVE, INACTIVE, REGISTERED, Scheduler

BEIRUT = ZoneInfo("Asia/Beirut")


class FakeJob:
    def __init__(self, backend, job_id, func, trigger, args):
        self.backend = backend
        self.id = job_id
        self.func = func
        self.trigger = trigger
        self.args = args
        self.next_run_time = None

    def remove(self):
        if self.id not in self.backend.jobs:
            raise JobLookupError(self.id)
        del self.backend.jobs[self.id]


class FakeBackend:
    """Stands in for BackgroundScheduler; `advance` replays cron ticks synchronously."""

    def __init__(self):
        self.running = False
        self.jobs = {}
        self.add_calls = 0
        self.shutdowns = 0

    def start(self):
        self.running = True

    def shutdown(self, wait=True):
        self.running = False
        self.shutdowns += 1

    def add_job(self, func, trigger=None, args=None, id=None, **kwargs):
        self.add_calls += 1
        job = FakeJob(self, id, func, trigger, args or [])
        self.jobs[id] = job
        return job

    def advance(self, start, end):
        """Fire every job whose trigger falls within [start, end]; return the count."""
        fired = 0
        for job in list(self.jobs.values()):
            when = job.trigger.get_next_fire_time(None, start)
            while when is not None and when <= end:
                job.func(*job.args)
                fired += 1
                when = job.trigger.get_next_fire_time(when, when + dt.timedelta(microseconds=1))
        return fired


class Counter:
    def __init__(self, error=None):
        self.calls = 0
        self.error = error

    def __call__(self):
        self.calls += 1
        if self.error:
            raise self.error
        return self.calls


class TestRegistration(unittest.TestCase):
    def test_register_does_not_start(self):
        backend = FakeBackend()
        scheduler = Scheduler(backend)
        job = scheduler.register_job("weatherUpdate", "0 6 * * *", "Asia/Beirut", Counter())
        self.assertEqual(job.state, REGISTERED)
        self.assertEqual(backend.add_calls, 0)
        self.assertFalse(backend.running)

    def test_invalid_cron_fails_fast(self):
        scheduler = Scheduler(FakeBackend())
        with self.assertRaises(ValueError):
            scheduler.register_job("bad", "0 6 * *", "Asia/Beirut", Counter())
        with self.assertRaises(ValueError):
            scheduler.register_job("bad", "61 6 * * *", "Asia/Beirut", Counter())

    def test_unknown_timezone_fails_fast(self):
        scheduler = Scheduler(FakeBackend())
        with self.assertRaises(ValueError):
            scheduler.register_job("bad", "0 6 * * *", "Mars/Olympus", Counter())

    def test_duplicate_live_name_rejected(self):
        scheduler = Scheduler(FakeBackend())
        scheduler.register_job("weatherUpdate", "0 6 * * *", "Asia/Beirut", Counter())
        scheduler.start()
        with self.assertRaises(DuplicateJobName):
            scheduler.register_job("weatherUpdate", "0 7 * * *", "Asia/Beirut", Counter())

    def test_reregister_after_stop_replaces_job(self):
        scheduler = Scheduler(FakeBackend())
        scheduler.register_job("weatherUpdate", "0 6 * * *", "Asia/Beirut", Counter())
        scheduler.start()
        scheduler.stop()
        scheduler.register_job("weatherUpdate", "0 7 * * *", "Asia/Beirut", Counter())
        self.assertEqual(scheduler.status()["jobs"]["weatherUpdate"]["cronExpression"], "0 7 * * *")


class TestLifecycle(unittest.TestCase):
    def setUp(self):
        self.backend = FakeBackend()
        self.scheduler = Scheduler(self.backend)
        self.action = Counter()
        self.scheduler.register_job("everyMinute", "* * * * *", "Asia/Beirut", self.action)
        self.t0 = dt.datetime(2026, 1, 15, 12, 0, 30, tzinfo=BEIRUT)

    def test_start_fires_on_schedule(self):
        self.scheduler.start()
        fired = self.backend.advance(self.t0, self.t0 + dt.timedelta(minutes=2))
        self.assertEqual(fired, 2)
        self.assertEqual(self.action.calls, 2)

    def test_start_twice_registers_once(self):
        self.scheduler.start()
        self.scheduler.start()
        self.assertEqual(self.backend.add_calls, 1)
        self.assertEqual(len(self.backend.jobs), 1)
        self.backend.advance(self.t0, self.t0 + dt.timedelta(minutes=2))
        self.assertEqual(self.action.calls, 2)

    def test_stop_halts_firing(self):
        self.scheduler.start()
        self.scheduler.stop()
        fired = self.backend.advance(self.t0, self.t0 + dt.timedelta(minutes=2))
        self.assertEqual(fired, 0)
        self.assertEqual(self.action.calls, 0)
        self.assertEqual(self.scheduler.jobs["everyMinute"].state, INACTIVE)

    def test_stop_when_stopped_is_noop(self):
        self.scheduler.stop()
        self.scheduler.start()
        self.scheduler.stop()
        self.scheduler.stop()
        self.assertEqual(self.backend.jobs, {})

    def test_restart_after_stop(self):
        self.scheduler.start()
        self.scheduler.stop()
        self.scheduler.start()
        self.assertEqual(self.scheduler.jobs["everyMinute"].state, ACTIVE)
        self.assertEqual(self.backend.advance(self.t0, self.t0 + dt.timedelta(minutes=1)), 1)

    def test_shutdown_stops_backend(self):
        self.scheduler.start()
        self.scheduler.shutdown()
        self.assertFalse(self.backend.running)
        self.assertEqual(self.backend.jobs, {})

    def test_failed_firing_does_not_stop_later_firings(self):
        failing = Counter(error=RuntimeError("boom"))
        backend = FakeBackend()
        scheduler = Scheduler(backend)
        scheduler.register_job("flaky", "* * * * *", "Asia/Beirut", failing)
        scheduler.start()

        fired = backend.advance(self.t0, self.t0 + dt.timedelta(minutes=3))

        self.assertEqual(fired, 3)
        self.assertEqual(failing.calls, 3)
        info = scheduler.status()["jobs"]["flaky"]
        self.assertEqual(info["lastError"], "boom")
        self.assertEqual(info["scheduledRuns"], 3)

    def test_status_lists_active_jobs(self):
        self.scheduler.register_job("daily", "0 6 * * *", "Asia/Beirut", Counter())
        self.assertEqual(self.scheduler.status()["activeJobs"], [])
        self.scheduler.start()
        status = self.scheduler.status()
        self.assertTrue(status["isRunning"])
        self.assertEqual(sorted(status["activeJobs"]), ["daily", "everyMinute"])
        self.assertEqual(status["jobs"]["daily"]["cronExpression"], "0 6 * * *")


class TestTrigger(unittest.TestCase):
    def test_trigger_before_start_runs_once(self):
        scheduler = Scheduler(FakeBackend())
        action = Counter()
        scheduler.register_job("weatherUpdate", "0 6 * * *", "Asia/Beirut", action)
        self.assertEqual(scheduler.trigger("weatherUpdate"), 1)
        self.assertEqual(action.calls, 1)
        self.assertEqual(scheduler.jobs["weatherUpdate"].state, REGISTERED)

    def test_trigger_surfaces_errors(self):
        scheduler = Scheduler(FakeBackend())
        action = Counter(error=SourceUnavailable("down", domain="weather"))
        scheduler.register_job("weatherUpdate", "0 6 * * *", "Asia/Beirut", action)
        with self.assertRaises(SourceUnavailable):
            scheduler.trigger("weatherUpdate")
        self.assertEqual(action.calls, 1)

    def test_trigger_unknown_job(self):
        with self.assertRaises(UnknownJob):
            Scheduler(FakeBackend()).trigger("nope")


class TestConcurrentRuns(unittest.TestCase):
    def test_action_runs_without_holding_the_registry_lock(self):
        scheduler = Scheduler(FakeBackend())
        acquired = []

        def action():
            # status() from a request thread must not block on a running job.
            worker = threading.Thread(target=lambda: acquired.append(scheduler._lock.acquire(timeout=1)))
            worker.start()
            worker.join()
            if acquired[-1]:
                scheduler._lock.release()

        scheduler.register_job("weatherUpdate", "0 6 * * *", "Asia/Beirut", action)
        scheduler._run_scheduled("weatherUpdate")
        scheduler.trigger("weatherUpdate")
        self.assertEqual(acquired, [True, True])

    def test_parallel_firings_and_triggers_keep_counts(self):
        scheduler = Scheduler(FakeBackend())
        scheduler.register_job("prayerUpdate", "0 5 * * *", "Asia/Beirut", Counter())

        threads = [threading.Thread(target=scheduler._run_scheduled, args=("prayerUpdate",)) for _ in range(20)]
        threads += [threading.Thread(target=scheduler.trigger, args=("prayerUpdate",)) for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        info = scheduler.status()["jobs"]["prayerUpdate"]
        self.assertEqual(info["scheduledRuns"], 20)
        self.assertIsNone(info["lastError"])
        self.assertIsNotNone(info["lastRun"])


class TestWeatherScenario(unittest.TestCase):
    def test_six_am_beirut_tick_and_concurrent_manual_trigger(self):
        fetches = []

        def fetch(**query):
            fetches.append(query)
            return {"reading": len(fetches)}

        service = DataRefreshService(DomainConfig(name="weather"), fetch, InMemoryDocumentStore())
        backend = FakeBackend()
        scheduler = Scheduler(backend)
        scheduler.register_job("weatherUpdate", "0 6 * * *", "Asia/Beirut", service.refresh)
        scheduler.start()

        # 05:59 -> 06:00 Beirut is 03:59 -> 04:00 UTC in January
        start = dt.datetime(2026, 1, 15, 3, 59, tzinfo=dt.timezone.utc)
        fired = backend.advance(start, start + dt.timedelta(minutes=1))
        self.assertEqual(fired, 1)
        self.assertEqual(len(fetches), 1)

        scheduler.trigger("weatherUpdate")
        self.assertEqual(len(fetches), 2)
        self.assertEqual(service.load().payload, {"reading": 2})

    def test_no_tick_at_six_am_host_utc(self):
        backend = FakeBackend()
        scheduler = Scheduler(backend)
        action = Counter()
        scheduler.register_job("weatherUpdate", "0 6 * * *", "Asia/Beirut", action)
        scheduler.start()
        start = dt.datetime(2026, 1, 15, 5, 59, tzinfo=dt.timezone.utc)
        self.assertEqual(backend.advance(start, start + dt.timedelta(minutes=2)), 0)


class TestInitialize(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryDocumentStore()
        self.calls = 0
        self.error = None

        def fetch(**query):
            self.calls += 1
            if self.error:
                raise self.error
            return {"reading": self.calls}

        self.service = DataRefreshService(DomainConfig(name="prayer"), fetch, self.store)
        self.scheduler = Scheduler(FakeBackend())

    def test_initialize_without_cache_fetches_once(self):
        before = dt.datetime.now(dt.timezone.utc)
        doc = self.scheduler.initialize(self.service)
        after = dt.datetime.now(dt.timezone.utc)

        self.assertEqual(self.calls, 1)
        stored = self.store.load("prayer")
        self.assertEqual(stored, doc)
        self.assertTrue(before <= stored.last_updated_at <= after)

    def test_initialize_with_fresh_cache_does_not_fetch(self):
        self.service.persist({"reading": "cached"})
        self.scheduler.initialize(self.service)
        self.assertEqual(self.calls, 0)

    def test_initialize_with_stale_cache_refreshes(self):
        old = dt.datetime.now(dt.timezone.utc) - dt.timedelta(days=2)
        self.store.save("prayer", CachedDocument(payload={"reading": "old"}, last_updated=format_timestamp(old)))
        doc = self.scheduler.initialize(self.service)
        self.assertEqual(self.calls, 1)
        self.assertEqual(doc.payload, {"reading": 1})

    def test_initialize_swallows_errors(self):
        self.error = SourceUnavailable("down", domain="prayer")
        self.assertIsNone(self.scheduler.initialize(self.service))
        self.assertEqual(self.calls, 1)


if __name__ == "__main__":
    unittest.main()
