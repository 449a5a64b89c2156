"""FastAPI application setup for the Markaba refresh service."""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from starlette.concurrency import run_in_threadpool

from .api import router as api_router
from .runtime import Runtime
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="app/main")


def create_app(runtime: Optional[Runtime] = None, *, initialize: bool = True) -> FastAPI:
    """
    Build the app around one Runtime.

    The Runtime is started in the lifespan (caches warmed before the first
    request, then cron jobs started) and shut down when the server stops.
    """
    runtime = runtime or Runtime.from_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Warming the caches does blocking HTTP and file I/O.
        await run_in_threadpool(runtime.startup, initialize=initialize)
        try:
            yield
        finally:
            runtime.shutdown()

    app = FastAPI(title="Markaba Refresh", lifespan=lifespan)
    app.state.runtime = runtime

    @app.get("/health")
    def health():
        """Liveness probe plus scheduler summary."""
        sched = runtime.scheduler.status()
        return {"ok": True, "scheduler": {"isRunning": sched["isRunning"], "activeJobs": sched["activeJobs"]}}

    app.include_router(api_router, prefix="/v1")
    return app


app = create_app()
