import os

import uvicorn

from markaba.config import settings
from utils.logging_utils import get_tagged_logger, setup_logging

logger = get_tagged_logger(__name__, tag="server")


if __name__ == "__main__":
    setup_logging(level=settings.log_level, job_name="markaba-server")
    logger.info("Starting Markaba refresh server",
                extra={"store": settings.document_store, "scheduler_enabled": settings.scheduler_enabled})

    # uvicorn turns SIGINT/SIGTERM into a lifespan shutdown, which stops the scheduler.
    uvicorn.run(
        "markaba.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8000)),
        reload=False,
    )
