"""
Logging setup shared by the Markaba refresh service, its CLI and its jobs.

Usage
-----
At the process entrypoint (server, CLI):

    from utils.logging_utils import setup_logging

    setup_logging(level="INFO", job_name="markaba-server")

Inside a module:

    from utils.logging_utils import get_tagged_logger

    logger = get_tagged_logger(__name__, tag="weather_client")
    logger.info("Fetching weather", extra={"domain": "weather"})

Every record carries `job_name` (which process wrote it) and `tag` (which
component wrote it), so scheduler threads and request handlers can be told
apart in one stream.
"""

from __future__ import annotations

import logging
import logging.config
from typing import Any, Mapping, Optional


# Records emitted before setup_logging() still get a timestamp and level.
BOOTSTRAP_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"
BOOTSTRAP_DATEFMT = "%Y-%m-%d %H:%M:%S"

logging.basicConfig(
    level=logging.INFO,
    format=BOOTSTRAP_FORMAT,
    datefmt=BOOTSTRAP_DATEFMT,
)

DEFAULT_JOB_NAME = "markaba"
DEFAULT_LOG_FORMAT = (
    "%(asctime)s | %(levelname)s | %(job_name)s | %(threadName)s | %(tag)s | %(message)s"
)
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_CONFIGURED: bool = False


class MaxLevelFilter(logging.Filter):
    """Pass only records at or below `max_level` (stdout gets DEBUG/INFO)."""

    def __init__(self, max_level: int) -> None:
        super().__init__()
        self.max_level = max_level

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        return record.levelno <= self.max_level


class EnsureTagFilter(logging.Filter):
    """
    Give every record a `tag`.

    Records from a tagged adapter keep their tag. Anything else (uvicorn,
    apscheduler, requests) is tagged with the last segment of its logger name,
    e.g. "apscheduler.executors.default" -> "default".
    """

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if not hasattr(record, "tag"):
            logger_name = getattr(record, "name", "")
            record.tag = logger_name.rsplit(".", 1)[-1] if logger_name else "-"
        return True


class JobNameFilter(logging.Filter):
    """Stamp the process-wide `job_name` onto records that lack one."""

    def __init__(self, job_name: Optional[str] = None) -> None:
        super().__init__()
        self._job_name = job_name or DEFAULT_JOB_NAME

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if not hasattr(record, "job_name"):
            record.job_name = self._job_name
        return True


def build_logging_config(
    *,
    level: str | int = "INFO",
    log_format: str = DEFAULT_LOG_FORMAT,
    date_format: str = DEFAULT_DATE_FORMAT,
    job_name: Optional[str] = None,
    quiet_loggers: tuple[str, ...] = ("apscheduler", "urllib3"),
) -> Mapping[str, Any]:
    """
    Return a `logging.config.dictConfig` mapping.

    Parameters
    ----------
    level:
        Root logger level.
    log_format, date_format:
        Formatter patterns; the default format expects `job_name` and `tag`.
    job_name:
        Name of this process, e.g. "markaba-server" or "markaba-cli".
    quiet_loggers:
        Chatty third-party loggers raised to WARNING so each scheduler tick
        does not flood the output.
    """
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "ensure_tag": {"()": EnsureTagFilter},
            "job_name": {"()": JobNameFilter, "job_name": job_name},
            "stdout_max_info": {"()": MaxLevelFilter, "max_level": logging.INFO},
        },
        "formatters": {
            "standard": {"format": log_format, "datefmt": date_format},
        },
        "handlers": {
            "stdout": {
                "class": "logging.StreamHandler",
                "formatter": "standard",
                "filters": ["ensure_tag", "job_name", "stdout_max_info"],
                "level": "DEBUG",
                "stream": "ext://sys.stdout",
            },
            "stderr": {
                "class": "logging.StreamHandler",
                "formatter": "standard",
                "filters": ["ensure_tag", "job_name"],
                "level": "WARNING",
                "stream": "ext://sys.stderr",
            },
        },
        "loggers": {name: {"level": "WARNING"} for name in quiet_loggers},
        "root": {"level": level, "handlers": ["stdout", "stderr"]},
    }


def setup_logging(
    *,
    level: str | int = "INFO",
    job_name: Optional[str] = None,
    override_existing: bool = False,
    **config_kwargs: Any,
) -> None:
    """
    Configure logging once per process.

    Repeated calls are ignored unless `override_existing` is True, so library
    code and entrypoints can both call this safely.
    """
    global _CONFIGURED

    if _CONFIGURED and not override_existing:
        return

    logging.config.dictConfig(build_logging_config(level=level, job_name=job_name, **config_kwargs))
    _CONFIGURED = True


def get_tagged_logger(name: str, *, tag: Optional[str] = None) -> logging.LoggerAdapter:
    """
    Return a LoggerAdapter whose records always carry `tag`.

    `tag` defaults to the last segment of `name`.
    """
    base_logger = logging.getLogger(name)
    if tag is None:
        tag = name.rsplit(".", 1)[-1]
    return logging.LoggerAdapter(base_logger, {"tag": tag})


def mask_secret(value: str | None, *, visible: int = 4) -> str:
    """Redact a credential for logging, keeping only its last few characters.

    Examples
    --------
    - "abcdef123456" -> "********3456"
    - "abc" -> "***"
    - None -> "<unset>"
    """
    if not value:
        return "<unset>"
    if len(value) <= visible:
        return "*" * len(value)
    return "*" * (len(value) - visible) + value[-visible:]
