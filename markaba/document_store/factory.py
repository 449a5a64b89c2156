"""Factory helper for choosing a document store at startup."""

from __future__ import annotations

import redis

from markaba import config
from markaba.document_store.base import DocumentStore
from markaba.document_store.file import JsonFileDocumentStore
from markaba.document_store.memory import InMemoryDocumentStore
from markaba.document_store.redis import RedisDocumentStore
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="document_store/factory")


def build_document_store(settings: config.Settings | None = None) -> DocumentStore:
    """Instantiate the configured document store."""
    settings = settings or config.settings
    kind = (settings.document_store or "file").lower()

    if kind == "file":
        paths = {"weather": settings.weather_data_file, "prayer": settings.prayer_data_file}
        logger.info("Using JSON file document store", extra={"paths": paths})
        return JsonFileDocumentStore(paths)

    if kind == "memory":
        logger.info("Using in-memory document store")
        return InMemoryDocumentStore()

    if kind == "redis":
        if not settings.document_redis_url:
            raise ValueError("document_redis_url must be set for the Redis document store")
        client = redis.Redis.from_url(settings.document_redis_url)
        logger.info("Using Redis document store", extra={"prefix": settings.document_redis_prefix})
        return RedisDocumentStore(client, prefix=settings.document_redis_prefix)

    raise ValueError(f"Unknown document store '{kind}'")
