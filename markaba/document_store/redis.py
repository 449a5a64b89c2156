"""Redis-backed document store: one JSON string key per domain."""

import json
from typing import Optional

from redis.exceptions import RedisError

from markaba.document_store.base import DocumentStore
from markaba.documents import CachedDocument
from markaba.errors import StoreUnavailable
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="document_store/redis")


class RedisDocumentStore(DocumentStore):
    """Stores documents under `<prefix><domain>` without expiry.

    Staleness is decided from `lastUpdated`, not from a Redis TTL, so an old
    document stays available as a fallback when the source is down.
    """

    def __init__(self, client, prefix: str = "markaba:document:") -> None:
        logger.debug("Initializing RedisDocumentStore")
        self.client = client
        self.prefix = prefix

    def _key(self, domain: str) -> str:
        return f"{self.prefix}{domain}"

    def describe(self, domain: str) -> str:
        return f"redis key {self._key(domain)}"

    def load(self, domain: str) -> Optional[CachedDocument]:
        try:
            raw = self.client.get(self._key(domain))
        except RedisError as exc:
            logger.warning("Redis read failed; treating document as absent",
                           extra={"domain": domain, "error": str(exc)})
            return None
        if raw is None:
            return None
        try:
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8")
            return CachedDocument.from_dict(json.loads(raw))
        except ValueError as exc:
            # UnicodeDecodeError and JSONDecodeError are both ValueErrors
            logger.warning("Cached document is corrupt; treating as absent",
                           extra={"domain": domain, "error": str(exc)})
            return None

    def save(self, domain: str, document: CachedDocument) -> None:
        try:
            raw = json.dumps(document.to_dict(), ensure_ascii=False).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise StoreUnavailable(f"Document for '{domain}' is not JSON serializable: {exc}",
                                   domain=domain) from exc
        try:
            self.client.set(self._key(domain), raw)
        except RedisError as exc:
            raise StoreUnavailable(f"Failed to save {domain} data to Redis: {exc}", domain=domain) from exc
