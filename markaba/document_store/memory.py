"""In-memory document store, intended for development and tests."""

import json
import threading
from typing import Optional

from markaba.document_store.base import DocumentStore
from markaba.documents import CachedDocument
from markaba.errors import StoreUnavailable
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="document_store/memory")


class InMemoryDocumentStore(DocumentStore):
    """Thread-safe store holding serialized JSON, so callers never share objects."""

    def __init__(self) -> None:
        logger.debug("Initializing InMemoryDocumentStore")
        self._documents: dict[str, str] = {}
        self._lock = threading.Lock()

    def describe(self, domain: str) -> str:
        return f"memory://{domain}"

    def load(self, domain: str) -> Optional[CachedDocument]:
        with self._lock:
            raw = self._documents.get(domain)
        if raw is None:
            return None
        try:
            return CachedDocument.from_dict(json.loads(raw))
        except ValueError as exc:
            logger.warning("Cached document is corrupt; treating as absent",
                           extra={"domain": domain, "error": str(exc)})
            return None

    def save(self, domain: str, document: CachedDocument) -> None:
        try:
            raw = json.dumps(document.to_dict(), ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise StoreUnavailable(f"Document for '{domain}' is not JSON serializable: {exc}",
                                   domain=domain) from exc
        with self._lock:
            self._documents[domain] = raw

    def put_raw(self, domain: str, raw: str) -> None:
        """Store raw text as-is; lets tests plant corrupt documents."""
        with self._lock:
            self._documents[domain] = raw

    def clear(self) -> None:
        """Drop every stored document."""
        with self._lock:
            self._documents.clear()
