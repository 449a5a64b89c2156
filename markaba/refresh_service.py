"""
Stale-cache refresh service shared by every periodically fetched domain.

A `DataRefreshService` owns one domain's cached document. It fetches from the
external source, persists the whole document with a fresh `lastUpdated`, and
answers "give me current data" by serving the cache until it goes stale.
"""
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from markaba.document_store.base import DocumentStore
from markaba.documents import (
    DEFAULT_STALE_AFTER,
    CachedDocument,
    format_timestamp,
    is_stale,
    utc_now,
)
from markaba.errors import RefreshError
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="refresh_service")


@dataclass
class DomainConfig:
    """Per-domain settings: name, staleness threshold and static metadata."""
    name: str
    stale_after: dt.timedelta = DEFAULT_STALE_AFTER
    metadata: Dict[str, Any] = field(default_factory=dict)


class DataRefreshService:
    """Fetch/persist/load cycle with stale-data fallback for one domain."""

    def __init__(
        self,
        config: DomainConfig,
        fetcher: Callable[..., Any],
        store: DocumentStore,
        *,
        clock: Callable[[], dt.datetime] = utc_now,
    ) -> None:
        self.config = config
        self.fetcher = fetcher
        self.store = store
        self.clock = clock
        self.last_error: Optional[Dict[str, str]] = None

    @property
    def name(self) -> str:
        return self.config.name

    def fetch(self, **query: Any) -> Any:
        """Return a fresh payload from the source; has no side effects."""
        return self.fetcher(**query)

    def persist(self, payload: Any) -> CachedDocument:
        """Overwrite the cached document with `payload`, stamped with the current time."""
        document = CachedDocument(
            payload=payload,
            last_updated=format_timestamp(self.clock()),
            metadata=dict(self.config.metadata),
        )
        self.store.save(self.name, document)
        return document

    def load(self) -> Optional[CachedDocument]:
        """Return the cached document, or None when it is missing or corrupt."""
        return self.store.load(self.name)

    def is_stale(self, last_updated: str | dt.datetime | None) -> bool:
        return is_stale(last_updated, self.config.stale_after, now=self.clock())

    def refresh(self, **query: Any) -> CachedDocument:
        """Fetch then persist. On failure the previous document is left as it was."""
        logger.info(f"Refreshing {self.name} data", extra={"domain": self.name})
        try:
            payload = self.fetch(**query)
            document = self.persist(payload)
        except RefreshError as exc:
            self.last_error = {"message": str(exc), "at": format_timestamp(self.clock())}
            logger.error(f"Failed to update {self.name} data: {exc}",
                         extra={"domain": self.name, "error_type": type(exc).__name__})
            raise
        self.last_error = None
        logger.info(f"{self.name} data updated",
                    extra={"domain": self.name, "last_updated": document.last_updated,
                           "location": self.store.describe(self.name)})
        return document

    def get_current(self, force_refresh: bool = False, **query: Any) -> CachedDocument:
        """
        Return current data, refreshing first if the cache is missing or stale.

        A forced refresh propagates every error. Otherwise a failed refresh
        falls back to the stale document when there is one, and raises only
        when no data of any age exists.
        """
        if force_refresh:
            return self.refresh(**query)

        cached = self.load()
        if cached is not None and not self.is_stale(cached.last_updated):
            return cached

        try:
            return self.refresh(**query)
        except RefreshError:
            if cached is None:
                raise
            logger.warning(f"Returning cached {self.name} data as fallback",
                           extra={"domain": self.name, "last_updated": cached.last_updated})
            return cached

    def status(self) -> Dict[str, Any]:
        """Freshness summary of the cached document; never fetches."""
        cached = self.load()
        if cached is None:
            return {
                "domain": self.name,
                "status": "no_data",
                "lastUpdated": None,
                "isStale": True,
                "location": self.config.metadata.get("location"),
                "lastError": self.last_error,
            }
        stale = self.is_stale(cached.last_updated)
        return {
            "domain": self.name,
            "status": "stale" if stale else "fresh",
            "lastUpdated": cached.last_updated,
            "isStale": stale,
            "location": cached.location,
            "lastError": self.last_error,
        }
