"""Shared protocol for cached-document storage backends."""

from typing import Optional, Protocol

from markaba.documents import CachedDocument


class DocumentStore(Protocol):
    """Whole-document storage keyed by domain name.

    Writes replace the previous document in full; there is no merge and no
    locking, so concurrent writers resolve as last-write-wins.
    """

    def load(self, domain: str) -> Optional[CachedDocument]:
        """Return the stored document, or None if absent or unreadable."""

    def save(self, domain: str, document: CachedDocument) -> None:
        """Overwrite the stored document; raise StoreUnavailable on failure."""

    def describe(self, domain: str) -> str:
        """Human-readable location of a domain's document, for logs."""
