"""Cached document type and the timestamp helpers used for staleness checks."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Any, Optional

DEFAULT_STALE_AFTER = dt.timedelta(hours=24)

PAYLOAD_KEY = "payload"
LAST_UPDATED_KEY = "lastUpdated"
_RESERVED_KEYS = (PAYLOAD_KEY, LAST_UPDATED_KEY)


def utc_now() -> dt.datetime:
    """Return the current time as an aware UTC datetime."""
    return dt.datetime.now(dt.timezone.utc)


def format_timestamp(value: dt.datetime) -> str:
    """Serialize an aware datetime as ISO 8601 in UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc).isoformat()


def parse_timestamp(value: str | dt.datetime | None) -> Optional[dt.datetime]:
    """
    Parse an ISO 8601 timestamp into an aware datetime.

    Accepts a trailing "Z" and treats naive values as UTC. Returns None for
    missing or unparseable input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, dt.datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = dt.datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return parsed


def is_stale(
    last_updated: str | dt.datetime | None,
    stale_after: dt.timedelta = DEFAULT_STALE_AFTER,
    *,
    now: dt.datetime | None = None,
) -> bool:
    """Return True if `last_updated` is missing or at least `stale_after` old."""
    updated = parse_timestamp(last_updated)
    if updated is None:
        return True
    now = now or utc_now()
    return now - updated >= stale_after


@dataclass
class CachedDocument:
    """One domain's cached payload plus the time it was fetched.

    `metadata` holds the static fields (location, settings) written next to
    the payload for downstream consumers; the refresh logic never reads them.
    """
    payload: Any
    last_updated: Optional[str]
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def last_updated_at(self) -> Optional[dt.datetime]:
        return parse_timestamp(self.last_updated)

    @property
    def location(self) -> Optional[dict]:
        return self.metadata.get("location")

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON shape stored on disk and served over HTTP."""
        out: dict[str, Any] = {PAYLOAD_KEY: self.payload, LAST_UPDATED_KEY: self.last_updated}
        for key, value in self.metadata.items():
            if key not in _RESERVED_KEYS:
                out[key] = value
        return out

    @classmethod
    def from_dict(cls, data: Any) -> "CachedDocument":
        """Build a document from its stored shape; raise ValueError if it is not one."""
        if not isinstance(data, dict):
            raise ValueError(f"cached document must be a JSON object, got {type(data).__name__}")
        if PAYLOAD_KEY not in data:
            raise ValueError("cached document has no payload")
        last_updated = data.get(LAST_UPDATED_KEY)
        if last_updated is not None and not isinstance(last_updated, str):
            raise ValueError("lastUpdated must be a string")
        metadata = {k: v for k, v in data.items() if k not in _RESERVED_KEYS}
        return cls(payload=data[PAYLOAD_KEY], last_updated=last_updated, metadata=metadata)
