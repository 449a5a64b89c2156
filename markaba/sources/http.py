"""Shared HTTP session and JSON GET helper for the external data sources."""
from __future__ import annotations

from typing import Any, Mapping, Optional

import requests

from markaba.errors import MalformedResponse, SourceUnavailable
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="sources/http")

USER_AGENT = "NewsMarkaba/1.0"
DEFAULT_TIMEOUT_SECONDS = 10

# Replaced by tests with a stub exposing .get()
session = requests.Session()
session.headers.update({"User-Agent": USER_AGENT, "Accept": "application/json"})


def get_json(
    url: str,
    *,
    domain: str,
    params: Optional[Mapping[str, Any]] = None,
    headers: Optional[Mapping[str, str]] = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> dict:
    """GET `url` and return its JSON object body.

    Raises SourceUnavailable for connection errors, timeouts and non-2xx
    statuses, and MalformedResponse when the body is not a JSON object.
    """
    try:
        resp = session.get(url, params=params, headers=headers, timeout=timeout)
        resp.raise_for_status()
    except requests.Timeout as exc:
        raise SourceUnavailable(f"{domain} API request timed out after {timeout}s", domain=domain) from exc
    except requests.RequestException as exc:
        raise SourceUnavailable(f"{domain} API request failed: {exc}", domain=domain) from exc

    try:
        data = resp.json()
    except ValueError as exc:
        raise MalformedResponse(f"Failed to parse {domain} response: {exc}", domain=domain) from exc

    if not isinstance(data, dict):
        raise MalformedResponse(
            f"Failed to parse {domain} response: expected a JSON object, got {type(data).__name__}",
            domain=domain,
        )
    return data
