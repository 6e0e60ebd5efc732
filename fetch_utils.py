from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import requests

logger = logging.getLogger(__name__)


@dataclass
class FetchResult:
    ok: bool
    data: Any = None
    error: str | None = None


def _embedded_error(payload: Any) -> str | None:
    if not isinstance(payload, dict):
        return None
    err = payload.get("error")
    if not err:
        return None
    if isinstance(err, dict):
        return str(err.get("message") or "API error")
    return "API error"


def fetch_with_timeout(url: str, params: dict[str, Any] | None = None, timeout: float = 45.0) -> FetchResult:
    """GET ``url`` and return a tagged result instead of raising.

    ``timeout`` is handed to requests, which applies it to the connect and to
    each socket read separately. It is not a deadline for the whole response:
    a server that keeps trickling bytes can hold a page open for longer.
    ArcGIS services report query errors with HTTP 200 and an ``error`` object
    in the body, so that case is a failure too.
    """
    try:
        response = requests.get(url, params=params, timeout=timeout)
    except requests.RequestException as exc:
        logger.warning("Request to %s failed: %s", url, exc)
        return FetchResult(ok=False, error=str(exc) or exc.__class__.__name__)

    if not response.ok:
        return FetchResult(ok=False, error=f"HTTP {response.status_code}")

    try:
        data = response.json()
    except ValueError as exc:
        return FetchResult(ok=False, error=f"Invalid JSON: {exc}")

    message = _embedded_error(data)
    if message:
        return FetchResult(ok=False, error=message)
    return FetchResult(ok=True, data=data)
