"""Single-read handoff from the response-review screen into the wizard."""

from __future__ import annotations

import logging
import math
import secrets
import threading
import time
from collections.abc import Mapping
from typing import Any

from casewizard.services.session_records import SECRET_KEYS

logger = logging.getLogger(__name__)

DEFAULT_HANDOFF_TTL_SECONDS = 15 * 60

_DROP = object()


def sanitize_payload(value: Any) -> Any:
    """JSON-safe copy without callables, dunder keys, secrets or non-JSON values."""
    if isinstance(value, Mapping):
        cleaned: dict[str, Any] = {}
        for key, item in value.items():
            if not isinstance(key, str) or key.startswith("__") or key in SECRET_KEYS:
                continue
            if callable(item):
                continue
            sanitized = sanitize_payload(item)
            if sanitized is not _DROP:
                cleaned[key] = sanitized
        return cleaned
    if isinstance(value, (list, tuple)):
        items = [sanitize_payload(item) for item in value if not callable(item)]
        return [item for item in items if item is not _DROP]
    if value is None or isinstance(value, (str, bool, int)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else _DROP
    return _DROP


class HandoffStore:
    """In-process keyed transfer objects, each readable exactly once."""

    def __init__(self, ttl_seconds: float = DEFAULT_HANDOFF_TTL_SECONDS):
        self.ttl_seconds = ttl_seconds
        self._entries: dict[str, tuple[float, dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def put(self, payload: Mapping[str, Any], key: str | None = None) -> str:
        key = key or secrets.token_urlsafe(16)
        sanitized = sanitize_payload(payload)
        with self._lock:
            self._purge_expired()
            self._entries[key] = (time.monotonic() + self.ttl_seconds, sanitized)
        return key

    def take(self, key: str | None) -> dict[str, Any] | None:
        """Return and clear the handoff; a second read returns None."""
        if not key:
            return None
        with self._lock:
            entry = self._entries.pop(key, None)
        if entry is None:
            return None
        expires_at, payload = entry
        if time.monotonic() > expires_at:
            logger.info("Discarding expired review handoff")
            return None
        return payload

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def _purge_expired(self) -> None:
        now = time.monotonic()
        for key in [k for k, (expires, _) in self._entries.items() if expires < now]:
            del self._entries[key]
