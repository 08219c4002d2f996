"""Rate limiting for the wizard API and client account creation."""

import logging
import os

from limits import parse
from limits.storage import MemoryStorage, Storage, storage_from_string
from limits.strategies import MovingWindowRateLimiter
from slowapi import Limiter
from slowapi.util import get_remote_address

from casewizard.core.config import settings

logger = logging.getLogger(__name__)

IS_TESTING = os.getenv("TESTING", "").lower() in ("1", "true", "yes")
DEFAULT_LIMITS = (
    []
    if IS_TESTING or settings.RATE_LIMIT_API <= 0
    else [f"{settings.RATE_LIMIT_API}/minute"]
)

# Request-level limits for the HTTP surface (in-memory; single-process service)
limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
    default_limits=DEFAULT_LIMITS,
)


class AccountCreationLimiter:
    """Throttle repeated client-account creation attempts.

    Constructed by whoever owns the wizard or request context and passed in
    explicitly; there is no module-level instance.
    """

    def __init__(
        self,
        limit: str | None = None,
        *,
        storage: Storage | None = None,
        storage_uri: str | None = None,
    ):
        self._limit = parse(limit or settings.ACCOUNT_CREATION_RATE_LIMIT)
        if storage is None:
            storage = storage_from_string(storage_uri) if storage_uri else MemoryStorage()
        self._storage = storage
        self._strategy = MovingWindowRateLimiter(storage)

    def allow(self, key: str) -> bool:
        """Record an attempt for ``key``; False once the window is exhausted."""
        allowed = self._strategy.hit(self._limit, "account-creation", key)
        if not allowed:
            logger.warning("Account creation attempt throttled")
        return allowed

    def remaining(self, key: str) -> int:
        stats = self._strategy.get_window_stats(self._limit, "account-creation", key)
        return stats.remaining

    def reset(self) -> None:
        self._storage.reset()
