"""In-process registry of live wizards, bounded by idle time and size."""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict

from casewizard.core.config import settings
from casewizard.core.structured_logging import build_log_context
from casewizard.services.wizard_service import WizardStateMachine

logger = logging.getLogger(__name__)


class WizardRegistry:
    """Live wizards keyed by session id; least recently used are evicted first."""

    def __init__(
        self,
        idle_ttl_seconds: float | None = None,
        max_entries: int | None = None,
    ):
        self.idle_ttl_seconds = (
            settings.WIZARD_IDLE_TTL_SECONDS if idle_ttl_seconds is None else idle_ttl_seconds
        )
        self.max_entries = settings.WIZARD_REGISTRY_MAX if max_entries is None else max_entries
        self._entries: OrderedDict[str, tuple[float, WizardStateMachine]] = OrderedDict()
        self._lock = threading.Lock()

    def add(self, wizard: WizardStateMachine) -> None:
        with self._lock:
            self._purge_expired()
            self._entries[wizard.session_id] = (time.monotonic(), wizard)
            self._entries.move_to_end(wizard.session_id)
            while len(self._entries) > self.max_entries:
                session_id, _ = self._entries.popitem(last=False)
                logger.info(
                    "Evicted least recently used wizard",
                    extra=build_log_context(session_id=session_id),
                )

    def get(self, session_id: str) -> WizardStateMachine | None:
        """Live wizard for ``session_id``; a hit counts as activity."""
        with self._lock:
            self._purge_expired()
            entry = self._entries.get(session_id)
            if entry is None:
                return None
            self._entries[session_id] = (time.monotonic(), entry[1])
            self._entries.move_to_end(session_id)
            return entry[1]

    def discard(self, session_id: str) -> bool:
        with self._lock:
            return self._entries.pop(session_id, None) is not None

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _purge_expired(self) -> None:
        cutoff = time.monotonic() - self.idle_ttl_seconds
        for session_id in [k for k, (seen, _) in self._entries.items() if seen < cutoff]:
            del self._entries[session_id]
