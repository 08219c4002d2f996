"""Local durable cache backed by the ``local_store_entries`` table.

Every value is JSON. Array-valued keys hold entity records and are updated
with find-or-append inside a single transaction so repeated saves of the
same entity replace it in place instead of accumulating duplicates.
"""

from __future__ import annotations

import copy
import logging
import threading
from collections.abc import Callable
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from casewizard.db.models import LocalStoreEntry

logger = logging.getLogger(__name__)

SAVED_SESSIONS_KEY = "saved-workflows"
ASSIGNMENTS_KEY = "questionnaire-assignments"
QUESTIONNAIRES_KEY = "immigration-questionnaires"
CREDENTIALS_SUMMARY_KEY = "client-credentials-summary"

RecordMatcher = Callable[[dict[str, Any], dict[str, Any]], bool]


class LocalStoreUnavailableError(RuntimeError):
    """The local cache cannot be read or written; no guarantee can be kept."""

    pass


class LocalStore:
    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory
        self._lock = threading.RLock()

    def _load(self, db: Session, key: str) -> LocalStoreEntry | None:
        return db.execute(
            select(LocalStoreEntry).where(LocalStoreEntry.key == key)
        ).scalar_one_or_none()

    def get(self, key: str, default: Any = None) -> Any:
        try:
            with self._session_factory() as db:
                entry = self._load(db, key)
                if entry is None or entry.value is None:
                    return default
                return copy.deepcopy(entry.value)
        except SQLAlchemyError as exc:
            raise LocalStoreUnavailableError(f"Local store read failed for {key}") from exc

    def set(self, key: str, value: Any) -> None:
        try:
            with self._lock, self._session_factory() as db, db.begin():
                entry = self._load(db, key)
                if entry is None:
                    db.add(LocalStoreEntry(key=key, value=copy.deepcopy(value)))
                else:
                    entry.value = copy.deepcopy(value)
        except SQLAlchemyError as exc:
            raise LocalStoreUnavailableError(f"Local store write failed for {key}") from exc

    def remove(self, key: str) -> bool:
        try:
            with self._lock, self._session_factory() as db, db.begin():
                entry = self._load(db, key)
                if entry is None:
                    return False
                db.delete(entry)
                return True
        except SQLAlchemyError as exc:
            raise LocalStoreUnavailableError(f"Local store delete failed for {key}") from exc

    def get_list(self, key: str) -> list[dict[str, Any]]:
        value = self.get(key, default=[])
        if not isinstance(value, list):
            logger.warning("Local store key %s does not hold a list; ignoring it", key)
            return []
        return [item for item in value if isinstance(item, dict)]

    def upsert_record(
        self,
        key: str,
        record: dict[str, Any],
        matches: RecordMatcher,
    ) -> tuple[dict[str, Any], bool]:
        """Replace the first record that ``matches`` the incoming one, else append.

        Returns the stored record and whether it was appended.
        """
        stored = copy.deepcopy(record)
        try:
            with self._lock, self._session_factory() as db, db.begin():
                entry = self._load(db, key)
                records = []
                if entry is not None and isinstance(entry.value, list):
                    records = list(entry.value)
                created = True
                for index, existing in enumerate(records):
                    if isinstance(existing, dict) and matches(existing, stored):
                        records[index] = stored
                        created = False
                        break
                if created:
                    records.append(stored)
                if entry is None:
                    db.add(LocalStoreEntry(key=key, value=records))
                else:
                    entry.value = records
        except SQLAlchemyError as exc:
            raise LocalStoreUnavailableError(f"Local store write failed for {key}") from exc
        return copy.deepcopy(stored), created
