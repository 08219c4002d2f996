"""Dual-store persistence: remote service first, local cache always.

Writes try the remote store (after a bounded reachability probe) and then
mirror the payload into the local cache regardless of the remote outcome.
Reads prefer the remote store and fall back to the local cache on any
transient failure. Results are explicit ``Ok`` / ``Degraded`` / ``Failed``
values; only ``LocalStoreUnavailableError`` propagates.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from casewizard.core.results import (
    Degraded,
    Failed,
    Ok,
    Result,
    SOURCE_LOCAL,
)
from casewizard.core.structured_logging import build_log_context
from casewizard.services import questionnaire_service
from casewizard.services.identity_service import (
    DataIntegrityError,
    Identifier,
    match_identifier,
    normalize_identifier,
    require_identifier,
    same_entity,
)
from casewizard.services.local_store import (
    ASSIGNMENTS_KEY,
    CREDENTIALS_SUMMARY_KEY,
    QUESTIONNAIRES_KEY,
    SAVED_SESSIONS_KEY,
    LocalStore,
)
from casewizard.services.remote_store import (
    ASSIGNMENTS_PATH,
    REGISTER_USER_PATH,
    WORKFLOW_PROGRESS_PATH,
    RemoteAuthError,
    RemoteNotFoundError,
    RemoteStore,
    RemoteUnavailableError,
)
from casewizard.services.session_records import (
    canonicalize_session,
    matches_saved_session,
    session_updated_at,
    strip_secrets,
)

logger = logging.getLogger(__name__)

REASON_NOT_CONFIGURED = "remote store not configured"
REASON_UNREACHABLE = "remote endpoint unreachable"
REASON_CAPABILITY_ABSENT = "remote capability absent"


@dataclass
class _RemoteOutcome:
    value: Any = None
    degraded_reason: str | None = None
    auth_error: RemoteAuthError | None = None

    @property
    def succeeded(self) -> bool:
        return self.degraded_reason is None and self.auth_error is None


def _same_record(existing: dict[str, Any], incoming: dict[str, Any]) -> bool:
    return same_entity(
        normalize_identifier(existing, name_fields=()),
        normalize_identifier(incoming, name_fields=()),
    )


class PersistenceGateway:
    def __init__(
        self,
        local: LocalStore,
        remote: RemoteStore | None = None,
        *,
        probe_before_write: bool = True,
    ):
        self.local = local
        self.remote = remote
        self.probe_before_write = probe_before_write

    # -------------------------------------------------------------------------
    # Remote attempt + result mapping
    # -------------------------------------------------------------------------

    async def _attempt(
        self,
        operation: str,
        call: Callable[[RemoteStore], Awaitable[Any]],
        *,
        probe_path: str | None = None,
        session_id: str | None = None,
    ) -> _RemoteOutcome:
        if self.remote is None:
            return _RemoteOutcome(degraded_reason=REASON_NOT_CONFIGURED)

        context = build_log_context(session_id=session_id, source=operation)
        if probe_path and self.probe_before_write:
            if not await self.remote.is_endpoint_available(probe_path):
                logger.warning(
                    "Remote %s skipped: endpoint unreachable", operation, extra=context
                )
                return _RemoteOutcome(degraded_reason=REASON_UNREACHABLE)

        try:
            return _RemoteOutcome(value=await call(self.remote))
        except RemoteAuthError as exc:
            logger.warning("Remote %s rejected credentials", operation, extra=context)
            return _RemoteOutcome(auth_error=exc)
        except RemoteNotFoundError:
            logger.warning(
                "Remote %s unavailable, using local cache",
                operation,
                extra={**context, "reason": REASON_CAPABILITY_ABSENT},
            )
            return _RemoteOutcome(degraded_reason=REASON_CAPABILITY_ABSENT)
        except RemoteUnavailableError as exc:
            logger.warning(
                "Remote %s failed, using local cache", operation, exc_info=exc, extra=context
            )
            return _RemoteOutcome(degraded_reason=str(exc))

    @staticmethod
    def _to_result(outcome: _RemoteOutcome, value: Any) -> Result[Any]:
        if outcome.auth_error is not None:
            return Failed(
                reason=str(outcome.auth_error),
                status_code=outcome.auth_error.status_code,
                value=value,
            )
        if outcome.degraded_reason is not None:
            return Degraded(value=value, reason=outcome.degraded_reason)
        return Ok(value=value)

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------

    async def save_session(self, session: dict[str, Any]) -> Result[dict[str, Any]]:
        """Write a session through to both stores; the local mirror always happens."""
        snapshot = canonicalize_session(session)
        session_id = snapshot["sessionId"]
        outcome = await self._attempt(
            "session write",
            lambda remote: remote.save_session(snapshot),
            probe_path=WORKFLOW_PROGRESS_PATH,
            session_id=session_id,
        )
        stored, _ = self.local.upsert_record(
            SAVED_SESSIONS_KEY, snapshot, matches_saved_session
        )
        return self._to_result(outcome, stored)

    def _local_session(self, session_id: str) -> dict[str, Any] | None:
        """Newest locally cached record for ``session_id``."""
        found = None
        for record in self.local.get_list(SAVED_SESSIONS_KEY):
            try:
                candidate = canonicalize_session(record)
            except DataIntegrityError:
                continue
            if candidate["sessionId"] != session_id:
                continue
            if found is None or session_updated_at(candidate) > session_updated_at(found):
                found = candidate
        return found

    async def read_session(self, session_id: str) -> Result[dict[str, Any] | None]:
        outcome = await self._attempt(
            "session read",
            lambda remote: remote.get_session(session_id),
            session_id=session_id,
        )
        if outcome.succeeded and outcome.value is not None:
            try:
                return Ok(value=canonicalize_session(outcome.value))
            except DataIntegrityError as exc:
                logger.warning(
                    "Remote session record unusable, using local cache",
                    extra=build_log_context(session_id=session_id, reason=str(exc)),
                )
                return Degraded(value=self._local_session(session_id), reason=str(exc))
        if outcome.succeeded:
            return Ok(value=self._local_session(session_id), source=SOURCE_LOCAL)
        return self._to_result(outcome, self._local_session(session_id))

    def local_sessions(self) -> list[dict[str, Any]]:
        """Canonical locally cached sessions; unusable records are excluded."""
        sessions = []
        for record in self.local.get_list(SAVED_SESSIONS_KEY):
            try:
                sessions.append(canonicalize_session(record))
            except DataIntegrityError as exc:
                logger.warning(
                    "Excluding cached session record",
                    extra=build_log_context(source=SOURCE_LOCAL, reason=str(exc)),
                )
        return sessions

    async def list_sessions(self, *, status: str | None = None) -> Result[list[dict[str, Any]]]:
        """Pool remote sessions (first) and locally cached ones, de-duplicated by id."""
        outcome = await self._attempt(
            "session list", lambda remote: remote.list_sessions(status=status)
        )
        pool: list[dict[str, Any]] = []
        seen: set[str] = set()

        remote_records = outcome.value if outcome.succeeded and outcome.value else []
        for record in remote_records:
            try:
                session = canonicalize_session(record)
            except DataIntegrityError as exc:
                logger.warning(
                    "Excluding remote session record",
                    extra=build_log_context(source="remote", reason=str(exc)),
                )
                continue
            if session["sessionId"] not in seen:
                seen.add(session["sessionId"])
                pool.append(session)

        for session in self.local_sessions():
            if status and session.get("status") != status:
                continue
            if session["sessionId"] not in seen:
                seen.add(session["sessionId"])
                pool.append(session)

        return self._to_result(outcome, pool)

    # -------------------------------------------------------------------------
    # Questionnaire assignments
    # -------------------------------------------------------------------------

    async def save_assignment(self, assignment: dict[str, Any]) -> Result[dict[str, Any]]:
        snapshot = strip_secrets(assignment)
        require_identifier(snapshot, "Assignment", name_fields=())
        outcome = await self._attempt(
            "assignment write",
            lambda remote: remote.save_assignment(snapshot),
            probe_path=ASSIGNMENTS_PATH,
        )
        stored, _ = self.local.upsert_record(ASSIGNMENTS_KEY, snapshot, _same_record)
        return self._to_result(outcome, stored)

    async def list_assignments(self) -> Result[list[dict[str, Any]]]:
        outcome = await self._attempt(
            "assignment list", lambda remote: remote.list_assignments()
        )
        pool: list[dict[str, Any]] = []
        identifiers: list[Identifier] = []
        remote_records = outcome.value if outcome.succeeded and outcome.value else []
        for record in [*remote_records, *self.local.get_list(ASSIGNMENTS_KEY)]:
            identifier = normalize_identifier(record, name_fields=())
            if not identifier.is_resolvable:
                logger.warning(
                    "Excluding assignment record without identifier",
                    extra=build_log_context(reason="unresolvable identifier"),
                )
                continue
            if any(same_entity(identifier, seen) for seen in identifiers):
                continue
            identifiers.append(identifier)
            pool.append(record)
        return self._to_result(outcome, pool)

    async def find_assignment(self, assignment_id: str) -> Result[dict[str, Any] | None]:
        result = await self.list_assignments()
        records = result.value or []
        index = match_identifier(
            assignment_id,
            [normalize_identifier(record, name_fields=()) for record in records],
        )
        value = records[index] if index is not None else None
        if isinstance(result, Ok):
            return Ok(value=value)
        if isinstance(result, Degraded):
            return Degraded(value=value, reason=result.reason)
        return Failed(
            reason=result.reason, status_code=result.status_code, value=value
        )

    # -------------------------------------------------------------------------
    # Questionnaire definitions
    # -------------------------------------------------------------------------

    def _local_questionnaire(self, questionnaire_id: str) -> dict[str, Any] | None:
        records = self.local.get_list(QUESTIONNAIRES_KEY)
        index = match_identifier(
            questionnaire_id, [normalize_identifier(record) for record in records]
        )
        if index is None:
            return None
        return questionnaire_service.normalize_questionnaire(records[index])

    async def read_questionnaire(self, questionnaire_id: str) -> Result[dict[str, Any] | None]:
        outcome = await self._attempt(
            "questionnaire read", lambda remote: remote.get_questionnaire(questionnaire_id)
        )
        if outcome.succeeded and outcome.value is not None:
            normalized = questionnaire_service.normalize_questionnaire(outcome.value)
            self.local.upsert_record(QUESTIONNAIRES_KEY, normalized, _same_record)
            return Ok(value=normalized)
        if outcome.succeeded:
            return Ok(value=self._local_questionnaire(questionnaire_id), source=SOURCE_LOCAL)
        return self._to_result(outcome, self._local_questionnaire(questionnaire_id))

    def cache_questionnaire(self, questionnaire: dict[str, Any]) -> dict[str, Any]:
        normalized = questionnaire_service.normalize_questionnaire(questionnaire)
        stored, _ = self.local.upsert_record(QUESTIONNAIRES_KEY, normalized, _same_record)
        return stored

    # -------------------------------------------------------------------------
    # Client accounts (remote only)
    # -------------------------------------------------------------------------

    async def check_email(self, email: str) -> Result[dict[str, Any]]:
        """Unknown when the remote store is unreachable: ``exists`` is False."""
        outcome = await self._attempt(
            "email check", lambda remote: remote.check_email(email)
        )
        value = outcome.value if outcome.succeeded else {"exists": False}
        return self._to_result(outcome, value)

    async def register_user(self, user_data: dict[str, Any]) -> Result[dict[str, Any] | None]:
        outcome = await self._attempt(
            "account registration",
            lambda remote: remote.register_user(user_data),
            probe_path=REGISTER_USER_PATH,
        )
        return self._to_result(outcome, outcome.value)

    # -------------------------------------------------------------------------
    # Credential summary (local only)
    # -------------------------------------------------------------------------

    def read_credentials_summary(self) -> dict[str, Any] | None:
        value = self.local.get(CREDENTIALS_SUMMARY_KEY)
        return value if isinstance(value, dict) else None

    def write_credentials_summary(self, summary: dict[str, Any]) -> dict[str, Any]:
        snapshot = strip_secrets(summary)
        self.local.set(CREDENTIALS_SUMMARY_KEY, snapshot)
        return snapshot

    def clear_credentials_summary(self) -> None:
        self.local.remove(CREDENTIALS_SUMMARY_KEY)
