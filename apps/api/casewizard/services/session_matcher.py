"""Best-effort resolution of a saved session from a partial key.

Candidates come from both stores (remote first, then local, de-duplicated by
session id). Tiers are tried in strict order and the first tier with any
candidate wins:

1. generated form-case id
2. questionnaire assignment id (composite suffix stripped)
3. client email (case-insensitive), else normalized full name
4. most recently updated in-progress session, else most recent overall

Within a tier the session whose assignment matches the UI context wins,
otherwise the most recently updated one. Matching never raises.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from typing import Any

from casewizard.core.results import Degraded, Failed
from casewizard.core.structured_logging import build_log_context
from casewizard.services.identity_service import (
    Identifier,
    coerce_id,
    match_identifiers,
)
from casewizard.services.session_records import (
    STATUS_IN_PROGRESS,
    session_assignment_identifier,
    session_client_email,
    session_client_name,
    session_form_case_ids,
    session_updated_at,
)
from casewizard.utils.normalization import normalize_email, normalize_search_text

logger = logging.getLogger(__name__)

COMPOSITE_ID_SEPARATORS: tuple[str, ...] = ("::", "#")

TIER_FORM_CASE_ID = "form-case-id"
TIER_ASSIGNMENT = "assignment-id"
TIER_CLIENT_EMAIL = "client-email"
TIER_CLIENT_NAME = "client-name"
TIER_RECENT_IN_PROGRESS = "recent-in-progress"
TIER_RECENT = "recent"


@dataclass(frozen=True)
class MatchKey:
    form_case_id: str | None = None
    assignment_id: str | None = None
    client_email: str | None = None
    client_name: str | None = None


@dataclass(frozen=True)
class MatchResult:
    session: dict[str, Any] | None
    tier: str | None = None
    candidates: int = 0
    pool_size: int = 0
    degraded_reason: str | None = None
    auth_failed: bool = False


def strip_disambiguation_suffix(value: str | None) -> str | None:
    """``abc123::2`` / ``abc123#copy`` → ``abc123``."""
    value = coerce_id(value)
    if not value:
        return None
    for separator in COMPOSITE_ID_SEPARATORS:
        if separator in value:
            head = value.split(separator, 1)[0].strip()
            if head:
                value = head
    return value


def _strip_identifier(identifier: Identifier) -> Identifier:
    return replace(
        identifier,
        canonical_id=strip_disambiguation_suffix(identifier.canonical_id),
        external_id=strip_disambiguation_suffix(identifier.external_id),
        original_id=strip_disambiguation_suffix(identifier.original_id),
    )


def _by_form_case_id(pool: Sequence[dict[str, Any]], form_case_id: str) -> list[dict[str, Any]]:
    target = form_case_id.strip()
    return [session for session in pool if target in session_form_case_ids(session)]


def _by_assignment_id(pool: Sequence[dict[str, Any]], assignment_id: str) -> list[dict[str, Any]]:
    target = strip_disambiguation_suffix(assignment_id)
    indexed: list[tuple[dict[str, Any], Identifier]] = []
    for session in pool:
        identifier = session_assignment_identifier(session)
        if identifier is not None:
            indexed.append((session, _strip_identifier(identifier)))
    hits = match_identifiers(target, [identifier for _, identifier in indexed])
    return [indexed[index][0] for index in hits]


def _by_email(pool: Sequence[dict[str, Any]], email: str) -> list[dict[str, Any]]:
    target = normalize_email(email)
    if not target:
        return []
    return [session for session in pool if session_client_email(session) == target]


def _by_name(pool: Sequence[dict[str, Any]], name: str) -> list[dict[str, Any]]:
    target = normalize_search_text(name)
    if not target:
        return []
    return [session for session in pool if session_client_name(session) == target]


def most_recent(sessions: Iterable[dict[str, Any]]) -> dict[str, Any] | None:
    """Latest ``updatedAt``; earlier pool position wins ties."""
    best: dict[str, Any] | None = None
    best_stamp = None
    for session in sessions:
        stamp = session_updated_at(session)
        if best is None or stamp > best_stamp:
            best, best_stamp = session, stamp
    return best


def break_tie(
    candidates: Sequence[dict[str, Any]], context_assignment_id: str | None = None
) -> dict[str, Any] | None:
    if not candidates:
        return None
    if len(candidates) == 1:
        return candidates[0]
    context_id = strip_disambiguation_suffix(context_assignment_id)
    if context_id:
        in_context = []
        for session in candidates:
            identifier = session_assignment_identifier(session)
            if identifier is not None and context_id in _strip_identifier(identifier).candidate_ids:
                in_context.append(session)
        if in_context:
            return most_recent(in_context)
    return most_recent(candidates)


def select_best_match(
    pool: Sequence[dict[str, Any]],
    key: MatchKey,
    *,
    context_assignment_id: str | None = None,
    exclude_session_ids: Iterable[str] = (),
) -> MatchResult:
    """Pure tiered selection over an already pooled candidate list."""
    excluded = {sid for sid in exclude_session_ids if sid}
    pool = [session for session in pool if session.get("sessionId") not in excluded]
    if not pool:
        return MatchResult(session=None)

    tiers: list[tuple[str, str | None, Any]] = [
        (TIER_FORM_CASE_ID, key.form_case_id, _by_form_case_id),
        (TIER_ASSIGNMENT, key.assignment_id, _by_assignment_id),
        (TIER_CLIENT_EMAIL, key.client_email, _by_email),
        (TIER_CLIENT_NAME, key.client_name, _by_name),
    ]
    for tier, value, finder in tiers:
        if not value:
            continue
        candidates = finder(pool, value)
        if candidates:
            return MatchResult(
                session=break_tie(candidates, context_assignment_id),
                tier=tier,
                candidates=len(candidates),
                pool_size=len(pool),
            )

    in_progress = [s for s in pool if s.get("status") == STATUS_IN_PROGRESS]
    if in_progress:
        return MatchResult(
            session=most_recent(in_progress),
            tier=TIER_RECENT_IN_PROGRESS,
            candidates=len(in_progress),
            pool_size=len(pool),
        )
    return MatchResult(
        session=most_recent(pool),
        tier=TIER_RECENT,
        candidates=len(pool),
        pool_size=len(pool),
    )


class SessionMatcher:
    """Auto-fill resolver over the pooled remote and local sessions."""

    def __init__(self, gateway):
        self.gateway = gateway

    async def resolve(
        self,
        key: MatchKey,
        *,
        context_assignment_id: str | None = None,
        exclude_session_ids: Iterable[str] = (),
    ) -> MatchResult:
        pooled = await self.gateway.list_sessions()
        pool = pooled.value or []
        result = select_best_match(
            pool,
            key,
            context_assignment_id=context_assignment_id,
            exclude_session_ids=exclude_session_ids,
        )
        if isinstance(pooled, Degraded):
            result = replace(result, degraded_reason=pooled.reason)
        elif isinstance(pooled, Failed):
            result = replace(result, degraded_reason=pooled.reason, auth_failed=True)

        session_id = result.session.get("sessionId") if result.session else None
        logger.info(
            "Session match resolved via %s (%s candidates)",
            result.tier or "none",
            result.candidates,
            extra=build_log_context(session_id=session_id, source="matcher"),
        )
        return result

    async def find_best_match(
        self,
        key: MatchKey,
        *,
        context_assignment_id: str | None = None,
        exclude_session_ids: Iterable[str] = (),
    ) -> dict[str, Any] | None:
        result = await self.resolve(
            key,
            context_assignment_id=context_assignment_id,
            exclude_session_ids=exclude_session_ids,
        )
        return result.session
