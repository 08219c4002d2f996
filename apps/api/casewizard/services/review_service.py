"""Response-review screen: hand one assignment over to the wizard.

The review screen lists completed questionnaire assignments. Opening one
looks up the client's saved session (email, then name, then the most recent
session overall) and stores a sanitized single-read handoff that the wizard
consumes at bootstrap.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from casewizard.core.results import Failed
from casewizard.core.stage_definitions import WizardStage, clamp_stage_index, stage_index
from casewizard.core.structured_logging import build_log_context
from casewizard.services.handoff_service import HandoffStore
from casewizard.services.identity_service import coerce_id
from casewizard.services.questionnaire_service import normalize_questionnaire
from casewizard.services.session_matcher import (
    TIER_CLIENT_EMAIL,
    TIER_CLIENT_NAME,
    MatchKey,
    most_recent,
    select_best_match,
)
from casewizard.services.session_records import default_address

logger = logging.getLogger(__name__)


class ReviewHandoffError(ValueError):
    """The assignment lacks the client or questionnaire needed for a handoff."""

    pass


def _as_dict(value: Any) -> dict[str, Any]:
    return dict(value) if isinstance(value, Mapping) else {}


def assignment_client(assignment: Mapping[str, Any]) -> dict[str, Any]:
    """Populated client of an assignment (``actualClient`` wins over the user ref)."""
    return _as_dict(assignment.get("actualClient")) or _as_dict(assignment.get("clientUserId"))


def _display_name(client: Mapping[str, Any]) -> str:
    parts = [client.get("firstName") or "", client.get("lastName") or ""]
    name = " ".join(part for part in parts if part).strip()
    return name or (client.get("name") or "")


def _basic_handoff(
    assignment: Mapping[str, Any],
    client: Mapping[str, Any],
    questionnaire: Mapping[str, Any],
    responses: Mapping[str, Any],
) -> dict[str, Any]:
    return {
        "clientId": coerce_id(client.get("_id")) or coerce_id(client.get("id")),
        "clientEmail": client.get("email") or "",
        "clientName": _display_name(client),
        "questionnaireId": (
            coerce_id(questionnaire.get("_id")) or coerce_id(questionnaire.get("id"))
        ),
        "questionnaireTitle": questionnaire.get("title") or "",
        "existingResponses": dict(responses),
        "fields": questionnaire.get("fields") or [],
        "mode": "edit" if responses else "new",
        "originalAssignmentId": (
            coerce_id(assignment.get("_id")) or coerce_id(assignment.get("id"))
        ),
        "autoFillMode": True,
    }


def _workflow_handoff(
    session: Mapping[str, Any],
    client: Mapping[str, Any],
    questionnaire_id: str | None,
    has_responses: bool,
) -> dict[str, Any]:
    saved_client = _as_dict(session.get("client"))
    saved_case = _as_dict(session.get("case"))
    credentials = _as_dict(session.get("clientCredentials"))
    case_id = coerce_id(saved_case.get("_id")) or coerce_id(saved_case.get("id"))
    target = WizardStage.FORM_DETAILS if has_responses else WizardStage.ANSWERS
    return {
        "sessionId": session.get("sessionId"),
        "workflowClient": {
            "name": saved_client.get("name") or _display_name(client),
            "firstName": saved_client.get("firstName") or client.get("firstName") or "",
            "lastName": saved_client.get("lastName") or client.get("lastName") or "",
            "email": saved_client.get("email") or client.get("email") or "",
            "phone": saved_client.get("phone") or "",
            "dateOfBirth": saved_client.get("dateOfBirth") or "",
            "nationality": saved_client.get("nationality") or "",
            "address": saved_client.get("address") or default_address(),
        },
        "workflowCase": {
            "id": case_id,
            "_id": case_id,
            "title": saved_case.get("title") or "Case",
            "caseNumber": saved_case.get("caseNumber") or "",
            "category": saved_case.get("category") or "family-based",
            "subcategory": saved_case.get("subcategory") or "",
            "status": saved_case.get("status") or "draft",
            "priority": saved_case.get("priority") or "medium",
            "visaType": saved_case.get("visaType") or "",
            "description": saved_case.get("description") or "",
            "dueDate": saved_case.get("dueDate") or "",
        },
        "selectedForms": list(session.get("selectedForms") or []),
        "formCaseIds": dict(session.get("formCaseIds") or {}),
        "selectedQuestionnaire": session.get("selectedQuestionnaire") or questionnaire_id,
        "clientCredentials": {
            "email": credentials.get("email") or client.get("email") or "",
            "createAccount": bool(credentials.get("createAccount")),
        },
        "targetStep": stage_index(target),
        "currentStep": clamp_stage_index(session.get("stage")),
    }


async def prepare_review_handoff(
    assignment: Mapping[str, Any],
    gateway,
    handoff_store: HandoffStore,
) -> tuple[str, dict[str, Any]]:
    """Store the handoff for ``assignment``; returns ``(token, payload)``.

    Raises ReviewHandoffError when the assignment has no populated client or
    questionnaire.
    """
    client = assignment_client(assignment)
    questionnaire = _as_dict(assignment.get("questionnaireId"))
    if not client or not questionnaire:
        raise ReviewHandoffError("Cannot open the wizard: missing client or questionnaire data")
    questionnaire = normalize_questionnaire(questionnaire)
    responses = _as_dict(_as_dict(assignment.get("responseId")).get("responses"))
    if not responses:
        responses = _as_dict(assignment.get("responses"))

    payload = _basic_handoff(assignment, client, questionnaire, responses)
    context = build_log_context(source="review")

    pooled = await gateway.list_sessions()
    if isinstance(pooled, Failed):
        logger.warning(
            "Saved sessions unavailable for review handoff; storing basic handoff",
            extra={**context, "reason": pooled.reason},
        )
        return handoff_store.put(payload), payload

    pool = pooled.value or []
    match = select_best_match(
        pool,
        MatchKey(client_email=client.get("email"), client_name=_display_name(client)),
    )
    session = match.session
    if match.tier not in (TIER_CLIENT_EMAIL, TIER_CLIENT_NAME):
        session = most_recent(pool)

    if session is not None:
        payload.update(
            _workflow_handoff(session, client, payload["questionnaireId"], bool(responses))
        )
        logger.info(
            "Review handoff prepared from saved session",
            extra={**context, "session_id": session.get("sessionId")},
        )
    return handoff_store.put(payload), payload
