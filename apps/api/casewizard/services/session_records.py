"""Canonical shape of saved wizard sessions.

Sessions reach the engine from the remote service, the local cache, and the
review-screen handoff, each with its own naming (``workflowId`` vs
``sessionId``, ``currentStep`` vs ``stage``, ``clientInfo`` vs ``client``).
``canonicalize_session`` reconciles them once at the edge.
"""

from __future__ import annotations

import copy
import os
import re
import uuid
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from typing import Any

from casewizard.core.stage_definitions import clamp_stage_index
from casewizard.services.identity_service import (
    DataIntegrityError,
    Identifier,
    coerce_id,
    normalize_identifier,
    with_id_aliases,
)
from casewizard.utils.normalization import normalize_email, normalize_full_name

STATUS_IN_PROGRESS = "in-progress"
STATUS_COMPLETED = "completed"
SESSION_STATUSES = (STATUS_IN_PROGRESS, STATUS_COMPLETED)

SESSION_ID_ALIASES: tuple[str, ...] = ("sessionId", "workflowId", "_id", "id")
SECRET_KEYS = frozenset({"password", "tempPassword", "temporaryPassword"})

EPOCH = datetime.min.replace(tzinfo=timezone.utc)
MONOTONIC_STEP = timedelta(milliseconds=1)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_session_id() -> str:
    return f"workflow_{uuid.uuid4().hex}"


def generate_object_id(now: datetime | None = None) -> str:
    """24-hex id in the store's object-id layout (timestamp + random)."""
    timestamp = int((now or utcnow()).timestamp())
    return f"{timestamp:08x}{os.urandom(8).hex()}"[:24]


def default_address() -> dict[str, Any]:
    return {
        "street": "",
        "aptSuiteFlr": "",
        "aptNumber": "",
        "city": "",
        "state": "",
        "zipCode": "",
        "country": "United States",
    }


def new_session(session_id: str | None = None, *, now: datetime | None = None) -> dict[str, Any]:
    """Blank live session; its values double as the merge engine's defaults."""
    stamp = (now or utcnow()).isoformat()
    session_id = session_id or generate_session_id()
    return {
        "sessionId": session_id,
        "workflowId": session_id,
        "stage": 0,
        "status": STATUS_IN_PROGRESS,
        "createdAt": stamp,
        "updatedAt": stamp,
        "client": {
            "id": "",
            "_id": "",
            "firstName": "",
            "middleName": "",
            "lastName": "",
            "name": "",
            "email": "",
            "phone": "",
            "dateOfBirth": "",
            "nationality": "",
            "address": default_address(),
        },
        "case": {
            "id": "",
            "_id": "",
            "clientId": "",
            "title": "",
            "description": "",
            "category": "",
            "subcategory": "",
            "status": "draft",
            "priority": "medium",
            "visaType": "",
            "dueDate": "",
            "assignedForms": [],
            "formCaseIds": {},
        },
        "selectedForms": [],
        "formCaseIds": {},
        "selectedQuestionnaire": None,
        "questionnaireAssignment": None,
        "clientCredentials": {"email": "", "createAccount": False},
        "formDetails": [],
    }


DEFAULT_SESSION: dict[str, Any] = new_session("default", now=EPOCH + timedelta(days=1))


def strip_secrets(value: Any) -> Any:
    """Deep copy of ``value`` without password-like keys."""
    if isinstance(value, Mapping):
        return {
            key: strip_secrets(item)
            for key, item in value.items()
            if key not in SECRET_KEYS
        }
    if isinstance(value, list):
        return [strip_secrets(item) for item in value]
    return copy.deepcopy(value)


def parse_timestamp(value: Any) -> datetime:
    """Parse ISO strings or epoch seconds/milliseconds; unknown values sort first."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, bool):
        return EPOCH
    if isinstance(value, (int, float)):
        seconds = value / 1000 if value > 1e11 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return EPOCH
    if isinstance(value, str) and value.strip():
        raw = value.strip()
        if re.fullmatch(r"\d{10,13}", raw):
            return parse_timestamp(int(raw))
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            return EPOCH
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return EPOCH


def touch(session: dict[str, Any], now: datetime | None = None) -> dict[str, Any]:
    """Stamp ``updatedAt`` so it strictly increases across commits of one session."""
    stamp = now or utcnow()
    previous = parse_timestamp(session.get("updatedAt"))
    if stamp <= previous:
        stamp = previous + MONOTONIC_STEP
    session["updatedAt"] = stamp.isoformat()
    return session


def _session_id_of(raw: Mapping[str, Any]) -> str | None:
    for key in SESSION_ID_ALIASES:
        value = coerce_id(raw.get(key))
        if value:
            return value
    return None


def _dict_or_none(value: Any) -> dict[str, Any] | None:
    return dict(value) if isinstance(value, Mapping) else None


def _string_map(value: Any) -> dict[str, str]:
    if not isinstance(value, Mapping):
        return {}
    return {str(k): str(v) for k, v in value.items() if isinstance(v, str) and v}


def canonicalize_session(raw: Any) -> dict[str, Any]:
    """Reconcile a session record from any source into the canonical shape.

    Raises DataIntegrityError when the record is not an object or carries no
    session identifier.
    """
    if not isinstance(raw, Mapping):
        raise DataIntegrityError("Session record is not an object")
    session_id = _session_id_of(raw)
    if not session_id:
        raise DataIntegrityError("Session record has no session identifier")

    session = strip_secrets(raw)
    session["sessionId"] = session_id
    session["workflowId"] = coerce_id(raw.get("workflowId")) or session_id
    session.pop("currentStep", None)
    session["stage"] = clamp_stage_index(raw.get("stage", raw.get("currentStep")))

    status = raw.get("status")
    session["status"] = STATUS_COMPLETED if status == STATUS_COMPLETED else STATUS_IN_PROGRESS

    client = _dict_or_none(raw.get("client")) or _dict_or_none(raw.get("clientInfo"))
    session.pop("clientInfo", None)
    session["client"] = with_id_aliases(strip_secrets(client)) if client else {}

    case = _dict_or_none(raw.get("case")) or _dict_or_none(raw.get("caseData"))
    session.pop("caseData", None)
    session["case"] = with_id_aliases(strip_secrets(case)) if case else {}

    form_case_ids = _string_map(raw.get("formCaseIds"))
    for form_type, case_id in _string_map(session["case"].get("formCaseIds")).items():
        form_case_ids.setdefault(form_type, case_id)
    session["formCaseIds"] = form_case_ids
    if session["case"]:
        session["case"]["formCaseIds"] = dict(form_case_ids)

    selected = raw.get("selectedForms")
    if not isinstance(selected, list) or not selected:
        selected = session["case"].get("assignedForms") or []
    session["selectedForms"] = [f for f in selected if isinstance(f, str) and f]

    assignment = _dict_or_none(raw.get("questionnaireAssignment"))
    session["questionnaireAssignment"] = (
        with_id_aliases(strip_secrets(assignment)) if assignment else None
    )

    credentials = _dict_or_none(raw.get("clientCredentials")) or {}
    session["clientCredentials"] = strip_secrets(credentials)

    return session


def matches_saved_session(existing: Mapping[str, Any], incoming: Mapping[str, Any]) -> bool:
    """Local de-duplication rule: same session id, or same client email."""
    existing_id = _session_id_of(existing)
    if existing_id and existing_id == _session_id_of(incoming):
        return True
    existing_email = normalize_email((existing.get("client") or {}).get("email"))
    incoming_email = normalize_email((incoming.get("client") or {}).get("email"))
    return bool(existing_email and existing_email == incoming_email)


def session_client_email(session: Mapping[str, Any]) -> str | None:
    client = session.get("client") or {}
    credentials = session.get("clientCredentials") or {}
    assignment = session.get("questionnaireAssignment") or {}
    return (
        normalize_email(client.get("email"))
        or normalize_email(credentials.get("email"))
        or normalize_email(assignment.get("clientEmail"))
    )


def session_client_name(session: Mapping[str, Any]) -> str | None:
    client = session.get("client") or {}
    assignment = session.get("questionnaireAssignment") or {}
    return normalize_full_name(
        client.get("firstName"), client.get("lastName"), client.get("name")
    ) or normalize_full_name(
        assignment.get("clientFirstName"),
        assignment.get("clientLastName"),
        assignment.get("clientFullName"),
    )


def session_form_case_ids(session: Mapping[str, Any]) -> set[str]:
    ids = set(_string_map(session.get("formCaseIds")).values())
    ids.update(_string_map((session.get("case") or {}).get("formCaseIds")).values())
    assignment = session.get("questionnaireAssignment") or {}
    ids.update(_string_map(assignment.get("formCaseIds")).values())
    generated = assignment.get("formCaseIdGenerated")
    if isinstance(generated, str) and generated:
        ids.add(generated)
    return ids


def session_assignment_identifier(session: Mapping[str, Any]) -> Identifier | None:
    assignment = session.get("questionnaireAssignment")
    if not isinstance(assignment, Mapping):
        return None
    identifier = normalize_identifier(assignment, name_fields=())
    return identifier if identifier.is_resolvable else None


def session_updated_at(session: Mapping[str, Any]) -> datetime:
    return parse_timestamp(session.get("updatedAt"))
