"""Questionnaire definition normalization and response-key validation."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from casewizard.core.config import settings
from casewizard.services.identity_service import coerce_id, with_id_aliases
from casewizard.utils.normalization import is_empty_value

logger = logging.getLogger(__name__)

CHOICE_FIELD_TYPES = frozenset({"select", "multiselect", "radio", "checkbox"})
DEFAULT_FIELD_TYPE = "text"


class QuestionnaireIntegrityError(ValueError):
    """A questionnaire normalized to zero fields or failed validation."""

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or [message]


def _first_list(*candidates: Any) -> list[Any]:
    for candidate in candidates:
        if isinstance(candidate, list) and candidate:
            return candidate
    return []


def _nested(source: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = source.get(key)
    return value if isinstance(value, Mapping) else {}


def raw_fields(questionnaire: Mapping[str, Any]) -> list[Any]:
    """Locate field descriptors in any of the accepted source shapes."""
    form = _nested(questionnaire, "form")
    data = _nested(questionnaire, "data")
    return _first_list(
        questionnaire.get("fields"),
        questionnaire.get("questions"),
        form.get("fields"),
        form.get("questions"),
        data.get("fields"),
        data.get("questions"),
    )


def _text(*values: Any) -> str | None:
    for value in values:
        if isinstance(value, str) and value.strip():
            return value
    return None


def normalize_field(field: Mapping[str, Any], index: int) -> dict[str, Any]:
    """Bring one field/question descriptor into the canonical shape."""
    field_id = coerce_id(field.get("id")) or coerce_id(field.get("_id")) or f"field_{index}"
    required = field.get("required")
    options = field.get("options")
    validation = field.get("validation")
    return {
        "id": field_id,
        "type": _text(field.get("type")) or DEFAULT_FIELD_TYPE,
        "label": _text(field.get("label"), field.get("question"), field.get("name"))
        or f"Question {index + 1}",
        "required": True if required is None else bool(required),
        "options": list(options) if isinstance(options, (list, tuple)) else [],
        "placeholder": _text(field.get("placeholder")) or "",
        "description": _text(field.get("description"), field.get("help_text")) or "",
        "validation": dict(validation) if isinstance(validation, Mapping) else {},
    }


def normalize_questionnaire(questionnaire: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy with a canonical ``fields`` list and consistent ids.

    Accepts ``fields``/``questions`` at the top level or nested under ``form``
    or ``data``. Descriptors that are not objects are skipped.
    """
    if not isinstance(questionnaire, Mapping):
        raise TypeError(
            f"Expected a questionnaire mapping, got {type(questionnaire).__name__}"
        )
    normalized = with_id_aliases(questionnaire)

    marker = settings.EXTERNAL_ID_MARKER
    questionnaire_id = coerce_id(normalized.get("_id"))
    normalized["remoteSourced"] = bool(
        marker and questionnaire_id and questionnaire_id.startswith(marker)
    )

    if not _text(normalized.get("title")) and _text(normalized.get("name")):
        normalized["title"] = normalized["name"]

    raw = raw_fields(questionnaire)
    fields = []
    for index, field in enumerate(raw):
        if not isinstance(field, Mapping):
            logger.warning("Skipping non-object questionnaire field at index %s", index)
            continue
        fields.append(normalize_field(field, index))
    normalized["fields"] = fields
    normalized.pop("questions", None)
    return normalized


def validate_questionnaire(questionnaire: Mapping[str, Any]) -> list[str]:
    """Return integrity errors for a normalized questionnaire (empty when valid)."""
    errors: list[str] = []

    if not _text(questionnaire.get("title")):
        errors.append("Title is required")

    if not questionnaire.get("category"):
        errors.append("Category is required")

    fields = questionnaire.get("fields") or []
    if not fields:
        errors.append("At least one field is required")

    for index, field in enumerate(fields):
        if not _text(field.get("label")):
            errors.append(f"Field {index + 1}: Label is required")
        if not field.get("type"):
            errors.append(f"Field {index + 1}: Type is required")
        if field.get("type") in CHOICE_FIELD_TYPES and not field.get("options"):
            errors.append(
                f"Field {index + 1}: Options are required for {field['type']} fields"
            )

    return errors


def require_fields(questionnaire: Mapping[str, Any]) -> dict[str, Any]:
    """Normalize and reject definitions with no usable fields."""
    normalized = normalize_questionnaire(questionnaire)
    if not normalized["fields"]:
        raise QuestionnaireIntegrityError(
            f"Questionnaire {normalized.get('_id') or normalized.get('title') or '?'} has no fields"
        )
    return normalized


def accepted_response_keys(questionnaire: Mapping[str, Any]) -> set[str]:
    """Field ids, plus labels as the legacy fallback key."""
    keys: set[str] = set()
    for field in questionnaire.get("fields") or []:
        if field.get("id"):
            keys.add(field["id"])
        if field.get("label"):
            keys.add(field["label"])
    return keys


def validate_response_keys(
    questionnaire: Mapping[str, Any], responses: Mapping[str, Any]
) -> list[str]:
    """Return the response keys that address no field of the questionnaire."""
    accepted = accepted_response_keys(questionnaire)
    return sorted(key for key in responses if key not in accepted)


def missing_required(
    questionnaire: Mapping[str, Any], responses: Mapping[str, Any]
) -> list[str]:
    """Ids of required fields with no answer under either the id or the label."""
    missing: list[str] = []
    for field in questionnaire.get("fields") or []:
        if not field.get("required"):
            continue
        answer = responses.get(field["id"])
        if is_empty_value(answer):
            answer = responses.get(field.get("label", ""))
        if is_empty_value(answer):
            missing.append(field["id"])
    return missing
