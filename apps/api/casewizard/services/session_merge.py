"""Fill-if-absent merge of a matched saved session into the live session.

Auto-fill may resolve while the user is mid-edit, so the merge only enriches:
a matched value is adopted when the live value is empty or still equal to the
blank-session default. Nested objects (client, address, case, credentials,
form-case ids) are merged key by key. Response maps are merged additively and
the stage index never moves backwards.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from typing import Any

from casewizard.core.stage_definitions import clamp_stage_index
from casewizard.services.identity_service import (
    normalize_identifier,
    same_entity,
    with_id_aliases,
)
from casewizard.services.session_records import DEFAULT_SESSION, strip_secrets
from casewizard.utils.normalization import is_empty_value

logger = logging.getLogger(__name__)

# Owned by the live session; never adopted from a match.
LIVE_ONLY_KEYS = frozenset(
    {"sessionId", "workflowId", "_id", "id", "status", "createdAt", "updatedAt", "stage"}
)
RESPONSE_KEYS = ("responses",)

_MISSING = object()


def _is_absent(value: Any, default: Any) -> bool:
    if value is _MISSING or is_empty_value(value):
        return True
    return default is not _MISSING and value == default


def _fill(live: Any, matched: Any, default: Any, path: str, adopted: list[str]) -> Any:
    if isinstance(live, Mapping) and isinstance(matched, Mapping):
        defaults = default if isinstance(default, Mapping) else {}
        merged: dict[str, Any] = {}
        for key in [*live.keys(), *(k for k in matched.keys() if k not in live)]:
            merged[key] = _fill(
                live.get(key, _MISSING),
                matched.get(key, _MISSING),
                defaults.get(key, _MISSING),
                f"{path}.{key}" if path else key,
                adopted,
            )
        return merged
    if matched is not _MISSING and _is_absent(live, default) and not _is_absent(matched, default):
        adopted.append(path)
        return copy.deepcopy(matched)
    if live is _MISSING:
        return copy.deepcopy(matched)
    return copy.deepcopy(live)


def merge_responses(
    live: Mapping[str, Any] | None, matched: Mapping[str, Any] | None
) -> dict[str, Any]:
    """Add response keys missing from ``live``; existing keys are left untouched."""
    merged = dict(live or {})
    for key, value in (matched or {}).items():
        if key not in merged:
            merged[key] = copy.deepcopy(value)
    return merged


def _same_assignment(live: Mapping[str, Any], matched: Mapping[str, Any]) -> bool:
    live_id = normalize_identifier(live, name_fields=())
    matched_id = normalize_identifier(matched, name_fields=())
    if not live_id.is_resolvable or not matched_id.is_resolvable:
        return True
    return same_entity(live_id, matched_id)


def _merge_assignment(
    live: Any, matched: Any, adopted: list[str]
) -> dict[str, Any] | None:
    if not isinstance(matched, Mapping) or not matched:
        return copy.deepcopy(live) if isinstance(live, Mapping) else None
    if not isinstance(live, Mapping) or is_empty_value(live):
        adopted.append("questionnaireAssignment")
        return with_id_aliases(copy.deepcopy(dict(matched)))
    if not _same_assignment(live, matched):
        # Responses belong to a different questionnaire.
        return copy.deepcopy(dict(live))

    base = {k: v for k, v in live.items() if k not in RESPONSE_KEYS}
    other = {k: v for k, v in matched.items() if k not in RESPONSE_KEYS}
    merged = _fill(base, other, _MISSING, "questionnaireAssignment", adopted)
    for key in RESPONSE_KEYS:
        if key in live or key in matched:
            responses = merge_responses(live.get(key), matched.get(key))
            added = set(responses) - set(live.get(key) or {})
            adopted.extend(f"questionnaireAssignment.{key}.{name}" for name in sorted(added))
            merged[key] = responses
    return with_id_aliases(merged)


def merge_with_report(
    matched: Mapping[str, Any] | None, live: Mapping[str, Any]
) -> tuple[dict[str, Any], list[str]]:
    """Merge and return the dotted paths that were adopted from ``matched``."""
    result = copy.deepcopy(dict(live))
    adopted: list[str] = []
    if not matched:
        return result, adopted
    matched = strip_secrets(matched)

    for key, value in matched.items():
        if key in LIVE_ONLY_KEYS:
            continue
        if key == "questionnaireAssignment":
            result[key] = _merge_assignment(live.get(key), value, adopted)
            continue
        result[key] = _fill(
            live.get(key, _MISSING),
            value,
            DEFAULT_SESSION.get(key, _MISSING),
            key,
            adopted,
        )

    if isinstance(result.get("client"), Mapping) and result["client"]:
        result["client"] = with_id_aliases(result["client"])
    if isinstance(result.get("case"), Mapping) and result["case"]:
        case = with_id_aliases(result["case"])
        form_case_ids = dict(result.get("formCaseIds") or {})
        for form_type, case_id in (case.get("formCaseIds") or {}).items():
            form_case_ids.setdefault(form_type, case_id)
        result["formCaseIds"] = form_case_ids
        case["formCaseIds"] = dict(form_case_ids)
        result["case"] = case

    live_stage = clamp_stage_index(live.get("stage"))
    matched_stage = clamp_stage_index(matched.get("stage"))
    result["stage"] = max(live_stage, matched_stage)
    if matched_stage > live_stage:
        adopted.append("stage")
    return result, adopted


def merge_into_live_session(
    matched: Mapping[str, Any] | None, live: Mapping[str, Any]
) -> dict[str, Any]:
    merged, adopted = merge_with_report(matched, live)
    if adopted:
        logger.debug("Auto-fill adopted %d field(s)", len(adopted))
    return merged
