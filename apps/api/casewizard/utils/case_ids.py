"""Form-case identifier helpers (format PREFIX-YYYY-NNNN, e.g. CR-2025-0001)."""

from __future__ import annotations

import logging
import re
import secrets
from datetime import datetime, timezone

from casewizard.core.config import settings

logger = logging.getLogger(__name__)

SEQUENCE_DIGITS = 4
MAX_SEQUENCE = 9999


def _case_id_pattern(prefix: str) -> re.Pattern[str]:
    return re.compile(rf"^{re.escape(prefix)}-\d{{4}}-\d{{{SEQUENCE_DIGITS}}}$")


def generate_case_id(
    form_type: str = "GENERAL",
    *,
    prefix: str | None = None,
    now: datetime | None = None,
) -> str:
    """Generate a tracking code for one selected form.

    The sequence is random; the remote service issues authoritative ids when
    it is reachable.
    """
    prefix = prefix or settings.CASE_ID_PREFIX
    year = (now or datetime.now(timezone.utc)).year
    sequence = secrets.randbelow(MAX_SEQUENCE) + 1
    case_id = f"{prefix}-{year}-{sequence:0{SEQUENCE_DIGITS}d}"
    logger.debug("Generated case id for form type %s", form_type)
    return case_id


def generate_case_ids(
    form_types: list[str],
    *,
    existing: dict[str, str] | None = None,
    prefix: str | None = None,
    now: datetime | None = None,
) -> dict[str, str]:
    """Map each form type to a case id, keeping ids that were already issued.

    A form type maps to at most one case id, and generated ids are unique
    within the returned mapping.
    """
    existing = existing or {}
    case_ids: dict[str, str] = {}
    used: set[str] = set()
    for form_type in form_types:
        current = existing.get(form_type)
        if current:
            case_ids[form_type] = current
            used.add(current)
    for form_type in form_types:
        if form_type in case_ids:
            continue
        candidate = generate_case_id(form_type, prefix=prefix, now=now)
        while candidate in used:
            candidate = generate_case_id(form_type, prefix=prefix, now=now)
        case_ids[form_type] = candidate
        used.add(candidate)
    return case_ids


def format_case_id(case_id: str | None) -> str:
    """Pad the sequence part of a three-part case id for display."""
    if not case_id:
        return "N/A"
    if is_valid_case_id(case_id):
        return case_id
    parts = case_id.split("-")
    if len(parts) == 3 and parts[2].isdigit():
        prefix, year, sequence = parts
        return f"{prefix.upper()}-{year}-{sequence.zfill(SEQUENCE_DIGITS)}"
    return case_id


def is_valid_case_id(case_id: str | None, *, prefix: str | None = None) -> bool:
    if not case_id or not isinstance(case_id, str):
        return False
    return bool(_case_id_pattern(prefix or settings.CASE_ID_PREFIX).match(case_id))
