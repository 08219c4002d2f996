"""Data normalization utilities for matching and merge decisions."""

import unicodedata
from typing import Any, Optional


def normalize_email(email: Optional[str]) -> Optional[str]:
    """
    Normalize email to lowercase.

    Args:
        email: Raw email input

    Returns:
        Lowercased email or None if empty
    """
    if not email or not isinstance(email, str):
        return None
    normalized = email.strip().lower()
    return normalized or None


def normalize_name(name: Optional[str]) -> Optional[str]:
    """
    Normalize name by stripping whitespace and collapsing multiple spaces.

    Args:
        name: Raw name input

    Returns:
        Cleaned name or None if empty
    """
    if not name or not isinstance(name, str):
        return None
    collapsed = " ".join(name.split())
    return collapsed or None


def _strip_accents(value: str) -> str:
    """Remove diacritics for accent-insensitive matching."""
    return "".join(
        ch for ch in unicodedata.normalize("NFKD", value) if not unicodedata.combining(ch)
    )


def normalize_search_text(value: Optional[str]) -> Optional[str]:
    """
    Normalize free-text for matching.

    - Strip accents
    - Lowercase
    - Collapse whitespace
    """
    collapsed = normalize_name(value)
    if not collapsed:
        return None
    return _strip_accents(collapsed).lower()


def normalize_full_name(
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    full_name: Optional[str] = None,
) -> Optional[str]:
    """Build a comparable full name from split or combined name parts."""
    parts = [p for p in (first_name, last_name) if isinstance(p, str) and p.strip()]
    if parts:
        return normalize_search_text(" ".join(parts))
    return normalize_search_text(full_name)


def is_empty_value(value: Any) -> bool:
    """Treat empty strings/collections as empty; counts False/0 as non-empty."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (int, float, bool)):
        return False
    if isinstance(value, dict):
        if not value:
            return True
        return all(is_empty_value(v) for v in value.values())
    if isinstance(value, (list, tuple)):
        if not value:
            return True
        return all(is_empty_value(v) for v in value)
    return False
