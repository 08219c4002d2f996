"""Utility modules."""

from casewizard.utils.case_ids import (
    format_case_id,
    generate_case_id,
    generate_case_ids,
    is_valid_case_id,
)
from casewizard.utils.normalization import (
    is_empty_value,
    normalize_email,
    normalize_full_name,
    normalize_name,
)

__all__ = [
    # Normalization
    "is_empty_value",
    "normalize_email",
    "normalize_full_name",
    "normalize_name",
    # Case ids
    "format_case_id",
    "generate_case_id",
    "generate_case_ids",
    "is_valid_case_id",
]
