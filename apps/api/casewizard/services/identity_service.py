"""Identifier normalization across the remote, cached, and handoff id schemes.

An entity may be addressed by up to four strings: the store-issued id, an
externally prefixed id (``q_...``), a previously used original id, and as a
last resort its name. ``normalize_identifier`` derives all of them once so
that matching never re-derives ids ad hoc.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from casewizard.core.config import settings
from casewizard.utils.normalization import normalize_name

ID_FIELDS: tuple[str, ...] = ("_id", "id")
NAME_FIELDS: tuple[str, ...] = ("name", "title")


class DataIntegrityError(ValueError):
    """A record carries no identifier that can be normalized."""

    pass


@dataclass(frozen=True)
class Identifier:
    canonical_id: str | None = None
    external_id: str | None = None
    original_id: str | None = None
    name: str | None = None

    @property
    def candidate_ids(self) -> tuple[str, ...]:
        """Deduplicated ids, external first since it is authoritative for remote records."""
        ordered: list[str] = []
        for value in (self.external_id, self.original_id, self.canonical_id, self.name):
            if value and value not in ordered:
                ordered.append(value)
        return tuple(ordered)

    @property
    def is_resolvable(self) -> bool:
        return bool(self.canonical_id or self.external_id or self.original_id)


def coerce_id(value: Any) -> str | None:
    """Read an id value; populated references (``{"_id": ...}``) are unwrapped."""
    if isinstance(value, Mapping):
        for field in ID_FIELDS:
            nested = coerce_id(value.get(field))
            if nested:
                return nested
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return None


def strip_marker(value: str, marker: str | None = None) -> str:
    marker = settings.EXTERNAL_ID_MARKER if marker is None else marker
    if marker and value.startswith(marker):
        return value[len(marker):]
    return value


def normalize_identifier(
    record: Mapping[str, Any],
    *,
    id_fields: Sequence[str] = ID_FIELDS,
    name_fields: Sequence[str] = NAME_FIELDS,
    marker: str | None = None,
) -> Identifier:
    """Derive the identifier set for one raw record."""
    if not isinstance(record, Mapping):
        raise TypeError(f"Expected a mapping record, got {type(record).__name__}")
    marker = settings.EXTERNAL_ID_MARKER if marker is None else marker

    raw_ids = [coerce_id(record.get(field)) for field in id_fields]
    raw_ids = [value for value in raw_ids if value]

    external_id = coerce_id(record.get("externalId"))
    if not external_id and marker:
        external_id = next((v for v in raw_ids if v.startswith(marker)), None)

    canonical_id = next(
        (v for v in raw_ids if not (marker and v.startswith(marker))),
        None,
    )
    if canonical_id is None:
        canonical_id = external_id

    original_id = coerce_id(record.get("originalId"))

    name = None
    for field in name_fields:
        name = normalize_name(record.get(field))
        if name:
            break

    return Identifier(
        canonical_id=canonical_id,
        external_id=external_id,
        original_id=original_id,
        name=name,
    )


def require_identifier(
    record: Mapping[str, Any],
    entity: str = "record",
    **kwargs: Any,
) -> Identifier:
    identifier = normalize_identifier(record, **kwargs)
    if not identifier.is_resolvable:
        raise DataIntegrityError(f"{entity} has no usable identifier")
    return identifier


def _fuzzy_key(value: str, marker: str | None, prefix_length: int) -> str:
    return strip_marker(value, marker)[:prefix_length]


def match_identifiers(
    target_id: str | None,
    identifiers: Iterable[Identifier],
    *,
    marker: str | None = None,
    prefix_length: int | None = None,
) -> list[int]:
    """Indexes of every record addressed by ``target_id``.

    Exact equality is tried against every record before the fuzzy fallback
    (marker-stripped prefix equality) is tried against any of them, so fuzzy
    hits are only returned when no record matched exactly.
    """
    target = coerce_id(target_id)
    if not target:
        return []
    identifiers = list(identifiers)
    prefix_length = prefix_length or settings.FUZZY_ID_PREFIX_LENGTH

    exact = [
        index
        for index, identifier in enumerate(identifiers)
        if target in identifier.candidate_ids
    ]
    if exact:
        return exact

    target_key = _fuzzy_key(target, marker, prefix_length)
    if len(target_key) < prefix_length:
        return []
    return [
        index
        for index, identifier in enumerate(identifiers)
        if any(
            _fuzzy_key(candidate, marker, prefix_length) == target_key
            for candidate in identifier.candidate_ids
        )
    ]


def match_identifier(
    target_id: str | None,
    identifiers: Iterable[Identifier],
    **kwargs: Any,
) -> int | None:
    """Index of the first record addressed by ``target_id``, or None."""
    matches = match_identifiers(target_id, identifiers, **kwargs)
    return matches[0] if matches else None


def lookup(
    target_id: str | None,
    identifiers: Identifier | Iterable[Identifier],
    **kwargs: Any,
) -> bool:
    if isinstance(identifiers, Identifier):
        identifiers = [identifiers]
    return match_identifier(target_id, identifiers, **kwargs) is not None


def same_entity(left: Identifier, right: Identifier) -> bool:
    """True when the two identifier sets share an exact id."""
    right_ids = set(right.candidate_ids)
    return any(candidate in right_ids for candidate in left.candidate_ids)


def with_id_aliases(record: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy whose ``id`` and ``_id`` are equal.

    ``_id`` (store-issued) wins when both exist and differ; the displaced
    ``id`` is retained as ``originalId`` when that slot is free.
    """
    result = dict(record)
    store_id = coerce_id(result.get("_id"))
    local_id = coerce_id(result.get("id"))
    if store_id and local_id and store_id != local_id:
        if not coerce_id(result.get("originalId")):
            result["originalId"] = local_id
        result["id"] = store_id
    elif store_id:
        result["id"] = store_id
    elif local_id:
        result["_id"] = local_id
    return result
