"""Explicit outcome values returned by the persistence gateway.

Callers branch on the tag instead of wrapping every store call in try/except:

- ``Ok``: the remote store answered; ``value`` is authoritative.
- ``Degraded``: the remote store was unavailable or lacks the capability; the
  value came from (or was only written to) the local cache.
- ``Failed``: the request cannot be completed without user action (for
  example an expired bearer token).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")

SOURCE_REMOTE = "remote"
SOURCE_LOCAL = "local"

FAILURE_AUTHENTICATION = "authentication"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T
    source: str = SOURCE_REMOTE

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Degraded(Generic[T]):
    value: T
    reason: str
    source: str = SOURCE_LOCAL

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failed:
    reason: str
    kind: str = FAILURE_AUTHENTICATION
    status_code: int | None = None
    value: Any = None

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Degraded[T], Failed]
