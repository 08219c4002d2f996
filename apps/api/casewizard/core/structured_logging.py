"""Structured logging helpers (PII-safe)."""

from typing import Any


def build_log_context(
    *,
    session_id: str | None = None,
    stage: str | None = None,
    source: str | None = None,
    reason: str | None = None,
    route: str | None = None,
    method: str | None = None,
) -> dict[str, Any]:
    """Return a PII-safe log context dict.

    Client emails, names and credentials never belong here; only opaque ids
    and engine state.
    """
    context: dict[str, Any] = {}
    if session_id:
        context["session_id"] = session_id
    if stage:
        context["stage"] = stage
    if source:
        context["source"] = source
    if reason:
        context["reason"] = reason
    if route:
        context["route"] = route
    if method:
        context["method"] = method
    return context
