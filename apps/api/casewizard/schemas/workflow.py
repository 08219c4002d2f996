"""Pydantic schemas for the case wizard and session matching API."""

from typing import Any

from pydantic import BaseModel, Field, field_validator

from casewizard.core.stage_definitions import STAGE_ORDER


# =============================================================================
# Wizard
# =============================================================================


class StageRead(BaseModel):
    id: str
    title: str
    description: str
    order: int
    status: str


class WizardBootstrapRequest(BaseModel):
    """Start a new wizard, resume a saved session, or consume a review handoff."""

    session_id: str | None = None
    handoff_token: str | None = None

    @field_validator("session_id", "handoff_token")
    @classmethod
    def blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        return value or None


class FieldGroupUpdate(BaseModel):
    values: Any = Field(..., description="Object, list or id depending on the group")


class WizardStateRead(BaseModel):
    session_id: str
    stage: str
    stage_index: int = Field(..., ge=0, le=len(STAGE_ORDER) - 1)
    stages: list[StageRead]
    session: dict[str, Any]
    auto_fill_pending: bool = False
    auto_fill_source: str | None = None


class TransitionResponse(BaseModel):
    moved: bool
    stage: str
    errors: list[str] = Field(default_factory=list)
    notices: list[str] = Field(default_factory=list)
    auth_failed: bool = False
    payload: list[dict[str, Any]] | None = None
    wizard: WizardStateRead


# =============================================================================
# Matching
# =============================================================================


class SessionMatchRequest(BaseModel):
    form_case_id: str | None = None
    assignment_id: str | None = None
    client_email: str | None = None
    client_name: str | None = None
    context_assignment_id: str | None = None
    exclude_session_ids: list[str] = Field(default_factory=list)


class SessionMatchResponse(BaseModel):
    session: dict[str, Any] | None = None
    tier: str | None = None
    candidates: int = 0
    pool_size: int = 0
    degraded_reason: str | None = None


# =============================================================================
# Review handoff
# =============================================================================


class ReviewHandoffRequest(BaseModel):
    """Populated assignment from the review screen; looked up by id when omitted."""

    assignment: dict[str, Any] | None = None


class ReviewHandoffResponse(BaseModel):
    token: str
    payload: dict[str, Any]
