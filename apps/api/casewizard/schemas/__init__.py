"""Pydantic schemas for API request/response models."""

from casewizard.schemas.workflow import (
    FieldGroupUpdate,
    ReviewHandoffRequest,
    ReviewHandoffResponse,
    SessionMatchRequest,
    SessionMatchResponse,
    StageRead,
    TransitionResponse,
    WizardBootstrapRequest,
    WizardStateRead,
)

__all__ = [
    # Wizard
    "FieldGroupUpdate",
    "StageRead",
    "TransitionResponse",
    "WizardBootstrapRequest",
    "WizardStateRead",
    # Matching
    "SessionMatchRequest",
    "SessionMatchResponse",
    # Review
    "ReviewHandoffRequest",
    "ReviewHandoffResponse",
]
