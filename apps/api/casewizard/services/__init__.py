"""Service layer modules."""

from casewizard.services.identity_service import (
    DataIntegrityError,
    Identifier,
    lookup,
    match_identifier,
    normalize_identifier,
)
from casewizard.services.persistence_gateway import PersistenceGateway
from casewizard.services.session_matcher import MatchKey, MatchResult, SessionMatcher
from casewizard.services.session_merge import merge_into_live_session
from casewizard.services.wizard_service import (
    IllegalTransitionError,
    TransitionResult,
    WizardStateMachine,
)

# Import service modules (not individual functions) for cleaner access
from casewizard.services import questionnaire_service
from casewizard.services import review_service
from casewizard.services import credentials_service

__all__ = [
    # Identity
    "DataIntegrityError",
    "Identifier",
    "lookup",
    "match_identifier",
    "normalize_identifier",
    # Persistence
    "PersistenceGateway",
    # Matching and merge
    "MatchKey",
    "MatchResult",
    "SessionMatcher",
    "merge_into_live_session",
    # Wizard
    "IllegalTransitionError",
    "TransitionResult",
    "WizardStateMachine",
    # Service modules
    "questionnaire_service",
    "review_service",
    "credentials_service",
]
