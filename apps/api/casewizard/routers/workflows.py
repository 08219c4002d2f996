"""
Case wizard, session matching, and response-review handoff endpoints.

Live wizards are kept in the application's in-process registry keyed by
session id; every committed stage is also written through to the stores.
"""

import logging

from fastapi import APIRouter, Body, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse

from casewizard.core.deps import (
    get_account_limiter,
    get_gateway,
    get_handoff_store,
    get_live_wizard,
    get_matcher,
    get_wizard_registry,
)
from casewizard.core.rate_limit import AccountCreationLimiter, limiter
from casewizard.core.results import Failed
from casewizard.core.structured_logging import build_log_context
from casewizard.schemas.workflow import (
    FieldGroupUpdate,
    ReviewHandoffRequest,
    ReviewHandoffResponse,
    SessionMatchRequest,
    SessionMatchResponse,
    TransitionResponse,
    WizardBootstrapRequest,
    WizardStateRead,
)
from casewizard.services import review_service
from casewizard.services.handoff_service import HandoffStore
from casewizard.services.persistence_gateway import PersistenceGateway
from casewizard.services.session_matcher import MatchKey, SessionMatcher
from casewizard.services.wizard_registry import WizardRegistry
from casewizard.services.wizard_service import (
    IllegalTransitionError,
    TransitionResult,
    UnknownFieldGroupError,
    WizardError,
    WizardStateMachine,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["wizard"])


def _state(wizard: WizardStateMachine) -> WizardStateRead:
    snapshot = wizard.snapshot()
    return WizardStateRead(
        session_id=snapshot["sessionId"],
        stage=snapshot["stage"],
        stage_index=snapshot["stageIndex"],
        stages=snapshot["stages"],
        session=snapshot["session"],
        auto_fill_pending=snapshot["autoFillPending"],
        auto_fill_source=snapshot["autoFillSource"],
    )


def _transition_response(
    wizard: WizardStateMachine,
    result: TransitionResult,
    success_status: int = status.HTTP_200_OK,
) -> JSONResponse:
    body = TransitionResponse(
        moved=result.moved,
        stage=result.stage.value,
        errors=result.errors,
        notices=result.notices,
        auth_failed=result.auth_failed,
        payload=result.payload,
        wizard=_state(wizard),
    )
    if result.auth_failed:
        status_code = status.HTTP_401_UNAUTHORIZED
    elif result.errors:
        status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    else:
        status_code = success_status
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


# =============================================================================
# Wizard
# =============================================================================


@router.post(
    "/wizard/sessions",
    response_model=TransitionResponse,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit("30/minute")
async def bootstrap_wizard(
    request: Request,
    data: WizardBootstrapRequest | None = None,
    gateway: PersistenceGateway = Depends(get_gateway),
    handoff_store: HandoffStore = Depends(get_handoff_store),
    account_limiter: AccountCreationLimiter = Depends(get_account_limiter),
    registry: WizardRegistry = Depends(get_wizard_registry),
):
    """
    Start a live wizard.

    Resumes ``session_id`` when given, otherwise consumes the single-read
    review handoff named by ``handoff_token``, otherwise starts fresh.
    """
    data = data or WizardBootstrapRequest()
    handoff = None
    if data.handoff_token and not data.session_id:
        handoff = handoff_store.take(data.handoff_token)
        if handoff is None:
            raise HTTPException(status_code=404, detail="Handoff not found or already used")

    wizard = WizardStateMachine(
        gateway,
        SessionMatcher(gateway),
        account_limiter=account_limiter,
    )
    result = await wizard.bootstrap(session_id=data.session_id, handoff=handoff)
    registry.add(wizard)
    logger.info(
        "Wizard bootstrapped",
        extra=build_log_context(
            session_id=wizard.session_id, stage=wizard.stage.value, route="/wizard/sessions"
        ),
    )
    return _transition_response(wizard, result, status.HTTP_201_CREATED)


@router.get("/wizard/sessions/{session_id}", response_model=WizardStateRead)
def get_wizard(wizard: WizardStateMachine = Depends(get_live_wizard)):
    return _state(wizard)


@router.patch("/wizard/sessions/{session_id}/{group}", response_model=WizardStateRead)
def update_wizard_group(
    group: str,
    data: FieldGroupUpdate,
    wizard: WizardStateMachine = Depends(get_live_wizard),
):
    """Apply user edits to one field group (client, case, responses, ...)."""
    try:
        wizard.update(group, data.values)
    except UnknownFieldGroupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except WizardError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _state(wizard)


@router.post("/wizard/sessions/{session_id}/next", response_model=TransitionResponse)
async def next_stage(wizard: WizardStateMachine = Depends(get_live_wizard)):
    return _transition_response(wizard, await wizard.next())


@router.post("/wizard/sessions/{session_id}/previous", response_model=TransitionResponse)
async def previous_stage(wizard: WizardStateMachine = Depends(get_live_wizard)):
    return _transition_response(wizard, await wizard.previous())


@router.post("/wizard/sessions/{session_id}/jump", response_model=TransitionResponse)
def jump_to_stage(
    stage: str = Body(..., embed=True),
    wizard: WizardStateMachine = Depends(get_live_wizard),
):
    """Stage jumps are reserved for bootstrap; always rejected here."""
    try:
        result = wizard.jump_to(stage)
    except IllegalTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _transition_response(wizard, result)


@router.post("/wizard/sessions/{session_id}/complete", response_model=TransitionResponse)
async def complete_wizard(
    wizard: WizardStateMachine = Depends(get_live_wizard),
    registry: WizardRegistry = Depends(get_wizard_registry),
):
    """Mark the session completed and return the per-form auto-fill payload."""
    result = await wizard.complete()
    if result.moved:
        registry.discard(wizard.session_id)
    return _transition_response(wizard, result)


# =============================================================================
# Matching
# =============================================================================


@router.post("/sessions/match", response_model=SessionMatchResponse)
async def match_session(
    data: SessionMatchRequest,
    matcher: SessionMatcher = Depends(get_matcher),
):
    result = await matcher.resolve(
        MatchKey(
            form_case_id=data.form_case_id,
            assignment_id=data.assignment_id,
            client_email=data.client_email,
            client_name=data.client_name,
        ),
        context_assignment_id=data.context_assignment_id,
        exclude_session_ids=data.exclude_session_ids,
    )
    return SessionMatchResponse(
        session=result.session,
        tier=result.tier,
        candidates=result.candidates,
        pool_size=result.pool_size,
        degraded_reason=result.degraded_reason,
    )


# =============================================================================
# Review handoff
# =============================================================================


@router.post(
    "/review/assignments/{assignment_id}/handoff",
    response_model=ReviewHandoffResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_review_handoff(
    assignment_id: str,
    data: ReviewHandoffRequest | None = None,
    gateway: PersistenceGateway = Depends(get_gateway),
    handoff_store: HandoffStore = Depends(get_handoff_store),
):
    """Prepare the single-read handoff the wizard consumes at bootstrap."""
    assignment = data.assignment if data else None
    if assignment is None:
        found = await gateway.find_assignment(assignment_id)
        if isinstance(found, Failed) and found.value is None:
            raise HTTPException(status_code=401, detail=found.reason)
        if found.value is None:
            raise HTTPException(status_code=404, detail="Assignment not found")
        assignment = found.value

    try:
        token, payload = await review_service.prepare_review_handoff(
            assignment, gateway, handoff_store
        )
    except review_service.ReviewHandoffError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return ReviewHandoffResponse(token=token, payload=payload)
