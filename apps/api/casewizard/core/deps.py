"""FastAPI dependencies for the persistence gateway and wizard registry."""

from fastapi import Depends, HTTPException, Request

from casewizard.core.config import settings
from casewizard.core.rate_limit import AccountCreationLimiter
from casewizard.services.handoff_service import HandoffStore
from casewizard.services.local_store import LocalStore
from casewizard.services.persistence_gateway import PersistenceGateway
from casewizard.services.remote_store import RemoteStore
from casewizard.services.session_matcher import SessionMatcher
from casewizard.services.wizard_service import WizardStateMachine
from casewizard.services.wizard_registry import WizardRegistry


AUTH_HEADER = "Authorization"
BEARER_PREFIX = "bearer "


def get_bearer_token(request: Request) -> str | None:
    """Bearer token forwarded to the remote service (never validated here)."""
    header = request.headers.get(AUTH_HEADER) or ""
    if header.lower().startswith(BEARER_PREFIX):
        token = header[len(BEARER_PREFIX):].strip()
        return token or None
    return None


def get_local_store(request: Request) -> LocalStore:
    return request.app.state.local_store


def get_remote_store(token: str | None = Depends(get_bearer_token)) -> RemoteStore | None:
    if not settings.REMOTE_API_BASE_URL:
        return None
    return RemoteStore(token=token)


def get_gateway(
    local: LocalStore = Depends(get_local_store),
    remote: RemoteStore | None = Depends(get_remote_store),
) -> PersistenceGateway:
    return PersistenceGateway(local, remote)


def get_matcher(gateway: PersistenceGateway = Depends(get_gateway)) -> SessionMatcher:
    return SessionMatcher(gateway)


def get_handoff_store(request: Request) -> HandoffStore:
    return request.app.state.handoff_store


def get_account_limiter(request: Request) -> AccountCreationLimiter:
    return request.app.state.account_limiter


def get_wizard_registry(request: Request) -> WizardRegistry:
    return request.app.state.wizards


def get_live_wizard(
    session_id: str,
    registry: WizardRegistry = Depends(get_wizard_registry),
    gateway: PersistenceGateway = Depends(get_gateway),
) -> WizardStateMachine:
    """
    Live wizard for ``session_id``, rebound to this request's gateway.

    Raises:
        HTTPException 404: No live wizard with this session id
    """
    wizard = registry.get(session_id)
    if wizard is None:
        raise HTTPException(status_code=404, detail="Wizard session not found")
    # The bearer token may have been refreshed since the last request.
    wizard.gateway = gateway
    wizard.matcher = SessionMatcher(gateway)
    return wizard
