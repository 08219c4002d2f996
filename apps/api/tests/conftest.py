"""
Test configuration and fixtures.

Provides:
- Local store backed by a fresh SQLite file per test
- In-memory fake of the remote case service
- HTTPX AsyncClient over the ASGI app with both stores wired in
"""
import copy
import os
from typing import Any, AsyncGenerator, Generator

# Must be set before the app (and its engine / rate limiter) is imported
os.environ.setdefault("TESTING", "1")
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.orm import sessionmaker

from casewizard.core.deps import get_remote_store
from casewizard.core.rate_limit import AccountCreationLimiter, limiter
from casewizard.db.base import Base
from casewizard.db.session import build_engine
from casewizard.main import app
from casewizard.services.handoff_service import HandoffStore
from casewizard.services.local_store import LocalStore
from casewizard.services.persistence_gateway import PersistenceGateway
from casewizard.services.remote_store import (
    RemoteAuthError,
    RemoteNotFoundError,
    RemoteUnavailableError,
)
from casewizard.services.session_matcher import SessionMatcher
from casewizard.services.wizard_registry import WizardRegistry


# =============================================================================
# Fake remote service
# =============================================================================


class FakeRemoteStore:
    """In-memory stand-in for RemoteStore with switchable failure modes."""

    def __init__(self):
        self.sessions: dict[str, dict[str, Any]] = {}
        self.assignments: list[dict[str, Any]] = []
        self.questionnaires: dict[str, dict[str, Any]] = {}
        self.users: dict[str, str] = {}
        self.available = True
        self.error: Exception | None = None
        self.calls: list[str] = []

    def fail_with(self, kind: str | None) -> None:
        errors = {
            "network": RemoteUnavailableError("Remote request failed"),
            "server": RemoteUnavailableError("Remote returned 503", 503),
            "not-found": RemoteNotFoundError("Remote resource not found", 404),
            "auth": RemoteAuthError("Remote rejected credentials", 401),
        }
        self.error = errors[kind] if kind else None

    def _call(self, name: str) -> None:
        self.calls.append(name)
        if self.error is not None:
            raise self.error

    async def is_endpoint_available(self, path: str) -> bool:
        self.calls.append(f"probe {path}")
        return self.available

    async def list_sessions(self, *, status=None, search=None, limit=None):
        self._call("list_sessions")
        sessions = [copy.deepcopy(s) for s in self.sessions.values()]
        if status:
            sessions = [s for s in sessions if s.get("status") == status]
        return sessions

    async def get_session(self, session_id: str):
        self._call("get_session")
        session = self.sessions.get(session_id)
        return copy.deepcopy(session) if session else None

    async def save_session(self, session: dict[str, Any]):
        self._call("save_session")
        self.sessions[session["sessionId"]] = copy.deepcopy(session)
        return copy.deepcopy(session)

    async def list_assignments(self):
        self._call("list_assignments")
        return copy.deepcopy(self.assignments)

    async def save_assignment(self, assignment: dict[str, Any]):
        self._call("save_assignment")
        self.assignments = [
            a for a in self.assignments if a.get("_id") != assignment.get("_id")
        ]
        self.assignments.append(copy.deepcopy(assignment))
        return copy.deepcopy(assignment)

    async def get_questionnaire(self, questionnaire_id: str):
        self._call("get_questionnaire")
        questionnaire = self.questionnaires.get(questionnaire_id)
        if questionnaire is None:
            raise RemoteNotFoundError(f"Remote resource not found: {questionnaire_id}", 404)
        return copy.deepcopy(questionnaire)

    async def check_email(self, email: str):
        self._call("check_email")
        user_id = self.users.get(email)
        return {"exists": user_id is not None, "userId": user_id, "role": None, "userType": None}

    async def register_user(self, user_data: dict[str, Any]):
        self._call("register_user")
        user_id = f"user-{len(self.users) + 1}"
        self.users[user_data["email"]] = user_id
        return {"user": {"_id": user_id, "email": user_data["email"]}}


# =============================================================================
# Store fixtures
# =============================================================================


@pytest.fixture(scope="function")
def local_store(tmp_path) -> Generator[LocalStore, None, None]:
    """Local store on a throwaway SQLite file with the schema created."""
    engine = build_engine(f"sqlite:///{tmp_path / 'local_store.db'}")
    Base.metadata.create_all(engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield LocalStore(factory)
    engine.dispose()


@pytest.fixture(scope="function")
def fake_remote() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture(scope="function")
def gateway(local_store: LocalStore, fake_remote: FakeRemoteStore) -> PersistenceGateway:
    return PersistenceGateway(local_store, fake_remote)


@pytest.fixture(scope="function")
def matcher(gateway: PersistenceGateway) -> SessionMatcher:
    return SessionMatcher(gateway)


# =============================================================================
# Sample records
# =============================================================================


def _session_record(session_id: str, **overrides: Any) -> dict[str, Any]:
    session: dict[str, Any] = {
        "sessionId": session_id,
        "stage": 1,
        "status": "in-progress",
        "updatedAt": "2025-03-01T10:00:00+00:00",
        "client": {"firstName": "", "lastName": "", "email": ""},
        "case": {},
        "selectedForms": [],
        "formCaseIds": {},
    }
    session.update(overrides)
    return session


@pytest.fixture
def make_session():
    """Factory for raw saved-session records."""
    return _session_record


@pytest.fixture
def questionnaire() -> dict[str, Any]:
    return {
        "_id": "quest-1",
        "title": "Family Petition Intake",
        "category": "family-based",
        "fields": [
            {"id": "full_name", "type": "text", "label": "Full legal name", "required": True},
            {"id": "birth_city", "type": "text", "label": "City of birth", "required": False},
        ],
    }


# =============================================================================
# API client
# =============================================================================


@pytest.fixture(scope="function")
async def client(
    local_store: LocalStore, fake_remote: FakeRemoteStore
) -> AsyncGenerator[AsyncClient, None]:
    """
    AsyncClient whose app uses the per-test local store and fake remote.
    """
    app.state.local_store = local_store
    app.state.handoff_store = HandoffStore()
    app.state.account_limiter = AccountCreationLimiter("2/minute")
    app.state.wizards = WizardRegistry()
    app.dependency_overrides[get_remote_store] = lambda: fake_remote
    limiter.reset()

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
