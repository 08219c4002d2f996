"""Tests for the dual-store persistence gateway."""

import httpx
import pytest

from casewizard.core.results import Degraded, Failed, Ok
from casewizard.services.identity_service import DataIntegrityError
from casewizard.services.local_store import ASSIGNMENTS_KEY, SAVED_SESSIONS_KEY
from casewizard.services.persistence_gateway import (
    REASON_CAPABILITY_ABSENT,
    REASON_NOT_CONFIGURED,
    REASON_UNREACHABLE,
    PersistenceGateway,
)
from casewizard.services.remote_store import RemoteStore


def _client_session(make_session, session_id="workflow_a", email="ana@example.com"):
    return make_session(
        session_id,
        client={"_id": "client-1", "firstName": "Ana", "lastName": "Ruiz", "email": email},
        selectedForms=["I-130"],
        formCaseIds={"I-130": "CR-2025-0007"},
        clientCredentials={"email": email, "createAccount": True, "password": "s3cret!"},
    )


@pytest.mark.asyncio
async def test_session_round_trip(gateway, make_session):
    written = _client_session(make_session)
    saved = await gateway.save_session(written)
    assert isinstance(saved, Ok)

    read = await gateway.read_session("workflow_a")

    assert isinstance(read, Ok)
    for key in ("sessionId", "stage", "status", "selectedForms", "formCaseIds", "updatedAt"):
        assert read.value[key] == written[key]
    assert read.value["client"]["email"] == "ana@example.com"
    assert read.value["client"]["id"] == "client-1"


@pytest.mark.asyncio
async def test_write_mirrors_locally_when_remote_unreachable(
    gateway, fake_remote, local_store, make_session
):
    fake_remote.available = False

    result = await gateway.save_session(_client_session(make_session))

    assert isinstance(result, Degraded)
    assert result.reason == REASON_UNREACHABLE
    assert "save_session" not in fake_remote.calls
    cached = local_store.get_list(SAVED_SESSIONS_KEY)
    assert [s["sessionId"] for s in cached] == ["workflow_a"]


@pytest.mark.asyncio
async def test_secrets_never_reach_either_store(gateway, fake_remote, local_store, make_session):
    await gateway.save_session(_client_session(make_session))

    cached = local_store.get_list(SAVED_SESSIONS_KEY)[0]
    assert "password" not in cached["clientCredentials"]
    assert cached["clientCredentials"]["createAccount"] is True
    assert "password" not in fake_remote.sessions["workflow_a"]["clientCredentials"]


@pytest.mark.asyncio
async def test_local_mirror_deduplicates_by_client_email(gateway, local_store, make_session):
    await gateway.save_session(_client_session(make_session, "workflow_a"))
    await gateway.save_session(_client_session(make_session, "workflow_b"))
    await gateway.save_session(make_session("workflow_c"))

    cached = local_store.get_list(SAVED_SESSIONS_KEY)
    assert [s["sessionId"] for s in cached] == ["workflow_b", "workflow_c"]


@pytest.mark.asyncio
async def test_email_change_replaces_session_record(local_store, make_session):
    gateway = PersistenceGateway(local_store)
    await gateway.save_session(_client_session(make_session, email="old@example.com"))
    await gateway.save_session(_client_session(make_session, email="new@example.com"))

    cached = local_store.get_list(SAVED_SESSIONS_KEY)
    assert [s["client"]["email"] for s in cached] == ["new@example.com"]
    read = await gateway.read_session("workflow_a")
    assert read.value["client"]["email"] == "new@example.com"


@pytest.mark.asyncio
async def test_local_read_prefers_newest_duplicate(local_store, make_session):
    local_store.set(
        SAVED_SESSIONS_KEY,
        [
            make_session("workflow_a", stage=2, updatedAt="2025-03-01T10:00:00+00:00"),
            make_session("workflow_a", stage=4, updatedAt="2025-03-02T10:00:00+00:00"),
        ],
    )
    gateway = PersistenceGateway(local_store)

    read = await gateway.read_session("workflow_a")

    assert read.value["stage"] == 4


@pytest.mark.asyncio
async def test_auth_failure_is_surfaced_but_local_mirror_happens(
    gateway, fake_remote, local_store, make_session
):
    fake_remote.fail_with("auth")

    result = await gateway.save_session(_client_session(make_session))

    assert isinstance(result, Failed)
    assert result.kind == "authentication"
    assert result.status_code == 401
    assert local_store.get_list(SAVED_SESSIONS_KEY)[0]["sessionId"] == "workflow_a"


@pytest.mark.asyncio
async def test_not_found_degrades_to_local(gateway, fake_remote, make_session):
    await gateway.save_session(_client_session(make_session))
    fake_remote.fail_with("not-found")

    result = await gateway.read_session("workflow_a")

    assert isinstance(result, Degraded)
    assert result.reason == REASON_CAPABILITY_ABSENT
    assert result.value["sessionId"] == "workflow_a"


@pytest.mark.asyncio
async def test_network_error_read_falls_back_to_local_cache(local_store, make_session):
    """Remote store returns a network error; the cached value comes back."""
    offline = PersistenceGateway(local_store)
    await offline.save_session(_client_session(make_session))

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    remote = RemoteStore(
        "http://remote.test",
        token="token-1",
        transport=httpx.MockTransport(handler),
        max_attempts=1,
        base_delay=0,
        max_delay=0,
    )
    gateway = PersistenceGateway(local_store, remote)

    result = await gateway.read_session("workflow_a")

    assert isinstance(result, Degraded)
    assert result.value["sessionId"] == "workflow_a"
    assert result.value["formCaseIds"] == {"I-130": "CR-2025-0007"}


@pytest.mark.asyncio
async def test_without_remote_everything_is_local(local_store, make_session):
    gateway = PersistenceGateway(local_store)

    result = await gateway.save_session(_client_session(make_session))

    assert isinstance(result, Degraded)
    assert result.reason == REASON_NOT_CONFIGURED


@pytest.mark.asyncio
async def test_save_session_without_id_raises(gateway):
    with pytest.raises(DataIntegrityError):
        await gateway.save_session({"client": {"email": "x@example.com"}})


@pytest.mark.asyncio
async def test_list_sessions_pools_remote_first_then_local(
    gateway, fake_remote, local_store, make_session
):
    fake_remote.sessions["remote_1"] = make_session("remote_1")
    fake_remote.sessions["shared"] = make_session("shared", stage=4)
    local_store.set(
        SAVED_SESSIONS_KEY,
        [
            make_session("shared", stage=2),
            make_session("local_1"),
            {"client": {"email": "no-id@example.com"}},
        ],
    )

    result = await gateway.list_sessions()

    assert isinstance(result, Ok)
    assert [s["sessionId"] for s in result.value] == ["remote_1", "shared", "local_1"]
    assert result.value[1]["stage"] == 4


@pytest.mark.asyncio
async def test_list_sessions_degrades_on_server_error(
    gateway, fake_remote, local_store, make_session
):
    local_store.set(SAVED_SESSIONS_KEY, [make_session("local_1")])
    fake_remote.fail_with("server")

    result = await gateway.list_sessions()

    assert isinstance(result, Degraded)
    assert [s["sessionId"] for s in result.value] == ["local_1"]


@pytest.mark.asyncio
async def test_find_assignment_across_id_schemes(gateway, fake_remote, local_store):
    fake_remote.assignments = [{"_id": "q_assignment_remote_0001", "originalId": "local-a1"}]
    local_store.set(ASSIGNMENTS_KEY, [{"id": "local-a2", "status": "pending"}])

    remote_hit = await gateway.find_assignment("local-a1")
    local_hit = await gateway.find_assignment("local-a2")
    miss = await gateway.find_assignment("nope")

    assert remote_hit.value["_id"] == "q_assignment_remote_0001"
    assert local_hit.value["status"] == "pending"
    assert isinstance(miss, Ok) and miss.value is None


@pytest.mark.asyncio
async def test_save_assignment_requires_identifier(gateway):
    with pytest.raises(DataIntegrityError):
        await gateway.save_assignment({"status": "pending"})


@pytest.mark.asyncio
async def test_questionnaire_is_cached_for_offline_reads(gateway, fake_remote):
    fake_remote.questionnaires["quest-9"] = {
        "_id": "quest-9",
        "title": "Employment history",
        "data": {"questions": [{"question": "Current employer"}]},
    }

    first = await gateway.read_questionnaire("quest-9")
    fake_remote.fail_with("network")
    second = await gateway.read_questionnaire("quest-9")

    assert isinstance(first, Ok)
    assert isinstance(second, Degraded)
    assert second.value["fields"][0]["label"] == "Current employer"


def test_credentials_summary_strips_secrets(gateway):
    stored = gateway.write_credentials_summary(
        {"email": "ana@example.com", "accountRequested": True, "tempPassword": "x"}
    )
    assert "tempPassword" not in stored
    assert gateway.read_credentials_summary() == stored

    gateway.clear_credentials_summary()
    assert gateway.read_credentials_summary() is None
