"""Tests for client account creation and the credentials summary."""

import string

import pytest

from casewizard.core.rate_limit import AccountCreationLimiter
from casewizard.services import credentials_service
from casewizard.services.credentials_service import (
    AccountCreationThrottledError,
    InvalidClientEmailError,
    generate_temporary_password,
    request_account,
)
from casewizard.services.local_store import CREDENTIALS_SUMMARY_KEY

CLIENT = {"firstName": "Ana", "lastName": "Ruiz", "email": "Ana@Example.com", "phone": "555"}


@pytest.fixture
def limiter():
    return AccountCreationLimiter("2/minute")


def test_temporary_password_has_required_classes():
    password = generate_temporary_password(12)

    assert len(password) == 12
    assert any(c in string.ascii_lowercase for c in password)
    assert any(c in string.ascii_uppercase for c in password)
    assert any(c in string.digits for c in password)


@pytest.mark.asyncio
async def test_new_account_is_registered_without_storing_password(
    gateway, fake_remote, local_store, limiter
):
    result = await request_account(gateway, limiter, CLIENT, session_id="workflow_a")

    assert result.created is True
    assert result.temporary_password
    assert fake_remote.users == {"ana@example.com": "user-1"}
    stored = local_store.get(CREDENTIALS_SUMMARY_KEY)
    assert stored == {"email": "ana@example.com", "accountRequested": True, "userId": "user-1"}
    assert result.temporary_password not in str(stored)


@pytest.mark.asyncio
async def test_password_can_be_withheld_from_the_caller(gateway, fake_remote, limiter):
    result = await request_account(gateway, limiter, CLIENT, return_password=False)

    assert result.created is True
    assert result.temporary_password is None
    assert fake_remote.users == {"ana@example.com": "user-1"}


@pytest.mark.asyncio
async def test_existing_account_is_not_recreated(gateway, fake_remote, limiter):
    fake_remote.users["ana@example.com"] = "user-7"

    result = await request_account(gateway, limiter, CLIENT)

    assert result.existed is True
    assert result.created is False
    assert result.summary["userId"] == "user-7"
    assert "register_user" not in fake_remote.calls


@pytest.mark.asyncio
async def test_missing_email_is_rejected(gateway, limiter):
    with pytest.raises(InvalidClientEmailError):
        await request_account(gateway, limiter, {"firstName": "Ana"})


@pytest.mark.asyncio
async def test_repeated_attempts_are_throttled(gateway, fake_remote, limiter):
    fake_remote.available = False
    await request_account(gateway, limiter, CLIENT)
    await request_account(gateway, limiter, CLIENT)

    with pytest.raises(AccountCreationThrottledError):
        await request_account(gateway, limiter, CLIENT)


@pytest.mark.asyncio
async def test_unreachable_remote_leaves_request_pending(gateway, fake_remote, limiter):
    fake_remote.available = False

    result = await request_account(gateway, limiter, CLIENT)

    assert result.created is False
    assert result.notice
    assert result.summary["accountRequested"] is True
    assert gateway.read_credentials_summary()["email"] == "ana@example.com"


@pytest.mark.asyncio
async def test_auth_failure_is_reported(gateway, fake_remote, limiter):
    fake_remote.fail_with("auth")

    result = await request_account(gateway, limiter, CLIENT)

    assert result.auth_failed is True
    assert result.created is False


@pytest.mark.asyncio
async def test_check_email_requires_address(gateway):
    with pytest.raises(InvalidClientEmailError):
        await credentials_service.check_email(gateway, "   ")


@pytest.mark.asyncio
async def test_check_email_unknown_when_offline(gateway, fake_remote):
    fake_remote.fail_with("network")

    assert await credentials_service.check_email(gateway, "ana@example.com") == {"exists": False}
