"""Client login-credential helper used by the wizard's client stage.

Only a small summary (email, whether an account was requested, the user id
once known) is ever written locally. Temporary passwords are generated for
the single registration request and returned to the caller, never stored.
"""

from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass
from typing import Any

from casewizard.core.rate_limit import AccountCreationLimiter
from casewizard.core.results import Failed, Ok
from casewizard.core.structured_logging import build_log_context
from casewizard.utils.normalization import normalize_email

logger = logging.getLogger(__name__)

CLIENT_ROLE = "client"
CLIENT_USER_TYPE = "individualUser"
PASSWORD_SYMBOLS = "!@#$%^&*()_+-=[]{}|;:,.<>?"


class CredentialsError(Exception):
    """Base credentials helper error."""

    pass


class InvalidClientEmailError(CredentialsError):
    pass


class AccountCreationThrottledError(CredentialsError):
    pass


@dataclass
class AccountRequestResult:
    summary: dict[str, Any]
    created: bool = False
    existed: bool = False
    temporary_password: str | None = None
    notice: str | None = None
    auth_failed: bool = False


def generate_temporary_password(length: int = 12, include_symbols: bool = True) -> str:
    """Random password with at least one lowercase, uppercase and digit."""
    pools = [string.ascii_lowercase, string.ascii_uppercase, string.digits]
    if include_symbols:
        pools.append(PASSWORD_SYMBOLS)
    length = max(length, len(pools))
    alphabet = "".join(pools)
    chars = [secrets.choice(pool) for pool in pools]
    chars.extend(secrets.choice(alphabet) for _ in range(length - len(chars)))
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)


def build_summary(
    email: str | None, *, account_requested: bool, user_id: str | None = None
) -> dict[str, Any]:
    return {
        "email": normalize_email(email) or "",
        "accountRequested": bool(account_requested),
        "userId": user_id,
    }


def _registration_payload(client: dict[str, Any], email: str, password: str) -> dict[str, Any]:
    payload = {
        "email": email,
        "password": password,
        "firstName": client.get("firstName") or "",
        "middleName": client.get("middleName") or "",
        "lastName": client.get("lastName") or "",
        "role": CLIENT_ROLE,
        "userType": CLIENT_USER_TYPE,
        "phone": client.get("phone") or "",
        "dateOfBirth": client.get("dateOfBirth") or "",
        "nationality": client.get("nationality") or "",
        "sendPassword": True,
    }
    if isinstance(client.get("address"), dict):
        payload["address"] = dict(client["address"])
    return payload


async def check_email(gateway, email: str | None) -> dict[str, Any]:
    normalized = normalize_email(email)
    if not normalized:
        raise InvalidClientEmailError("Client email is required")
    result = await gateway.check_email(normalized)
    return dict(result.value or {"exists": False})


async def request_account(
    gateway,
    limiter: AccountCreationLimiter,
    client: dict[str, Any],
    *,
    session_id: str | None = None,
    return_password: bool = True,
) -> AccountRequestResult:
    """Create a client login unless one already exists for the email.

    The temporary password is returned once, and only with
    ``return_password``; the remote service emails it to the client either way.

    Raises InvalidClientEmailError without an email and
    AccountCreationThrottledError once ``limiter`` refuses the attempt.
    """
    email = normalize_email(client.get("email"))
    if not email:
        raise InvalidClientEmailError("Client email is required to create an account")
    context = build_log_context(session_id=session_id, source="credentials")

    existing = await gateway.check_email(email)
    if isinstance(existing, Failed):
        return AccountRequestResult(
            summary=gateway.write_credentials_summary(
                build_summary(email, account_requested=True)
            ),
            notice="Sign in again to create the client account",
            auth_failed=True,
        )
    if existing.value and existing.value.get("exists"):
        summary = build_summary(
            email, account_requested=False, user_id=existing.value.get("userId")
        )
        logger.info("Client account already exists", extra=context)
        return AccountRequestResult(
            summary=gateway.write_credentials_summary(summary), existed=True
        )

    if not limiter.allow(email):
        raise AccountCreationThrottledError(
            "Too many account creation attempts; try again shortly"
        )

    password = generate_temporary_password()
    registered = await gateway.register_user(_registration_payload(client, email, password))
    if isinstance(registered, Ok) and registered.value is not None:
        user = registered.value.get("user")
        if not isinstance(user, dict):
            user = registered.value
        user_id = user.get("_id") or user.get("id") or user.get("userId")
        summary = build_summary(email, account_requested=True, user_id=user_id)
        logger.info("Client account created", extra=context)
        return AccountRequestResult(
            summary=gateway.write_credentials_summary(summary),
            created=True,
            temporary_password=password if return_password else None,
        )

    summary = gateway.write_credentials_summary(build_summary(email, account_requested=True))
    if isinstance(registered, Failed):
        return AccountRequestResult(
            summary=summary,
            notice="Sign in again to create the client account",
            auth_failed=True,
        )
    logger.warning(
        "Client account creation deferred",
        extra={**context, "reason": getattr(registered, "reason", "no response")},
    )
    return AccountRequestResult(
        summary=summary,
        notice="Account creation is pending; the remote service is unavailable",
    )
