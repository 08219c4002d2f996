"""Client for the remote case-management service.

All calls go through ``request_with_retries``; HTTP outcomes are classified
into the exception hierarchy below so the persistence gateway can decide
between degrading to the local cache and surfacing an authentication error.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any
from urllib.parse import quote

import httpx

from casewizard.core.config import settings
from casewizard.services.http_service import DEFAULT_RETRY_STATUSES, request_with_retries

logger = logging.getLogger(__name__)

WORKFLOWS_PATH = "/api/v1/workflows"
WORKFLOW_PROGRESS_PATH = "/api/v1/workflows/progress"
ASSIGNMENTS_PATH = "/api/v1/questionnaire-assignments"
QUESTIONNAIRES_PATH = "/api/v1/questionnaires"
CHECK_EMAIL_PATH = "/api/v1/users/check-email"
REGISTER_USER_PATH = "/api/v1/auth/register/user"

AUTH_STATUSES = frozenset({401, 403})


class RemoteStoreError(Exception):
    """Base exception for remote store errors."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RemoteUnavailableError(RemoteStoreError):
    """Network failure, timeout, 5xx, or an unusable response."""

    pass


class RemoteNotFoundError(RemoteStoreError):
    """404: the resource or the whole capability is absent remotely."""

    pass


class RemoteAuthError(RemoteStoreError):
    """401/403: the bearer token was rejected."""

    pass


def _unwrap_list(payload: Any, *keys: str) -> list[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in keys:
            value = payload.get(key)
            if isinstance(value, list):
                return value
            if isinstance(value, dict):
                nested = _unwrap_list(value, *keys)
                if nested:
                    return nested
    return []


def _unwrap_object(payload: Any) -> dict[str, Any] | None:
    if not isinstance(payload, dict):
        return None
    data = payload.get("data")
    if isinstance(data, dict):
        return data
    return payload


class RemoteStore:
    """Async client for the remote REST service, authenticated by bearer token."""

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float | None = None,
        probe_timeout: float | None = None,
        max_attempts: int | None = None,
        base_delay: float | None = None,
        max_delay: float | None = None,
    ):
        self.base_url = (base_url or settings.remote_base_url).rstrip("/")
        self.token = token
        self._transport = transport
        self.timeout = settings.REMOTE_TIMEOUT_SECONDS if timeout is None else timeout
        self.probe_timeout = (
            settings.REMOTE_PROBE_TIMEOUT_SECONDS if probe_timeout is None else probe_timeout
        )
        self.max_attempts = settings.REMOTE_MAX_ATTEMPTS if max_attempts is None else max_attempts
        self.base_delay = settings.REMOTE_RETRY_BASE_DELAY if base_delay is None else base_delay
        self.max_delay = settings.REMOTE_RETRY_MAX_DELAY if max_delay is None else max_delay

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=self._transport,
        )

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    @staticmethod
    def _classify(response: httpx.Response, path: str) -> Any:
        status = response.status_code
        if status in AUTH_STATUSES:
            raise RemoteAuthError(f"Remote rejected credentials for {path}", status)
        if status == 404:
            raise RemoteNotFoundError(f"Remote resource not found: {path}", status)
        if not response.is_success:
            raise RemoteUnavailableError(f"Remote returned {status} for {path}", status)
        if status == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteUnavailableError(
                f"Remote returned invalid JSON for {path}", status
            ) from exc

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        try:
            async with asyncio.timeout(self.timeout), self._client(self.timeout) as client:

                async def request_fn() -> httpx.Response:
                    return await client.request(
                        method, path, headers=self._headers(), json=json, params=params
                    )

                response = await request_with_retries(
                    request_fn,
                    max_attempts=self.max_attempts,
                    base_delay=self.base_delay,
                    max_delay=self.max_delay,
                    retry_statuses=DEFAULT_RETRY_STATUSES,
                )
        except (httpx.TimeoutException, TimeoutError) as exc:
            raise RemoteUnavailableError(f"Remote request timed out: {path}") from exc
        except httpx.RequestError as exc:
            raise RemoteUnavailableError(f"Remote request failed: {path}") from exc
        return self._classify(response, path)

    # -------------------------------------------------------------------------
    # Reachability
    # -------------------------------------------------------------------------

    async def is_endpoint_available(self, path: str) -> bool:
        """Bounded probe: base URL answers 2xx and the endpoint answers 2xx or 401."""
        try:
            async with self._client(self.probe_timeout) as client:
                base = await client.get("/")
                if not base.is_success:
                    logger.warning("Remote base URL is not available (%s)", base.status_code)
                    return False
                endpoint = await client.head(path, headers=self._headers())
                return endpoint.is_success or endpoint.status_code == 401
        except httpx.RequestError as exc:
            logger.warning("Remote availability probe failed", exc_info=exc)
            return False

    # -------------------------------------------------------------------------
    # Sessions (workflow progress)
    # -------------------------------------------------------------------------

    async def list_sessions(
        self, *, status: str | None = None, search: str | None = None, limit: int | None = None
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"page": 1, "limit": limit or settings.REMOTE_PAGE_LIMIT}
        if status:
            params["status"] = status
        if search:
            params["search"] = search
            params["includeClientInfo"] = "true"
        payload = await self._request("GET", WORKFLOWS_PATH, params=params)
        return [w for w in _unwrap_list(payload, "workflows", "data") if isinstance(w, dict)]

    async def get_session(self, session_id: str) -> dict[str, Any] | None:
        payload = await self._request(
            "GET", f"{WORKFLOW_PROGRESS_PATH}/{quote(session_id, safe='')}"
        )
        return _unwrap_object(payload)

    async def save_session(self, session: dict[str, Any]) -> dict[str, Any] | None:
        payload = await self._request("POST", WORKFLOW_PROGRESS_PATH, json=session)
        return _unwrap_object(payload)

    # -------------------------------------------------------------------------
    # Questionnaires and assignments
    # -------------------------------------------------------------------------

    async def list_assignments(self) -> list[dict[str, Any]]:
        payload = await self._request("GET", ASSIGNMENTS_PATH)
        return [a for a in _unwrap_list(payload, "assignments", "data") if isinstance(a, dict)]

    async def save_assignment(self, assignment: dict[str, Any]) -> dict[str, Any] | None:
        payload = await self._request("POST", ASSIGNMENTS_PATH, json=assignment)
        return _unwrap_object(payload)

    async def get_questionnaire(self, questionnaire_id: str) -> dict[str, Any] | None:
        payload = await self._request(
            "GET", f"{QUESTIONNAIRES_PATH}/{quote(questionnaire_id, safe='')}"
        )
        return _unwrap_object(payload)

    # -------------------------------------------------------------------------
    # Client accounts
    # -------------------------------------------------------------------------

    async def check_email(self, email: str) -> dict[str, Any]:
        payload = await self._request(
            "GET", f"{CHECK_EMAIL_PATH}/{quote(email.strip().lower(), safe='')}"
        )
        payload = payload if isinstance(payload, dict) else {}
        return {
            "exists": bool(payload.get("exists")),
            "userId": payload.get("userId"),
            "role": payload.get("role"),
            "userType": payload.get("userType"),
        }

    async def register_user(self, user_data: dict[str, Any]) -> dict[str, Any] | None:
        payload = await self._request("POST", REGISTER_USER_PATH, json=user_data)
        return _unwrap_object(payload)
