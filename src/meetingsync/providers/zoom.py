"""Async HTTP client wrapper for the Zoom REST API (Server-to-Server OAuth).

Provides ZoomClient with retry logic (tenacity, 3 attempts, exponential
backoff 1-10s) on the idempotent calls only: token exchange and meeting
listing. Create, update and delete go out exactly once; a failure surfaces
as ProviderError and the caller decides what to do.

Access tokens are cached per provider account until shortly before expiry.
"""

from __future__ import annotations

import base64
import time
from datetime import datetime, timezone
from typing import Any

import httpx
import structlog
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from src.meetingsync.core.monitoring import provider_requests_total
from src.meetingsync.providers.schemas import ProviderAccount, ProviderMeeting

logger = structlog.get_logger(__name__)


class ProviderError(Exception):
    """A call to the video-conferencing provider failed."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, (httpx.ConnectError, httpx.TimeoutException)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code == 429 or exc.response.status_code >= 500
    return False


_read_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception(_is_transient),
    reraise=True,
)


def _format_start(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _parse_meeting(data: dict, account_id: str | None = None) -> ProviderMeeting:
    start_time = data.get("start_time")
    return ProviderMeeting(
        provider_meeting_id=str(data["id"]),
        topic=data.get("topic", ""),
        start_time=(
            datetime.fromisoformat(start_time.replace("Z", "+00:00")) if start_time else None
        ),
        duration_minutes=data.get("duration"),
        join_url=data.get("join_url"),
        start_url=data.get("start_url"),
        password=data.get("password"),
        account_id=account_id,
    )


class ZoomClient:
    """Async client for the Zoom meetings API.

    Args:
        api_base_url: REST base, e.g. https://api.zoom.us/v2.
        oauth_url: Token endpoint for the account_credentials grant.
        default_timezone: Timezone sent with created meetings.
        transport: Optional httpx transport (tests use httpx.MockTransport).
    """

    # Timeouts per operation type
    TIMEOUT_MUTATE = 30.0
    TIMEOUT_READ = 10.0
    TOKEN_EXPIRY_MARGIN = 60  # seconds
    PAGE_SIZE = 300

    def __init__(
        self,
        api_base_url: str = "https://api.zoom.us/v2",
        oauth_url: str = "https://zoom.us/oauth/token",
        default_timezone: str = "UTC",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = api_base_url.rstrip("/")
        self._oauth_url = oauth_url
        self._timezone = default_timezone
        self._transport = transport
        self._tokens: dict[str, tuple[str, float]] = {}

    def _client(self, timeout: float, headers: dict[str, str] | None = None) -> httpx.AsyncClient:
        """Create a new httpx client with specified timeout."""
        return httpx.AsyncClient(headers=headers, timeout=timeout, transport=self._transport)

    # ── OAuth ────────────────────────────────────────────────────────────

    @_read_retry
    async def _request_token(self, client_id: str, client_secret: str, account_id: str) -> dict:
        basic = base64.b64encode(f"{client_id}:{client_secret}".encode()).decode()
        async with self._client(self.TIMEOUT_READ) as client:
            response = await client.post(
                self._oauth_url,
                params={"grant_type": "account_credentials", "account_id": account_id},
                headers={
                    "Authorization": f"Basic {basic}",
                    "Content-Type": "application/x-www-form-urlencoded",
                },
            )
            response.raise_for_status()
            return response.json()

    async def get_access_token(self, account: ProviderAccount) -> str:
        """Return a cached token for the account, exchanging credentials when stale."""
        cached = self._tokens.get(account.id)
        if cached and cached[1] > time.monotonic():
            return cached[0]
        try:
            data = await self._request_token(
                account.client_id, account.client_secret, account.account_id
            )
        except httpx.HTTPError as exc:
            provider_requests_total.labels(operation="token", status="error").inc()
            logger.warning("zoom.token_failed", account_id=account.id, error=str(exc))
            raise ProviderError("Failed to obtain provider access token", _status_of(exc)) from exc
        token = data["access_token"]
        expires_in = int(data.get("expires_in", 3600))
        self._tokens[account.id] = (
            token,
            time.monotonic() + max(expires_in - self.TOKEN_EXPIRY_MARGIN, 0),
        )
        provider_requests_total.labels(operation="token", status="ok").inc()
        return token

    def invalidate_token(self, account_id: str) -> None:
        """Forget a cached token (after credential rotation or deletion)."""
        self._tokens.pop(account_id, None)

    async def verify_credentials(self, client_id: str, client_secret: str, account_id: str) -> bool:
        """True when the provider issues a token for these credentials."""
        try:
            data = await self._request_token(client_id, client_secret, account_id)
        except httpx.HTTPError as exc:
            logger.info("zoom.credentials_rejected", client_id=client_id, error=str(exc))
            return False
        return bool(data.get("access_token"))

    async def _auth_headers(self, account: ProviderAccount) -> dict[str, str]:
        token = await self.get_access_token(account)
        return {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}

    # ── Meetings ─────────────────────────────────────────────────────────

    async def create_meeting(
        self,
        account: ProviderAccount,
        *,
        topic: str,
        start_time: datetime,
        duration_minutes: int,
        agenda: str | None = None,
        password: str | None = None,
    ) -> ProviderMeeting:
        """Create a scheduled meeting on the account.

        POST /users/me/meetings. Not retried.

        Raises:
            ProviderError: On any HTTP or transport failure.
        """
        payload: dict[str, Any] = {
            "topic": topic,
            "type": 2,  # scheduled
            "start_time": _format_start(start_time),
            "duration": duration_minutes,
            "timezone": self._timezone,
            "settings": {
                "host_video": True,
                "participant_video": True,
                "join_before_host": False,
                "mute_upon_entry": True,
                "waiting_room": True,
            },
        }
        if agenda:
            payload["agenda"] = agenda
        if password:
            payload["password"] = password

        headers = await self._auth_headers(account)
        try:
            async with self._client(self.TIMEOUT_MUTATE, headers) as client:
                response = await client.post(f"{self._base_url}/users/me/meetings", json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as exc:
            provider_requests_total.labels(operation="create", status="error").inc()
            logger.error("zoom.create_failed", account_id=account.id, error=str(exc))
            raise ProviderError("Failed to create provider meeting", _status_of(exc)) from exc

        provider_requests_total.labels(operation="create", status="ok").inc()
        meeting = _parse_meeting(data, account.id)
        logger.info(
            "zoom.meeting_created",
            account_id=account.id,
            provider_meeting_id=meeting.provider_meeting_id,
        )
        return meeting

    async def update_meeting(
        self,
        account: ProviderAccount,
        provider_meeting_id: str,
        *,
        topic: str | None = None,
        start_time: datetime | None = None,
        duration_minutes: int | None = None,
        agenda: str | None = None,
        password: str | None = None,
    ) -> None:
        """PATCH /meetings/{id} with the fields that changed. Not retried."""
        payload: dict[str, Any] = {}
        if topic is not None:
            payload["topic"] = topic
        if start_time is not None:
            payload["start_time"] = _format_start(start_time)
            payload["timezone"] = self._timezone
        if duration_minutes is not None:
            payload["duration"] = duration_minutes
        if agenda is not None:
            payload["agenda"] = agenda
        if password is not None:
            payload["password"] = password
        if not payload:
            return

        headers = await self._auth_headers(account)
        try:
            async with self._client(self.TIMEOUT_MUTATE, headers) as client:
                response = await client.patch(
                    f"{self._base_url}/meetings/{provider_meeting_id}", json=payload
                )
                response.raise_for_status()
        except httpx.HTTPError as exc:
            provider_requests_total.labels(operation="update", status="error").inc()
            logger.error(
                "zoom.update_failed",
                provider_meeting_id=provider_meeting_id,
                error=str(exc),
            )
            raise ProviderError("Failed to update provider meeting", _status_of(exc)) from exc
        provider_requests_total.labels(operation="update", status="ok").inc()
        logger.info("zoom.meeting_updated", provider_meeting_id=provider_meeting_id)

    async def delete_meeting(self, account: ProviderAccount, provider_meeting_id: str) -> None:
        """DELETE /meetings/{id}. A 404 means it is already gone, which is success."""
        headers = await self._auth_headers(account)
        try:
            async with self._client(self.TIMEOUT_MUTATE, headers) as client:
                response = await client.delete(f"{self._base_url}/meetings/{provider_meeting_id}")
                if response.status_code == 404:
                    logger.info("zoom.meeting_already_gone", provider_meeting_id=provider_meeting_id)
                    provider_requests_total.labels(operation="delete", status="ok").inc()
                    return
                response.raise_for_status()
        except httpx.HTTPError as exc:
            provider_requests_total.labels(operation="delete", status="error").inc()
            logger.error(
                "zoom.delete_failed",
                provider_meeting_id=provider_meeting_id,
                error=str(exc),
            )
            raise ProviderError("Failed to delete provider meeting", _status_of(exc)) from exc
        provider_requests_total.labels(operation="delete", status="ok").inc()
        logger.info("zoom.meeting_deleted", provider_meeting_id=provider_meeting_id)

    @_read_retry
    async def _list_page(self, headers: dict[str, str], page_token: str | None) -> dict:
        params: dict[str, Any] = {"type": "scheduled", "page_size": self.PAGE_SIZE}
        if page_token:
            params["next_page_token"] = page_token
        async with self._client(self.TIMEOUT_READ, headers) as client:
            response = await client.get(f"{self._base_url}/users/me/meetings", params=params)
            response.raise_for_status()
            return response.json()

    async def list_meetings(self, account: ProviderAccount) -> list[ProviderMeeting]:
        """All scheduled meetings on the account, following next_page_token."""
        headers = await self._auth_headers(account)
        meetings: list[ProviderMeeting] = []
        page_token: str | None = None
        try:
            while True:
                data = await self._list_page(headers, page_token)
                meetings.extend(_parse_meeting(m, account.id) for m in data.get("meetings", []))
                page_token = data.get("next_page_token") or None
                if not page_token:
                    break
        except httpx.HTTPError as exc:
            provider_requests_total.labels(operation="list", status="error").inc()
            logger.warning("zoom.list_failed", account_id=account.id, error=str(exc))
            raise ProviderError("Failed to list provider meetings", _status_of(exc)) from exc
        provider_requests_total.labels(operation="list", status="ok").inc()
        return meetings


def _status_of(exc: httpx.HTTPError) -> int | None:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    return None
