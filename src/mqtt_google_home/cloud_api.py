"""Home Graph API client for request-sync and report-state calls.

Access tokens come from an ``AccessTokenProvider``; issuing them (service account
OAuth) happens outside the bridge. Calls are retried with exponential backoff on
throttling, server errors and connection errors.
"""

from __future__ import annotations

import asyncio
import datetime
import json
import uuid
from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING, Any, cast, override

import aiohttp
from pydantic import BaseModel, ValidationError, computed_field

from mqtt_google_home.correlation import get_correlation_id
from mqtt_google_home.exceptions import HomeGraphAuthError, HomeGraphError
from mqtt_google_home.instrumentation import timed_async
from mqtt_google_home.logging_abstraction import get_logger
from mqtt_google_home.retry_policy import RetryPolicy

if TYPE_CHECKING:
    from mqtt_google_home.devices.models import Device
    from mqtt_google_home.state_cache import StateCache
    from mqtt_google_home.structs import AccessTokenProvider

__all__ = [
    "FileTokenProvider",
    "HomeGraphClient",
    "StaticTokenProvider",
    "TokenData",
]

logger = get_logger(__name__)

REQUEST_SYNC_PATH = "devices:requestSync"
REPORT_STATE_PATH = "devices:reportStateAndNotification"
AUTH_STATUSES = frozenset({401, 403})


class TokenData(BaseModel):
    """Cached access token.

    Token cache file structure:
        {
            "access_token": "...",
            "expires_in": 3600,
            "issued_at": "2024-01-01T00:00:00+00:00"
        }
    """

    access_token: str
    expires_in: int | None = None
    issued_at: datetime.datetime | None = None

    @computed_field
    @property
    def expires_at(self) -> datetime.datetime | None:
        if self.issued_at and self.expires_in:
            return self.issued_at + datetime.timedelta(seconds=self.expires_in)
        return None

    def is_expired(self, now: datetime.datetime | None = None) -> bool:
        expires_at = self.expires_at
        if expires_at is None:
            return False
        return expires_at <= (now or datetime.datetime.now(datetime.UTC))


class StaticTokenProvider:
    """Fixed token, typically from ``GH_HOMEGRAPH_TOKEN``."""

    def __init__(self, token: str | None) -> None:
        self._token: str | None = token

    async def get_token(self) -> str | None:
        return self._token


class FileTokenProvider:
    """Token read from a JSON cache file kept fresh by an external job.

    The file is re-read on every call so a rotated token is picked up without a restart.
    """

    lp: str = "FileTokenProvider"

    def __init__(self, token_file: str | Path) -> None:
        self.token_file: Path = Path(token_file).expanduser()

    async def read_token_cache(self) -> TokenData | None:
        lp = f"{self.lp}:read_token_cache:"

        def _read_json() -> TokenData | None:
            with self.token_file.open("r", encoding="utf-8") as f:
                json_result: object = cast("object", json.load(f))
            if not isinstance(json_result, dict):
                return None
            return TokenData.model_validate(json_result)

        try:
            token_data = await asyncio.to_thread(_read_json)
        except FileNotFoundError:
            logger.debug("%s Token cache file not found: %s", lp, self.token_file)
            return None
        except (json.JSONDecodeError, ValidationError, OSError) as e:
            logger.warning("%s Failed to parse token cache: %s", lp, e)
            return None
        return token_data

    async def get_token(self) -> str | None:
        lp = f"{self.lp}:get_token:"
        token_data = await self.read_token_cache()
        if token_data is None:
            return None
        if token_data.is_expired():
            logger.warning("%s Cached token expired at %s", lp, token_data.expires_at)
            return None
        return token_data.access_token


class HomeGraphClient:
    """Home Graph API client.

    The ``aiohttp.ClientSession`` is created on first use unless one is passed in,
    and closed by ``close()`` only if this client created it.
    """

    lp: str = "HomeGraphClient"

    def __init__(
        self,
        agent_user_id: str,
        token_provider: AccessTokenProvider,
        api_base: str = "https://homegraph.googleapis.com/v1/",
        api_timeout: int = 8,
        retry_policy: RetryPolicy | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.agent_user_id: str = agent_user_id
        self.token_provider: AccessTokenProvider = token_provider
        self.api_base: str = api_base if api_base.endswith("/") else f"{api_base}/"
        self.api_timeout: int = api_timeout
        self.retry_policy: RetryPolicy = retry_policy or RetryPolicy()
        self.http_session: aiohttp.ClientSession | None = session
        self._owns_session: bool = session is None

    async def close(self) -> None:
        """Close the aiohttp session if this client created it."""
        lp = f"{self.lp}:close:"
        if self._owns_session and self.http_session and not self.http_session.closed:
            logger.debug("%s Closing aiohttp ClientSession", lp)
            await self.http_session.close()
            self.http_session = None

    async def _check_session(self) -> aiohttp.ClientSession:
        if not self.http_session or self.http_session.closed:
            logger.debug("%s:_check_session: Creating new aiohttp ClientSession", self.lp)
            self.http_session = aiohttp.ClientSession()
            self._owns_session = True
        return self.http_session

    @timed_async("homegraph_request_sync")
    async def request_sync(self) -> None:
        """Ask Google to re-run SYNC for the agent user."""
        _ = await self._post(REQUEST_SYNC_PATH, {"agentUserId": self.agent_user_id, "async": True})

    def build_state_report(self, devices: Iterable[Device], state_cache: StateCache) -> dict[str, Any]:
        states = {device.id: device.get_google_state(state_cache) for device in devices}
        return {
            "requestId": get_correlation_id() or str(uuid.uuid4()),
            "agentUserId": self.agent_user_id,
            "payload": {"devices": {"states": states}},
        }

    @timed_async("homegraph_report_state")
    async def send_state_updates(self, devices: Iterable[Device], state_cache: StateCache) -> None:
        """Report the current state of ``devices`` built from ``state_cache``."""
        body = self.build_state_report(devices, state_cache)
        if not body["payload"]["devices"]["states"]:
            return
        _ = await self._post(REPORT_STATE_PATH, body)

    async def _post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        """POST ``body`` with retries.

        Raises:
            HomeGraphAuthError: No token is available or the token was rejected
            HomeGraphError: The call failed and retries are exhausted

        """
        lp = f"{self.lp}:{path}:"
        url = f"{self.api_base}{path}"
        attempt = 0
        while True:
            attempt += 1
            token = await self.token_provider.get_token()
            if not token:
                raise HomeGraphAuthError("no access token available", attempts=attempt)
            sesh = await self._check_session()
            status: int | None = None
            try:
                resp = await sesh.post(
                    url,
                    json=body,
                    headers={"Authorization": f"Bearer {token}"},
                    timeout=aiohttp.ClientTimeout(total=self.api_timeout),
                )
                try:
                    status = resp.status
                    text = await resp.text()
                finally:
                    resp.release()
            except (aiohttp.ClientError, TimeoutError) as e:
                reason = f"{type(e).__name__}: {e}"
            else:
                if 200 <= status < 300:
                    logger.debug("%s ok (attempt %d)", lp, attempt)
                    return _parse_json(text)
                if status in AUTH_STATUSES:
                    raise HomeGraphAuthError(_error_message(text) or "access token rejected", status, attempt)
                reason = _error_message(text) or f"HTTP {status}"

            if not self.retry_policy.should_retry(attempt, status):
                raise HomeGraphError(reason, status, attempt)
            delay = self.retry_policy.get_delay(attempt - 1)
            logger.warning(
                "%s attempt %d failed (%s), retrying in %.2fs",
                lp,
                attempt,
                reason,
                delay,
                extra={"status": status},
            )
            await asyncio.sleep(delay)

    @override
    def __repr__(self) -> str:
        return f"<HomeGraphClient: agent_user_id={self.agent_user_id} api_base={self.api_base}>"


def _parse_json(text: str) -> dict[str, Any]:
    if not text:
        return {}
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return {}
    return cast("dict[str, Any]", data) if isinstance(data, dict) else {}


def _error_message(text: str) -> str | None:
    """``error.message`` from a Google API error body."""
    error = _parse_json(text).get("error")
    if isinstance(error, dict):
        message = cast("dict[str, Any]", error).get("message")
        return str(message) if message else None
    return None
