"""OID Sync — HLI API Client.

Handles bearer authentication, retry with exponential backoff, and error
classification for the group members lookup.
"""

import asyncio
from typing import Optional

import httpx
from pydantic import ValidationError

from oidsync.config import settings
from oidsync.core.logging import get_logger
from oidsync.models.hli_models import GroupMembersResponse, HliGroupMembersPayload

logger = get_logger("hli.client")

GROUP_MEMBERS_PATH = "/v1/groups/members"


class HliApiError(Exception):
    """Raised when the HLI API rejects a request or cannot be reached."""

    def __init__(self, message: str, status_code: int = 0, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class HliTransportError(HliApiError):
    """Raised when the HLI API is unreachable (DNS, connect, timeout, reset)."""


def is_retryable_status(status_code: int) -> bool:
    """5xx and 429 are transient; every other 4xx is terminal."""
    return status_code >= 500 or status_code == 429


class HliClient:
    """Async HTTP client for the HLI group members API."""

    def __init__(
        self,
        base_url: str | None = None,
        auth_token: str | None = None,
        retry_max_attempts: int | None = None,
        retry_backoff_ms: int | None = None,
        timeout_seconds: float | None = None,
        connect_timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.hli_base_url).rstrip("/")
        self.auth_token = auth_token if auth_token is not None else settings.hli_auth_token
        self.retry_max_attempts = max(
            1, retry_max_attempts or settings.hli_retry_max_attempts
        )
        self.retry_backoff_ms = (
            retry_backoff_ms
            if retry_backoff_ms is not None
            else settings.hli_retry_backoff_ms
        )
        self.timeout = httpx.Timeout(
            timeout_seconds or settings.hli_timeout_seconds,
            connect=connect_timeout_seconds or settings.hli_connect_timeout_seconds,
        )
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def _backoff_seconds(self, attempt: int) -> float:
        return self.retry_backoff_ms * (2 ** (attempt - 1)) / 1000

    # ── Core Request Method ──

    async def fetch_group_members(
        self, payload: HliGroupMembersPayload
    ) -> GroupMembersResponse:
        """POST one group members lookup, retrying transient failures.

        Makes at most ``retry_max_attempts`` calls in total.
        """
        client = await self._get_client()
        headers = {"Authorization": f"Bearer {self.auth_token}"}
        body = payload.model_dump(by_alias=True, mode="json")
        extra = {"oid": payload.oid}

        for attempt in range(1, self.retry_max_attempts + 1):
            is_last = attempt == self.retry_max_attempts
            try:
                resp = await client.post(GROUP_MEMBERS_PATH, json=body, headers=headers)
            except httpx.TransportError as e:
                if not is_last:
                    wait = self._backoff_seconds(attempt)
                    logger.warning(
                        f"Transport error for OID {payload.oid}: {e!r}. "
                        f"Retry {attempt}/{self.retry_max_attempts - 1} in {wait}s",
                        extra={**extra, "attempt": attempt},
                    )
                    await asyncio.sleep(wait)
                    continue
                logger.error(
                    f"HLI unreachable for OID {payload.oid} after {attempt} attempts: {e!r}",
                    extra={**extra, "attempt": attempt},
                )
                raise HliTransportError(
                    f"Connection failed after {attempt} attempts: {e!r}"
                ) from e

            if resp.is_success:
                try:
                    result = GroupMembersResponse.model_validate(resp.json())
                except (ValueError, ValidationError) as e:
                    raise HliApiError(
                        f"Malformed HLI response: {e}", resp.status_code, resp.text
                    ) from e
                logger.info(
                    f"Received HLI response for OID {payload.oid} "
                    f"({len(result.results)} members)",
                    extra={**extra, "status_code": resp.status_code},
                )
                return result

            if is_retryable_status(resp.status_code) and not is_last:
                wait = self._backoff_seconds(attempt)
                logger.warning(
                    f"HLI returned {resp.status_code} for OID {payload.oid}. "
                    f"Retry {attempt}/{self.retry_max_attempts - 1} in {wait}s",
                    extra={**extra, "attempt": attempt, "status_code": resp.status_code},
                )
                await asyncio.sleep(wait)
                continue

            logger.error(
                f"HLI API error for OID {payload.oid}: {resp.status_code} {resp.text}",
                extra={**extra, "attempt": attempt, "status_code": resp.status_code},
            )
            raise HliApiError(
                f"API Error: {resp.status_code} {resp.text}",
                resp.status_code,
                resp.text,
            )

        raise HliApiError("Max retries exhausted")
