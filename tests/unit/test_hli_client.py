"""Unit tests for the HLI API client."""

import json

import httpx
import pytest

from oidsync.connectors.hli.client import (
    HliApiError,
    HliClient,
    HliTransportError,
    is_retryable_status,
)
from oidsync.models.hli_models import HliGroupMembersPayload

MEMBERS_BODY = {
    "results": [
        {
            "id": "m1",
            "name": "Glucose",
            "code": "2345-7",
            "codeSystemId": "LOINC",
            "valid": True,
            "properties": [{"id": "p1", "name": "COMPONENT", "value": "Glucose"}],
        }
    ],
    "nextCursor": "abc",
}


class RecordingHandler:
    """Replays a list of responses (or exceptions) and records each request."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        reply = self.replies[min(len(self.requests), len(self.replies)) - 1]
        if isinstance(reply, type) and issubclass(reply, Exception):
            raise reply("boom", request=request)
        return reply


def _client(handler, attempts: int = 3) -> HliClient:
    return HliClient(
        base_url="https://hli.test",
        auth_token="secret",
        retry_max_attempts=attempts,
        retry_backoff_ms=0,
        transport=httpx.MockTransport(handler),
    )


def _payload(**fields) -> HliGroupMembersPayload:
    return HliGroupMembersPayload(oid="2.16.840.1.113883.6.1", **fields)


class TestHliClient:
    @pytest.mark.asyncio
    async def test_posts_camel_case_body_with_bearer_token(self):
        handler = RecordingHandler(httpx.Response(200, json=MEMBERS_BODY))
        client = _client(handler)

        result = await client.fetch_group_members(
            _payload(id="req-1", fields=["COMPONENT"], include_retired=True)
        )
        await client.close()

        request = handler.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/v1/groups/members"
        assert request.headers["Authorization"] == "Bearer secret"
        body = json.loads(request.content)
        assert body["oid"] == "2.16.840.1.113883.6.1"
        assert body["id"] == "req-1"
        assert body["fields"] == ["COMPONENT"]
        assert body["includeRetired"] is True
        assert "include_retired" not in body

        assert result.next_cursor == "abc"
        assert result.results[0].code_system_id == "LOINC"
        assert result.results[0].properties[0].value == "Glucose"

    @pytest.mark.asyncio
    async def test_permanent_server_error_uses_every_attempt(self):
        handler = RecordingHandler(httpx.Response(503, text="unavailable"))
        client = _client(handler, attempts=3)

        with pytest.raises(HliApiError) as excinfo:
            await client.fetch_group_members(_payload())

        assert len(handler.requests) == 3
        assert excinfo.value.status_code == 503
        assert excinfo.value.body == "unavailable"
        assert not isinstance(excinfo.value, HliTransportError)

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried_until_success(self):
        handler = RecordingHandler(
            httpx.Response(429, text="slow down"),
            httpx.Response(200, json=MEMBERS_BODY),
        )
        client = _client(handler)

        result = await client.fetch_group_members(_payload())

        assert len(handler.requests) == 2
        assert len(result.results) == 1

    @pytest.mark.asyncio
    async def test_bad_request_is_not_retried(self):
        handler = RecordingHandler(httpx.Response(400, text="bad oid"))
        client = _client(handler, attempts=3)

        with pytest.raises(HliApiError) as excinfo:
            await client.fetch_group_members(_payload())

        assert len(handler.requests) == 1
        assert excinfo.value.status_code == 400
        assert excinfo.value.body == "bad oid"

    @pytest.mark.asyncio
    async def test_connect_errors_become_transport_error(self):
        handler = RecordingHandler(httpx.ConnectError)
        client = _client(handler, attempts=3)

        with pytest.raises(HliTransportError) as excinfo:
            await client.fetch_group_members(_payload())

        assert len(handler.requests) == 3
        assert excinfo.value.status_code == 0

    @pytest.mark.asyncio
    async def test_timeout_then_success(self):
        handler = RecordingHandler(
            httpx.ReadTimeout, httpx.Response(200, json=MEMBERS_BODY)
        )
        client = _client(handler)

        result = await client.fetch_group_members(_payload())

        assert len(handler.requests) == 2
        assert result.next_cursor == "abc"

    @pytest.mark.asyncio
    async def test_malformed_body_is_an_api_error(self):
        handler = RecordingHandler(httpx.Response(200, text="<html>oops</html>"))
        client = _client(handler)

        with pytest.raises(HliApiError, match="Malformed"):
            await client.fetch_group_members(_payload())
        assert len(handler.requests) == 1

    def test_backoff_doubles_per_attempt(self):
        client = HliClient(base_url="https://hli.test", retry_backoff_ms=1000)
        assert [client._backoff_seconds(a) for a in (1, 2, 3)] == [1.0, 2.0, 4.0]

    @pytest.mark.parametrize(
        "status,expected",
        [(500, True), (502, True), (429, True), (400, False), (404, False), (401, False)],
    )
    def test_retryable_classification(self, status, expected):
        assert is_retryable_status(status) is expected
