"""Tests for the shared 429 retry policy."""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from cartpilot.core.exceptions import RateLimitedError, UpstreamError
from cartpilot.core.http_retry import (
    MAX_RETRY_DELAY_SECONDS,
    parse_retry_after,
    post_with_retry,
    stream_with_retry,
)

URL = "https://api.example.com/v1/things"


def _client(responses: list[httpx.Response], calls: list[httpx.Request]) -> httpx.AsyncClient:
    remaining = iter(responses)

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return next(remaining)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestParseRetryAfter:
    def test_absent(self) -> None:
        assert parse_retry_after(httpx.Response(429)) is None

    def test_numeric(self) -> None:
        response = httpx.Response(429, headers={"Retry-After": "7"})
        assert parse_retry_after(response) == 7.0

    def test_ignores_http_date(self) -> None:
        response = httpx.Response(429, headers={"Retry-After": "Wed, 21 Oct 2026 07:28:00 GMT"})
        assert parse_retry_after(response) is None

    def test_capped(self) -> None:
        response = httpx.Response(429, headers={"Retry-After": "86400"})
        assert parse_retry_after(response) == MAX_RETRY_DELAY_SECONDS


class TestPostWithRetry:
    async def test_success_first_try(self) -> None:
        calls: list[httpx.Request] = []
        async with _client([httpx.Response(200, json={"ok": True})], calls) as client:
            response = await post_with_retry(client, URL, service="Test", json={"a": 1})

        assert response.json() == {"ok": True}
        assert len(calls) == 1

    async def test_exponential_backoff_without_hint(self) -> None:
        calls: list[httpx.Request] = []
        responses = [httpx.Response(429), httpx.Response(429), httpx.Response(200, json={})]
        with patch("cartpilot.core.http_retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            async with _client(responses, calls) as client:
                await post_with_retry(client, URL, service="Test", json={})

        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]

    async def test_retries_429_then_succeeds(self) -> None:
        calls: list[httpx.Request] = []
        responses = [
            httpx.Response(429),
            httpx.Response(429, headers={"Retry-After": "3"}),
            httpx.Response(200, json={"ok": True}),
        ]
        with patch("cartpilot.core.http_retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            async with _client(responses, calls) as client:
                response = await post_with_retry(client, URL, service="Test", json={})

        assert response.status_code == 200
        assert len(calls) == 3
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 3.0]

    async def test_huge_retry_after_is_capped(self) -> None:
        calls: list[httpx.Request] = []
        responses = [
            httpx.Response(429, headers={"Retry-After": "86400"}),
            httpx.Response(200, json={"ok": True}),
        ]
        with patch("cartpilot.core.http_retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            async with _client(responses, calls) as client:
                await post_with_retry(client, URL, service="Test", json={})

        sleep.assert_awaited_once_with(MAX_RETRY_DELAY_SECONDS)

    async def test_exhausted_retries_raise_rate_limited(self) -> None:
        calls: list[httpx.Request] = []
        with patch("cartpilot.core.http_retry.asyncio.sleep", new_callable=AsyncMock):
            async with _client([httpx.Response(429)] * 3, calls) as client:
                with pytest.raises(RateLimitedError) as exc_info:
                    await post_with_retry(client, URL, service="Test", json={})

        assert exc_info.value.status_code == 429
        assert len(calls) == 3

    async def test_other_errors_fail_immediately(self) -> None:
        calls: list[httpx.Request] = []
        responses = [httpx.Response(500, json={"error": {"message": "boom"}})]
        async with _client(responses, calls) as client:
            with pytest.raises(UpstreamError) as exc_info:
                await post_with_retry(client, URL, service="Test", json={})

        assert exc_info.value.status_code == 500
        assert "boom" in str(exc_info.value)
        assert not isinstance(exc_info.value, RateLimitedError)
        assert len(calls) == 1


class TestStreamWithRetry:
    async def test_yields_open_response_after_429(self) -> None:
        calls: list[httpx.Request] = []
        responses = [httpx.Response(429), httpx.Response(200, text="data: hi\n\n")]
        with patch("cartpilot.core.http_retry.asyncio.sleep", new_callable=AsyncMock):
            async with _client(responses, calls) as client:
                async with stream_with_retry(
                    client, URL, service="Test", json={}
                ) as response:
                    lines = [line async for line in response.aiter_lines()]

        assert len(calls) == 2
        assert "data: hi" in lines

    async def test_non_success_raises(self) -> None:
        calls: list[httpx.Request] = []
        async with _client([httpx.Response(401, text="bad key")], calls) as client:
            with pytest.raises(UpstreamError) as exc_info:
                async with stream_with_retry(client, URL, service="Test", json={}):
                    pass

        assert exc_info.value.status_code == 401
        assert "bad key" in str(exc_info.value)

    async def test_exhausted_stream_retries_raise_rate_limited(self) -> None:
        calls: list[httpx.Request] = []
        responses = [httpx.Response(429) for _ in range(3)]
        with patch("cartpilot.core.http_retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            async with _client(responses, calls) as client:
                with pytest.raises(RateLimitedError):
                    async with stream_with_retry(client, URL, service="Test", json={}):
                        pass

        assert len(calls) == 3
        assert sleep.await_count == 2
