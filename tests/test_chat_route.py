"""Tests for the chat API routes (plain and agent, streaming and sync)."""

import json
from collections.abc import AsyncIterator
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import AsyncClient

from cartpilot.core.exceptions import AgentError, TenantLookupError, UpstreamError
from cartpilot.schemas.chat import AgentContext, AgentResponse, StreamEvent, ToolCallRecord, ToolResult
from cartpilot.services.chat_agent import STREAM_ERROR_MESSAGE, UNAVAILABLE_MESSAGE
from tests.conftest import TEST_CART_ID, TEST_CHECKOUT_URL, TEST_SESSION_ID, TEST_TENANT_ID

HEADERS = {"X-Tenant-ID": TEST_TENANT_ID}


def _agent_body(**overrides: Any) -> dict[str, Any]:
    body: dict[str, Any] = {
        "messages": [{"role": "user", "content": "Add the blue shoe to my cart"}],
        "session_id": TEST_SESSION_ID,
    }
    body.update(overrides)
    return body


def parse_sse(payload: str) -> list[tuple[str, Any]]:
    """Split an SSE body into (event, decoded data) pairs."""
    events = []
    for block in payload.strip().split("\n\n"):
        lines = dict(line.split(": ", 1) for line in block.splitlines())
        events.append((lines["event"], json.loads(lines["data"])))
    return events


def _stream(*events: StreamEvent) -> MagicMock:
    async def gen(*args: Any, **kwargs: Any) -> AsyncIterator[StreamEvent]:
        for event in events:
            yield event

    return MagicMock(side_effect=gen)


# ---------------------------------------------------------------------------
# Tenant resolution
# ---------------------------------------------------------------------------


class TestTenantHeader:
    @pytest.mark.asyncio
    async def test_missing_header(self, client: AsyncClient) -> None:
        response = await client.post("/api/v1/chat/agent/sync", json=_agent_body())
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_tenant(self, client: AsyncClient, mock_tenant_service: MagicMock) -> None:
        mock_tenant_service.get_tenant.return_value = None

        response = await client.post(
            "/api/v1/chat/agent/sync", json=_agent_body(), headers={"X-Tenant-ID": "ghost"}
        )

        assert response.status_code == 404
        assert response.json()["detail"] == "Tenant not found"

    @pytest.mark.asyncio
    async def test_tenant_store_down(self, client: AsyncClient, mock_tenant_service: MagicMock) -> None:
        mock_tenant_service.get_tenant.side_effect = TenantLookupError("db down")

        response = await client.post("/api/v1/chat/agent/sync", json=_agent_body(), headers=HEADERS)

        assert response.status_code == 503
        assert "db down" not in response.text


# ---------------------------------------------------------------------------
# Agent endpoints
# ---------------------------------------------------------------------------


class TestAgentSync:
    @pytest.mark.asyncio
    async def test_returns_agent_response(
        self, client: AsyncClient, mock_chat_agent: MagicMock
    ) -> None:
        mock_chat_agent.process_message.return_value = AgentResponse(
            reply="Added!",
            tool_calls=[
                ToolCallRecord(
                    tool="add_to_cart",
                    result=ToolResult.ok({"cart_id": TEST_CART_ID, "checkout_url": TEST_CHECKOUT_URL}),
                )
            ],
            cart_id=TEST_CART_ID,
            checkout_url=TEST_CHECKOUT_URL,
        )

        response = await client.post(
            "/api/v1/chat/agent/sync",
            json=_agent_body(cart_id="gid://shopify/Cart/old"),
            headers=HEADERS,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["reply"] == "Added!"
        assert data["cart_id"] == TEST_CART_ID
        assert data["tool_calls"][0]["tool"] == "add_to_cart"

        messages, context = mock_chat_agent.process_message.await_args.args
        assert messages[0].content == "Add the blue shoe to my cart"
        assert context == AgentContext(
            tenant_id=TEST_TENANT_ID, session_id=TEST_SESSION_ID, cart_id="gid://shopify/Cart/old"
        )

    @pytest.mark.asyncio
    async def test_omits_empty_fields(self, client: AsyncClient, mock_chat_agent: MagicMock) -> None:
        mock_chat_agent.process_message.return_value = AgentResponse(reply="Hi!")

        response = await client.post("/api/v1/chat/agent/sync", json=_agent_body(), headers=HEADERS)

        assert response.json() == {"reply": "Hi!"}

    @pytest.mark.asyncio
    async def test_agent_failure_is_503(self, client: AsyncClient, mock_chat_agent: MagicMock) -> None:
        mock_chat_agent.process_message.side_effect = AgentError(UNAVAILABLE_MESSAGE)

        response = await client.post("/api/v1/chat/agent/sync", json=_agent_body(), headers=HEADERS)

        assert response.status_code == 503
        assert response.json()["detail"] == UNAVAILABLE_MESSAGE

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            {"messages": [], "session_id": TEST_SESSION_ID},
            {"messages": [{"role": "user", "content": "hi"}]},
            {"messages": [{"role": "user", "content": "hi"}], "session_id": "   "},
            {"messages": [{"role": "system", "content": "hi"}], "session_id": "s"},
        ],
    )
    async def test_rejects_bad_bodies(
        self, client: AsyncClient, mock_chat_agent: MagicMock, body: dict[str, Any]
    ) -> None:
        response = await client.post("/api/v1/chat/agent/sync", json=body, headers=HEADERS)

        assert response.status_code == 422
        mock_chat_agent.process_message.assert_not_awaited()


class TestAgentStream:
    @pytest.mark.asyncio
    async def test_streams_events(self, client: AsyncClient, mock_chat_agent: MagicMock) -> None:
        record = ToolCallRecord(tool="get_cart", result=ToolResult.ok({"items": []}))
        done = AgentResponse(reply="Your cart is empty.", tool_calls=[record])
        mock_chat_agent.process_message_stream = _stream(
            StreamEvent(type="tool", data=record.model_dump()),
            StreamEvent(type="text", data="Your cart is empty."),
            StreamEvent(type="done", data=done.model_dump()),
        )

        response = await client.post("/api/v1/chat/agent", json=_agent_body(), headers=HEADERS)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"
        events = parse_sse(response.text)
        assert [name for name, _ in events] == ["tool", "text", "done"]
        assert events[0][1]["result"]["data"] == {"items": []}
        assert events[2][1]["reply"] == "Your cart is empty."

    @pytest.mark.asyncio
    async def test_streams_error_event(self, client: AsyncClient, mock_chat_agent: MagicMock) -> None:
        mock_chat_agent.process_message_stream = _stream(
            StreamEvent(type="error", data=STREAM_ERROR_MESSAGE)
        )

        response = await client.post("/api/v1/chat/agent", json=_agent_body(), headers=HEADERS)

        assert parse_sse(response.text) == [("error", STREAM_ERROR_MESSAGE)]


# ---------------------------------------------------------------------------
# Plain chat endpoints
# ---------------------------------------------------------------------------


class TestPlainChat:
    @pytest.mark.asyncio
    async def test_sync(self, client: AsyncClient, mock_llm_client: MagicMock) -> None:
        response = await client.post(
            "/api/v1/chat/sync",
            json={"messages": [{"role": "user", "content": "Hello"}]},
            headers=HEADERS,
        )

        assert response.status_code == 200
        assert response.json() == {"reply": "Hello!"}
        messages, system_prompt = mock_llm_client.complete.await_args.args
        assert messages == [{"role": "user", "content": "Hello"}]
        assert system_prompt

    @pytest.mark.asyncio
    async def test_sync_upstream_failure(self, client: AsyncClient, mock_llm_client: MagicMock) -> None:
        mock_llm_client.complete = AsyncMock(side_effect=UpstreamError("LLM", 500, "secret detail"))

        response = await client.post(
            "/api/v1/chat/sync",
            json={"messages": [{"role": "user", "content": "Hello"}]},
            headers=HEADERS,
        )

        assert response.status_code == 503
        assert response.json()["detail"] == UNAVAILABLE_MESSAGE

    @pytest.mark.asyncio
    async def test_stream(self, client: AsyncClient, mock_llm_client: MagicMock) -> None:
        async def complete_stream(*args: Any, **kwargs: Any) -> AsyncIterator[str]:
            yield "Hel"
            yield "lo"

        mock_llm_client.complete_stream = MagicMock(side_effect=complete_stream)

        response = await client.post(
            "/api/v1/chat",
            json={"messages": [{"role": "user", "content": "Hi"}]},
            headers=HEADERS,
        )

        assert parse_sse(response.text) == [("text", "Hel"), ("text", "lo"), ("done", None)]

    @pytest.mark.asyncio
    async def test_stream_failure(self, client: AsyncClient, mock_llm_client: MagicMock) -> None:
        async def complete_stream(*args: Any, **kwargs: Any) -> AsyncIterator[str]:
            yield "Hel"
            raise UpstreamError("LLM", 500)

        mock_llm_client.complete_stream = MagicMock(side_effect=complete_stream)

        response = await client.post(
            "/api/v1/chat",
            json={"messages": [{"role": "user", "content": "Hi"}]},
            headers=HEADERS,
        )

        assert parse_sse(response.text) == [("text", "Hel"), ("error", STREAM_ERROR_MESSAGE)]
