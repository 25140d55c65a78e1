"""Chat API endpoints for the widget.

Every endpoint identifies the tenant through the ``X-Tenant-ID`` header.
Streaming endpoints answer with server-sent events: one
``event: <type>`` / ``data: <json>`` pair per event.
"""

import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx
from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import StreamingResponse

from cartpilot.core.config import settings
from cartpilot.core.deps import ChatAgentDep, CurrentTenant, LLMClientDep
from cartpilot.core.exceptions import AgentError, CartPilotError
from cartpilot.core.rate_limit import limiter
from cartpilot.schemas.chat import (
    AgentChatRequest,
    AgentContext,
    AgentResponse,
    ChatRequest,
    ChatSyncResponse,
)
from cartpilot.services.chat_agent import STREAM_ERROR_MESSAGE, UNAVAILABLE_MESSAGE
from cartpilot.services.graph.prompts import DEFAULT_SYSTEM_PROMPT

logger = logging.getLogger(__name__)

router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_sse(event_type: str, data: Any) -> str:
    """Encode one server-sent event."""
    return f"event: {event_type}\ndata: {json.dumps(data, default=str)}\n\n"


def _event_stream(events: AsyncIterator[str]) -> StreamingResponse:
    return StreamingResponse(events, media_type="text/event-stream", headers=SSE_HEADERS)


# === Plain chat (no tools) ===


@router.post(
    "",
    summary="Stream a plain chat reply",
    description="Streams the model's reply as `text` events followed by `done`. No tools.",
)
@limiter.limit(settings.chat_rate_limit)
async def chat_stream(
    request: Request,  # noqa: ARG001 - required by slowapi
    body: ChatRequest,
    tenant: CurrentTenant,
    llm_client: LLMClientDep,
) -> StreamingResponse:
    messages = [{"role": turn.role, "content": turn.content} for turn in body.messages]
    system_prompt = tenant.system_prompt or DEFAULT_SYSTEM_PROMPT

    async def events() -> AsyncIterator[str]:
        try:
            async for chunk in llm_client.complete_stream(messages, system_prompt):
                yield format_sse("text", chunk)
        except Exception:
            logger.exception("Plain chat stream failed")
            yield format_sse("error", STREAM_ERROR_MESSAGE)
            return
        yield format_sse("done", None)

    return _event_stream(events())


@router.post(
    "/sync",
    response_model=ChatSyncResponse,
    summary="Plain chat reply",
)
@limiter.limit(settings.chat_rate_limit)
async def chat_sync(
    request: Request,  # noqa: ARG001 - required by slowapi
    body: ChatRequest,
    tenant: CurrentTenant,
    llm_client: LLMClientDep,
) -> ChatSyncResponse:
    messages = [{"role": turn.role, "content": turn.content} for turn in body.messages]
    try:
        reply = await llm_client.complete(messages, tenant.system_prompt or DEFAULT_SYSTEM_PROMPT)
    except (CartPilotError, httpx.HTTPError):
        logger.exception("Plain chat completion failed")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=UNAVAILABLE_MESSAGE,
        ) from None
    return ChatSyncResponse(reply=reply)


# === Agent (tool calling) ===


@router.post(
    "/agent",
    summary="Stream an agent reply",
    description="""
    Runs the tool-calling sales agent and streams its progress.

    Events: `tool` (one per executed tool), `text` (reply chunks),
    `done` (final result with cart/checkout state) or a single `error`.
    """,
)
@limiter.limit(settings.chat_rate_limit)
async def agent_stream(
    request: Request,  # noqa: ARG001 - required by slowapi
    body: AgentChatRequest,
    tenant: CurrentTenant,
    chat_agent: ChatAgentDep,
) -> StreamingResponse:
    context = AgentContext(
        tenant_id=tenant.id,
        session_id=body.session_id,
        cart_id=body.cart_id,
    )

    async def events() -> AsyncIterator[str]:
        async for event in chat_agent.process_message_stream(body.messages, context):
            yield format_sse(event.type, event.data)

    return _event_stream(events())


@router.post(
    "/agent/sync",
    response_model=AgentResponse,
    response_model_exclude_none=True,
    summary="Agent reply",
)
@limiter.limit(settings.chat_rate_limit)
async def agent_sync(
    request: Request,  # noqa: ARG001 - required by slowapi
    body: AgentChatRequest,
    tenant: CurrentTenant,
    chat_agent: ChatAgentDep,
) -> AgentResponse:
    context = AgentContext(
        tenant_id=tenant.id,
        session_id=body.session_id,
        cart_id=body.cart_id,
    )
    try:
        return await chat_agent.process_message(body.messages, context)
    except AgentError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e),
        ) from None
