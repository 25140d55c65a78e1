"""Pydantic schemas for chat and agent functionality."""

from typing import Any, Literal

from pydantic import Field, field_validator

from cartpilot.core.config import settings
from cartpilot.schemas.common import BaseSchema

# === Conversation ===


class ChatTurn(BaseSchema):
    """One exchange unit of the caller-owned conversation history."""

    role: Literal["user", "assistant"]
    content: str = Field(..., max_length=settings.max_message_length)


class ChatRequest(BaseSchema):
    """Request for the plain (tool-less) chat endpoints."""

    messages: list[ChatTurn] = Field(..., min_length=1, max_length=settings.max_messages)
    session_id: str | None = None


class AgentChatRequest(BaseSchema):
    """Request for the agent endpoints."""

    messages: list[ChatTurn] = Field(..., min_length=1, max_length=settings.max_messages)
    session_id: str = Field(..., min_length=1, max_length=128)
    cart_id: str | None = None

    @field_validator("session_id")
    @classmethod
    def _strip_session_id(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("session_id must not be blank")
        return value


# === Agent context & tools ===


class AgentContext(BaseSchema):
    """Per-request execution context for tool calls."""

    tenant_id: str
    session_id: str
    cart_id: str | None = None


class ToolResult(BaseSchema):
    """Uniform outcome of one tool execution."""

    success: bool
    data: Any = None
    error: str | None = None

    @classmethod
    def ok(cls, data: Any) -> "ToolResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> "ToolResult":
        return cls(success=False, error=error)


class ToolCallRecord(BaseSchema):
    """An executed tool and its result, reported back to the caller."""

    tool: str
    result: ToolResult


# === Responses ===


class AgentResponse(BaseSchema):
    """Final result of one agent processing cycle."""

    reply: str
    tool_calls: list[ToolCallRecord] | None = None
    cart_id: str | None = None
    checkout_url: str | None = None


class ChatSyncResponse(BaseSchema):
    """Response from the plain synchronous chat endpoint."""

    reply: str


class StreamEvent(BaseSchema):
    """One server-pushed event from the agent stream."""

    type: Literal["text", "tool", "done", "error"]
    data: Any
