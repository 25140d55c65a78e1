"""Pydantic schemas for request/response validation."""

from cartpilot.schemas.chat import AgentChatRequest, AgentResponse, ChatRequest, StreamEvent
from cartpilot.schemas.common import HealthResponse
from cartpilot.schemas.tenant import TenantConfig

__all__ = [
    "HealthResponse",
    # Chat
    "ChatRequest",
    "AgentChatRequest",
    "AgentResponse",
    "StreamEvent",
    # Tenants
    "TenantConfig",
]
