"""LangGraph agent state definition."""

from typing import Any

from typing_extensions import TypedDict

from cartpilot.integrations.llm.client import ModelResponse
from cartpilot.schemas.chat import ToolCallRecord


class AgentState(TypedDict):
    """State that flows through the tool-calling workflow.

    Attributes:
        messages: Provider-format message list sent on every model call; grows
            by one assistant turn and one tool-result turn per round-trip
        system_prompt: System instructions fixed for the whole cycle
        last_response: Most recent model response (None before the first call)
        iterations: Completed tool round-trips
        tool_calls: Every executed tool with its result, in execution order
        cart_id: Latest cart id seen in a tool result (or supplied by the caller)
        checkout_url: Latest checkout URL seen in a tool result
    """

    messages: list[dict[str, Any]]
    system_prompt: str
    last_response: ModelResponse | None
    iterations: int
    tool_calls: list[ToolCallRecord]
    cart_id: str | None
    checkout_url: str | None
