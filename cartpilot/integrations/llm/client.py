"""Chat completion client for the Anthropic Messages API using httpx.

Also owns the provider-specific shape of tool-use replay: the assistant turn
that carries the model's own ``tool_use`` blocks and the ``user`` turn that
answers them with ``tool_result`` blocks.
"""

import json
import logging
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from typing import Any

import httpx

from cartpilot.core.config import settings
from cartpilot.core.http_retry import post_with_retry, stream_with_retry

logger = logging.getLogger(__name__)

SERVICE_NAME = "LLM"

# Messages sent to the provider: {"role": ..., "content": str | list[block]}
Message = dict[str, Any]


@dataclass
class ToolUse:
    """A tool invocation requested by the model."""

    id: str
    name: str
    input: dict[str, Any]


@dataclass
class ModelResponse:
    """Structured (non-streaming) model output."""

    content: list[dict[str, Any]]
    stop_reason: str | None = None
    id: str = ""
    usage: dict[str, int] = field(default_factory=dict)

    @property
    def text(self) -> str:
        """Concatenated text of all ``text`` blocks."""
        return "".join(
            block.get("text", "") for block in self.content if block.get("type") == "text"
        )

    @property
    def tool_uses(self) -> list[ToolUse]:
        """Tool invocations in the order the model listed them."""
        return [
            ToolUse(
                id=block["id"],
                name=block["name"],
                input=block.get("input") or {},
            )
            for block in self.content
            if block.get("type") == "tool_use"
        ]

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "ModelResponse":
        return cls(
            content=list(payload.get("content") or []),
            stop_reason=payload.get("stop_reason"),
            id=payload.get("id", ""),
            usage=payload.get("usage") or {},
        )


def assistant_turn(response: ModelResponse) -> Message:
    """Replay the model's raw content blocks so it can see its own tool calls."""
    return {"role": "assistant", "content": response.content}


def tool_results_turn(results: Sequence[tuple[str, str]]) -> Message:
    """Answer tool calls; ``results`` pairs a tool_use id with its JSON result."""
    return {
        "role": "user",
        "content": [
            {"type": "tool_result", "tool_use_id": tool_use_id, "content": content}
            for tool_use_id, content in results
        ],
    }


async def iter_text_deltas(lines: AsyncIterator[str]) -> AsyncIterator[str]:
    """Extract text deltas from a server-sent event stream.

    Only ``content_block_delta`` events with a ``text_delta`` payload produce
    output. Other event types, non-``data:`` lines and lines that are not
    valid JSON are skipped.
    """
    async for line in lines:
        if not line.startswith("data:"):
            continue

        data = line[len("data:") :].strip()
        if not data:
            continue
        if data == "[DONE]":
            return

        try:
            event = json.loads(data)
        except json.JSONDecodeError:
            logger.debug("Skipping malformed SSE line: %.80s", data)
            continue

        if not isinstance(event, dict) or event.get("type") != "content_block_delta":
            continue

        delta = event.get("delta") or {}
        if delta.get("type") == "text_delta" and delta.get("text"):
            yield delta["text"]


class LLMClient:
    """Async client for the hosted chat-completion endpoint."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        api_url: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.llm_api_key
        self.model = model or settings.llm_model
        self.api_url = api_url or settings.llm_api_url
        self.max_tokens = max_tokens or settings.llm_max_tokens
        self.temperature = settings.llm_temperature if temperature is None else temperature
        self._transport = transport

    @property
    def headers(self) -> dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": settings.llm_api_version,
            "Content-Type": "application/json",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=settings.llm_timeout_seconds,
            transport=self._transport,
        )

    def build_body(
        self,
        messages: Sequence[Message],
        system: str | None = None,
        tools: Sequence[dict[str, Any]] | None = None,
        stream: bool = False,
    ) -> dict[str, Any]:
        """Build the request body; the system prompt is top-level, not a message."""
        body: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": list(messages),
        }
        if system:
            body["system"] = system
        if tools:
            body["tools"] = list(tools)
        if stream:
            body["stream"] = True
        return body

    async def _post(self, body: dict[str, Any]) -> ModelResponse:
        async with self._client() as client:
            response = await post_with_retry(
                client,
                self.api_url,
                service=SERVICE_NAME,
                json=body,
                headers=self.headers,
            )
            payload: dict[str, Any] = response.json()

        result = ModelResponse.from_payload(payload)
        if result.usage:
            logger.debug(
                "LLM usage: input=%s output=%s stop=%s",
                result.usage.get("input_tokens"),
                result.usage.get("output_tokens"),
                result.stop_reason,
            )
        return result

    async def complete(self, messages: Sequence[Message], system: str | None = None) -> str:
        """Plain completion; returns the concatenated text of the reply."""
        response = await self._post(self.build_body(messages, system))
        return response.text

    async def complete_stream(
        self,
        messages: Sequence[Message],
        system: str | None = None,
    ) -> AsyncIterator[str]:
        """Streaming completion; yields text chunks as they arrive."""
        body = self.build_body(messages, system, stream=True)
        async with (
            self._client() as client,
            stream_with_retry(
                client,
                self.api_url,
                service=SERVICE_NAME,
                json=body,
                headers=self.headers,
            ) as response,
        ):
            async for chunk in iter_text_deltas(response.aiter_lines()):
                yield chunk

    async def complete_with_tools(
        self,
        messages: Sequence[Message],
        system: str | None,
        tools: Sequence[dict[str, Any]],
    ) -> ModelResponse:
        """Tool-augmented completion returning the structured content blocks."""
        return await self._post(self.build_body(messages, system, tools=tools))


# Singleton instance
_llm_client: LLMClient | None = None


def get_llm_client() -> LLMClient:
    """Get or create the LLM client instance."""
    global _llm_client  # noqa: PLW0603
    if _llm_client is None:
        _llm_client = LLMClient()
    return _llm_client
