"""Chat agent: runs the tool-calling workflow for one shopper message."""

import logging
from collections.abc import AsyncIterator, Sequence
from typing import Any

from cartpilot.core.config import settings
from cartpilot.core.exceptions import AgentError
from cartpilot.integrations.llm.client import LLMClient
from cartpilot.schemas.chat import AgentContext, AgentResponse, ChatTurn, StreamEvent
from cartpilot.services.graph.prompts import build_system_prompt, build_tool_guidance
from cartpilot.services.graph.state import AgentState
from cartpilot.services.graph.workflow import create_agent_graph, recursion_limit_for
from cartpilot.services.retrieval_service import RetrievalService
from cartpilot.services.tenant_service import TenantService
from cartpilot.services.tools.executor import ToolExecutor

logger = logging.getLogger(__name__)

STREAM_CHUNK_SIZE = 50

UNAVAILABLE_MESSAGE = "The assistant is temporarily unavailable. Please try again in a moment."
STREAM_ERROR_MESSAGE = (
    "Sorry, something went wrong while processing your message. Please try again."
)


def last_user_message(messages: Sequence[ChatTurn]) -> str:
    for turn in reversed(messages):
        if turn.role == "user":
            return turn.content
    return ""


class ChatAgent:
    """Orchestrates one processing cycle: prompt setup, model/tool loop, response.

    One instance is shared by all requests. Per-request state lives in the
    graph state; the only cross-request state is the executor's session carts
    and the tenant cache.
    """

    def __init__(
        self,
        llm_client: LLMClient,
        retrieval_service: RetrievalService,
        tenant_service: TenantService,
        tool_executor: ToolExecutor | None = None,
        max_iterations: int | None = None,
    ) -> None:
        self.llm_client = llm_client
        self.retrieval_service = retrieval_service
        self.tenant_service = tenant_service
        self.tool_executor = tool_executor or ToolExecutor(retrieval_service, tenant_service)
        self.max_iterations = max_iterations or settings.agent_max_tool_iterations

    async def build_prompt(self, tenant_id: str, user_query: str) -> str:
        """System instructions for the whole cycle: persona, store context, tool guidance."""
        tenant = await self.tenant_service.get_tenant(tenant_id)
        tenant_prompt = tenant.system_prompt if tenant is not None else None

        try:
            results = await self.retrieval_service.search(tenant_id, user_query)
            rag_context = self.retrieval_service.build_context(results)
        except Exception:
            logger.exception("Failed to retrieve context for tenant %s", tenant_id)
            rag_context = ""

        return f"{build_system_prompt(tenant_prompt, rag_context)}\n{build_tool_guidance()}"

    async def _prepare(
        self, messages: Sequence[ChatTurn], context: AgentContext
    ) -> tuple[Any, AgentState]:
        system_prompt = await self.build_prompt(context.tenant_id, last_user_message(messages))
        graph = create_agent_graph(
            self.llm_client,
            self.tool_executor,
            context,
            self.max_iterations,
        )
        initial_state: AgentState = {
            "messages": [{"role": turn.role, "content": turn.content} for turn in messages],
            "system_prompt": system_prompt,
            "last_response": None,
            "iterations": 0,
            "tool_calls": [],
            "cart_id": context.cart_id,
            "checkout_url": None,
        }
        return graph, initial_state

    def _graph_config(self) -> dict[str, Any]:
        return {"recursion_limit": recursion_limit_for(self.max_iterations)}

    @staticmethod
    def _to_response(state: AgentState) -> AgentResponse:
        last_response = state["last_response"]
        return AgentResponse(
            reply=last_response.text if last_response is not None else "",
            tool_calls=state["tool_calls"] or None,
            cart_id=state["cart_id"],
            checkout_url=state["checkout_url"],
        )

    async def process_message(
        self, messages: Sequence[ChatTurn], context: AgentContext
    ) -> AgentResponse:
        """Run the full cycle and return the final result.

        Raises:
            AgentError: Anything failed; the message is safe to show to the shopper
        """
        try:
            graph, initial_state = await self._prepare(messages, context)
            final_state: AgentState = await graph.ainvoke(
                initial_state, config=self._graph_config()
            )
        except Exception as e:
            logger.exception("Agent processing failed for session %s", context.session_id)
            raise AgentError(UNAVAILABLE_MESSAGE) from e

        response = self._to_response(final_state)
        logger.info(
            "Agent finished: %d tool calls, reply length %d",
            len(response.tool_calls or []),
            len(response.reply),
        )
        return response

    async def process_message_stream(
        self, messages: Sequence[ChatTurn], context: AgentContext
    ) -> AsyncIterator[StreamEvent]:
        """Run the cycle, yielding ``tool`` events as tools finish, then text and ``done``.

        Concatenating the ``text`` payloads gives the same reply as
        ``process_message``. Failures become a single ``error`` event.
        """
        try:
            graph, final_state = await self._prepare(messages, context)
            async for mode, chunk in graph.astream(
                final_state,
                config=self._graph_config(),
                stream_mode=["custom", "values"],
            ):
                if mode == "custom":
                    yield StreamEvent(type=chunk["type"], data=chunk["data"])
                elif mode == "values":
                    final_state = chunk
            response = self._to_response(final_state)
        except Exception:
            logger.exception("Agent stream failed for session %s", context.session_id)
            yield StreamEvent(type="error", data=STREAM_ERROR_MESSAGE)
            return

        reply = response.reply
        for start in range(0, len(reply), STREAM_CHUNK_SIZE):
            yield StreamEvent(type="text", data=reply[start : start + STREAM_CHUNK_SIZE])

        yield StreamEvent(type="done", data=response.model_dump())
