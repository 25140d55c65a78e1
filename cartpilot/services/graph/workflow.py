"""LangGraph workflow for the tool-calling sales agent.

Two nodes loop until the model stops asking for tools::

    call_model --(tool_use blocks, under cap)--> execute_tools --> call_model
    call_model --(text only, or cap reached)--> END

The first model call is not a round-trip; each ``execute_tools`` pass
(plus the model call that answers it) counts as one.
"""

import logging
from typing import Any

from langgraph.config import get_stream_writer
from langgraph.graph import END, StateGraph

from cartpilot.integrations.llm.client import LLMClient, assistant_turn, tool_results_turn
from cartpilot.schemas.chat import AgentContext, ToolCallRecord
from cartpilot.services.graph.state import AgentState
from cartpilot.services.tools.executor import ToolExecutor
from cartpilot.services.tools.registry import TOOL_DEFINITIONS

logger = logging.getLogger(__name__)


def recursion_limit_for(max_iterations: int) -> int:
    """LangGraph step budget that never trips before our own iteration cap."""
    return 2 * max_iterations + 5


def create_agent_graph(
    llm_client: LLMClient,
    tool_executor: ToolExecutor,
    context: AgentContext,
    max_iterations: int,
) -> Any:
    """Build and compile the agent workflow for one request.

    Args:
        llm_client: Gateway used for every model call
        tool_executor: Runs the tools the model asks for
        context: Tenant/session the tools act on; ``cart_id`` is updated in place
        max_iterations: Maximum number of tool round-trips

    Returns:
        Compiled LangGraph workflow
    """

    async def call_model(state: AgentState) -> dict[str, Any]:
        response = await llm_client.complete_with_tools(
            state["messages"],
            state["system_prompt"],
            TOOL_DEFINITIONS,
        )
        logger.info(
            "Agent iteration %d: stop_reason=%s, tool calls=%s",
            state["iterations"],
            response.stop_reason,
            [tool_use.name for tool_use in response.tool_uses],
        )
        return {"last_response": response}

    async def execute_tools(state: AgentState) -> dict[str, Any]:
        response = state["last_response"]
        assert response is not None
        write = get_stream_writer()

        tool_calls = list(state["tool_calls"])
        cart_id = state["cart_id"]
        checkout_url = state["checkout_url"]
        results: list[tuple[str, str]] = []

        # Strictly in request order; later calls may read cart state set by earlier ones
        for tool_use in response.tool_uses:
            context.cart_id = cart_id
            result = await tool_executor.execute(tool_use.name, tool_use.input, context)
            record = ToolCallRecord(tool=tool_use.name, result=result)
            tool_calls.append(record)
            results.append((tool_use.id, result.model_dump_json()))

            if result.success and isinstance(result.data, dict):
                cart_id = result.data.get("cart_id") or cart_id
                checkout_url = result.data.get("checkout_url") or checkout_url

            write({"type": "tool", "data": record.model_dump()})

        return {
            "messages": [
                *state["messages"],
                assistant_turn(response),
                tool_results_turn(results),
            ],
            "iterations": state["iterations"] + 1,
            "tool_calls": tool_calls,
            "cart_id": cart_id,
            "checkout_url": checkout_url,
        }

    def route_after_model(state: AgentState) -> str:
        response = state["last_response"]
        if response is None or not response.tool_uses:
            return "done"
        if state["iterations"] >= max_iterations:
            logger.warning(
                "Agent reached iteration cap (%d) with tool calls still pending",
                max_iterations,
            )
            return "done"
        return "execute_tools"

    graph = StateGraph(AgentState)

    graph.add_node("call_model", call_model)
    graph.add_node("execute_tools", execute_tools)

    graph.set_entry_point("call_model")
    graph.add_conditional_edges(
        "call_model",
        route_after_model,
        {"execute_tools": "execute_tools", "done": END},
    )
    graph.add_edge("execute_tools", "call_model")

    return graph.compile()
