"""
Answer generation node
"""

from loguru import logger

from vkg_agent.agents.vkg.context import VKGContext
from vkg_agent.agents.vkg.prompts import build_answer_messages, summarize_rows
from vkg_agent.agents.vkg.state import VKGGraphState
from vkg_agent.agents.vkg.utils import timed_step, trace_step
from vkg_agent.graph.context_graph import ContextGraph


@trace_step("generate_answer")
async def generate_answer_node(state: VKGGraphState, ctx: VKGContext) -> VKGGraphState:
    """
    Conversational answer from sample rows and graph statistics.

    Zero rows go to the data explorer instead, which reports the values that
    do exist for the filtered columns.
    """
    state = dict(state)
    steps = list(state["pipeline_steps"])
    state["pipeline_steps"] = steps
    result = state["result"]
    graph = state["context_graph"] or ContextGraph()

    try:
        async with timed_step(steps, "LLM Answer Generation"):
            if result.row_count == 0:
                answer = await ctx.explorer.explain(state["question"], state["sql"], state["workspace_id"])
            else:
                summary = summarize_rows(result.column_names, result.rows, result.row_count, ctx.answer_sample_rows)
                messages = build_answer_messages(state["question"], summary, len(graph.nodes), len(graph.edges))
                content = await ctx.chat.chat(messages, {"temperature": ctx.answer_temperature})
                answer = content.strip()
    except Exception as e:
        logger.error(f"❌ Answer generation failed: {e}")
        state["error"] = str(e)
        return state

    logger.info(f"✅ Answer generated ({len(answer)} chars)")
    state["answer"] = answer
    return state
