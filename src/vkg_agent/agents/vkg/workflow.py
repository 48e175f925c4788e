"""
VKG agent workflow - graph construction

    load_context -> generate_plan_sql -> validate_sql -> execute -> build_graph -> generate_answer
                         ^                   |              |
                         +---- retry --------+--------------+   (up to max_attempts)

A failed generation, validation or execution either loops back to
generate_plan_sql with the failure recorded as an AttemptRecord, or, once
all attempts are used, ends in `exhausted`.
"""

from functools import partial

from langgraph.graph import StateGraph, END
from loguru import logger

from vkg_agent.agents.vkg.context import VKGContext
from vkg_agent.agents.vkg.nodes import (
    load_context_node,
    generate_plan_sql_node,
    validate_sql_node,
    execute_node,
    build_graph_node,
    generate_answer_node,
)
from vkg_agent.agents.vkg.state import VKGGraphState


def _route_after_load(state: VKGGraphState) -> str:
    return "end" if state.get("error") else "generate_plan_sql"


def _route_after_attempt_stage(next_step: str, max_attempts: int):
    """Router for generate/validate/execute: continue, retry, or give up."""

    def route(state: VKGGraphState) -> str:
        if not state.get("stage_error"):
            return next_step
        if state["attempt"] < max_attempts:
            logger.info(f"🔄 Attempt {state['attempt']}/{max_attempts} failed, retrying with error feedback")
            return "generate_plan_sql"
        logger.error(f"Max attempts reached. Last error: {state['stage_error']}")
        return "exhausted"

    return route


async def exhausted_node(state: VKGGraphState, ctx: VKGContext) -> VKGGraphState:
    state = dict(state)
    state["error"] = f"Failed after {ctx.max_attempts} attempts. Last error: {state['stage_error']}"
    return state


def build_vkg_workflow(ctx: VKGContext):
    """
    Build the VKG workflow graph with context bound to nodes.
    """
    g = StateGraph(VKGGraphState)

    g.add_node("load_context", partial(load_context_node, ctx=ctx))
    g.add_node("generate_plan_sql", partial(generate_plan_sql_node, ctx=ctx))
    g.add_node("validate_sql", partial(validate_sql_node, ctx=ctx))
    g.add_node("execute", partial(execute_node, ctx=ctx))
    g.add_node("build_graph", partial(build_graph_node, ctx=ctx))
    g.add_node("generate_answer", partial(generate_answer_node, ctx=ctx))
    g.add_node("exhausted", partial(exhausted_node, ctx=ctx))

    g.set_entry_point("load_context")
    g.add_conditional_edges(
        "load_context",
        _route_after_load,
        {"generate_plan_sql": "generate_plan_sql", "end": END},
    )

    for node, next_step in (
        ("generate_plan_sql", "validate_sql"),
        ("validate_sql", "execute"),
        ("execute", "build_graph"),
    ):
        g.add_conditional_edges(
            node,
            _route_after_attempt_stage(next_step, ctx.max_attempts),
            {next_step: next_step, "generate_plan_sql": "generate_plan_sql", "exhausted": "exhausted"},
        )

    g.add_edge("build_graph", "generate_answer")
    g.add_edge("generate_answer", END)
    g.add_edge("exhausted", END)
    return g.compile()
