"""
Context graph node - evidence graph + reasoning trace
"""

import time

from loguru import logger

from vkg_agent.agents.vkg.context import VKGContext
from vkg_agent.agents.vkg.models import PipelineStep
from vkg_agent.agents.vkg.state import VKGGraphState
from vkg_agent.agents.vkg.utils import trace_step
from vkg_agent.graph.context_graph import ContextGraph
from vkg_agent.ontology.models import MappingSet

STEP_NAME = "Context Graph + Trace"


@trace_step("build_graph")
async def build_graph_node(state: VKGGraphState, ctx: VKGContext) -> VKGGraphState:
    """Failures degrade to an empty graph and trace; the answer is still generated."""
    state = dict(state)
    steps = list(state["pipeline_steps"])
    state["pipeline_steps"] = steps
    result = state["result"]
    databases = state["databases"]

    start = time.time()
    try:
        graph = ctx.graph_builder.build(
            result.column_names,
            result.rows,
            state["schema"],
            state["mappings"] or MappingSet(),
            sql=state["sql"],
            databases=databases,
        )
        graph.query_mode = ctx.query_mode
        trace = ctx.graph_builder.reasoning_trace(graph)
    except Exception as e:
        logger.warning(f"⚠️  Context graph failed (non-fatal): {e}")
        steps.append(PipelineStep(name=STEP_NAME, duration_ms=0, status="skipped", error=str(e)))
        state["context_graph"] = ContextGraph(databases=list(databases), sql=state["sql"], query_mode=ctx.query_mode)
        state["reasoning_trace"] = []
        return state

    steps.append(PipelineStep(name=STEP_NAME, duration_ms=int((time.time() - start) * 1000), status="success"))
    logger.info(f"✅ Graph: {len(graph.nodes)} nodes, {len(graph.edges)} edges")
    state["context_graph"] = graph
    state["reasoning_trace"] = trace
    return state
