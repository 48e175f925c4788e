"""
Context loading node - ontology + mappings
"""

import asyncio
from typing import Optional

from langchain_core.runnables import RunnableConfig
from loguru import logger

from vkg_agent.agents.vkg.context import VKGContext
from vkg_agent.agents.vkg.state import VKGGraphState
from vkg_agent.agents.vkg.utils import timed_step, trace_step
from vkg_agent.ontology.schema_filter import filter_schema


@trace_step("load_context")
async def load_context_node(
    state: VKGGraphState, ctx: VKGContext, config: Optional[RunnableConfig] = None
) -> VKGGraphState:
    """
    Load the ontology schema and mapping annotations (concurrently), resolve
    table names to catalog.schema.table, apply introspected foreign keys and
    filter the schema down to what is mapped.

    Drift detection is started here, once resolved mappings exist. The task
    goes into the caller-owned `drift_tasks` list from the run config (not
    into graph state) so the agent can await it on every exit path. Without
    that list no drift check is started.
    """
    state = dict(state)
    steps = list(state["pipeline_steps"])
    state["pipeline_steps"] = steps
    tenant_id = state["tenant_id"]
    workspace_id = state["workspace_id"] or "default"

    try:
        async with timed_step(steps, "Load Ontology + Mappings"):
            schema, mappings = await asyncio.gather(
                ctx.repository.load_schema(tenant_id, workspace_id, state.get("workspace_name")),
                ctx.repository.load_mappings(tenant_id, workspace_id, state.get("workspace_name")),
            )
    except Exception as e:
        logger.error(f"❌ Failed to load ontology context: {e}")
        state["error"] = str(e)
        return state

    logger.info(
        f"✅ Context loaded: {len(schema.classes)} classes, "
        f"{len(schema.object_properties) + len(schema.data_properties)} properties, "
        f"{len(mappings.classes)} mapped tables, {len(mappings.properties)} mapped columns"
    )
    if mappings.is_empty:
        logger.warning("⚠️  No VKG mappings for this workspace - the model has no table context")

    resolved = await ctx.resolver.resolve(tenant_id, state["workspace_id"], mappings)
    drift_tasks = ((config or {}).get("configurable") or {}).get("drift_tasks")
    if ctx.drift_detector is not None and drift_tasks is not None:
        drift_tasks.append(
            asyncio.create_task(ctx.drift_detector.detect(tenant_id, state["workspace_id"], resolved))
        )
    resolved = await ctx.join_augmenter.augment(tenant_id, state["workspace_id"], resolved)

    filtered = filter_schema(schema, resolved)
    logger.info(
        f"🔍 Filtered schema: {len(filtered.classes)}/{len(schema.classes)} classes (VKG-mapped only)"
    )
    state["schema"] = filtered
    state["mappings"] = resolved
    return state
