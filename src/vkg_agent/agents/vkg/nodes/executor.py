"""
SQL execution node (federation engine)
"""

from loguru import logger

from vkg_agent.agents.vkg.context import VKGContext
from vkg_agent.agents.vkg.models import AttemptRecord, attempt_tag, execution_feedback
from vkg_agent.agents.vkg.state import VKGGraphState
from vkg_agent.agents.vkg.utils import extract_databases, timed_step, trace_step


@trace_step("execute")
async def execute_node(state: VKGGraphState, ctx: VKGContext) -> VKGGraphState:
    state = dict(state)
    steps = list(state["pipeline_steps"])
    state["pipeline_steps"] = steps
    attempt = state["attempt"]
    sql = state["sql"]

    try:
        async with timed_step(steps, f"Trino Execution{attempt_tag(attempt, ctx.max_attempts)}"):
            client = await ctx.executor.get_client(state["workspace_id"])
            result = await client.execute_sql(sql)
    except Exception as e:
        logger.error(f"❌ Trino execution FAILED: {e}")
        state["stage_error"] = str(e)
        state["attempts"] = state["attempts"] + [
            AttemptRecord(
                attempt_number=attempt,
                stage="execution",
                error=str(e),
                error_feedback=execution_feedback(str(e)),
                plan=state["plan"],
                sql=sql,
            )
        ]
        return state

    logger.info(f"✅ Trino returned {result.row_count} rows, {len(result.columns)} columns in {result.duration_ms}ms")
    state["result"] = result
    state["databases"] = extract_databases(sql)
    state["stage_error"] = None
    return state
