"""
SQL validation node
"""

from loguru import logger

from vkg_agent.agents.vkg.context import VKGContext
from vkg_agent.agents.vkg.models import AttemptRecord, attempt_tag, validation_feedback
from vkg_agent.agents.vkg.state import VKGGraphState
from vkg_agent.agents.vkg.utils import timed_step, trace_step
from vkg_agent.utils.errors import ValidationError


@trace_step("validate_sql")
async def validate_sql_node(state: VKGGraphState, ctx: VKGContext) -> VKGGraphState:
    """
    Check the SQL against the resolved mappings before it reaches the engine.

    An unknown table or column fails the attempt exactly like an engine error.
    """
    state = dict(state)
    steps = list(state["pipeline_steps"])
    state["pipeline_steps"] = steps
    attempt = state["attempt"]

    try:
        async with timed_step(steps, f"SQL Validation{attempt_tag(attempt, ctx.max_attempts)}"):
            result = ctx.validator.validate(state["sql"], state["mappings"])
            if not result.valid:
                raise ValidationError(result.errors, result.warnings)
    except ValidationError as e:
        message = "; ".join(e.errors)
        logger.warning(f"❌ SQL validation FAILED: {message}")
        state["stage_error"] = f"SQL validation failed: {message}"
        state["attempts"] = state["attempts"] + [
            AttemptRecord(
                attempt_number=attempt,
                stage="validation",
                error=state["stage_error"],
                error_feedback=validation_feedback(message),
                plan=state["plan"],
                sql=state["sql"],
            )
        ]
        return state

    if result.warnings:
        logger.info(f"✅ SQL valid ({len(result.warnings)} warnings)")
    state["warnings"] = list(result.warnings)
    state["stage_error"] = None
    return state
