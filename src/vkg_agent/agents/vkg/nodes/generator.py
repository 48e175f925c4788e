"""
Plan + SQL generator node
"""

import re
from typing import Tuple

from loguru import logger

from vkg_agent.agents.vkg.context import VKGContext
from vkg_agent.agents.vkg.models import AttemptRecord, QueryPlan, attempt_tag, generation_feedback
from vkg_agent.agents.vkg.prompts import build_generation_messages
from vkg_agent.agents.vkg.state import VKGGraphState
from vkg_agent.agents.vkg.utils import timed_step, trace_step
from vkg_agent.llm.response_utils import extract_json_object, extract_sql_block, strip_code_fences
from vkg_agent.ontology.models import MappingSet, OntologySchema
from vkg_agent.sql.inspection import strip_literals
from vkg_agent.utils.errors import GenerationError

_ANY_FENCE_BODY = re.compile(r"```(?:sql)?\s*([\s\S]*?)\s*```", re.I)
_ROW_LIMIT = re.compile(r"\b(?:LIMIT|FETCH\s+(?:FIRST|NEXT))\b", re.I)
_TRAILING_SEMICOLON = re.compile(r";?\s*$")
_STATEMENT_START = re.compile(r"^\s*(SELECT|WITH)\b", re.I)


def _top_level(text: str) -> str:
    """Blank out everything inside parentheses (CTE bodies, sub-selects, calls)."""
    out = []
    depth = 0
    for char in text:
        if char == "(":
            depth += 1
        elif char == ")":
            depth = max(depth - 1, 0)
        elif depth == 0:
            out.append(char)
            continue
        out.append(" ")
    return "".join(out)


def ensure_limit(sql: str, row_limit: int) -> str:
    """
    Append LIMIT when the outer statement has none (trailing ';' dropped first).

    A LIMIT inside a string literal, comment, CTE body or sub-select does not
    bound the result and is ignored.
    """
    if not sql or _ROW_LIMIT.search(_top_level(strip_literals(sql))):
        return sql
    return _TRAILING_SEMICOLON.sub("", sql) + f"\nLIMIT {row_limit}"


def parse_generation(content: str, row_limit: int = 1000) -> Tuple[QueryPlan, str]:
    """
    Parse the model's {plan, sql} reply.

    Falls back to a fenced SQL block (or a bare SELECT/WITH statement) with
    a default plan when the reply is not JSON.

    Raises:
        GenerationError: no SQL could be recovered
    """
    parsed = extract_json_object(content)
    if parsed is not None:
        sql = str(parsed.get("sql") or "").strip()
        fenced = _ANY_FENCE_BODY.search(sql)
        if fenced:
            sql = fenced.group(1).strip()
        if parsed.get("plan"):
            plan = QueryPlan.from_dict(parsed["plan"])
        else:
            plan = QueryPlan(reasoning="Parsed from combined response")
        if not sql:
            raise GenerationError(f"Model returned JSON without SQL (keys: {', '.join(parsed)})")
        return plan, ensure_limit(sql, row_limit)

    logger.warning("⚠️  JSON parse failed - attempting SQL extraction from raw text")
    sql = extract_sql_block(content)
    if not sql:
        candidate = strip_code_fences(content)
        sql = candidate if _STATEMENT_START.match(candidate) else ""
    if not sql:
        raise GenerationError("Model response contained neither JSON nor a SQL block")
    return QueryPlan.fallback(), ensure_limit(sql, row_limit)


@trace_step("generate_plan_sql")
async def generate_plan_sql_node(state: VKGGraphState, ctx: VKGContext) -> VKGGraphState:
    """Single model call producing the plan and the SQL, replaying earlier failures as feedback."""
    state = dict(state)
    steps = list(state["pipeline_steps"])
    state["pipeline_steps"] = steps
    attempt = state["attempt"] + 1
    state["attempt"] = attempt

    attempts = state["attempts"]
    messages = build_generation_messages(
        state["question"], state["schema"] or OntologySchema(), state["mappings"] or MappingSet(), attempts
    )
    if attempts:
        logger.info(f"🔄 Retry with {len(attempts)} prior error(s) in conversation")

    try:
        async with timed_step(steps, f"LLM Plan+SQL Generation{attempt_tag(attempt, ctx.max_attempts)}"):
            content = await ctx.chat.chat(messages, {"temperature": ctx.generation_temperature})
            plan, sql = parse_generation(content, ctx.row_limit)
    except Exception as e:
        logger.error(f"❌ SQL generation failed: {e}")
        state["stage_error"] = str(e)
        state["attempts"] = attempts + [
            AttemptRecord(
                attempt_number=attempt,
                stage="generation",
                error=str(e),
                error_feedback=generation_feedback(str(e)),
            )
        ]
        return state

    logger.info(
        f"✅ Plan: entities=[{', '.join(plan.entities)}], singleHop={plan.single_hop}, "
        f"aggregation={plan.aggregation or 'none'}"
    )
    logger.debug(f"SQL generated ({len(sql)} chars):\n{sql}")
    state["plan"] = plan.to_dict()
    state["sql"] = sql
    state["stage_error"] = None
    return state
