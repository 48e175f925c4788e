"""
VKG agent utilities
"""

import functools
import re
import time
import uuid
from contextlib import asynccontextmanager
from typing import List

from loguru import logger

from vkg_agent.agents.vkg.models import PipelineStep

_THREE_PART_NAME = re.compile(r"(\w+)\.\w+\.\w+")


def trace_step(step_name: str):
    """Decorator for tracing workflow step execution."""

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(state, ctx, *args, **kwargs):
            trace_id = state.get("trace_id") or str(uuid.uuid4())
            state = dict(state)
            state["trace_id"] = trace_id
            start = time.time()
            logger.info(f"[TRACE] step_start: {step_name} | trace_id={trace_id} | attempt={state.get('attempt', 0)}")
            try:
                result = await func(state, ctx, *args, **kwargs)
                duration = time.time() - start
                logger.info(
                    f"[TRACE] step_end: {step_name} | trace_id={trace_id} | "
                    f"duration_ms={int(duration * 1000)} | stage_error={result.get('stage_error')}"
                )
                return result
            except Exception as e:
                logger.error(f"[TRACE] step_error: {step_name} | trace_id={trace_id} | error={e}")
                raise

        return wrapper

    return decorator


@asynccontextmanager
async def timed_step(steps: List[PipelineStep], name: str):
    """
    Time the enclosed block and append its outcome to `steps`.

    The exception is re-raised after a failed step is recorded.
    """
    start = time.time()
    try:
        yield
    except Exception as e:
        steps.append(PipelineStep(name=name, duration_ms=int((time.time() - start) * 1000), status="failed", error=str(e)))
        raise
    steps.append(PipelineStep(name=name, duration_ms=int((time.time() - start) * 1000), status="success"))


def extract_databases(sql: str) -> List[str]:
    """Catalog part of every catalog.schema.table reference, first-seen order."""
    return list(dict.fromkeys(m.group(1) for m in _THREE_PART_NAME.finditer(sql or "")))
