"""
VKG Query Agent - natural language questions over federated databases

Question -> ontology-grounded plan + SQL -> validated -> executed on Trino
-> evidence graph -> conversational answer. Every dependency is passed in
at construction; `from_services` wires them from a ServiceContext.
"""

import asyncio
import time
from typing import Any, Dict, List, Optional

from loguru import logger

from vkg_agent.agents.vkg.context import VKGContext
from vkg_agent.agents.vkg.explorer import DataExplorer
from vkg_agent.agents.vkg.state import VKGGraphState
from vkg_agent.agents.vkg.workflow import build_vkg_workflow
from vkg_agent.config.settings import settings
from vkg_agent.graph.context_graph import ContextGraph, ContextGraphBuilder, ReasoningTraceStep
from vkg_agent.ontology.drift import SchemaDriftDetector
from vkg_agent.ontology.joins import JoinAugmenter
from vkg_agent.ontology.resolver import MappingResolver
from vkg_agent.sql.inspection import RegexSQLInspector, SQLInspector
from vkg_agent.sql.validator import SQLValidator


class VKGQueryAgent:
    """
    LangGraph-based federated query agent.

    `query()` never raises: retry exhaustion and stage failures come back as
    a structured response with an `error` field.
    """

    def __init__(
        self,
        repository,
        resolver: MappingResolver,
        join_augmenter: JoinAugmenter,
        validator: SQLValidator,
        executor,
        graph_builder: ContextGraphBuilder,
        chat,
        drift_detector: Optional[SchemaDriftDetector] = None,
        inspector: Optional[SQLInspector] = None,
        max_attempts: int = settings.vkg_max_attempts,
        row_limit: int = settings.vkg_default_row_limit,
        query_mode: str = settings.vkg_query_mode,
    ):
        inspector = inspector or RegexSQLInspector()
        self.query_mode = query_mode
        self.max_attempts = max_attempts
        self.ctx = VKGContext(
            repository=repository,
            resolver=resolver,
            join_augmenter=join_augmenter,
            validator=validator,
            executor=executor,
            graph_builder=graph_builder,
            chat=chat,
            explorer=DataExplorer(
                executor,
                chat,
                inspector=inspector,
                distinct_limit=settings.vkg_exploration_limit,
                temperature=settings.answer_temperature,
            ),
            drift_detector=drift_detector,
            max_attempts=max_attempts,
            row_limit=row_limit,
            generation_temperature=settings.generation_temperature,
            answer_temperature=settings.answer_temperature,
            answer_sample_rows=settings.vkg_answer_sample_rows,
            query_mode=query_mode,
        )
        self.workflow = build_vkg_workflow(self.ctx)
        logger.info(f"VKGQueryAgent initialized (max attempts: {max_attempts})")

    @classmethod
    def from_services(cls, services) -> "VKGQueryAgent":
        """Wire the agent from a ServiceContext."""
        inspector = RegexSQLInspector()
        return cls(
            repository=services.ontology_repository,
            resolver=MappingResolver(services.catalog_registry),
            join_augmenter=JoinAugmenter(services.catalog_registry),
            validator=SQLValidator(inspector=inspector),
            executor=services.connections,
            graph_builder=ContextGraphBuilder(),
            chat=services.chat,
            drift_detector=SchemaDriftDetector(services.catalog_registry),
            inspector=inspector,
        )

    def _initial_state(
        self, question: str, tenant_id: str, workspace_id: Optional[str], workspace_name: Optional[str]
    ) -> VKGGraphState:
        """Create initial workflow state."""
        return {
            "question": question,
            "tenant_id": tenant_id,
            "workspace_id": workspace_id,
            "workspace_name": workspace_name or workspace_id,
            "trace_id": None,
            "schema": None,
            "mappings": None,
            "attempt": 0,
            "attempts": [],
            "stage_error": None,
            "plan": {},
            "sql": "",
            "warnings": [],
            "result": None,
            "databases": [],
            "context_graph": None,
            "reasoning_trace": [],
            "answer": None,
            "error": None,
            "pipeline_steps": [],
        }

    async def query(
        self,
        question: str,
        tenant_id: str = "default",
        workspace_id: Optional[str] = None,
        workspace_name: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Answer a question against the workspace's mapped databases.
        """
        start = time.time()
        logger.info(f"🌐 [VKG:{tenant_id}] Federated query: {question!r} (workspace: {workspace_name or workspace_id})")

        state = self._initial_state(question, tenant_id, workspace_id, workspace_name)
        # Filled by load_context; awaited here even when the graph raises
        drift_tasks: List[asyncio.Task] = []
        config = {
            "recursion_limit": 10 + 3 * self.max_attempts,
            "configurable": {"drift_tasks": drift_tasks},
        }
        try:
            out = await self.workflow.ainvoke(state, config)
        except Exception as e:
            logger.exception(f"❌ VKG pipeline crashed: {e}")
            out = {**state, "error": str(e)}

        drift_warnings = await self._drift_warnings(drift_tasks)
        total_ms = int((time.time() - start) * 1000)

        for step in out["pipeline_steps"]:
            icon = "✅" if step.status == "success" else "❌"
            logger.info(f"   {icon} {step.name}: {step.duration_ms}ms")

        if out.get("error"):
            logger.info(f"❌ [VKG:{tenant_id}] PIPELINE FAILED after {total_ms}ms: {out['error']}")
            return self._error_response(question, out["error"], out, drift_warnings, total_ms)

        logger.info(f"🏁 [VKG:{tenant_id}] PIPELINE COMPLETE in {total_ms}ms")
        return self._success_response(question, out, drift_warnings, total_ms)

    async def _drift_warnings(self, tasks: List[asyncio.Task]) -> List[str]:
        warnings: List[str] = []
        for task in tasks:
            try:
                report = await task
            except Exception as e:
                logger.debug(f"Drift check failed (non-fatal): {e}")
                continue
            if report is not None and report.has_drift:
                warnings.extend(report.warnings())
        return warnings

    def _success_response(
        self, question: str, out: Dict[str, Any], drift_warnings: List[str], total_ms: int
    ) -> Dict[str, Any]:
        result = out["result"]
        databases = out["databases"]
        graph: ContextGraph = out["context_graph"] or ContextGraph(query_mode=self.query_mode)
        trace: List[ReasoningTraceStep] = out["reasoning_trace"]
        return {
            "answer": out["answer"],
            "question": question,
            "context_graph": graph.to_dict(),
            "reasoning_trace": [step.to_dict() for step in trace],
            "citations": {"sql": out["sql"], "databases": databases},
            "execution_stats": {
                "total_ms": total_ms,
                "rows_returned": result.row_count,
                "databases_queried": len(databases),
                "engine_execution_ms": result.duration_ms,
            },
            "execution_pipeline": {
                "total_time_ms": total_ms,
                "steps": [step.to_dict() for step in out["pipeline_steps"]],
            },
            "query_mode": self.query_mode,
            "plan": out["plan"],
            "warnings": list(out["warnings"]) + drift_warnings,
        }

    def _error_response(
        self, question: str, error: str, out: Dict[str, Any], drift_warnings: List[str], total_ms: int
    ) -> Dict[str, Any]:
        return {
            "answer": f"Query failed: {error}",
            "question": question,
            "context_graph": ContextGraph(query_mode=self.query_mode).to_dict(),
            "reasoning_trace": [ReasoningTraceStep(step=f"Error: {error}").to_dict()],
            "citations": {},
            "execution_stats": {"total_ms": total_ms, "error": error},
            "execution_pipeline": {
                "total_time_ms": total_ms,
                "steps": [step.to_dict() for step in out.get("pipeline_steps", [])],
            },
            "query_mode": self.query_mode,
            "plan": out.get("plan") or None,
            "warnings": list(out.get("warnings") or []) + drift_warnings,
            "error": error,
        }
