"""
VKG agent workflow state
"""

from typing import TypedDict, List, Dict, Any, Optional

from vkg_agent.agents.vkg.models import AttemptRecord, PipelineStep
from vkg_agent.graph.context_graph import ContextGraph, ReasoningTraceStep
from vkg_agent.infra.trino import ExecutionResult
from vkg_agent.ontology.models import MappingSet, OntologySchema


class VKGGraphState(TypedDict):
    """State for the federated query workflow"""
    question: str
    tenant_id: str
    workspace_id: Optional[str]
    workspace_name: Optional[str]
    trace_id: Optional[str]
    schema: Optional[OntologySchema]  # filtered to mapped classes/properties
    mappings: Optional[MappingSet]  # resolved + join-augmented
    attempt: int
    attempts: List[AttemptRecord]
    stage_error: Optional[str]  # failure of the node that just ran, cleared on success
    plan: Dict[str, Any]
    sql: str
    warnings: List[str]
    result: Optional[ExecutionResult]
    databases: List[str]
    context_graph: Optional[ContextGraph]
    reasoning_trace: List[ReasoningTraceStep]
    answer: Optional[str]
    error: Optional[str]  # terminal failure, set once the request cannot succeed
    pipeline_steps: List[PipelineStep]
