"""
VKG query models for the API contract
"""

from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List


class QueryRequest(BaseModel):
    """
    Federated query request

    Tenant identity travels in the X-Tenant-Id header, not in the body.
    """
    question: str = Field(default="", max_length=2000, description="Natural-language question")
    workspace_id: Optional[str] = Field(default=None, alias="workspaceId", description="Workspace whose ontology to use")
    workspace_name: Optional[str] = Field(default=None, alias="workspaceName", description="Workspace slug used in graph names")

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "examples": [
                {
                    "question": "Show me all customers with transactions over $10,000",
                    "workspaceId": "ws-123",
                }
            ]
        },
    }


class PipelineStepModel(BaseModel):
    name: str
    duration_ms: int
    status: str
    error: Optional[str] = None


class ExecutionPipeline(BaseModel):
    total_time_ms: int
    steps: List[PipelineStepModel] = Field(default_factory=list)


class QueryResponse(BaseModel):
    """
    Federated query response

    On failure `error` is set and `answer` explains it; the request itself
    still succeeds with HTTP 200.
    """
    answer: str
    question: str
    context_graph: Dict[str, Any]
    reasoning_trace: List[Dict[str, Any]] = Field(default_factory=list)
    citations: Dict[str, Any] = Field(default_factory=dict)
    execution_stats: Dict[str, Any] = Field(default_factory=dict)
    execution_pipeline: ExecutionPipeline
    query_mode: str = "vkg_federated"
    plan: Optional[Dict[str, Any]] = None
    warnings: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class InvalidateResponse(BaseModel):
    invalidated: bool
    tenant_id: str
    workspace_id: str
