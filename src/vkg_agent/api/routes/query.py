"""
Federated query and ontology endpoints
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger

from vkg_agent.agents.vkg import VKGQueryAgent
from vkg_agent.api.deps import get_agent, get_services, get_tenant_id, get_workspace_id
from vkg_agent.api.schemas.vkg import InvalidateResponse, QueryRequest, QueryResponse
from vkg_agent.infra.context import ServiceContext
from vkg_agent.ontology.drift import SchemaDriftDetector
from vkg_agent.ontology.joins import JoinAugmenter
from vkg_agent.ontology.resolver import MappingResolver

router = APIRouter(prefix="/api/vkg", tags=["vkg"])


@router.post("/query", response_model=QueryResponse, response_model_exclude_none=True)
async def query(
    request: QueryRequest,
    tenant_id: str = Depends(get_tenant_id),
    header_workspace_id: Optional[str] = Depends(get_workspace_id),
    agent: VKGQueryAgent = Depends(get_agent),
) -> Dict[str, Any]:
    """
    Answer a natural-language question over the workspace's mapped databases.

    Pipeline failures (retry exhaustion, unreachable engine) are reported in
    the response's `error` field, not as HTTP errors.
    """
    question = request.question.strip()
    if not question:
        raise HTTPException(status_code=400, detail="Question is required")

    workspace_id = request.workspace_id or header_workspace_id
    logger.info(f"VKG query - tenant={tenant_id}, workspace={workspace_id}")
    return await agent.query(question, tenant_id, workspace_id, request.workspace_name)


async def _resolved_mappings(services: ServiceContext, tenant_id: str, workspace_id: Optional[str]):
    ws = workspace_id or "default"
    mappings = await services.ontology_repository.load_mappings(tenant_id, ws)
    return await MappingResolver(services.catalog_registry).resolve(tenant_id, workspace_id, mappings)


@router.get("/ontology/mappings")
async def get_mappings(
    tenant_id: str = Depends(get_tenant_id),
    workspace_id: Optional[str] = Depends(get_workspace_id),
    services: ServiceContext = Depends(get_services),
) -> Dict[str, Any]:
    """Resolved and join-augmented mappings, as the query pipeline sees them."""
    resolved = await _resolved_mappings(services, tenant_id, workspace_id)
    augmented = await JoinAugmenter(services.catalog_registry).augment(tenant_id, workspace_id, resolved)
    return augmented.to_dict()


@router.get("/ontology/drift")
async def get_drift(
    tenant_id: str = Depends(get_tenant_id),
    workspace_id: Optional[str] = Depends(get_workspace_id),
    services: ServiceContext = Depends(get_services),
) -> Dict[str, Any]:
    resolved = await _resolved_mappings(services, tenant_id, workspace_id)
    report = await SchemaDriftDetector(services.catalog_registry).detect(tenant_id, workspace_id, resolved)
    if report is None:
        return {"has_drift": False, "checked": False}
    return {**report.to_dict(), "checked": True, "warnings": report.warnings()}


@router.post("/ontology/invalidate", response_model=InvalidateResponse)
async def invalidate(
    tenant_id: str = Depends(get_tenant_id),
    workspace_id: Optional[str] = Depends(get_workspace_id),
    services: ServiceContext = Depends(get_services),
) -> InvalidateResponse:
    """Drop cached ontology schema + mappings (e.g. after the ontology was regenerated)."""
    ws = workspace_id or "default"
    await services.ontology_repository.invalidate(tenant_id, ws)
    return InvalidateResponse(invalidated=True, tenant_id=tenant_id, workspace_id=ws)
