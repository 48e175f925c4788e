"""
Trino engine and catalog registry endpoints
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger

from vkg_agent.api.deps import get_services, get_tenant_id, get_workspace_id
from vkg_agent.api.schemas.catalogs import CatalogRegisterRequest
from vkg_agent.infra.context import ServiceContext
from vkg_agent.utils.errors import CatalogError, VKGError

router = APIRouter(prefix="/api/trino", tags=["trino"])


@router.get("/health")
async def trino_health(
    workspace_id: Optional[str] = Depends(get_workspace_id),
    services: ServiceContext = Depends(get_services),
) -> Dict[str, Any]:
    """Coordinator reachability plus the (secret-free) connection in use."""
    health = await services.connections.check_connection(workspace_id)
    connection = await services.connections.get_connection(workspace_id)
    return {**health, "connection": connection}


@router.get("/catalogs")
async def list_catalogs(
    tenant_id: str = Depends(get_tenant_id),
    workspace_id: Optional[str] = Depends(get_workspace_id),
    services: ServiceContext = Depends(get_services),
) -> List[Dict[str, Any]]:
    catalogs = await services.catalog_registry.list_catalogs(tenant_id, workspace_id)
    return [c.to_dict() for c in catalogs]


@router.post("/catalogs", status_code=201)
async def register_catalog(
    request: CatalogRegisterRequest,
    tenant_id: str = Depends(get_tenant_id),
    workspace_id: Optional[str] = Depends(get_workspace_id),
    services: ServiceContext = Depends(get_services),
) -> Dict[str, Any]:
    try:
        entry = await services.catalog_registry.register_catalog(tenant_id, request.to_config(), workspace_id)
    except CatalogError as e:
        raise HTTPException(status_code=400, detail=str(e))
    logger.info(f"📦 Catalog registered: {entry.catalog_name} ({entry.status})")
    return entry.to_dict()


@router.post("/catalogs/discover")
async def discover_catalogs(
    tenant_id: str = Depends(get_tenant_id),
    workspace_id: Optional[str] = Depends(get_workspace_id),
    services: ServiceContext = Depends(get_services),
) -> Dict[str, Any]:
    """Register catalogs that exist in Trino but not in the registry."""
    try:
        return await services.catalog_registry.discover_catalogs(tenant_id, workspace_id)
    except CatalogError as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.delete("/catalogs/{name}")
async def remove_catalog(
    name: str,
    tenant_id: str = Depends(get_tenant_id),
    workspace_id: Optional[str] = Depends(get_workspace_id),
    services: ServiceContext = Depends(get_services),
) -> Dict[str, str]:
    return await services.catalog_registry.remove_catalog(tenant_id, name, workspace_id)


@router.post("/catalogs/{name}/test")
async def test_catalog(
    name: str,
    tenant_id: str = Depends(get_tenant_id),
    workspace_id: Optional[str] = Depends(get_workspace_id),
    services: ServiceContext = Depends(get_services),
) -> Dict[str, Any]:
    try:
        return await services.catalog_registry.test_catalog(tenant_id, name, workspace_id)
    except CatalogError as e:
        return {"success": False, "catalogName": name, "error": str(e)}


@router.get("/catalogs/{name}/schema")
async def catalog_schema(
    name: str,
    tenant_id: str = Depends(get_tenant_id),
    workspace_id: Optional[str] = Depends(get_workspace_id),
    services: ServiceContext = Depends(get_services),
) -> Dict[str, Any]:
    """Introspected tables, columns and inferred foreign keys."""
    try:
        schema = await services.catalog_registry.introspect_catalog(tenant_id, name, workspace_id)
    except CatalogError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except VKGError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return schema.to_dict()
