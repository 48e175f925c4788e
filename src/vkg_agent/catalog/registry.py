"""
Catalog registry

Tracks external databases registered as Trino catalogs, namespaced per tenant.
Metadata lives in the cache hash vkg:catalogs:{tenant}:{workspace}; the
connector configuration is written as a .properties file for the coordinator.
"""

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from loguru import logger

from vkg_agent.catalog import connectors
from vkg_agent.catalog.models import CatalogEntry, CatalogSchema
from vkg_agent.utils.errors import CatalogError

CATALOGS_KEY_PREFIX = "vkg:catalogs"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class CatalogRegistry:
    """Registration, listing, connectivity tests and introspection of catalogs."""

    def __init__(self, cache, connections, catalog_path: str, docker_host: str = "host.docker.internal"):
        self.cache = cache
        self.connections = connections
        self.catalog_path = Path(catalog_path)
        self.docker_host = docker_host

    @staticmethod
    def _key(tenant_id: str, workspace_id: Optional[str]) -> str:
        return f"{CATALOGS_KEY_PREFIX}:{tenant_id}:{workspace_id or 'default'}"

    def _fallback_keys(self, tenant_id: str, workspace_id: Optional[str]) -> List[str]:
        """Older registrations may sit under the default tenant and/or workspace."""
        if tenant_id != "default" and workspace_id and workspace_id != "default":
            return [
                self._key("default", workspace_id),
                self._key(tenant_id, "default"),
                self._key("default", "default"),
            ]
        if tenant_id != "default":
            return [self._key("default", workspace_id)]
        if workspace_id and workspace_id != "default":
            return [self._key(tenant_id, "default")]
        return []

    def _resolve_name(self, tenant_id: str, name: str, catalogs: List[CatalogEntry]) -> str:
        if any(c.catalog_name == name for c in catalogs):
            return name
        return name if name.startswith("t") else connectors.catalog_name(tenant_id, name)

    async def list_catalogs(self, tenant_id: str, workspace_id: Optional[str] = None) -> List[CatalogEntry]:
        key = self._key(tenant_id, workspace_id)
        raw = await self.cache.hgetall(key)
        if not raw:
            for fallback in self._fallback_keys(tenant_id, workspace_id):
                raw = await self.cache.hgetall(fallback)
                if raw:
                    logger.info(f"[Catalogs] {key} empty, using catalogs from {fallback}")
                    break

        catalogs = []
        for name, meta in (raw or {}).items():
            if isinstance(meta, dict):
                catalogs.append(CatalogEntry.from_dict({"catalog_name": name, **meta}))
            else:
                catalogs.append(CatalogEntry(name=name, catalog_name=name, status="unknown"))
        logger.debug(f"[Catalogs] {key} -> {[c.catalog_name for c in catalogs]}")
        return catalogs

    async def register_catalog(
        self, tenant_id: str, config: Dict[str, Any], workspace_id: Optional[str] = None
    ) -> CatalogEntry:
        """
        Register an external database.

        Writes the connector .properties file, stores metadata, then tests
        connectivity. A failed test leaves the catalog in 'registered' state.

        Raises:
            CatalogError: missing fields, unsupported connector, or unwritable catalog dir
        """
        name = config.get("name")
        connector = config.get("connector") or config.get("type")
        host = config.get("host")
        user = config.get("user") or config.get("username")
        if not (name and connector and host and user):
            raise CatalogError("Missing required fields: name, connector, host, user")
        if connector not in connectors.supported_connectors():
            raise CatalogError(
                f"Unsupported connector type: {connector}. "
                f"Supported: {', '.join(connectors.supported_connectors())}"
            )

        full_name = connectors.catalog_name(tenant_id, name)
        effective_host = self.docker_host if host in ("localhost", "127.0.0.1") else host
        properties = connectors.render_properties(
            {
                "connector": connector,
                "host": effective_host,
                "port": config.get("port"),
                "database": config.get("database"),
                "user": user,
                "password": config.get("password"),
            }
        )
        try:
            self.catalog_path.mkdir(parents=True, exist_ok=True)
            file_path = self.catalog_path / f"{full_name}.properties"
            file_path.write_text(properties, encoding="utf-8")
            logger.info(f"📁 Wrote Trino catalog file: {file_path}")
        except OSError as e:
            raise CatalogError(f"Failed to write catalog configuration: {e}") from e

        entry = CatalogEntry(
            name=name,
            catalog_name=full_name,
            connector=connector,
            host=host,
            port=int(config.get("port") or connectors.default_port(connector)),
            database=config.get("database") or "",
            schema=config.get("schema") or connectors.default_schema(connector),
            user=user,
            status="pending",
            registered_at=_now(),
        )
        key = self._key(tenant_id, workspace_id)
        await self.cache.hset(key, full_name, entry.to_dict())

        health = await self.connections.check_connection(workspace_id)
        if not health.get("connected"):
            entry.status = "registered"
            entry.error = "Trino not running - catalog saved, will activate when Trino starts"
            logger.info(f"Catalog {full_name} registered (Trino offline, will activate later)")
        else:
            try:
                await self.test_catalog(tenant_id, full_name, workspace_id)
                entry.status = "active"
            except CatalogError as e:
                entry.status = "registered"
                entry.error = str(e)
                logger.warning(f"Catalog {full_name} registered but connectivity test failed: {e}")

        await self.cache.hset(key, full_name, entry.to_dict())
        return entry

    async def remove_catalog(
        self, tenant_id: str, catalog_name: str, workspace_id: Optional[str] = None
    ) -> Dict[str, str]:
        catalogs = await self.list_catalogs(tenant_id, workspace_id)
        full_name = self._resolve_name(tenant_id, catalog_name, catalogs)

        file_path = self.catalog_path / f"{full_name}.properties"
        try:
            if file_path.exists():
                file_path.unlink()
        except OSError as e:
            logger.warning(f"Could not remove catalog file {file_path}: {e}")

        await self.cache.hdel(self._key(tenant_id, workspace_id), full_name)
        return {"removed": full_name}

    async def test_catalog(
        self, tenant_id: str, catalog_name: str, workspace_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Run `SELECT 1` against the catalog and mark it active on success.

        Raises:
            CatalogError: the engine rejected the check query
        """
        catalogs = await self.list_catalogs(tenant_id, workspace_id)
        full_name = self._resolve_name(tenant_id, catalog_name, catalogs)

        client = await self.connections.get_client(workspace_id)
        health = await client.check_connection()
        if not health.get("connected"):
            return {"success": False, "catalogName": full_name, "error": "Trino coordinator is not running"}

        try:
            result = await client.execute_sql("SELECT 1", catalog=full_name)
        except Exception as e:
            raise CatalogError(f"Catalog {full_name} connectivity test failed: {e}") from e

        key = self._key(tenant_id, workspace_id)
        meta = await self.cache.hget(key, full_name)
        if isinstance(meta, dict):
            meta["status"] = "active"
            meta.pop("error", None)
            await self.cache.hset(key, full_name, meta)
        return {"success": True, "catalogName": full_name, "latencyMs": result.duration_ms}

    async def introspect_catalog(
        self,
        tenant_id: str,
        catalog_name: str,
        workspace_id: Optional[str] = None,
        catalogs: Optional[List[CatalogEntry]] = None,
    ) -> CatalogSchema:
        """
        Introspect the catalog's configured schema (default 'public').

        Raises:
            CatalogError: catalog registered but not loaded by the engine
            ExecutionError: any other engine failure
        """
        if catalogs is None:
            catalogs = await self.list_catalogs(tenant_id, workspace_id)
        full_name = self._resolve_name(tenant_id, catalog_name, catalogs)
        meta = next((c for c in catalogs if c.catalog_name == full_name), None)
        schema = (meta.schema if meta else "") or "public"

        client = await self.connections.get_client(workspace_id)
        try:
            return await client.introspect_schema(full_name, schema)
        except Exception as e:
            if "does not exist" in str(e):
                raise CatalogError(
                    f"Catalog '{full_name}' is registered but not loaded in Trino. "
                    f"Trino needs a restart to pick up new catalog files. Original error: {e}"
                ) from e
            raise

    async def introspect_all_catalogs(
        self, tenant_id: str, workspace_id: Optional[str] = None
    ) -> List[CatalogSchema]:
        """Introspect every non-removed catalog in parallel; per-catalog failures become error entries."""
        client = await self.connections.get_client(workspace_id)
        health = await client.check_connection()
        if not health.get("connected"):
            raise CatalogError("Trino coordinator is not running. Start Trino to introspect catalogs.")

        catalogs = await self.list_catalogs(tenant_id, workspace_id)
        eligible = [c for c in catalogs if c.status != "removed"]

        async def introspect(entry: CatalogEntry) -> CatalogSchema:
            try:
                return await self.introspect_catalog(tenant_id, entry.catalog_name, workspace_id, catalogs)
            except Exception as e:
                logger.warning(f"Failed to introspect catalog {entry.catalog_name}: {e}")
                return CatalogSchema(catalog=entry.catalog_name, error=str(e))

        return list(await asyncio.gather(*(introspect(c) for c in eligible)))

    async def discover_catalogs(self, tenant_id: str, workspace_id: Optional[str] = None) -> Dict[str, Any]:
        """Sync catalogs created outside the registry (e.g. by deployment config)."""
        client = await self.connections.get_client(workspace_id)
        health = await client.check_connection()
        if not health.get("connected"):
            raise CatalogError("Trino coordinator is not running")

        engine_catalogs = [c for c in await client.list_catalogs() if c not in connectors.SYSTEM_CATALOGS]
        existing = {c.catalog_name for c in await self.list_catalogs(tenant_id, workspace_id)}

        discovered = []
        for name in engine_catalogs:
            if name in existing:
                continue
            connector = name if name in connectors.DEFAULT_PORTS else "postgresql"
            schema = connectors.default_schema(connector)
            try:
                schemas = await client.list_schemas(name)
                if "public" in schemas:
                    schema = "public"
                elif schemas:
                    schema = schemas[0]
            except Exception as e:
                logger.debug(f"Could not list schemas for {name}: {e}")

            entry = CatalogEntry(
                name=name,
                catalog_name=name,
                connector=connector,
                host="docker",
                port=connectors.default_port(connector),
                schema=schema,
                user="trino",
                status="active",
                source="discovered",
                registered_at=_now(),
            )
            await self.cache.hset(self._key(tenant_id, workspace_id), name, entry.to_dict())
            discovered.append(entry)
            logger.info(f"🔍 Discovered Trino catalog: {name} (schema: {schema})")

        return {
            "discovered": [e.to_dict() for e in discovered],
            "total": len(engine_catalogs),
            "new": len(discovered),
        }
