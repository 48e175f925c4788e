"""
Trino client (federation engine)

Uses the Trino REST protocol:
    1. POST /v1/statement -> first page with nextUri
    2. GET nextUri repeatedly until the query finishes or fails

Polling is bounded (max_poll_attempts x poll_interval) so a stalled
coordinator surfaces as QueryTimeoutError instead of hanging the request.
"""

import asyncio
import base64
import time
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

from vkg_agent.catalog.models import CatalogSchema, ColumnInfo, ForeignKey, TableInfo
from vkg_agent.utils.errors import ExecutionError, QueryTimeoutError

CONFIG_KEY_PREFIX = "vkg:trino-config"


@dataclass
class ExecutionResult:
    """Columns ({name, type}), row matrix and timing of one executed statement."""
    columns: List[Dict[str, str]] = field(default_factory=list)
    rows: List[List[Any]] = field(default_factory=list)
    row_count: int = 0
    duration_ms: int = 0
    sql: str = ""

    @property
    def column_names(self) -> List[str]:
        return [c["name"] for c in self.columns]

    def records(self) -> List[Dict[str, Any]]:
        names = self.column_names
        return [dict(zip(names, row)) for row in self.rows]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TrinoConnectionConfig:
    """Coordinator connection settings for one workspace."""
    url: str = "http://localhost:8080"
    user: str = "trino"
    auth_type: str = "none"  # none | password | jwt
    password: str = ""
    jwt_token: str = ""
    tls_skip_verify: bool = False
    catalog: str = ""
    schema: str = ""
    poll_interval_seconds: float = 0.5
    max_poll_attempts: int = 120
    request_timeout_seconds: float = 30.0

    @classmethod
    def from_settings(cls, settings) -> "TrinoConnectionConfig":
        auth_type = "none"
        if settings.trino_token:
            auth_type = "jwt"
        elif settings.trino_password:
            auth_type = "password"
        return cls(
            url=settings.trino_url,
            user=settings.trino_user,
            auth_type=auth_type,
            password=settings.trino_password,
            jwt_token=settings.trino_token,
            catalog=settings.trino_catalog,
            schema=settings.trino_schema,
            poll_interval_seconds=settings.trino_poll_interval_seconds,
            max_poll_attempts=settings.trino_max_poll_attempts,
            request_timeout_seconds=settings.trino_request_timeout_seconds,
        )

    def public_view(self) -> Dict[str, Any]:
        """Config without secrets, for API responses."""
        return {
            "url": self.url,
            "user": self.user,
            "authType": self.auth_type,
            "tlsSkipVerify": self.tls_skip_verify,
            "hasPassword": bool(self.password),
            "hasJwtToken": bool(self.jwt_token),
        }


def _singular(table_name: str) -> str:
    return table_name[:-1] if table_name.endswith("s") else table_name


def _is_primary_key(column: str, table_name: str) -> bool:
    return column == "id" or column == f"{_singular(table_name)}_id"


def _is_foreign_key(column: str, table_name: str) -> bool:
    return column.endswith("_id") and column != f"{_singular(table_name)}_id"


def infer_foreign_keys(tables: List[TableInfo]) -> List[ForeignKey]:
    """
    Naming-convention FK inference: column `customer_id` refers to table
    `customers` (or `customer`). The target column is the referenced table's
    primary key (`id`, else `customer_id`).
    """
    by_name = {t.name: t for t in tables}
    relationships = []
    for table in tables:
        for column in table.columns:
            if not column.is_foreign_key:
                continue
            stem = column.name[: -len("_id")]
            ref = by_name.get(f"{stem}s") or by_name.get(stem)
            if ref is None:
                continue
            pk_columns = [c.name for c in ref.columns if c.is_primary_key]
            if "id" in pk_columns:
                to_column = "id"
            elif pk_columns:
                to_column = pk_columns[0]
            else:
                to_column = column.name
            relationships.append(
                ForeignKey(
                    from_table=table.full_name,
                    from_column=column.name,
                    to_table=ref.full_name,
                    to_column=to_column,
                )
            )
    return relationships


class TrinoClient:
    """Async client for one Trino coordinator."""

    def __init__(
        self,
        config: Optional[TrinoConnectionConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or TrinoConnectionConfig()
        self.base_url = self.config.url.rstrip("/")
        self._http = httpx.AsyncClient(
            timeout=self.config.request_timeout_seconds,
            verify=not self.config.tls_skip_verify,
            transport=transport,
        )

    def _headers(self) -> Dict[str, str]:
        headers = {"X-Trino-User": self.config.user}
        if self.config.auth_type == "password" and self.config.password:
            token = base64.b64encode(f"{self.config.user}:{self.config.password}".encode()).decode()
            headers["Authorization"] = f"Basic {token}"
        elif self.config.auth_type == "jwt" and self.config.jwt_token:
            headers["Authorization"] = f"Bearer {self.config.jwt_token}"
        return headers

    async def check_connection(self) -> Dict[str, Any]:
        """GET /v1/info. Never raises."""
        try:
            response = await self._http.get(f"{self.base_url}/v1/info", headers=self._headers())
            response.raise_for_status()
            info = response.json()
            version = info.get("nodeVersion")
            if isinstance(version, dict):
                version = version.get("version")
            return {"connected": True, "version": str(version), "uptime": str(info.get("uptime", ""))}
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Trino connection check failed: {e}")
            return {"connected": False, "error": str(e)}

    async def execute_sql(
        self, sql: str, catalog: Optional[str] = None, schema: Optional[str] = None
    ) -> ExecutionResult:
        """
        Submit a statement and poll until it completes.

        Raises:
            ExecutionError: submission rejected, engine unreachable, or in-band query error
            QueryTimeoutError: poll budget exhausted
        """
        start = time.time()
        headers = {**self._headers(), "Content-Type": "text/plain"}
        catalog = catalog or self.config.catalog
        schema = schema or self.config.schema
        if catalog:
            headers["X-Trino-Catalog"] = catalog
        if schema:
            headers["X-Trino-Schema"] = schema

        try:
            response = await self._http.post(f"{self.base_url}/v1/statement", headers=headers, content=sql)
        except httpx.HTTPError as e:
            raise ExecutionError(f"Trino unreachable at {self.base_url}: {e}") from e

        if response.status_code >= 400:
            raise ExecutionError(f"Trino query submission failed ({response.status_code}): {response.text}")

        page = response.json()
        columns: List[Dict[str, str]] = []
        rows: List[List[Any]] = []

        def absorb(payload: Dict[str, Any]) -> None:
            if payload.get("columns") and not columns:
                columns.extend({"name": c["name"], "type": c.get("type", "")} for c in payload["columns"])
            if payload.get("data"):
                rows.extend(payload["data"])
            error = payload.get("error")
            if error:
                raise ExecutionError(
                    f"Trino query error: {error.get('message')} (code: {error.get('errorCode')})"
                )

        absorb(page)
        attempts = 0
        while page.get("nextUri") and attempts < self.config.max_poll_attempts:
            await asyncio.sleep(self.config.poll_interval_seconds)
            try:
                poll = await self._http.get(page["nextUri"], headers=self._headers())
            except httpx.HTTPError as e:
                raise ExecutionError(f"Trino poll failed: {e}") from e
            if poll.status_code >= 400:
                raise ExecutionError(f"Trino poll failed ({poll.status_code}): {poll.text}")
            page = poll.json()
            absorb(page)
            attempts += 1

        if page.get("nextUri"):
            await self._cancel(page["nextUri"])
            raise QueryTimeoutError(
                f"Trino query timed out waiting for results after {attempts} polls"
            )

        duration_ms = int((time.time() - start) * 1000)
        logger.debug(f"Trino returned {len(rows)} rows in {duration_ms}ms")
        return ExecutionResult(
            columns=columns, rows=rows, row_count=len(rows), duration_ms=duration_ms, sql=sql
        )

    async def _cancel(self, next_uri: str) -> None:
        """DELETE the statement so the coordinator stops running it. Best effort."""
        try:
            await self._http.delete(next_uri, headers=self._headers())
            logger.info(f"🛑 Cancelled timed-out Trino query: {next_uri}")
        except httpx.HTTPError as e:
            logger.warning(f"Could not cancel timed-out Trino query {next_uri}: {e}")

    async def list_catalogs(self) -> List[str]:
        result = await self.execute_sql("SHOW CATALOGS")
        return [r[0] for r in result.rows]

    async def list_schemas(self, catalog: str) -> List[str]:
        result = await self.execute_sql(f'SHOW SCHEMAS FROM "{catalog}"')
        return [r[0] for r in result.rows if r[0] != "information_schema"]

    async def list_tables(self, catalog: str, schema: str) -> List[str]:
        result = await self.execute_sql(f'SHOW TABLES FROM "{catalog}"."{schema}"')
        return [r[0] for r in result.rows]

    async def describe_table(self, catalog: str, schema: str, table: str) -> List[Dict[str, str]]:
        result = await self.execute_sql(f'DESCRIBE "{catalog}"."{schema}"."{table}"')
        return [{"name": r[0], "type": r[1] if len(r) > 1 else ""} for r in result.rows]

    async def introspect_schema(self, catalog: str, schema: str) -> CatalogSchema:
        """Tables with PK/FK-flagged columns plus naming-convention foreign keys."""
        table_names = await self.list_tables(catalog, schema)

        async def describe(table_name: str) -> TableInfo:
            described = await self.describe_table(catalog, schema, table_name)
            return TableInfo(
                name=table_name,
                full_name=f"{catalog}.{schema}.{table_name}",
                catalog=catalog,
                schema=schema,
                columns=[
                    ColumnInfo(
                        name=c["name"],
                        type=c["type"],
                        is_primary_key=_is_primary_key(c["name"], table_name),
                        is_foreign_key=_is_foreign_key(c["name"], table_name),
                    )
                    for c in described
                ],
            )

        tables = list(await asyncio.gather(*(describe(t) for t in table_names)))
        return CatalogSchema(
            catalog=catalog, schema=schema, tables=tables, relationships=infer_foreign_keys(tables)
        )

    async def close(self) -> None:
        await self._http.aclose()


class TrinoConnectionManager:
    """
    Per-workspace Trino clients.

    Workspace overrides live in the cache under vkg:trino-config:{workspace};
    workspaces without one use the settings default. Concurrent misses for one
    workspace may both read the stored config but only the first builds a client.
    """

    def __init__(self, cache, default_config: TrinoConnectionConfig, transport=None):
        self.cache = cache
        self.default_config = default_config
        self._transport = transport
        self._clients: Dict[str, TrinoClient] = {}

    @staticmethod
    def _key(workspace_id: Optional[str]) -> str:
        return workspace_id or "default"

    async def get_client(self, workspace_id: Optional[str] = None) -> TrinoClient:
        ws_key = self._key(workspace_id)
        if ws_key in self._clients:
            return self._clients[ws_key]

        config = self.default_config
        stored = await self.cache.get(f"{CONFIG_KEY_PREFIX}:{ws_key}")
        if stored and stored.get("url"):
            known = {k: v for k, v in stored.items() if k in TrinoConnectionConfig.__dataclass_fields__}
            config = TrinoConnectionConfig(**{**asdict(self.default_config), **known})

        # No await between this check and the insert, so concurrent misses share one client
        if ws_key not in self._clients:
            self._clients[ws_key] = TrinoClient(config, transport=self._transport)
        return self._clients[ws_key]

    async def set_connection(self, workspace_id: Optional[str], config: TrinoConnectionConfig) -> Dict[str, Any]:
        ws_key = self._key(workspace_id)
        await self.cache.set(f"{CONFIG_KEY_PREFIX}:{ws_key}", asdict(config))
        stale = self._clients.pop(ws_key, None)
        if stale is not None:
            await stale.close()
        logger.info(f"🔗 Trino connection saved for workspace {ws_key}: {config.url} (auth: {config.auth_type})")
        return {**config.public_view(), "source": "workspace"}

    async def get_connection(self, workspace_id: Optional[str] = None) -> Dict[str, Any]:
        stored = await self.cache.get(f"{CONFIG_KEY_PREFIX}:{self._key(workspace_id)}")
        if stored and stored.get("url"):
            known = {k: v for k, v in stored.items() if k in TrinoConnectionConfig.__dataclass_fields__}
            return {**TrinoConnectionConfig(**known).public_view(), "source": "workspace"}
        return {**self.default_config.public_view(), "source": "env"}

    async def remove_connection(self, workspace_id: Optional[str]) -> None:
        ws_key = self._key(workspace_id)
        await self.cache.delete(f"{CONFIG_KEY_PREFIX}:{ws_key}")
        stale = self._clients.pop(ws_key, None)
        if stale is not None:
            await stale.close()
        logger.info(f"🔗 Trino connection removed for workspace {ws_key}")

    async def check_connection(self, workspace_id: Optional[str] = None) -> Dict[str, Any]:
        client = await self.get_client(workspace_id)
        return await client.check_connection()

    async def close_all(self) -> None:
        clients = list(self._clients.values())
        self._clients.clear()
        for client in clients:
            await client.close()
