"""
Shared fixtures: a small banking workspace plus in-process fakes for the
chat model, the Trino client, the catalog registry and the ontology stores.
"""

from typing import Any, Callable, Dict, List, Optional

import pytest

from vkg_agent.catalog.models import CatalogEntry, CatalogSchema, ColumnInfo, ForeignKey, TableInfo
from vkg_agent.infra.trino import ExecutionResult
from vkg_agent.ontology.models import MappingSet, OntologyClass, OntologyProperty, OntologySchema
from vkg_agent.utils.errors import CatalogError


class FakeChat:
    """
    Scripted chat service.

    Responses are consumed in order; the last one is repeated once the script
    runs out. An Exception instance in the script is raised instead of returned.
    """

    def __init__(self, responses: List[Any]):
        self.responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    async def chat(self, messages, options=None) -> str:
        self.calls.append({"messages": list(messages), "options": dict(options or {})})
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


class FakeTrinoClient:
    """Records every statement; `handler(sql)` returns an ExecutionResult or raises."""

    def __init__(self, handler: Optional[Callable[[str], ExecutionResult]] = None, connected: bool = True):
        self.handler = handler or (lambda sql: ExecutionResult(sql=sql))
        self.connected = connected
        self.executed: List[str] = []

    async def execute_sql(self, sql, catalog=None, schema=None):
        self.executed.append(sql)
        return self.handler(sql)

    async def check_connection(self):
        if self.connected:
            return {"connected": True, "version": "435"}
        return {"connected": False, "error": "connection refused"}

    async def close(self):
        pass


class FakeConnections:
    """Stands in for TrinoConnectionManager: one client for every workspace."""

    def __init__(self, client: FakeTrinoClient):
        self.client = client
        self.requested: List[Optional[str]] = []

    async def get_client(self, workspace_id=None):
        self.requested.append(workspace_id)
        return self.client

    async def check_connection(self, workspace_id=None):
        return await self.client.check_connection()

    async def get_connection(self, workspace_id=None):
        return {"url": "http://trino:8080", "source": "env"}

    async def close_all(self):
        pass


class FakeCatalogRegistry:
    def __init__(self, catalogs: List[CatalogEntry], schemas: Optional[Dict[str, CatalogSchema]] = None):
        self.catalogs = list(catalogs)
        self.schemas = dict(schemas or {})
        self.introspected: List[str] = []

    async def list_catalogs(self, tenant_id, workspace_id=None):
        return list(self.catalogs)

    async def introspect_catalog(self, tenant_id, catalog_name, workspace_id=None, catalogs=None):
        self.introspected.append(catalog_name)
        if catalog_name not in self.schemas:
            raise CatalogError(f"Catalog '{catalog_name}' is registered but not loaded in Trino")
        return self.schemas[catalog_name]

    async def introspect_all_catalogs(self, tenant_id, workspace_id=None):
        return list(self.schemas.values())


class FakeRepository:
    """OntologyRepository with fixed content; mappings are copied per load like a cache read."""

    def __init__(self, schema: OntologySchema, mappings: MappingSet, error: Optional[Exception] = None):
        self.schema = schema
        self.mappings = mappings
        self.error = error
        self.loads: List[tuple] = []

    async def load_schema(self, tenant_id, workspace_id, workspace_name=None):
        self.loads.append(("schema", tenant_id, workspace_id))
        if self.error:
            raise self.error
        return self.schema

    async def load_mappings(self, tenant_id, workspace_id, workspace_name=None):
        self.loads.append(("mappings", tenant_id, workspace_id))
        if self.error:
            raise self.error
        return self.mappings.copy()

    async def invalidate(self, tenant_id, workspace_id):
        self.loads.append(("invalidate", tenant_id, workspace_id))


def result_of(columns: List[str], rows: List[List[Any]], duration_ms: int = 12) -> ExecutionResult:
    return ExecutionResult(
        columns=[{"name": c, "type": "varchar"} for c in columns],
        rows=rows,
        row_count=len(rows),
        duration_ms=duration_ms,
    )


@pytest.fixture
def bank_schema():
    return OntologySchema(
        classes=[
            OntologyClass(name="Customer", iri="http://vkg.local/onto#Customer", label="Customer"),
            OntologyClass(name="Transaction", iri="http://vkg.local/onto#Transaction", label="Transaction"),
            OntologyClass(name="Branch", iri="http://vkg.local/onto#Branch", label="Branch"),
        ],
        object_properties=[
            OntologyProperty(name="hasTransaction", domain="Customer", range="Transaction"),
            OntologyProperty(name="locatedIn", domain="Branch", range="City"),
        ],
        data_properties=[
            OntologyProperty(name="customerName", domain="Customer", range="string"),
            OntologyProperty(name="city", domain="Customer", range="string"),
            OntologyProperty(name="amount", domain="Transaction", range="decimal"),
            OntologyProperty(name="branchCode", domain="Branch", range="string"),
        ],
    )


@pytest.fixture
def bank_mappings():
    """Two-part (schema.table) mappings, as recorded before catalog resolution."""
    return MappingSet.from_dict(
        {
            "classes": {
                "Customer": {"sourceTable": "public.customers", "sourceIdColumn": "id"},
                "Transaction": {"sourceTable": "public.transactions", "sourceIdColumn": "id"},
            },
            "properties": {
                "customerName": {"sourceColumn": "name", "domain": "Customer", "range": "string"},
                "city": {"sourceColumn": "city", "domain": "Customer", "range": "string"},
                "amount": {"sourceColumn": "amount", "domain": "Transaction", "range": "decimal"},
            },
            "relationships": {
                "hasTransaction": {
                    "joinSQL": "public.customers.id = public.transactions.customer_id",
                    "domain": "Customer",
                    "range": "Transaction",
                },
            },
        }
    )


@pytest.fixture
def bank_catalogs():
    return [CatalogEntry(name="bank", catalog_name="tacme_bank", connector="postgresql", schema="public", status="active")]


@pytest.fixture
def bank_catalog_schema():
    return CatalogSchema(
        catalog="tacme_bank",
        schema="public",
        tables=[
            TableInfo(
                name="customers",
                full_name="tacme_bank.public.customers",
                catalog="tacme_bank",
                schema="public",
                columns=[
                    ColumnInfo("id", "integer", is_primary_key=True),
                    ColumnInfo("name", "varchar"),
                    ColumnInfo("city", "varchar"),
                ],
            ),
            TableInfo(
                name="transactions",
                full_name="tacme_bank.public.transactions",
                catalog="tacme_bank",
                schema="public",
                columns=[
                    ColumnInfo("id", "integer", is_primary_key=True),
                    ColumnInfo("customer_id", "integer", is_foreign_key=True),
                    ColumnInfo("amount", "decimal(12,2)"),
                ],
            ),
        ],
        relationships=[
            ForeignKey(
                from_table="tacme_bank.public.transactions",
                from_column="customer_id",
                to_table="tacme_bank.public.customers",
                to_column="id",
            )
        ],
    )


@pytest.fixture
def bank_registry(bank_catalogs, bank_catalog_schema):
    return FakeCatalogRegistry(bank_catalogs, {"tacme_bank": bank_catalog_schema})


@pytest.fixture
def resolved_bank_mappings(bank_mappings):
    """Bank mappings after catalog resolution."""
    from vkg_agent.ontology.resolver import resolve_mappings

    return resolve_mappings(
        bank_mappings, [CatalogEntry(name="bank", catalog_name="tacme_bank", schema="public")]
    )
