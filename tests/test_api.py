"""
HTTP-level tests for the query and catalog endpoints.

ASGITransport does not run the lifespan, so services and the agent are put on
app.state directly.
"""

import json
from types import SimpleNamespace

import httpx
import pytest

from vkg_agent.agents.vkg import VKGQueryAgent
from vkg_agent.api.app import app
from vkg_agent.catalog.models import CatalogEntry
from vkg_agent.catalog.registry import CatalogRegistry
from vkg_agent.infra.cache import InMemoryCache
from conftest import FakeChat, FakeConnections, FakeRepository, FakeTrinoClient, result_of

SQL = (
    "SELECT c.name, t.amount FROM tacme_bank.public.customers c "
    "JOIN tacme_bank.public.transactions t ON t.customer_id = c.id WHERE t.amount > 10000"
)


@pytest.fixture
def services(tmp_path, bank_schema, bank_mappings):
    client = FakeTrinoClient(handler=lambda sql: result_of(["name", "amount"], [["Ada", 12500]]))
    connections = FakeConnections(client)
    cache = InMemoryCache()
    return SimpleNamespace(
        cache=cache,
        connections=connections,
        catalog_registry=CatalogRegistry(cache, connections, str(tmp_path / "catalog")),
        ontology_repository=FakeRepository(bank_schema, bank_mappings),
        chat=FakeChat([json.dumps({"plan": {"entities": ["Customer"]}, "sql": SQL}), "Ada spent $12,500."]),
    )


@pytest.fixture
def api(services):
    app.state.services = services
    app.state.agent = VKGQueryAgent.from_services(services)
    yield httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")
    del app.state.services
    del app.state.agent


async def _seed_bank(services):
    entry = CatalogEntry("bank", "tacme_bank", connector="postgresql", schema="public", status="active")
    await services.cache.hset("vkg:catalogs:acme:default", "tacme_bank", entry.to_dict())


async def _register_bank(client):
    return await client.post(
        "/api/trino/catalogs",
        headers={"X-Tenant-Id": "acme"},
        json={
            "name": "bank",
            "connector": "postgresql",
            "host": "db",
            "database": "bank",
            "user": "app",
            "password": "secret",
        },
    )


@pytest.mark.asyncio
async def test_health(api):
    async with api as client:
        response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
@pytest.mark.parametrize("question", ["", "   "])
async def test_blank_question_is_rejected(api, question):
    async with api as client:
        response = await client.post("/api/vkg/query", json={"question": question})

    assert response.status_code == 400
    assert response.json()["detail"] == "Question is required"


@pytest.mark.asyncio
async def test_query_end_to_end(api, services):
    async with api as client:
        await _seed_bank(services)
        response = await client.post(
            "/api/vkg/query",
            headers={"X-Tenant-Id": "acme"},
            json={"question": "  Big spenders?  ", "workspaceId": "ws-1"},
        )

    assert response.status_code == 200
    body = response.json()
    assert "error" not in body
    assert body["question"] == "Big spenders?"
    assert body["answer"] == "Ada spent $12,500."
    assert body["citations"]["databases"] == ["tacme_bank"]
    assert body["execution_stats"]["rows_returned"] == 1
    assert ("schema", "acme", "ws-1") in services.ontology_repository.loads


@pytest.mark.asyncio
async def test_pipeline_failure_is_still_http_200(api, services):
    services.chat.responses = [json.dumps({"sql": "SELECT c.customerName FROM tacme_bank.public.customers c"})]

    async with api as client:
        await _seed_bank(services)
        response = await client.post("/api/vkg/query", headers={"X-Tenant-Id": "acme"}, json={"question": "Names?"})

    assert response.status_code == 200
    assert response.json()["error"].startswith("Failed after 3 attempts")


@pytest.mark.asyncio
async def test_catalog_lifecycle(api, tmp_path):
    async with api as client:
        registered = await _register_bank(client)
        listed = await client.get("/api/trino/catalogs", headers={"X-Tenant-Id": "acme"})
        removed = await client.delete("/api/trino/catalogs/bank", headers={"X-Tenant-Id": "acme"})
        after = await client.get("/api/trino/catalogs", headers={"X-Tenant-Id": "acme"})

    assert registered.json()["catalog_name"] == "tacme_bank"
    assert registered.json()["status"] == "active"
    assert [c["catalog_name"] for c in listed.json()] == ["tacme_bank"]
    assert removed.json() == {"removed": "tacme_bank"}
    assert after.json() == []
    assert not (tmp_path / "catalog" / "tacme_bank.properties").exists()


@pytest.mark.asyncio
async def test_unsupported_connector_is_a_400(api):
    async with api as client:
        response = await client.post(
            "/api/trino/catalogs",
            json={"name": "docs", "connector": "mongodb", "host": "db", "user": "app"},
        )

    assert response.status_code == 400
    assert "Unsupported connector type" in response.json()["detail"]


@pytest.mark.asyncio
async def test_trino_health_reports_connection(api):
    async with api as client:
        response = await client.get("/api/trino/health")

    body = response.json()
    assert body["connected"] is True
    assert body["connection"]["source"] == "env"
