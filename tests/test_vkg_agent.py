"""
End-to-end tests for the VKG query workflow with fake model, engine and stores.
"""

import json

import pytest

from vkg_agent.agents.vkg import NO_RESULTS_MESSAGE, VKGQueryAgent
from vkg_agent.catalog.models import CatalogSchema, ColumnInfo, TableInfo
from vkg_agent.graph.context_graph import ContextGraphBuilder
from vkg_agent.ontology.drift import SchemaDriftDetector
from vkg_agent.ontology.joins import JoinAugmenter
from vkg_agent.ontology.resolver import MappingResolver
from vkg_agent.sql.validator import SQLValidator
from vkg_agent.utils.errors import ExecutionError
from conftest import FakeCatalogRegistry, FakeChat, FakeConnections, FakeRepository, FakeTrinoClient, result_of

QUESTION = "Show me all customers with transactions over $10,000"

PLAN = {
    "entities": ["Customer", "Transaction"],
    "relationships": ["hasTransaction"],
    "singleHop": False,
    "reasoning": "Customers joined to their transactions, filtered on amount",
}

GOOD_SQL = (
    "SELECT c.id AS customer_id, c.name, t.id AS transaction_id, t.amount "
    "FROM tacme_bank.public.customers c "
    "JOIN tacme_bank.public.transactions t ON t.customer_id = c.id "
    "WHERE t.amount > 10000"
)

BAD_COLUMN_SQL = "SELECT c.customerName FROM tacme_bank.public.customers c LIMIT 10"

ROWS = [
    [1, "Ada", 10, 12500],
    [1, "Ada", 11, 15000],
    [2, "Grace", 12, 20000],
]


def _reply(sql, plan=PLAN):
    return json.dumps({"plan": plan, "sql": sql})


def _answer_rows(sql):
    return result_of(["customer_id", "name", "transaction_id", "amount"], ROWS, duration_ms=42)


def _step_names(response):
    return [s["name"] for s in response["execution_pipeline"]["steps"]]


@pytest.fixture
def make_agent(bank_schema, bank_mappings, bank_registry):
    def factory(chat, client, repository=None, graph_builder=None):
        return VKGQueryAgent(
            repository=repository or FakeRepository(bank_schema, bank_mappings),
            resolver=MappingResolver(bank_registry),
            join_augmenter=JoinAugmenter(bank_registry),
            validator=SQLValidator(),
            executor=FakeConnections(client),
            graph_builder=graph_builder or ContextGraphBuilder(),
            chat=chat,
            drift_detector=SchemaDriftDetector(bank_registry),
            max_attempts=3,
            row_limit=1000,
        )

    return factory


@pytest.mark.asyncio
async def test_federated_join_question(make_agent):
    chat = FakeChat([_reply(GOOD_SQL), "Ada and Grace both made transactions over $10,000."])
    client = FakeTrinoClient(handler=_answer_rows)
    agent = make_agent(chat, client)

    response = await agent.query(QUESTION, "acme", "ws-1", "bank-workspace")

    assert "error" not in response
    assert response["answer"] == "Ada and Grace both made transactions over $10,000."
    assert set(response["plan"]["entities"]) >= {"Customer", "Transaction"}

    sql = response["citations"]["sql"]
    assert "t.customer_id = c.id" in sql
    assert "> 10000" in sql
    assert sql.endswith("LIMIT 1000")
    assert client.executed == [sql]
    assert response["citations"]["databases"] == ["tacme_bank"]

    graph = response["context_graph"]
    types = {n["id"]: n["type"] for n in graph["nodes"]}
    assert "Customer" in types.values() and "Transaction" in types.values()
    assert any(types[e["source"]] == "Customer" and types[e["target"]] == "Transaction" for e in graph["edges"])

    assert response["execution_stats"]["rows_returned"] == 3
    assert response["execution_stats"]["databases_queried"] == 1
    assert response["execution_stats"]["engine_execution_ms"] == 42
    assert response["query_mode"] == "vkg_federated"
    assert response["warnings"] == []
    assert response["reasoning_trace"][0]["step"].startswith("Identified entities")
    assert _step_names(response) == [
        "Load Ontology + Mappings",
        "LLM Plan+SQL Generation",
        "SQL Validation",
        "Trino Execution",
        "Context Graph + Trace",
        "LLM Answer Generation",
    ]
    assert all(s["status"] == "success" for s in response["execution_pipeline"]["steps"])


@pytest.mark.asyncio
async def test_prompt_carries_resolved_and_augmented_mappings(make_agent):
    chat = FakeChat([_reply(GOOD_SQL), "answer"])
    agent = make_agent(chat, FakeTrinoClient(handler=_answer_rows))

    await agent.query(QUESTION, "acme", "ws-1")

    generation = chat.calls[0]
    context = generation["messages"][1]["content"]
    assert "TABLE: tacme_bank.public.customers  (entity: Customer)" in context
    assert "tacme_bank.public.transactions.customer_id = tacme_bank.public.customers.id" in context
    assert context.endswith(f"Question: {QUESTION}")
    assert generation["options"]["temperature"] == agent.ctx.generation_temperature
    assert chat.calls[1]["options"]["temperature"] == agent.ctx.answer_temperature


@pytest.mark.asyncio
async def test_unknown_column_is_retried_until_attempts_run_out(make_agent):
    chat = FakeChat([_reply(BAD_COLUMN_SQL)])
    client = FakeTrinoClient(handler=_answer_rows)
    agent = make_agent(chat, client)

    response = await agent.query(QUESTION, "acme", "ws-1")

    assert response["error"].startswith("Failed after 3 attempts. Last error: SQL validation failed:")
    assert 'Column "customerName" does not exist' in response["error"]
    generation_steps = [n for n in _step_names(response) if n.startswith("LLM Plan+SQL Generation")]
    assert generation_steps == [
        "LLM Plan+SQL Generation",
        "LLM Plan+SQL Generation (attempt 2/3)",
        "LLM Plan+SQL Generation (attempt 3/3)",
    ]
    validation = [s for s in response["execution_pipeline"]["steps"] if s["name"].startswith("SQL Validation")]
    assert [s["status"] for s in validation] == ["failed"] * 3
    assert client.executed == []

    # every retry replays all earlier failures
    assert len(chat.calls) == 3
    last_messages = chat.calls[2]["messages"]
    assert [m["role"] for m in last_messages] == ["system", "user", "assistant", "user", "assistant", "user"]
    assert "WRONG COLUMN NAMES" in last_messages[-1]["content"]
    assert json.loads(last_messages[2]["content"])["sql"] == BAD_COLUMN_SQL


@pytest.mark.asyncio
async def test_unreachable_engine_fails_every_attempt(make_agent):
    def unreachable(sql):
        raise ExecutionError("Trino unreachable at http://trino:8080: connection refused")

    chat = FakeChat([_reply(GOOD_SQL)])
    agent = make_agent(chat, FakeTrinoClient(handler=unreachable))

    response = await agent.query(QUESTION, "acme", "ws-1")

    executions = [s for s in response["execution_pipeline"]["steps"] if s["name"].startswith("Trino Execution")]
    assert [s["name"] for s in executions] == [
        "Trino Execution",
        "Trino Execution (attempt 2/3)",
        "Trino Execution (attempt 3/3)",
    ]
    assert all(s["status"] == "failed" and "Trino unreachable" in s["error"] for s in executions)
    assert "Failed after 3 attempts" in response["answer"]
    assert "Trino unreachable" in response["execution_stats"]["error"]
    assert response["citations"] == {}
    assert response["context_graph"]["nodes"] == []
    assert "failed on Trino with error" in chat.calls[1]["messages"][-1]["content"]


@pytest.mark.asyncio
async def test_second_attempt_recovers(make_agent):
    chat = FakeChat([_reply(BAD_COLUMN_SQL), _reply(GOOD_SQL), "Two customers qualify."])
    agent = make_agent(chat, FakeTrinoClient(handler=_answer_rows))

    response = await agent.query(QUESTION, "acme", "ws-1")

    assert "error" not in response
    assert response["answer"] == "Two customers qualify."
    steps = {s["name"]: s["status"] for s in response["execution_pipeline"]["steps"]}
    assert steps["SQL Validation"] == "failed"
    assert steps["SQL Validation (attempt 2/3)"] == "success"
    assert steps["Trino Execution (attempt 2/3)"] == "success"


@pytest.mark.asyncio
async def test_unparseable_reply_counts_as_failed_attempt(make_agent):
    chat = FakeChat(["I am not sure how to help.", _reply(GOOD_SQL), "answer"])
    agent = make_agent(chat, FakeTrinoClient(handler=_answer_rows))

    response = await agent.query(QUESTION, "acme", "ws-1")

    assert "error" not in response
    first = response["execution_pipeline"]["steps"][1]
    assert first["name"] == "LLM Plan+SQL Generation"
    assert first["status"] == "failed"
    assert chat.calls[1]["messages"][-1]["role"] == "user"


@pytest.mark.asyncio
async def test_zero_rows_are_explained_with_existing_values(make_agent):
    filtered_sql = (
        "SELECT c.name FROM tacme_bank.public.customers c "
        "WHERE LOWER(c.city) LIKE '%pariss%' LIMIT 100"
    )

    def handler(sql):
        if "GROUP BY city" in sql:
            return result_of(["city", "cnt"], [["Paris", 20], ["Lyon", 12]])
        if "COUNT(*) AS total" in sql:
            return result_of(["total"], [[32]])
        return result_of(["name"], [])

    chat = FakeChat([_reply(filtered_sql), "Nobody lives in 'Pariss'; 20 customers live in Paris."])
    client = FakeTrinoClient(handler=handler)
    agent = make_agent(chat, client)

    response = await agent.query("Customers in Pariss?", "acme", "ws-1")

    assert response["answer"] == "Nobody lives in 'Pariss'; 20 customers live in Paris."
    assert response["execution_stats"]["rows_returned"] == 0
    assert len(client.executed) == 3
    exploration_prompt = chat.calls[1]["messages"][1]["content"]
    assert "Paris (20 rows)" in exploration_prompt
    assert "Total rows in tacme_bank.public.customers: 32" in exploration_prompt


@pytest.mark.asyncio
async def test_zero_rows_without_filters_get_generic_message(make_agent):
    sql = "SELECT c.name FROM tacme_bank.public.customers c LIMIT 10"
    chat = FakeChat([_reply(sql)])
    client = FakeTrinoClient(handler=lambda s: result_of(["name"], []))
    agent = make_agent(chat, client)

    response = await agent.query("List customers", "acme", "ws-1")

    assert response["answer"] == NO_RESULTS_MESSAGE
    assert client.executed == [sql]
    assert len(chat.calls) == 1


@pytest.mark.asyncio
async def test_load_failure_short_circuits(make_agent, bank_schema, bank_mappings):
    repository = FakeRepository(bank_schema, bank_mappings, error=RuntimeError("GraphDB unreachable"))
    chat = FakeChat([_reply(GOOD_SQL)])
    agent = make_agent(chat, FakeTrinoClient(handler=_answer_rows), repository=repository)

    response = await agent.query(QUESTION, "acme", "ws-1")

    assert response["error"] == "GraphDB unreachable"
    assert response["answer"] == "Query failed: GraphDB unreachable"
    assert response["reasoning_trace"] == [{"step": "Error: GraphDB unreachable", "evidence": [], "sources": []}]
    assert _step_names(response) == ["Load Ontology + Mappings"]
    assert chat.calls == []


@pytest.mark.asyncio
async def test_graph_failure_still_answers(make_agent):
    class BrokenBuilder(ContextGraphBuilder):
        def build(self, *args, **kwargs):
            raise ValueError("unexpected column layout")

    chat = FakeChat([_reply(GOOD_SQL), "answer anyway"])
    agent = make_agent(chat, FakeTrinoClient(handler=_answer_rows), graph_builder=BrokenBuilder())

    response = await agent.query(QUESTION, "acme", "ws-1")

    assert response["answer"] == "answer anyway"
    step = next(s for s in response["execution_pipeline"]["steps"] if s["name"] == "Context Graph + Trace")
    assert step["status"] == "skipped"
    assert response["context_graph"]["nodes"] == []


@pytest.mark.asyncio
async def test_answer_failure_is_reported_not_raised(make_agent):
    chat = FakeChat([_reply(GOOD_SQL), RuntimeError("model quota exceeded")])
    agent = make_agent(chat, FakeTrinoClient(handler=_answer_rows))

    response = await agent.query(QUESTION, "acme", "ws-1")

    assert response["error"] == "model quota exceeded"
    assert response["execution_pipeline"]["steps"][-1]["status"] == "failed"


@pytest.fixture
def drifted_agent(bank_schema, bank_mappings, bank_catalogs):
    """Agent whose live catalog has lost the transactions table."""
    live = CatalogSchema(
        catalog="tacme_bank",
        schema="public",
        tables=[
            TableInfo(
                name="customers",
                full_name="tacme_bank.public.customers",
                columns=[ColumnInfo("id"), ColumnInfo("name"), ColumnInfo("city")],
            )
        ],
    )
    registry = FakeCatalogRegistry(bank_catalogs, {"tacme_bank": live})

    def factory(chat, join_augmenter=None):
        return VKGQueryAgent(
            repository=FakeRepository(bank_schema, bank_mappings),
            resolver=MappingResolver(registry),
            join_augmenter=join_augmenter or JoinAugmenter(registry),
            validator=SQLValidator(),
            executor=FakeConnections(FakeTrinoClient(handler=_answer_rows)),
            graph_builder=ContextGraphBuilder(),
            chat=chat,
            drift_detector=SchemaDriftDetector(registry),
        )

    return factory


DRIFT_WARNING = "no longer exist in database: tacme_bank.public.transactions"


@pytest.mark.asyncio
async def test_drift_warnings_are_appended(drifted_agent):
    agent = drifted_agent(FakeChat([_reply(GOOD_SQL), "answer"]))

    with pytest.warns(UserWarning):
        response = await agent.query(QUESTION, "acme", "ws-1")

    assert any(DRIFT_WARNING in w for w in response["warnings"])


@pytest.mark.asyncio
async def test_failed_query_keeps_drift_warnings_and_last_plan(drifted_agent):
    agent = drifted_agent(FakeChat([_reply(BAD_COLUMN_SQL)]))

    with pytest.warns(UserWarning):
        response = await agent.query(QUESTION, "acme", "ws-1")

    assert response["error"].startswith("Failed after 3 attempts")
    assert any(DRIFT_WARNING in w for w in response["warnings"])
    assert response["plan"]["entities"] == PLAN["entities"]


@pytest.mark.asyncio
async def test_drift_check_is_awaited_when_the_graph_raises(drifted_agent):
    class BrokenAugmenter(JoinAugmenter):
        async def augment(self, *args, **kwargs):
            raise RuntimeError("catalog registry went away")

    chat = FakeChat([_reply(GOOD_SQL)])
    agent = drifted_agent(chat, join_augmenter=BrokenAugmenter(FakeCatalogRegistry([])))

    with pytest.warns(UserWarning):
        response = await agent.query(QUESTION, "acme", "ws-1")

    assert response["error"] == "catalog registry went away"
    assert response["plan"] is None
    assert any(DRIFT_WARNING in w for w in response["warnings"])
    assert chat.calls == []
